"""Local agent that tracks time spent in foreground applications."""

__version__ = "0.3.0"
