"""Exception types raised by the usage agent."""

from __future__ import annotations


class UsageTrackerError(Exception):
    """Base class for all agent errors."""


class ProbeFailure(UsageTrackerError):
    """The foreground-window probe or the idle query could not be answered."""


class PersistenceFailure(UsageTrackerError):
    """The usage store could not complete a merge or a read."""


class RenderFailure(UsageTrackerError):
    """The usage snapshot could not be drawn or written."""


class ServiceError(UsageTrackerError):
    """A background-agent lifecycle operation failed."""
