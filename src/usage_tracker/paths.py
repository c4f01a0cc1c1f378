"""Helpers for locating application directories."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "UsageTracker"
APP_AUTHOR = "UsageTracker"


def get_data_dir() -> Path:
    """Return the base directory for persistent data."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / "app_usage.sqlite3"


def get_snapshot_path() -> Path:
    return get_data_dir() / "usage_graph.png"


def get_log_path() -> Path:
    return get_data_dir() / "agent.log"


def get_pid_path() -> Path:
    return get_data_dir() / "agent.pid"


def get_autostart_dir() -> Path:
    """Directory holding per-user login autostart entries on XDG desktops."""
    return Path(PlatformDirs().user_config_path) / "autostart"
