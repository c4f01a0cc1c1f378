"""Install, start, stop and inspect the background usage agent."""

from __future__ import annotations

import enum
import logging
import os
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

import psutil

from .errors import ServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "UsageTracker"
DISPLAY_NAME = "App Usage Tracker"


class AgentState(str, enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    STALE = "stale"


@dataclass(slots=True)
class AgentStatus:
    state: AgentState
    pid: Optional[int] = None


class AgentService:
    """Manage a detached ``usage_tracker run`` process through a pid file."""

    def __init__(
        self,
        pid_path: Path,
        log_path: Path,
        *,
        autostart_dir: Optional[Path] = None,
        python_executable: Optional[str] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        startup_timeout: float = 10.0,
    ) -> None:
        self.pid_path = Path(pid_path)
        self.log_path = Path(log_path)
        self.stop_path = self.pid_path.with_suffix(".stop")
        self.autostart_dir = Path(autostart_dir) if autostart_dir else _default_autostart_dir()
        self.python_executable = python_executable or sys.executable
        self.startup_timeout = startup_timeout
        self._popen = popen

    def status(self) -> AgentStatus:
        pid = self._read_pid()
        if pid is None:
            return AgentStatus(AgentState.STOPPED)
        if _is_agent_process(pid):
            return AgentStatus(AgentState.RUNNING, pid)
        return AgentStatus(AgentState.STALE, pid)

    def start(self, run_args: Sequence[str] = ()) -> int:
        """Launch the agent and return the pid it records in the pid file.

        The agent process writes its own pid file; on Windows ``sys.executable``
        may be a venv launcher whose pid differs from the sampling interpreter.
        """
        current = self.status()
        if current.state is AgentState.RUNNING:
            raise ServiceError(f"Agent is already running (pid {current.pid}).")
        self.remove_pid_file()
        self.clear_stop_request()

        command = [self.python_executable, "-m", "usage_tracker", "run", *run_args]
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        kwargs: dict[str, object] = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = (
                subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.CREATE_NO_WINDOW  # type: ignore[attr-defined]
            )
        else:
            kwargs["start_new_session"] = True

        with open(self.log_path, "ab") as log_file:
            try:
                process = self._popen(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    close_fds=True,
                    **kwargs,
                )
            except OSError as exc:
                raise ServiceError(f"Failed to launch agent: {exc}") from exc

        pid = self._wait_for_pid_file(process)
        logger.info("Started agent (pid %d); logging to %s", pid, self.log_path)
        return pid

    def stop(self, timeout: float = 15.0) -> bool:
        """Ask the agent to shut down; return ``False`` when it was not running."""
        current = self.status()
        if current.state is not AgentState.RUNNING or current.pid is None:
            self.remove_pid_file()
            self.clear_stop_request()
            return False

        # Windows has no console signal that reaches a windowless agent, so
        # the agent also watches for this file.
        self.request_stop()
        try:
            process = psutil.Process(current.pid)
            if sys.platform != "win32":
                process.terminate()
            try:
                # The agent renders its final snapshot before exiting.
                process.wait(timeout=timeout)
            except psutil.TimeoutExpired:
                logger.warning("Agent did not exit within %.0fs; killing it.", timeout)
                process.kill()
                process.wait(timeout=5)
        except psutil.NoSuchProcess:
            pass
        except psutil.Error as exc:
            raise ServiceError(f"Failed to stop agent (pid {current.pid}): {exc}") from exc
        finally:
            self.clear_stop_request()

        self.remove_pid_file()
        logger.info("Stopped agent (pid %d).", current.pid)
        return True

    def install(self, run_args: Sequence[str] = ()) -> Path:
        """Register the agent to start at login."""
        entry = self.autostart_entry()
        entry.parent.mkdir(parents=True, exist_ok=True)
        command = [self.python_executable, "-m", "usage_tracker", "start", *run_args]
        if sys.platform == "win32":
            content = "@echo off\r\n" + subprocess.list2cmdline(command) + "\r\n"
        else:
            content = "\n".join(
                [
                    "[Desktop Entry]",
                    "Type=Application",
                    f"Name={DISPLAY_NAME}",
                    f"Exec={subprocess.list2cmdline(command)}",
                    "X-GNOME-Autostart-enabled=true",
                    "",
                ]
            )
        try:
            entry.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ServiceError(f"Failed to write autostart entry {entry}: {exc}") from exc
        logger.info("Installed autostart entry %s", entry)
        return entry

    def uninstall(self) -> bool:
        entry = self.autostart_entry()
        if not entry.exists():
            return False
        try:
            entry.unlink()
        except OSError as exc:
            raise ServiceError(f"Failed to remove autostart entry {entry}: {exc}") from exc
        logger.info("Removed autostart entry %s", entry)
        return True

    def is_installed(self) -> bool:
        return self.autostart_entry().exists()

    def delete(self) -> None:
        """Stop the agent if it is running and remove its autostart entry."""
        self.stop()
        if not self.uninstall():
            raise ServiceError("Agent is not installed.")

    def autostart_entry(self) -> Path:
        if sys.platform == "win32":
            return self.autostart_dir / f"{SERVICE_NAME}.cmd"
        return self.autostart_dir / "usage-tracker.desktop"

    def write_pid_file(self, pid: Optional[int] = None) -> None:
        self.pid_path.parent.mkdir(parents=True, exist_ok=True)
        self.pid_path.write_text(str(pid if pid is not None else os.getpid()), encoding="ascii")

    def remove_pid_file(self, pid: Optional[int] = None) -> None:
        """Delete the pid file, or only when it still names ``pid`` if given."""
        if pid is not None and self._read_pid() != pid:
            return
        try:
            self.pid_path.unlink()
        except FileNotFoundError:
            pass

    def request_stop(self) -> None:
        self.stop_path.parent.mkdir(parents=True, exist_ok=True)
        self.stop_path.touch()

    def stop_requested(self) -> bool:
        return self.stop_path.exists()

    def clear_stop_request(self) -> None:
        try:
            self.stop_path.unlink()
        except FileNotFoundError:
            pass

    def watch_for_stop_request(
        self, stop_event: threading.Event, interval: float = 0.5
    ) -> threading.Thread:
        """Set ``stop_event`` once :meth:`request_stop` has been called."""

        def _watch() -> None:
            while not stop_event.wait(interval):
                if self.stop_requested():
                    logger.info("Stop requested through %s.", self.stop_path)
                    stop_event.set()

        thread = threading.Thread(target=_watch, name="usage-stop-watch", daemon=True)
        thread.start()
        return thread

    def _wait_for_pid_file(self, process: subprocess.Popen) -> int:
        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            pid = self._read_pid()
            if pid is not None:
                return pid
            code = process.poll()
            if code is not None:
                raise ServiceError(
                    f"Agent exited during startup (code {code}); see {self.log_path}."
                )
            time.sleep(0.1)
        raise ServiceError(
            f"Agent did not report its pid within {self.startup_timeout:.0f}s; see {self.log_path}."
        )

    def _read_pid(self) -> Optional[int]:
        try:
            raw = self.pid_path.read_text(encoding="ascii").strip()
        except FileNotFoundError:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring malformed pid file %s", self.pid_path)
            return None


def _is_agent_process(pid: int) -> bool:
    try:
        process = psutil.Process(pid)
        if not process.is_running() or process.status() == psutil.STATUS_ZOMBIE:
            return False
        cmdline = process.cmdline()
    except (psutil.NoSuchProcess, psutil.ZombieProcess):
        return False
    except psutil.AccessDenied:
        # Cannot inspect it, but something owns the pid.
        return True
    markers = ("usage_tracker", "usage-tracker", "start_agent")
    return any(marker in part for part in cmdline for marker in markers)


def _default_autostart_dir() -> Path:
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        return Path(appdata) / "Microsoft" / "Windows" / "Start Menu" / "Programs" / "Startup"
    from .paths import get_autostart_dir

    return get_autostart_dir()
