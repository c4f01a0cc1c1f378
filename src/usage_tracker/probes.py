"""Foreground-window and idle probes for Windows."""

from __future__ import annotations

import ctypes
import sys
from ctypes import wintypes

from .errors import ProbeFailure
from .models import WindowSample

_MAX_TITLE_LENGTH = 500


class WindowsIdleDetector:
    """Reports time since the last keyboard or mouse input using Win32 APIs."""

    class LASTINPUTINFO(ctypes.Structure):
        _fields_ = [("cbSize", wintypes.UINT), ("dwTime", wintypes.DWORD)]

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        self._kernel32.GetTickCount.restype = wintypes.DWORD

    def milliseconds_since_input(self) -> int:
        last_input = self.LASTINPUTINFO()
        last_input.cbSize = ctypes.sizeof(last_input)
        if not self._user32.GetLastInputInfo(ctypes.byref(last_input)):
            raise ProbeFailure(f"GetLastInputInfo failed: {ctypes.WinError()}")
        # Both counters are 32-bit and wrap after ~49.7 days.
        elapsed = (self._kernel32.GetTickCount() - last_input.dwTime) & 0xFFFFFFFF
        return int(elapsed)


class WindowsActiveWindowProbe:
    """Retrieves the foreground window's process id and title."""

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def probe_foreground_window(self) -> WindowSample:
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return WindowSample(process_id=0, title="")

        pid = wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))

        buffer = ctypes.create_unicode_buffer(_MAX_TITLE_LENGTH)
        length = self._user32.GetWindowTextW(hwnd, buffer, _MAX_TITLE_LENGTH)
        return WindowSample(process_id=int(pid.value), title=buffer.value[:length])


def create_default_probes() -> tuple[WindowsActiveWindowProbe, WindowsIdleDetector]:
    """Build the platform probes, failing clearly where none exist."""
    if sys.platform != "win32":
        raise ProbeFailure(
            f"Foreground-window sampling is only supported on Windows (got {sys.platform})."
        )
    return WindowsActiveWindowProbe(), WindowsIdleDetector()
