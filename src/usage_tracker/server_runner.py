"""Helpers to launch the local usage dashboard."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import AgentSettings
from .webapp import create_app


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8766,
    db_path: Optional[Path] = None,
    snapshot_path: Optional[Path] = None,
    settings: Optional[AgentSettings] = None,
    start_agent: bool = True,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Serve the dashboard API, optionally sampling in a background thread."""
    app = create_app(
        db_path=db_path,
        snapshot_path=snapshot_path,
        settings=settings or AgentSettings(),
        start_agent=start_agent,
    )

    if open_browser:
        url = f"http://{host}:{port}/docs"
        threading.Thread(
            target=_launch_browser_after_delay, args=(url,), daemon=True
        ).start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _launch_browser_after_delay(url: str) -> None:
    time.sleep(1.0)
    try:
        webbrowser.open(url)
    except Exception:
        logging.getLogger(__name__).exception("Failed to launch browser for %s", url)
