"""FastAPI application exposing a local, read-only view of recorded usage."""

from __future__ import annotations

import logging
import os
import threading
from datetime import date
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict

from .agent import run_agent
from .config import AgentSettings
from .errors import PersistenceFailure, UsageTrackerError
from .paths import get_db_path, get_log_path, get_pid_path, get_snapshot_path
from .service import AgentService, AgentState
from .store import UsageStore

logger = logging.getLogger(__name__)


class AgentRunner:
    """Manage the sampling loop in a background thread.

    The thread is not started while another agent process owns the pid file,
    so one database never has two writers.
    """

    def __init__(
        self,
        db_path: Path,
        snapshot_path: Path,
        settings: AgentSettings,
        service: AgentService,
        agent: Callable[..., None] = run_agent,
    ) -> None:
        self._db_path = Path(db_path)
        self._snapshot_path = Path(snapshot_path)
        self._settings = settings
        self._service = service
        self._agent = agent
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> bool:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return True
            current = self._service.status()
            if current.state is AgentState.RUNNING and current.pid != os.getpid():
                logger.warning(
                    "Agent already running (pid %s); serving without sampling.", current.pid
                )
                return False
            stop_event = threading.Event()
            self._service.write_pid_file()
            thread = threading.Thread(
                target=self._run_agent,
                args=(stop_event,),
                name="usage-agent",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Agent background thread started.")
            return True

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Agent background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def _run_agent(self, stop_event: threading.Event) -> None:
        try:
            self._agent(
                db_path=self._db_path,
                snapshot_path=self._snapshot_path,
                settings=self._settings,
                stop_event=stop_event,
            )
        except UsageTrackerError:
            logger.exception("Usage agent terminated.")
        finally:
            self._service.remove_pid_file(os.getpid())


class ApplicationTotal(BaseModel):
    application: str
    seconds: int

    model_config = ConfigDict(frozen=True)


class TaskUsage(BaseModel):
    task: str
    application: str
    seconds: int

    model_config = ConfigDict(frozen=True)


class DailyUsage(BaseModel):
    usage_date: date
    total_seconds: int
    applications: list[ApplicationTotal]
    tasks: list[TaskUsage]


class AgentStatusPayload(BaseModel):
    agent_running: bool
    database_path: str
    snapshot_path: str
    sample_seconds: float
    snapshot_seconds: float
    idle_seconds: float


def create_app(
    *,
    db_path: Optional[Path] = None,
    snapshot_path: Optional[Path] = None,
    settings: Optional[AgentSettings] = None,
    start_agent: bool = True,
    service: Optional[AgentService] = None,
    agent: Callable[..., None] = run_agent,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_snapshot_path = Path(snapshot_path or get_snapshot_path())
    resolved_settings = settings or AgentSettings()
    resolved_service = service or AgentService(pid_path=get_pid_path(), log_path=get_log_path())
    runner = AgentRunner(
        resolved_db_path,
        resolved_snapshot_path,
        resolved_settings,
        resolved_service,
        agent=agent,
    )

    app = FastAPI(title="Usage Tracker", version="0.3.0")
    app.state.db_path = resolved_db_path
    app.state.snapshot_path = resolved_snapshot_path
    app.state.agent_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        if start_agent:
            runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status", response_model=AgentStatusPayload)
    def status(request: Request) -> AgentStatusPayload:
        return AgentStatusPayload(
            agent_running=request.app.state.agent_runner.is_running(),
            database_path=str(request.app.state.db_path),
            snapshot_path=str(request.app.state.snapshot_path),
            sample_seconds=resolved_settings.sample_interval.total_seconds(),
            snapshot_seconds=resolved_settings.snapshot_interval.total_seconds(),
            idle_seconds=resolved_settings.idle_threshold.total_seconds(),
        )

    @app.get("/api/totals", response_model=list[ApplicationTotal])
    def totals(request: Request) -> list[ApplicationTotal]:
        try:
            with UsageStore(request.app.state.db_path) as store:
                per_application = store.totals_by_application()
        except PersistenceFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return [
            ApplicationTotal(application=name, seconds=seconds)
            for name, seconds in per_application.items()
        ]

    @app.get("/api/usage", response_model=DailyUsage)
    def usage(
        request: Request,
        day: Optional[str] = Query(
            default=None,
            alias="date",
            description="Target date in YYYY-MM-DD format. Defaults to today.",
        ),
    ) -> DailyUsage:
        target_day = _parse_date(day)
        try:
            with UsageStore(request.app.state.db_path) as store:
                records = store.usage_for_day(target_day)
        except PersistenceFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

        per_application: dict[str, int] = {}
        tasks: list[TaskUsage] = []
        for record in records:
            seconds = record.duration_seconds
            per_application[record.application] = per_application.get(record.application, 0) + seconds
            tasks.append(
                TaskUsage(task=record.task, application=record.application, seconds=seconds)
            )

        applications = [
            ApplicationTotal(application=name, seconds=seconds)
            for name, seconds in sorted(
                per_application.items(), key=lambda item: item[1], reverse=True
            )
        ]
        return DailyUsage(
            usage_date=target_day,
            total_seconds=sum(per_application.values()),
            applications=applications,
            tasks=tasks,
        )

    @app.get("/snapshot")
    def snapshot(request: Request) -> FileResponse:
        path = Path(request.app.state.snapshot_path)
        if not path.exists():
            raise HTTPException(status_code=404, detail="No snapshot rendered yet")
        return FileResponse(path, media_type="image/png")

    return app


def _parse_date(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
