"""Command-line interface for the usage tracker."""

from __future__ import annotations

import logging
import os
import threading
from datetime import date
from pathlib import Path
from typing import Optional

import typer

from .agent import install_signal_handlers, run_agent
from .config import AgentSettings
from .errors import PersistenceFailure, ProbeFailure, RenderFailure, ServiceError
from .paths import get_db_path, get_log_path, get_pid_path, get_snapshot_path
from .service import AgentService, AgentState

app = typer.Typer(help="Local agent that records time spent in foreground applications.")
logger = logging.getLogger(__name__)

DB_OPTION = typer.Option(
    None, "--db", path_type=Path, help="Location of the usage SQLite database."
)
SNAPSHOT_OPTION = typer.Option(
    None, "--snapshot", path_type=Path, help="PNG file overwritten with the usage graph."
)
INTERVAL_OPTION = typer.Option(1.0, "--interval", min=0.1, help="Sampling interval in seconds.")
SNAPSHOT_INTERVAL_OPTION = typer.Option(
    60.0, "--snapshot-interval", min=1.0, help="Seconds between usage graph renders."
)
IDLE_OPTION = typer.Option(
    30.0, "--idle-threshold", min=1.0, help="Seconds without input before time stops counting."
)
IDLE_CHECK_OPTION = typer.Option(
    None, "--idle-check-ticks", min=1, help="Sample ticks between idle checks (default: ~5s)."
)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
) -> None:
    """Start sampling immediately when no command is given."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if ctx.invoked_subcommand is None:
        _run_foreground(get_db_path(), get_snapshot_path(), AgentSettings())


@app.command()
def run(
    db_path: Optional[Path] = DB_OPTION,
    snapshot_path: Optional[Path] = SNAPSHOT_OPTION,
    sample_seconds: float = INTERVAL_OPTION,
    snapshot_seconds: float = SNAPSHOT_INTERVAL_OPTION,
    idle_seconds: float = IDLE_OPTION,
    idle_check_ticks: Optional[int] = IDLE_CHECK_OPTION,
) -> None:
    """Sample in the foreground until interrupted."""
    settings = AgentSettings.from_intervals(
        sample_seconds=sample_seconds,
        snapshot_seconds=snapshot_seconds,
        idle_seconds=idle_seconds,
        idle_check_ticks=idle_check_ticks,
    )
    _run_foreground(db_path or get_db_path(), snapshot_path or get_snapshot_path(), settings)


@app.command()
def start(
    db_path: Optional[Path] = DB_OPTION,
    snapshot_path: Optional[Path] = SNAPSHOT_OPTION,
    sample_seconds: float = INTERVAL_OPTION,
    snapshot_seconds: float = SNAPSHOT_INTERVAL_OPTION,
    idle_seconds: float = IDLE_OPTION,
) -> None:
    """Launch the agent as a detached background process."""
    args = _run_args(db_path, snapshot_path, sample_seconds, snapshot_seconds, idle_seconds)
    try:
        pid = _service().start(args)
    except ServiceError as exc:
        _fail(str(exc))
    typer.echo(f"Agent started (pid {pid}).")


@app.command()
def stop(
    timeout: float = typer.Option(15.0, "--timeout", min=1.0, help="Seconds to wait for exit."),
) -> None:
    """Stop the background agent after it renders its final graph."""
    try:
        stopped = _service().stop(timeout=timeout)
    except ServiceError as exc:
        _fail(str(exc))
    typer.echo("Agent stopped." if stopped else "Agent is not running.")


@app.command()
def status() -> None:
    """Report whether the background agent is running and installed."""
    service = _service()
    current = service.status()
    if current.state is AgentState.RUNNING:
        typer.echo(f"Agent status: running (pid {current.pid})")
    elif current.state is AgentState.STALE:
        typer.echo(f"Agent status: stopped (stale pid file for pid {current.pid})")
    else:
        typer.echo("Agent status: stopped")
    typer.echo(f"Autostart: {'installed' if service.is_installed() else 'not installed'}")


@app.command()
def install(
    db_path: Optional[Path] = DB_OPTION,
    snapshot_path: Optional[Path] = SNAPSHOT_OPTION,
) -> None:
    """Start the agent automatically at login."""
    args: list[str] = []
    if db_path:
        args += ["--db", str(db_path)]
    if snapshot_path:
        args += ["--snapshot", str(snapshot_path)]
    try:
        entry = _service().install(args)
    except ServiceError as exc:
        _fail(str(exc))
    typer.echo(f"Agent installed ({entry}).")


@app.command()
def uninstall() -> None:
    """Remove the login autostart entry."""
    try:
        removed = _service().uninstall()
    except ServiceError as exc:
        _fail(str(exc))
    typer.echo("Agent uninstalled." if removed else "Agent is not installed.")


@app.command()
def delete() -> None:
    """Stop the agent and remove its autostart entry."""
    try:
        _service().delete()
    except ServiceError as exc:
        _fail(str(exc))
    typer.echo("Agent deleted.")


@app.command()
def summary(
    day: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Print per-application and per-task totals for a day."""
    from .reporting import SummaryPrinter
    from .store import UsageStore

    try:
        target = date.fromisoformat(day) if day else date.today()
    except ValueError:
        raise typer.BadParameter("expected YYYY-MM-DD", param_hint="--date")
    try:
        with UsageStore(db_path or get_db_path()) as store:
            SummaryPrinter(store).print_daily_summary(target)
    except PersistenceFailure as exc:
        _fail(str(exc))


@app.command()
def totals(db_path: Optional[Path] = DB_OPTION) -> None:
    """Print all-time totals per application."""
    from .reporting import SummaryPrinter
    from .store import UsageStore

    try:
        with UsageStore(db_path or get_db_path()) as store:
            SummaryPrinter(store).print_totals()
    except PersistenceFailure as exc:
        _fail(str(exc))


@app.command()
def snapshot(
    db_path: Optional[Path] = DB_OPTION,
    snapshot_path: Optional[Path] = SNAPSHOT_OPTION,
) -> None:
    """Render the usage graph once from the stored totals."""
    from .snapshot import BarChartRenderer
    from .store import UsageStore

    try:
        with UsageStore(db_path or get_db_path()) as store:
            written = BarChartRenderer(snapshot_path or get_snapshot_path()).render(
                store.totals_by_application()
            )
    except (PersistenceFailure, RenderFailure) as exc:
        _fail(str(exc))
    typer.echo(f"Usage graph written to {written}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(8766, "--port", min=1, max=65535, help="TCP port for the dashboard."),
    db_path: Optional[Path] = DB_OPTION,
    snapshot_path: Optional[Path] = SNAPSHOT_OPTION,
    sample_seconds: float = INTERVAL_OPTION,
    snapshot_seconds: float = SNAPSHOT_INTERVAL_OPTION,
    idle_seconds: float = IDLE_OPTION,
    with_agent: bool = typer.Option(
        True, "--agent/--no-agent", help="Sample in a background thread while serving."
    ),
    open_browser: bool = typer.Option(
        False, "--open-browser/--no-open-browser", help="Open the API docs in a browser."
    ),
) -> None:
    """Serve a read-only JSON view of recorded usage."""
    from .server_runner import run_dashboard

    settings = AgentSettings.from_intervals(
        sample_seconds=sample_seconds,
        snapshot_seconds=snapshot_seconds,
        idle_seconds=idle_seconds,
    )
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        snapshot_path=snapshot_path or get_snapshot_path(),
        settings=settings,
        start_agent=with_agent,
        open_browser=open_browser,
    )


def _run_foreground(db_path: Path, snapshot_path: Path, settings: AgentSettings) -> None:
    service = _service()
    current = service.status()
    if current.state is AgentState.RUNNING and current.pid != os.getpid():
        _fail(f"Agent is already running (pid {current.pid}).")

    stop_event = threading.Event()
    install_signal_handlers(stop_event)
    service.clear_stop_request()
    service.write_pid_file()
    service.watch_for_stop_request(stop_event)
    try:
        run_agent(
            db_path=db_path,
            snapshot_path=snapshot_path,
            settings=settings,
            stop_event=stop_event,
        )
    except (ProbeFailure, PersistenceFailure) as exc:
        logger.error("Agent terminated: %s", exc)
        raise typer.Exit(code=1)
    finally:
        stop_event.set()
        service.remove_pid_file(os.getpid())


def _run_args(
    db_path: Optional[Path],
    snapshot_path: Optional[Path],
    sample_seconds: float,
    snapshot_seconds: float,
    idle_seconds: float,
) -> list[str]:
    args = [
        "--interval",
        str(sample_seconds),
        "--snapshot-interval",
        str(snapshot_seconds),
        "--idle-threshold",
        str(idle_seconds),
    ]
    if db_path:
        args += ["--db", str(Path(db_path).resolve())]
    if snapshot_path:
        args += ["--snapshot", str(Path(snapshot_path).resolve())]
    return args


def _service() -> AgentService:
    return AgentService(pid_path=get_pid_path(), log_path=get_log_path())


def _fail(message: str) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)
