import os

import pytest
from typer.testing import CliRunner

from conftest import DAY
from usage_tracker import cli
from usage_tracker import service as service_module
from usage_tracker.errors import ProbeFailure
from usage_tracker.models import UsageKey
from usage_tracker.service import AgentService

runner = CliRunner()


@pytest.fixture
def agent_service(tmp_path, monkeypatch):
    service = AgentService(
        pid_path=tmp_path / "agent.pid",
        log_path=tmp_path / "agent.log",
        autostart_dir=tmp_path / "autostart",
    )
    monkeypatch.setattr(cli, "_service", lambda: service)
    return service


@pytest.fixture
def fake_agent(monkeypatch, agent_service):
    calls = []

    def fake_run_agent(**kwargs):
        calls.append(kwargs)
        assert agent_service.pid_path.exists()

    monkeypatch.setattr(cli, "run_agent", fake_run_agent)
    monkeypatch.setattr(cli, "install_signal_handlers", lambda stop_event: None)
    return calls


def test_no_arguments_starts_sampling(tmp_path, monkeypatch, fake_agent, agent_service):
    monkeypatch.setattr(cli, "get_db_path", lambda: tmp_path / "default.sqlite3")
    monkeypatch.setattr(cli, "get_snapshot_path", lambda: tmp_path / "default.png")

    result = runner.invoke(cli.app, [])

    assert result.exit_code == 0, result.output
    assert len(fake_agent) == 1
    assert fake_agent[0]["db_path"] == tmp_path / "default.sqlite3"
    assert fake_agent[0]["settings"].sample_interval.total_seconds() == 1.0
    assert not agent_service.pid_path.exists()


def test_run_passes_intervals(tmp_path, fake_agent):
    result = runner.invoke(
        cli.app,
        [
            "run",
            "--db",
            str(tmp_path / "usage.sqlite3"),
            "--snapshot",
            str(tmp_path / "graph.png"),
            "--interval",
            "2",
            "--idle-threshold",
            "45",
        ],
    )

    assert result.exit_code == 0, result.output
    settings = fake_agent[0]["settings"]
    assert settings.sample_interval.total_seconds() == 2.0
    assert settings.idle_threshold.total_seconds() == 45.0
    assert settings.idle_check_ticks == 2
    assert fake_agent[0]["snapshot_path"] == tmp_path / "graph.png"


def test_run_exits_non_zero_when_probes_unavailable(tmp_path, monkeypatch, agent_service):
    def unsupported(**kwargs):
        raise ProbeFailure("only supported on Windows")

    monkeypatch.setattr(cli, "run_agent", unsupported)
    monkeypatch.setattr(cli, "install_signal_handlers", lambda stop_event: None)

    result = runner.invoke(cli.app, ["run", "--db", str(tmp_path / "usage.sqlite3")])

    assert result.exit_code == 1
    assert not agent_service.pid_path.exists()


def test_status_reports_stopped(agent_service):
    result = runner.invoke(cli.app, ["status"])

    assert result.exit_code == 0
    assert "Agent status: stopped" in result.output
    assert "Autostart: not installed" in result.output


def test_install_then_uninstall(agent_service):
    assert runner.invoke(cli.app, ["install"]).exit_code == 0
    assert agent_service.is_installed()

    result = runner.invoke(cli.app, ["uninstall"])
    assert result.exit_code == 0
    assert "Agent uninstalled." in result.output


def test_delete_fails_when_not_installed(agent_service):
    result = runner.invoke(cli.app, ["delete"])

    assert result.exit_code == 1


def test_stop_when_not_running(agent_service):
    result = runner.invoke(cli.app, ["stop"])

    assert result.exit_code == 0
    assert "Agent is not running." in result.output


def test_summary_and_totals(store, db_path):
    store.upsert_accumulate(UsageKey("Report.docx", "Notepad", DAY), 90)

    summary = runner.invoke(cli.app, ["summary", "--date", "2026-10-19", "--db", str(db_path)])
    totals = runner.invoke(cli.app, ["totals", "--db", str(db_path)])

    assert summary.exit_code == 0
    assert "Notepad" in summary.output
    assert totals.exit_code == 0
    assert "00:01:30" in totals.output


def test_summary_rejects_bad_date(db_path):
    result = runner.invoke(cli.app, ["summary", "--date", "yesterday", "--db", str(db_path)])

    assert result.exit_code == 2


def test_snapshot_command_writes_graph(store, db_path, tmp_path):
    store.upsert_accumulate(UsageKey("", "Notepad", DAY), 30)
    target = tmp_path / "graph.png"

    result = runner.invoke(cli.app, ["snapshot", "--db", str(db_path), "--snapshot", str(target)])

    assert result.exit_code == 0, result.output
    assert target.exists()


def test_run_records_its_own_pid_and_ignores_old_stop_request(tmp_path, monkeypatch, agent_service):
    seen = []

    def fake_run_agent(*, stop_event, **kwargs):
        seen.append((agent_service.pid_path.read_text(), stop_event.is_set()))

    monkeypatch.setattr(cli, "run_agent", fake_run_agent)
    monkeypatch.setattr(cli, "install_signal_handlers", lambda stop_event: None)
    agent_service.request_stop()

    result = runner.invoke(cli.app, ["run", "--db", str(tmp_path / "usage.sqlite3")])

    assert result.exit_code == 0, result.output
    assert seen == [(str(os.getpid()), False)]


def test_stop_request_ends_foreground_run(tmp_path, monkeypatch, agent_service):
    stopped = []

    def fake_run_agent(*, stop_event, **kwargs):
        agent_service.request_stop()
        stopped.append(stop_event.wait(5))

    monkeypatch.setattr(cli, "run_agent", fake_run_agent)
    monkeypatch.setattr(cli, "install_signal_handlers", lambda stop_event: None)

    result = runner.invoke(cli.app, ["run", "--db", str(tmp_path / "usage.sqlite3")])

    assert result.exit_code == 0, result.output
    assert stopped == [True]
    assert not agent_service.pid_path.exists()


def test_run_refuses_while_another_agent_runs(tmp_path, monkeypatch, fake_agent, agent_service):
    monkeypatch.setattr(service_module, "_is_agent_process", lambda pid: True)
    agent_service.write_pid_file(4321)

    result = runner.invoke(cli.app, ["run", "--db", str(tmp_path / "usage.sqlite3")])

    assert result.exit_code == 1
    assert "already running" in result.output
    assert fake_agent == []
    assert agent_service.pid_path.read_text() == "4321"
