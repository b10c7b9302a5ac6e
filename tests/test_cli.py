from types import SimpleNamespace

from typer.testing import CliRunner

from conftest import PREFIX, FakeTriggerBackend, InMemoryInstallationStore, InMemoryTaskStore
from oncallbot import __version__
from oncallbot.cli.commands import app
from oncallbot.config.schema import Config
from oncallbot.scheduler.reconciler import TriggerReconciler
from oncallbot.tasks.types import Task

runner = CliRunner()


def _fake_runtime(tasks=(), trigger_names=()):
    backend = FakeTriggerBackend(list(trigger_names))
    return SimpleNamespace(
        config=Config(),
        tasks=InMemoryTaskStore(list(tasks)),
        installations=InMemoryInstallationStore(),
        reconciler=TriggerReconciler(backend, PREFIX),
        backend=backend,
    )


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_next_previews_occurrences() -> None:
    result = runner.invoke(
        app,
        [
            "next",
            "0 9 ? * MON-FRI *",
            "--tz",
            "Australia/Melbourne",
            "--from",
            "2023-01-06T09:00:01+11:00",
            "-n",
            "2",
        ],
    )

    assert result.exit_code == 0
    assert "1673215200" in result.stdout
    assert "0 9 9 1 * 2023" in result.stdout
    assert "0 9 10 1 * 2023" in result.stdout


def test_next_rejects_invalid_timezone() -> None:
    result = runner.invoke(app, ["next", "0 9 * * ?", "--tz", "America/Vancovuer"])

    assert result.exit_code == 1
    assert "Error: unknown timezone 'America/Vancovuer'" in result.stdout


def test_next_reports_exhausted_schedule() -> None:
    result = runner.invoke(app, ["next", "0 9 * * ? 2020", "--from", "2023-01-01T00:00:00+00:00"])

    assert result.exit_code == 0
    assert "No future occurrence." in result.stdout


def test_tasks_list_and_remove(monkeypatch) -> None:
    task = Task(team="T1:", task_id="t-1", cron="0 9 * * ?", timezone="UTC", channel_name="ops", group_handle="sup")
    runtime = _fake_runtime([task])
    monkeypatch.setattr("oncallbot.cli.commands._load_runtime", lambda: runtime)

    listed = runner.invoke(app, ["tasks", "list"])
    removed = runner.invoke(app, ["tasks", "remove", "T1:", "t-1"])
    empty = runner.invoke(app, ["tasks", "list"])

    assert listed.exit_code == 0
    assert "ops" in listed.stdout
    assert removed.exit_code == 0
    assert "Removed task t-1" in removed.stdout
    assert "No rotation tasks." in empty.stdout


def test_triggers_reconcile_creates_trigger(monkeypatch) -> None:
    task = Task(team="T1:", task_id="t-1", cron="0 9 * * ?", timezone="UTC", next_occurrence_utc=1)
    runtime = _fake_runtime([task])
    monkeypatch.setattr("oncallbot.cli.commands._load_runtime", lambda: runtime)

    result = runner.invoke(app, ["triggers", "reconcile"])

    assert result.exit_code == 0
    assert "Created" in result.stdout
    assert len(runtime.backend.created) == 1


def test_triggers_list_empty(monkeypatch) -> None:
    monkeypatch.setattr("oncallbot.cli.commands._load_runtime", lambda: _fake_runtime())

    result = runner.invoke(app, ["triggers", "list"])

    assert result.exit_code == 0
    assert "No wake-up triggers." in result.stdout


def test_command_runs_slash_command(monkeypatch) -> None:
    monkeypatch.setattr("oncallbot.cli.commands._load_runtime", lambda: _fake_runtime())

    ok = runner.invoke(app, ["command", "new", "--team-id", "T1"])
    bad = runner.invoke(app, ["command", "frobnicate", "--team-id", "T1"])

    assert ok.exit_code == 0
    assert "Show wizard to add new schedule" in ok.stdout
    assert bad.exit_code == 1
