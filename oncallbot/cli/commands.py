"""CLI commands for oncallbot."""

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from oncallbot import __logo__, __version__

app = typer.Typer(
    name="oncallbot",
    help=f"{__logo__} oncallbot - Keep Slack user groups in step with PagerDuty",
    no_args_is_help=True,
)

console = Console()

_state: dict[str, Path | None] = {"config_path": None}


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} oncallbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", callback=version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log output"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """oncallbot - Keep Slack user groups in step with PagerDuty."""
    if verbose:
        logger.enable("oncallbot")
    else:
        logger.disable("oncallbot")
    _state["config_path"] = config


def _load_config():
    from oncallbot.config.loader import load_config

    return load_config(_state["config_path"])


def _load_runtime():
    from oncallbot.runtime import Runtime

    return Runtime.from_config(_load_config())


def _format_ts(ts: int, tz_name: str | None = None) -> str:
    from zoneinfo import ZoneInfo

    if ts <= 0:
        return "retired"
    tz = ZoneInfo(tz_name) if tz_name else timezone.utc
    return datetime.fromtimestamp(ts, tz).strftime("%Y-%m-%d %H:%M:%S %Z")


# ============================================================================
# Rotation
# ============================================================================


@app.command()
def run():
    """Run one rotation pass: sync due tasks and re-arm the trigger."""
    from oncallbot.errors import OncallError
    from oncallbot.runtime import run_once

    try:
        report = asyncio.run(run_once(_load_config()))
    except OncallError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    table = Table(title="Rotation pass")
    table.add_column("Processed")
    table.add_column("Succeeded", style="green")
    table.add_column("Failed", style="red")
    table.add_column("Changed")
    table.add_column("Next wake-up", style="cyan")
    table.add_row(
        str(report.processed),
        str(report.succeeded),
        str(report.failed),
        str(report.changed),
        _format_ts(report.next_wakeup) if report.next_wakeup else "none",
    )
    console.print(table)
    if report.failed:
        raise typer.Exit(1)


@app.command("next")
def next_(
    cron_expr: str = typer.Argument(..., help="Cron expression (e.g. '0 9 ? * MON-FRI *')"),
    tz: str = typer.Option("UTC", "--tz", help="IANA timezone (e.g. 'Australia/Melbourne')"),
    from_: str | None = typer.Option(None, "--from", help="Start from this time (ISO format)"),
    count: int = typer.Option(1, "--count", "-n", help="How many occurrences to show"),
):
    """Preview the next occurrences of a cron expression."""
    from oncallbot.cron.evaluator import next_occurrence
    from oncallbot.errors import ValidationError

    try:
        if from_:
            start = datetime.fromisoformat(from_)
            if start.tzinfo is None:
                raise ValidationError("--from must include a UTC offset")
        else:
            start = datetime.now(timezone.utc)

        table = Table(title=f"Next occurrences of '{cron_expr}' ({tz})")
        table.add_column("Local time", style="cyan")
        table.add_column("UTC timestamp")
        table.add_column("Single-shot")

        for _ in range(max(1, count)):
            occurrence = next_occurrence(cron_expr, tz, start)
            if occurrence is None:
                break
            table.add_row(
                occurrence.next_datetime.isoformat(),
                str(occurrence.next_timestamp_utc),
                occurrence.single_shot_expression,
            )
            start = occurrence.next_datetime
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    if not table.row_count:
        console.print("No future occurrence.")
        return
    console.print(table)


# ============================================================================
# Tasks
# ============================================================================

tasks_app = typer.Typer(help="Manage rotation tasks")
app.add_typer(tasks_app, name="tasks")


@tasks_app.command("list")
def tasks_list(
    team: str | None = typer.Option(None, "--team", help="Only tasks of TEAM_ID:ENTERPRISE_ID"),
):
    """List rotation tasks."""
    runtime = _load_runtime()
    tasks = runtime.tasks.list_for_team(team) if team else runtime.tasks.scan_all()

    if not tasks:
        console.print("No rotation tasks.")
        return

    table = Table(title="Rotation tasks")
    table.add_column("Team", style="cyan")
    table.add_column("Channel")
    table.add_column("Group")
    table.add_column("Schedule")
    table.add_column("Cron")
    table.add_column("Next update")
    for task in sorted(tasks, key=lambda t: (t.team, t.task_id)):
        table.add_row(
            task.team,
            task.channel_name,
            f"@{task.group_handle}",
            task.paging_schedule_id,
            f"{task.cron} ({task.timezone})",
            _format_ts(task.next_occurrence_utc, task.timezone),
        )
    console.print(table)


@tasks_app.command("remove")
def tasks_remove(
    team: str = typer.Argument(..., help="TEAM_ID:ENTERPRISE_ID"),
    task_id: str = typer.Argument(..., help="Task ID to remove"),
):
    """Remove a rotation task."""
    from oncallbot.errors import TransportError

    runtime = _load_runtime()
    try:
        runtime.tasks.delete(team, task_id)
    except TransportError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e
    console.print(f"[green]✓[/green] Removed task {task_id}")


# ============================================================================
# Triggers
# ============================================================================

triggers_app = typer.Typer(help="Inspect the one-shot wake-up triggers")
app.add_typer(triggers_app, name="triggers")


@triggers_app.command("list")
def triggers_list():
    """List wake-up triggers owned by this deployment."""
    runtime = _load_runtime()
    triggers = runtime.reconciler.list_owned()

    if not triggers:
        console.print("No wake-up triggers.")
        return

    now = int(time.time())
    table = Table(title="Wake-up triggers")
    table.add_column("Name", style="cyan")
    table.add_column("Expression")
    table.add_column("Timezone")
    table.add_column("Fires at")
    for trigger in triggers:
        fires = _format_ts(trigger.next_timestamp_utc)
        if trigger.next_timestamp_utc <= now:
            fires = f"[dim]{fires} (past)[/dim]"
        table.add_row(trigger.name, trigger.expression or "", trigger.timezone or "", fires)
    console.print(table)


@triggers_app.command("reconcile")
def triggers_reconcile():
    """Re-arm the wake-up trigger from the stored tasks without syncing."""
    from oncallbot.errors import ReconciliationError
    from oncallbot.rotation.orchestrator import earliest_occurrence

    runtime = _load_runtime()
    occurrence = earliest_occurrence(runtime.tasks.scan_all(), int(time.time()))
    if occurrence is None:
        console.print("No task has a future occurrence; nothing to schedule.")
        return

    try:
        result = runtime.reconciler.reconcile(occurrence)
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    if result.created:
        console.print(f"[green]✓[/green] Created {result.created}")
    for name in result.deleted:
        console.print(f"  [dim]Deleted {name}[/dim]")
    console.print(f"Next wake-up: {_format_ts(result.effective_next)}")


# ============================================================================
# Slash command
# ============================================================================


@app.command()
def command(
    text: str = typer.Argument(..., help="Command text, e.g. 'list-schedules --all'"),
    team_id: str = typer.Option(..., "--team-id", help="Slack team ID"),
    enterprise_id: str = typer.Option("", "--enterprise-id"),
    channel_id: str = typer.Option("", "--channel-id"),
    channel_name: str = typer.Option("", "--channel-name"),
    user_name: str = typer.Option("cli", "--user-name"),
):
    """Run a slash command locally as if it came from Slack."""
    from oncallbot.commands.handler import CommandContext, CommandHandler

    runtime = _load_runtime()
    handler = CommandHandler(
        runtime.tasks,
        runtime.installations,
        runtime.reconciler,
        default_timezone=runtime.config.rotation.default_timezone,
    )
    ctx = CommandContext(
        team_id=team_id,
        enterprise_id=enterprise_id,
        channel_id=channel_id,
        channel_name=channel_name,
        user_name=user_name,
        command="/oncall",
        text=text,
    )
    response = handler.handle(ctx)

    if response.text is not None:
        style = "green" if response.status_code < 400 else "red"
        console.print(response.text, style=style, markup=False)
    else:
        for section in response.sections:
            console.print(section)
            console.print()
    if response.status_code >= 400:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
