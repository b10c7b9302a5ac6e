"""Grammar of the Slack slash command.

The command text is cleansed of smart quotes, split shell-style and parsed
by a Typer app whose subcommands only record their arguments.
"""

import re
import shlex
from dataclasses import dataclass
from typing import Union

import click
import typer

from oncallbot.errors import ValidationError

_DOUBLE_QUOTES = re.compile("[“”]")
_SINGLE_QUOTES = re.compile("[‘’]")
_USER_GROUP_RE = re.compile(r"<!subteam\^(\w+)\|@([^>]+)>")

USAGE = (
    "Usage:\n"
    "`schedule --user-group @group --pagerduty-schedule ID --cron \"0 9 ? * MON-FRI *\" "
    "[--timezone Australia/Melbourne] [--pagerduty-api-key KEY]`\n"
    "`list-schedules [--all]`\n"
    "`setup-pagerduty --pagerduty-api-key KEY`\n"
    "`new`"
)


@dataclass
class ScheduleCommand:
    user_group: str
    pagerduty_schedule: str
    cron: str
    timezone: str | None = None
    pagerduty_api_key: str | None = None


@dataclass
class ListSchedulesCommand:
    all: bool = False


@dataclass
class SetupPagingCommand:
    pagerduty_api_key: str


@dataclass
class NewCommand:
    pass


ParsedCommand = Union[ScheduleCommand, ListSchedulesCommand, SetupPagingCommand, NewCommand]


def cleanse(text: str) -> str:
    """Replace the curly quotes Slack clients like to insert."""
    return _SINGLE_QUOTES.sub("'", _DOUBLE_QUOTES.sub('"', text))


def parse_user_group(ref: str) -> tuple[str, str]:
    """Split an escaped mention ``<!subteam^ID|@handle>`` into (id, handle)."""
    match = _USER_GROUP_RE.search(ref)
    if not match:
        raise ValidationError(f"Invalid user group: {ref}")
    return match.group(1), match.group(2)


grammar = typer.Typer(add_completion=False, pretty_exceptions_enable=False)


@grammar.command("schedule")
def _schedule(
    ctx: typer.Context,
    user_group: str = typer.Option(..., "--user-group"),
    pagerduty_schedule: str = typer.Option(..., "--pagerduty-schedule"),
    cron: str = typer.Option(..., "--cron"),
    timezone: str | None = typer.Option(None, "--timezone"),
    pagerduty_api_key: str | None = typer.Option(None, "--pagerduty-api-key"),
):
    ctx.obj.append(
        ScheduleCommand(
            user_group=user_group,
            pagerduty_schedule=pagerduty_schedule,
            cron=cron,
            timezone=timezone,
            pagerduty_api_key=pagerduty_api_key,
        )
    )


@grammar.command("list-schedules")
def _list_schedules(
    ctx: typer.Context,
    all_: bool = typer.Option(False, "--all"),
):
    ctx.obj.append(ListSchedulesCommand(all=all_))


@grammar.command("setup-pagerduty")
@grammar.command("setup-paging")
def _setup_paging(
    ctx: typer.Context,
    pagerduty_api_key: str = typer.Option(..., "--pagerduty-api-key"),
):
    ctx.obj.append(SetupPagingCommand(pagerduty_api_key=pagerduty_api_key))


@grammar.command("new")
def _new(ctx: typer.Context):
    ctx.obj.append(NewCommand())


def split_command(text: str) -> list[str]:
    try:
        return shlex.split(cleanse(text))
    except ValueError as e:
        raise ValidationError(f"Cannot parse command: {e}") from e


def parse_command(text: str) -> ParsedCommand:
    """
    Parse the text after the slash command name.

    A leading ``/command`` token is tolerated. Raises ValidationError with a
    user-facing message on bad input.
    """
    args = split_command(text)
    if args and args[0].startswith("/"):
        args = args[1:]
    if not args or args[0] in ("help", "--help", "-h"):
        raise ValidationError(USAGE)

    parsed: list[ParsedCommand] = []
    command = typer.main.get_command(grammar)
    try:
        command.main(args=args, prog_name="oncall", standalone_mode=False, obj=parsed)
    except click.ClickException as e:
        raise ValidationError(f"{e.format_message()}\n{USAGE}") from e

    if not parsed:
        raise ValidationError(USAGE)
    return parsed[0]
