"""Execute parsed slash commands against the task and installation stores."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from loguru import logger

from oncallbot.commands.parser import (
    ListSchedulesCommand,
    NewCommand,
    ScheduleCommand,
    SetupPagingCommand,
    parse_command,
    parse_user_group,
)
from oncallbot.cron.evaluator import get_timezone, next_occurrence, validate_cron
from oncallbot.errors import (
    InstallationNotFoundError,
    ReconciliationError,
    TransportError,
    ValidationError,
)
from oncallbot.scheduler.reconciler import TriggerReconciler
from oncallbot.tasks.store import InstallationStore, TaskStore
from oncallbot.tasks.types import Task, derive_task_id, team_key, utc_now_iso


@dataclass
class CommandContext:
    """Who issued a command and where, as posted by Slack."""

    team_id: str = ""
    team_domain: str = ""
    enterprise_id: str = ""
    enterprise_name: str = ""
    is_enterprise_install: bool = False
    channel_id: str = ""
    channel_name: str = ""
    user_id: str = ""
    user_name: str = ""
    command: str = ""
    text: str = ""

    @classmethod
    def from_form(cls, params: Mapping[str, str]) -> "CommandContext":
        return cls(
            team_id=params.get("team_id", ""),
            team_domain=params.get("team_domain", ""),
            enterprise_id=params.get("enterprise_id", ""),
            enterprise_name=params.get("enterprise_name", ""),
            is_enterprise_install=params.get("is_enterprise_install", "").lower() == "true",
            channel_id=params.get("channel_id", ""),
            channel_name=params.get("channel_name", ""),
            user_id=params.get("user_id", ""),
            user_name=params.get("user_name", ""),
            command=params.get("command", ""),
            text=params.get("text", ""),
        )

    @property
    def team(self) -> str:
        return team_key(self.team_id, self.enterprise_id)


@dataclass
class CommandResponse:
    status_code: int
    sections: list[str] = field(default_factory=list)
    text: str | None = None  # plain body instead of blocks

    @property
    def body(self) -> str:
        if self.text is not None:
            return self.text
        return json.dumps(
            {
                "blocks": [
                    {"type": "section", "text": {"type": "mrkdwn", "text": s}}
                    for s in self.sections
                ]
            }
        )

    @property
    def headers(self) -> dict[str, str]:
        content_type = "text/plain" if self.text is not None else "application/json"
        return {"Content-Type": content_type, "response_type": "in_channel"}

    def to_api_gateway(self) -> dict[str, Any]:
        return {"statusCode": self.status_code, "headers": self.headers, "body": self.body}


def ok(*sections: str) -> CommandResponse:
    return CommandResponse(200, list(sections))


def plain(status_code: int, text: str) -> CommandResponse:
    return CommandResponse(status_code, text=text)


def describe_task(task: Task) -> str:
    next_time = task.next_occurrence_local or "retired"
    return (
        f"## {task.channel_name}\n"
        f"Update {task.group_handle} on {task.cron} ({task.timezone})\n"
        f"Next schedule: {next_time}"
    )


class CommandHandler:
    def __init__(
        self,
        tasks: TaskStore,
        installations: InstallationStore,
        reconciler: TriggerReconciler,
        default_timezone: str = "UTC",
        clock: Callable[[], float] = time.time,
    ):
        self.tasks = tasks
        self.installations = installations
        self.reconciler = reconciler
        self.default_timezone = default_timezone
        self._clock = clock

    def handle(self, ctx: CommandContext, text: str | None = None) -> CommandResponse:
        raw = ctx.text if text is None else text
        try:
            command = parse_command(raw)
        except ValidationError as e:
            return plain(400, str(e))

        logger.info("Command from {}@{}: {}", ctx.user_name, ctx.team, type(command).__name__)
        if isinstance(command, ScheduleCommand):
            return self.schedule(ctx, command)
        if isinstance(command, ListSchedulesCommand):
            return self.list_schedules(ctx, command)
        if isinstance(command, SetupPagingCommand):
            return self.setup_paging(ctx, command)
        if isinstance(command, NewCommand):
            return ok("Show wizard to add new schedule")
        return plain(400, f"Unsupported command: {raw}")

    def schedule(self, ctx: CommandContext, cmd: ScheduleCommand) -> CommandResponse:
        try:
            group_id, group_handle = parse_user_group(cmd.user_group)
            tz = get_timezone(cmd.timezone or self.default_timezone)
            validate_cron(cmd.cron)
            occurrence = next_occurrence(cmd.cron, tz, int(self._clock()))
            if occurrence is None:
                raise ValidationError(f"The cron '{cmd.cron}' has no future scheduled time from now")
        except ValidationError as e:
            return plain(400, str(e))

        now = utc_now_iso()
        task = Task(
            team=ctx.team,
            task_id=derive_task_id(
                ctx.channel_name, ctx.channel_id, group_handle, group_id, cmd.pagerduty_schedule
            ),
            cron=cmd.cron,
            timezone=tz.key,
            team_id=ctx.team_id,
            team_domain=ctx.team_domain,
            enterprise_id=ctx.enterprise_id,
            enterprise_name=ctx.enterprise_name,
            is_enterprise_install=ctx.is_enterprise_install,
            channel_id=ctx.channel_id,
            channel_name=ctx.channel_name,
            group_id=group_id,
            group_handle=group_handle,
            paging_schedule_id=cmd.pagerduty_schedule,
            paging_token=cmd.pagerduty_api_key,
            created_by_user_id=ctx.user_id,
            created_by_user_name=ctx.user_name,
            created_at=now,
        )
        task.apply_occurrence(occurrence)

        try:
            self.tasks.put(task)
        except TransportError as e:
            logger.error("Failed to save task {}: {}", task.task_id, e)
            return plain(500, f"Can't process slack command due to save to dynamodb failed\nCommand: {ctx.command} {ctx.text}")

        try:
            self.reconciler.reconcile(occurrence)
        except ReconciliationError as e:
            logger.error("Failed to update scheduler for {}: {}", task.task_id, e)
            return plain(500, f"Can't process slack command due to update scheduler failed\nCommand: {ctx.command} {ctx.text}")

        return ok(
            f"Update user group: {group_id}|{group_handle} based on pagerduty schedule: "
            f"{cmd.pagerduty_schedule}, at: {cmd.cron}\n"
            f"Next schedule: {task.next_occurrence_local}"
        )

    def list_schedules(self, ctx: CommandContext, cmd: ListSchedulesCommand) -> CommandResponse:
        try:
            tasks = self.tasks.scan_all() if cmd.all else self.tasks.list_for_team(ctx.team)
        except TransportError as e:
            return plain(500, f"Can't list schedules: {e}")
        if not tasks:
            return ok("No schedules yet.")
        tasks.sort(key=lambda t: (t.channel_name, t.task_id))
        return ok(*(describe_task(t) for t in tasks))

    def setup_paging(self, ctx: CommandContext, cmd: SetupPagingCommand) -> CommandResponse:
        try:
            self.installations.update_paging_token(ctx.team_id, ctx.enterprise_id, cmd.pagerduty_api_key)
        except InstallationNotFoundError as e:
            return plain(404, str(e))
        except TransportError as e:
            return plain(500, f"Can't save the PagerDuty api key: {e}")
        return ok("Setup pagerduty with api key")
