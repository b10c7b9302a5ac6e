"""EventBridge Scheduler adapter for one-shot wake-up triggers."""

from __future__ import annotations

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from oncallbot.cron.types import ExternalTrigger
from oncallbot.errors import ReconciliationError


def parse_trigger_timestamp(name: str, prefix: str) -> int | None:
    """Recover the epoch seconds encoded in a trigger name, or None."""
    if not name.startswith(prefix):
        return None
    suffix = name[len(prefix):]
    if not suffix.isdigit():
        return None
    return int(suffix)


class EventBridgeScheduler:
    """Lists, creates and deletes schedules under one name prefix."""

    def __init__(
        self,
        client: Any,
        name_prefix: str,
        target_arn: str,
        role_arn: str,
        group_name: str | None = None,
    ):
        self._client = client
        self.name_prefix = name_prefix
        self.target_arn = target_arn
        self.role_arn = role_arn
        self.group_name = group_name

    def _group(self) -> dict[str, str]:
        return {"GroupName": self.group_name} if self.group_name else {}

    def list_triggers(self) -> list[ExternalTrigger]:
        try:
            paginator = self._client.get_paginator("list_schedules")
            names = [
                summary["Name"]
                for page in paginator.paginate(NamePrefix=self.name_prefix, **self._group())
                for summary in page.get("Schedules", [])
            ]
        except (ClientError, BotoCoreError) as e:
            raise ReconciliationError(f"Failed to list schedules: {e}") from e

        logger.debug("Found {} schedules with prefix {}", len(names), self.name_prefix)
        return [self.get_trigger(name) for name in names]

    def get_trigger(self, name: str) -> ExternalTrigger:
        try:
            detail = self._client.get_schedule(Name=name, **self._group())
        except (ClientError, BotoCoreError) as e:
            raise ReconciliationError(f"Failed to get schedule {name}: {e}") from e

        return ExternalTrigger(
            name=detail.get("Name", name),
            next_timestamp_utc=parse_trigger_timestamp(detail.get("Name", name), self.name_prefix),
            expression=detail.get("ScheduleExpression"),
            timezone=detail.get("ScheduleExpressionTimezone"),
            target=(detail.get("Target") or {}).get("Arn"),
            description=detail.get("Description"),
        )

    def create_one_shot_trigger(
        self,
        name: str,
        expression: str,
        timezone: str,
        description: str = "",
    ) -> None:
        logger.info("Creating schedule {} at {} ({})", name, expression, timezone)
        try:
            self._client.create_schedule(
                Name=name,
                Description=description,
                ScheduleExpression=expression,
                ScheduleExpressionTimezone=timezone,
                FlexibleTimeWindow={"Mode": "OFF"},
                Target={"Arn": self.target_arn, "RoleArn": self.role_arn},
                **self._group(),
            )
        except (ClientError, BotoCoreError) as e:
            raise ReconciliationError(f"Failed to create schedule {name}: {e}") from e

    def delete_trigger(self, name: str) -> None:
        logger.info("Deleting schedule {}", name)
        try:
            self._client.delete_schedule(Name=name, **self._group())
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
                logger.debug("Schedule {} already gone", name)
                return
            raise ReconciliationError(f"Failed to delete schedule {name}: {e}") from e
        except BotoCoreError as e:
            raise ReconciliationError(f"Failed to delete schedule {name}: {e}") from e
