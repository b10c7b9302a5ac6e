"""Rotation task and Slack installation records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from oncallbot.cron.evaluator import next_occurrence
from oncallbot.cron.types import Occurrence

RETIRED = -1


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def team_key(team_id: str, enterprise_id: str) -> str:
    """Partition key shared by tasks and installations of one workspace."""
    return f"{team_id}:{enterprise_id}"


def derive_task_id(
    channel_name: str,
    channel_id: str,
    group_handle: str,
    group_id: str,
    schedule_id: str,
) -> str:
    """Deterministic id so re-issuing the same command overwrites the task."""
    return f"{channel_name}:{channel_id}:{group_handle}:{group_id}:{schedule_id}"


@dataclass
class Task:
    """A rotation rule: sync one user group from one PagerDuty schedule."""

    team: str  # partition key, team_id:enterprise_id
    task_id: str  # sort key

    cron: str
    timezone: str
    next_occurrence_utc: int = RETIRED
    next_occurrence_local: str = ""

    team_id: str = ""
    team_domain: str = ""
    enterprise_id: str = ""
    enterprise_name: str = ""
    is_enterprise_install: bool = False
    channel_id: str = ""
    channel_name: str = ""

    group_id: str = ""
    group_handle: str = ""
    paging_schedule_id: str = ""
    paging_token: str | None = None

    created_by_user_id: str = ""
    created_by_user_name: str = ""
    created_at: str = ""
    last_updated_at: str = ""

    @property
    def is_retired(self) -> bool:
        return self.next_occurrence_utc <= 0

    def is_due(self, now_ts: int) -> bool:
        return 0 < self.next_occurrence_utc <= now_ts

    def calculate_next_occurrence(self, from_: datetime | int) -> Occurrence | None:
        return next_occurrence(self.cron, self.timezone, from_)

    def apply_occurrence(self, occurrence: Occurrence | None) -> None:
        """Advance to ``occurrence``, or retire the task when there is none."""
        if occurrence is None:
            self.next_occurrence_utc = RETIRED
            self.next_occurrence_local = ""
        else:
            self.next_occurrence_utc = occurrence.next_timestamp_utc
            self.next_occurrence_local = occurrence.next_datetime.isoformat()
        self.last_updated_at = utc_now_iso()


@dataclass
class Installation:
    """Credentials of one Slack workspace that installed the app."""

    team_id: str
    enterprise_id: str = ""
    team_name: str = ""
    enterprise_name: str = ""
    is_enterprise_install: bool = False

    access_token: str = ""
    token_type: str = ""
    scope: str = ""

    authed_user_id: str = ""
    app_id: str = ""
    bot_user_id: str = ""

    paging_token: str | None = None
    created_at: str = ""
    last_updated_at: str = ""

    @property
    def id(self) -> str:
        return team_key(self.team_id, self.enterprise_id)
