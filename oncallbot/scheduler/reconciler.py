"""Keep exactly one upcoming wake-up trigger for the earliest due task."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

from loguru import logger

from oncallbot.cron.types import ExternalTrigger, Occurrence

GRACE_SECONDS = 300


class TriggerBackend(Protocol):
    def list_triggers(self) -> list[ExternalTrigger]: ...

    def create_one_shot_trigger(
        self, name: str, expression: str, timezone: str, description: str = ""
    ) -> None: ...

    def delete_trigger(self, name: str) -> None: ...


@dataclass
class ReconcileResult:
    effective_next: int
    created: str | None = None
    deleted: list[str] = field(default_factory=list)


def at_expression(occurrence: Occurrence) -> str:
    """EventBridge one-time form of the occurrence's local wall-clock time."""
    return f"at({occurrence.next_datetime.strftime('%Y-%m-%dT%H:%M:%S')})"


class TriggerReconciler:
    """
    Converge the remote trigger set on a desired next wake-up.

    Only triggers whose names carry ``prefix`` are considered. A trigger that
    already fires at or before the desired time is kept; later ones are
    removed, as are stale ones older than the grace period.
    """

    def __init__(
        self,
        backend: TriggerBackend,
        prefix: str,
        grace_seconds: int = GRACE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.prefix = prefix
        self.grace_seconds = grace_seconds
        self._clock = clock

    def trigger_name(self, timestamp_utc: int) -> str:
        return f"{self.prefix}{timestamp_utc}"

    def list_owned(self) -> list[ExternalTrigger]:
        """Triggers in our namespace with a parseable timestamp, earliest first."""
        owned = []
        for trigger in self.backend.list_triggers():
            if not trigger.name.startswith(self.prefix) or trigger.next_timestamp_utc is None:
                logger.debug("Ignoring trigger {}", trigger.name)
                continue
            owned.append(trigger)
        owned.sort(key=lambda t: t.next_timestamp_utc)
        return owned

    def reconcile(self, desired: Occurrence, now: int | None = None) -> ReconcileResult:
        now = int(self._clock()) if now is None else int(now)
        target_ts = desired.next_timestamp_utc
        triggers = self.list_owned()

        current_next = next(
            (t for t in triggers if now < t.next_timestamp_utc <= target_ts),
            None,
        )

        result = ReconcileResult(effective_next=target_ts)
        if current_next is None or target_ts < current_next.next_timestamp_utc:
            name = self.trigger_name(target_ts)
            self.backend.create_one_shot_trigger(
                name,
                at_expression(desired),
                desired.timezone,
                description=f"{desired.next_datetime.isoformat()} cron({desired.single_shot_expression})",
            )
            result.created = name
        else:
            result.effective_next = current_next.next_timestamp_utc
            logger.info("Keeping next trigger {}", current_next.name)

        stale_before = now - self.grace_seconds
        for trigger in triggers:
            ts = trigger.next_timestamp_utc
            if ts > result.effective_next or ts <= stale_before:
                self.backend.delete_trigger(trigger.name)
                result.deleted.append(trigger.name)

        logger.info(
            "Reconciled triggers: next={} created={} deleted={}",
            result.effective_next,
            result.created,
            len(result.deleted),
        )
        return result
