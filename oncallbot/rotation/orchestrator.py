"""One wake-up: sync every due task, then re-arm the trigger."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from oncallbot.config.schema import RotationConfig
from oncallbot.cron.types import Occurrence
from oncallbot.errors import CredentialError, OncallError
from oncallbot.rotation.roster import RosterSync
from oncallbot.scheduler.reconciler import TriggerReconciler
from oncallbot.tasks.store import InstallationStore, TaskStore
from oncallbot.tasks.types import Installation, Task


@dataclass
class RunReport:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    changed: int = 0
    next_wakeup: int | None = None  # epoch seconds of the armed trigger


class Orchestrator:
    def __init__(
        self,
        tasks: TaskStore,
        installations: InstallationStore,
        roster: RosterSync,
        reconciler: TriggerReconciler,
        config: RotationConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.tasks = tasks
        self.installations = installations
        self.roster = roster
        self.reconciler = reconciler
        self.config = config or RotationConfig()
        self._clock = clock

    async def run(self) -> RunReport:
        start = int(self._clock())
        tasks = await asyncio.to_thread(self.tasks.scan_all)
        installations = await asyncio.to_thread(self.installations.scan_all)
        by_team = _index_installations(installations)
        logger.info("Found {} tasks and {} installations", len(tasks), len(installations))

        report = RunReport()
        due = [t for t in tasks if t.is_due(start)]
        for task in tasks:
            if not task.is_due(start):
                logger.debug(
                    "Skipped {}, next update at {} ({})",
                    task.task_id,
                    task.next_occurrence_local,
                    task.next_occurrence_utc,
                )

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def _bounded(task: Task) -> bool | None:
            async with semaphore:
                return await self._process(task, by_team, start)

        results = await asyncio.gather(*(_bounded(t) for t in due))
        report.processed = len(due)
        for outcome in results:
            if outcome is None:
                report.failed += 1
            else:
                report.succeeded += 1
                report.changed += int(outcome)

        desired = earliest_occurrence(tasks, start)
        if desired is None:
            logger.info("No task has a future occurrence; nothing to schedule")
        else:
            result = await asyncio.to_thread(self.reconciler.reconcile, desired)
            report.next_wakeup = result.effective_next

        logger.info(
            "Finished: processed={} succeeded={} failed={} next={}",
            report.processed,
            report.succeeded,
            report.failed,
            report.next_wakeup,
        )
        return report

    async def _process(self, task: Task, by_team: dict[str, Installation], start: int) -> bool | None:
        """Sync one task and advance it. Returns None on failure."""
        logger.info("Updating user group for task {} (cron {})", task.task_id, task.cron)
        try:
            installation = by_team.get(task.team) or by_team.get(task.team_id)
            if installation is None:
                raise CredentialError(f"No Slack installation for team {task.team}")
            paging_token = task.paging_token or installation.paging_token
            if not paging_token:
                raise CredentialError(f"No PagerDuty token set up for team {task.team}")

            changed = await self.roster.sync(
                task,
                paging_token,
                installation.access_token,
                at=datetime.fromtimestamp(start, tz=timezone.utc),
            )

            task.apply_occurrence(task.calculate_next_occurrence(int(self._clock())))
            await asyncio.to_thread(self.tasks.update_occurrence, task)
            if task.is_retired:
                logger.info("Task {} has no future occurrence and is retired", task.task_id)
            return changed
        except OncallError as e:
            logger.error("Failed to update task {}/{}: {}", task.team, task.task_id, e)
        except Exception:
            logger.exception("Unexpected failure for task {}/{}", task.team, task.task_id)
        return None


def _index_installations(installations: list[Installation]) -> dict[str, Installation]:
    index: dict[str, Installation] = {}
    for installation in installations:
        index[installation.id] = installation
        index.setdefault(installation.team_id, installation)
    return index


def earliest_occurrence(tasks: list[Task], start: int) -> Occurrence | None:
    """Soonest occurrence after ``start`` over every task that is not retired."""
    earliest: Occurrence | None = None
    for task in tasks:
        if task.is_retired:
            continue
        try:
            occurrence = task.calculate_next_occurrence(start)
        except OncallError as e:
            logger.error("Cannot evaluate task {}: {}", task.task_id, e)
            continue
        if occurrence is None:
            continue
        if earliest is None or occurrence.next_timestamp_utc < earliest.next_timestamp_utc:
            earliest = occurrence
    return earliest
