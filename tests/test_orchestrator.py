import asyncio

import pytest

from conftest import PREFIX, FakeTriggerBackend, InMemoryInstallationStore, InMemoryTaskStore
from oncallbot.config.schema import RotationConfig
from oncallbot.errors import ReconciliationError, SlackApiError
from oncallbot.rotation.orchestrator import Orchestrator, earliest_occurrence
from oncallbot.scheduler.reconciler import TriggerReconciler
from oncallbot.tasks.types import RETIRED, Installation, Task

# Monday 2023-01-02 09:00 Australia/Melbourne
MONDAY_9AM = 1672610400
TUESDAY_9AM = MONDAY_9AM + 86400
MONDAY_3PM = MONDAY_9AM + 6 * 3600


class _FakeRoster:
    def __init__(self, fail_for=(), delay=0.0):
        self.fail_for = set(fail_for)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def sync(self, task, paging_token, messaging_token, at=None):
        self.calls.append((task.task_id, paging_token, messaging_token))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if task.task_id in self.fail_for:
                raise SlackApiError("invalid_auth")
            return True
        finally:
            self.active -= 1


def _task(task_id: str, next_ts: int = MONDAY_9AM, **overrides) -> Task:
    fields = dict(
        team="T1:",
        task_id=task_id,
        cron="0 9 ? * MON-FRI *",
        timezone="Australia/Melbourne",
        next_occurrence_utc=next_ts,
        team_id="T1",
        channel_id="C1",
        group_handle="support",
        paging_schedule_id="PD1",
    )
    fields.update(overrides)
    return Task(**fields)


def _installation(**overrides) -> Installation:
    fields = dict(team_id="T1", access_token="xoxb-1", paging_token="pd-install")
    fields.update(overrides)
    return Installation(**fields)


def _orchestrator(tasks, installations, roster, backend=None, now=MONDAY_9AM + 5, **config):
    reconciler = TriggerReconciler(backend or FakeTriggerBackend(), PREFIX, clock=lambda: now)
    return Orchestrator(
        InMemoryTaskStore(tasks),
        InMemoryInstallationStore(installations),
        roster,
        reconciler,
        config=RotationConfig(**config),
        clock=lambda: now,
    )


@pytest.mark.asyncio
async def test_due_task_is_synced_advanced_and_rearmed() -> None:
    roster = _FakeRoster()
    backend = FakeTriggerBackend()
    orchestrator = _orchestrator([_task("a")], [_installation()], roster, backend)

    report = await orchestrator.run()

    task = orchestrator.tasks.tasks[("T1:", "a")]
    assert roster.calls == [("a", "pd-install", "xoxb-1")]
    assert task.next_occurrence_utc == TUESDAY_9AM
    assert task.next_occurrence_local == "2023-01-03T09:00:00+11:00"
    assert orchestrator.tasks.updated == ["a"]
    assert backend.created == [(f"{PREFIX}{TUESDAY_9AM}", "at(2023-01-03T09:00:00)", "Australia/Melbourne")]
    assert (report.processed, report.succeeded, report.failed, report.changed) == (1, 1, 0, 1)
    assert report.next_wakeup == TUESDAY_9AM


@pytest.mark.asyncio
async def test_future_and_retired_tasks_are_skipped() -> None:
    roster = _FakeRoster()
    future = _task("future", next_ts=TUESDAY_9AM)
    retired = _task("retired", next_ts=RETIRED)
    orchestrator = _orchestrator([future, retired], [_installation()], roster)

    report = await orchestrator.run()

    assert roster.calls == []
    assert report.processed == 0
    assert report.next_wakeup == TUESDAY_9AM
    assert future.next_occurrence_utc == TUESDAY_9AM


@pytest.mark.asyncio
async def test_failed_task_is_left_for_retry() -> None:
    roster = _FakeRoster(fail_for={"bad"})
    good, bad = _task("good"), _task("bad")
    backend = FakeTriggerBackend()
    orchestrator = _orchestrator([good, bad], [_installation()], roster, backend)

    report = await orchestrator.run()

    assert (report.processed, report.succeeded, report.failed) == (2, 1, 1)
    assert bad.next_occurrence_utc == MONDAY_9AM
    assert orchestrator.tasks.updated == ["good"]
    # the failed task is recomputed from the invocation start
    assert report.next_wakeup == TUESDAY_9AM


@pytest.mark.asyncio
async def test_missing_installation_and_token_fail_the_task() -> None:
    roster = _FakeRoster()
    other_team = _task("orphan", team="T2:", team_id="T2")
    no_token = _task("no-token")
    orchestrator = _orchestrator(
        [other_team, no_token], [_installation(paging_token=None)], roster
    )

    report = await orchestrator.run()

    assert roster.calls == []
    assert report.failed == 2


@pytest.mark.asyncio
async def test_task_token_overrides_installation_token() -> None:
    roster = _FakeRoster()
    orchestrator = _orchestrator(
        [_task("a", paging_token="pd-task")], [_installation(paging_token=None)], roster
    )

    await orchestrator.run()

    assert roster.calls == [("a", "pd-task", "xoxb-1")]


@pytest.mark.asyncio
async def test_task_without_future_occurrence_is_retired() -> None:
    # Friday 2023-12-29 09:00 Melbourne, the last weekday of 2023
    friday = 1703800800
    task = _task("last", next_ts=friday, cron="0 9 ? * MON-FRI 2023")
    backend = FakeTriggerBackend()
    orchestrator = _orchestrator([task], [_installation()], _FakeRoster(), backend, now=friday + 5)

    report = await orchestrator.run()

    assert task.next_occurrence_utc == RETIRED
    assert task.next_occurrence_local == ""
    assert orchestrator.tasks.updated == ["last"]
    assert report.next_wakeup is None
    assert backend.created == []


@pytest.mark.asyncio
async def test_no_tasks_schedules_nothing() -> None:
    backend = FakeTriggerBackend([f"{PREFIX}{MONDAY_9AM + 999}"])

    report = await _orchestrator([], [], _FakeRoster(), backend).run()

    assert report.next_wakeup is None
    assert backend.created == [] and backend.deleted == []


@pytest.mark.asyncio
async def test_concurrency_is_bounded() -> None:
    roster = _FakeRoster(delay=0.01)
    tasks = [_task(f"t{i}") for i in range(6)]

    report = await _orchestrator(tasks, [_installation()], roster, max_concurrency=2).run()

    assert report.succeeded == 6
    assert roster.max_active == 2


@pytest.mark.asyncio
async def test_reconciler_errors_propagate() -> None:
    class _Broken(FakeTriggerBackend):
        def create_one_shot_trigger(self, *args, **kwargs):
            raise ReconciliationError("create failed")

    orchestrator = _orchestrator([_task("a")], [_installation()], _FakeRoster(), _Broken())

    with pytest.raises(ReconciliationError):
        await orchestrator.run()


def test_earliest_occurrence_picks_soonest_task() -> None:
    later = _task("later", next_ts=TUESDAY_9AM + 3600, cron="0 10 ? * MON-FRI *")
    sooner = _task("sooner", next_ts=TUESDAY_9AM)

    occ = earliest_occurrence([later, sooner, _task("gone", next_ts=RETIRED)], MONDAY_9AM + 5)

    assert occ is not None
    assert occ.next_timestamp_utc == TUESDAY_9AM


def test_earliest_occurrence_ignores_stale_stored_timestamps() -> None:
    stale = _task("stale", next_ts=MONDAY_9AM)
    afternoon = _task("afternoon", next_ts=MONDAY_3PM, cron="0 15 ? * MON-FRI *")

    occ = earliest_occurrence([stale, afternoon], MONDAY_9AM + 300)

    assert occ is not None
    assert occ.next_timestamp_utc == MONDAY_3PM


@pytest.mark.asyncio
async def test_failed_task_does_not_hide_a_later_pending_task() -> None:
    roster = _FakeRoster(fail_for={"bad"})
    bad = _task("bad")
    afternoon = _task("afternoon", next_ts=MONDAY_3PM, cron="0 15 ? * MON-FRI *")
    backend = FakeTriggerBackend()
    orchestrator = _orchestrator([bad, afternoon], [_installation()], roster, backend, now=MONDAY_9AM + 300)

    report = await orchestrator.run()

    assert (report.processed, report.failed) == (1, 1)
    assert report.next_wakeup == MONDAY_3PM
    assert backend.created == [(f"{PREFIX}{MONDAY_3PM}", "at(2023-01-02T15:00:00)", "Australia/Melbourne")]
