from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from botocore.exceptions import ClientError

from oncallbot.cron.types import ExternalTrigger, Occurrence
from oncallbot.scheduler.eventbridge import parse_trigger_timestamp

PREFIX = "on-call-support-test_UpdateUserGroupSchedule_"
ENCRYPTION_KEY = "0123456789abcdef0123456789abcdef"


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class _Paginator:
    def __init__(self, pages_fn):
        self._pages_fn = pages_fn

    def paginate(self, **kwargs):
        return self._pages_fn(**kwargs)


class FakeDynamoDbClient:
    """Low-level DynamoDB client stand-in; items stay in attribute-value form."""

    def __init__(self):
        self.tables: dict[str, dict[tuple, dict]] = {}

    @staticmethod
    def _key(item: dict) -> tuple:
        if "team" in item and "task_id" in item:
            return (item["team"]["S"], item["task_id"]["S"])
        return (item["id"]["S"],)

    def _table(self, name: str) -> dict[tuple, dict]:
        return self.tables.setdefault(name, {})

    def put_item(self, TableName, Item):
        self._table(TableName)[self._key(Item)] = dict(Item)

    def get_item(self, TableName, Key):
        item = self._table(TableName).get(self._key(Key))
        return {"Item": dict(item)} if item else {}

    def delete_item(self, TableName, Key):
        self._table(TableName).pop(self._key(Key), None)

    def update_item(
        self,
        TableName,
        Key,
        UpdateExpression,
        ConditionExpression=None,
        ExpressionAttributeValues=None,
    ):
        table = self._table(TableName)
        key = self._key(Key)
        if ConditionExpression and "attribute_exists" in ConditionExpression and key not in table:
            raise client_error("ConditionalCheckFailedException", "UpdateItem")
        item = table.setdefault(key, dict(Key))
        assignments = UpdateExpression.removeprefix("SET ").split(",")
        for assignment in assignments:
            name, placeholder = (part.strip() for part in assignment.split("="))
            item[name] = ExpressionAttributeValues[placeholder]

    def get_paginator(self, operation):
        assert operation == "scan"

        def pages(TableName):
            items = list(self._table(TableName).values())
            # two pages to exercise pagination
            return [{"Items": items[:1]}, {"Items": items[1:]}]

        return _Paginator(pages)


class FakeSchedulerClient:
    """In-memory stand-in for the boto3 ``scheduler`` client."""

    def __init__(self):
        self.schedules: dict[str, dict] = {}
        self.fail_on: set[str] = set()

    def get_paginator(self, operation):
        assert operation == "list_schedules"

        def pages(NamePrefix="", GroupName=None):
            if "list_schedules" in self.fail_on:
                raise client_error("InternalServerException", "ListSchedules")
            names = [n for n in sorted(self.schedules) if n.startswith(NamePrefix)]
            return [{"Schedules": [{"Name": n} for n in names]}]

        return _Paginator(pages)

    def get_schedule(self, Name, GroupName=None):
        if Name not in self.schedules:
            raise client_error("ResourceNotFoundException", "GetSchedule")
        return dict(self.schedules[Name])

    def create_schedule(self, **kwargs):
        if "create_schedule" in self.fail_on:
            raise client_error("ValidationException", "CreateSchedule")
        self.schedules[kwargs["Name"]] = kwargs

    def delete_schedule(self, Name, GroupName=None):
        if Name not in self.schedules:
            raise client_error("ResourceNotFoundException", "DeleteSchedule")
        del self.schedules[Name]


class FakeTriggerBackend:
    """Trigger backend recording creations and deletions."""

    def __init__(self, names: list[str] | None = None, prefix: str = PREFIX):
        self.prefix = prefix
        self.names = list(names or [])
        self.created: list[tuple[str, str, str]] = []
        self.deleted: list[str] = []

    def list_triggers(self) -> list[ExternalTrigger]:
        return [
            ExternalTrigger(name=n, next_timestamp_utc=parse_trigger_timestamp(n, self.prefix))
            for n in self.names
        ]

    def create_one_shot_trigger(self, name, expression, timezone, description=""):
        self.created.append((name, expression, timezone))
        self.names.append(name)

    def delete_trigger(self, name):
        self.deleted.append(name)
        self.names.remove(name)


class InMemoryTaskStore:
    def __init__(self, tasks=None):
        self.tasks = {(t.team, t.task_id): t for t in tasks or []}
        self.updated: list[str] = []

    def put(self, task):
        self.tasks[(task.team, task.task_id)] = task

    def update_occurrence(self, task):
        from oncallbot.errors import NotFoundError

        if (task.team, task.task_id) not in self.tasks:
            raise NotFoundError(task.task_id)
        self.updated.append(task.task_id)

    def scan_all(self):
        return list(self.tasks.values())

    def list_for_team(self, team):
        return [t for t in self.tasks.values() if t.team == team]

    def delete(self, team, task_id):
        self.tasks.pop((team, task_id), None)


class InMemoryInstallationStore:
    def __init__(self, installations=None):
        self.installations = {i.id: i for i in installations or []}

    def put(self, installation):
        self.installations[installation.id] = installation

    def update_paging_token(self, team_id, enterprise_id, token):
        from oncallbot.errors import InstallationNotFoundError

        key = f"{team_id}:{enterprise_id}"
        if key not in self.installations:
            raise InstallationNotFoundError(team_id)
        self.installations[key].paging_token = token

    def scan_all(self):
        return list(self.installations.values())


def make_occurrence(ts: int, tz: str = "UTC") -> Occurrence:
    at = datetime.fromtimestamp(ts, ZoneInfo(tz))
    return Occurrence(
        cron="0 9 * * ? *",
        timezone=tz,
        single_shot_expression=f"{at.minute} {at.hour} {at.day} {at.month} * {at.year}",
        next_timestamp_utc=ts,
        next_datetime=at,
    )


@pytest.fixture
def dynamodb() -> FakeDynamoDbClient:
    return FakeDynamoDbClient()


@pytest.fixture
def scheduler_client() -> FakeSchedulerClient:
    return FakeSchedulerClient()
