"""DynamoDB persistence for rotation tasks and Slack installations.

Items go through a low-level boto3 client. boto3's type (de)serializers convert
between plain records and DynamoDB's attribute-value format, and records are
mapped once here into typed entities. Tokens are sealed with the configured
:class:`Encryptor` before they are stored.
"""

from __future__ import annotations

from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from oncallbot.errors import CryptoError, InstallationNotFoundError, NotFoundError, TransportError
from oncallbot.security.encryption import Encryptor
from oncallbot.tasks.types import RETIRED, Installation, Task, team_key, utc_now_iso

_CONDITION_FAILED = "ConditionalCheckFailedException"

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _serialize(record: dict[str, Any]) -> dict[str, Any]:
    return {name: _serializer.serialize(value) for name, value in record.items()}


def _deserialize(item: dict[str, Any]) -> dict[str, Any]:
    return {name: _deserializer.deserialize(value) for name, value in item.items()}


def _text(record: dict[str, Any], name: str) -> str:
    value = record.get(name)
    return "" if value is None else str(value)


def _int(record: dict[str, Any], name: str, default: int) -> int:
    value = record.get(name)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _flag(record: dict[str, Any], name: str) -> bool:
    # Written as the strings "true"/"false"; native booleans are read as well.
    value = record.get(name)
    if isinstance(value, bool):
        return value
    return str(value).lower() == "true"


def _client_error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def _scan(client: Any, table: str) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    try:
        paginator = client.get_paginator("scan")
        for page in paginator.paginate(TableName=table):
            items.extend(page.get("Items", []))
    except (ClientError, BotoCoreError) as e:
        raise TransportError(f"Failed to scan {table}: {e}") from e
    return items


class _SealedTokens:
    """Encrypts and decrypts token attributes; passes plaintext through when no key is set."""

    def __init__(self, encryptor: Encryptor | None):
        self._encryptor = encryptor

    def seal(self, token: str | None) -> str:
        if not token:
            return ""
        if self._encryptor is None:
            return token
        return self._encryptor.encrypt_to_json(token)

    def open(self, stored: str) -> str | None:
        if not stored:
            return None
        if self._encryptor is None:
            return stored
        return self._encryptor.decrypt_from_json(stored)


class TaskStore:
    """Tasks keyed by (``team``, ``task_id``)."""

    def __init__(self, client: Any, table: str, encryptor: Encryptor | None = None):
        self._client = client
        self.table = table
        self._tokens = _SealedTokens(encryptor)

    def put(self, task: Task) -> None:
        now = utc_now_iso()
        if not task.created_at:
            task.created_at = now
        task.last_updated_at = now
        try:
            self._client.put_item(TableName=self.table, Item=_serialize(self._encode(task)))
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"Failed to save task {task.task_id}: {e}") from e
        logger.info("Saved task {} for team {}", task.task_id, task.team)

    def update_occurrence(self, task: Task) -> None:
        """Persist the schedule fields of an existing task.

        Raises NotFoundError when the task was deleted in the meantime.
        """
        try:
            self._client.update_item(
                TableName=self.table,
                Key=_serialize({"team": task.team, "task_id": task.task_id}),
                UpdateExpression=(
                    "SET last_updated_at = :updated, next_update_time = :local, "
                    "next_update_timestamp_utc = :ts"
                ),
                ConditionExpression="attribute_exists(team) AND attribute_exists(task_id)",
                ExpressionAttributeValues=_serialize(
                    {
                        ":updated": task.last_updated_at or utc_now_iso(),
                        ":local": task.next_occurrence_local,
                        ":ts": task.next_occurrence_utc,
                    }
                ),
            )
        except ClientError as e:
            if _client_error_code(e) == _CONDITION_FAILED:
                raise NotFoundError(f"Task no longer exists: {task.team}/{task.task_id}") from e
            raise TransportError(f"Failed to update task {task.task_id}: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"Failed to update task {task.task_id}: {e}") from e

    def scan_all(self) -> list[Task]:
        tasks = []
        for item in _scan(self._client, self.table):
            record = _deserialize(item)
            try:
                tasks.append(self._decode(record))
            except CryptoError as e:
                logger.error(
                    "Skipping task {}/{}: {}", _text(record, "team"), _text(record, "task_id"), e
                )
        return tasks

    def list_for_team(self, team: str) -> list[Task]:
        return [t for t in self.scan_all() if t.team == team]

    def delete(self, team: str, task_id: str) -> None:
        try:
            self._client.delete_item(
                TableName=self.table,
                Key=_serialize({"team": team, "task_id": task_id}),
            )
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"Failed to delete task {task_id}: {e}") from e
        logger.info("Deleted task {} for team {}", task_id, team)

    def _encode(self, task: Task) -> dict[str, Any]:
        return {
            "team": task.team,
            "task_id": task.task_id,
            "next_update_timestamp_utc": task.next_occurrence_utc,
            "next_update_time": task.next_occurrence_local,
            "team_id": task.team_id,
            "team_domain": task.team_domain,
            "channel_id": task.channel_id,
            "channel_name": task.channel_name,
            "enterprise_id": task.enterprise_id,
            "enterprise_name": task.enterprise_name,
            "is_enterprise_install": str(task.is_enterprise_install).lower(),
            "user_group_id": task.group_id,
            "user_group_handle": task.group_handle,
            "pager_duty_schedule_id": task.paging_schedule_id,
            "pager_duty_token": self._tokens.seal(task.paging_token),
            "cron": task.cron,
            "timezone": task.timezone,
            "created_by_user_id": task.created_by_user_id,
            "created_by_user_name": task.created_by_user_name,
            "created_at": task.created_at,
            "last_updated_at": task.last_updated_at,
        }

    def _decode(self, record: dict[str, Any]) -> Task:
        return Task(
            team=_text(record, "team"),
            task_id=_text(record, "task_id"),
            cron=_text(record, "cron"),
            timezone=_text(record, "timezone"),
            next_occurrence_utc=_int(record, "next_update_timestamp_utc", RETIRED),
            next_occurrence_local=_text(record, "next_update_time"),
            team_id=_text(record, "team_id"),
            team_domain=_text(record, "team_domain"),
            enterprise_id=_text(record, "enterprise_id"),
            enterprise_name=_text(record, "enterprise_name"),
            is_enterprise_install=_flag(record, "is_enterprise_install"),
            channel_id=_text(record, "channel_id"),
            channel_name=_text(record, "channel_name"),
            group_id=_text(record, "user_group_id"),
            group_handle=_text(record, "user_group_handle"),
            paging_schedule_id=_text(record, "pager_duty_schedule_id"),
            paging_token=self._tokens.open(_text(record, "pager_duty_token")),
            created_by_user_id=_text(record, "created_by_user_id"),
            created_by_user_name=_text(record, "created_by_user_name"),
            created_at=_text(record, "created_at"),
            last_updated_at=_text(record, "last_updated_at"),
        )


class InstallationStore:
    """Slack installations keyed by ``id`` (``team_id:enterprise_id``)."""

    def __init__(self, client: Any, table: str, encryptor: Encryptor | None = None):
        self._client = client
        self.table = table
        self._tokens = _SealedTokens(encryptor)

    def put(self, installation: Installation) -> None:
        now = utc_now_iso()
        if not installation.created_at:
            installation.created_at = now
        installation.last_updated_at = now
        try:
            self._client.put_item(
                TableName=self.table, Item=_serialize(self._encode(installation))
            )
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"Failed to save installation {installation.id}: {e}") from e
        logger.info("Saved installation for team {}", installation.id)

    def update_paging_token(self, team_id: str, enterprise_id: str, token: str) -> None:
        key = team_key(team_id, enterprise_id)
        try:
            self._client.update_item(
                TableName=self.table,
                Key=_serialize({"id": key}),
                UpdateExpression="SET pagerduty_token = :token, last_updated_at = :updated",
                ConditionExpression="attribute_exists(id)",
                ExpressionAttributeValues=_serialize(
                    {":token": self._tokens.seal(token), ":updated": utc_now_iso()}
                ),
            )
        except ClientError as e:
            if _client_error_code(e) == _CONDITION_FAILED:
                raise InstallationNotFoundError(team_id) from e
            raise TransportError(f"Failed to update installation {key}: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"Failed to update installation {key}: {e}") from e
        logger.info("Updated paging token for team {}", key)

    def get(self, team_id: str, enterprise_id: str) -> Installation:
        key = team_key(team_id, enterprise_id)
        try:
            response = self._client.get_item(TableName=self.table, Key=_serialize({"id": key}))
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"Failed to read installation {key}: {e}") from e
        item = response.get("Item")
        if not item:
            raise InstallationNotFoundError(team_id)
        return self._decode(_deserialize(item))

    def scan_all(self) -> list[Installation]:
        installations = []
        for item in _scan(self._client, self.table):
            record = _deserialize(item)
            try:
                installations.append(self._decode(record))
            except CryptoError as e:
                logger.error("Skipping installation {}: {}", _text(record, "id"), e)
        return installations

    def _encode(self, installation: Installation) -> dict[str, Any]:
        record = {
            "id": installation.id,
            "team_id": installation.team_id,
            "team_name": installation.team_name,
            "enterprise_id": installation.enterprise_id,
            "enterprise_name": installation.enterprise_name,
            "is_enterprise_install": str(installation.is_enterprise_install).lower(),
            "access_token": self._tokens.seal(installation.access_token),
            "token_type": installation.token_type,
            "scope": installation.scope,
            "authed_user_id": installation.authed_user_id,
            "app_id": installation.app_id,
            "bot_user_id": installation.bot_user_id,
            "created_at": installation.created_at,
            "last_updated_at": installation.last_updated_at,
        }
        if installation.paging_token:
            record["pagerduty_token"] = self._tokens.seal(installation.paging_token)
        return record

    def _decode(self, record: dict[str, Any]) -> Installation:
        return Installation(
            team_id=_text(record, "team_id"),
            enterprise_id=_text(record, "enterprise_id"),
            team_name=_text(record, "team_name"),
            enterprise_name=_text(record, "enterprise_name"),
            is_enterprise_install=_flag(record, "is_enterprise_install"),
            access_token=self._tokens.open(_text(record, "access_token")) or "",
            token_type=_text(record, "token_type"),
            scope=_text(record, "scope"),
            authed_user_id=_text(record, "authed_user_id"),
            app_id=_text(record, "app_id"),
            bot_user_id=_text(record, "bot_user_id"),
            paging_token=self._tokens.open(_text(record, "pagerduty_token")),
            created_at=_text(record, "created_at"),
            last_updated_at=_text(record, "last_updated_at"),
        )
