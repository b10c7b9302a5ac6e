"""Slack Web API client.

Every method call answers with the envelope ``{"ok": bool, "error": str?, ...}``;
``ok: false`` becomes :class:`SlackApiError` and non-2xx statuses become
:class:`TransportError`.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from oncallbot.errors import (
    GroupNotFoundError,
    SlackApiError,
    TransportError,
    UserNotFoundError,
)

DEFAULT_API_BASE = "https://slack.com/api"


@dataclass
class SlackUser:
    id: str
    name: str = ""


@dataclass
class UserGroup:
    id: str
    name: str
    handle: str
    description: str = ""


@dataclass
class Channel:
    id: str
    name: str
    is_channel: bool = False
    is_group: bool = False
    is_private: bool = False


@dataclass
class OAuthResult:
    """The parts of an ``oauth.v2.access`` response that an installation keeps."""

    app_id: str
    authed_user_id: str
    scope: str
    access_token: str
    token_type: str
    bot_user_id: str
    team_id: str
    team_name: str
    enterprise_id: str
    enterprise_name: str
    is_enterprise_install: bool


def _unwrap(endpoint: str, response: httpx.Response) -> dict[str, Any]:
    if response.is_error:
        logger.error("Slack {} answered {}", endpoint, response.status_code)
        raise TransportError(
            f"Failed sending request to Slack, status: {response.status_code}",
            status_code=response.status_code,
        )
    try:
        payload = response.json()
    except ValueError as e:
        raise SlackApiError(f"invalid JSON from {endpoint}: {e}") from e
    if not payload.get("ok"):
        error = payload.get("error") or "Unknown error"
        logger.warning("Slack {} failed: {}", endpoint, error)
        raise SlackApiError(error)
    return payload


class SlackClient:
    """Slack client bound to one workspace bot token."""

    def __init__(self, token: str, http: httpx.AsyncClient, api_base: str = DEFAULT_API_BASE):
        self.token = token
        self.api_base = api_base.rstrip("/")
        self._http = http

    async def _call(
        self,
        endpoint: str,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.api_base}/{endpoint}"
        headers = {"Authorization": f"Bearer {self.token}"}
        try:
            if payload is None:
                response = await self._http.get(url, params=params, headers=headers)
            else:
                logger.debug("Slack POST {}: {}", endpoint, payload)
                response = await self._http.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"Slack request to {endpoint} failed: {e}") from e
        return _unwrap(endpoint, response)

    async def post_message(self, channel_id: str, text: str) -> None:
        await self._call("chat.postMessage", payload={"channel": channel_id, "text": text})

    async def find_user_by_email(self, email: str) -> SlackUser:
        try:
            data = await self._call("users.lookupByEmail", params={"email": email})
        except SlackApiError as e:
            if e.error == "users_not_found":
                raise UserNotFoundError(email) from e
            raise
        user = data.get("user")
        if not user:
            raise UserNotFoundError(email)
        return SlackUser(id=user["id"], name=user.get("name", ""))

    async def find_user_by_id(self, user_id: str) -> SlackUser:
        try:
            data = await self._call("users.info", params={"user": user_id})
        except SlackApiError as e:
            if e.error == "user_not_found":
                raise UserNotFoundError(user_id) from e
            raise
        user = data.get("user")
        if not user:
            raise UserNotFoundError(user_id)
        return SlackUser(id=user["id"], name=user.get("name", ""))

    async def list_groups(self) -> list[UserGroup]:
        data = await self._call("usergroups.list")
        return [
            UserGroup(
                id=g["id"],
                name=g.get("name", ""),
                handle=g.get("handle", ""),
                description=g.get("description", ""),
            )
            for g in data.get("usergroups") or []
        ]

    async def find_group(self, name: str) -> UserGroup:
        """Find a user group whose name or handle equals ``name``."""
        for group in await self.list_groups():
            if group.name == name or group.handle == name:
                return group
        raise GroupNotFoundError(name)

    async def list_group_members(self, group_id: str) -> list[str]:
        data = await self._call("usergroups.users.list", params={"usergroup": group_id})
        return list(data.get("users") or [])

    async def set_group_members(self, group_id: str, user_ids: list[str]) -> None:
        await self._call(
            "usergroups.users.update",
            payload={"usergroup": group_id, "users": user_ids},
        )

    async def set_channel_topic(self, channel_id: str, topic: str) -> Channel | None:
        data = await self._call(
            "conversations.setTopic",
            payload={"channel": channel_id, "topic": topic},
        )
        channel = data.get("channel")
        if not channel:
            return None
        return Channel(
            id=channel.get("id", channel_id),
            name=channel.get("name", ""),
            is_channel=bool(channel.get("is_channel")),
            is_group=bool(channel.get("is_group")),
            is_private=bool(channel.get("is_private")),
        )


async def exchange_oauth_code(
    http: httpx.AsyncClient,
    code: str,
    client_id: str,
    client_secret: str,
    api_base: str = DEFAULT_API_BASE,
) -> OAuthResult:
    """Swap a temporary OAuth ``code`` for a bot token via ``oauth.v2.access``."""
    basic = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode("ascii")
    endpoint = "oauth.v2.access"
    try:
        response = await http.post(
            f"{api_base.rstrip('/')}/{endpoint}",
            params={"code": code},
            headers={"Authorization": f"Basic {basic}"},
        )
    except httpx.HTTPError as e:
        raise TransportError(f"Slack request to {endpoint} failed: {e}") from e

    data = _unwrap(endpoint, response)
    team = data.get("team") or {}
    enterprise = data.get("enterprise") or {}
    return OAuthResult(
        app_id=data.get("app_id", ""),
        authed_user_id=(data.get("authed_user") or {}).get("id", ""),
        scope=data.get("scope", ""),
        access_token=data.get("access_token", ""),
        token_type=data.get("token_type", ""),
        bot_user_id=data.get("bot_user_id", ""),
        team_id=team.get("id", ""),
        team_name=team.get("name", ""),
        enterprise_id=enterprise.get("id", ""),
        enterprise_name=enterprise.get("name", ""),
        is_enterprise_install=bool(data.get("is_enterprise_install")),
    )
