"""AWS Lambda entry points.

``update_user_groups_handler`` is the target of the one-shot wake-up
trigger. ``slack_request_handler`` sits behind API Gateway and serves the
OAuth callback and the slash command.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import asdict
from typing import Any
from urllib.parse import parse_qsl

from loguru import logger

from oncallbot.commands.handler import CommandContext, CommandHandler, plain
from oncallbot.commands.verify import verify_request
from oncallbot.config.loader import load_config
from oncallbot.errors import OncallError, ValidationError
from oncallbot.providers.slack import exchange_oauth_code
from oncallbot.runtime import Runtime, run_once
from oncallbot.tasks.types import Installation


def update_user_groups_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    config = load_config()
    logger.info("Update user groups ({}), event: {}", config.env, event)
    report = asyncio.run(run_once(config))
    return asdict(report)


def _header(headers: dict[str, str] | None, name: str) -> str | None:
    for key, value in (headers or {}).items():
        if key.lower() == name.lower():
            return value
    return None


def _body(event: dict[str, Any]) -> str:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    return body


def _path(event: dict[str, Any]) -> str:
    return event.get("rawPath") or event.get("path") or ""


def _method(event: dict[str, Any]) -> str:
    method = event.get("httpMethod")
    if not method:
        method = (event.get("requestContext") or {}).get("http", {}).get("method", "")
    return method.upper()


def handle_oauth(runtime: Runtime, query: dict[str, str]) -> dict[str, Any]:
    code = query.get("code")
    if not code:
        return plain(400, "Invalid request").to_api_gateway()

    secrets = runtime.secrets.get()

    async def _exchange():
        async with runtime.http_client() as http:
            return await exchange_oauth_code(
                http,
                code,
                secrets.slack_client_id,
                secrets.slack_client_secret,
                api_base=runtime.config.slack.api_base,
            )

    result = asyncio.run(_exchange())
    runtime.installations.put(
        Installation(
            team_id=result.team_id,
            enterprise_id=result.enterprise_id,
            team_name=result.team_name,
            enterprise_name=result.enterprise_name,
            is_enterprise_install=result.is_enterprise_install,
            access_token=result.access_token,
            token_type=result.token_type,
            scope=result.scope,
            authed_user_id=result.authed_user_id,
            app_id=result.app_id,
            bot_user_id=result.bot_user_id,
        )
    )
    return plain(200, "Received slack oauth callback.").to_api_gateway()


def handle_command(runtime: Runtime, event: dict[str, Any]) -> dict[str, Any]:
    body = _body(event)
    headers = event.get("headers") or {}
    try:
        verify_request(
            runtime.signing_secret(),
            _header(headers, "X-Slack-Request-Timestamp"),
            body,
            _header(headers, "X-Slack-Signature"),
            max_age_s=runtime.config.slack.max_request_age_s,
        )
    except ValidationError as e:
        logger.warning("Rejected Slack request: {}", e)
        return plain(400, str(e)).to_api_gateway()

    ctx = CommandContext.from_form(dict(parse_qsl(body, keep_blank_values=True)))
    handler = CommandHandler(
        runtime.tasks,
        runtime.installations,
        runtime.reconciler,
        default_timezone=runtime.config.rotation.default_timezone,
    )
    return handler.handle(ctx).to_api_gateway()


def slack_request_handler(
    event: dict[str, Any],
    context: Any = None,
    runtime: Runtime | None = None,
) -> dict[str, Any]:
    path = _path(event)
    method = _method(event)
    logger.info("Slack request {} {}", method, path)

    try:
        runtime = runtime or Runtime.from_config(load_config())
        if path.rstrip("/").endswith("/oauth"):
            return handle_oauth(runtime, event.get("queryStringParameters") or {})
        if method == "POST":
            return handle_command(runtime, event)
    except OncallError as e:
        logger.error("Failed to handle Slack request {}: {}", path, e)
        return plain(500, f"Failed to handle request: {e}").to_api_gateway()

    return plain(404, f"Unknown route: {method} {path}").to_api_gateway()
