from urllib.parse import urlencode

import httpx

from conftest import PREFIX, FakeTriggerBackend, InMemoryInstallationStore, InMemoryTaskStore
from oncallbot.commands.verify import compute_signature
from oncallbot.config.schema import Config
from oncallbot.handlers import slack_request_handler
from oncallbot.runtime import Runtime
from oncallbot.scheduler.reconciler import TriggerReconciler
from oncallbot.security.secrets import Secrets

SIGNING_SECRET = "signing-secret"


class _FakeSecrets:
    def get(self) -> Secrets:
        return Secrets(
            encryption_key="k" * 32,
            slack_client_id="client-id",
            slack_client_secret="client-secret",
            slack_signing_secret=SIGNING_SECRET,
        )


def _runtime() -> Runtime:
    backend = FakeTriggerBackend()
    return Runtime(
        config=Config(),
        secrets=_FakeSecrets(),
        tasks=InMemoryTaskStore(),
        installations=InMemoryInstallationStore(),
        scheduler=backend,
        reconciler=TriggerReconciler(backend, PREFIX),
    )


def _command_event(body: str, timestamp: str, signature: str) -> dict:
    return {
        "path": "/slack/command",
        "httpMethod": "POST",
        "headers": {"x-slack-request-timestamp": timestamp, "X-Slack-Signature": signature},
        "body": body,
        "isBase64Encoded": False,
    }


def test_signed_command_is_handled(monkeypatch) -> None:
    monkeypatch.setattr("oncallbot.commands.verify.time.time", lambda: 1_700_000_000)
    body = urlencode({"team_id": "T1", "channel_id": "C1", "command": "/oncall", "text": "new"})
    signature = compute_signature(SIGNING_SECRET, "1700000000", body)

    response = slack_request_handler(_command_event(body, "1700000000", signature), runtime=_runtime())

    assert response["statusCode"] == 200
    assert response["headers"]["Content-Type"] == "application/json"
    assert "Show wizard" in response["body"]


def test_bad_signature_is_rejected(monkeypatch) -> None:
    monkeypatch.setattr("oncallbot.commands.verify.time.time", lambda: 1_700_000_000)
    body = urlencode({"team_id": "T1", "text": "new"})

    response = slack_request_handler(_command_event(body, "1700000000", "v0=deadbeef"), runtime=_runtime())

    assert response["statusCode"] == 400
    assert "signature" in response["body"]


def test_oauth_without_code() -> None:
    event = {"path": "/slack/oauth", "httpMethod": "GET", "queryStringParameters": None}

    response = slack_request_handler(event, runtime=_runtime())

    assert response["statusCode"] == 400


def test_oauth_callback_saves_installation() -> None:
    runtime = _runtime()
    payload = {
        "ok": True,
        "app_id": "A1",
        "authed_user": {"id": "U9"},
        "scope": "chat:write",
        "access_token": "xoxb-new",
        "token_type": "bot",
        "bot_user_id": "B1",
        "team": {"id": "T1", "name": "Acme"},
        "enterprise": {"id": "E1", "name": "Acme Corp"},
        "is_enterprise_install": True,
    }
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))
    runtime.http_client = lambda: httpx.AsyncClient(transport=transport)
    event = {"path": "/slack/oauth/", "httpMethod": "GET", "queryStringParameters": {"code": "tmp"}}

    response = slack_request_handler(event, runtime=runtime)

    assert response["statusCode"] == 200
    installation = runtime.installations.installations["T1:E1"]
    assert installation.access_token == "xoxb-new"
    assert installation.is_enterprise_install is True


def test_unknown_route() -> None:
    event = {"path": "/elsewhere", "httpMethod": "GET"}

    assert slack_request_handler(event, runtime=_runtime())["statusCode"] == 404
