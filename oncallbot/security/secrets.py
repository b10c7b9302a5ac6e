"""Application secrets stored as one JSON document in AWS Secrets Manager."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from oncallbot.errors import CredentialError

_REQUIRED_KEYS = (
    "encryption_key",
    "slack_client_id",
    "slack_client_secret",
    "slack_signing_secret",
)


@dataclass
class Secrets:
    encryption_key: str
    slack_client_id: str
    slack_client_secret: str
    slack_signing_secret: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Secrets":
        missing = [k for k in _REQUIRED_KEYS if not data.get(k)]
        if missing:
            raise CredentialError(f"Secret is missing keys: {', '.join(missing)}")
        return cls(**{k: str(data[k]) for k in _REQUIRED_KEYS})


class SecretsClient:
    """Fetches and caches the application secret."""

    def __init__(self, client: Any, secret_name: str):
        self._client = client
        self.secret_name = secret_name
        self._cached: Secrets | None = None

    def get(self) -> Secrets:
        if self._cached is not None:
            return self._cached

        try:
            response = self._client.get_secret_value(SecretId=self.secret_name)
        except (ClientError, BotoCoreError) as e:
            raise CredentialError(f"Failed to read secret {self.secret_name}: {e}") from e

        raw = response.get("SecretString")
        if not raw:
            raise CredentialError(f"Secret {self.secret_name} has no string value")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CredentialError(f"Secret {self.secret_name} is not valid JSON") from e

        self._cached = Secrets.from_dict(data)
        logger.debug("Loaded secret {}", self.secret_name)
        return self._cached
