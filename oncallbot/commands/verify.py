"""Slack request signing (``X-Slack-Signature``)."""

from __future__ import annotations

import hashlib
import hmac
import time

from oncallbot.errors import ValidationError


def compute_signature(signing_secret: str, timestamp: str, body: str) -> str:
    base = f"v0:{timestamp}:{body}".encode("utf-8")
    digest = hmac.new(signing_secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_request(
    signing_secret: str,
    timestamp: str | None,
    body: str,
    signature: str | None,
    now: float | None = None,
    max_age_s: int = 300,
) -> None:
    """Raise ValidationError unless the request was signed by Slack recently."""
    if not timestamp or not signature:
        raise ValidationError("Missing Slack signature headers")
    try:
        ts = int(timestamp)
    except ValueError:
        raise ValidationError(f"Invalid Slack request timestamp: {timestamp}") from None

    current = int(time.time() if now is None else now)
    if abs(current - ts) > max_age_s:
        raise ValidationError("Invalid slack command due to invalid timestamp")

    expected = compute_signature(signing_secret, timestamp, body)
    if not hmac.compare_digest(expected, signature):
        raise ValidationError("Invalid slack command signature")
