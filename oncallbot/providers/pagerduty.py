"""PagerDuty REST client: who is on call for a schedule."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from loguru import logger

from oncallbot.errors import PagingApiError, TransportError

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class OnCallUser:
    name: str
    email: str


class PagerDutyClient:
    """Minimal PagerDuty client bound to one API token."""

    def __init__(
        self,
        api_token: str,
        http: httpx.AsyncClient,
        api_base: str = "https://api.pagerduty.com",
        window_minutes: int = 10,
    ):
        self.api_token = api_token
        self.api_base = api_base.rstrip("/")
        self.window = timedelta(minutes=window_minutes)
        self._http = http

    async def list_on_call(self, schedule_id: str, since: datetime) -> list[OnCallUser]:
        """
        List the users on call for ``schedule_id`` in ``[since, since + window)``.

        Users come back in the order PagerDuty reports them.
        """
        start = since.astimezone(timezone.utc)
        params = {
            "time_zone": "UTC",
            "since": start.strftime(_TIME_FORMAT),
            "until": (start + self.window).strftime(_TIME_FORMAT),
        }
        url = f"{self.api_base}/schedules/{schedule_id}/users"

        try:
            response = await self._http.get(
                url,
                params=params,
                headers={"Authorization": f"Token token={self.api_token}"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"PagerDuty request failed: {e}") from e

        if response.is_error:
            logger.error("PagerDuty {} answered {}: {}", url, response.status_code, response.text)
            raise PagingApiError(
                f"PagerDuty error {response.status_code} for schedule {schedule_id}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise PagingApiError(f"PagerDuty returned invalid JSON: {e}") from e

        users = [
            OnCallUser(name=u.get("name", ""), email=u.get("email", ""))
            for u in payload.get("users") or []
        ]
        logger.debug("PagerDuty schedule {}: {} on call", schedule_id, len(users))
        return users
