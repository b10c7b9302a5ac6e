"""Clients for the paging and messaging services."""

from oncallbot.providers.pagerduty import OnCallUser, PagerDutyClient
from oncallbot.providers.slack import SlackClient, UserGroup, exchange_oauth_code

__all__ = ["OnCallUser", "PagerDutyClient", "SlackClient", "UserGroup", "exchange_oauth_code"]
