"""Exception hierarchy shared by every oncallbot component."""

from __future__ import annotations


class OncallError(Exception):
    """Base class for all oncallbot failures."""


class TransportError(OncallError):
    """A remote API could not be reached or answered with a failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SlackApiError(TransportError):
    """Slack answered with ``ok: false`` or a body that is not JSON."""

    def __init__(self, error: str, status_code: int | None = None):
        super().__init__(f"Slack error: {error}", status_code=status_code)
        self.error = error


class PagingApiError(TransportError):
    """PagerDuty answered with a non-2xx status."""


class NotFoundError(OncallError):
    """A referenced remote or stored entity does not exist."""


class GroupNotFoundError(NotFoundError):
    def __init__(self, name: str):
        super().__init__(f"User group not found in Slack: {name}")
        self.name = name


class UserNotFoundError(NotFoundError):
    def __init__(self, lookup: str):
        super().__init__(f"Couldn't find user in Slack: {lookup}")
        self.lookup = lookup


class InstallationNotFoundError(NotFoundError):
    def __init__(self, team_id: str):
        super().__init__(f"Could not find Slack installation for team: {team_id}")
        self.team_id = team_id


class ValidationError(OncallError, ValueError):
    """Malformed cron, timezone, or command input."""


class CredentialError(OncallError):
    """A required paging or messaging credential is missing or unusable."""


class ReconciliationError(OncallError):
    """The one-shot scheduler rejected a list, create, or delete call."""


class CryptoError(OncallError):
    """Encrypting or decrypting a stored token failed."""
