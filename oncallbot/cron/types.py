"""Cron types."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Occurrence:
    """The next concrete firing of a cron expression in a timezone."""

    cron: str  # canonical form, seconds stripped
    timezone: str  # IANA name
    single_shot_expression: str  # same instant pinned to a year
    next_timestamp_utc: int
    next_datetime: datetime  # aware, in ``timezone``


@dataclass
class ExternalTrigger:
    """A one-shot wake-up entry as seen on the remote scheduler."""

    name: str
    next_timestamp_utc: int | None = None  # parsed back from ``name``
    expression: str | None = None
    timezone: str | None = None
    target: str | None = None
    description: str | None = None
