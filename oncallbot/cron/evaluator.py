"""Cron evaluation in arbitrary timezones.

Expressions use the AWS-style layout with an optional leading seconds field
and an optional trailing year field:

- 5 fields: ``minute hour day month weekday``
- 6 fields: ``minute hour day month weekday year``
- 7 fields: ``second minute hour day month weekday year`` (second must be 0)

Everything is evaluated as 7 fields; the canonical form callers persist and
compare is the 6-field one without seconds.
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadDateError, CroniterError, croniter

from oncallbot.cron.types import Occurrence
from oncallbot.errors import ValidationError


def get_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name, raising ValidationError if unknown."""
    text = (name or "").strip()
    if not text:
        raise ValidationError("missing timezone")
    try:
        return ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"unknown timezone '{name}'") from None


def _split(cron_expr: str) -> list[str]:
    parts = (cron_expr or "").split()
    if len(parts) not in (5, 6, 7):
        raise ValidationError(
            f"invalid cron '{cron_expr}': expected 5, 6 or 7 fields, got {len(parts)}"
        )
    return parts


def normalize_cron(cron_expr: str) -> str:
    """Return the canonical 6-field form (no seconds, explicit year)."""
    parts = _split(cron_expr)
    if len(parts) == 7:
        if parts[0] != "0":
            raise ValidationError(f"invalid cron '{cron_expr}': seconds field must be 0")
        parts = parts[1:]
    elif len(parts) == 5:
        parts = parts + ["*"]
    return " ".join(parts)


def _full_expression(cron_expr: str) -> str:
    return f"0 {normalize_cron(cron_expr)}"


def single_shot_expression(at: datetime) -> str:
    """Pin ``at`` to a cron that matches exactly once."""
    return f"{at.minute} {at.hour} {at.day} {at.month} * {at.year}"


def _as_local(from_: datetime | int | float, tz: ZoneInfo) -> datetime:
    if isinstance(from_, datetime):
        if from_.tzinfo is None:
            raise ValidationError("reference datetime must be timezone-aware")
        moment = from_
    else:
        moment = datetime.fromtimestamp(int(from_), tz=dt_timezone.utc)
    return moment.astimezone(tz).replace(microsecond=0)


def validate_cron(cron_expr: str) -> str:
    """Check that ``cron_expr`` parses and return its canonical form."""
    canonical = normalize_cron(cron_expr)
    if not croniter.is_valid(_full_expression(cron_expr), second_at_beginning=True):
        raise ValidationError(f"invalid cron '{cron_expr}'")
    return canonical


def next_occurrence(
    cron_expr: str,
    timezone: str | ZoneInfo,
    from_: datetime | int | float,
) -> Occurrence | None:
    """Compute the first match strictly after ``from_``.

    Returns None when the expression can never fire again (for example a year
    field that lies in the past); callers treat that as retirement.
    """
    tz = timezone if isinstance(timezone, ZoneInfo) else get_timezone(timezone)
    canonical = normalize_cron(cron_expr)
    base = _as_local(from_, tz)

    try:
        it = croniter(_full_expression(canonical), base, second_at_beginning=True)
        nxt = it.get_next(datetime)
    except CroniterBadDateError:
        return None
    except (CroniterError, KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"invalid cron '{cron_expr}': {e}") from e

    nxt = nxt.astimezone(tz)
    return Occurrence(
        cron=canonical,
        timezone=tz.key,
        single_shot_expression=single_shot_expression(nxt),
        next_timestamp_utc=int(nxt.timestamp()),
        next_datetime=nxt,
    )
