"""Cron evaluation for rotation schedules."""

from oncallbot.cron.evaluator import get_timezone, next_occurrence, normalize_cron, validate_cron
from oncallbot.cron.types import ExternalTrigger, Occurrence

__all__ = [
    "ExternalTrigger",
    "Occurrence",
    "get_timezone",
    "next_occurrence",
    "normalize_cron",
    "validate_cron",
]
