"""One-shot wake-up trigger management."""

from oncallbot.scheduler.eventbridge import EventBridgeScheduler, parse_trigger_timestamp
from oncallbot.scheduler.reconciler import GRACE_SECONDS, ReconcileResult, TriggerReconciler

__all__ = [
    "GRACE_SECONDS",
    "EventBridgeScheduler",
    "ReconcileResult",
    "TriggerReconciler",
    "parse_trigger_timestamp",
]
