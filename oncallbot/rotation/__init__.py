"""Roster sync and the per-invocation orchestrator."""

from oncallbot.rotation.orchestrator import Orchestrator, RunReport, earliest_occurrence
from oncallbot.rotation.roster import RosterSync, format_update_message

__all__ = ["Orchestrator", "RosterSync", "RunReport", "earliest_occurrence", "format_update_message"]
