"""Rotation tasks and their persistence."""

from oncallbot.tasks.store import InstallationStore, TaskStore
from oncallbot.tasks.types import RETIRED, Installation, Task, derive_task_id, team_key

__all__ = [
    "RETIRED",
    "Installation",
    "InstallationStore",
    "Task",
    "TaskStore",
    "derive_task_id",
    "team_key",
]
