"""Copy the on-call roster of a paging schedule into a Slack user group."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from oncallbot.config.schema import RotationConfig
from oncallbot.errors import ValidationError
from oncallbot.tasks.types import Task

PagingFactory = Callable[[str], Any]
MessagingFactory = Callable[[str], Any]


def format_update_message(group_id: str, user_ids: list[str]) -> str:
    mentions = ", ".join(f"<@{uid}>" for uid in user_ids)
    return f"Updated support user group <!subteam^{group_id}> to: {mentions}"


class RosterSync:
    """
    Make a task's user group mirror who is on call.

    Clients are built per call from a token via ``paging_factory`` and
    ``messaging_factory`` so one instance serves every workspace.
    """

    def __init__(
        self,
        paging_factory: PagingFactory,
        messaging_factory: MessagingFactory,
        config: RotationConfig | None = None,
    ):
        self.paging_factory = paging_factory
        self.messaging_factory = messaging_factory
        self.config = config or RotationConfig()

    async def sync(
        self,
        task: Task,
        paging_token: str,
        messaging_token: str,
        at: datetime | None = None,
    ) -> bool:
        """Update the group membership; return True when it changed."""
        since = at or datetime.now(timezone.utc)
        paging = self.paging_factory(paging_token)
        slack = self.messaging_factory(messaging_token)

        on_call = await paging.list_on_call(task.paging_schedule_id, since)
        logger.info(
            "Task {}: {} on call for schedule {}", task.task_id, len(on_call), task.paging_schedule_id
        )
        for user in on_call:
            logger.debug("  - {} <{}>", user.name, user.email)

        desired: list[str] = []
        for user in on_call:
            slack_user = await slack.find_user_by_email(user.email)
            desired.append(slack_user.id)

        group = await slack.find_group(task.group_handle or task.group_id)
        current = await slack.list_group_members(group.id)
        logger.debug("Group {} members: current={} desired={}", group.handle, current, desired)

        if len(current) > len(desired) + self.config.membership_surplus_threshold:
            logger.warning(
                "Group {} has {} members but only {} are on call; is it the right group?",
                group.handle,
                len(current),
                len(desired),
            )
            if self.config.membership_policy == "abort":
                raise ValidationError(
                    f"Too many users in group {group.handle} ({len(current)}), is the group correct?"
                )

        changed = desired != current
        await slack.set_group_members(group.id, desired)

        if changed:
            await slack.post_message(task.channel_id, format_update_message(group.id, desired))
            logger.info("Group {} updated to {}", group.handle, desired)
        else:
            logger.info("Group {} unchanged", group.handle)
        return changed
