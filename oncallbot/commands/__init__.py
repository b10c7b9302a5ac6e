"""Slack slash command surface."""

from oncallbot.commands.handler import CommandContext, CommandHandler, CommandResponse
from oncallbot.commands.parser import parse_command, parse_user_group
from oncallbot.commands.verify import compute_signature, verify_request

__all__ = [
    "CommandContext",
    "CommandHandler",
    "CommandResponse",
    "compute_signature",
    "parse_command",
    "parse_user_group",
    "verify_request",
]
