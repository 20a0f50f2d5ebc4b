"""Slash command parsing for pull request comments."""

from .models import Command
from .parser import CI_COMMAND_PATTERN, CommandParser

__all__ = ["CI_COMMAND_PATTERN", "Command", "CommandParser"]
