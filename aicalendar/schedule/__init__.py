"""Schedule module -- calendar entries, the store, and chat commands.

Public API: Schedule, ScheduleStore, CommandExtractor and command types.
"""

from aicalendar.schedule.commands import (
    AddCommand,
    CommandExtractor,
    DeleteCommand,
    ScheduleCommand,
    UpdateCommand,
    parse_command,
)
from aicalendar.schedule.schemas import Schedule
from aicalendar.schedule.store import ScheduleStore

__all__ = [
    "AddCommand",
    "CommandExtractor",
    "DeleteCommand",
    "Schedule",
    "ScheduleCommand",
    "ScheduleStore",
    "UpdateCommand",
    "parse_command",
]
