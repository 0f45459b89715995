"""Schedule commands embedded in assistant replies.

Most replies are plain prose. A reply that is a JSON object with an
`operation` of add, update or delete is a command against the schedule
store; anything else is ignored without error.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from aicalendar.schedule.schemas import Schedule
from aicalendar.schedule.store import ScheduleStore

logger = logging.getLogger(__name__)

# ```json ... ``` wrapper some models put around the object
_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class AddCommand(_Command):
    operation: Literal["add"] = "add"
    schedule: Schedule


class UpdateCommand(_Command):
    operation: Literal["update"] = "update"
    old_schedule: Schedule = Field(alias="oldSchedule")
    new_schedule: Schedule = Field(alias="newSchedule")


class DeleteCommand(_Command):
    operation: Literal["delete"] = "delete"
    schedule: Schedule


ScheduleCommand = Annotated[
    Union[AddCommand, UpdateCommand, DeleteCommand],
    Field(discriminator="operation"),
]

_command_adapter: TypeAdapter[ScheduleCommand] = TypeAdapter(ScheduleCommand)


def is_json_object(text: str) -> bool:
    """True if text parses as a JSON object. Bare tokens like `"add"` do not count."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return False
    return isinstance(data, dict)


def _strip_fence(text: str) -> str:
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_command(text: str | None) -> ScheduleCommand | None:
    """Parse text into a ScheduleCommand, or None if it is not one."""
    if not text:
        return None

    try:
        data = json.loads(_strip_fence(text))
    except json.JSONDecodeError:
        return None

    if not isinstance(data, dict) or data.get("operation") not in ("add", "update", "delete"):
        return None

    try:
        return _command_adapter.validate_python(data)
    except ValidationError as e:
        logger.debug(
            "Skipping malformed %s command: %s",
            data["operation"],
            e.errors(include_url=False),
        )
        return None


class CommandExtractor:
    """Detects schedule commands and applies them to a ScheduleStore."""

    def __init__(self, store: ScheduleStore) -> None:
        self._store = store

    def extract(self, text: str | None) -> ScheduleCommand | None:
        return parse_command(text)

    async def apply(self, command: ScheduleCommand) -> None:
        """Apply a command. Update is delete-then-save and not atomic."""
        if isinstance(command, AddCommand):
            await self._store.save(command.schedule)
            logger.info("Added schedule %r", command.schedule.title)

        elif isinstance(command, UpdateCommand):
            try:
                await self._store.delete(command.old_schedule)
            except Exception:
                logger.exception(
                    "Delete step of update failed for %r, saving replacement anyway",
                    command.old_schedule.title,
                )
            await self._store.save(command.new_schedule)
            logger.info(
                "Updated schedule %r -> %r",
                command.old_schedule.title,
                command.new_schedule.title,
            )

        elif isinstance(command, DeleteCommand):
            await self._store.delete(command.schedule)
            logger.info("Deleted schedule %r", command.schedule.title)

    async def extract_and_apply(self, text: str | None) -> ScheduleCommand | None:
        """Extract a command from text and apply it. Returns what was applied."""
        command = self.extract(text)
        if command is None:
            return None
        await self.apply(command)
        return command
