"""Typed stream events and the JSON payload decoder.

Each `data:` frame carries a JSON object with an `event` tag. The tag picks
a strict payload model; a payload that does not validate is dropped rather
than producing an event with missing fields.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ERROR_STATUS = 500


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MessageDelta:
    """Incremental answer text, appended to the response."""

    text: str


@dataclass(frozen=True)
class MessageReplace:
    """Replacement for the whole accumulated response."""

    text: str


@dataclass(frozen=True)
class ThoughtStep:
    """A reasoning trace entry. Never part of the final answer."""

    position: int
    thought: str
    tool: str
    tool_input: str
    observation: str


@dataclass(frozen=True)
class MessageEnd:
    message_id: str | None = None
    conversation_id: str | None = None


@dataclass(frozen=True)
class ErrorEvent:
    code: int
    message: str


@dataclass(frozen=True)
class Heartbeat:
    pass


@dataclass(frozen=True)
class UnknownEvent:
    name: str


StreamEvent = Union[
    MessageDelta,
    MessageReplace,
    ThoughtStep,
    MessageEnd,
    ErrorEvent,
    Heartbeat,
    UnknownEvent,
]


# ---------------------------------------------------------------------------
# Wire payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")


class AnswerPayload(_Payload):
    answer: str


class ThoughtPayload(_Payload):
    thought: str = Field(min_length=1)
    observation: str
    tool: str
    tool_input: str
    position: int


class MessageEndPayload(_Payload):
    message_id: str | None = None
    conversation_id: str | None = None


class ErrorPayload(_Payload):
    message: str
    status: int = DEFAULT_ERROR_STATUS


def decode_event(payload: str) -> StreamEvent | None:
    """Decode one frame's JSON payload into a StreamEvent.

    Returns None when the payload is not a JSON object, has no string
    `event` tag, or its fields fail validation for that tag.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug("Dropping frame with invalid JSON (%s): %.120r", e, payload)
        return None

    if not isinstance(data, dict):
        logger.debug("Dropping non-object payload: %.120r", payload)
        return None

    event_name = data.get("event")
    if not isinstance(event_name, str):
        logger.debug("Dropping payload without event tag: %.120r", payload)
        return None

    try:
        if event_name == "agent_message":
            return MessageDelta(text=AnswerPayload.model_validate(data).answer)

        if event_name == "message_replace":
            return MessageReplace(text=AnswerPayload.model_validate(data).answer)

        if event_name == "agent_thought":
            thought = ThoughtPayload.model_validate(data)
            return ThoughtStep(
                position=thought.position,
                thought=thought.thought,
                tool=thought.tool,
                tool_input=thought.tool_input,
                observation=thought.observation,
            )

        if event_name == "message_end":
            end = MessageEndPayload.model_validate(data)
            return MessageEnd(
                message_id=end.message_id,
                conversation_id=end.conversation_id,
            )

        if event_name == "error":
            status = data.get("status")
            if not isinstance(status, int) or isinstance(status, bool):
                # Unusable status falls back to the default, message still counts
                data = {k: v for k, v in data.items() if k != "status"}
            error = ErrorPayload.model_validate(data)
            return ErrorEvent(code=error.status, message=error.message)

    except ValidationError as e:
        logger.debug(
            "Dropping %s event with invalid fields: %s",
            event_name,
            e.errors(include_url=False),
        )
        return None

    return UnknownEvent(name=event_name)
