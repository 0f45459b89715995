"""Stream session -- one request/response exchange with the chat endpoint.

Drives bytes through FrameParser and decode_event, accumulates the answer,
tracks heartbeat liveness and invokes the caller's callbacks in frame
order. The transport driver calls feed() per delivery and finish() once
when the response closes; everything triggered by one delivery completes
before feed() returns.

Heartbeat supersession: every ping bumps a token. The deferred
"loading off" check only fires if its token is still the latest one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from aicalendar.schedule.commands import CommandExtractor, ScheduleCommand, is_json_object
from aicalendar.stream.errors import ServerError
from aicalendar.stream.events import (
    ErrorEvent,
    Heartbeat,
    MessageDelta,
    MessageEnd,
    MessageReplace,
    StreamEvent,
    ThoughtStep,
    UnknownEvent,
    decode_event,
)
from aicalendar.stream.frames import Frame, FrameParser

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_TIMEOUT = 3.0

# (delay_seconds, callback) -> handle; asyncio's call_later shape
Scheduler = Callable[[float, Callable[[], None]], Any]


def _noop(*args: Any) -> None:
    pass


@dataclass
class StreamCallbacks:
    """The four callbacks a session reports through."""

    on_delta: Callable[[str], None] = _noop
    on_thought: Callable[[str], None] = _noop
    on_loading_change: Callable[[bool], None] = _noop
    on_complete: Callable[[str | None, Exception | None], None] = _noop


def format_thought(step: ThoughtStep) -> str:
    """Render a thought step as a quoted narrative block."""
    lines = [
        f"Thought process #{step.position}",
        "----------------",
        f"Thought: {step.thought}",
        f"Tool: {step.tool}",
        f"Tool input: {step.tool_input}",
        f"Observation: {step.observation}",
    ]
    quoted = "\n".join(f">{line}" for line in lines)
    return f"\n\n<Thought process #{step.position}>\n\n{quoted}\n\n"


def _default_scheduler(delay: float, callback: Callable[[], None]) -> Any:
    return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class _State:
    accumulated_text: str = ""
    pending_candidate_json: str | None = None
    thought_transcript: list[str] = field(default_factory=list)
    last_heartbeat_at: float | None = None
    heartbeat_token: int = 0
    loading: bool = False
    message_id: str | None = None
    conversation_id: str | None = None
    ended: bool = False
    is_open: bool = True


class StreamSession:
    """Single-request state machine over an SSE byte stream."""

    def __init__(
        self,
        callbacks: StreamCallbacks,
        extractor: CommandExtractor | None = None,
        heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callbacks = callbacks
        self._extractor = extractor
        self._heartbeat_timeout = heartbeat_timeout
        self._scheduler = scheduler or _default_scheduler
        self._clock = clock
        self._parser = FrameParser()
        self._state = _State()
        self.applied_command: ScheduleCommand | None = None

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._state.is_open

    @property
    def accumulated_text(self) -> str:
        return self._state.accumulated_text

    @property
    def pending_candidate_json(self) -> str | None:
        return self._state.pending_candidate_json

    @property
    def thought_transcript(self) -> str:
        return "".join(self._state.thought_transcript)

    @property
    def last_heartbeat_at(self) -> float | None:
        return self._state.last_heartbeat_at

    @property
    def message_id(self) -> str | None:
        return self._state.message_id

    @property
    def conversation_id(self) -> str | None:
        return self._state.conversation_id

    # ------------------------------------------------------------------
    # Transport entry points
    # ------------------------------------------------------------------

    async def feed(self, data: bytes) -> None:
        """Process one byte delivery from the transport."""
        if not self._state.is_open:
            return
        await self._process_frames(self._parser.feed(data))

    async def finish(self, error: Exception | None = None) -> None:
        """Transport closed. Flush on clean close, then complete once."""
        if not self._state.is_open:
            return

        if error is not None:
            logger.warning("Stream ended with transport error: %s", error)
            self._complete(None, error)
            return

        await self._process_frames(self._parser.feed(b"", complete=True))
        if self._state.is_open:
            self._complete(self._state.accumulated_text, None)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def _process_frames(self, frames: list[Frame]) -> None:
        for frame in frames:
            if not self._state.is_open:
                # Terminal error earlier in this delivery
                break
            if frame.is_heartbeat:
                event: StreamEvent | None = Heartbeat()
            else:
                event = decode_event(frame.payload)
            if event is not None:
                await self._handle_event(event)

    async def _handle_event(self, event: StreamEvent) -> None:
        state = self._state

        if isinstance(event, MessageDelta):
            state.accumulated_text += event.text
            self._track_candidate(event.text)
            self._callbacks.on_delta(event.text)

        elif isinstance(event, MessageReplace):
            state.accumulated_text = event.text
            self._track_candidate(event.text)
            self._callbacks.on_delta(event.text)

        elif isinstance(event, ThoughtStep):
            block = format_thought(event)
            state.thought_transcript.append(block)
            self._callbacks.on_thought(block)

        elif isinstance(event, Heartbeat):
            self._on_heartbeat()

        elif isinstance(event, MessageEnd):
            state.message_id = event.message_id
            state.conversation_id = event.conversation_id
            if not state.ended:
                state.ended = True
                await self._extract_command()

        elif isinstance(event, ErrorEvent):
            logger.warning("Server error event %d: %s", event.code, event.message)
            self._complete(None, ServerError(event.code, event.message))

        elif isinstance(event, UnknownEvent):
            logger.debug("Ignoring event %r", event.name)

    def _track_candidate(self, text: str) -> None:
        if is_json_object(text):
            self._state.pending_candidate_json = text

    async def _extract_command(self) -> None:
        if self._extractor is None:
            return
        state = self._state
        # Candidate first, then the assembled reply
        candidates = [state.pending_candidate_json, state.accumulated_text]
        try:
            for candidate in candidates:
                if not candidate:
                    continue
                self.applied_command = await self._extractor.extract_and_apply(candidate)
                if self.applied_command is not None:
                    break
        except Exception:
            logger.exception("Applying schedule command failed")

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _on_heartbeat(self) -> None:
        state = self._state
        state.last_heartbeat_at = self._clock()
        state.heartbeat_token += 1
        token = state.heartbeat_token
        self._set_loading(True)
        self._scheduler(self._heartbeat_timeout, lambda: self._heartbeat_expired(token))

    def _heartbeat_expired(self, token: int) -> None:
        state = self._state
        if not state.is_open or token != state.heartbeat_token:
            return
        self._set_loading(False)

    def _set_loading(self, loading: bool) -> None:
        self._state.loading = loading
        self._callbacks.on_loading_change(loading)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _complete(self, text: str | None, error: Exception | None) -> None:
        state = self._state
        state.is_open = False
        # Supersede any pending heartbeat check
        state.heartbeat_token += 1
        if state.loading:
            self._set_loading(False)
        self._callbacks.on_complete(text, error)
