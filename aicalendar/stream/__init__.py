"""Stream module -- SSE ingestion for streamed chat replies.

Public API: ChatClient, StreamSession, StreamCallbacks, FrameParser,
decode_event and the event/error types.
"""

from aicalendar.stream.client import ChatClient, ChatMessage
from aicalendar.stream.errors import ServerError, StreamError, TransportError
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
from aicalendar.stream.session import StreamCallbacks, StreamSession, format_thought

__all__ = [
    "ChatClient",
    "ChatMessage",
    "ErrorEvent",
    "Frame",
    "FrameParser",
    "Heartbeat",
    "MessageDelta",
    "MessageEnd",
    "MessageReplace",
    "ServerError",
    "StreamCallbacks",
    "StreamError",
    "StreamEvent",
    "StreamSession",
    "ThoughtStep",
    "TransportError",
    "UnknownEvent",
    "decode_event",
    "format_thought",
]
