"""Chat client -- streams replies from the remote chat-messages endpoint.

Owns the httpx client, builds the request, and pumps response bytes into
a StreamSession. Keeps a short local transcript of the conversation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from aicalendar.config import Settings
from aicalendar.schedule.commands import CommandExtractor
from aicalendar.stream.errors import ServerError, TransportError
from aicalendar.stream.session import StreamCallbacks, StreamSession

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a scheduling assistant. Arrange the user's calendar as asked.

When the user wants to change the calendar, reply with a single JSON object
and nothing else. Supported operations:

1. Add a schedule:
{
    "operation": "add",
    "schedule": {
        "title": "Project review",
        "startTime": "2024-04-02T14:30:00",
        "endTime": "2024-04-02T16:00:00"
    }
}

2. Update a schedule:
{
    "operation": "update",
    "oldSchedule": {
        "title": "Project review",
        "startTime": "2024-04-02T14:30:00",
        "endTime": "2024-04-02T16:00:00"
    },
    "newSchedule": {
        "title": "Project review meeting",
        "startTime": "2024-04-02T15:00:00",
        "endTime": "2024-04-02T16:30:00"
    }
}

3. Delete a schedule:
{
    "operation": "delete",
    "schedule": {
        "title": "Project review",
        "startTime": "2024-04-02T14:30:00",
        "endTime": "2024-04-02T16:00:00"
    }
}

Rules:
1. All times use ISO 8601.
2. Titles must not be empty.
3. The end time must be after the start time.
4. Updates and deletes must give the complete existing schedule.
5. Schedules must not overlap existing ones.
"""


@dataclass
class ChatMessage:
    """A single message in the local transcript."""

    role: str  # "system", "user" or "assistant"
    content: str


class ChatClient:
    """Streams chat replies and applies embedded schedule commands."""

    def __init__(
        self,
        settings: Settings,
        extractor: CommandExtractor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._extractor = extractor
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._history: list[ChatMessage] = []
        self._conversation_id = ""

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings
        headers = {"Content-Type": "application/json"}
        if settings.chat_api_token:
            headers["Authorization"] = f"Bearer {settings.chat_api_token}"
        else:
            logger.warning("CHAT_API_TOKEN is not set -- chat requests will likely be rejected")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        self._http = httpx.AsyncClient(
            headers=headers,
            timeout=timeout,
            transport=self._transport,
        )
        logger.info("Chat client initialized (endpoint: %s)", settings.chat_api_url)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    @property
    def history(self) -> list[ChatMessage]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()
        self._conversation_id = ""

    def _add_to_history(self, role: str, content: str) -> None:
        self._history.append(ChatMessage(role=role, content=content))
        if len(self._history) > self._settings.max_history_messages:
            # Drop the oldest non-system message
            for i, message in enumerate(self._history):
                if message.role != "system":
                    del self._history[i]
                    break

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def build_payload(self, prompt: str) -> dict[str, Any]:
        """Request body for the chat-messages endpoint."""
        return {
            "inputs": {},
            "query": prompt,
            "response_mode": "streaming",
            "conversation_id": self._conversation_id if self._settings.keep_conversation else "",
            "user": self._settings.chat_user,
        }

    def _wrap_callbacks(self, callbacks: StreamCallbacks) -> StreamCallbacks:
        def on_complete(text: str | None, error: Exception | None) -> None:
            if text is not None and error is None:
                self._add_to_history("assistant", text)
            callbacks.on_complete(text, error)

        return StreamCallbacks(
            on_delta=callbacks.on_delta,
            on_thought=callbacks.on_thought,
            on_loading_change=callbacks.on_loading_change,
            on_complete=on_complete,
        )

    async def send_message_stream(
        self,
        prompt: str,
        callbacks: StreamCallbacks,
    ) -> StreamSession:
        """Send a prompt and stream the reply through callbacks.

        Returns the finished session. Exactly one on_complete call is made,
        including for HTTP and transport failures.
        """
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        self._add_to_history("user", prompt)
        session = StreamSession(
            self._wrap_callbacks(callbacks),
            extractor=self._extractor,
            heartbeat_timeout=self._settings.heartbeat_timeout,
        )
        payload = self.build_payload(prompt)
        logger.debug("Streaming request: %.200s", prompt)

        try:
            async with self._http.stream("POST", self._settings.chat_api_url, json=payload) as response:
                if not response.is_success:
                    body = await response.aread()
                    message = body.decode("utf-8", errors="replace")[:500]
                    logger.warning("Chat API error %d: %s", response.status_code, message)
                    await session.finish(ServerError(response.status_code, message))
                    return session

                async for chunk in response.aiter_bytes():
                    await session.feed(chunk)
                    if not session.is_open:
                        break

        except httpx.HTTPError as e:
            await session.finish(TransportError(f"HTTP error: {e}"))
            return session
        except asyncio.CancelledError:
            await session.finish(TransportError("request cancelled"))
            raise
        except Exception as e:
            # Caller callback raised mid-stream; still complete once, then propagate
            await session.finish(e)
            raise

        await session.finish()
        if session.conversation_id:
            self._conversation_id = session.conversation_id
        return session
