"""REST API for the AI calendar.

Endpoints:
  POST   /chat/stream   - Stream an assistant reply as SSE
  GET    /chat/history  - Local chat transcript
  DELETE /chat/history  - Clear the transcript
  GET    /schedules     - Schedules for a day (?date=YYYY-MM-DD)
  POST   /schedules     - Add a schedule
  DELETE /schedules     - Delete a schedule by exact match
  GET    /health        - Health check (DB connectivity)
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date
from typing import Any

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from aicalendar.config import Settings
from aicalendar.schedule.schemas import Schedule
from aicalendar.schedule.store import ScheduleStore
from aicalendar.storage.database import Database
from aicalendar.stream.client import ChatClient
from aicalendar.stream.errors import StreamError
from aicalendar.stream.session import StreamCallbacks

logger = logging.getLogger(__name__)


def _sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


def _error_payload(error: Exception) -> dict[str, Any]:
    code = error.code if isinstance(error, StreamError) else 0
    return {"type": "error", "code": code, "text": str(error)}


def create_app(
    client: ChatClient,
    store: ScheduleStore,
    database: Database,
    settings: Settings,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def _read_json(request: Request) -> dict[str, Any] | None:
        try:
            body = await request.json()
        except Exception:
            return None
        return body if isinstance(body, dict) else None

    async def chat_stream(request: Request) -> StreamingResponse:
        """POST /chat/stream - relay the streamed reply as SSE."""
        body = await _read_json(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)

        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

        def on_complete(text: str | None, error: Exception | None) -> None:
            if error is not None:
                queue.put_nowait(_error_payload(error))
            else:
                queue.put_nowait({"type": "complete", "text": text or ""})

        callbacks = StreamCallbacks(
            on_delta=lambda text: queue.put_nowait({"type": "delta", "text": text}),
            on_thought=lambda text: queue.put_nowait({"type": "thought", "text": text}),
            on_loading_change=lambda loading: queue.put_nowait({"type": "loading", "loading": loading}),
            on_complete=on_complete,
        )

        def relay_failure(task: asyncio.Task) -> None:
            # Raised before on_complete could run; unblock the reader
            if not task.cancelled() and task.exception() is not None:
                queue.put_nowait(_error_payload(task.exception()))

        async def event_generator():
            task = asyncio.create_task(client.send_message_stream(message, callbacks))
            task.add_done_callback(relay_failure)
            try:
                while True:
                    item = await queue.get()
                    yield _sse(item)
                    if item["type"] in ("complete", "error"):
                        break
                session = await task
                if session.applied_command is not None:
                    yield _sse({
                        "type": "command",
                        "operation": session.applied_command.operation,
                    })
            except Exception as e:
                logger.error("Stream relay error: %s", e)
            finally:
                if not task.done():
                    task.cancel()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    async def get_history(request: Request) -> JSONResponse:
        """GET /chat/history - local transcript."""
        return JSONResponse({
            "messages": [{"role": m.role, "content": m.content} for m in client.history]
        })

    async def clear_history(request: Request) -> JSONResponse:
        """DELETE /chat/history - clear the transcript."""
        client.clear_history()
        return JSONResponse({"status": "cleared"})

    async def list_schedules(request: Request) -> JSONResponse:
        """GET /schedules?date=YYYY-MM-DD - schedules for one day."""
        raw = request.query_params.get("date")
        if not raw:
            return JSONResponse({"error": "Missing required query param: date"}, status_code=400)
        try:
            day = date.fromisoformat(raw)
        except ValueError:
            return JSONResponse({"error": f"Invalid date: {raw}"}, status_code=400)

        schedules = await store.fetch(day)
        return JSONResponse({
            "date": day.isoformat(),
            "schedules": [s.to_wire() for s in schedules],
        })

    async def _schedule_from_body(request: Request) -> Schedule | JSONResponse:
        body = await _read_json(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        try:
            return Schedule.model_validate(body)
        except ValidationError as e:
            return JSONResponse(
                {"error": "Invalid schedule", "detail": e.errors(include_url=False, include_context=False)},
                status_code=400,
            )

    async def add_schedule(request: Request) -> JSONResponse:
        """POST /schedules - add a schedule."""
        schedule = await _schedule_from_body(request)
        if isinstance(schedule, JSONResponse):
            return schedule
        await store.save(schedule)
        return JSONResponse(schedule.to_wire(), status_code=201)

    async def delete_schedule(request: Request) -> JSONResponse:
        """DELETE /schedules - delete by exact (title, start, end)."""
        schedule = await _schedule_from_body(request)
        if isinstance(schedule, JSONResponse):
            return schedule
        deleted = await store.delete(schedule)
        return JSONResponse({"deleted": deleted})

    async def health(request: Request) -> JSONResponse:
        """GET /health - DB connectivity."""
        try:
            await database.ping()
            return JSONResponse({"status": "healthy", "database": "connected"})
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return JSONResponse(
                {"status": "unhealthy", "database": str(e)},
                status_code=503,
            )

    routes = [
        Route("/chat/stream", chat_stream, methods=["POST"]),
        Route("/chat/history", get_history, methods=["GET"]),
        Route("/chat/history", clear_history, methods=["DELETE"]),
        Route("/schedules", list_schedules, methods=["GET"]),
        Route("/schedules", add_schedule, methods=["POST"]),
        Route("/schedules", delete_schedule, methods=["DELETE"]),
        Route("/health", health),
    ]

    return Starlette(routes=routes, lifespan=lifespan)
