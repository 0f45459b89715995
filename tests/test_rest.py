"""Integration tests for REST API endpoints.

Uses httpx AsyncClient with ASGITransport for async HTTP testing.
MockChatClient for /chat endpoints, a real SQLite store for /schedules.
"""

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from aicalendar.schedule.commands import AddCommand
from aicalendar.schedule.schemas import Schedule
from aicalendar.stream.client import ChatMessage
from aicalendar.stream.errors import ServerError

STANDUP = {
    "title": "Standup",
    "startTime": "2024-04-02T09:00:00Z",
    "endTime": "2024-04-02T09:30:00Z",
}


# ---------------------------------------------------------------------------
# Mock ChatClient
# ---------------------------------------------------------------------------


class _FakeSession:
    def __init__(self, applied_command=None) -> None:
        self.applied_command = applied_command


class MockChatClient:
    """Replays canned callbacks from send_message_stream()."""

    def __init__(self) -> None:
        self.prompts: list[str] = []
        self.fail_with: Exception | None = None
        self.applied_command = None
        self._history: list[ChatMessage] = []

    @property
    def history(self) -> list[ChatMessage]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    async def send_message_stream(self, prompt, callbacks):
        self.prompts.append(prompt)
        self._history.append(ChatMessage(role="user", content=prompt))
        callbacks.on_loading_change(True)
        callbacks.on_thought("\n\n<Thought process #1>\n\n")
        callbacks.on_delta("Hello ")
        callbacks.on_delta("there")
        callbacks.on_loading_change(False)
        if self.fail_with is not None:
            callbacks.on_complete(None, self.fail_with)
        else:
            self._history.append(ChatMessage(role="assistant", content="Hello there"))
            callbacks.on_complete("Hello there", None)
        return _FakeSession(self.applied_command)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_client():
    return MockChatClient()


@pytest.fixture
def app(mock_client, store, db, settings):
    from aicalendar.api.rest import create_app

    return create_app(mock_client, store, db, settings)


@pytest_asyncio.fixture
async def http(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def _sse_events(body: str) -> list[dict]:
    return [
        json.loads(chunk[len("data: "):])
        for chunk in body.split("\n\n")
        if chunk.startswith("data: ")
    ]


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChatStream:
    async def test_stream_relays_callbacks(self, http, mock_client):
        resp = await http.post("/chat/stream", json={"message": "hi"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")

        events = _sse_events(resp.text)
        assert [e["type"] for e in events] == [
            "loading", "thought", "delta", "delta", "loading", "complete",
        ]
        assert events[-1]["text"] == "Hello there"
        assert mock_client.prompts == ["hi"]

    async def test_stream_error(self, http, mock_client):
        mock_client.fail_with = ServerError(429, "rate limited")
        resp = await http.post("/chat/stream", json={"message": "hi"})

        events = _sse_events(resp.text)
        assert events[-1] == {"type": "error", "code": 429, "text": "rate limited"}

    async def test_stream_client_crash_still_terminates(self, http, mock_client):
        async def crash(prompt, callbacks):
            raise RuntimeError("httpx client not initialized")

        mock_client.send_message_stream = crash
        resp = await http.post("/chat/stream", json={"message": "hi"})

        events = _sse_events(resp.text)
        assert events == [{"type": "error", "code": 0, "text": "httpx client not initialized"}]

    async def test_stream_reports_applied_command(self, http, mock_client):
        mock_client.applied_command = AddCommand(schedule=Schedule.model_validate(STANDUP))
        resp = await http.post("/chat/stream", json={"message": "add standup"})

        events = _sse_events(resp.text)
        assert events[-1] == {"type": "command", "operation": "add"}

    async def test_missing_message(self, http):
        resp = await http.post("/chat/stream", json={})
        assert resp.status_code == 400
        assert "message" in resp.json()["error"]

    async def test_invalid_json(self, http):
        resp = await http.post(
            "/chat/stream", content=b"not json", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400

    async def test_history_and_clear(self, http):
        await http.post("/chat/stream", json={"message": "hi"})
        resp = await http.get("/chat/history")
        assert resp.json()["messages"] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "Hello there"},
        ]

        resp = await http.delete("/chat/history")
        assert resp.json() == {"status": "cleared"}
        assert (await http.get("/chat/history")).json()["messages"] == []


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


class TestSchedules:
    async def test_add_then_list(self, http):
        resp = await http.post("/schedules", json=STANDUP)
        assert resp.status_code == 201
        assert resp.json()["title"] == "Standup"

        resp = await http.get("/schedules", params={"date": "2024-04-02"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["date"] == "2024-04-02"
        assert [s["title"] for s in data["schedules"]] == ["Standup"]

    async def test_list_other_day_empty(self, http):
        await http.post("/schedules", json=STANDUP)
        resp = await http.get("/schedules", params={"date": "2024-04-03"})
        assert resp.json()["schedules"] == []

    async def test_delete(self, http):
        await http.post("/schedules", json=STANDUP)
        resp = await http.request("DELETE", "/schedules", json=STANDUP)
        assert resp.json() == {"deleted": True}

        resp = await http.request("DELETE", "/schedules", json=STANDUP)
        assert resp.json() == {"deleted": False}

    async def test_add_invalid_schedule(self, http):
        resp = await http.post("/schedules", json={**STANDUP, "endTime": STANDUP["startTime"]})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid schedule"

    async def test_list_requires_date(self, http):
        resp = await http.get("/schedules")
        assert resp.status_code == 400

    async def test_list_invalid_date(self, http):
        resp = await http.get("/schedules", params={"date": "tuesday"})
        assert resp.status_code == 400


class TestHealth:
    async def test_health(self, http):
        resp = await http.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "database": "connected"}
