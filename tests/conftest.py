"""Test fixtures using a temporary SQLite database via aiosqlite."""

import pytest
import pytest_asyncio

from aicalendar.config import Settings
from aicalendar.schedule.commands import CommandExtractor
from aicalendar.schedule.store import ScheduleStore
from aicalendar.storage.database import Database


def make_settings(tmp_path, **overrides) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    defaults = {
        "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'calendar.db'}",
        "CHAT_API_URL": "http://chat.test/v1/chat-messages",
        "CHAT_API_TOKEN": "app-test-token",
    }
    defaults.update(overrides)
    return Settings(**defaults)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def settings_factory(tmp_path):
    """Build Settings with overrides (env-var names as keys)."""
    return lambda **overrides: make_settings(tmp_path, **overrides)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db(settings):
    """Function-scoped database with tables created."""
    database = Database(settings)
    await database.connect()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def store(db, settings) -> ScheduleStore:
    return ScheduleStore(db, tz=settings.tz)


@pytest.fixture
def extractor(store) -> CommandExtractor:
    return CommandExtractor(store)


# ---------------------------------------------------------------------------
# Callback recorder
# ---------------------------------------------------------------------------


class CallbackRecorder:
    """Records every callback invocation in order."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def on_delta(self, text: str) -> None:
        self.calls.append(("delta", text))

    def on_thought(self, text: str) -> None:
        self.calls.append(("thought", text))

    def on_loading_change(self, loading: bool) -> None:
        self.calls.append(("loading", loading))

    def on_complete(self, text, error) -> None:
        self.calls.append(("complete", text, error))

    def callbacks(self):
        from aicalendar.stream.session import StreamCallbacks

        return StreamCallbacks(
            on_delta=self.on_delta,
            on_thought=self.on_thought,
            on_loading_change=self.on_loading_change,
            on_complete=self.on_complete,
        )

    def of(self, kind: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()
