"""AI calendar entry point.

Initializes all components and starts the server:
  Settings -> Database -> ScheduleStore -> CommandExtractor -> ChatClient -> App -> Uvicorn

Uses Starlette lifespan to manage component lifecycle on the same
event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from aicalendar.config import Settings
from aicalendar.schedule.commands import CommandExtractor
from aicalendar.schedule.store import ScheduleStore
from aicalendar.storage.database import Database
from aicalendar.stream.client import ChatClient

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    1. Database - connection pool, tables
    2. ScheduleStore - explicit store instance (no global singleton)
    3. CommandExtractor - applies chat commands to the store
    4. ChatClient - httpx streaming client
    """
    database = Database(settings)
    await database.connect()

    store = ScheduleStore(database, tz=settings.tz)
    extractor = CommandExtractor(store)

    client = ChatClient(settings, extractor=extractor)
    await client.start()

    return {
        "database": database,
        "store": store,
        "extractor": extractor,
        "client": client,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down AI calendar...")

    client = components.get("client")
    if client:
        await client.close()

    database = components.get("database")
    if database:
        await database.disconnect()

    logger.info("AI calendar shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app; components come up in the lifespan."""
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))

        # Store on app.state for access in tests
        app.state.components = components
        logger.info("AI calendar started (timezone: %s)", settings.timezone)
        yield

        await shutdown_components(components)

    # Import here to avoid circular imports at module level
    from aicalendar.api.rest import create_app

    return create_app(
        client=_lazy_component(components, "client"),
        store=_lazy_component(components, "store"),
        database=_lazy_component(components, "database"),
        settings=settings,
        lifespan=lifespan,
    )


class _LazyProxy:
    """Proxy that defers attribute access to a dict-backed component.

    Allows create_app() to receive component references before lifespan
    has initialized them.
    """

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not yet initialized -- lifespan hasn't started")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)


def _lazy_component(components: dict, key: str) -> _LazyProxy:
    return _LazyProxy(components, key)


def main() -> None:
    """Entry point -- parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting AI calendar on %s:%d", settings.host, settings.port)
    logger.info("Chat endpoint: %s", settings.chat_api_url)
    logger.info("Database: %s", settings.database_url.split("@")[-1])

    if not settings.chat_api_token:
        logger.warning("CHAT_API_TOKEN not set -- /chat/stream will fail")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
