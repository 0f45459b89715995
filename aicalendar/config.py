"""Settings via pydantic-settings with AICAL_ env prefix.

Deployment fields use validation_alias to read the unprefixed env vars
(DATABASE_URL, CHAT_API_URL, CHAT_API_TOKEN) that the container setup
exports, so one .env file drives both.
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AICAL_", env_file=".env")

    # Storage
    database_url: str = Field(
        "sqlite+aiosqlite:///./aicalendar.db", validation_alias="DATABASE_URL"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 5
    log_level: str = "info"

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000

    # Remote chat endpoint
    chat_api_url: str = Field(
        "http://localhost/v1/chat-messages", validation_alias="CHAT_API_URL"
    )
    chat_api_token: str = Field("", validation_alias="CHAT_API_TOKEN")
    chat_user: str = "abc-123"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Streaming
    heartbeat_timeout: float = 3.0  # seconds a ping keeps the loading state on
    max_history_messages: int = 10
    keep_conversation: bool = False  # reuse conversation_id from message_end

    # Calendar
    timezone: str = "UTC"

    @model_validator(mode="after")
    def _validate(self) -> "Settings":
        if self.heartbeat_timeout <= 0:
            raise ValueError("heartbeat_timeout must be > 0")
        if self.max_history_messages < 1:
            raise ValueError("max_history_messages must be >= 1")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone}") from e
        return self

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")
