"""Schedule value object shared by the command path, the store and the API."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Schedule(BaseModel):
    """A calendar entry. Identity is the full (title, start, end) triple."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = Field(min_length=1)
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _iso_timestamp(cls, v: Any) -> Any:
        # Only ISO-8601 strings (or datetimes), never epoch numbers or digit strings
        if isinstance(v, datetime):
            return v
        if not isinstance(v, str) or v.strip().isdigit():
            raise ValueError("timestamp must be an ISO-8601 string")
        try:
            return datetime.fromisoformat(v)
        except ValueError:
            raise ValueError(f"invalid ISO-8601 timestamp: {v!r}") from None

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: datetime) -> datetime:
        return to_utc(v)

    @model_validator(mode="after")
    def _end_after_start(self) -> "Schedule":
        if self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def to_wire(self) -> dict[str, str]:
        """JSON shape used by commands and the REST API."""
        return {
            "title": self.title,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
        }
