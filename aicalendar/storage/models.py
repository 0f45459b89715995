"""SQLAlchemy ORM models for the calendar store."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all calendar tables."""

    pass


class ScheduleRow(Base):
    """A stored schedule entry. There is no natural key beyond the triple."""

    __tablename__ = "schedules"
    __table_args__ = (
        Index("ix_schedules_start_time", "start_time"),
        Index("ix_schedules_identity", "title", "start_time", "end_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
