"""Schedule store -- durable CRUD for calendar entries.

Persistence errors are logged and swallowed: a failing write must never
fail the chat stream that triggered it.
"""

import logging
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from aicalendar.schedule.schemas import Schedule, to_utc
from aicalendar.storage.database import Database
from aicalendar.storage.models import ScheduleRow

logger = logging.getLogger(__name__)


def _to_schedule(row: ScheduleRow) -> Schedule:
    # Stored rows are trusted; the end-after-start check belongs to producers
    return Schedule.model_construct(
        title=row.title,
        start_time=to_utc(row.start_time),
        end_time=to_utc(row.end_time),
    )


class ScheduleStore:
    """Stores schedules in the `schedules` table."""

    def __init__(self, database: Database, tz: tzinfo = UTC) -> None:
        self._db = database
        self._tz = tz

    def day_bounds(self, for_date: date) -> tuple[datetime, datetime]:
        """UTC [start, end) of a calendar day in the store's time zone."""
        start = datetime.combine(for_date, time.min, tzinfo=self._tz)
        end = datetime.combine(for_date + timedelta(days=1), time.min, tzinfo=self._tz)
        return start.astimezone(UTC), end.astimezone(UTC)

    async def save(self, schedule: Schedule) -> None:
        """Insert a schedule. Duplicates are allowed."""
        try:
            async with self._db.session() as session:
                session.add(
                    ScheduleRow(
                        title=schedule.title,
                        start_time=to_utc(schedule.start_time),
                        end_time=to_utc(schedule.end_time),
                    )
                )
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Error saving schedule %r", schedule.title)
            return
        logger.debug("Saved schedule %r at %s", schedule.title, schedule.start_time)

    async def fetch(self, for_date: date) -> list[Schedule]:
        """Schedules starting on the given day, ascending by start time."""
        start, end = self.day_bounds(for_date)
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    select(ScheduleRow)
                    .where(ScheduleRow.start_time >= start)
                    .where(ScheduleRow.start_time < end)
                    .order_by(ScheduleRow.start_time, ScheduleRow.id)
                )
                return [_to_schedule(row) for row in result.scalars().all()]
        except SQLAlchemyError:
            logger.exception("Error fetching schedules for %s", for_date)
            return []

    async def delete(self, schedule: Schedule) -> bool:
        """Delete the first entry matching the exact triple.

        Returns False when nothing matched or the delete failed.
        """
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    select(ScheduleRow.id)
                    .where(ScheduleRow.title == schedule.title)
                    .where(ScheduleRow.start_time == to_utc(schedule.start_time))
                    .where(ScheduleRow.end_time == to_utc(schedule.end_time))
                    .order_by(ScheduleRow.id)
                    .limit(1)
                )
                row_id = result.scalar_one_or_none()
                if row_id is None:
                    logger.debug("No schedule matched %r for delete", schedule.title)
                    return False
                await session.execute(delete(ScheduleRow).where(ScheduleRow.id == row_id))
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Error deleting schedule %r", schedule.title)
            return False
        return True
