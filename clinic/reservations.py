"""
Atomic slot reservation.

Availability is re-checked and the per-date schedule version is bumped with a
conditional UPDATE inside the caller's transaction. A concurrent reservation
for the same date that committed in between leaves the UPDATE with no matching
row, so the second writer fails instead of double-booking. The first
reservation of a date inserts the version row; two first writers collide on
its primary key.
"""
import logging
from datetime import date
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .catalog import TIME_SLOTS
from .slots import DatabaseBookingReader, SlotAllocator

logger = logging.getLogger(__name__)


class SlotUnavailableError(Exception):
    """The requested start slot overlaps an existing booking"""

    def __init__(self, day: date, time: str):
        super().__init__(f"Time slot {time} on {day} is not available")
        self.day = day
        self.time = time


class ScheduleConflictError(SlotUnavailableError):
    """Another reservation for the same date committed first"""


def reserve_slot(
    db: Session,
    day: date,
    provider_id: Optional[int],
    time: str,
    duration: Optional[int],
    exclude: Optional[Tuple[models.BookingSource, int]] = None,
) -> int:
    """Claim `time` on `day` for the current transaction.

    Returns the new schedule version. Raises SlotUnavailableError when the
    slot is taken or is not a valid start for `duration`, and
    ScheduleConflictError when another writer changed the same date after our
    read. The caller commits on success and rolls back on either error.
    """
    if time not in TIME_SLOTS:
        raise SlotUnavailableError(day, time)

    day_row = db.get(models.ScheduleDay, day, populate_existing=True)

    allocator = SlotAllocator(DatabaseBookingReader(db, exclude=exclude), fail_open=False)
    if not allocator.can_start_at(day, provider_id, time, duration):
        raise SlotUnavailableError(day, time)

    if day_row is None:
        db.add(models.ScheduleDay(date=day, version=1))
        try:
            db.flush()
        except IntegrityError as e:
            logger.info("Schedule for %s created concurrently during reservation of %s", day, time)
            raise ScheduleConflictError(day, time) from e
        return 1

    version = day_row.version
    result = db.execute(
        update(models.ScheduleDay)
        .where(models.ScheduleDay.date == day, models.ScheduleDay.version == version)
        .values(version=version + 1)
    )
    if result.rowcount != 1:
        logger.info("Schedule for %s changed during reservation of %s", day, time)
        raise ScheduleConflictError(day, time)

    return version + 1
