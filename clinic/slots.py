"""
Slot allocation for the clinic calendar.

Given a date, a provider and an optional service duration, work out which
30-minute start slots can take a new booking. Occupied time is the union of
confirmed/paid walk-in appointments for the provider and confirmed/paid online
requests for the whole clinic on that date.

The computation itself is pure (`blocked_indices`, `available_slots`); the
`SlotAllocator` wraps it with an injected booking reader and the fail-open
policy for read errors.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config
from .catalog import TIME_SLOTS, TimeSlotCatalog
from .models import BOOKING_MODELS, BookingSource, BookingStatus

logger = logging.getLogger(__name__)


class BookingFetchError(Exception):
    """Existing bookings could not be read"""


@dataclass(frozen=True)
class BookingSnapshot:
    """The fields of a booking that matter for occupancy"""
    time: Optional[str]
    duration: Optional[int]
    status: Optional[str]
    provider_id: Optional[int] = None
    booking_id: Optional[int] = None

    @property
    def blocks_time(self) -> bool:
        status = BookingStatus.parse(self.status)
        return status is not None and status.blocks_time


BookingReader = Callable[[BookingSource, date, Optional[int]], List[BookingSnapshot]]


def blocked_indices(bookings: Iterable[BookingSnapshot], catalog: TimeSlotCatalog = TIME_SLOTS) -> Set[int]:
    """Catalog positions covered by blocking bookings"""
    blocked = set()
    for booking in bookings:
        if not booking.blocks_time:
            continue
        start = catalog.index(booking.time)
        if start is None:
            logger.debug("Skipping booking %s with unknown time %r", booking.booking_id, booking.time)
            continue
        end = min(start + catalog.span(booking.duration), len(catalog))
        blocked.update(range(start, end))
    return blocked


def available_slots(
    bookings: Iterable[BookingSnapshot],
    catalog: TimeSlotCatalog = TIME_SLOTS,
    requested_duration: Optional[int] = None,
) -> List[str]:
    """Slot labels, in catalog order, where a new booking fits"""
    blocked = blocked_indices(bookings, catalog)

    if not requested_duration:
        return [label for i, label in enumerate(catalog) if i not in blocked]

    needed = catalog.span(requested_duration)
    return [
        catalog[i]
        for i in range(len(catalog))
        if i + needed <= len(catalog)
        and not any(j in blocked for j in range(i, i + needed))
    ]


class DatabaseBookingReader:
    """Reads booking snapshots from the appointments and online_requests tables"""

    def __init__(
        self,
        db: Session,
        exclude: Optional[tuple] = None,
        online_scoped_by_provider: bool = config.ONLINE_REQUESTS_PROVIDER_SCOPED,
    ):
        self.db = db
        self.exclude = exclude
        self.online_scoped_by_provider = online_scoped_by_provider

    def __call__(self, source: BookingSource, day: date, provider_id: Optional[int] = None) -> List[BookingSnapshot]:
        model = BOOKING_MODELS[source]
        query = self.db.query(model).filter(model.date == day)

        scope_by_provider = source == BookingSource.WALK_IN or self.online_scoped_by_provider
        if provider_id is not None and scope_by_provider:
            query = query.filter(model.provider_id == provider_id)

        if self.exclude and self.exclude[0] == source:
            query = query.filter(model.id != self.exclude[1])

        try:
            rows = query.all()
        except SQLAlchemyError as e:
            raise BookingFetchError(f"Could not read {source.value} bookings for {day}") from e

        return [
            BookingSnapshot(
                time=row.time,
                duration=row.duration,
                status=row.status or getattr(row, "reservation_status", None),
                provider_id=row.provider_id,
                booking_id=row.id,
            )
            for row in rows
        ]


class SlotAllocator:
    """Computes bookable slots from both booking sources"""

    def __init__(
        self,
        fetch_bookings: BookingReader,
        catalog: TimeSlotCatalog = TIME_SLOTS,
        fail_open: bool = config.SLOTS_FAIL_OPEN,
    ):
        self.fetch_bookings = fetch_bookings
        self.catalog = catalog
        self.fail_open = fail_open

    def existing_bookings(self, day: date, provider_id: Optional[int] = None) -> List[BookingSnapshot]:
        try:
            walk_ins = self.fetch_bookings(BookingSource.WALK_IN, day, provider_id)
            online = self.fetch_bookings(BookingSource.ONLINE_REQUEST, day, provider_id)
        except BookingFetchError as e:
            if not self.fail_open:
                raise
            logger.warning("Slot lookup for %s degraded to an empty calendar: %s", day, e)
            return []
        return walk_ins + online

    def available(
        self,
        day: date,
        provider_id: Optional[int] = None,
        requested_duration: Optional[int] = None,
    ) -> List[str]:
        bookings = self.existing_bookings(day, provider_id)
        return available_slots(bookings, self.catalog, requested_duration)

    def can_start_at(
        self,
        day: date,
        provider_id: Optional[int],
        time: str,
        duration: Optional[int],
    ) -> bool:
        return time in self.available(day, provider_id, duration or self.catalog.slot_minutes)
