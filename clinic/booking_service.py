"""
Booking workflow shared by the walk-in and online-request routers
"""
import datetime as dt
import logging
from typing import Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from . import models
from .billing import PaymentError
from .catalog import SERVICES, TIME_SLOTS, ServiceCategory, ServiceOption, missing_health_answers
from .reservations import ScheduleConflictError, SlotUnavailableError, reserve_slot
from .slots import BookingFetchError

logger = logging.getLogger(__name__)


def resolve_service(category: str, option: str) -> Tuple[ServiceCategory, ServiceOption]:
    cat = SERVICES.category(category)
    opt = cat.option(option) if cat else None
    if opt is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown service: {category} / {option}"
        )
    return cat, opt


def check_health_answers(answers: dict) -> None:
    missing = missing_health_answers(answers)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Please answer all health questions (missing: {', '.join(missing)})"
        )


def check_time_slot(time: str) -> None:
    if time not in TIME_SLOTS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown time slot: {time}")


def get_dentist(db: Session, provider_id: Optional[int]) -> Optional[models.User]:
    if provider_id is None:
        return None
    dentist = db.query(models.User).filter(
        models.User.id == provider_id,
        models.User.role == models.UserRole.DENTIST.value,
        models.User.is_active.is_(True),
    ).first()
    if dentist is None:
        raise HTTPException(status_code=404, detail="Dentist not found")
    return dentist


def get_booking(db: Session, source: models.BookingSource, booking_id: int):
    model = models.BOOKING_MODELS[source]
    booking = db.query(model).filter(model.id == booking_id).first()
    if booking is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return booking


def slot_error(e: SlotUnavailableError) -> HTTPException:
    if isinstance(e, ScheduleConflictError):
        detail = "This time slot was just booked. Please select another time."
    else:
        detail = "This time slot is no longer available. Please select another time."
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def payment_error(e: PaymentError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def claim(db: Session, booking, exclude_self: bool = True) -> None:
    """Reserve the booking's slot in the current transaction or raise HTTP 409"""
    exclude = (booking.source, booking.id) if exclude_self and booking.id else None
    try:
        reserve_slot(db, booking.date, booking.provider_id, booking.time, booking.duration, exclude=exclude)
    except SlotUnavailableError as e:
        logger.info("Rejected %s #%s: %s", booking.source.value, booking.id or "new", e)
        db.rollback()
        raise slot_error(e)
    except BookingFetchError as e:
        logger.error("Could not check availability for %s on %s: %s", booking.time, booking.date, e)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not check availability. Please try again."
        )


def _blocks(booking) -> bool:
    current = booking.booking_status
    return current is not None and current.blocks_time


def _set_status(booking, new_status: models.BookingStatus) -> None:
    booking.status = new_status.value
    if new_status == models.BookingStatus.CANCELLED:
        booking.cancelled_at = dt.datetime.utcnow()
    if new_status == models.BookingStatus.PAID and booking.source == models.BookingSource.ONLINE_REQUEST:
        booking.reservation_status = "paid"


def _relocate(booking, day: Optional[dt.date], time: Optional[str], provider_id: Optional[int]) -> bool:
    if time is not None:
        check_time_slot(time)

    moved = False
    if day is not None and day != booking.date:
        booking.date = day
        moved = True
    if time is not None and time != booking.time:
        booking.time = time
        moved = True
    if provider_id is not None and provider_id != booking.provider_id:
        booking.provider_id = provider_id
        moved = True
    return moved


def change_status(db: Session, booking, new_status: models.BookingStatus) -> bool:
    """Apply a status change; returns True when the booking became time-blocking"""
    becomes_blocking = new_status.blocks_time and not _blocks(booking)

    if becomes_blocking:
        claim(db, booking)

    _set_status(booking, new_status)
    return becomes_blocking


def move(
    db: Session,
    booking,
    day: Optional[dt.date] = None,
    time: Optional[str] = None,
    provider_id: Optional[int] = None,
) -> bool:
    """Move a booking; the new slot is reserved when the booking blocks time"""
    moved = _relocate(booking, day, time, provider_id)
    if moved and _blocks(booking):
        claim(db, booking)
    return moved


def update_booking(
    db: Session,
    booking,
    day: Optional[dt.date] = None,
    time: Optional[str] = None,
    provider_id: Optional[int] = None,
    new_status: Optional[models.BookingStatus] = None,
) -> Tuple[bool, bool]:
    """Move a booking and change its status in one step.

    The slot is judged against the resulting status and claimed at most once.
    Returns ``(moved, became_blocking)``.
    """
    was_blocking = _blocks(booking)
    moved = _relocate(booking, day, time, provider_id)
    if new_status is not None and new_status.value != booking.status:
        _set_status(booking, new_status)

    now_blocking = _blocks(booking)
    if now_blocking and (moved or not was_blocking):
        claim(db, booking)
    return moved, now_blocking and not was_blocking
