from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..billing import reservation_quote
from ..booking_service import get_dentist, resolve_service
from ..catalog import HEALTH_QUESTIONS, SERVICES, TIME_SLOTS
from ..database import get_db
from ..slots import BookingFetchError, DatabaseBookingReader, SlotAllocator

router = APIRouter(prefix="/api", tags=["Slots"])


@router.get("/slots", response_model=schemas.SlotsResponse)
def get_available_slots(
    booking_date: date = Query(..., alias="date"),
    provider_id: Optional[int] = Query(None),
    duration: Optional[int] = Query(None, gt=0),
    category: Optional[str] = Query(None),
    option: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Start slots that can take a new booking.

    The duration comes from `duration` or from the chosen service option;
    without either, every free single slot is returned.
    """
    if category or option:
        if not (category and option):
            raise HTTPException(status_code=400, detail="Both category and option are required")
        _, service = resolve_service(category, option)
        duration = service.minutes

    get_dentist(db, provider_id)

    allocator = SlotAllocator(DatabaseBookingReader(db))
    try:
        slots = allocator.available(booking_date, provider_id, duration)
    except BookingFetchError:
        raise HTTPException(status_code=503, detail="Could not load existing bookings")

    return schemas.SlotsResponse(
        date=booking_date,
        provider_id=provider_id,
        duration=duration,
        slots=slots,
    )


@router.get("/catalog/services")
def get_services():
    return SERVICES.as_dicts()


@router.get("/catalog/time-slots")
def get_time_slots():
    return TIME_SLOTS.labels


@router.get("/catalog/health-questions")
def get_health_questions():
    return [{"id": qid, "text": text} for qid, text in HEALTH_QUESTIONS]


@router.get("/catalog/quote", response_model=schemas.QuoteResponse)
def get_quote(category: str, option: str):
    """Amount due now for each payment type"""
    _, service = resolve_service(category, option)
    return schemas.QuoteResponse(
        category=category,
        option=option,
        price=service.price,
        minutes=service.minutes,
        **reservation_quote(service),
    )
