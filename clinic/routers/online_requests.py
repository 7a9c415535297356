import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import config, models, schemas
from ..billing import PaymentError, record_payment
from ..booking_service import (
    change_status,
    check_health_answers,
    check_time_slot,
    claim,
    get_booking,
    get_dentist,
    move,
    payment_error,
    resolve_service,
)
from ..catalog import HEALTH_QUESTIONS, SERVICES
from ..database import get_db
from ..email_service import send_booking_confirmation_email
from ..notifications import notify_booking
from ..security import get_current_user, require_back_office
from ..slots import DatabaseBookingReader, SlotAllocator
from ..sms_service import sms_notifier
from ..telegram_service import telegram_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/online-requests", tags=["Online requests"])

ONLINE = models.BookingSource.ONLINE_REQUEST


def _own_request(db: Session, request_id: int, user: models.User) -> models.OnlineRequest:
    request = get_booking(db, ONLINE, request_id)
    if user.role == models.UserRole.PATIENT.value and request.patient_id != user.id:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return request


def _schedule_follow_up(db: Session, initial: models.OnlineRequest) -> Optional[models.OnlineRequest]:
    """Book the next visit of a multi-visit treatment at the same time of day.

    The follow-up stays pending until staff confirm it, so it only has to
    fit the schedule as it is now. Returns None when the slot is taken.
    """
    day = initial.date + timedelta(days=config.FOLLOW_UP_INTERVAL_DAYS)
    allocator = SlotAllocator(DatabaseBookingReader(db))
    if not allocator.can_start_at(day, initial.provider_id, initial.time, initial.duration):
        logger.warning(
            "Skipping follow-up for request #%s: %s on %s is taken", initial.id, initial.time, day
        )
        return None

    follow_up = models.OnlineRequest(
        patient_id=initial.patient_id,
        patient_name=initial.patient_name,
        patient_email=initial.patient_email,
        patient_phone=initial.patient_phone,
        provider_id=initial.provider_id,
        date=day,
        time=initial.time,
        duration=initial.duration,
        treatment=initial.treatment,
        treatment_option=initial.treatment_option,
        price=initial.price,
        status=models.BookingStatus.PENDING.value,
        reservation_status="unpaid",
        reservation_method="cash",
        reservation_fee=0,
        payment_type=initial.payment_type,
        visit_type="followup",
        is_multi_visit=True,
        health_declaration=initial.health_declaration,
        health_answers=initial.health_answers,
        follow_up_of=initial.id,
        created_by=initial.created_by,
    )
    db.add(follow_up)
    db.flush()
    notify_booking(db, follow_up, models.NotificationType.APPOINTMENT_CREATED)
    return follow_up


@router.post("/", response_model=schemas.OnlineRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_online_request(
    data: schemas.OnlineRequestCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    patient: models.User = Depends(get_current_user)
):
    """Patient books a service through the portal"""
    category, option = resolve_service(data.category, data.option)
    check_health_answers(data.health_answers)
    check_time_slot(data.time)
    get_dentist(db, data.provider_id)

    paid = data.payment is not None
    request = models.OnlineRequest(
        patient_id=patient.id,
        patient_name=patient.full_name or patient.email,
        patient_email=patient.email,
        patient_phone=patient.phone,
        provider_id=data.provider_id,
        date=data.date,
        time=data.time,
        duration=option.minutes,
        treatment=category.name,
        treatment_option=f"{category.name} - {option.name}",
        price=option.price,
        status=(models.BookingStatus.CONFIRMED if paid else models.BookingStatus.PENDING).value,
        reservation_status="paid" if paid else "unpaid",
        reservation_method="paypal" if paid else "cash",
        reservation_fee=config.RESERVATION_FEE,
        payment_type=data.payment_type,
        visit_type=data.visit_type,
        is_multi_visit=SERVICES.is_multi_visit(category.name),
        health_declaration=data.health_declaration,
        health_answers={
            "questions": [{"id": qid, "text": text} for qid, text in HEALTH_QUESTIONS],
            "answers": data.health_answers,
        },
        created_by=patient.id,
    )

    claim(db, request, exclude_self=False)
    db.add(request)
    db.flush()

    if paid:
        try:
            record_payment(
                db, request, data.payment.amount,
                method=models.PaymentMethod.PAYPAL,
                kind="reservation",
                transaction_id=data.payment.transaction_id,
                recorded_by=patient.id,
                enforce_balance=False,
            )
            db.flush()
        except PaymentError as e:
            db.rollback()
            raise payment_error(e)
        except IntegrityError:
            db.rollback()
            raise HTTPException(status_code=400, detail="This payment has already been recorded")

    notify_booking(db, request, models.NotificationType.APPOINTMENT_CREATED)

    follow_up = None
    if request.is_multi_visit and request.visit_type == "initial" and paid:
        follow_up = _schedule_follow_up(db, request)

    db.commit()
    db.refresh(request)
    logger.info(
        "Online request #%s for %s on %s at %s (%s)",
        request.id, request.treatment_option, request.date, request.time, request.status,
    )

    for booking in filter(None, (request, follow_up)):
        background_tasks.add_task(
            sms_notifier.send_appointment_sms,
            booking.patient_phone,
            booking.patient_name,
            booking.treatment_option,
            booking.date.isoformat(),
            booking.time,
            booking.reservation_status == "paid",
        )
    background_tasks.add_task(
        telegram_notifier.send_new_request_notification,
        patient_name=request.patient_name,
        service=request.treatment_option,
        booking_date=request.date.isoformat(),
        booking_time=request.time,
        status=request.status,
        request_id=request.id,
    )

    return request


@router.get("/my", response_model=List[schemas.OnlineRequestResponse])
def my_requests(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """Requests of the signed-in patient, newest first"""
    return db.query(models.OnlineRequest).filter(
        models.OnlineRequest.patient_id == current_user.id
    ).order_by(models.OnlineRequest.created_at.desc(), models.OnlineRequest.id.desc()).all()


@router.get("/", response_model=List[schemas.OnlineRequestResponse])
def list_requests(
    status_filter: Optional[models.BookingStatus] = Query(None, alias="status"),
    provider_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    query = db.query(models.OnlineRequest)
    if status_filter:
        query = query.filter(models.OnlineRequest.status == status_filter.value)
    if provider_id:
        query = query.filter(models.OnlineRequest.provider_id == provider_id)
    return query.order_by(models.OnlineRequest.created_at.desc(), models.OnlineRequest.id.desc()).all()


@router.get("/{request_id}", response_model=schemas.OnlineRequestResponse)
def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    return _own_request(db, request_id, current_user)


@router.post("/{request_id}/cancel", response_model=schemas.OnlineRequestResponse)
async def cancel_request(
    request_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    request = _own_request(db, request_id, current_user)

    if request.booking_status in (models.BookingStatus.CANCELLED, models.BookingStatus.TREATED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot cancel an appointment that is {request.status}"
        )

    change_status(db, request, models.BookingStatus.CANCELLED)
    notify_booking(db, request, models.NotificationType.APPOINTMENT_CANCELLED)
    db.commit()
    db.refresh(request)

    background_tasks.add_task(
        telegram_notifier.send_cancelled_notification,
        patient_name=request.patient_name,
        booking_date=request.date.isoformat(),
        booking_time=request.time,
        request_id=request.id,
    )

    return request


@router.post("/{request_id}/reschedule", response_model=schemas.OnlineRequestResponse)
def reschedule_request(
    request_id: int,
    data: schemas.RescheduleRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """Ask the clinic to move a request; staff confirm the new time"""
    request = _own_request(db, request_id, current_user)

    if request.booking_status in (models.BookingStatus.CANCELLED, models.BookingStatus.TREATED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot reschedule an appointment that is {request.status}"
        )
    check_time_slot(data.time)

    # Leaves the blocking set first so the old slot is released and the new
    # one is only claimed when staff confirm it.
    change_status(db, request, models.BookingStatus.RESCHEDULE)
    move(db, request, data.date, data.time)
    notify_booking(db, request, models.NotificationType.APPOINTMENT_RESCHEDULED)
    db.commit()
    db.refresh(request)
    return request


@router.patch("/{request_id}/status", response_model=schemas.OnlineRequestResponse)
def update_request_status(
    request_id: int,
    update: schemas.StatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    """Confirm, mark paid, treated or cancel a request"""
    request = get_booking(db, ONLINE, request_id)
    if update.status.value == request.status:
        return request

    confirmed = change_status(db, request, update.status)

    if update.status == models.BookingStatus.CANCELLED:
        notify_booking(db, request, models.NotificationType.APPOINTMENT_CANCELLED)
    elif confirmed:
        notify_booking(db, request, models.NotificationType.APPOINTMENT_CONFIRMED)

    db.commit()
    db.refresh(request)

    if confirmed and request.patient_email:
        background_tasks.add_task(
            send_booking_confirmation_email,
            request.patient_email,
            {
                "name": request.patient_name,
                "service": request.treatment_option,
                "date": request.date.isoformat(),
                "time": request.time,
            },
        )

    return request
