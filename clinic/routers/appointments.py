from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..billing import payment_status
from ..booking_service import (
    change_status,
    check_health_answers,
    check_time_slot,
    claim,
    get_booking,
    get_dentist,
    resolve_service,
    update_booking,
)
from ..catalog import HEALTH_QUESTIONS
from ..database import get_db
from ..email_service import send_booking_confirmation_email
from ..notifications import notify_booking
from ..security import require_back_office

router = APIRouter(prefix="/api/appointments", tags=["Walk-in appointments"])

WALK_IN = models.BookingSource.WALK_IN


@router.get("/", response_model=List[schemas.AppointmentResponse])
def list_appointments(
    status_filter: Optional[models.BookingStatus] = Query(None, alias="status"),
    booking_date: Optional[date] = Query(None, alias="date"),
    provider_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    """Walk-in appointments, newest first"""
    query = db.query(models.Appointment)

    if status_filter:
        query = query.filter(models.Appointment.status == status_filter.value)
    if booking_date:
        query = query.filter(models.Appointment.date == booking_date)
    if provider_id:
        query = query.filter(models.Appointment.provider_id == provider_id)

    appointments = query.order_by(models.Appointment.created_at.desc(), models.Appointment.id.desc()).all()

    if search and search.strip():
        needle = search.strip().lower()
        appointments = [
            a for a in appointments
            if any(needle in (f or "").lower() for f in (
                a.patient_name, a.treatment, a.treatment_option, a.status, a.date.isoformat(),
            ))
        ]

    return appointments


@router.get("/{appointment_id}", response_model=schemas.AppointmentResponse)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    return get_booking(db, WALK_IN, appointment_id)


@router.post("/", response_model=schemas.AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: schemas.WalkInCreate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_back_office)
):
    """Book a walk-in patient into a free slot"""
    category, option = resolve_service(data.category, data.option)
    check_health_answers(data.health_answers)
    check_time_slot(data.time)
    get_dentist(db, data.provider_id)

    patient = None
    if data.patient_id is not None:
        patient = db.query(models.User).filter(
            models.User.id == data.patient_id,
            models.User.role == models.UserRole.PATIENT.value,
        ).first()
        if patient is None:
            raise HTTPException(status_code=404, detail="Patient not found")

    appointment = models.Appointment(
        patient_id=patient.id if patient else None,
        patient_name=(patient.full_name if patient else data.patient_name) or "Walk-in Patient",
        patient_email=(patient.email if patient else data.patient_email),
        patient_phone=(patient.phone if patient else data.patient_phone),
        provider_id=data.provider_id,
        date=data.date,
        time=data.time,
        duration=option.minutes,
        treatment=category.name,
        treatment_option=f"{category.name} - {option.name}",
        price=option.price,
        status=data.status.value,
        health_declaration=data.health_declaration,
        health_answers={
            "questions": [{"id": qid, "text": text} for qid, text in HEALTH_QUESTIONS],
            "answers": data.health_answers,
        },
        color=data.color,
        notes=data.notes,
        created_by=staff.id,
    )

    claim(db, appointment, exclude_self=False)
    db.add(appointment)
    db.flush()
    notify_booking(db, appointment, models.NotificationType.APPOINTMENT_CREATED)
    db.commit()
    db.refresh(appointment)

    return appointment


@router.put("/{appointment_id}", response_model=schemas.AppointmentResponse)
def update_appointment(
    appointment_id: int,
    update: schemas.WalkInUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    appointment = get_booking(db, WALK_IN, appointment_id)

    if update.provider_id is not None:
        get_dentist(db, update.provider_id)

    was_moved, confirmed = update_booking(
        db, appointment, update.date, update.time, update.provider_id, update.status
    )

    for field in ("price", "color", "health_declaration", "notes"):
        value = getattr(update, field)
        if value is not None:
            setattr(appointment, field, value)
    if update.price is not None:
        appointment.payment_status = payment_status(appointment.price, appointment.amount_paid).value

    if was_moved:
        notify_booking(db, appointment, models.NotificationType.APPOINTMENT_RESCHEDULED)
    if update.status == models.BookingStatus.CANCELLED:
        notify_booking(db, appointment, models.NotificationType.APPOINTMENT_CANCELLED)
    elif confirmed:
        notify_booking(db, appointment, models.NotificationType.APPOINTMENT_CONFIRMED)

    db.commit()
    db.refresh(appointment)

    if confirmed and appointment.patient_email:
        background_tasks.add_task(
            send_booking_confirmation_email,
            appointment.patient_email,
            {
                "name": appointment.patient_name,
                "service": appointment.treatment_option,
                "date": appointment.date.isoformat(),
                "time": appointment.time,
            },
        )

    return appointment


@router.post("/{appointment_id}/cancel", response_model=schemas.AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    appointment = get_booking(db, WALK_IN, appointment_id)
    change_status(db, appointment, models.BookingStatus.CANCELLED)
    notify_booking(db, appointment, models.NotificationType.APPOINTMENT_CANCELLED)
    db.commit()
    db.refresh(appointment)
    return appointment


@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    appointment = get_booking(db, WALK_IN, appointment_id)
    db.delete(appointment)
    db.commit()
    return None
