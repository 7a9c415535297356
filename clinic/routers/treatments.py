from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..booking_service import change_status, get_booking
from ..database import get_db
from ..notifications import notify_booking
from ..security import BACK_OFFICE_ROLES, get_current_user, require_back_office, require_clinician

router = APIRouter(prefix="/api/treatments", tags=["Treatments"])


@router.post(
    "/{source}/{booking_id}",
    response_model=schemas.TreatmentResponse,
    status_code=status.HTTP_201_CREATED
)
def record_treatment(
    source: models.BookingSource,
    booking_id: int,
    data: schemas.TreatmentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_back_office)
):
    """Record the procedure done during a visit and mark the visit treated"""
    booking = get_booking(db, source, booking_id)

    if booking.booking_status == models.BookingStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot record a treatment for a cancelled appointment"
        )

    dentist_id = booking.provider_id
    if current_user.role == models.UserRole.DENTIST.value:
        dentist_id = current_user.id

    record = models.TreatmentRecord(
        source=source.value,
        booking_id=booking.id,
        patient_id=booking.patient_id,
        dentist_id=dentist_id,
        procedure=data.procedure,
        teeth=data.teeth,
        notes=data.notes,
        treated_on=data.treated_on or booking.date,
    )
    db.add(record)

    if booking.booking_status != models.BookingStatus.TREATED:
        change_status(db, booking, models.BookingStatus.TREATED)
        notify_booking(db, booking, models.NotificationType.TREATMENT_RECORDED)

    db.commit()
    db.refresh(record)
    return record


@router.get("/{source}/{booking_id}", response_model=List[schemas.TreatmentResponse])
def list_booking_treatments(
    source: models.BookingSource,
    booking_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_back_office)
):
    return db.query(models.TreatmentRecord).filter(
        models.TreatmentRecord.source == source.value,
        models.TreatmentRecord.booking_id == booking_id,
    ).order_by(models.TreatmentRecord.treated_on, models.TreatmentRecord.id).all()


@router.delete("/{treatment_id}", status_code=204)
def delete_treatment(
    treatment_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_clinician)
):
    record = db.query(models.TreatmentRecord).filter(models.TreatmentRecord.id == treatment_id).first()
    if record is None:
        raise HTTPException(status_code=404, detail="Treatment record not found")
    db.delete(record)
    db.commit()
    return None


@router.get("/patients/{patient_id}/timeline", response_model=List[schemas.TimelineEntry])
def patient_timeline(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """Bookings and treatments of a patient in chronological order"""
    if current_user.role not in BACK_OFFICE_ROLES and current_user.id != patient_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    entries = []
    for source, model in models.BOOKING_MODELS.items():
        for booking in db.query(model).filter(model.patient_id == patient_id).all():
            entries.append(schemas.TimelineEntry(
                kind="booking",
                date=booking.date,
                title=booking.treatment_option or booking.treatment,
                status=booking.status,
                source=source,
                booking_id=booking.id,
            ))

    records = db.query(models.TreatmentRecord).filter(models.TreatmentRecord.patient_id == patient_id).all()
    for record in records:
        entries.append(schemas.TimelineEntry(
            kind="treatment",
            date=record.treated_on,
            title=record.procedure,
            source=models.BookingSource(record.source),
            booking_id=record.booking_id,
        ))

    # bookings sort before the treatments recorded for them on the same day
    order = {"booking": 0, "treatment": 1}
    entries.sort(key=lambda e: (e.date, order[e.kind], e.booking_id))
    return entries
