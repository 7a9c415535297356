from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from .. import config, models, schemas
from ..billing import PaymentError, booking_payments, payment_status, record_payment, render_receipt
from ..booking_service import get_booking, payment_error
from ..database import get_db
from ..notifications import booking_details, notify
from ..security import BACK_OFFICE_ROLES, get_current_user, require_back_office

router = APIRouter(prefix="/api/billing", tags=["Billing"])


def _bill(db: Session, booking, with_payments: bool = False) -> schemas.BillResponse:
    return schemas.BillResponse(
        source=booking.source,
        booking_id=booking.id,
        patient_id=booking.patient_id,
        patient_name=booking.patient_name,
        treatment=booking.treatment_option or booking.treatment,
        date=booking.date,
        total=booking.price or 0,
        amount_paid=booking.amount_paid or 0,
        balance=booking.balance,
        payment_status=payment_status(booking.price or 0, booking.amount_paid or 0),
        payments=[
            schemas.PaymentResponse.model_validate(p) for p in booking_payments(db, booking)
        ] if with_payments else [],
    )


def _visible_booking(db: Session, source: models.BookingSource, booking_id: int, user: models.User):
    booking = get_booking(db, source, booking_id)
    if user.role not in BACK_OFFICE_ROLES and booking.patient_id != user.id:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return booking


@router.get("/", response_model=List[schemas.BillResponse])
def list_bills(
    status_filter: Optional[models.PaymentStatus] = Query(None, alias="status"),
    patient_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """Bills for treated visits; patients only see their own"""
    if current_user.role not in BACK_OFFICE_ROLES:
        patient_id = current_user.id

    bills = []
    for model in models.BOOKING_MODELS.values():
        query = db.query(model).filter(
            model.price > 0,
            model.status == models.BookingStatus.TREATED.value,
        )
        if patient_id is not None:
            query = query.filter(model.patient_id == patient_id)
        bills.extend(_bill(db, booking) for booking in query.all())

    if status_filter:
        bills = [b for b in bills if b.payment_status == status_filter]

    return sorted(bills, key=lambda b: (b.date, b.booking_id), reverse=True)


@router.get("/{source}/{booking_id}", response_model=schemas.BillResponse)
def get_bill(
    source: models.BookingSource,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    booking = _visible_booking(db, source, booking_id, current_user)
    return _bill(db, booking, with_payments=True)


@router.post("/{source}/{booking_id}/payments", response_model=schemas.BillResponse, status_code=201)
def add_payment(
    source: models.BookingSource,
    booking_id: int,
    data: schemas.PaymentCreate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(require_back_office)
):
    """Record money received at the front desk"""
    booking = get_booking(db, source, booking_id)

    if booking.booking_status == models.BookingStatus.CANCELLED:
        raise HTTPException(status_code=400, detail="Cannot record a payment for a cancelled appointment")

    try:
        payment = record_payment(
            db, booking, data.amount,
            method=data.method,
            note=data.note,
            recorded_by=staff.id,
        )
    except PaymentError as e:
        raise payment_error(e)

    notify(
        db,
        booking.patient_id,
        models.NotificationType.PAYMENT_RECORDED,
        "Payment Recorded",
        f"We received {config.CURRENCY_SYMBOL}{data.amount} for {booking.treatment_option}. "
        f"Remaining balance: {config.CURRENCY_SYMBOL}{booking.balance}.",
        {**booking_details(booking), "transaction_id": payment.transaction_id, "amount": data.amount},
    )
    db.commit()
    db.refresh(booking)

    return _bill(db, booking, with_payments=True)


@router.get("/{source}/{booking_id}/receipt", response_class=HTMLResponse)
def get_receipt(
    source: models.BookingSource,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    booking = _visible_booking(db, source, booking_id, current_user)
    return HTMLResponse(render_receipt(booking, booking_payments(db, booking)))
