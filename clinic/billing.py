"""
Billing: payment status math, payment recording and receipts
"""
import logging
import math
import secrets
import string
import time
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.orm import Session

from . import config, models
from .catalog import ServiceOption

logger = logging.getLogger(__name__)

templates = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates"),
    autoescape=select_autoescape(["html"]),
)

_TXN_ALPHABET = string.ascii_uppercase + string.digits


class PaymentError(ValueError):
    """Payment rejected for the booking's current balance"""


def payment_status(total: int, paid: int) -> models.PaymentStatus:
    if total - paid <= 0:
        return models.PaymentStatus.PAID
    if paid > 0:
        return models.PaymentStatus.PARTIAL
    return models.PaymentStatus.UNPAID


def generate_transaction_id() -> str:
    """TXN-<epoch millis>-<9 random uppercase alphanumerics>"""
    suffix = "".join(secrets.choice(_TXN_ALPHABET) for _ in range(9))
    return f"TXN-{int(time.time() * 1000)}-{suffix}"


def down_payment(price: int) -> int:
    return math.ceil(price * config.DOWN_PAYMENT_RATE)


def reservation_quote(option: ServiceOption) -> dict:
    """Amount due at booking time for each payment type"""
    fee = config.RESERVATION_FEE
    return {
        "reservation_fee": fee,
        "down_payment": down_payment(option.price),
        "due_now": {
            "reservation": fee,
            "downpayment": fee + down_payment(option.price),
            "full": fee + option.price,
        },
    }


def record_payment(
    db: Session,
    booking,
    amount: int,
    method: models.PaymentMethod = models.PaymentMethod.CASH,
    note: Optional[str] = None,
    kind: str = "treatment",
    transaction_id: Optional[str] = None,
    recorded_by: Optional[int] = None,
    enforce_balance: bool = True,
) -> models.Payment:
    """Add a payment to a booking and refresh its totals.

    The caller commits. Reservation payments captured by the gateway are
    recorded with `enforce_balance=False` since they may include the
    reservation fee on top of the treatment price.
    """
    if amount <= 0:
        raise PaymentError("Payment amount must be positive")
    if enforce_balance and amount > booking.balance:
        raise PaymentError(f"Payment amount {amount} exceeds balance {booking.balance}")

    payment = models.Payment(
        source=booking.source.value,
        booking_id=booking.id,
        patient_id=booking.patient_id,
        amount=amount,
        method=models.PaymentMethod(method).value,
        kind=kind,
        note=note,
        transaction_id=transaction_id or generate_transaction_id(),
        recorded_by=recorded_by,
    )
    db.add(payment)

    booking.amount_paid = (booking.amount_paid or 0) + amount
    booking.payment_status = payment_status(booking.price or 0, booking.amount_paid).value

    logger.info(
        "Recorded %s payment of %s for %s #%s (balance %s)",
        payment.method, amount, booking.source.value, booking.id, booking.balance,
    )
    return payment


def booking_payments(db: Session, booking) -> list:
    return (
        db.query(models.Payment)
        .filter(
            models.Payment.source == booking.source.value,
            models.Payment.booking_id == booking.id,
        )
        .order_by(models.Payment.created_at, models.Payment.id)
        .all()
    )


def render_receipt(booking, payments: list) -> str:
    """HTML receipt for a booking"""
    template = templates.get_template("receipt.html")
    return template.render(
        clinic_name=config.CLINIC_NAME,
        currency=config.CURRENCY_SYMBOL,
        booking=booking,
        payments=payments,
        status=payment_status(booking.price or 0, booking.amount_paid or 0).value,
    )
