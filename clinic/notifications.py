"""
In-app notifications for patients and staff
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    user_id: Optional[int],
    type: models.NotificationType,
    title: str,
    message: str,
    details: Optional[dict] = None,
) -> Optional[models.Notification]:
    """Queue a notification on the session; the caller commits"""
    if user_id is None:
        return None

    notification = models.Notification(
        user_id=user_id,
        type=type.value,
        title=title,
        message=message,
        details=details or {},
    )
    db.add(notification)
    return notification


def booking_details(booking) -> dict:
    return {
        "source": booking.source.value,
        "booking_id": booking.id,
        "date": booking.date.isoformat(),
        "time": booking.time,
        "treatment": booking.treatment_option or booking.treatment,
    }


def notify_booking(db: Session, booking, type: models.NotificationType) -> Optional[models.Notification]:
    """Tell the patient about a change to their booking"""
    what = booking.treatment_option or booking.treatment
    when = f"{booking.date.isoformat()} at {booking.time}"

    if type == models.NotificationType.APPOINTMENT_CREATED:
        title = "Appointment Requested"
        message = f"Your appointment for {what} on {when} has been created and is {booking.status}."
    elif type == models.NotificationType.APPOINTMENT_CONFIRMED:
        title = "Appointment Confirmed"
        message = f"Your appointment for {what} on {when} is confirmed."
    elif type == models.NotificationType.APPOINTMENT_CANCELLED:
        title = "Appointment Cancelled"
        message = f"Your appointment for {what} on {when} has been cancelled."
    elif type == models.NotificationType.APPOINTMENT_RESCHEDULED:
        title = "Appointment Rescheduled"
        message = f"Your appointment for {what} has been moved to {when}."
    elif type == models.NotificationType.TREATMENT_RECORDED:
        title = "Treatment Recorded"
        message = f"Your {what} treatment on {booking.date.isoformat()} has been recorded."
    else:
        raise ValueError(f"{type.value} is not a booking notification")

    return notify(db, booking.patient_id, type, title, message, booking_details(booking))


def broadcast(db: Session, role: models.UserRole, title: str, message: str) -> int:
    """Notify every active user with `role`; returns the number notified"""
    users = (
        db.query(models.User)
        .filter(models.User.role == role.value, models.User.is_active.is_(True))
        .all()
    )
    for user in users:
        notify(db, user.id, models.NotificationType.ANNOUNCEMENT, title, message)
    logger.info("Broadcast '%s' to %d %s users", title, len(users), role.value)
    return len(users)
