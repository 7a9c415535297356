"""
Database models for the dental clinic booking system
"""
import enum
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, func,
)
from sqlalchemy.orm import declared_attr, relationship

from .database import Base


class UserRole(str, enum.Enum):
    PATIENT = "patient"
    ADMIN = "admin"
    DENTIST = "dentist"
    STAFF = "staff"


class BookingStatus(str, enum.Enum):
    """Lifecycle of a walk-in appointment or an online request"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAID = "paid"
    TREATED = "treated"
    CANCELLED = "cancelled"
    RESCHEDULE = "reschedule"

    @classmethod
    def parse(cls, value) -> Optional["BookingStatus"]:
        """Case-insensitive lookup; unknown or empty values give None"""
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    @property
    def blocks_time(self) -> bool:
        return self in (BookingStatus.CONFIRMED, BookingStatus.PAID)


class BookingSource(str, enum.Enum):
    WALK_IN = "walk_in"
    ONLINE_REQUEST = "online_request"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    PAYPAL = "paypal"


class NotificationType(str, enum.Enum):
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    PAYMENT_RECORDED = "payment_recorded"
    TREATMENT_RECORDED = "treatment_recorded"
    ANNOUNCEMENT = "announcement"


class User(Base):
    """Patients and back-office accounts"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)
    birthdate = Column(Date, nullable=True)
    specialization = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.PATIENT.value, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())

    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ScheduleDay(Base):
    """Version counter per calendar date, bumped by every slot reservation"""
    __tablename__ = "schedule_days"

    date = Column(Date, primary_key=True)
    version = Column(Integer, nullable=False, default=0)


class BookingMixin:
    """Columns shared by walk-in appointments and online requests"""

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(20), nullable=False)
    duration = Column(Integer, nullable=False, default=30)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    patient_name = Column(String(200), nullable=False)
    patient_email = Column(String(255), nullable=True)
    patient_phone = Column(String(20), nullable=True)

    treatment = Column(String(100), nullable=False)
    treatment_option = Column(String(200), nullable=False)
    price = Column(Integer, nullable=False, default=0)
    amount_paid = Column(Integer, nullable=False, default=0)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)

    health_declaration = Column(Text, nullable=True)
    health_answers = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime, nullable=True)

    @declared_attr
    def patient_id(cls):
        return Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    @declared_attr
    def provider_id(cls):
        return Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    @declared_attr
    def created_by(cls):
        return Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def patient(cls):
        return relationship("User", foreign_keys=f"{cls.__name__}.patient_id")

    @declared_attr
    def provider(cls):
        return relationship("User", foreign_keys=f"{cls.__name__}.provider_id")

    @property
    def booking_status(self) -> Optional[BookingStatus]:
        return BookingStatus.parse(self.status)

    @property
    def balance(self) -> int:
        return max(0, (self.price or 0) - (self.amount_paid or 0))


class Appointment(BookingMixin, Base):
    """Walk-in appointment created by clinic staff"""
    __tablename__ = "appointments"

    source = BookingSource.WALK_IN

    color = Column(String(20), nullable=False, default="#3b82f6")


class OnlineRequest(BookingMixin, Base):
    """Appointment requested by a patient through the portal"""
    __tablename__ = "online_requests"

    source = BookingSource.ONLINE_REQUEST

    reservation_status = Column(String(20), nullable=True)
    reservation_method = Column(String(20), nullable=True)
    reservation_fee = Column(Integer, nullable=False, default=0)
    payment_type = Column(String(20), nullable=True)
    visit_type = Column(String(20), nullable=False, default="initial")
    is_multi_visit = Column(Boolean, nullable=False, default=False)
    follow_up_of = Column(Integer, ForeignKey("online_requests.id", ondelete="SET NULL"), nullable=True)


BOOKING_MODELS = {
    BookingSource.WALK_IN: Appointment,
    BookingSource.ONLINE_REQUEST: OnlineRequest,
}


class Payment(Base):
    """Money received against a booking"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(20), nullable=False)
    booking_id = Column(Integer, nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Integer, nullable=False)
    method = Column(String(20), nullable=False, default=PaymentMethod.CASH.value)
    kind = Column(String(20), nullable=False, default="treatment")
    note = Column(Text, nullable=True)
    transaction_id = Column(String(64), nullable=False, unique=True)
    recorded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class TreatmentRecord(Base):
    """Procedure performed during a visit"""
    __tablename__ = "treatment_records"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(20), nullable=False)
    booking_id = Column(Integer, nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    dentist_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    procedure = Column(String(200), nullable=False)
    teeth = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    treated_on = Column(Date, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Notification(Base):
    """In-app notification for one user"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(40), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="notifications")
