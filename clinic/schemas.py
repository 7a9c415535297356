import datetime as dt
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field

from .models import BookingSource, BookingStatus, PaymentMethod, PaymentStatus, UserRole
from .sms_service import is_valid_ph_mobile


def _not_in_past(v: dt.date) -> dt.date:
    if v < dt.date.today():
        raise ValueError("Cannot book a date in the past")
    return v


BookingDate = Annotated[dt.date, AfterValidator(_not_in_past)]


def _ph_mobile(v: str) -> str:
    if not is_valid_ph_mobile(v):
        raise ValueError("Phone must be a mobile number like 09XXXXXXXXX or +639XXXXXXXXX")
    return v.strip()


PhoneNumber = Annotated[str, AfterValidator(_ph_mobile)]


# Users

class UserBase(BaseModel):
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    phone: Optional[PhoneNumber] = None
    address: Optional[str] = Field(None, max_length=255)
    birthdate: Optional[dt.date] = None


class UserCreate(UserBase):
    password: str = Field(..., min_length=8, max_length=72)


class StaffCreate(UserCreate):
    role: UserRole
    specialization: Optional[str] = Field(None, max_length=100)


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[PhoneNumber] = None
    address: Optional[str] = Field(None, max_length=255)
    birthdate: Optional[dt.date] = None


class UserAdminUpdate(BaseModel):
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    specialization: Optional[str] = Field(None, max_length=100)


class UserResponse(UserBase):
    id: int
    role: UserRole
    specialization: Optional[str] = None
    is_active: bool
    is_verified: bool
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class DentistResponse(BaseModel):
    id: int
    full_name: str
    specialization: Optional[str] = None

    class Config:
        from_attributes = True


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    refresh_token: str


class PasswordReset(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8, max_length=72)


class PasswordChange(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=8, max_length=72)


# Bookings

class ServiceChoice(BaseModel):
    category: str
    option: str


class WalkInCreate(ServiceChoice):
    patient_id: Optional[int] = None
    patient_name: Optional[str] = Field(None, max_length=200)
    patient_email: Optional[EmailStr] = None
    patient_phone: Optional[PhoneNumber] = None
    provider_id: int
    date: BookingDate
    time: str
    status: BookingStatus = BookingStatus.CONFIRMED
    health_answers: Dict[str, str] = Field(default_factory=dict)
    health_declaration: Optional[str] = None
    color: str = Field("#3b82f6", max_length=20)
    notes: Optional[str] = None


class WalkInUpdate(BaseModel):
    provider_id: Optional[int] = None
    date: Optional[BookingDate] = None
    time: Optional[str] = None
    status: Optional[BookingStatus] = None
    price: Optional[int] = Field(None, ge=0)
    color: Optional[str] = Field(None, max_length=20)
    health_declaration: Optional[str] = None
    notes: Optional[str] = None


class ReservationPayment(BaseModel):
    """Reservation payment captured by the gateway before submission"""
    amount: int = Field(..., gt=0)
    transaction_id: str = Field(..., min_length=1, max_length=64)


class OnlineRequestCreate(ServiceChoice):
    date: BookingDate
    time: str
    provider_id: Optional[int] = None
    payment_type: Optional[Literal["full", "downpayment"]] = None
    visit_type: Literal["initial", "followup", "adjustment"] = "initial"
    health_answers: Dict[str, str] = Field(default_factory=dict)
    health_declaration: Optional[str] = None
    payment: Optional[ReservationPayment] = None


class RescheduleRequest(BaseModel):
    date: BookingDate
    time: str


class StatusUpdate(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    id: int
    source: BookingSource
    date: dt.date
    time: str
    duration: int
    status: str
    patient_id: Optional[int] = None
    patient_name: str
    patient_email: Optional[str] = None
    patient_phone: Optional[str] = None
    provider_id: Optional[int] = None
    treatment: str
    treatment_option: str
    price: int
    amount_paid: int
    balance: int
    payment_status: str
    health_declaration: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class AppointmentResponse(BookingResponse):
    color: str


class OnlineRequestResponse(BookingResponse):
    reservation_status: Optional[str] = None
    reservation_method: Optional[str] = None
    reservation_fee: int = 0
    payment_type: Optional[str] = None
    visit_type: str
    is_multi_visit: bool
    follow_up_of: Optional[int] = None


# Slots and catalog

class SlotsResponse(BaseModel):
    date: dt.date
    provider_id: Optional[int] = None
    duration: Optional[int] = None
    slots: List[str]


class QuoteResponse(BaseModel):
    category: str
    option: str
    price: int
    minutes: int
    reservation_fee: int
    down_payment: int
    due_now: Dict[str, int]


# Billing

class PaymentCreate(BaseModel):
    amount: int = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.CASH
    note: Optional[str] = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    id: int
    amount: int
    method: str
    kind: str
    note: Optional[str] = None
    transaction_id: str
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class BillResponse(BaseModel):
    source: BookingSource
    booking_id: int
    patient_id: Optional[int] = None
    patient_name: str
    treatment: str
    date: dt.date
    total: int
    amount_paid: int
    balance: int
    payment_status: PaymentStatus
    payments: List[PaymentResponse] = []


# Treatments

class TreatmentCreate(BaseModel):
    procedure: str = Field(..., min_length=1, max_length=200)
    teeth: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    treated_on: Optional[dt.date] = None


class TreatmentResponse(BaseModel):
    id: int
    source: BookingSource
    booking_id: int
    patient_id: Optional[int] = None
    dentist_id: Optional[int] = None
    procedure: str
    teeth: Optional[str] = None
    notes: Optional[str] = None
    treated_on: dt.date

    class Config:
        from_attributes = True


class TimelineEntry(BaseModel):
    kind: Literal["booking", "treatment"]
    date: dt.date
    title: str
    status: Optional[str] = None
    source: BookingSource
    booking_id: int


# Notifications

class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    read: bool
    details: Optional[dict] = None
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    unread: int


class BroadcastCreate(BaseModel):
    role: UserRole = UserRole.PATIENT
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)


class DashboardResponse(BaseModel):
    date: dt.date
    bookings_by_status: Dict[str, int]
    pending_online_requests: int
    outstanding_balance: int
    patients: int
