from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ticketing.domain.state_machine import EventCategory, EventStatus, PaymentStatus


# -----------------------------
# Events
# -----------------------------
class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    category: EventCategory
    date: datetime
    time: str = Field(min_length=1, max_length=16)
    venue_name: str = Field(min_length=1)
    venue_address: str = Field(min_length=1)
    venue_city: str = Field(min_length=1)
    price: Decimal = Field(ge=0)
    total_tickets: int = Field(ge=1)
    status: EventStatus = EventStatus.ACTIVE
    image: str = ""


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    category: EventCategory | None = None
    date: datetime | None = None
    time: str | None = Field(default=None, min_length=1, max_length=16)
    venue_name: str | None = None
    venue_address: str | None = None
    venue_city: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    total_tickets: int | None = Field(default=None, ge=1)
    status: EventStatus | None = None
    image: str | None = None


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    category: EventCategory
    date: datetime
    time: str
    venue_name: str
    venue_address: str
    venue_city: str
    price: Decimal
    total_tickets: int
    available_tickets: int
    image: str
    status: EventStatus
    organizer_id: str


class EventSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    date: datetime
    time: str
    venue_name: str


# -----------------------------
# Bookings
# -----------------------------
class BookingRequest(BaseModel):
    event_id: str
    tickets: int = Field(ge=1)


class BookingConfirmRequest(BaseModel):
    payment_id: str = Field(min_length=1)


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    event_id: str
    tickets: int
    total_amount: Decimal
    payment_status: PaymentStatus
    payment_id: str
    order_id: str | None = None
    reminder_sent: bool
    payment_reminder_sent: bool | None = None
    payment_reminder_sent_at: datetime | None = None
    created_at: datetime
    event: EventSummary | None = None


# -----------------------------
# Payments
# -----------------------------
class PaymentCreateRequest(BaseModel):
    booking_id: str


class PaymentCreateResponse(BaseModel):
    order_id: str
    approval_url: str


class PaymentCaptureRequest(BaseModel):
    order_id: str
    booking_id: str


class PaymentCaptureResponse(BaseModel):
    message: str
    booking: BookingResponse


# -----------------------------
# Admin
# -----------------------------
class StatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_events: int
    active_events: int
    total_bookings: int
    completed_bookings: int
    total_users: int
    total_revenue: Decimal


class PendingBookingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_pending: int
    reminder_sent: int
    reminder_not_sent: int
    eligible_now: int
    cutoff: datetime
    bookings: list[BookingResponse]


class PaymentReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_found: int
    emails_sent: int
    skipped: int
    errors: list[str]


class EventReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    events_found: int
    bookings_found: int
    reminders_sent: int
    errors: list[str]


class TestEmailRequest(BaseModel):
    to: str = Field(pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class TestEmailResponse(BaseModel):
    message: str
    message_id: str


class HealthResponse(BaseModel):
    status: str
    database: str
