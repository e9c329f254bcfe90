from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ticketing.domain.state_machine import EventStatus, PaymentStatus
from ticketing.infrastructure.db.models import Booking, User, utcnow
from ticketing.infrastructure.repositories.booking_repository import BookingRepository
from ticketing.infrastructure.repositories.event_repository import EventRepository


@dataclass(frozen=True)
class DashboardStats:
    total_events: int
    active_events: int
    total_bookings: int
    completed_bookings: int
    total_users: int
    total_revenue: Decimal


@dataclass(frozen=True)
class PendingBookingsReport:
    total_pending: int
    reminder_sent: int
    reminder_not_sent: int
    eligible_now: int
    cutoff: datetime
    bookings: list[Booking]


class AdminService:
    """Read-only reporting for the admin dashboard."""

    def __init__(self, db: Session):
        self.db = db
        self.event_repository = EventRepository(db)
        self.booking_repository = BookingRepository(db)

    def stats(self) -> DashboardStats:
        return DashboardStats(
            total_events=self.event_repository.count(),
            active_events=self.event_repository.count(EventStatus.ACTIVE),
            total_bookings=self.booking_repository.count(),
            completed_bookings=self.booking_repository.count(PaymentStatus.COMPLETED),
            total_users=int(self.db.scalar(select(func.count(User.id))) or 0),
            total_revenue=self.booking_repository.total_revenue(),
        )

    def pending_bookings(
        self,
        min_age_minutes: int,
        now: datetime | None = None,
    ) -> PendingBookingsReport:
        """What the next payment reminder sweep would see."""
        cutoff = (now or utcnow()) - timedelta(minutes=min_age_minutes)
        pending = self.booking_repository.list_all(PaymentStatus.PENDING)
        reminded = self.booking_repository.count(PaymentStatus.PENDING, payment_reminder_sent=True)
        eligible = self.booking_repository.list_payment_reminder_candidates(created_before=cutoff)
        return PendingBookingsReport(
            total_pending=len(pending),
            reminder_sent=reminded,
            reminder_not_sent=len(pending) - reminded,
            eligible_now=len(eligible),
            cutoff=cutoff,
            bookings=pending,
        )
