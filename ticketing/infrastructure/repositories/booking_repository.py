# ticketing/infrastructure/repositories/booking_repository.py

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from ticketing.domain.state_machine import PaymentStatus
from ticketing.infrastructure.db.models import Booking


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .options(joinedload(Booking.event), joinedload(Booking.user))
            .where(Booking.id == booking_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def create_booking(
        self,
        user_id: str,
        event_id: str,
        tickets: int,
        total_amount: Decimal,
    ) -> Booking:

        booking = Booking(
            user_id=user_id,
            event_id=event_id,
            tickets=tickets,
            total_amount=total_amount,
            payment_status=PaymentStatus.PENDING,
            payment_id="",
            reminder_sent=False,
            payment_reminder_sent=False,
        )

        self.db.add(booking)
        self.db.flush()
        return booking

    def list_for_user(self, user_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .options(joinedload(Booking.event), joinedload(Booking.user))
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_all(self, status: PaymentStatus | None = None) -> list[Booking]:
        stmt = select(Booking).options(
            joinedload(Booking.event),
            joinedload(Booking.user),
        )
        if status is not None:
            stmt = stmt.where(Booking.payment_status == status)
        stmt = stmt.order_by(Booking.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def find_by_payment_id(self, payment_id: str) -> Booking | None:
        stmt = select(Booking).where(Booking.payment_id == payment_id)
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    def transition_status(
        self,
        booking_id: str,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        **values,
    ) -> bool:
        """
        Compare-and-set on payment_status.
        Returns False when the row is no longer in from_status.
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.payment_status == from_status)
            .values(payment_status=to_status, **values)
        )
        return self.db.execute(stmt).rowcount == 1

    def list_unreminded_completed(self, event_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .options(joinedload(Booking.user))
            .where(Booking.event_id == event_id)
            .where(Booking.payment_status == PaymentStatus.COMPLETED)
            .where(Booking.reminder_sent.is_(False))
            .order_by(Booking.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_payment_reminder_candidates(
        self,
        created_before: datetime | None = None,
    ) -> list[Booking]:
        stmt = (
            select(Booking)
            .options(joinedload(Booking.event), joinedload(Booking.user))
            .where(Booking.payment_status == PaymentStatus.PENDING)
            .where(
                or_(
                    Booking.payment_reminder_sent.is_(False),
                    Booking.payment_reminder_sent.is_(None),
                )
            )
        )
        if created_before is not None:
            stmt = stmt.where(Booking.created_at <= created_before)
        stmt = stmt.order_by(Booking.created_at)
        return list(self.db.execute(stmt).scalars().all())

    def mark_event_reminded(self, booking_id: str) -> None:
        stmt = update(Booking).where(Booking.id == booking_id).values(reminder_sent=True)
        self.db.execute(stmt)

    def mark_payment_reminded(self, booking_id: str, sent_at: datetime) -> None:
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .values(payment_reminder_sent=True, payment_reminder_sent_at=sent_at)
        )
        self.db.execute(stmt)

    def count(
        self,
        status: PaymentStatus | None = None,
        payment_reminder_sent: bool | None = None,
    ) -> int:
        stmt = select(func.count(Booking.id))
        if status is not None:
            stmt = stmt.where(Booking.payment_status == status)
        if payment_reminder_sent is not None:
            stmt = stmt.where(Booking.payment_reminder_sent.is_(payment_reminder_sent))
        return int(self.db.scalar(stmt) or 0)

    def total_revenue(self) -> Decimal:
        stmt = select(func.coalesce(func.sum(Booking.total_amount), 0)).where(
            Booking.payment_status == PaymentStatus.COMPLETED
        )
        return Decimal(str(self.db.scalar(stmt) or 0)).quantize(Decimal("0.01"))
