import logging

from sqlalchemy.orm import Session

from ticketing.domain.exceptions import (
    AccessDeniedError,
    BookingAlreadyPaidError,
    BookingNotFoundError,
    EventNotBookableError,
    EventNotFoundError,
    InsufficientTicketsError,
    InvalidBookingError,
    InvalidStateTransitionError,
    PaymentAlreadyUsedError,
)
from ticketing.domain.state_machine import EventStatus, PaymentStateMachine, PaymentStatus
from ticketing.infrastructure.db.models import Booking, User
from ticketing.infrastructure.repositories.booking_repository import BookingRepository
from ticketing.infrastructure.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)


class BookingService:
    """Application service coordinating the booking and inventory workflow.

    The service never commits. Callers own the unit of work, so a raised
    error leaves both the booking and the event untouched once they roll back.
    """

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.event_repository = EventRepository(db)

    def create_booking(
        self,
        user_id: str,
        event_id: str,
        tickets: int,
    ) -> Booking:
        if tickets < 1:
            raise InvalidBookingError("Invalid booking data")

        event = self.event_repository.get_by_id(event_id)
        if not event:
            raise EventNotFoundError(event_id)

        if event.status != EventStatus.ACTIVE:
            raise EventNotBookableError("Event is not available for booking")

        if event.available_tickets < tickets:
            raise InsufficientTicketsError("Not enough tickets available")

        # Tickets are claimed only when payment completes.
        booking = self.booking_repository.create_booking(
            user_id=user_id,
            event_id=event_id,
            tickets=tickets,
            total_amount=event.price * tickets,
        )
        logger.info(
            "Created booking %s for event %s (%s tickets, amount %s)",
            booking.id,
            event_id,
            tickets,
            booking.total_amount,
        )
        return booking

    def get_booking(self, booking_id: str, user: User) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)

        if booking.user_id != user.id and not user.is_admin:
            raise AccessDeniedError("Access denied")

        return booking

    def get_owned_booking(self, booking_id: str, user: User) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)

        if booking.user_id != user.id:
            raise AccessDeniedError("Access denied")

        return booking

    def list_user_bookings(self, user: User) -> list[Booking]:
        return self.booking_repository.list_for_user(user.id)

    def list_all_bookings(self) -> list[Booking]:
        return self.booking_repository.list_all()

    def confirm_payment(
        self,
        booking_id: str,
        payment_id: str,
        user: User,
    ) -> Booking:
        booking = self.get_owned_booking(booking_id, user)
        return self.complete_payment(booking, payment_id)

    def complete_payment(self, booking: Booking, payment_id: str) -> Booking:
        """
        pending -> completed and the inventory decrement, in one unit of work.

        Both writes are conditional, so a duplicate or concurrent confirmation
        finds the booking no longer pending and cannot decrement twice.
        """
        if booking.payment_status == PaymentStatus.COMPLETED:
            raise BookingAlreadyPaidError("Booking already confirmed")

        PaymentStateMachine.validate_transition(
            booking.payment_status,
            PaymentStatus.COMPLETED,
        )

        if payment_id:
            holder = self.booking_repository.find_by_payment_id(payment_id)
            if holder and holder.id != booking.id:
                raise PaymentAlreadyUsedError(
                    "Payment id already consumed by another booking."
                )

        claimed = self.booking_repository.transition_status(
            booking.id,
            from_status=PaymentStatus.PENDING,
            to_status=PaymentStatus.COMPLETED,
            payment_id=payment_id or "",
        )
        if not claimed:
            raise BookingAlreadyPaidError("Booking already confirmed")

        if not self.event_repository.decrement_available(booking.event_id, booking.tickets):
            logger.warning(
                "Inventory exhausted while confirming booking %s for event %s",
                booking.id,
                booking.event_id,
            )
            raise InsufficientTicketsError(
                "Not enough tickets available to confirm this booking"
            )

        self.db.flush()
        self.db.refresh(booking)
        self.db.refresh(booking.event)
        logger.info(
            "Confirmed booking %s with payment %s",
            booking.id,
            booking.payment_id,
        )
        return booking

    def refund_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)

        PaymentStateMachine.validate_transition(
            booking.payment_status,
            PaymentStatus.REFUNDED,
        )

        if not self.booking_repository.transition_status(
            booking.id,
            from_status=PaymentStatus.COMPLETED,
            to_status=PaymentStatus.REFUNDED,
        ):
            raise InvalidStateTransitionError(
                from_state=PaymentStatus.COMPLETED.value,
                to_state=PaymentStatus.REFUNDED.value,
            )

        if not self.event_repository.increment_available(booking.event_id, booking.tickets):
            raise InsufficientTicketsError(
                "Returning these tickets would exceed the event's total"
            )

        self.db.flush()
        self.db.refresh(booking)
        self.db.refresh(booking.event)
        logger.info("Refunded booking %s, released %s tickets", booking.id, booking.tickets)
        return booking
