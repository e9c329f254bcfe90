import logging

from sqlalchemy.orm import Session

from ticketing.application.booking_service import BookingService
from ticketing.config import Settings
from ticketing.domain.exceptions import (
    BookingAlreadyPaidError,
    OrderMismatchError,
    PaymentNotCompletedError,
)
from ticketing.domain.state_machine import PaymentStatus
from ticketing.infrastructure.db.models import Booking, User
from ticketing.infrastructure.payments.processor import (
    PaymentProcessor,
    ProcessorOrder,
    ProcessorStatus,
)

logger = logging.getLogger(__name__)


class PaymentService:
    """Creates and captures processor orders for bookings.

    A booking is only marked paid after the processor reports a completed
    capture. Gateway errors propagate untouched, so the caller rolls back and
    the booking stays pending.
    """

    def __init__(self, db: Session, processor: PaymentProcessor, settings: Settings):
        self.db = db
        self.processor = processor
        self.settings = settings
        self.booking_service = BookingService(db)

    def create_order(self, booking_id: str, user: User) -> ProcessorOrder:
        booking = self.booking_service.get_owned_booking(booking_id, user)

        if booking.payment_status == PaymentStatus.COMPLETED:
            raise BookingAlreadyPaidError("Booking already paid")

        order = self.processor.create_order(
            amount=booking.total_amount,
            currency=self.settings.payment_currency,
            description=f"Booking for {booking.event.title} - {booking.tickets} ticket(s)",
            reference=booking.id,
            return_url=f"{self.settings.public_base_url}/payment/success",
            cancel_url=f"{self.settings.public_base_url}/payment/cancel",
        )
        booking.order_id = order.order_id
        self.db.flush()
        logger.info("Created payment order %s for booking %s", order.order_id, booking.id)
        return order

    def capture_order(self, order_id: str, booking_id: str, user: User) -> Booking:
        booking = self.booking_service.get_owned_booking(booking_id, user)

        if booking.payment_status == PaymentStatus.COMPLETED:
            raise BookingAlreadyPaidError("Booking already paid")

        if booking.order_id != order_id:
            raise OrderMismatchError("Order id does not match this booking.")

        capture = self.processor.capture_order(order_id)

        if capture.status != ProcessorStatus.COMPLETED:
            logger.warning(
                "Order %s for booking %s not completed (processor status %s)",
                order_id,
                booking.id,
                capture.raw_status or capture.status.value,
            )
            raise PaymentNotCompletedError(capture.raw_status or capture.status.value)

        return self.booking_service.complete_payment(booking, capture.payment_id)
