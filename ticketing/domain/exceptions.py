

class TicketingError(Exception):
    """
    Base exception for all domain-level errors
    inside the ticketing engine.
    """


class NotFoundError(TicketingError):
    """Raised when a referenced event or booking does not exist."""


class EventNotFoundError(NotFoundError):
    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__("Event not found")


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__("Booking not found")


class AccessDeniedError(TicketingError):
    """Raised when the caller neither owns the resource nor is an admin."""


class ConflictError(TicketingError):
    """Raised when the current state forbids the requested mutation."""


class InvalidStateTransitionError(ConflictError):
    """
    Raised when an illegal payment status transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class EventNotBookableError(ConflictError):
    """Raised when booking an event that is not active."""


class InsufficientTicketsError(ConflictError):
    """Raised when fewer tickets are available than requested."""


class BookingAlreadyPaidError(ConflictError):
    """Raised when paying for or confirming a completed booking."""


class OrderMismatchError(ConflictError):
    """Raised when a captured order was created for a different booking."""


class PaymentAlreadyUsedError(ConflictError):
    """Raised when a payment id is already recorded on another booking."""


class EventHasBookingsError(ConflictError):
    """Raised when deleting an event that bookings still reference."""


class VenueConflictError(ConflictError):
    """Raised when another event already holds the venue at that date and time."""


class InvalidBookingError(TicketingError):
    """Raised for booking input that is out of range."""


class PaymentNotCompletedError(TicketingError):
    """Raised when the processor reports a status other than completed."""

    def __init__(self, processor_status: str):
        self.processor_status = processor_status
        super().__init__("Payment not completed")


class PaymentGatewayError(TicketingError):
    """Raised when the payment processor is unreachable or rejects a call."""


class PaymentConfigurationError(PaymentGatewayError):
    """Raised when processor credentials are missing."""


class EmailDeliveryError(TicketingError):
    """Raised by email clients when a message cannot be delivered."""
