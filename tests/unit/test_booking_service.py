from decimal import Decimal

import pytest

from ticketing.application.booking_service import BookingService
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
from ticketing.domain.state_machine import EventStatus, PaymentStatus
from ticketing.infrastructure.db.models import Booking, Event


def _count_bookings(db_session) -> int:
    return db_session.query(Booking).count()


def test_create_booking_snapshots_amount_without_touching_inventory(db_session, user, make_event):
    event = make_event(price=Decimal("20.00"), total_tickets=10)

    booking = BookingService(db_session).create_booking(user.id, event.id, 3)
    db_session.commit()

    assert booking.total_amount == Decimal("60.00")
    assert booking.payment_status == PaymentStatus.PENDING
    assert booking.payment_id == ""
    assert booking.reminder_sent is False
    assert booking.payment_reminder_sent is False
    db_session.refresh(event)
    assert event.available_tickets == 10


def test_create_booking_rejects_zero_tickets(db_session, user, make_event):
    event = make_event()

    with pytest.raises(InvalidBookingError):
        BookingService(db_session).create_booking(user.id, event.id, 0)

    assert _count_bookings(db_session) == 0


def test_create_booking_rejects_missing_event(db_session, user):
    with pytest.raises(EventNotFoundError):
        BookingService(db_session).create_booking(user.id, "missing", 1)


def test_create_booking_rejects_inactive_event(db_session, user, make_event):
    event = make_event(status=EventStatus.CANCELLED)

    with pytest.raises(EventNotBookableError):
        BookingService(db_session).create_booking(user.id, event.id, 1)


def test_create_booking_rejects_more_than_available(db_session, user, make_event):
    event = make_event(total_tickets=10, available_tickets=2)

    with pytest.raises(InsufficientTicketsError):
        BookingService(db_session).create_booking(user.id, event.id, 3)

    assert _count_bookings(db_session) == 0


def test_confirm_then_reconfirm_decrements_once(db_session, user, make_event):
    event = make_event(price=Decimal("20.00"), total_tickets=10)
    service = BookingService(db_session)
    booking = service.create_booking(user.id, event.id, 3)
    db_session.commit()

    confirmed = service.confirm_payment(booking.id, "pay_123", user)
    db_session.commit()

    assert confirmed.payment_status == PaymentStatus.COMPLETED
    assert confirmed.payment_id == "pay_123"
    assert confirmed.event.available_tickets == 7

    with pytest.raises(BookingAlreadyPaidError):
        service.confirm_payment(booking.id, "pay_123", user)
    db_session.rollback()

    db_session.refresh(event)
    assert event.available_tickets == 7


def test_confirm_rejects_other_users_booking(db_session, user, make_user, make_event):
    event = make_event()
    booking = BookingService(db_session).create_booking(user.id, event.id, 1)
    db_session.commit()
    stranger = make_user(name="Ravi", email="ravi@example.com")

    with pytest.raises(AccessDeniedError):
        BookingService(db_session).confirm_payment(booking.id, "pay_1", stranger)


def test_confirm_missing_booking(db_session, user):
    with pytest.raises(BookingNotFoundError):
        BookingService(db_session).confirm_payment("missing", "pay_1", user)


def test_confirm_rejected_when_inventory_ran_out(db_session, user, make_user, make_event):
    event = make_event(total_tickets=5)
    service = BookingService(db_session)
    first = service.create_booking(user.id, event.id, 4)
    other = make_user(name="Ravi", email="ravi@example.com")
    second = service.create_booking(other.id, event.id, 4)
    db_session.commit()

    service.confirm_payment(first.id, "pay_1", user)
    db_session.commit()

    with pytest.raises(InsufficientTicketsError):
        service.confirm_payment(second.id, "pay_2", other)
    db_session.rollback()

    assert db_session.get(Booking, second.id).payment_status == PaymentStatus.PENDING
    assert db_session.get(Event, event.id).available_tickets == 1


def test_total_amount_survives_price_change(db_session, user, make_event):
    event = make_event(price=Decimal("20.00"))
    booking = BookingService(db_session).create_booking(user.id, event.id, 2)
    db_session.commit()

    event.price = Decimal("35.00")
    db_session.commit()

    db_session.refresh(booking)
    assert booking.total_amount == Decimal("40.00")


def test_get_booking_visible_to_owner_and_admin_only(db_session, user, admin, make_user, make_event):
    event = make_event()
    booking = BookingService(db_session).create_booking(user.id, event.id, 1)
    db_session.commit()
    stranger = make_user(name="Ravi", email="ravi@example.com")
    service = BookingService(db_session)

    assert service.get_booking(booking.id, user).id == booking.id
    assert service.get_booking(booking.id, admin).id == booking.id
    with pytest.raises(AccessDeniedError):
        service.get_booking(booking.id, stranger)


def test_refund_returns_tickets(db_session, user, make_event):
    event = make_event(total_tickets=10)
    service = BookingService(db_session)
    booking = service.create_booking(user.id, event.id, 3)
    service.confirm_payment(booking.id, "pay_1", user)
    db_session.commit()

    refunded = service.refund_booking(booking.id)
    db_session.commit()

    assert refunded.payment_status == PaymentStatus.REFUNDED
    assert refunded.event.available_tickets == 10


def test_refund_requires_completed_payment(db_session, user, make_event):
    event = make_event()
    service = BookingService(db_session)
    booking = service.create_booking(user.id, event.id, 1)
    db_session.commit()

    with pytest.raises(InvalidStateTransitionError):
        service.refund_booking(booking.id)


def test_payment_id_confirms_only_one_booking(db_session, user, make_event):
    event = make_event(total_tickets=10)
    service = BookingService(db_session)
    first = service.create_booking(user.id, event.id, 1)
    second = service.create_booking(user.id, event.id, 5)
    db_session.commit()

    service.confirm_payment(first.id, "pay_1", user)
    db_session.commit()

    with pytest.raises(PaymentAlreadyUsedError):
        service.confirm_payment(second.id, "pay_1", user)
    db_session.rollback()

    assert db_session.get(Booking, second.id).payment_status == PaymentStatus.PENDING
    assert db_session.get(Event, event.id).available_tickets == 9


def test_racing_confirmations_decrement_once(db_session, session_factory, user, make_event):
    event = make_event(total_tickets=10)
    booking = BookingService(db_session).create_booking(user.id, event.id, 3)
    db_session.commit()

    with session_factory() as racing_db:
        first = BookingService(db_session)
        second = BookingService(racing_db)
        first_copy = first.get_owned_booking(booking.id, user)
        second_copy = second.get_owned_booking(booking.id, user)
        assert first_copy.payment_status == PaymentStatus.PENDING
        assert second_copy.payment_status == PaymentStatus.PENDING

        first.complete_payment(first_copy, "pay_1")
        db_session.commit()

        # Still pending in this session's view, so only the conditional update can refuse it.
        assert second_copy.payment_status == PaymentStatus.PENDING
        with pytest.raises(BookingAlreadyPaidError):
            second.complete_payment(second_copy, "pay_1")
        racing_db.rollback()

    db_session.expire_all()
    assert db_session.get(Event, event.id).available_tickets == 7
    assert db_session.get(Booking, booking.id).payment_status == PaymentStatus.COMPLETED
