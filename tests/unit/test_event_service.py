from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ticketing.application.booking_service import BookingService
from ticketing.application.event_service import EventService, as_utc
from ticketing.domain.exceptions import (
    EventHasBookingsError,
    EventNotFoundError,
    InsufficientTicketsError,
    VenueConflictError,
)
from ticketing.domain.state_machine import EventCategory, EventStatus
from ticketing.infrastructure.db.models import Event


def _event_fields(**overrides):
    fields = {
        "title": "Data Summit",
        "description": "Talks on data engineering",
        "category": EventCategory.CONFERENCE,
        "date": datetime(2026, 11, 20, 10, 0, tzinfo=timezone.utc),
        "time": "10:00",
        "venue_name": "NESCO Center",
        "venue_address": "Western Express Highway",
        "venue_city": "Mumbai",
        "price": Decimal("150.00"),
        "total_tickets": 100,
    }
    fields.update(overrides)
    return fields


def test_as_utc_normalises_offsets():
    ist = timezone(timedelta(hours=5, minutes=30))

    assert as_utc(datetime(2026, 11, 20, 5, 30, tzinfo=ist)) == datetime(
        2026, 11, 20, 0, 0, tzinfo=timezone.utc
    )
    assert as_utc(datetime(2026, 11, 20, 5, 30)).tzinfo == timezone.utc


def test_create_event_starts_fully_available(db_session, admin):
    event = EventService(db_session).create_event(admin, **_event_fields())
    db_session.commit()

    assert event.available_tickets == 100
    assert event.status == EventStatus.ACTIVE
    assert event.organizer_id == admin.id


def test_create_event_rejects_venue_clash(db_session, admin):
    service = EventService(db_session)
    service.create_event(admin, **_event_fields())
    db_session.commit()

    with pytest.raises(VenueConflictError) as exc_info:
        service.create_event(
            admin,
            **_event_fields(
                title="Another Summit",
                venue_name="nesco center",
                date=datetime(2026, 11, 20, 18, 0, tzinfo=timezone.utc),
            ),
        )

    assert "already booked" in str(exc_info.value)


def test_same_venue_different_time_is_allowed(db_session, admin):
    service = EventService(db_session)
    service.create_event(admin, **_event_fields())
    service.create_event(admin, **_event_fields(title="Evening Session", time="18:00"))
    db_session.commit()

    assert db_session.query(Event).count() == 2


def test_cancelled_event_does_not_hold_venue(db_session, admin):
    service = EventService(db_session)
    service.create_event(admin, **_event_fields(status=EventStatus.CANCELLED))
    service.create_event(admin, **_event_fields(title="Rescheduled Summit"))
    db_session.commit()

    assert db_session.query(Event).count() == 2


def test_update_total_tickets_shifts_availability(db_session, user, make_event):
    event = make_event(total_tickets=10)
    bookings = BookingService(db_session)
    booking = bookings.create_booking(user.id, event.id, 4)
    bookings.confirm_payment(booking.id, "pay_1", user)
    db_session.commit()

    updated = EventService(db_session).update_event(event.id, {"total_tickets": 15})
    db_session.commit()

    assert updated.total_tickets == 15
    assert updated.available_tickets == 11


def test_update_cannot_drop_below_sold_tickets(db_session, user, make_event):
    event = make_event(total_tickets=10)
    bookings = BookingService(db_session)
    booking = bookings.create_booking(user.id, event.id, 6)
    bookings.confirm_payment(booking.id, "pay_1", user)
    db_session.commit()

    with pytest.raises(InsufficientTicketsError):
        EventService(db_session).update_event(event.id, {"total_tickets": 5})
    db_session.rollback()

    assert db_session.get(Event, event.id).available_tickets == 4


def test_capacity_change_keeps_sales_made_after_the_event_was_loaded(db_session, session_factory, user, make_event):
    event = make_event(total_tickets=10)
    booking = BookingService(db_session).create_booking(user.id, event.id, 3)
    db_session.commit()

    with session_factory() as admin_db:
        events = EventService(admin_db)
        assert events.get_event(event.id).available_tickets == 10

        BookingService(db_session).confirm_payment(booking.id, "pay_1", user)
        db_session.commit()

        updated = events.update_event(event.id, {"total_tickets": 12})
        admin_db.commit()

        assert updated.total_tickets == 12
        assert updated.available_tickets == 9


def test_update_price_only(db_session, make_event):
    event = make_event(price=Decimal("20.00"))

    updated = EventService(db_session).update_event(event.id, {"price": Decimal("25.50")})
    db_session.commit()

    assert updated.price == Decimal("25.50")
    assert updated.available_tickets == 10


def test_list_events_filters(db_session, make_event):
    make_event(title="Rock Night", description="Loud guitars")
    make_event(
        title="Python Workshop",
        description="Hands-on typing",
        category=EventCategory.WORKSHOP,
        time="10:00",
    )
    make_event(title="Old Show", status=EventStatus.COMPLETED, time="12:00")
    service = EventService(db_session)

    assert {e.title for e in service.list_events()} == {"Rock Night", "Python Workshop"}
    assert [e.title for e in service.list_events(category=EventCategory.WORKSHOP)] == [
        "Python Workshop"
    ]
    assert [e.title for e in service.list_events(search="GUITAR")] == ["Rock Night"]
    assert [e.title for e in service.list_events(status=EventStatus.COMPLETED)] == ["Old Show"]


def test_delete_event_with_bookings_is_rejected(db_session, user, make_event):
    event = make_event()
    BookingService(db_session).create_booking(user.id, event.id, 1)
    db_session.commit()

    with pytest.raises(EventHasBookingsError):
        EventService(db_session).delete_event(event.id)


def test_delete_event(db_session, make_event):
    event = make_event()
    event_id = event.id

    EventService(db_session).delete_event(event_id)
    db_session.commit()

    with pytest.raises(EventNotFoundError):
        EventService(db_session).get_event(event_id)
