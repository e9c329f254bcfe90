# ticketing/infrastructure/repositories/event_repository.py

from datetime import datetime, timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from ticketing.domain.state_machine import EventStatus
from ticketing.infrastructure.db.models import Booking, Event


class EventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, event_id: str) -> Event | None:
        stmt = select(Event).where(Event.id == event_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_events(
        self,
        status: EventStatus | None = EventStatus.ACTIVE,
        category: str | None = None,
        search: str | None = None,
    ) -> list[Event]:
        stmt = select(Event)
        if status is not None:
            stmt = stmt.where(Event.status == status)
        if category:
            stmt = stmt.where(Event.category == category)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Event.title).like(pattern),
                    func.lower(Event.description).like(pattern),
                )
            )
        stmt = stmt.order_by(Event.date)
        return list(self.db.execute(stmt).scalars().all())

    def list_active_between(self, start: datetime, end: datetime) -> list[Event]:
        stmt = (
            select(Event)
            .where(Event.status == EventStatus.ACTIVE)
            .where(Event.date >= start)
            .where(Event.date < end)
            .order_by(Event.date)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_venue_conflict(
        self,
        venue_name: str,
        venue_address: str,
        venue_city: str,
        day_start: datetime,
        time: str,
        exclude_event_id: str | None = None,
    ) -> Event | None:
        stmt = (
            select(Event)
            .where(func.lower(Event.venue_name) == venue_name.lower())
            .where(func.lower(Event.venue_address) == venue_address.lower())
            .where(func.lower(Event.venue_city) == venue_city.lower())
            .where(Event.date >= day_start)
            .where(Event.date < day_start + timedelta(days=1))
            .where(Event.time == time)
            .where(Event.status != EventStatus.CANCELLED)
        )
        if exclude_event_id:
            stmt = stmt.where(Event.id != exclude_event_id)
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    def add(self, event: Event) -> Event:
        self.db.add(event)
        self.db.flush()
        return event

    def delete(self, event: Event) -> None:
        self.db.delete(event)
        self.db.flush()

    def has_bookings(self, event_id: str) -> bool:
        stmt = select(func.count(Booking.id)).where(Booking.event_id == event_id)
        return bool(self.db.scalar(stmt))

    def decrement_available(self, event_id: str, count: int) -> bool:
        """
        Conditional decrement: applies only while enough tickets remain.
        Returns False when the counter would go negative.
        """
        stmt = (
            update(Event)
            .where(Event.id == event_id)
            .where(Event.available_tickets >= count)
            .values(available_tickets=Event.available_tickets - count)
        )
        return self.db.execute(stmt).rowcount == 1

    def increment_available(self, event_id: str, count: int) -> bool:
        stmt = (
            update(Event)
            .where(Event.id == event_id)
            .where(Event.available_tickets + count <= Event.total_tickets)
            .values(available_tickets=Event.available_tickets + count)
        )
        return self.db.execute(stmt).rowcount == 1

    def count(self, status: EventStatus | None = None) -> int:
        stmt = select(func.count(Event.id))
        if status is not None:
            stmt = stmt.where(Event.status == status)
        return int(self.db.scalar(stmt) or 0)

    def resize(self, event_id: str, total_tickets: int) -> bool:
        """
        Sets total_tickets and shifts available_tickets by the same delta,
        measured against the stored row. Returns False when the shift would
        leave fewer tickets than are already sold.
        """
        delta = total_tickets - Event.total_tickets
        stmt = (
            update(Event)
            .where(Event.id == event_id)
            .where(Event.available_tickets + delta >= 0)
            .values(
                total_tickets=total_tickets,
                available_tickets=Event.available_tickets + delta,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
