import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from ticketing.domain.exceptions import (
    EventHasBookingsError,
    EventNotFoundError,
    InsufficientTicketsError,
    VenueConflictError,
)
from ticketing.domain.state_machine import EventCategory, EventStatus
from ticketing.infrastructure.db.models import Event, User
from ticketing.infrastructure.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "title",
    "description",
    "category",
    "date",
    "time",
    "venue_name",
    "venue_address",
    "venue_city",
    "price",
    "status",
    "image",
)


def as_utc(value: datetime) -> datetime:
    """Event dates are stored in UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _day_start(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


class EventService:
    """Organizer-side event management. Inventory is only ever shifted, never reset."""

    def __init__(self, db: Session):
        self.db = db
        self.event_repository = EventRepository(db)

    def list_events(
        self,
        status: EventStatus | None = EventStatus.ACTIVE,
        category: EventCategory | None = None,
        search: str | None = None,
    ) -> list[Event]:
        return self.event_repository.list_events(
            status=status,
            category=category,
            search=search,
        )

    def get_event(self, event_id: str) -> Event:
        event = self.event_repository.get_by_id(event_id)
        if not event:
            raise EventNotFoundError(event_id)
        return event

    def create_event(
        self,
        organizer: User,
        *,
        title: str,
        description: str,
        category: EventCategory,
        date: datetime,
        time: str,
        venue_name: str,
        venue_address: str,
        venue_city: str,
        price: Decimal,
        total_tickets: int,
        status: EventStatus = EventStatus.ACTIVE,
        image: str = "",
    ) -> Event:
        date = as_utc(date)
        self._ensure_venue_free(venue_name, venue_address, venue_city, date, time)

        event = Event(
            title=title,
            description=description,
            category=category,
            date=date,
            time=time,
            venue_name=venue_name,
            venue_address=venue_address,
            venue_city=venue_city,
            price=price,
            total_tickets=total_tickets,
            available_tickets=total_tickets,
            status=status,
            image=image,
            organizer_id=organizer.id,
        )
        self.event_repository.add(event)
        logger.info("Created event %s (%s) with %s tickets", event.id, title, total_tickets)
        return event

    def update_event(self, event_id: str, changes: dict[str, Any]) -> Event:
        event = self.get_event(event_id)
        changes = dict(changes)
        if changes.get("date") is not None:
            changes["date"] = as_utc(changes["date"])

        if {"venue_name", "venue_address", "venue_city", "date", "time"} & changes.keys():
            self._ensure_venue_free(
                changes.get("venue_name") or event.venue_name,
                changes.get("venue_address") or event.venue_address,
                changes.get("venue_city") or event.venue_city,
                changes.get("date") or as_utc(event.date),
                changes.get("time") or event.time,
                exclude_event_id=event.id,
            )

        for field in _UPDATABLE_FIELDS:
            if changes.get(field) is not None:
                setattr(event, field, changes[field])
        self.db.flush()

        total_tickets = changes.get("total_tickets")
        if total_tickets is not None:
            if not self.event_repository.resize(event.id, total_tickets):
                raise InsufficientTicketsError(
                    "Total tickets cannot be lower than the tickets already sold"
                )

        self.db.refresh(event)
        logger.info("Updated event %s: %s", event.id, ", ".join(sorted(changes)))
        return event

    def delete_event(self, event_id: str) -> None:
        event = self.get_event(event_id)
        if self.event_repository.has_bookings(event.id):
            raise EventHasBookingsError(
                "Event has bookings and cannot be deleted. Cancel it instead."
            )
        self.event_repository.delete(event)
        logger.info("Deleted event %s", event_id)

    def _ensure_venue_free(
        self,
        venue_name: str,
        venue_address: str,
        venue_city: str,
        date: datetime,
        time: str,
        exclude_event_id: str | None = None,
    ) -> None:
        conflict = self.event_repository.find_venue_conflict(
            venue_name=venue_name,
            venue_address=venue_address,
            venue_city=venue_city,
            day_start=_day_start(date),
            time=time,
            exclude_event_id=exclude_event_id,
        )
        if conflict:
            raise VenueConflictError(
                f'Venue "{venue_name}" is already booked on {date.date().isoformat()} '
                f"at {time}. Please choose a different date, time, or venue."
            )
