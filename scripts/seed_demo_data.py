import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from ticketing.domain.state_machine import EventCategory, EventStatus, UserRole
from ticketing.infrastructure.db.models import Base, Event, User
from ticketing.infrastructure.db.session import SessionLocal, engine
from ticketing.infrastructure.repositories.event_repository import EventRepository


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    ist = timezone(timedelta(hours=5, minutes=30))
    now_ist = datetime.now(ist)
    target = now_ist + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0).astimezone(timezone.utc)


def seed_admin(db) -> User:
    email = os.getenv("ADMIN_EMAIL", "admin@example.com")
    name = os.getenv("ADMIN_NAME", "Admin User")

    admin = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if admin:
        admin.name = name
        admin.role = UserRole.ADMIN
    else:
        admin = User(name=name, email=email, role=UserRole.ADMIN)
        db.add(admin)
    db.flush()
    return admin


def seed_events(db, organizer: User) -> None:
    event_defs = [
        {
            "title": "Sunidhi Chauhan Live Concert",
            "description": "An evening of Bollywood hits performed live.",
            "category": EventCategory.CONCERT,
            "date": _dt(days_from_now=10, hour=19, minute=30),
            "time": "19:30",
            "venue_name": "Indira Gandhi Arena",
            "venue_address": "IP Estate",
            "venue_city": "New Delhi",
            "price": Decimal("1800.00"),
            "total_tickets": 400,
        },
        {
            "title": "PyData Delhi Meetup",
            "description": "Talks and workshops on data tooling in Python.",
            "category": EventCategory.CONFERENCE,
            "date": _dt(days_from_now=15, hour=10, minute=0),
            "time": "10:00",
            "venue_name": "India Habitat Centre",
            "venue_address": "Lodhi Road",
            "venue_city": "New Delhi",
            "price": Decimal("500.00"),
            "total_tickets": 150,
        },
        {
            "title": "Pottery for Beginners",
            "description": "Hands-on wheel throwing session, all materials included.",
            "category": EventCategory.WORKSHOP,
            "date": _dt(days_from_now=1, hour=16, minute=0),
            "time": "16:00",
            "venue_name": "Clay Studio",
            "venue_address": "Hauz Khas Village",
            "venue_city": "New Delhi",
            "price": Decimal("1200.00"),
            "total_tickets": 20,
        },
    ]

    for item in event_defs:
        existing = db.execute(
            select(Event).where(Event.title == item["title"])
        ).scalar_one_or_none()
        if existing:
            for field, value in item.items():
                if field != "total_tickets":
                    setattr(existing, field, value)
            existing.status = EventStatus.ACTIVE
            db.flush()
            # Sold tickets stay sold; capacity below that is left as it was.
            EventRepository(db).resize(existing.id, item["total_tickets"])
            continue

        db.add(
            Event(
                **item,
                available_tickets=item["total_tickets"],
                status=EventStatus.ACTIVE,
                organizer_id=organizer.id,
            )
        )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        admin = seed_admin(db)
        seed_events(db, admin)
        db.commit()
        print(f"Seed complete: admin {admin.email} and demo events added.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
