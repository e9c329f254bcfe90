import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from ticketing.config import Settings
from ticketing.domain.exceptions import EmailDeliveryError
from ticketing.domain.state_machine import EventCategory, EventStatus, UserRole
from ticketing.infrastructure.db.models import Base, Event, User, utcnow
from ticketing.infrastructure.db.session import build_session_factory
from ticketing.infrastructure.payments.processor import (
    ProcessorCapture,
    ProcessorOrder,
    ProcessorStatus,
)
from ticketing.main import create_app

JWT_SECRET = "ticketing-test-secret-0123456789abcdef"


@dataclass
class SentEmail:
    to: str
    subject: str
    html: str


class FakeEmailClient:
    def __init__(self, configured: bool = True):
        self.configured = configured
        self.fail_for: set[str] = set()
        self.verify_error: str | None = None
        self.sent: list[SentEmail] = []

    async def verify(self) -> None:
        if self.verify_error:
            raise EmailDeliveryError(self.verify_error)

    async def send(self, to: str, subject: str, html: str) -> str:
        if to in self.fail_for:
            raise EmailDeliveryError(f"Could not deliver email to {to}")
        self.sent.append(SentEmail(to=to, subject=subject, html=html))
        return f"<{len(self.sent)}@ticketing.test>"

    def recipients(self) -> list[str]:
        return [mail.to for mail in self.sent]


class FakeProcessor:
    def __init__(self):
        self.capture_status = ProcessorStatus.COMPLETED
        self.raw_status = "paid"
        self.error: Exception | None = None
        self.orders: list[dict] = []
        self.captured: list[str] = []

    def create_order(self, amount, currency, description, reference, return_url, cancel_url):
        if self.error:
            raise self.error
        order_id = f"plink_{len(self.orders) + 1}"
        self.orders.append(
            {
                "order_id": order_id,
                "amount": amount,
                "currency": currency,
                "description": description,
                "reference": reference,
                "return_url": return_url,
                "cancel_url": cancel_url,
            }
        )
        return ProcessorOrder(order_id=order_id, approval_url=f"https://rzp.io/i/{order_id}")

    def capture_order(self, order_id):
        if self.error:
            raise self.error
        self.captured.append(order_id)
        payment_id = f"pay_{order_id}" if self.capture_status == ProcessorStatus.COMPLETED else ""
        return ProcessorCapture(
            status=self.capture_status,
            payment_id=payment_id,
            raw_status=self.raw_status,
        )


@pytest.fixture(scope="session")
def engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def session_factory(engine):
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret=JWT_SECRET,
        public_base_url="http://testserver",
        smtp_username="mailer@ticketing.test",
        smtp_password="secret",
        mail_from="mailer@ticketing.test",
        scheduler_enabled=False,
    )


@pytest.fixture
def email_client():
    return FakeEmailClient()


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def app(settings, session_factory, email_client, processor):
    return create_app(
        settings=settings,
        session_factory=session_factory,
        email_client=email_client,
        payment_processor=processor,
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(db_session):
    def _make_user(
        name: str = "Asha",
        email: str = "asha@example.com",
        role: UserRole = UserRole.USER,
    ) -> User:
        user = User(name=name, email=email, role=role)
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin", email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def make_event(db_session, admin):
    def _make_event(**overrides) -> Event:
        values = {
            "title": "Indie Night",
            "description": "Live indie bands",
            "category": EventCategory.CONCERT,
            "date": utcnow() + timedelta(days=10),
            "time": "19:30",
            "venue_name": "Blue Frog",
            "venue_address": "Kamala Mills",
            "venue_city": "Mumbai",
            "price": Decimal("20.00"),
            "total_tickets": 10,
            "status": EventStatus.ACTIVE,
            "organizer_id": admin.id,
        }
        values.update(overrides)
        values.setdefault("available_tickets", values["total_tickets"])
        event = Event(**values)
        db_session.add(event)
        db_session.commit()
        return event

    return _make_event


def token_for(user: User) -> str:
    return jwt.encode({"sub": user.id}, JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {token_for(user)}"}

    return _auth_headers
