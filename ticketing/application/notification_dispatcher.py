import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable
from zoneinfo import ZoneInfo

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ticketing.config import Settings
from ticketing.domain.exceptions import EmailDeliveryError
from ticketing.domain.state_machine import PaymentStatus
from ticketing.infrastructure.db.models import Booking, Event, utcnow
from ticketing.infrastructure.notifications.email_client import EmailClient
from ticketing.infrastructure.notifications.templates import EmailTemplates
from ticketing.infrastructure.repositories.booking_repository import BookingRepository
from ticketing.infrastructure.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class BookingNotice:
    """Detached snapshot of a booking, safe to use after the session closes."""

    booking_id: str
    user_name: str
    user_email: str
    event_title: str
    event_date: datetime
    event_time: str
    venue_name: str
    venue_address: str
    tickets: int
    total_amount: Decimal
    booked_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking, event: Event | None = None) -> "BookingNotice":
        event = event or booking.event
        user = booking.user
        return cls(
            booking_id=booking.id,
            user_name=user.name if user else "",
            user_email=(user.email or "") if user else "",
            event_title=event.title,
            event_date=event.date,
            event_time=event.time,
            venue_name=event.venue_name,
            venue_address=event.venue_address,
            tickets=booking.tickets,
            total_amount=booking.total_amount,
            booked_at=booking.created_at,
        )


@dataclass
class PaymentReminderResult:
    total_found: int = 0
    emails_sent: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class EventReminderResult:
    events_found: int = 0
    bookings_found: int = 0
    reminders_sent: int = 0
    errors: list[str] = field(default_factory=list)


class NotificationDispatcher:
    """
    Booking emails and the two reminder sweeps.

    Sweeps are best-effort: each booking is sent and flagged in isolation,
    and every sweep returns a summary instead of raising.
    Database reads and flag writes run in the threadpool with short-lived
    sessions; only the SMTP sends are awaited on the event loop.
    """

    def __init__(
        self,
        email_client: EmailClient,
        session_factory: sessionmaker[Session],
        settings: Settings,
        templates: EmailTemplates | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.email_client = email_client
        self.session_factory = session_factory
        self.settings = settings
        self.templates = templates or EmailTemplates()
        self.clock = clock
        self.tz = ZoneInfo(settings.reminder_timezone)

    # -----------------------------
    # Booking confirmation
    # -----------------------------
    async def send_booking_confirmation(self, notice: BookingNotice) -> bool:
        if not self.email_client.configured:
            logger.warning(
                "Cannot send booking confirmation for %s - email client not configured",
                notice.booking_id,
            )
            return False

        if not notice.user_email:
            logger.info("Skipping booking confirmation for %s - no email address", notice.booking_id)
            return False

        try:
            html = self.templates.render(
                "booking_confirmation.html",
                notice=notice,
                currency=self.settings.payment_currency,
            )
            await self.email_client.send(
                notice.user_email,
                f"Booking Confirmation - {notice.event_title}",
                html,
            )
        except Exception:
            logger.exception("Error sending booking confirmation email for %s", notice.booking_id)
            return False

        logger.info("Booking confirmation email sent to %s", notice.user_email)
        return True

    # -----------------------------
    # Event-day reminders
    # -----------------------------
    def reminder_window(self, now: datetime) -> tuple[datetime, datetime]:
        """Tomorrow's midnight-to-midnight window in the reminder timezone, as UTC."""
        local = now.astimezone(self.tz)
        tomorrow = (local + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        day_after = (tomorrow + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        return tomorrow.astimezone(timezone.utc), day_after.astimezone(timezone.utc)

    async def send_event_reminders(self, now: datetime | None = None) -> EventReminderResult:
        result = EventReminderResult()
        now = now or self.clock()

        if not self.email_client.configured:
            message = "Cannot send event reminders - email client not configured"
            logger.warning(message)
            result.errors.append(message)
            return result

        start, end = self.reminder_window(now)

        try:
            result.events_found, notices = await run_in_threadpool(
                self._load_event_reminders, start, end
            )
        except SQLAlchemyError as exc:
            logger.exception("Error in event reminder sweep")
            result.errors.append(f"Error in send_event_reminders: {exc}")
            notices = []

        result.bookings_found = len(notices)
        for notice in notices:
            await self._send_event_reminder(notice, result)

        logger.info(
            "Event reminder sweep: %s event(s), %s booking(s), %s sent, %s error(s)",
            result.events_found,
            result.bookings_found,
            result.reminders_sent,
            len(result.errors),
        )
        return result

    def _load_event_reminders(
        self,
        start: datetime,
        end: datetime,
    ) -> tuple[int, list[BookingNotice]]:
        with self.session_factory() as db:
            events = EventRepository(db).list_active_between(start, end)
            bookings = BookingRepository(db)
            notices = [
                BookingNotice.from_booking(booking, event)
                for event in events
                for booking in bookings.list_unreminded_completed(event.id)
            ]
            return len(events), notices

    def _mark_event_reminded(self, booking_id: str) -> None:
        with self.session_factory() as db:
            BookingRepository(db).mark_event_reminded(booking_id)
            db.commit()

    async def _send_event_reminder(
        self,
        notice: BookingNotice,
        result: EventReminderResult,
    ) -> None:
        try:
            html = self.templates.render("event_reminder.html", notice=notice)
            await self.email_client.send(
                notice.user_email,
                f"Reminder: {notice.event_title} is Tomorrow!",
                html,
            )
            await run_in_threadpool(self._mark_event_reminded, notice.booking_id)
        except Exception as exc:
            message = f"Error sending reminder for booking {notice.booking_id} to {notice.user_email}: {exc}"
            logger.exception("%s", message)
            result.errors.append(message)
            return

        result.reminders_sent += 1
        logger.info("Reminder sent to %s for %s", notice.user_email, notice.event_title)

    # -----------------------------
    # Payment-pending reminders
    # -----------------------------
    async def send_payment_reminders(
        self,
        force_send: bool = False,
        now: datetime | None = None,
    ) -> PaymentReminderResult:
        result = PaymentReminderResult()
        now = now or self.clock()

        if not self.email_client.configured:
            message = "Cannot send payment reminders - email client not configured. Check SMTP_USERNAME and SMTP_PASSWORD."
            logger.warning(message)
            result.errors.append(message)
            return result

        try:
            await self.email_client.verify()
        except EmailDeliveryError as exc:
            logger.error("%s", exc)
            result.errors.append(str(exc))
            return result

        created_before = None
        if not force_send:
            created_before = now - timedelta(minutes=self.settings.payment_reminder_min_age_minutes)

        try:
            notices = await run_in_threadpool(
                self._load_payment_reminders, created_before, force_send
            )
        except SQLAlchemyError as exc:
            logger.exception("Error in payment reminder sweep")
            result.errors.append(f"Error in send_payment_reminders: {exc}")
            notices = []

        result.total_found = len(notices)
        for notice in notices:
            await self._send_payment_reminder(notice, now, result)

        logger.info(
            "Payment reminder summary: found=%s sent=%s skipped=%s errors=%s",
            result.total_found,
            result.emails_sent,
            result.skipped,
            len(result.errors),
        )
        return result

    def _load_payment_reminders(
        self,
        created_before: datetime | None,
        force_send: bool,
    ) -> list[BookingNotice]:
        with self.session_factory() as db:
            repository = BookingRepository(db)
            pending = repository.list_payment_reminder_candidates(created_before=created_before)
            logger.info(
                "Payment reminder query: force=%s cutoff=%s found=%s (pending total %s, already reminded %s)",
                force_send,
                created_before.isoformat() if created_before else "-",
                len(pending),
                repository.count(PaymentStatus.PENDING),
                repository.count(PaymentStatus.PENDING, payment_reminder_sent=True),
            )
            return [BookingNotice.from_booking(booking) for booking in pending]

    def _mark_payment_reminded(self, booking_id: str, sent_at: datetime) -> None:
        with self.session_factory() as db:
            BookingRepository(db).mark_payment_reminded(booking_id, sent_at)
            db.commit()

    async def _send_payment_reminder(
        self,
        notice: BookingNotice,
        now: datetime,
        result: PaymentReminderResult,
    ) -> None:
        if not notice.user_email:
            logger.info("Skipping booking %s - no email address for user", notice.booking_id)
            result.skipped += 1
            return

        if not EMAIL_PATTERN.match(notice.user_email):
            logger.info(
                "Skipping booking %s - invalid email format: %s",
                notice.booking_id,
                notice.user_email,
            )
            result.skipped += 1
            return

        try:
            html = self.templates.render(
                "payment_reminder.html",
                notice=notice,
                currency=self.settings.payment_currency,
            )
            await self.email_client.send(
                notice.user_email,
                f"Payment Pending - Complete Your Booking for {notice.event_title}",
                html,
            )
            await run_in_threadpool(self._mark_payment_reminded, notice.booking_id, now)
        except Exception as exc:
            message = (
                f"Error sending payment reminder for booking {notice.booking_id} "
                f"to {notice.user_email}: {exc}"
            )
            logger.exception("%s", message)
            result.errors.append(message)
            return

        result.emails_sent += 1
        logger.info(
            "Payment reminder sent to %s for booking %s",
            notice.user_email,
            notice.booking_id,
        )

    # -----------------------------
    # Diagnostics
    # -----------------------------
    async def send_test_email(self, to: str) -> str:
        if not self.email_client.configured:
            raise EmailDeliveryError("Email credentials not configured")

        await self.email_client.verify()
        html = self.templates.render("test_email.html", sent_at=self.clock())
        return await self.email_client.send(to, "Test Email - Event Ticketing", html)
