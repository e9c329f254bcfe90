import asyncio
import logging
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo

from ticketing.application.notification_dispatcher import (
    EventReminderResult,
    NotificationDispatcher,
    PaymentReminderResult,
)
from ticketing.config import Settings
from ticketing.infrastructure.db.models import utcnow

logger = logging.getLogger(__name__)


class SweepKind(str, Enum):
    EVENT_REMINDERS = "event_reminders"
    PAYMENT_REMINDERS = "payment_reminders"


def next_daily_run(now: datetime, hour: int, tz: tzinfo) -> datetime:
    """Next occurrence of hour:00 in tz strictly after now."""
    local = now.astimezone(tz)
    candidate = local.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= local:
        candidate = (local + timedelta(days=1)).replace(
            hour=hour, minute=0, second=0, microsecond=0
        )
    return candidate


class SweepScheduler:
    """
    Runs the reminder sweeps in the background.

    One lock per sweep kind: a run that finds its sweep already in progress
    is skipped. Manual triggers go through the same run_* methods.
    """

    def __init__(self, dispatcher: NotificationDispatcher, settings: Settings):
        self.dispatcher = dispatcher
        self.settings = settings
        self.tz = ZoneInfo(settings.reminder_timezone)
        self._locks = {kind: asyncio.Lock() for kind in SweepKind}
        self._tasks: list[asyncio.Task] = []

    def is_running(self, kind: SweepKind) -> bool:
        return self._locks[kind].locked()

    async def run_event_reminders(self) -> EventReminderResult | None:
        lock = self._locks[SweepKind.EVENT_REMINDERS]
        if lock.locked():
            logger.info("Event reminder sweep already running, skipping")
            return None
        async with lock:
            return await self.dispatcher.send_event_reminders()

    async def run_payment_reminders(self, force_send: bool = False) -> PaymentReminderResult | None:
        lock = self._locks[SweepKind.PAYMENT_REMINDERS]
        if lock.locked():
            logger.info("Payment reminder sweep already running, skipping")
            return None
        async with lock:
            return await self.dispatcher.send_payment_reminders(force_send=force_send)

    # -----------------------------
    # Background loops
    # -----------------------------
    async def _event_reminder_loop(self) -> None:
        while True:
            now = utcnow()
            next_run = next_daily_run(now, self.settings.event_reminder_hour, self.tz)
            delay = (next_run - now).total_seconds()
            logger.info("Next event reminder sweep at %s", next_run.isoformat())
            await asyncio.sleep(delay)
            try:
                await self.run_event_reminders()
            except Exception:
                logger.exception("Event reminder sweep failed")

    async def _payment_reminder_loop(self) -> None:
        await asyncio.sleep(self.settings.payment_reminder_startup_delay_seconds)
        interval = self.settings.payment_reminder_interval_minutes * 60
        while True:
            try:
                result = await self.run_payment_reminders()
                if result is not None:
                    logger.info(
                        "Scheduled payment reminders: %s sent, %s skipped, %s error(s)",
                        result.emails_sent,
                        result.skipped,
                        len(result.errors),
                    )
            except Exception:
                logger.exception("Payment reminder sweep failed")
            await asyncio.sleep(interval)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._event_reminder_loop(), name=SweepKind.EVENT_REMINDERS.value),
            asyncio.create_task(self._payment_reminder_loop(), name=SweepKind.PAYMENT_REMINDERS.value),
        ]
        logger.info(
            "Reminder scheduler started: event reminders daily at %02d:00 %s, payment reminders every %s min",
            self.settings.event_reminder_hour,
            self.settings.reminder_timezone,
            self.settings.payment_reminder_interval_minutes,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Reminder scheduler stopped")
