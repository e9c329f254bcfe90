import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ticketing.api.routes import admin, bookings, events, health, payments
from ticketing.application.notification_dispatcher import NotificationDispatcher
from ticketing.application.scheduler import SweepScheduler
from ticketing.config import Settings, get_settings
from ticketing.infrastructure.db.models import Base
from ticketing.infrastructure.db.session import SessionLocal
from ticketing.infrastructure.notifications.email_client import EmailClient, SmtpEmailClient
from ticketing.infrastructure.payments.processor import PaymentProcessor
from ticketing.infrastructure.payments.razorpay_processor import RazorpayProcessor

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _wait_for_db(engine: Engine, max_retries: int, retry_delay_seconds: float) -> None:
    # Handles the common case where API starts before Postgres is ready.
    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is reachable.")
            return
        except OperationalError:
            if attempt == max_retries:
                logger.exception(
                    "Database not reachable after %s attempts. Check DATABASE_URL and Postgres status.",
                    max_retries,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                max_retries,
                retry_delay_seconds,
            )
            time.sleep(retry_delay_seconds)


def create_app(
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
    email_client: EmailClient | None = None,
    payment_processor: PaymentProcessor | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    session_factory = session_factory or SessionLocal
    email_client = email_client or SmtpEmailClient.from_settings(settings)
    payment_processor = payment_processor or RazorpayProcessor(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        timeout=settings.payment_timeout_seconds,
    )

    dispatcher = NotificationDispatcher(
        email_client=email_client,
        session_factory=session_factory,
        settings=settings,
    )
    scheduler = SweepScheduler(dispatcher, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = session_factory.kw["bind"]
        _wait_for_db(engine, settings.db_connect_max_retries, settings.db_connect_retry_delay)
        Base.metadata.create_all(bind=engine)

        if not email_client.configured:
            logger.warning("Email credentials not configured. Reminder emails will not be sent.")

        if settings.scheduler_enabled:
            scheduler.start()
        try:
            yield
        finally:
            if settings.scheduler_enabled:
                await scheduler.stop()

    app = FastAPI(title="Event Ticketing Engine", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.email_client = email_client
    app.state.payment_processor = payment_processor
    app.state.dispatcher = dispatcher
    app.state.scheduler = scheduler

    app.include_router(health.router)
    app.include_router(events.router)
    app.include_router(bookings.router)
    app.include_router(payments.router)
    app.include_router(admin.router)
    return app


configure_logging(get_settings().log_level)
app = create_app()
