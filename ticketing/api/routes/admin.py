import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ticketing.api.dependencies import (
    get_db,
    get_dispatcher,
    get_scheduler,
    get_settings,
    require_admin,
)
from ticketing.api.schemas.schemas import (
    BookingResponse,
    EventReminderResponse,
    PaymentReminderResponse,
    PendingBookingsResponse,
    StatsResponse,
    TestEmailRequest,
    TestEmailResponse,
)
from ticketing.application.admin_service import AdminService
from ticketing.application.booking_service import BookingService
from ticketing.application.notification_dispatcher import NotificationDispatcher
from ticketing.application.scheduler import SweepScheduler
from ticketing.config import Settings
from ticketing.domain.exceptions import ConflictError, EmailDeliveryError, NotFoundError

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)
logger = logging.getLogger(__name__)


@router.get("/stats", response_model=StatsResponse)
def get_stats(db: Session = Depends(get_db)):
    return StatsResponse.model_validate(AdminService(db).stats())


@router.get("/bookings", response_model=list[BookingResponse])
def list_bookings(db: Session = Depends(get_db)):
    return BookingService(db).list_all_bookings()


@router.get("/pending-bookings", response_model=PendingBookingsResponse)
def pending_bookings(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    report = AdminService(db).pending_bookings(settings.payment_reminder_min_age_minutes)
    return PendingBookingsResponse.model_validate(report)


@router.post("/bookings/{booking_id}/refund", response_model=BookingResponse)
def refund_booking(booking_id: str, db: Session = Depends(get_db)):
    try:
        return BookingService(db).refund_booking(booking_id)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc


@router.post("/send-payment-reminders", response_model=PaymentReminderResponse)
async def send_payment_reminders(
    force: bool = False,
    scheduler: SweepScheduler = Depends(get_scheduler),
):
    logger.info("Manual payment reminder trigger (force=%s)", force)
    result = await scheduler.run_payment_reminders(force_send=force)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Payment reminder sweep already running",
        )
    return PaymentReminderResponse.model_validate(result)


@router.post("/send-event-reminders", response_model=EventReminderResponse)
async def send_event_reminders(scheduler: SweepScheduler = Depends(get_scheduler)):
    logger.info("Manual event reminder trigger")
    result = await scheduler.run_event_reminders()
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Event reminder sweep already running",
        )
    return EventReminderResponse.model_validate(result)


@router.post("/test-email", response_model=TestEmailResponse)
async def send_test_email(
    request: TestEmailRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    try:
        message_id = await dispatcher.send_test_email(request.to)
    except EmailDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    return TestEmailResponse(message="Test email sent successfully", message_id=message_id)
