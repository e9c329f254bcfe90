import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ticketing.api.dependencies import (
    get_current_user,
    get_db,
    get_dispatcher,
    get_payment_processor,
    get_settings,
)
from ticketing.api.schemas.schemas import (
    BookingResponse,
    PaymentCaptureRequest,
    PaymentCaptureResponse,
    PaymentCreateRequest,
    PaymentCreateResponse,
)
from ticketing.application.notification_dispatcher import BookingNotice, NotificationDispatcher
from ticketing.application.payment_service import PaymentService
from ticketing.config import Settings
from ticketing.domain.exceptions import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    PaymentConfigurationError,
    PaymentGatewayError,
    PaymentNotCompletedError,
)
from ticketing.infrastructure.db.models import User
from ticketing.infrastructure.payments.processor import PaymentProcessor

router = APIRouter(prefix="/payments", tags=["payments"])
logger = logging.getLogger(__name__)


def _payment_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, AccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PaymentNotCompletedError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "status": exc.processor_status},
        )
    if isinstance(exc, PaymentConfigurationError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


_PAYMENT_ERRORS = (
    NotFoundError,
    AccessDeniedError,
    ConflictError,
    PaymentNotCompletedError,
    PaymentGatewayError,
)


@router.post("/create", response_model=PaymentCreateResponse)
def create_payment(
    request: PaymentCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
    settings: Settings = Depends(get_settings),
):
    try:
        order = PaymentService(db, processor, settings).create_order(request.booking_id, user)
    except _PAYMENT_ERRORS as exc:
        raise _payment_http_error(exc) from exc

    return PaymentCreateResponse(order_id=order.order_id, approval_url=order.approval_url)


@router.post("/capture", response_model=PaymentCaptureResponse)
def capture_payment(
    request: PaymentCaptureRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
    settings: Settings = Depends(get_settings),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    try:
        booking = PaymentService(db, processor, settings).capture_order(
            order_id=request.order_id,
            booking_id=request.booking_id,
            user=user,
        )
    except _PAYMENT_ERRORS as exc:
        raise _payment_http_error(exc) from exc

    background_tasks.add_task(
        dispatcher.send_booking_confirmation,
        BookingNotice.from_booking(booking),
    )
    logger.info("Payment captured for booking %s, confirmation queued", booking.id)

    return PaymentCaptureResponse(
        message="Payment successful",
        booking=BookingResponse.model_validate(booking),
    )
