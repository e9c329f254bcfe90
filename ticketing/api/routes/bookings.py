import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ticketing.api.dependencies import get_current_user, get_db
from ticketing.api.schemas.schemas import (
    BookingConfirmRequest,
    BookingRequest,
    BookingResponse,
)
from ticketing.application.booking_service import BookingService
from ticketing.domain.exceptions import (
    AccessDeniedError,
    ConflictError,
    InvalidBookingError,
    NotFoundError,
)
from ticketing.infrastructure.db.models import User

router = APIRouter(prefix="/bookings", tags=["bookings"])
logger = logging.getLogger(__name__)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = BookingService(db)
    try:
        booking = service.create_booking(
            user_id=user.id,
            event_id=request.event_id,
            tickets=request.tickets,
        )
    except InvalidBookingError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
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

    # Confirmation email goes out once payment is captured.
    return booking


@router.get("", response_model=list[BookingResponse])
def list_my_bookings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return BookingService(db).list_user_bookings(user)


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return BookingService(db).get_booking(booking_id, user)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except AccessDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc


@router.put("/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(
    booking_id: str,
    request: BookingConfirmRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return BookingService(db).confirm_payment(
            booking_id=booking_id,
            payment_id=request.payment_id,
            user=user,
        )
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except AccessDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
