import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from ticketing.api.dependencies import get_db, require_admin
from ticketing.api.schemas.schemas import EventCreate, EventResponse, EventUpdate
from ticketing.application.event_service import EventService
from ticketing.domain.exceptions import ConflictError, EventNotFoundError
from ticketing.domain.state_machine import EventCategory, EventStatus
from ticketing.infrastructure.db.models import User

router = APIRouter(prefix="/events", tags=["events"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[EventResponse])
def list_events(
    category: EventCategory | None = None,
    search: str | None = None,
    event_status: EventStatus = Query(default=EventStatus.ACTIVE, alias="status"),
    db: Session = Depends(get_db),
):
    return EventService(db).list_events(
        status=event_status,
        category=category,
        search=search,
    )


@router.get("/{event_id}", response_model=EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    try:
        return EventService(db).get_event(event_id)
    except EventNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    request: EventCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return EventService(db).create_event(admin, **request.model_dump())
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc


@router.put("/{event_id}", response_model=EventResponse)
def update_event(
    event_id: str,
    request: EventUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return EventService(db).update_event(
            event_id,
            request.model_dump(exclude_unset=True),
        )
    except EventNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        EventService(db).delete_event(event_id)
    except EventNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
