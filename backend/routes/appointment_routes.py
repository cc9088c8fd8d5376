import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.core import config
from backend.core.errors import BookingError
from backend.database import ensure_appointment_schema, get_db
from backend.models.appointment import AppointmentStatus
from backend.models.user import User
from backend.services import google_oauth
from backend.services.appointment_sync import AppointmentSynchronizer
from backend.services.google_calendar import CalendarError, CalendarNotAuthorized, GoogleCalendarClient
from backend.services.slots import slot_status, slot_time_range

logger = logging.getLogger(__name__)

router = APIRouter(tags=['appointments'])


class SlotResponse(BaseModel):
    id: str
    summary: str
    status: str
    start_time: datetime
    end_time: datetime
    all_day: bool
    html_link: str | None = None


class AppointmentResponse(BaseModel):
    id: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    google_event_id: str | None = None
    patient_id: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def raise_http_error(exc: BookingError) -> None:
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


def get_calendar_client(db: Session = Depends(get_db)):
    try:
        access_token = google_oauth.get_valid_access_token(db, config.CAREGIVER_CALENDAR_ID)
    except CalendarNotAuthorized as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Google calendar is not authorized yet.',
        ) from exc
    except (CalendarError, SQLAlchemyError) as exc:
        logger.exception('Error loading Google Calendar credentials')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Calendar service is unavailable.',
        ) from exc

    client = GoogleCalendarClient(access_token)
    try:
        yield client
    finally:
        client.close()


def to_slot_response(event: dict[str, Any]) -> SlotResponse:
    start_time, end_time = slot_time_range(event)
    return SlotResponse(
        id=event['id'],
        summary=event.get('summary') or '',
        status=slot_status(event).value,
        start_time=start_time,
        end_time=end_time,
        all_day='date' in (event.get('start') or {}) and 'dateTime' not in (event.get('start') or {}),
        html_link=event.get('htmlLink'),
    )


@router.get('/available', response_model=list[SlotResponse])
def list_available_slots(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    calendar_client: GoogleCalendarClient = Depends(get_calendar_client),
):
    synchronizer = AppointmentSynchronizer(calendar_client, db)
    try:
        events = synchronizer.list_available()
    except BookingError as exc:
        raise_http_error(exc)

    slots: list[SlotResponse] = []
    for event in events:
        try:
            slots.append(to_slot_response(event))
        except (KeyError, ValueError):
            logger.warning('Skipping calendar event without usable id or times: %s', event.get('id'))
    return slots


@router.post('/book/{event_id}', response_model=AppointmentResponse)
def book_appointment(
    event_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    calendar_client: GoogleCalendarClient = Depends(get_calendar_client),
):
    ensure_database_ready()

    synchronizer = AppointmentSynchronizer(calendar_client, db)
    try:
        return synchronizer.book(event_id, current_user.id)
    except BookingError as exc:
        raise_http_error(exc)


@router.post('/cancel/{event_id}', response_model=MessageResponse)
def cancel_appointment(
    event_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    calendar_client: GoogleCalendarClient = Depends(get_calendar_client),
):
    ensure_database_ready()

    synchronizer = AppointmentSynchronizer(calendar_client, db)
    try:
        synchronizer.cancel(event_id, current_user.id)
    except BookingError as exc:
        raise_http_error(exc)

    return MessageResponse(message='Appointment cancelled.')


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    synchronizer = AppointmentSynchronizer(None, db)
    try:
        return synchronizer.list_mine(current_user.id)
    except BookingError as exc:
        raise_http_error(exc)
