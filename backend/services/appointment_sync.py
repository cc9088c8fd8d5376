"""
Appointment lifecycle synchronization between the caregiver calendar and the ledger.

Booking is guarded twice: the calendar relabel is a conditional write on the
event's ETag, and the ledger refuses a second BOOKED row for the same event.
"""
import calendar
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import Conflict, NotFound, UpstreamUnavailable
from backend.models.appointment import Appointment, AppointmentStatus
from backend.services.google_calendar import CalendarError, CalendarPreconditionFailed, GoogleCalendarClient
from backend.services.slots import SlotStatus, is_available, relabel, slot_status, slot_time_range

logger = logging.getLogger(__name__)


def add_months(value: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` later, clamped to the last day of a shorter month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class AppointmentSynchronizer:
    def __init__(
        self,
        calendar_client: GoogleCalendarClient | None,
        db: Session,
        calendar_id: str = config.CAREGIVER_CALENDAR_ID,
        window_months: int = config.AVAILABLE_WINDOW_MONTHS,
        conditional_updates: bool = config.CALENDAR_CONDITIONAL_UPDATES,
    ) -> None:
        self.calendar = calendar_client
        self.db = db
        self.calendar_id = calendar_id
        self.window_months = window_months
        self.conditional_updates = conditional_updates

    def _get_slot(self, event_id: str) -> dict[str, Any]:
        try:
            event = self.calendar.get_event(self.calendar_id, event_id)
        except CalendarError as exc:
            logger.exception('Error fetching calendar event %s', event_id)
            raise UpstreamUnavailable() from exc

        if event is None:
            raise NotFound()
        return event

    def _update_slot(self, event_id: str, body: dict[str, Any], etag: str | None = None) -> dict[str, Any]:
        try:
            return self.calendar.update_event(self.calendar_id, event_id, body, etag=etag)
        except CalendarPreconditionFailed as exc:
            logger.info('Calendar event %s changed concurrently, refusing update', event_id)
            raise Conflict() from exc
        except CalendarError as exc:
            logger.exception('Error updating calendar event %s', event_id)
            raise UpstreamUnavailable() from exc

    def _restore_slot(self, event_id: str, original: dict[str, Any], updated: dict[str, Any]) -> None:
        restored = {**updated, 'summary': original.get('summary')}
        try:
            self.calendar.update_event(self.calendar_id, event_id, restored, etag=updated.get('etag'))
        except CalendarError:
            logger.exception(
                'Could not restore calendar event %s after ledger failure; calendar and ledger disagree',
                event_id,
            )
        else:
            logger.info('Restored calendar event %s after ledger failure', event_id)

    def list_available(self, now: datetime | None = None) -> list[dict[str, Any]]:
        now = now or datetime.now(timezone.utc).replace(tzinfo=None)
        range_end = add_months(now, self.window_months)

        try:
            events = self.calendar.list_events(self.calendar_id, now, range_end)
        except CalendarError as exc:
            logger.exception('Error fetching available slots')
            raise UpstreamUnavailable('Failed to fetch available slots.') from exc

        return [event for event in events if is_available(event)]

    def book(self, event_id: str, patient_id: int) -> Appointment:
        event = self._get_slot(event_id)

        if not is_available(event):
            raise Conflict()

        etag = event.get('etag') if self.conditional_updates else None
        updated_event = self._update_slot(event_id, relabel(event, SlotStatus.BOOKED), etag=etag)

        try:
            start_time, end_time = slot_time_range(event)
        except ValueError as exc:
            logger.error('Calendar event %s has unusable times: %s', event_id, exc)
            self._restore_slot(event_id, event, updated_event)
            raise UpstreamUnavailable('Calendar event has no usable time range.') from exc

        appointment = Appointment(
            start_time=start_time,
            end_time=end_time,
            status=AppointmentStatus.BOOKED,
            google_event_id=event_id,
            patient_id=patient_id,
        )
        try:
            self.db.add(appointment)
            self.db.commit()
            self.db.refresh(appointment)
        except IntegrityError as exc:
            # The BOOKED label belongs to the ledger row that won; leave it in place.
            self.db.rollback()
            logger.warning('Ledger already holds a booking for calendar event %s', event_id)
            raise Conflict() from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Error recording booking for calendar event %s', event_id)
            self._restore_slot(event_id, event, updated_event)
            raise UpstreamUnavailable('Failed to book appointment.') from exc

        logger.info('Patient %s booked calendar event %s (appointment %s)', patient_id, event_id, appointment.id)
        return appointment

    def cancel(self, event_id: str, patient_id: int) -> int:
        """Reopen the slot and cancel the caller's booking of it; returns rows cancelled."""
        event = self._get_slot(event_id)

        if slot_status(event) is SlotStatus.AVAILABLE:
            logger.warning('Cancelling calendar event %s which is not marked booked', event_id)

        self._update_slot(event_id, relabel(event, SlotStatus.AVAILABLE))

        try:
            cancelled = self.db.query(Appointment).filter(
                Appointment.google_event_id == event_id,
                Appointment.patient_id == patient_id,
                Appointment.status == AppointmentStatus.BOOKED,
            ).update({Appointment.status: AppointmentStatus.CANCELLED}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Error cancelling ledger rows for calendar event %s', event_id)
            raise UpstreamUnavailable('Failed to cancel appointment.') from exc

        if cancelled == 0:
            logger.warning('Patient %s held no booking for calendar event %s', patient_id, event_id)
        return cancelled

    def list_mine(self, patient_id: int) -> list[Appointment]:
        try:
            return self.db.query(Appointment).filter(
                Appointment.patient_id == patient_id,
                Appointment.status == AppointmentStatus.BOOKED,
            ).order_by(Appointment.start_time.asc()).all()
        except SQLAlchemyError as exc:
            logger.exception('Error fetching appointments for patient %s', patient_id)
            raise UpstreamUnavailable('Failed to load appointments.') from exc
