import copy
import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.calendar_credential import CalendarCredential  # noqa: E402
from backend.models.user import User, UserRole  # noqa: E402
from backend.services.google_calendar import CalendarPreconditionFailed  # noqa: E402


class FakeCalendar:
    """In-memory stand-in for the Google Calendar client.

    Updates honour ``If-Match`` the way Google does, and every returned event
    is a copy so callers cannot mutate stored state by accident.
    """

    def __init__(self, events=None):
        self.events = {}
        self.updates = []
        self.list_calls = []
        self.before_get = None
        self._version = 0
        for event in events or []:
            self.add(event)

    def add(self, event):
        self._version += 1
        stored = copy.deepcopy(event)
        stored['etag'] = f'"{self._version}"'
        self.events[stored['id']] = stored
        return stored

    def list_events(self, calendar_id, time_min, time_max):
        self.list_calls.append((calendar_id, time_min, time_max))
        return [copy.deepcopy(event) for event in self.events.values()]

    def get_event(self, calendar_id, event_id):
        event = self.events.get(event_id)
        snapshot = copy.deepcopy(event) if event is not None else None
        if self.before_get is not None:
            hook, self.before_get = self.before_get, None
            hook()
        return snapshot

    def update_event(self, calendar_id, event_id, body, etag=None):
        current = self.events[event_id]
        if etag is not None and etag != current['etag']:
            raise CalendarPreconditionFailed(status_code=412, message='Precondition Failed')
        self.updates.append((event_id, copy.deepcopy(body), etag))
        return copy.deepcopy(self.add(body))


def _make_event(event_id, summary, start='2026-11-02T09:00:00Z', end='2026-11-02T09:30:00Z', **extra):
    event = {
        'id': event_id,
        'summary': summary,
        'start': {'dateTime': start},
        'end': {'dateTime': end},
    }
    event.update(extra)
    return event


@pytest.fixture
def db_session():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    tables = [User.__table__, Appointment.__table__, CalendarCredential.__table__]
    Base.metadata.create_all(bind=engine, tables=tables)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(tables)))
        engine.dispose()


@pytest.fixture
def patients(db_session):
    first = User(email='first@example.com', hashed_password='x', role=UserRole.PATIENT)
    second = User(email='second@example.com', hashed_password='x', role=UserRole.PATIENT)
    db_session.add_all([first, second])
    db_session.commit()
    db_session.refresh(first)
    db_session.refresh(second)
    return first, second


@pytest.fixture
def calendar_factory():
    return FakeCalendar


@pytest.fixture
def make_event():
    return _make_event


@pytest.fixture
def add_appointment(db_session):
    def _add(patient_id, event_id, status, start=datetime(2026, 11, 2, 9, 0)):
        appointment = Appointment(
            start_time=start,
            end_time=start.replace(minute=30),
            status=status,
            google_event_id=event_id,
            patient_id=patient_id,
        )
        db_session.add(appointment)
        db_session.commit()
        db_session.refresh(appointment)
        return appointment

    return _add
