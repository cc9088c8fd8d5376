from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import HTTPException

from backend.auth import jwt_handler
from backend.auth.dependencies import require_calendar_manager
from backend.models.calendar_credential import CalendarCredential
from backend.models.user import User, UserRole
from backend.routes.calendar_routes import calendar_login, calendar_redirect, calendar_status
from backend.services import google_oauth


@pytest.fixture
def caregiver(db_session) -> User:
    user = User(email='caregiver@example.com', hashed_password='x', role=UserRole.CAREGIVER)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def configured_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.core.config.GOOGLE_CLIENT_ID', 'client-abc')
    monkeypatch.setattr('backend.core.config.GOOGLE_CLIENT_SECRET', 'secret')


@pytest.fixture
def granted_code(monkeypatch: pytest.MonkeyPatch) -> list:
    codes = []

    def exchange(code):
        codes.append(code)
        return google_oauth.TokenGrant('access-1', google_oauth.utc_now() + timedelta(hours=1), refresh_token='refresh-1')

    monkeypatch.setattr('backend.services.google_oauth.exchange_code', exchange)
    return codes


def test_calendar_manager_rejects_patients(patients) -> None:
    patient, _ = patients

    with pytest.raises(HTTPException) as exception_info:
        require_calendar_manager(current_user=patient)

    assert exception_info.value.status_code == 403


@pytest.mark.parametrize('role', [UserRole.ADMIN, UserRole.CAREGIVER])
def test_calendar_manager_accepts_staff(role) -> None:
    user = User(id=7, email='staff@example.com', hashed_password='x', role=role)

    assert require_calendar_manager(current_user=user) is user


def test_calendar_login_requires_client_configuration(caregiver, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.core.config.GOOGLE_CLIENT_ID', '')

    with pytest.raises(HTTPException) as exception_info:
        calendar_login(current_user=caregiver)

    assert exception_info.value.status_code == 500


def test_calendar_login_returns_consent_url_with_signed_state(caregiver, configured_client) -> None:
    response = calendar_login(current_user=caregiver)

    url = urlparse(response.authorization_url)
    state = parse_qs(url.query)['state'][0]
    assert response.authorization_url.startswith('https://accounts.google.com/o/oauth2/v2/auth?')
    assert jwt_handler.decode_calendar_state(state) == caregiver.id


def test_calendar_redirect_requires_state(db_session, granted_code) -> None:
    with pytest.raises(HTTPException) as exception_info:
        calendar_redirect(code='auth-code', state=None, db=db_session)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Missing OAuth state.'
    assert granted_code == []
    assert db_session.query(CalendarCredential).count() == 0


@pytest.mark.parametrize('state', ['not-a-jwt', 'forged'])
def test_calendar_redirect_rejects_invalid_state(db_session, caregiver, granted_code, state) -> None:
    if state == 'forged':
        state = jwt_handler.create_calendar_state(caregiver.id)[:-4] + 'abcd'

    with pytest.raises(HTTPException) as exception_info:
        calendar_redirect(code='auth-code', state=state, db=db_session)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid OAuth state.'
    assert granted_code == []
    assert db_session.query(CalendarCredential).count() == 0


def test_calendar_redirect_rejects_login_token_as_state(db_session, caregiver, granted_code) -> None:
    login_token = jwt_handler.create_access_token(caregiver.id, role=caregiver.role.value)

    with pytest.raises(HTTPException) as exception_info:
        calendar_redirect(code='auth-code', state=login_token, db=db_session)

    assert exception_info.value.status_code == 400
    assert granted_code == []


def test_calendar_redirect_rejects_state_issued_to_patient(db_session, patients, granted_code) -> None:
    patient, _ = patients
    state = jwt_handler.create_calendar_state(patient.id)

    with pytest.raises(HTTPException) as exception_info:
        calendar_redirect(code='auth-code', state=state, db=db_session)

    assert exception_info.value.status_code == 403
    assert granted_code == []
    assert db_session.query(CalendarCredential).count() == 0


def test_calendar_redirect_requires_code(db_session, caregiver) -> None:
    state = jwt_handler.create_calendar_state(caregiver.id)

    with pytest.raises(HTTPException) as exception_info:
        calendar_redirect(code=None, state=state, db=db_session)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'No ?code provided from Google'


def test_calendar_redirect_stores_credentials(db_session, caregiver, granted_code) -> None:
    state = jwt_handler.create_calendar_state(caregiver.id)

    response = calendar_redirect(code='auth-code', state=state, db=db_session)

    credential = db_session.query(CalendarCredential).one()
    assert response.status_code == 302
    assert granted_code == ['auth-code']
    assert credential.calendar_id == 'primary'
    assert google_oauth.decrypt_token(credential.refresh_token) == 'refresh-1'
    assert calendar_status(db=db_session).connected is True


def test_calendar_redirect_reports_rejected_code(db_session, caregiver, monkeypatch: pytest.MonkeyPatch) -> None:
    def reject(code):
        raise google_oauth.TokenExchangeError('invalid_grant')

    monkeypatch.setattr('backend.services.google_oauth.exchange_code', reject)
    state = jwt_handler.create_calendar_state(caregiver.id)

    with pytest.raises(HTTPException) as exception_info:
        calendar_redirect(code='bad', state=state, db=db_session)

    assert exception_info.value.status_code == 502
    assert db_session.query(CalendarCredential).count() == 0


def test_calendar_status_reports_disconnected(db_session) -> None:
    assert calendar_status(db=db_session).connected is False
