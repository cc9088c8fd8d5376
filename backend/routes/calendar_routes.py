import logging

import jwt
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import CALENDAR_MANAGER_ROLES, require_calendar_manager
from backend.core import config
from backend.database import get_db
from backend.models.calendar_credential import CalendarCredential
from backend.models.user import User
from backend.services import google_oauth
from backend.services.google_calendar import CalendarError

logger = logging.getLogger(__name__)

router = APIRouter(tags=['calendar'])


class CalendarStatusResponse(BaseModel):
    calendar_id: str
    connected: bool
    token_expires_at: str | None = None


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str


def verify_calendar_state(state: str | None, db: Session) -> User:
    if not state:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Missing OAuth state.')

    try:
        user_id = jwt_handler.decode_calendar_state(state)
    except (jwt.PyJWTError, KeyError, ValueError) as exc:
        logger.warning('Rejected calendar OAuth callback with invalid state: %s', exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid OAuth state.') from exc

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or user.role not in CALENDAR_MANAGER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only caregivers or admins can connect the calendar.',
        )
    return user


@router.get('/login', response_model=AuthorizationUrlResponse)
def calendar_login(current_user: User = Depends(require_calendar_manager)):
    if not config.GOOGLE_CLIENT_ID or not config.GOOGLE_CLIENT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Google Calendar not configured.',
        )

    logger.info('Google Calendar OAuth initiated by user %s', current_user.id)
    state = jwt_handler.create_calendar_state(current_user.id)
    return AuthorizationUrlResponse(authorization_url=google_oauth.build_authorization_url(state=state))


@router.get('/redirect')
def calendar_redirect(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    user = verify_calendar_state(state, db)

    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='No ?code provided from Google')

    try:
        grant = google_oauth.exchange_code(code)
        google_oauth.store_credentials(db, config.CAREGIVER_CALENDAR_ID, grant)
    except CalendarError as exc:
        logger.exception('Error exchanging code for token')
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail='Failed to authorize Google Calendar.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Error storing Google Calendar credentials')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Failed to authorize Google Calendar.',
        ) from exc

    logger.info('Google Calendar OAuth tokens stored for %s by user %s', config.CAREGIVER_CALENDAR_ID, user.id)
    return RedirectResponse(url=config.FRONTEND_CALENDAR_REDIRECT_URL, status_code=status.HTTP_302_FOUND)


@router.get('/status', response_model=CalendarStatusResponse)
def calendar_status(db: Session = Depends(get_db)):
    credential = db.query(CalendarCredential).filter(
        CalendarCredential.calendar_id == config.CAREGIVER_CALENDAR_ID,
    ).first()
    if credential is None:
        return CalendarStatusResponse(calendar_id=config.CAREGIVER_CALENDAR_ID, connected=False)

    return CalendarStatusResponse(
        calendar_id=config.CAREGIVER_CALENDAR_ID,
        connected=True,
        token_expires_at=credential.token_expires_at.isoformat(),
    )
