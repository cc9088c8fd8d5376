"""
Caregiver calendar credentials
One-time OAuth handshake, encrypted token storage and refresh
"""
import base64
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from backend.core import config
from backend.models.calendar_credential import CalendarCredential
from backend.services.google_calendar import CalendarError, CalendarNotAuthorized

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_EXPIRES_IN_SECONDS = 3600


class TokenExchangeError(CalendarError):
    """Raised when Google refuses an authorization code or refresh token."""


@dataclass
class TokenGrant:
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    scope: str | None = None


def utc_now() -> datetime:
    """Naive UTC, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _cipher() -> Fernet:
    if config.CALENDAR_TOKEN_ENCRYPTION_KEY:
        return Fernet(config.CALENDAR_TOKEN_ENCRYPTION_KEY.encode())
    digest = hashlib.sha256(config.JWT_SECRET_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_token(token: str) -> str:
    return _cipher().encrypt(token.encode()).decode()


def decrypt_token(token: str) -> str:
    try:
        return _cipher().decrypt(token.encode()).decode()
    except InvalidToken as exc:
        raise CalendarNotAuthorized("Stored Google Calendar token cannot be decrypted; reconnect the calendar.") from exc


def build_authorization_url(state: str | None = None) -> str:
    params = {
        "client_id": config.GOOGLE_CLIENT_ID,
        "redirect_uri": config.GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": config.GOOGLE_CALENDAR_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
    }
    if state:
        params["state"] = state
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def _request_token(data: dict[str, str], http_client: httpx.Client | None = None) -> TokenGrant:
    client = http_client or httpx.Client(timeout=config.CALENDAR_HTTP_TIMEOUT_SECONDS)
    try:
        response = client.post(GOOGLE_TOKEN_URL, data=data, headers={"Accept": "application/json"})
    except httpx.HTTPError as exc:
        raise TokenExchangeError(f"Google OAuth token request failed: {exc}") from exc
    finally:
        if http_client is None:
            client.close()

    if response.status_code != 200:
        raise TokenExchangeError(f"Google OAuth token request failed ({response.status_code})")

    try:
        payload = response.json()
    except ValueError as exc:
        raise TokenExchangeError("Google OAuth token endpoint returned invalid JSON") from exc

    access_token = payload.get("access_token") if isinstance(payload, dict) else None
    if not access_token:
        raise TokenExchangeError("Google OAuth token response is missing access_token")

    expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS)
    return TokenGrant(
        access_token=access_token,
        expires_at=utc_now() + timedelta(seconds=expires_in),
        refresh_token=payload.get("refresh_token"),
        scope=payload.get("scope"),
    )


def exchange_code(code: str, http_client: httpx.Client | None = None) -> TokenGrant:
    return _request_token(
        {
            "code": code,
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "redirect_uri": config.GOOGLE_REDIRECT_URI,
            "grant_type": "authorization_code",
        },
        http_client,
    )


def refresh_access_token(refresh_token: str, http_client: httpx.Client | None = None) -> TokenGrant:
    return _request_token(
        {
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        },
        http_client,
    )


def store_credentials(db: Session, calendar_id: str, grant: TokenGrant) -> CalendarCredential:
    credential = db.query(CalendarCredential).filter(CalendarCredential.calendar_id == calendar_id).first()
    if credential is None:
        credential = CalendarCredential(calendar_id=calendar_id)
        db.add(credential)

    credential.access_token = encrypt_token(grant.access_token)
    credential.token_expires_at = grant.expires_at
    # Google only sends a refresh token on the first consent.
    if grant.refresh_token:
        credential.refresh_token = encrypt_token(grant.refresh_token)
    if grant.scope:
        credential.scope = grant.scope

    db.commit()
    db.refresh(credential)
    return credential


def get_valid_access_token(
    db: Session,
    calendar_id: str,
    http_client: httpx.Client | None = None,
) -> str:
    """
    Decrypted access token for the calendar, refreshed first if it is about to expire.
    """
    credential = db.query(CalendarCredential).filter(CalendarCredential.calendar_id == calendar_id).first()
    if credential is None:
        raise CalendarNotAuthorized("Google calendar is not authorized yet.")

    refresh_deadline = utc_now() + timedelta(seconds=config.TOKEN_REFRESH_MARGIN_SECONDS)
    if credential.token_expires_at > refresh_deadline:
        return decrypt_token(credential.access_token)

    if not credential.refresh_token:
        raise CalendarNotAuthorized("Google calendar token expired and no refresh token is stored.")

    logger.info("Refreshing Google Calendar token for %s", calendar_id)
    grant = refresh_access_token(decrypt_token(credential.refresh_token), http_client)
    store_credentials(db, calendar_id, grant)
    return grant.access_token
