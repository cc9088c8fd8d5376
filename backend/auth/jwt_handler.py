from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config


def create_access_token(user_id: int, role: str | None = None, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=expire_minutes),
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )


CALENDAR_STATE_PURPOSE = "calendar-connect"


def create_calendar_state(user_id: int) -> str:
    """Short-lived token carried through Google's consent screen as ``state``."""
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "purpose": CALENDAR_STATE_PURPOSE,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=config.CALENDAR_STATE_EXPIRES_MINUTES),
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_calendar_state(state: str) -> int:
    payload = decode_access_token(state)
    if payload.get("purpose") != CALENDAR_STATE_PURPOSE:
        raise jwt.InvalidTokenError("Not a calendar connect state.")
    return int(payload["sub"])
