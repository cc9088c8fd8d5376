import logging

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core.errors import Unauthenticated
from backend.database import get_db
from backend.models.user import User, UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def authenticate_token(token: str, db: Session) -> User:
    """Resolve a bearer token to its user or raise Unauthenticated."""
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        logger.info("JWT error: %s", exc)
        raise Unauthenticated("Invalid token") from exc

    if payload.get("purpose"):
        raise Unauthenticated("Invalid token")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise Unauthenticated("Invalid token subject") from exc

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise Unauthenticated("User not found")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="No token provided")
    try:
        return authenticate_token(credentials.credentials, db)
    except Unauthenticated as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


CALENDAR_MANAGER_ROLES = {UserRole.ADMIN, UserRole.CAREGIVER}


def require_calendar_manager(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role not in CALENDAR_MANAGER_ROLES:
        raise HTTPException(status_code=403, detail="Only caregivers or admins can connect the calendar.")
    return current_user
