import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

APP_ENV = os.getenv("APP_ENV", "development")
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:4200").split(",")
    if origin.strip()
]

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))


GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "http://localhost:8000/calendar/redirect")
GOOGLE_CALENDAR_SCOPE = os.getenv("GOOGLE_CALENDAR_SCOPE", "https://www.googleapis.com/auth/calendar")

# Single caregiver calendar.
CAREGIVER_CALENDAR_ID = os.getenv("CAREGIVER_CALENDAR_ID", "primary")
AVAILABLE_WINDOW_MONTHS = int(os.getenv("AVAILABLE_WINDOW_MONTHS", "1"))
CALENDAR_HTTP_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_HTTP_TIMEOUT_SECONDS", "10"))
CALENDAR_CONDITIONAL_UPDATES = _get_bool(os.getenv("CALENDAR_CONDITIONAL_UPDATES"), default=True)
TOKEN_REFRESH_MARGIN_SECONDS = int(os.getenv("TOKEN_REFRESH_MARGIN_SECONDS", "300"))
CALENDAR_STATE_EXPIRES_MINUTES = int(os.getenv("CALENDAR_STATE_EXPIRES_MINUTES", "10"))
# Fernet key for stored calendar tokens; derived from JWT_SECRET_KEY when unset.
CALENDAR_TOKEN_ENCRYPTION_KEY = os.getenv("CALENDAR_TOKEN_ENCRYPTION_KEY", "")

FRONTEND_CALENDAR_REDIRECT_URL = os.getenv("FRONTEND_CALENDAR_REDIRECT_URL", "/")

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if AVAILABLE_WINDOW_MONTHS < 1:
        raise RuntimeError("AVAILABLE_WINDOW_MONTHS must be at least 1.")
