"""
Google Calendar Service
Thin client over the Calendar v3 REST API for reading and relabeling events
"""
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from backend.core import config

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
MAX_RESULTS_PER_PAGE = 250


class CalendarError(RuntimeError):
    """Base error raised by the calendar client."""


class CalendarNotAuthorized(CalendarError):
    """Raised when the caregiver calendar has not been connected yet."""


class CalendarRequestError(CalendarError):
    """Raised when the Calendar API answers with a non-success status."""

    def __init__(self, *, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Google Calendar API request failed ({status_code}): {message}")


class CalendarPreconditionFailed(CalendarRequestError):
    """Raised when a conditional update loses against a concurrent change."""


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase


class GoogleCalendarClient:
    """Calendar v3 events API bound to one access token."""

    def __init__(self, access_token: str, http_client: httpx.Client | None = None) -> None:
        self._access_token = access_token
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.Client(timeout=config.CALENDAR_HTTP_TIMEOUT_SECONDS)

    def close(self) -> None:
        if self._owns_http_client:
            self._http_client.close()

    def __enter__(self) -> "GoogleCalendarClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._access_token}"}
        if extra_headers:
            headers.update(extra_headers)
        try:
            return self._http_client.request(
                method,
                f"{GOOGLE_CALENDAR_API}{path}",
                params=params,
                json=json_body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise CalendarError(f"Google Calendar request failed: {exc}") from exc

    @staticmethod
    def _json_payload(response: httpx.Response) -> dict[str, Any]:
        if response.status_code == 412:
            raise CalendarPreconditionFailed(status_code=412, message=_error_message(response))
        if response.status_code < 200 or response.status_code >= 300:
            raise CalendarRequestError(status_code=response.status_code, message=_error_message(response))
        try:
            payload = response.json()
        except ValueError as exc:
            raise CalendarError("Google Calendar API returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise CalendarError("Google Calendar API returned an unexpected JSON payload shape")
        return payload

    def list_events(self, calendar_id: str, time_min: datetime, time_max: datetime) -> list[dict[str, Any]]:
        """Events overlapping [time_min, time_max), recurring instances expanded, by start time."""
        params: dict[str, Any] = {
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_max),
            "singleEvents": True,
            "orderBy": "startTime",
            "maxResults": MAX_RESULTS_PER_PAGE,
        }
        events: list[dict[str, Any]] = []
        while True:
            payload = self._json_payload(
                self._request("GET", f"/calendars/{quote(calendar_id, safe='')}/events", params=params)
            )
            events.extend(item for item in payload.get("items") or [] if isinstance(item, dict))

            page_token = payload.get("nextPageToken")
            if not page_token:
                return events
            params["pageToken"] = page_token

    def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any] | None:
        response = self._request(
            "GET",
            f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
        )
        if response.status_code in (404, 410):
            return None
        event = self._json_payload(response)
        if event.get("status") == "cancelled":
            return None
        return event

    def update_event(
        self,
        calendar_id: str,
        event_id: str,
        body: dict[str, Any],
        etag: str | None = None,
    ) -> dict[str, Any]:
        """Overwrite the whole event. With ``etag`` the write only applies if nobody changed it since."""
        extra_headers = {"If-Match": etag} if etag else None
        response = self._request(
            "PUT",
            f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
            json_body=body,
            extra_headers=extra_headers,
        )
        updated = self._json_payload(response)
        logger.info("Google Calendar event %s updated", event_id)
        return updated
