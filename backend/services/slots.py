"""Translation between calendar events and slot state.

The caregiver calendar has no structured status field, so availability is
encoded in the event summary. This module is the only place that knows how.
"""

import enum
from datetime import date, datetime, timezone
from typing import Any

AVAILABILITY_TOKEN = 'AVAILABLE'
BOOKED_LABEL = 'BOOKED'


class SlotStatus(str, enum.Enum):
    AVAILABLE = 'AVAILABLE'
    BOOKED = 'BOOKED'


def slot_status(event: dict[str, Any]) -> SlotStatus:
    summary = (event.get('summary') or '').upper()
    if AVAILABILITY_TOKEN in summary:
        return SlotStatus.AVAILABLE
    return SlotStatus.BOOKED


def is_available(event: dict[str, Any]) -> bool:
    return slot_status(event) is SlotStatus.AVAILABLE


def relabel(event: dict[str, Any], status: SlotStatus) -> dict[str, Any]:
    """Return a full copy of ``event`` whose summary marks it ``status``."""
    label = AVAILABILITY_TOKEN if status is SlotStatus.AVAILABLE else BOOKED_LABEL
    return {**event, 'summary': label}


def _parse_boundary(boundary: dict[str, Any] | None, name: str) -> datetime:
    if not boundary:
        raise ValueError(f'Event has no {name} boundary.')

    if boundary.get('dateTime'):
        value = datetime.fromisoformat(boundary['dateTime'].replace('Z', '+00:00'))
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if boundary.get('date'):
        return datetime.combine(date.fromisoformat(boundary['date']), datetime.min.time())

    raise ValueError(f'Event {name} has neither dateTime nor date.')


def slot_time_range(event: dict[str, Any]) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) for a timed or all-day event."""
    return _parse_boundary(event.get('start'), 'start'), _parse_boundary(event.get('end'), 'end')
