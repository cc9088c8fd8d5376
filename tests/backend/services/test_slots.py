from datetime import datetime

import pytest

from backend.services.slots import SlotStatus, is_available, relabel, slot_status, slot_time_range


@pytest.mark.parametrize(
    ('summary', 'expected'),
    [
        ('AVAILABLE', SlotStatus.AVAILABLE),
        ('available - morning', SlotStatus.AVAILABLE),
        ('Slot Available', SlotStatus.AVAILABLE),
        ('BOOKED', SlotStatus.BOOKED),
        ('Lunch', SlotStatus.BOOKED),
        ('', SlotStatus.BOOKED),
        (None, SlotStatus.BOOKED),
    ],
)
def test_slot_status_matches_token_case_insensitively(summary, expected) -> None:
    assert slot_status({'id': 'evt', 'summary': summary}) is expected


def test_slot_without_summary_is_not_available() -> None:
    assert is_available({'id': 'evt'}) is False


def test_relabel_only_replaces_summary() -> None:
    event = {
        'id': 'evt-1',
        'summary': 'available',
        'description': 'Room 3',
        'start': {'dateTime': '2026-11-02T09:00:00Z'},
        'end': {'dateTime': '2026-11-02T09:30:00Z'},
        'attendees': [{'email': 'nurse@example.com'}],
        'etag': '"7"',
    }

    booked = relabel(event, SlotStatus.BOOKED)
    reopened = relabel(booked, SlotStatus.AVAILABLE)

    assert booked == {**event, 'summary': 'BOOKED'}
    assert reopened == {**event, 'summary': 'AVAILABLE'}
    assert event['summary'] == 'available'


def test_slot_time_range_normalizes_offsets_to_utc() -> None:
    start, end = slot_time_range({
        'start': {'dateTime': '2026-11-02T10:00:00+01:00'},
        'end': {'dateTime': '2026-11-02T10:30:00+01:00'},
    })

    assert start == datetime(2026, 11, 2, 9, 0)
    assert end == datetime(2026, 11, 2, 9, 30)


def test_slot_time_range_accepts_zulu_suffix() -> None:
    start, _ = slot_time_range({
        'start': {'dateTime': '2026-11-02T09:00:00Z'},
        'end': {'dateTime': '2026-11-02T09:30:00Z'},
    })

    assert start == datetime(2026, 11, 2, 9, 0)


def test_slot_time_range_supports_all_day_events() -> None:
    start, end = slot_time_range({'start': {'date': '2026-11-02'}, 'end': {'date': '2026-11-03'}})

    assert start == datetime(2026, 11, 2)
    assert end == datetime(2026, 11, 3)


def test_slot_time_range_rejects_missing_boundary() -> None:
    with pytest.raises(ValueError):
        slot_time_range({'start': {'dateTime': '2026-11-02T09:00:00Z'}, 'end': {}})
