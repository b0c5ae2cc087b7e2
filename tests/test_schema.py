"""Tests for provider resource schema."""

from datetime import timedelta

import pytest

from calendar_sync.calendar.schema import (
    CalendarEvent,
    decode_calendar,
    decode_event,
    decode_watch_channel,
)
from calendar_sync.errors import ValidationError


class TestCalendarEvent:
    """Tests for event decoding."""

    def test_unknown_fields_round_trip(self):
        """Fields the model does not declare are written back unchanged."""
        data = {
            "id": "evt_1",
            "summary": "Review",
            "start": {"dateTime": "2024-02-05T09:00:00Z", "timeZone": "UTC"},
            "end": {"dateTime": "2024-02-05T10:00:00Z", "timeZone": "UTC"},
            "reminders": {"useDefault": False, "overrides": [{"method": "popup", "minutes": 5}]},
            "colorId": "7",
        }
        body = decode_event(data).to_body()

        assert body["reminders"] == data["reminders"]
        assert body["colorId"] == "7"
        assert body["start"]["timeZone"] == "UTC"
        assert "recurringEventId" not in body

    def test_instance_and_master_flags(self):
        """Instances link to a master; masters carry recurrence."""
        instance = decode_event(
            {
                "id": "series_20240205",
                "recurringEventId": "series",
                "start": {"date": "2024-02-05"},
                "end": {"date": "2024-02-06"},
            }
        )
        assert instance.is_instance
        assert not instance.is_master
        assert instance.is_all_day
        assert instance.duration == timedelta(days=1)

    def test_timed_duration(self):
        event = CalendarEvent.model_validate(
            {
                "id": "evt",
                "start": {"dateTime": "2024-02-05T09:00:00Z"},
                "end": {"dateTime": "2024-02-05T09:45:00Z"},
            }
        )
        assert event.duration == timedelta(minutes=45)

    def test_missing_start_raises(self):
        """Schema mismatches surface as ValidationError with the operation."""
        with pytest.raises(ValidationError) as exc_info:
            decode_event({"id": "evt", "end": {"date": "2024-02-06"}}, "google-event-get")
        assert exc_info.value.operation == "google-event-get"


class TestOtherResources:
    """Tests for calendars and watch channels."""

    def test_calendar_defaults(self):
        calendar = decode_calendar({"id": "primary@example.com", "primary": True})
        assert calendar.is_primary
        assert calendar.access_role == "reader"
        assert calendar.summary == ""

    def test_watch_channel(self):
        channel = decode_watch_channel(
            {"kind": "api#channel", "id": "ch-1", "resourceId": "res-1", "expiration": "1712000000000"}
        )
        assert channel.resource_id == "res-1"
        assert channel.expiration == "1712000000000"
