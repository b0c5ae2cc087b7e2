"""Tests for realtime sync events and the Redis publisher."""

import json
from unittest.mock import AsyncMock

import pydantic
import pytest

from calendar_sync.realtime.events import (
    GOOGLE_CALENDAR_LIST_SYNC_CALENDAR_ID,
    ReconnectSyncEvent,
    dump_sync_event,
    google_calendar_changed,
    parse_sync_event,
)
from calendar_sync.realtime.publisher import RealtimePublisher, get_user_sync_channel


class TestSyncEvents:
    """Tests for event serialization."""

    def test_google_calendar_event_wire_format(self):
        event = google_calendar_changed("acct-1", "primary")

        assert json.loads(dump_sync_event(event)) == {
            "type": "google-calendar",
            "payload": {"accountId": "acct-1", "calendarId": "primary"},
        }

    def test_parse_by_type(self):
        event = parse_sync_event({"type": "reconnect", "payload": {}})
        assert isinstance(event, ReconnectSyncEvent)

    def test_parse_rejects_unknown_type(self):
        with pytest.raises(pydantic.ValidationError):
            parse_sync_event({"type": "unknown", "payload": {}})

    def test_empty_ids_are_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            google_calendar_changed("", GOOGLE_CALENDAR_LIST_SYNC_CALENDAR_ID)


class TestRealtimePublisher:
    """Tests for per-user publishing."""

    def test_user_channel(self):
        assert get_user_sync_channel("user-1") == "user:user-1"

    async def test_publish_to_user(self):
        redis = AsyncMock()
        redis.publish.return_value = 2
        publisher = RealtimePublisher(redis)

        receivers = await publisher.publish_to_user("user-1", google_calendar_changed("a", "c"))

        assert receivers == 2
        channel, message = redis.publish.call_args.args
        assert channel == "user:user-1"
        assert json.loads(message)["payload"]["calendarId"] == "c"

    async def test_best_effort_failure_is_logged(self, caplog):
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("redis down")
        publisher = RealtimePublisher(redis)

        publisher.publish_to_user_best_effort("user-1", google_calendar_changed("a", "c"))
        await publisher.drain()

        assert "redis down" in caplog.text

    async def test_close_drains_and_closes(self):
        redis = AsyncMock()
        publisher = RealtimePublisher(redis)

        publisher.publish_to_user_best_effort("user-1", google_calendar_changed("a", "c"))
        await publisher.close()

        redis.publish.assert_awaited_once()
        redis.aclose.assert_awaited_once()
