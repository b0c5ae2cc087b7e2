"""Realtime fan-out of sync events to connected clients."""

from calendar_sync.realtime.events import (
    GOOGLE_CALENDAR_LIST_SYNC_CALENDAR_ID,
    GoogleCalendarSyncEvent,
    SyncEvent,
    google_calendar_changed,
)
from calendar_sync.realtime.publisher import RealtimePublisher, get_user_sync_channel

__all__ = [
    "GOOGLE_CALENDAR_LIST_SYNC_CALENDAR_ID",
    "GoogleCalendarSyncEvent",
    "SyncEvent",
    "google_calendar_changed",
    "RealtimePublisher",
    "get_user_sync_channel",
]
