"""Realtime sync events pushed to a user's open clients.

Events are small invalidation hints, not data: a client receiving
`google-calendar` for an (account, calendar) pair refetches that calendar.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# Calendar id used when the user's calendar list itself changed
GOOGLE_CALENDAR_LIST_SYNC_CALENDAR_ID = "__calendar_list__"


class _EventModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class GoogleCalendarPayload(_EventModel):
    account_id: str = Field(alias="accountId", min_length=1)
    calendar_id: str = Field(alias="calendarId", min_length=1)


class EmptyPayload(_EventModel):
    pass


class GoogleCalendarSyncEvent(_EventModel):
    type: Literal["google-calendar"] = "google-calendar"
    payload: GoogleCalendarPayload


class TasksSyncEvent(_EventModel):
    type: Literal["tasks"] = "tasks"
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


class ReconnectSyncEvent(_EventModel):
    type: Literal["reconnect"] = "reconnect"
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


SyncEvent = Annotated[
    Union[GoogleCalendarSyncEvent, TasksSyncEvent, ReconnectSyncEvent],
    Field(discriminator="type"),
]

_sync_event_adapter: TypeAdapter[SyncEvent] = TypeAdapter(SyncEvent)


def google_calendar_changed(account_id: str, calendar_id: str) -> GoogleCalendarSyncEvent:
    """Event telling clients to refetch one calendar of one account."""
    return GoogleCalendarSyncEvent(
        payload=GoogleCalendarPayload(account_id=account_id, calendar_id=calendar_id)
    )


def parse_sync_event(data: Any) -> SyncEvent:
    """Validate a decoded event (raises pydantic.ValidationError)."""
    return _sync_event_adapter.validate_python(data)


def dump_sync_event(event: SyncEvent) -> str:
    """Serialize an event to the JSON sent over the channel."""
    return event.model_dump_json(by_alias=True)
