"""Structural schema for Google Calendar API v3 resources.

Provider responses are decoded into pydantic models before the rest of the
service touches them. Only the fields the synchronization logic relies on
are declared; everything else the provider returns (attendees, reminders,
conferenceData, colorId, ...) is kept as extra data and written back
unchanged, so an update never drops fields it did not mean to touch.

Field names follow Python conventions and serialize back to the provider's
camelCase names via aliases.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from calendar_sync.errors import ValidationError

# Bump when the declared shape changes in an incompatible way.
EVENT_SCHEMA_VERSION = 1

# Fields assigned and managed by the provider; never sent on writes.
PROVIDER_MANAGED_FIELDS = (
    "id",
    "htmlLink",
    "organizer",
    "recurringEventId",
    "originalStartTime",
)
RECURRING_LINK_FIELDS = ("recurringEventId", "originalStartTime")


class RecurrenceScope(str, Enum):
    """Breadth of a mutation on a recurring event."""

    THIS = "this"  # Only the targeted occurrence
    ALL = "all"  # The whole series, resolved to its master
    FOLLOWING = "following"  # The occurrence and every later one


class _ProviderModel(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
    )

    def to_body(self) -> dict[str, Any]:
        """Serialize back to the provider's JSON representation."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class EventDateTime(_ProviderModel):
    """Start or end of an event.

    All-day events carry `date` (YYYY-MM-DD); timed events carry `dateTime`
    and usually a `timeZone` name.
    """

    date: str | None = None
    date_time: datetime | None = Field(default=None, alias="dateTime")
    time_zone: str | None = Field(default=None, alias="timeZone")

    @property
    def is_all_day(self) -> bool:
        return self.date is not None

    def as_date(self) -> date | None:
        """Calendar date of this boundary, for either representation."""
        if self.date is not None:
            return date.fromisoformat(self.date)
        if self.date_time is not None:
            return self.date_time.date()
        return None


class CalendarEvent(_ProviderModel):
    """A Google Calendar event, master or instance."""

    id: str
    summary: str | None = None
    description: str | None = None
    location: str | None = None
    status: str | None = None  # confirmed, tentative, cancelled
    html_link: str | None = Field(default=None, alias="htmlLink")
    start: EventDateTime
    end: EventDateTime
    recurrence: list[str] | None = None
    recurring_event_id: str | None = Field(default=None, alias="recurringEventId")
    original_start_time: EventDateTime | None = Field(
        default=None, alias="originalStartTime"
    )

    @property
    def is_all_day(self) -> bool:
        return self.start.is_all_day

    @property
    def is_instance(self) -> bool:
        """Whether this is an occurrence of a series (points at a master)."""
        return bool(self.recurring_event_id)

    @property
    def is_master(self) -> bool:
        """Whether this record holds the recurrence rule of a series."""
        return bool(self.recurrence)

    @property
    def duration(self) -> timedelta | None:
        if self.start.date_time is not None and self.end.date_time is not None:
            return self.end.date_time - self.start.date_time
        start_date = self.start.as_date()
        end_date = self.end.as_date()
        if start_date is not None and end_date is not None:
            return end_date - start_date
        return None


class CalendarInfo(_ProviderModel):
    """Information about a calendar from the user's calendar list."""

    id: str
    summary: str = ""
    description: str | None = None
    time_zone: str | None = Field(default=None, alias="timeZone")
    background_color: str | None = Field(default=None, alias="backgroundColor")
    foreground_color: str | None = Field(default=None, alias="foregroundColor")
    is_primary: bool = Field(default=False, alias="primary")
    access_role: str = Field(default="reader", alias="accessRole")


class WatchChannel(_ProviderModel):
    """Response of an events.watch / calendarList.watch call."""

    id: str | None = None
    resource_id: str | None = Field(default=None, alias="resourceId")
    resource_uri: str | None = Field(default=None, alias="resourceUri")
    expiration: str | None = None  # milliseconds since epoch, as a string


class UserProfile(_ProviderModel):
    """Subset of the Google user info endpoint."""

    id: str
    email: str
    name: str | None = None
    picture: str | None = None
    verified_email: bool = False


def _decode(model: type[_ProviderModel], data: Any, operation: str):
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Provider response did not match {model.__name__} schema: {e}",
            operation=operation,
        ) from e


def decode_event(data: Any, operation: str = "decode-event") -> CalendarEvent:
    """Decode a provider event, raising ValidationError on mismatch."""
    return _decode(CalendarEvent, data, operation)


def decode_events(items: list[Any], operation: str = "decode-events") -> list[CalendarEvent]:
    return [decode_event(item, operation) for item in items]


def decode_calendar(data: Any, operation: str = "decode-calendar") -> CalendarInfo:
    """Decode a provider calendar, raising ValidationError on mismatch."""
    return _decode(CalendarInfo, data, operation)


def decode_watch_channel(data: Any, operation: str = "decode-watch-channel") -> WatchChannel:
    return _decode(WatchChannel, data, operation)


def decode_user_profile(data: Any, operation: str = "decode-user-profile") -> UserProfile:
    return _decode(UserProfile, data, operation)
