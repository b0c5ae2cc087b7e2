"""Calendar integration module.

Provides the Google Calendar side of synchronization.

## Features

- Typed provider client for calendar/event CRUD, move and watch channels
- Structural schema for provider responses
- Recurrence utilities (UNTIL truncation, start/end merging, sanitizing)
- Mutation engine for `this`, `all` and `following` scopes

## Google Calendar API

Uses the Google Calendar API v3:
- https://developers.google.com/calendar/api/v3/reference

## Recurring events

Google stores a series as one master event carrying RRULE lines. Single
occurrences only exist as records once they are edited or cancelled
(exceptions); they point back at the master through `recurringEventId`.
"""

from calendar_sync.calendar.google_calendar import (
    GoogleCalendarClient,
    is_holiday_calendar,
)
from calendar_sync.calendar.mutations import (
    MutationRequest,
    RecurrenceMutationEngine,
)
from calendar_sync.calendar.schema import (
    CalendarEvent,
    CalendarInfo,
    EventDateTime,
    RecurrenceScope,
    WatchChannel,
)

__all__ = [
    "GoogleCalendarClient",
    "is_holiday_calendar",
    "MutationRequest",
    "RecurrenceMutationEngine",
    "CalendarEvent",
    "CalendarInfo",
    "EventDateTime",
    "RecurrenceScope",
    "WatchChannel",
]
