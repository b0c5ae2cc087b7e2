"""Google Calendar API client.

Provides async methods for interacting with Google Calendar:
- Calendar CRUD (calendar list, get, create, update, delete)
- Event CRUD and move
- Watch channels for push notifications (calendar list and events)

## API Documentation

https://developers.google.com/calendar/api/v3/reference

## Authentication

Uses an OAuth 2.0 access token obtained from the token provider. The client
does not refresh tokens itself; build a new client with a fresh token.

## Threading

googleapiclient is synchronous. Each request is executed in a worker thread
with `asyncio.to_thread` so the event loop is never blocked.

## Errors

Every failed call raises `ProviderError` carrying the operation name, the
HTTP status and the provider's error reason (e.g.
`pushNotSupportedForRequestedResource`). Transient failures (network, 429,
5xx) are retried with exponential backoff before being raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from calendar_sync.calendar.schema import (
    CalendarEvent,
    CalendarInfo,
    WatchChannel,
    decode_calendar,
    decode_event,
    decode_events,
    decode_watch_channel,
)
from calendar_sync.errors import ProviderError

logger = logging.getLogger(__name__)

HOLIDAY_CALENDAR_MARKER = "#holiday@"
HOLIDAY_CALENDAR_SUFFIX = "@group.v.calendar.google.com"


def is_holiday_calendar(calendar_id: str) -> bool:
    """Whether a calendar is one of Google's synthetic holiday calendars.

    These calendars do not support push notifications.
    """
    return HOLIDAY_CALENDAR_MARKER in calendar_id and calendar_id.endswith(
        HOLIDAY_CALENDAR_SUFFIX
    )


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.is_transient


def _http_error_to_provider_error(e: HttpError, operation: str) -> ProviderError:
    message = getattr(e, "reason", None) or str(e)
    reason = None

    try:
        payload = json.loads(e.content.decode("utf-8"))
    except (ValueError, AttributeError, UnicodeDecodeError):
        payload = None

    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        message = error.get("message") or message
        errors = error.get("errors") or []
        if errors and isinstance(errors[0], dict):
            reason = errors[0].get("reason")

    return ProviderError(
        message,
        operation=operation,
        status_code=e.resp.status,
        reason=reason,
    )


def _watch_body(
    address: str,
    expiration: datetime,
    channel_id: str,
    token: str | None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": channel_id,
        "type": "web_hook",
        "address": address,
        "expiration": int(expiration.timestamp() * 1000),
    }
    if token:
        body["token"] = token
    return body


class GoogleCalendarClient:
    """Async client for Google Calendar API.

    Example:
        ```python
        client = GoogleCalendarClient(access_token)

        # List calendars
        calendars = await client.list_calendars()

        # List expanded events in a window
        events = await client.list_events(calendar_id, time_min, time_max)

        # Replace an event
        await client.update_event(calendar_id, event_id, body)
        ```
    """

    def __init__(self, access_token: str, service: Any | None = None):
        """Initialize the client.

        Args:
            access_token: OAuth access token
            service: Prebuilt discovery service (tests inject a mock)
        """
        self.access_token = access_token

        if service is None:
            credentials = Credentials(token=access_token)
            service = build(
                "calendar",
                "v3",
                credentials=credentials,
                cache_discovery=False,
            )
        self._service = service

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    async def _execute(self, request: Any, operation: str) -> Any:
        """Execute a discovery request off the event loop.

        Raises:
            ProviderError: If the request fails after retries
        """
        try:
            return await asyncio.to_thread(request.execute)
        except HttpError as e:
            error = _http_error_to_provider_error(e, operation)
            logger.debug(f"Google API error in {operation}: {error.status_code} {error.message}")
            raise error from e
        except OSError as e:
            raise ProviderError(
                f"Network error: {e}",
                operation=operation,
            ) from e

    # -------------------------------------------------------------------------
    # Calendars
    # -------------------------------------------------------------------------

    async def list_calendars(self) -> list[CalendarInfo]:
        """List all calendars on the user's calendar list."""
        calendars = []
        page_token = None

        while True:
            result = await self._execute(
                self._service.calendarList().list(pageToken=page_token),
                "google-calendar-list",
            )
            for item in result.get("items", []):
                calendars.append(decode_calendar(item, "google-calendar-list"))

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return calendars

    async def list_calendar_ids(self) -> list[str]:
        """List ids of calendars that can be watched (holiday calendars excluded)."""
        calendars = await self.list_calendars()
        return [c.id for c in calendars if not is_holiday_calendar(c.id)]

    async def get_calendar(self, calendar_id: str) -> CalendarInfo:
        result = await self._execute(
            self._service.calendars().get(calendarId=calendar_id),
            "google-calendar-get",
        )
        return decode_calendar(result, "google-calendar-get")

    async def create_calendar(self, body: dict[str, Any]) -> CalendarInfo:
        result = await self._execute(
            self._service.calendars().insert(body=body),
            "google-calendar-create",
        )
        return decode_calendar(result, "google-calendar-create")

    async def update_calendar(self, calendar_id: str, body: dict[str, Any]) -> CalendarInfo:
        result = await self._execute(
            self._service.calendars().update(calendarId=calendar_id, body=body),
            "google-calendar-update",
        )
        return decode_calendar(result, "google-calendar-update")

    async def delete_calendar(self, calendar_id: str) -> None:
        await self._execute(
            self._service.calendars().delete(calendarId=calendar_id),
            "google-calendar-delete",
        )

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime | str,
        time_max: datetime | str,
    ) -> list[CalendarEvent]:
        """List events in a window, with recurring series expanded.

        Args:
            calendar_id: Calendar ID (use 'primary' for primary calendar)
            time_min: Lower bound (exclusive) for an event's end time
            time_max: Upper bound (exclusive) for an event's start time

        Returns:
            Events ordered by start time
        """
        events: list[CalendarEvent] = []
        page_token = None

        params: dict[str, Any] = {
            "calendarId": calendar_id,
            "timeMin": time_min.isoformat() if isinstance(time_min, datetime) else time_min,
            "timeMax": time_max.isoformat() if isinstance(time_max, datetime) else time_max,
            "singleEvents": True,  # Expand recurring events
            "orderBy": "startTime",
        }

        while True:
            if page_token:
                params["pageToken"] = page_token

            result = await self._execute(
                self._service.events().list(**params),
                "google-events-list",
            )
            events.extend(decode_events(result.get("items", []), "google-events-list"))

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return events

    async def get_event(self, calendar_id: str, event_id: str) -> CalendarEvent:
        result = await self._execute(
            self._service.events().get(calendarId=calendar_id, eventId=event_id),
            "google-event-get",
        )
        return decode_event(result, "google-event-get")

    async def create_event(self, calendar_id: str, body: dict[str, Any]) -> CalendarEvent:
        result = await self._execute(
            self._service.events().insert(calendarId=calendar_id, body=body),
            "google-event-create",
        )
        return decode_event(result, "google-event-create")

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        body: dict[str, Any],
    ) -> CalendarEvent:
        """Replace an event with `body` (full update, not a patch)."""
        result = await self._execute(
            self._service.events().update(
                calendarId=calendar_id,
                eventId=event_id,
                body=body,
            ),
            "google-event-update",
        )
        return decode_event(result, "google-event-update")

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        await self._execute(
            self._service.events().delete(calendarId=calendar_id, eventId=event_id),
            "google-event-delete",
        )

    async def move_event(
        self,
        calendar_id: str,
        event_id: str,
        destination_calendar_id: str,
    ) -> CalendarEvent:
        """Move an event to another calendar, keeping its id."""
        result = await self._execute(
            self._service.events().move(
                calendarId=calendar_id,
                eventId=event_id,
                destination=destination_calendar_id,
            ),
            "google-event-move",
        )
        return decode_event(result, "google-event-move")

    # -------------------------------------------------------------------------
    # Watch channels
    # -------------------------------------------------------------------------

    async def watch_calendar_list(
        self,
        address: str,
        expiration: datetime,
        channel_id: str,
        token: str | None = None,
    ) -> WatchChannel:
        """Set up push notifications for the user's calendar list.

        Args:
            address: Public HTTPS URL to receive notifications
            expiration: Requested channel expiry (Google may shorten it)
            channel_id: Unique channel identifier
            token: Shared secret echoed back in X-Goog-Channel-Token

        Returns:
            Watch response with resourceId and expiration
        """
        result = await self._execute(
            self._service.calendarList().watch(
                body=_watch_body(address, expiration, channel_id, token),
            ),
            "google-calendar-list-watch",
        )
        return decode_watch_channel(result, "google-calendar-list-watch")

    async def watch_calendar_events(
        self,
        calendar_id: str,
        address: str,
        expiration: datetime,
        channel_id: str,
        token: str | None = None,
    ) -> WatchChannel:
        """Set up push notifications for events of one calendar."""
        result = await self._execute(
            self._service.events().watch(
                calendarId=calendar_id,
                body=_watch_body(address, expiration, channel_id, token),
            ),
            "google-calendar-events-watch",
        )
        return decode_watch_channel(result, "google-calendar-events-watch")

    async def stop_watch(self, channel_id: str, resource_id: str) -> None:
        """Stop a watch channel.

        Args:
            channel_id: The channel ID from watch setup
            resource_id: The resource ID from watch response
        """
        await self._execute(
            self._service.channels().stop(
                body={
                    "id": channel_id,
                    "resourceId": resource_id,
                }
            ),
            "google-channel-stop",
        )
