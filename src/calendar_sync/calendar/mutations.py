"""Recurrence-scope mutation engine.

Translates "this occurrence / the whole series / this and following"
edits into the sequence of master and instance reads and writes Google
Calendar understands.

## Scopes

- this: act on the targeted event only. Deleting an occurrence of a series
  cancels it (a provider-side exception) instead of deleting the record.
- all: resolve the series master and act on it.
- following: split the series. The master is truncated to end just before
  the occurrence, then a new series is created from the occurrence onward
  (update, move). Delete only truncates.

## Partial failure

A split issues two writes. If creating the new series fails, the master's
original recurrence is written back before the error is raised again.
Once the truncation is on its way, the rest of the split runs shielded
from cancellation so a cancelled caller never leaves a truncated master
without its replacement series.

The engine holds no state; it is safe to share between requests for the
same account.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Literal

from calendar_sync.calendar.google_calendar import GoogleCalendarClient
from calendar_sync.calendar.recurrence import (
    default_scope_for_event,
    merge_start_end,
    sanitize_event_payload,
    strip_recurring_link,
    truncate_recurrence_until,
)
from calendar_sync.calendar.schema import (
    CalendarEvent,
    EventDateTime,
    RecurrenceScope,
)
from calendar_sync.errors import ValidationError, format_unknown_cause

logger = logging.getLogger(__name__)

MutationOperation = Literal["update", "delete", "move"]

# Identity of the source series; a new series must get its own.
SERIES_IDENTITY_FIELDS = ("iCalUID", "etag", "sequence", "created", "updated")


@dataclass
class MutationRequest:
    """A single scoped mutation requested by the application."""

    calendar_id: str
    event_id: str
    operation: MutationOperation
    scope: RecurrenceScope | str | None = None  # None: derived from the event
    payload: dict[str, Any] | None = None
    destination_calendar_id: str | None = None


def _payload_dict(payload: CalendarEvent | dict[str, Any] | None) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, CalendarEvent):
        return payload.to_body()
    return dict(payload)


def _parse_scope(scope: RecurrenceScope | str) -> RecurrenceScope:
    try:
        return RecurrenceScope(scope)
    except ValueError:
        raise ValidationError(
            f"Unknown recurrence scope: {scope!r}",
            operation="mutate-event",
        ) from None


def _boundary(value: EventDateTime | None) -> date | datetime | None:
    if value is None:
        return None
    if value.date_time is not None:
        return value.date_time
    return value.as_date()


def _new_series_body(body: dict[str, Any]) -> dict[str, Any]:
    body = strip_recurring_link(sanitize_event_payload(body))
    for name in SERIES_IDENTITY_FIELDS:
        body.pop(name, None)
    return body


class RecurrenceMutationEngine:
    """Update, delete and move events across recurrence scopes.

    Example:
        ```python
        engine = RecurrenceMutationEngine(client)

        await engine.update_event(
            "primary", instance_id, {"summary": "Standup v2"}, "following"
        )
        ```
    """

    def __init__(self, client: GoogleCalendarClient):
        """Initialize the engine.

        Args:
            client: Provider client authenticated for the account
        """
        self.client = client

    async def get_master_recurrence(
        self,
        calendar_id: str,
        event: CalendarEvent,
    ) -> CalendarEvent:
        """Resolve the master record of the series `event` belongs to.

        Raises:
            ValidationError: If the event is not part of a series
        """
        if event.recurring_event_id:
            return await self.client.get_event(calendar_id, event.recurring_event_id)
        if event.recurrence:
            return event
        raise ValidationError(
            f"Event {event.id} is not a recurring event",
            operation="google-event-master",
        )

    async def _get_series_master(
        self,
        calendar_id: str,
        event: CalendarEvent,
        scope: RecurrenceScope,
    ) -> CalendarEvent:
        master = await self.get_master_recurrence(calendar_id, event)
        if not master.recurrence:
            raise ValidationError(
                f"Scope '{scope.value}' requires a recurring event, "
                f"but {master.id} has no recurrence rule",
                operation="google-event-master",
            )
        return master

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        payload: CalendarEvent | dict[str, Any],
        scope: RecurrenceScope | str = RecurrenceScope.THIS,
    ) -> CalendarEvent:
        """Update an event, an occurrence, or a whole or partial series.

        Args:
            calendar_id: Calendar holding the event
            event_id: Instance or master the user is pointing at
            payload: Edited event in provider JSON form
            scope: Which occurrences the edit applies to

        Returns:
            The updated event (this), the updated master (all), or the
            newly created series (following)
        """
        scope = _parse_scope(scope)
        payload = _payload_dict(payload)

        if scope is RecurrenceScope.THIS:
            return await self.client.update_event(
                calendar_id, event_id, sanitize_event_payload(payload)
            )

        event = await self.client.get_event(calendar_id, event_id)

        if scope is RecurrenceScope.ALL:
            master = await self.get_master_recurrence(calendar_id, event)
            return await self._update_series(calendar_id, master, event, payload)

        master = await self._get_series_master(calendar_id, event, scope)
        occurrence_start = _boundary(
            event.original_start_time
            or (EventDateTime.model_validate(payload["start"]) if payload.get("start") else None)
            or event.start
        )

        new_body = {
            **master.to_body(),
            "start": event.start.to_body(),
            "end": event.end.to_body(),
            **payload,
            "recurrence": payload.get("recurrence") or master.recurrence,
        }
        return await self._split_series(
            calendar_id,
            master,
            occurrence_start,
            destination_calendar_id=calendar_id,
            new_series=_new_series_body(new_body),
        )

    async def _update_series(
        self,
        calendar_id: str,
        master: CalendarEvent,
        event: CalendarEvent,
        payload: dict[str, Any],
    ) -> CalendarEvent:
        edited_start = (
            EventDateTime.model_validate(payload["start"]) if payload.get("start") else event.start
        )
        edited_end = EventDateTime.model_validate(payload["end"]) if payload.get("end") else event.end
        start, end = merge_start_end(master.start, master.end, edited_start, edited_end)

        body = {
            **master.to_body(),
            **payload,
            "start": start.to_body(),
            "end": end.to_body(),
            "recurrence": payload.get("recurrence") or master.recurrence,
        }
        body = strip_recurring_link(sanitize_event_payload(body))

        logger.info(f"Updating series {master.id} in calendar {calendar_id}")
        return await self.client.update_event(calendar_id, master.id, body)

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_event(
        self,
        calendar_id: str,
        event_id: str,
        scope: RecurrenceScope | str = RecurrenceScope.THIS,
    ) -> None:
        """Delete an event, cancel an occurrence, or end a series early."""
        scope = _parse_scope(scope)
        event = await self.client.get_event(calendar_id, event_id)

        if scope is RecurrenceScope.THIS:
            if event.is_instance:
                await self._cancel_occurrence(calendar_id, event)
                return
            if event.is_master:
                raise ValidationError(
                    f"Event {event.id} is a series master; "
                    "pick an occurrence or use scope 'all'",
                    operation="google-event-delete",
                )
            await self.client.delete_event(calendar_id, event.id)
            return

        if scope is RecurrenceScope.ALL:
            target = event
            if event.is_instance or event.is_master:
                target = await self.get_master_recurrence(calendar_id, event)
            logger.info(f"Deleting event {target.id} from calendar {calendar_id}")
            await self.client.delete_event(calendar_id, target.id)
            return

        master = await self._get_series_master(calendar_id, event, scope)
        occurrence_start = _boundary(event.original_start_time or event.start)
        await self._truncate_master(calendar_id, master, occurrence_start)

    async def _cancel_occurrence(self, calendar_id: str, event: CalendarEvent) -> None:
        # Keep the instance link so the provider records an exception
        body = event.to_body()
        for name in ("id", "htmlLink", "organizer"):
            body.pop(name, None)
        body["status"] = "cancelled"

        logger.info(f"Cancelling occurrence {event.id} of series {event.recurring_event_id}")
        await self.client.update_event(calendar_id, event.id, body)

    # -------------------------------------------------------------------------
    # Move
    # -------------------------------------------------------------------------

    async def move_event(
        self,
        calendar_id: str,
        event_id: str,
        destination_calendar_id: str,
        scope: RecurrenceScope | str = RecurrenceScope.THIS,
    ) -> CalendarEvent:
        """Move an event, a whole series, or the tail of a series."""
        scope = _parse_scope(scope)

        if scope is RecurrenceScope.THIS:
            return await self.client.move_event(calendar_id, event_id, destination_calendar_id)

        event = await self.client.get_event(calendar_id, event_id)

        if scope is RecurrenceScope.ALL:
            master = await self.get_master_recurrence(calendar_id, event)
            return await self.client.move_event(calendar_id, master.id, destination_calendar_id)

        master = await self._get_series_master(calendar_id, event, scope)
        occurrence_start = _boundary(event.original_start_time or event.start)

        new_body = {
            **master.to_body(),
            "start": event.start.to_body(),
            "end": event.end.to_body(),
            "recurrence": master.recurrence,
        }
        return await self._split_series(
            calendar_id,
            master,
            occurrence_start,
            destination_calendar_id=destination_calendar_id,
            new_series=_new_series_body(new_body),
        )

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def resolve_scope(
        self,
        calendar_id: str,
        event_id: str,
        scope: RecurrenceScope | str | None,
    ) -> RecurrenceScope:
        """Validate an explicit scope, or derive one from the event.

        Occurrences default to "this" and series masters to "all".
        """
        if scope is not None:
            return _parse_scope(scope)
        event = await self.client.get_event(calendar_id, event_id)
        return default_scope_for_event(event)

    async def mutate_event(self, request: MutationRequest) -> CalendarEvent | None:
        """Run one scoped mutation.

        Without a scope, the event is fetched and its default scope applied.

        Raises:
            ValidationError: Invalid scope/operation, or a series scope on a
                non-recurring event
            ProviderError: A provider call failed
        """
        if request.operation not in ("update", "delete", "move"):
            raise ValidationError(
                f"Unknown mutation operation: {request.operation!r}",
                operation="mutate-event",
            )
        if request.operation == "update" and request.payload is None:
            raise ValidationError("Update requires a payload", operation="mutate-event")
        if request.operation == "move" and not request.destination_calendar_id:
            raise ValidationError(
                "Move requires a destination calendar", operation="mutate-event"
            )

        scope = await self.resolve_scope(request.calendar_id, request.event_id, request.scope)

        if request.operation == "update":
            return await self.update_event(
                request.calendar_id, request.event_id, request.payload, scope
            )
        if request.operation == "delete":
            await self.delete_event(request.calendar_id, request.event_id, scope)
            return None
        return await self.move_event(
            request.calendar_id,
            request.event_id,
            request.destination_calendar_id,
            scope,
        )

    # -------------------------------------------------------------------------
    # Series split
    # -------------------------------------------------------------------------

    def _master_body(self, master: CalendarEvent, recurrence: list[str]) -> dict[str, Any]:
        body = {**master.to_body(), "recurrence": recurrence}
        return strip_recurring_link(sanitize_event_payload(body))

    async def _truncate_master(
        self,
        calendar_id: str,
        master: CalendarEvent,
        occurrence_start: date | datetime | None,
    ) -> CalendarEvent:
        if occurrence_start is None:
            raise ValidationError(
                f"Cannot locate the occurrence to split series {master.id} at",
                operation="google-event-update",
            )
        truncated = truncate_recurrence_until(
            master.recurrence or [], occurrence_start, master.is_all_day
        )
        logger.info(f"Truncating series {master.id}: {truncated[0] if truncated else ''}")
        return await self.client.update_event(
            calendar_id, master.id, self._master_body(master, truncated)
        )

    async def _split_series(
        self,
        calendar_id: str,
        master: CalendarEvent,
        occurrence_start: date | datetime | None,
        destination_calendar_id: str,
        new_series: dict[str, Any],
    ) -> CalendarEvent:
        return await asyncio.shield(
            self._run_split(
                calendar_id,
                master,
                occurrence_start,
                destination_calendar_id,
                new_series,
            )
        )

    async def _run_split(
        self,
        calendar_id: str,
        master: CalendarEvent,
        occurrence_start: date | datetime | None,
        destination_calendar_id: str,
        new_series: dict[str, Any],
    ) -> CalendarEvent:
        await self._truncate_master(calendar_id, master, occurrence_start)

        try:
            created = await self.client.create_event(destination_calendar_id, new_series)
        except Exception as e:
            logger.warning(
                f"Creating the new series from {master.id} failed, "
                f"restoring its recurrence: {format_unknown_cause(e)}"
            )
            await self._restore_master(calendar_id, master)
            raise

        logger.info(f"Split series {master.id}; new series {created.id} in {destination_calendar_id}")
        return created

    async def _restore_master(self, calendar_id: str, master: CalendarEvent) -> None:
        try:
            await self.client.update_event(
                calendar_id, master.id, self._master_body(master, list(master.recurrence or []))
            )
        except Exception as e:
            logger.error(
                f"Failed to restore recurrence of series {master.id}: {format_unknown_cause(e)}"
            )
