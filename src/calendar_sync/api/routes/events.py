"""Calendar and event routes for one linked account.

Reads and creates pass straight through to Google. Edits, deletes and
moves of existing events go through the mutation endpoint so recurring
events honour the chosen scope.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from calendar_sync.api.dependencies import get_calendar_client, get_mutation_engine
from calendar_sync.calendar.google_calendar import GoogleCalendarClient
from calendar_sync.calendar.mutations import (
    MutationOperation,
    MutationRequest,
    RecurrenceMutationEngine,
)
from calendar_sync.calendar.recurrence import sanitize_event_payload
from calendar_sync.calendar.schema import RecurrenceScope

router = APIRouter()


class CalendarInfoResponse(BaseModel):
    """Calendar information from provider."""

    id: str
    summary: str
    description: str | None
    time_zone: str | None
    background_color: str | None
    is_primary: bool
    access_role: str


class MutateEventRequest(BaseModel):
    """Scoped mutation of an existing event."""

    calendar_id: str
    event_id: str
    operation: MutationOperation
    scope: RecurrenceScope | None = None
    payload: dict[str, Any] | None = None
    destination_calendar_id: str | None = None


class MutateEventResponse(BaseModel):
    event: dict[str, Any] | None = None


def _calendar_response(calendar) -> CalendarInfoResponse:
    return CalendarInfoResponse(
        id=calendar.id,
        summary=calendar.summary,
        description=calendar.description,
        time_zone=calendar.time_zone,
        background_color=calendar.background_color,
        is_primary=calendar.is_primary,
        access_role=calendar.access_role,
    )


@router.get("/{account_id}/calendars", response_model=list[CalendarInfoResponse])
async def list_calendars(
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> list[CalendarInfoResponse]:
    """List the calendars of a linked account."""
    calendars = await client.list_calendars()
    return [_calendar_response(c) for c in calendars]


@router.get("/{account_id}/calendars/{calendar_id}", response_model=CalendarInfoResponse)
async def get_calendar(
    calendar_id: str,
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> CalendarInfoResponse:
    calendar = await client.get_calendar(calendar_id)
    return _calendar_response(calendar)


@router.get("/{account_id}/calendars/{calendar_id}/events")
async def list_events(
    calendar_id: str,
    time_min: datetime = Query(...),
    time_max: datetime = Query(...),
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> list[dict[str, Any]]:
    """List events in a window, recurring series expanded into occurrences."""
    events = await client.list_events(calendar_id, time_min, time_max)
    return [e.to_body() for e in events]


@router.get("/{account_id}/calendars/{calendar_id}/events/{event_id}")
async def get_event(
    calendar_id: str,
    event_id: str,
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> dict[str, Any]:
    event = await client.get_event(calendar_id, event_id)
    return event.to_body()


@router.post(
    "/{account_id}/calendars/{calendar_id}/events",
    status_code=status.HTTP_201_CREATED,
)
async def create_event(
    calendar_id: str,
    body: dict[str, Any],
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> dict[str, Any]:
    """Create an event (or a new series when the body carries recurrence)."""
    event = await client.create_event(calendar_id, sanitize_event_payload(body))
    return event.to_body()


@router.post("/{account_id}/events/mutate", response_model=MutateEventResponse)
async def mutate_event(
    request: MutateEventRequest,
    engine: RecurrenceMutationEngine = Depends(get_mutation_engine),
) -> MutateEventResponse:
    """Update, delete or move an event with a recurrence scope."""
    result = await engine.mutate_event(
        MutationRequest(
            calendar_id=request.calendar_id,
            event_id=request.event_id,
            scope=request.scope,
            operation=request.operation,
            payload=request.payload,
            destination_calendar_id=request.destination_calendar_id,
        )
    )
    return MutateEventResponse(event=result.to_body() if result is not None else None)
