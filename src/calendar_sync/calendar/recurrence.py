"""Recurrence utilities.

Pure helpers shared by the mutation engine and its callers:

- `truncate_recurrence_until`: end a series just before a given occurrence
- `merge_start_end`: apply an occurrence's edited time to a series master
- `sanitize_event_payload` / `strip_recurring_link`: remove provider-managed
  fields before a write
- `default_scope_for_event`: scope used when a mutation names none

## UNTIL format

Google's RRULE parser only accepts compact basic-ISO stamps: `YYYYMMDD` for
all-day series and `YYYYMMDDTHHMMSSZ` (UTC, no separators, no fractional
seconds) for timed ones.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from calendar_sync.calendar.schema import (
    PROVIDER_MANAGED_FIELDS,
    RECURRING_LINK_FIELDS,
    CalendarEvent,
    EventDateTime,
    RecurrenceScope,
)

logger = logging.getLogger(__name__)

RRULE_PREFIX = "RRULE:"
UNTIL_TIMED_FORMAT = "%Y%m%dT%H%M%SZ"
UNTIL_DATE_FORMAT = "%Y%m%d"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_until(occurrence_start: date | datetime, all_day: bool) -> str:
    """Compute the UNTIL stamp that ends a series right before an occurrence.

    All-day series stop on the previous calendar day; timed series stop one
    second before the occurrence starts.
    """
    if all_day:
        day = occurrence_start.date() if isinstance(occurrence_start, datetime) else occurrence_start
        return (day - timedelta(days=1)).strftime(UNTIL_DATE_FORMAT)

    if not isinstance(occurrence_start, datetime):
        occurrence_start = datetime.combine(occurrence_start, datetime.min.time())
    until = _as_utc(occurrence_start) - timedelta(seconds=1)
    return until.strftime(UNTIL_TIMED_FORMAT)


def _primary_rule_index(recurrence: list[str]) -> int | None:
    for index, rule in enumerate(recurrence):
        if rule.upper().startswith(RRULE_PREFIX):
            return index
    return None


def _with_until(rule: str, until: str) -> str:
    head, sep, body = rule.partition(":")
    if not sep:
        head, body = "", rule

    # COUNT and UNTIL are mutually exclusive in RFC 5545
    parts = [p for p in body.split(";") if p and not p.upper().startswith("COUNT=")]
    until_part = f"UNTIL={until}"
    replaced = False
    for index, part in enumerate(parts):
        if part.upper().startswith("UNTIL="):
            parts[index] = until_part
            replaced = True
    if not replaced:
        parts.append(until_part)

    body = ";".join(parts)
    return f"{head}:{body}" if head else body


def truncate_recurrence_until(
    recurrence: list[str],
    occurrence_start: date | datetime,
    all_day: bool,
) -> list[str]:
    """End a series just before `occurrence_start`.

    Rewrites (or appends) the UNTIL clause of the first RRULE line. Other
    lines (EXDATE, RDATE, EXRULE) are returned unchanged and in order.

    Args:
        recurrence: The master's recurrence lines
        occurrence_start: Original start of the first occurrence to drop
        all_day: Whether the series is made of all-day events

    Returns:
        A new list of recurrence lines; the input is not modified
    """
    index = _primary_rule_index(recurrence)
    if index is None:
        return list(recurrence)

    until = format_until(occurrence_start, all_day)
    truncated = list(recurrence)
    truncated[index] = _with_until(recurrence[index], until)
    return truncated


def _zone(name: str | None) -> ZoneInfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug(f"Unknown time zone {name!r}, keeping explicit offsets")
        return None


def merge_start_end(
    master_start: EventDateTime,
    master_end: EventDateTime,
    edited_start: EventDateTime,
    edited_end: EventDateTime,
) -> tuple[EventDateTime, EventDateTime]:
    """Apply an edited occurrence's time of day to the series master.

    The master keeps its own calendar date (the first occurrence), takes the
    edited occurrence's time of day and time zone, and gets its end
    recomputed from the edited duration, falling back to the master's
    original duration when the edit has none.

    All-day masters keep their dates unchanged.
    """
    if master_start.is_all_day:
        return master_start, master_end

    if master_start.date_time is None or edited_start.date_time is None:
        return edited_start, edited_end

    edited_dt = edited_start.date_time
    time_zone = edited_start.time_zone or master_start.time_zone
    zone = _zone(edited_start.time_zone)

    if zone is not None:
        # Wall-clock combine so a DST change between occurrences keeps the hour
        master_dt = master_start.date_time
        if master_dt.tzinfo is not None:
            master_dt = master_dt.astimezone(zone)
        local_dt = edited_dt.astimezone(zone) if edited_dt.tzinfo else edited_dt
        master_day = master_dt.date()
        local_time = local_dt.time()
        merged_start = datetime.combine(master_day, local_time, tzinfo=zone)
    else:
        merged_start = datetime.combine(master_start.date_time.date(), edited_dt.timetz())

    duration: timedelta | None = None
    if edited_end.date_time is not None:
        duration = edited_end.date_time - edited_dt
    if (duration is None or duration < timedelta(0)) and master_end.date_time is not None:
        duration = master_end.date_time - master_start.date_time

    start = EventDateTime(date_time=merged_start, time_zone=time_zone)
    if duration is None:
        return start, edited_end

    end_zone = edited_end.time_zone or time_zone
    return start, EventDateTime(date_time=merged_start + duration, time_zone=end_zone)


def sanitize_event_payload(event: CalendarEvent | dict[str, Any]) -> dict[str, Any]:
    """Drop provider-managed fields so the payload is valid for create/update."""
    body = event.to_body() if isinstance(event, CalendarEvent) else dict(event)
    for name in PROVIDER_MANAGED_FIELDS:
        body.pop(name, None)
    return body


def strip_recurring_link(payload: dict[str, Any]) -> dict[str, Any]:
    """Remove the instance-to-master link from a payload."""
    body = dict(payload)
    for name in RECURRING_LINK_FIELDS:
        body.pop(name, None)
    return body


def default_scope_for_event(event: CalendarEvent) -> RecurrenceScope:
    """Scope applied when a caller names none.

    Occurrences default to "this" and series masters to "all".
    """
    if event.is_instance:
        return RecurrenceScope.THIS
    if event.is_master:
        return RecurrenceScope.ALL
    return RecurrenceScope.THIS
