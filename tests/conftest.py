"""Pytest fixtures for calendar sync tests.

This module provides test fixtures that ensure:
1. No external API calls are made (Google APIs, Redis)
2. No real database connections in unit tests (SQLite in memory only)
3. Isolated test environment with controlled configuration
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

# Set test environment BEFORE importing application modules
# This ensures no real services are contacted during test collection
os.environ.setdefault("SECRET_KEY", "test-secret-key-at-least-32-characters-long")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("WEBHOOK_BASE_URL", "https://calendar.example.com")
os.environ.setdefault("GOOGLE_WEBHOOK_TOKEN", "test-webhook-token")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

from calendar_sync.calendar.schema import CalendarEvent, CalendarInfo, WatchChannel
from calendar_sync.config import WebhookSettings
from calendar_sync.errors import ProviderError
from calendar_sync.webhooks.models import (
    LinkedAccountRef,
    Subscription,
    SubscriptionUpsert,
)

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
CALLBACK_URL = "https://calendar.example.com/api/webhooks/google-calendar"
WEBHOOK_TOKEN = "test-webhook-token"


# =============================================================================
# Test Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset settings cache before each test to ensure clean state."""
    from calendar_sync.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Fakes
# =============================================================================


class FakeCalendarClient:
    """In-memory stand-in for GoogleCalendarClient.

    Stores events per calendar, expands nothing, and records every write
    in `calls` as `(method, args...)` tuples.
    """

    def __init__(self, events: dict[str, list[dict[str, Any]]] | None = None):
        self.events: dict[str, dict[str, dict[str, Any]]] = {}
        for calendar_id, items in (events or {}).items():
            self.events[calendar_id] = {item["id"]: dict(item) for item in items}
        self.calendars: list[CalendarInfo] = []
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self.watch_responses: dict[str, WatchChannel] = {}
        self._next_id = 0

    def _maybe_fail(self, method: str) -> None:
        if method in self.fail_on:
            raise self.fail_on[method]

    async def get_event(self, calendar_id: str, event_id: str) -> CalendarEvent:
        self._maybe_fail("get_event")
        try:
            return CalendarEvent.model_validate(self.events[calendar_id][event_id])
        except KeyError:
            raise ProviderError(
                "Not Found", operation="google-event-get", status_code=404
            ) from None

    async def update_event(
        self, calendar_id: str, event_id: str, body: dict[str, Any]
    ) -> CalendarEvent:
        self.calls.append(("update_event", calendar_id, event_id, body))
        self._maybe_fail("update_event")
        stored = {**body, "id": event_id}
        self.events.setdefault(calendar_id, {})[event_id] = stored
        return CalendarEvent.model_validate(stored)

    async def create_event(self, calendar_id: str, body: dict[str, Any]) -> CalendarEvent:
        self.calls.append(("create_event", calendar_id, body))
        self._maybe_fail("create_event")
        self._next_id += 1
        stored = {**body, "id": f"created-{self._next_id}"}
        self.events.setdefault(calendar_id, {})[stored["id"]] = stored
        return CalendarEvent.model_validate(stored)

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        self.calls.append(("delete_event", calendar_id, event_id))
        self._maybe_fail("delete_event")
        self.events.get(calendar_id, {}).pop(event_id, None)

    async def move_event(
        self, calendar_id: str, event_id: str, destination_calendar_id: str
    ) -> CalendarEvent:
        self.calls.append(("move_event", calendar_id, event_id, destination_calendar_id))
        self._maybe_fail("move_event")
        stored = self.events[calendar_id].pop(event_id)
        self.events.setdefault(destination_calendar_id, {})[event_id] = stored
        return CalendarEvent.model_validate(stored)

    async def list_calendars(self) -> list[CalendarInfo]:
        self._maybe_fail("list_calendars")
        return list(self.calendars)

    async def list_events(self, calendar_id, time_min, time_max) -> list[CalendarEvent]:
        self._maybe_fail("list_events")
        return [
            CalendarEvent.model_validate(item)
            for item in self.events.get(calendar_id, {}).values()
        ]

    async def list_calendar_ids(self) -> list[str]:
        self._maybe_fail("list_calendar_ids")
        return [c.id for c in self.calendars]

    async def watch_calendar_list(self, address, expiration, channel_id, token=None):
        self.calls.append(("watch_calendar_list", channel_id))
        self._maybe_fail("watch_calendar_list")
        return self.watch_responses.get(
            "__list__",
            WatchChannel(id=channel_id, resource_id=f"res-{channel_id}"),
        )

    async def watch_calendar_events(self, calendar_id, address, expiration, channel_id, token=None):
        self.calls.append(("watch_calendar_events", calendar_id, channel_id))
        self._maybe_fail("watch_calendar_events")
        return self.watch_responses.get(
            calendar_id,
            WatchChannel(id=channel_id, resource_id=f"res-{channel_id}"),
        )

    async def stop_watch(self, channel_id: str, resource_id: str) -> None:
        self.calls.append(("stop_watch", channel_id, resource_id))
        self._maybe_fail("stop_watch")

    def calls_named(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]


class FakeSubscriptionRepository:
    """In-memory subscription store with the repository's interface."""

    def __init__(self, accounts: list[LinkedAccountRef] | None = None, user_id: str = "user-1"):
        self.accounts = accounts or []
        self.user_id = user_id
        self.subscriptions: dict[str, Subscription] = {}
        self.touched: list[tuple[str, datetime]] = []

    async def get_accounts_by_provider(self, user_id, provider, account_id=None):
        if user_id != self.user_id:
            return []
        return [a for a in self.accounts if account_id is None or a.id == account_id]

    async def list_for_user(self, user_id, provider=None):
        return [s for s in self.subscriptions.values() if s.user_id == user_id]

    async def find_active_by_id(self, subscription_id):
        subscription = self.subscriptions.get(subscription_id)
        if subscription is None or not subscription.active:
            return None
        return subscription

    async def upsert(self, values: SubscriptionUpsert) -> None:
        self.subscriptions[values.id] = Subscription(
            **values.model_dump(exclude={"config"}),
            config=values.config,
            updated_at=FIXED_NOW,
        )

    async def deactivate_by_id(self, subscription_id):
        subscription = self.subscriptions[subscription_id]
        self.subscriptions[subscription_id] = subscription.model_copy(update={"active": False})

    async def touch_last_notified(self, subscription_id, now):
        self.touched.append((subscription_id, now))

    def add(self, subscription: Subscription) -> Subscription:
        self.subscriptions[subscription.id] = subscription
        return subscription


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def webhook_settings() -> WebhookSettings:
    """Webhook settings pointing at a public HTTPS callback."""
    return WebhookSettings(
        callback_url=CALLBACK_URL,
        webhook_token=WEBHOOK_TOKEN,
        channel_ttl=timedelta(days=28),
        renewal_buffer=timedelta(hours=12),
    )


@pytest.fixture
def account() -> LinkedAccountRef:
    return LinkedAccountRef(id="00000000-0000-0000-0000-0000000000a1", provider_account_id="g-1")


@pytest.fixture
def fake_client() -> FakeCalendarClient:
    return FakeCalendarClient()


@pytest.fixture
def fake_repository(account: LinkedAccountRef) -> FakeSubscriptionRepository:
    return FakeSubscriptionRepository(accounts=[account])


@pytest.fixture
def fake_publisher() -> MagicMock:
    """Publisher mock; best-effort publishes are recorded, nothing is sent."""
    publisher = MagicMock()
    publisher.publish_to_user_best_effort = MagicMock()
    return publisher


@pytest.fixture
def weekly_series() -> dict[str, Any]:
    """Weekly Monday standup starting 2024-01-01 09:00 UTC."""
    return {
        "id": "standup",
        "summary": "Standup",
        "status": "confirmed",
        "iCalUID": "standup@google.com",
        "etag": '"3181161784712000"',
        "start": {"dateTime": "2024-01-01T09:00:00Z", "timeZone": "UTC"},
        "end": {"dateTime": "2024-01-01T09:30:00Z", "timeZone": "UTC"},
        "recurrence": ["RRULE:FREQ=WEEKLY;BYDAY=MO"],
        "attendees": [{"email": "team@example.com"}],
    }


@pytest.fixture
def weekly_instance() -> dict[str, Any]:
    """The 2024-02-05 occurrence of the weekly standup."""
    return {
        "id": "standup_20240205T090000Z",
        "summary": "Standup",
        "status": "confirmed",
        "recurringEventId": "standup",
        "originalStartTime": {"dateTime": "2024-02-05T09:00:00Z", "timeZone": "UTC"},
        "start": {"dateTime": "2024-02-05T09:00:00Z", "timeZone": "UTC"},
        "end": {"dateTime": "2024-02-05T09:30:00Z", "timeZone": "UTC"},
        "attendees": [{"email": "team@example.com"}],
    }


def make_subscription(
    id: str,
    account: LinkedAccountRef,
    config: dict[str, Any],
    expires_at: datetime,
    user_id: str = "user-1",
    active: bool = True,
    updated_at: datetime | None = None,
) -> Subscription:
    """Build a subscription record for tests."""
    return Subscription.model_validate(
        {
            "id": id,
            "user_id": user_id,
            "account_id": account.id,
            "provider_account_id": account.provider_account_id,
            "config": config,
            "active": active,
            "expires_at": expires_at,
            "webhook_token": WEBHOOK_TOKEN,
            "updated_at": updated_at,
        }
    )
