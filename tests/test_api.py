"""Tests for the HTTP API (services replaced through dependency overrides)."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from calendar_sync.api.app import create_app
from calendar_sync.api.dependencies import get_calendar_client, get_webhook_service
from calendar_sync.auth.dependencies import get_current_user
from calendar_sync.calendar.schema import CalendarInfo
from calendar_sync.config import WebhookSettings
from calendar_sync.database.connection import get_db_session
from calendar_sync.database.models import User
from calendar_sync.errors import AuthError, ProviderError
from calendar_sync.webhooks.service import (
    FollowUpRefresh,
    NotificationOutcome,
    NotificationResult,
)

from conftest import CALLBACK_URL, FakeCalendarClient

USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
ACCOUNT_ID = "00000000-0000-0000-0000-0000000000a1"


@pytest.fixture
def webhook_service(webhook_settings) -> MagicMock:
    service = MagicMock()
    service.settings = webhook_settings
    service.handle_google_notification = AsyncMock()
    service.refresh_all = AsyncMock()
    return service


@pytest.fixture
def calendar_client(weekly_series, weekly_instance) -> FakeCalendarClient:
    client = FakeCalendarClient({"primary": [weekly_series, weekly_instance], "work": []})
    client.calendars = [CalendarInfo(id="primary", summary="Me", primary=True)]
    return client


@pytest.fixture
def api(webhook_service, calendar_client) -> TestClient:
    """Test client without lifespan, so no database or Redis is touched."""
    app = create_app()
    app.dependency_overrides[get_webhook_service] = lambda: webhook_service
    app.dependency_overrides[get_current_user] = lambda: User(id=USER_ID, email="ada@example.com")
    app.dependency_overrides[get_calendar_client] = lambda: calendar_client
    return TestClient(app)


# =============================================================================
# Webhooks
# =============================================================================


class TestGoogleNotificationRoute:
    """Tests for POST /api/webhooks/google-calendar."""

    def test_rejected_push_is_400(self, api, webhook_service):
        webhook_service.handle_google_notification.return_value = NotificationResult(
            NotificationOutcome.REJECTED, message="Invalid Google channel token"
        )

        response = api.post("/api/webhooks/google-calendar")

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid Google channel token"}

    def test_unknown_channel_is_acknowledged(self, api, webhook_service):
        webhook_service.handle_google_notification.return_value = NotificationResult(
            NotificationOutcome.UNKNOWN_CHANNEL
        )

        response = api.post("/api/webhooks/google-calendar")

        assert response.status_code == 202

    def test_store_failure_is_acknowledged(self, api, webhook_service):
        webhook_service.handle_google_notification.return_value = NotificationResult(
            NotificationOutcome.UNAVAILABLE, message="db down"
        )

        response = api.post("/api/webhooks/google-calendar")

        assert response.status_code == 202
        assert response.json() == {"status": "unavailable"}

    def test_headers_are_passed_through(self, api, webhook_service):
        webhook_service.handle_google_notification.return_value = NotificationResult(
            NotificationOutcome.SYNC
        )

        response = api.post(
            "/api/webhooks/google-calendar",
            headers={"X-Goog-Channel-ID": "ch-1", "X-Goog-Resource-State": "sync"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "sync"}
        headers = webhook_service.handle_google_notification.call_args.args[0]
        assert headers["x-goog-channel-id"] == "ch-1"

    def test_list_change_schedules_refresh(self, api, webhook_service):
        webhook_service.handle_google_notification.return_value = NotificationResult(
            NotificationOutcome.PUBLISHED,
            follow_up_refresh=FollowUpRefresh(account_id=ACCOUNT_ID, user_id=str(USER_ID)),
        )

        response = api.post("/api/webhooks/google-calendar")

        assert response.status_code == 200
        webhook_service.refresh_all.assert_awaited_once_with(str(USER_ID), ACCOUNT_ID)

    def test_failed_follow_up_is_swallowed(self, api, webhook_service):
        webhook_service.handle_google_notification.return_value = NotificationResult(
            NotificationOutcome.PUBLISHED,
            follow_up_refresh=FollowUpRefresh(account_id=ACCOUNT_ID, user_id=str(USER_ID)),
        )
        webhook_service.refresh_all.side_effect = AuthError(ACCOUNT_ID, "Token revoked")

        response = api.post("/api/webhooks/google-calendar")

        assert response.status_code == 200


class TestRefreshRoute:
    """Tests for POST /api/sync/refresh."""

    def test_schedules_refresh(self, api, webhook_service):
        response = api.post("/api/sync/refresh", json={"account_id": ACCOUNT_ID})

        assert response.status_code == 202
        assert response.json() == {"status": "scheduled", "account_id": ACCOUNT_ID}
        webhook_service.refresh_all.assert_awaited_once_with(str(USER_ID), ACCOUNT_ID)

    def test_bad_callback_url_is_422(self, api, webhook_service):
        webhook_service.settings = WebhookSettings(
            callback_url="http://localhost:8000/api/webhooks/google-calendar",
            webhook_token="t",
        )

        response = api.post("/api/sync/refresh", json={})

        assert response.status_code == 422
        assert response.json()["operation"] == "validate-callback-url"
        webhook_service.refresh_all.assert_not_awaited()

    def test_requires_login(self, webhook_service):
        app = create_app()
        app.dependency_overrides[get_webhook_service] = lambda: webhook_service
        app.dependency_overrides[get_db_session] = lambda: MagicMock()

        response = TestClient(app).post("/api/sync/refresh", json={})

        assert response.status_code == 401


# =============================================================================
# Calendars and events
# =============================================================================


class TestCalendarRoutes:
    """Tests for /api/calendars pass-through routes."""

    def test_list_calendars(self, api):
        response = api.get(f"/api/calendars/{ACCOUNT_ID}/calendars")

        assert response.status_code == 200
        [calendar] = response.json()
        assert calendar["id"] == "primary"
        assert calendar["is_primary"] is True

    def test_list_events(self, api):
        response = api.get(
            f"/api/calendars/{ACCOUNT_ID}/calendars/primary/events",
            params={"time_min": "2024-02-01T00:00:00Z", "time_max": "2024-03-01T00:00:00Z"},
        )

        assert response.status_code == 200
        assert {e["id"] for e in response.json()} == {"standup", "standup_20240205T090000Z"}

    def test_create_event_is_sanitized(self, api, calendar_client):
        response = api.post(
            f"/api/calendars/{ACCOUNT_ID}/calendars/primary/events",
            json={
                "id": "client-side-id",
                "summary": "Lunch",
                "start": {"dateTime": "2024-02-05T12:00:00Z"},
                "end": {"dateTime": "2024-02-05T13:00:00Z"},
            },
        )

        assert response.status_code == 201
        [(_, calendar_id, body)] = calendar_client.calls
        assert calendar_id == "primary"
        assert "id" not in body

    def test_provider_not_found_is_404(self, api, calendar_client):
        response = api.get(f"/api/calendars/{ACCOUNT_ID}/calendars/primary/events/missing")

        assert response.status_code == 404
        assert response.json()["operation"] == "google-event-get"


class TestMutateRoute:
    """Tests for POST /api/calendars/{account_id}/events/mutate."""

    def test_following_update(self, api, calendar_client, weekly_instance):
        response = api.post(
            f"/api/calendars/{ACCOUNT_ID}/events/mutate",
            json={
                "calendar_id": "primary",
                "event_id": weekly_instance["id"],
                "operation": "update",
                "scope": "following",
                "payload": {"summary": "Standup v2"},
            },
        )

        assert response.status_code == 200
        assert response.json()["event"]["summary"] == "Standup v2"
        assert [c[0] for c in calendar_client.calls] == ["update_event", "create_event"]

    def test_delete_returns_no_event(self, api, calendar_client, weekly_instance):
        response = api.post(
            f"/api/calendars/{ACCOUNT_ID}/events/mutate",
            json={
                "calendar_id": "primary",
                "event_id": weekly_instance["id"],
                "operation": "delete",
                "scope": "this",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"event": None}

    def test_omitted_scope_uses_series_default(self, api, calendar_client):
        response = api.post(
            f"/api/calendars/{ACCOUNT_ID}/events/mutate",
            json={"calendar_id": "primary", "event_id": "standup", "operation": "delete"},
        )

        assert response.status_code == 200
        assert calendar_client.calls == [("delete_event", "primary", "standup")]

    def test_series_scope_on_single_event_is_422(self, api, calendar_client):
        calendar_client.events["primary"]["lunch"] = {
            "id": "lunch",
            "start": {"dateTime": "2024-02-05T12:00:00Z"},
            "end": {"dateTime": "2024-02-05T13:00:00Z"},
        }

        response = api.post(
            f"/api/calendars/{ACCOUNT_ID}/events/mutate",
            json={
                "calendar_id": "primary",
                "event_id": "lunch",
                "operation": "delete",
                "scope": "following",
            },
        )

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_provider_failure_is_502(self, api, calendar_client, weekly_instance):
        calendar_client.fail_on["move_event"] = ProviderError(
            "Backend Error", operation="google-event-move", status_code=500
        )

        response = api.post(
            f"/api/calendars/{ACCOUNT_ID}/events/mutate",
            json={
                "calendar_id": "primary",
                "event_id": weekly_instance["id"],
                "operation": "move",
                "scope": "this",
                "destination_calendar_id": "work",
            },
        )

        assert response.status_code == 502
        assert response.json()["operation"] == "google-event-move"


class TestHealth:
    def test_health(self, api):
        response = api.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
