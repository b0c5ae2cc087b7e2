"""Webhook service: refresh orchestration and inbound notifications.

## refresh_all

For one user (optionally one linked account), make every watch channel
current: the calendar-list channel, one events channel per visible
calendar, and deactivation of channels whose calendar disappeared.
Accounts are processed concurrently and independently; a revoked token
or provider outage on one account is logged and does not affect the
others. Within an account every unit of work is isolated the same way.

## handle_google_notification

Google posts an empty body with `X-Goog-*` headers. The outcome tells the
HTTP layer how to answer; nothing here raises for a bad or stale push,
since an error status makes Google redeliver.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

from calendar_sync.calendar.google_calendar import GoogleCalendarClient
from calendar_sync.config import WebhookSettings
from calendar_sync.errors import AuthError, RepositoryError, format_unknown_cause
from calendar_sync.realtime.events import (
    GOOGLE_CALENDAR_LIST_SYNC_CALENDAR_ID,
    google_calendar_changed,
)
from calendar_sync.realtime.publisher import RealtimePublisher
from calendar_sync.webhooks.google_calendar import (
    GoogleCalendarWebhookManager,
    validate_callback_url,
)
from calendar_sync.webhooks.models import (
    GOOGLE_PROVIDER,
    LinkedAccountRef,
    Subscription,
    pick_most_recent,
)
from calendar_sync.webhooks.repository import SubscriptionRepository

logger = logging.getLogger(__name__)

# Push notification headers
CHANNEL_ID_HEADER = "x-goog-channel-id"
CHANNEL_TOKEN_HEADER = "x-goog-channel-token"
RESOURCE_ID_HEADER = "x-goog-resource-id"
RESOURCE_STATE_HEADER = "x-goog-resource-state"


class NotificationOutcome(str, Enum):
    """What happened to an inbound push notification."""

    REJECTED = "rejected"  # Missing headers or wrong channel token
    UNKNOWN_CHANNEL = "unknown_channel"  # No active subscription
    UNAVAILABLE = "unavailable"  # Subscription store failed; acknowledged anyway
    STALE_RESOURCE = "stale_resource"  # Resource id was rotated
    SYNC = "sync"  # Bootstrap ping sent when the channel is created
    PUBLISHED = "published"  # A change event was published


@dataclass(frozen=True)
class FollowUpRefresh:
    """Refresh that should run after a calendar-list change."""

    account_id: str
    user_id: str


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of handling one push notification."""

    outcome: NotificationOutcome
    follow_up_refresh: FollowUpRefresh | None = None
    message: str | None = None


AccessTokenGetter = Callable[[str, str], Awaitable[str]]


class WebhookService:
    """Entry points for the webhook lifecycle.

    Example:
        ```python
        service = WebhookService(repository, manager, tokens.get_access_token, publisher, settings)

        await service.refresh_all(user_id)
        result = await service.handle_google_notification(request.headers)
        ```
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        manager: GoogleCalendarWebhookManager,
        get_access_token: AccessTokenGetter,
        publisher: RealtimePublisher,
        settings: WebhookSettings,
        client_factory: Callable[[str], GoogleCalendarClient] = GoogleCalendarClient,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """Initialize the service.

        Args:
            repository: Subscription store
            manager: Watch channel lifecycle manager
            get_access_token: `(account_id, user_id) -> token`, raising AuthError
            publisher: Realtime publisher for change events
            settings: Webhook configuration (shared token checked on pushes)
            client_factory: Builds a provider client from an access token
            now: Clock returning an aware UTC datetime
        """
        self.repository = repository
        self.manager = manager
        self.get_access_token = get_access_token
        self.publisher = publisher
        self.settings = settings
        self.client_factory = client_factory
        self._now = now

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def _create_client(self, account_id: str, user_id: str) -> GoogleCalendarClient:
        try:
            token = await self.get_access_token(account_id, user_id)
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(account_id, format_unknown_cause(e)) from e

        if not token:
            raise AuthError(account_id, "No access token available")
        return self.client_factory(token)

    async def _ensure_account_webhooks(
        self,
        account: LinkedAccountRef,
        existing_subscriptions: list[Subscription],
        user_id: str,
    ) -> None:
        client = await self._create_client(account.id, user_id)

        account_subs = [
            s for s in existing_subscriptions if s.account_id == account.id and s.active
        ]

        existing_list: Subscription | None = None
        existing_events: dict[str, Subscription] = {}
        for sub in account_subs:
            if sub.is_calendar_list:
                existing_list = pick_most_recent(existing_list, sub)
            elif sub.calendar_id is not None:
                existing_events[sub.calendar_id] = pick_most_recent(
                    existing_events.get(sub.calendar_id), sub
                )

        calendar_ids = await self.manager.list_calendar_ids(client)
        visible = set(calendar_ids)
        stale = [
            s for s in account_subs if s.is_calendar_events and s.calendar_id not in visible
        ]

        units: list[tuple[str, Awaitable[None]]] = [
            (
                "calendar list",
                self.manager.refresh_list_watch(client, account, user_id, existing_list),
            ),
        ]
        for calendar_id in calendar_ids:
            units.append(
                (
                    f"calendar {calendar_id}",
                    self.manager.refresh_events_watch(
                        client, account, user_id, calendar_id, existing_events.get(calendar_id)
                    ),
                )
            )
        for subscription in stale:
            units.append(
                (
                    f"stale channel {subscription.id}",
                    self.manager.deactivate_events_watch(client, subscription),
                )
            )

        results = await asyncio.gather(*(unit for _, unit in units), return_exceptions=True)
        for (label, _), result in zip(units, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Webhook refresh failed for {label} of account {account.id}: "
                    f"{format_unknown_cause(result)}"
                )

    async def refresh_all(self, user_id: str, account_id: str | None = None) -> None:
        """Refresh watch channels for all (or one) of a user's Google accounts.

        Idempotent; safe to call repeatedly.

        Raises:
            ValidationError: The callback URL is not a public HTTPS endpoint
            RepositoryError: Accounts or subscriptions could not be listed
        """
        accounts = await self.repository.get_accounts_by_provider(
            user_id, GOOGLE_PROVIDER, account_id
        )
        if not accounts:
            return

        validate_callback_url(self.settings.callback_url)

        existing = await self.repository.list_for_user(user_id, GOOGLE_PROVIDER)

        results = await asyncio.gather(
            *(self._ensure_account_webhooks(account, existing, user_id) for account in accounts),
            return_exceptions=True,
        )
        for account, result in zip(accounts, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Webhook setup failed for account {account.id}: "
                    f"{format_unknown_cause(result)}"
                )

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def handle_google_notification(
        self,
        headers: Mapping[str, Any],
    ) -> NotificationResult:
        """Process one Google push notification.

        Args:
            headers: Request headers (any casing)

        Returns:
            The outcome, plus a follow-up refresh for calendar-list changes
        """
        normalized = {str(k).lower(): v for k, v in headers.items()}
        channel_id = normalized.get(CHANNEL_ID_HEADER)
        channel_token = normalized.get(CHANNEL_TOKEN_HEADER) or ""
        resource_id = normalized.get(RESOURCE_ID_HEADER)
        resource_state = normalized.get(RESOURCE_STATE_HEADER)

        if not (channel_id and resource_id):
            return NotificationResult(
                NotificationOutcome.REJECTED,
                message="Missing required Google channel headers",
            )

        expected_token = self.settings.webhook_token
        if not expected_token or not hmac.compare_digest(
            channel_token.encode("utf-8"), expected_token.encode("utf-8")
        ):
            logger.warning(f"Rejected notification with invalid token on channel {channel_id}")
            return NotificationResult(
                NotificationOutcome.REJECTED,
                message="Invalid Google channel token",
            )

        try:
            subscription = await self.repository.find_active_by_id(channel_id)
        except RepositoryError as e:
            logger.warning(f"Could not look up channel {channel_id}: {e.message}")
            return NotificationResult(NotificationOutcome.UNAVAILABLE, message=e.message)

        if subscription is None:
            logger.debug(f"Notification for unknown or inactive channel {channel_id}")
            return NotificationResult(NotificationOutcome.UNKNOWN_CHANNEL)

        # Old resource of a renewed channel
        if subscription.config.resource_id != resource_id:
            return NotificationResult(NotificationOutcome.STALE_RESOURCE)

        try:
            await self.repository.touch_last_notified(channel_id, self._now())
        except RepositoryError as e:
            logger.warning(f"Could not record notification on channel {channel_id}: {e.message}")
            return NotificationResult(NotificationOutcome.UNAVAILABLE, message=e.message)

        if not resource_state or resource_state == "sync":
            return NotificationResult(NotificationOutcome.SYNC)

        if subscription.is_calendar_list:
            self.publisher.publish_to_user_best_effort(
                subscription.user_id,
                google_calendar_changed(
                    subscription.account_id, GOOGLE_CALENDAR_LIST_SYNC_CALENDAR_ID
                ),
            )
            return NotificationResult(
                NotificationOutcome.PUBLISHED,
                follow_up_refresh=FollowUpRefresh(
                    account_id=subscription.account_id,
                    user_id=subscription.user_id,
                ),
            )

        self.publisher.publish_to_user_best_effort(
            subscription.user_id,
            google_calendar_changed(subscription.account_id, subscription.calendar_id),
        )
        return NotificationResult(NotificationOutcome.PUBLISHED)
