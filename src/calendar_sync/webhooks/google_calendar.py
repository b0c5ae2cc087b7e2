"""Google Calendar watch channel lifecycle.

Keeps one push-notification channel per linked account for its calendar
list, and one per visible calendar for its events.

## Renewal

Channels are requested with a fixed lifetime (28 days by default). A
subscription is fresh while it is active and expires more than the renewal
buffer (12 hours by default) from now; fresh subscriptions are left alone,
so refreshing repeatedly is cheap and idempotent. A stale one is stopped
(best effort), then recreated under the same channel id and upserted.

## Unsupported calendars

Google's synthetic holiday calendars reject watches. They are skipped up
front, and the provider's "push not supported" error is treated as an
intentional skip rather than a failure.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urlparse

from calendar_sync.calendar.google_calendar import GoogleCalendarClient, is_holiday_calendar
from calendar_sync.calendar.schema import WatchChannel
from calendar_sync.config import WebhookSettings
from calendar_sync.errors import ProviderError, ValidationError, format_unknown_cause
from calendar_sync.webhooks.models import (
    GOOGLE_PROVIDER,
    CalendarEventsConfig,
    CalendarListConfig,
    LinkedAccountRef,
    Subscription,
    SubscriptionConfig,
    SubscriptionUpsert,
)
from calendar_sync.webhooks.repository import SubscriptionRepository

logger = logging.getLogger(__name__)

PUSH_NOT_SUPPORTED_REASON = "pushNotSupportedForRequestedResource"
PUSH_NOT_SUPPORTED_MESSAGE = "Push notifications are not supported by this resource."

LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_callback_url(url: str) -> None:
    """Ensure the callback is a public HTTPS endpoint.

    Raises:
        ValidationError: For plain HTTP, missing hosts, or loopback hosts
    """
    parsed = urlparse(url)
    if parsed.scheme != "https" or not parsed.hostname or parsed.hostname in LOCAL_HOSTS:
        raise ValidationError(
            f'Invalid Google webhook callback URL "{url}". '
            "Set WEBHOOK_BASE_URL to a public HTTPS URL.",
            operation="validate-callback-url",
        )


def compute_expires_at(
    channel_expiration: str | None,
    now: datetime,
    settings: WebhookSettings,
) -> datetime:
    """Expiry reported by Google (ms since epoch), else now + channel TTL."""
    try:
        expires_ms = int(channel_expiration) if channel_expiration else 0
    except ValueError:
        expires_ms = 0

    if expires_ms > 0:
        return datetime.fromtimestamp(expires_ms / 1000, tz=timezone.utc)
    return now + settings.channel_ttl


def is_push_not_supported(error: ProviderError) -> bool:
    """Whether an events watch failed because the calendar has no push support."""
    if error.operation != "google-calendar-events-watch":
        return False
    return (
        error.reason == PUSH_NOT_SUPPORTED_REASON
        or PUSH_NOT_SUPPORTED_REASON in error.message
        or PUSH_NOT_SUPPORTED_MESSAGE in error.message
    )


class GoogleCalendarWebhookManager:
    """Creates, renews and stops Google Calendar watch channels.

    The manager is stateless apart from its collaborators; the provider
    client is passed per call because each linked account has its own.

    Example:
        ```python
        manager = GoogleCalendarWebhookManager(repository, settings.webhook_settings())

        await manager.refresh_events_watch(client, account, user_id, "primary", existing)
        ```
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        settings: WebhookSettings,
        now: Callable[[], datetime] = _utcnow,
        new_channel_id: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        """Initialize the manager.

        Args:
            repository: Subscription store
            settings: Callback URL, shared token, channel TTL, renewal buffer
            now: Clock returning an aware UTC datetime
            new_channel_id: Generator for ids of brand new channels
        """
        self.repository = repository
        self.settings = settings
        self._now = now
        self._new_channel_id = new_channel_id

    def is_fresh(self, subscription: Subscription | None) -> bool:
        """Whether a subscription can be kept without renewal."""
        if subscription is None:
            return False
        return subscription.is_fresh(self._now(), self.settings.renewal_buffer)

    async def _stop_best_effort(
        self,
        client: GoogleCalendarClient,
        subscription: Subscription,
        operation: str,
    ) -> None:
        try:
            await client.stop_watch(subscription.id, subscription.config.resource_id)
        except ProviderError as e:
            # Already expired or stopped channels fail here; nothing to undo
            logger.debug(
                f"{operation} failed for channel {subscription.id}: {format_unknown_cause(e)}"
            )

    async def _save(
        self,
        channel: WatchChannel,
        channel_id: str,
        account: LinkedAccountRef,
        user_id: str,
        config: SubscriptionConfig,
    ) -> None:
        await self.repository.upsert(
            SubscriptionUpsert(
                id=channel_id,
                user_id=user_id,
                account_id=account.id,
                provider=GOOGLE_PROVIDER,
                provider_account_id=account.provider_account_id,
                config=config,
                expires_at=compute_expires_at(channel.expiration, self._now(), self.settings),
                webhook_token=self.settings.webhook_token,
            )
        )

    def _requested_expiration(self) -> datetime:
        return self._now() + self.settings.channel_ttl

    async def refresh_list_watch(
        self,
        client: GoogleCalendarClient,
        account: LinkedAccountRef,
        user_id: str,
        existing: Subscription | None = None,
    ) -> None:
        """Ensure a fresh calendar-list channel exists for an account.

        Raises:
            ValidationError: Invalid callback URL or incomplete watch response
            ProviderError: The watch call failed
            RepositoryError: The subscription could not be saved
        """
        if self.is_fresh(existing):
            return

        if existing is not None:
            await self._stop_best_effort(client, existing, "google-calendar-list-stop-watch")

        validate_callback_url(self.settings.callback_url)

        channel_id = existing.id if existing is not None else self._new_channel_id()
        channel = await client.watch_calendar_list(
            address=self.settings.callback_url,
            expiration=self._requested_expiration(),
            channel_id=channel_id,
            token=self.settings.webhook_token,
        )
        if not channel.resource_id:
            raise ValidationError(
                "Provider watch response missing channel metadata.",
                operation="google-calendar-list-watch",
            )

        await self._save(
            channel,
            channel_id,
            account,
            user_id,
            CalendarListConfig(resource_id=channel.resource_id),
        )
        logger.info(f"Watching calendar list of account {account.id} on channel {channel_id}")

    async def refresh_events_watch(
        self,
        client: GoogleCalendarClient,
        account: LinkedAccountRef,
        user_id: str,
        calendar_id: str,
        existing: Subscription | None = None,
    ) -> None:
        """Ensure a fresh events channel exists for one calendar.

        Calendars without push support are skipped without error.
        """
        if is_holiday_calendar(calendar_id):
            return

        if self.is_fresh(existing):
            return

        if existing is not None:
            await self._stop_best_effort(client, existing, "google-calendar-events-stop-watch")

        validate_callback_url(self.settings.callback_url)

        channel_id = existing.id if existing is not None else self._new_channel_id()
        try:
            channel = await client.watch_calendar_events(
                calendar_id,
                address=self.settings.callback_url,
                expiration=self._requested_expiration(),
                channel_id=channel_id,
                token=self.settings.webhook_token,
            )
        except ProviderError as e:
            if not is_push_not_supported(e):
                raise
            logger.warning(
                f"Push notifications not supported for calendar {calendar_id} "
                f"of account {account.id}, skipping"
            )
            return

        if not channel.resource_id:
            raise ValidationError(
                "Provider watch response missing channel metadata.",
                operation="google-calendar-events-watch",
            )

        await self._save(
            channel,
            channel_id,
            account,
            user_id,
            CalendarEventsConfig(calendar_id=calendar_id, resource_id=channel.resource_id),
        )
        logger.info(f"Watching calendar {calendar_id} of account {account.id} on channel {channel_id}")

    async def deactivate_events_watch(
        self,
        client: GoogleCalendarClient,
        subscription: Subscription,
    ) -> None:
        """Stop watching a calendar that left the account's list."""
        await self._stop_best_effort(client, subscription, "google-calendar-events-stop-watch")
        await self.repository.deactivate_by_id(subscription.id)
        logger.info(
            f"Deactivated channel {subscription.id} for removed calendar {subscription.calendar_id}"
        )

    async def list_calendar_ids(self, client: GoogleCalendarClient) -> list[str]:
        """Ids of the account's calendars that support events watches."""
        return await client.list_calendar_ids()
