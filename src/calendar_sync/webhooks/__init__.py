"""Webhook subscription lifecycle for Google Calendar push notifications.

## Flow

1. `WebhookService.refresh_all` makes sure every linked account has a fresh
   calendar-list channel and one events channel per visible calendar
2. Google posts to `/api/webhooks/google-calendar` when something changes
3. `WebhookService.handle_google_notification` validates the push, resolves
   its subscription and publishes a realtime event to the user
4. Calendar-list changes schedule another refresh for the account
"""

from calendar_sync.webhooks.google_calendar import GoogleCalendarWebhookManager
from calendar_sync.webhooks.models import (
    CalendarEventsConfig,
    CalendarListConfig,
    LinkedAccountRef,
    Subscription,
    SubscriptionUpsert,
)
from calendar_sync.webhooks.repository import SubscriptionRepository
from calendar_sync.webhooks.service import (
    FollowUpRefresh,
    NotificationOutcome,
    NotificationResult,
    WebhookService,
)

__all__ = [
    "GoogleCalendarWebhookManager",
    "CalendarEventsConfig",
    "CalendarListConfig",
    "LinkedAccountRef",
    "Subscription",
    "SubscriptionUpsert",
    "SubscriptionRepository",
    "FollowUpRefresh",
    "NotificationOutcome",
    "NotificationResult",
    "WebhookService",
]
