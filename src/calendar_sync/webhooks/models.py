"""Webhook subscription records.

Rows of `webhook_subscriptions` are handed around as pydantic models so the
lifecycle code never touches ORM objects (or their session) directly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

GOOGLE_PROVIDER = "google"

# Channel lifetime requested from Google, and how long before expiry we renew
GOOGLE_CHANNEL_TTL = timedelta(days=28)
GOOGLE_RENEWAL_BUFFER = timedelta(hours=12)

CALENDAR_LIST_CONFIG = "calendar-list"
CALENDAR_EVENTS_CONFIG = "calendar-events"


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CalendarListConfig(_Record):
    """Watch on the account's calendar list."""

    type: Literal["calendar-list"] = CALENDAR_LIST_CONFIG
    resource_id: str = Field(alias="resourceId")


class CalendarEventsConfig(_Record):
    """Watch on the events of one calendar."""

    type: Literal["calendar-events"] = CALENDAR_EVENTS_CONFIG
    calendar_id: str = Field(alias="calendarId")
    resource_id: str = Field(alias="resourceId")


SubscriptionConfig = Annotated[
    Union[CalendarListConfig, CalendarEventsConfig],
    Field(discriminator="type"),
]


class LinkedAccountRef(_Record):
    """A linked provider account, as needed to set up its watches."""

    id: str  # internal account id
    provider_account_id: str  # e.g. the Google account id


class Subscription(_Record):
    """A persisted watch channel."""

    id: str  # provider channel id
    user_id: str
    account_id: str
    provider: str = GOOGLE_PROVIDER
    provider_account_id: str
    config: SubscriptionConfig
    active: bool = True
    expires_at: datetime
    last_notified_at: datetime | None = None
    webhook_token: str | None = None
    updated_at: datetime | None = None

    @property
    def is_calendar_list(self) -> bool:
        return isinstance(self.config, CalendarListConfig)

    @property
    def is_calendar_events(self) -> bool:
        return isinstance(self.config, CalendarEventsConfig)

    @property
    def calendar_id(self) -> str | None:
        if isinstance(self.config, CalendarEventsConfig):
            return self.config.calendar_id
        return None

    def is_fresh(self, now: datetime, renewal_buffer: timedelta = GOOGLE_RENEWAL_BUFFER) -> bool:
        """Active and not expiring within the renewal buffer."""
        return self.active and as_utc(self.expires_at) > now + renewal_buffer


class SubscriptionUpsert(_Record):
    """Values written by an upsert; conflicts on `id` update in place."""

    id: str
    user_id: str
    account_id: str
    provider: str = GOOGLE_PROVIDER
    provider_account_id: str
    config: SubscriptionConfig
    expires_at: datetime
    webhook_token: str | None = None
    active: bool = True
    last_notified_at: datetime | None = None


def as_utc(value: datetime) -> datetime:
    """Timezone-aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def pick_most_recent(current: Subscription | None, candidate: Subscription) -> Subscription:
    """Keep the most recently updated of two duplicate subscriptions.

    Ties go to the candidate. Rows without `updated_at` sort first.
    """
    if current is None:
        return candidate

    epoch = datetime.fromtimestamp(0, tz=timezone.utc)
    current_updated = as_utc(current.updated_at) if current.updated_at else epoch
    candidate_updated = as_utc(candidate.updated_at) if candidate.updated_at else epoch
    return candidate if candidate_updated >= current_updated else current
