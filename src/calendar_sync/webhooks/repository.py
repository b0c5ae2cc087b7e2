"""Subscription repository.

Persistence for watch channels and the linked-account lookup the lifecycle
needs, on top of the async SQLAlchemy session factory. Every method opens
and commits its own session, so concurrent refreshes never share one.

All database failures surface as `RepositoryError` carrying the name of the
failed operation.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calendar_sync.database.models import LinkedAccount, WebhookSubscription
from calendar_sync.errors import RepositoryError, format_unknown_cause
from calendar_sync.webhooks.models import (
    LinkedAccountRef,
    Subscription,
    SubscriptionUpsert,
    as_utc,
)

logger = logging.getLogger(__name__)


def _uuid(value: str | uuid.UUID) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _to_record(row: WebhookSubscription) -> Subscription:
    return Subscription(
        id=row.id,
        user_id=str(row.user_id),
        account_id=str(row.account_id),
        provider=row.provider,
        provider_account_id=row.provider_account_id,
        config=row.config,
        active=row.active,
        expires_at=as_utc(row.expires_at),
        last_notified_at=as_utc(row.last_notified_at) if row.last_notified_at else None,
        webhook_token=row.webhook_token,
        updated_at=as_utc(row.updated_at) if row.updated_at else None,
    )


class SubscriptionRepository:
    """Reads and writes `webhook_subscriptions` and `linked_accounts`.

    Example:
        ```python
        repository = SubscriptionRepository(get_session_factory())
        subscription = await repository.find_active_by_id(channel_id)
        ```
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_accounts_by_provider(
        self,
        user_id: str,
        provider: str,
        account_id: str | None = None,
    ) -> list[LinkedAccountRef]:
        """List a user's linked accounts for a provider, optionally just one."""
        query = select(LinkedAccount.id, LinkedAccount.provider_account_id).where(
            LinkedAccount.user_id == _uuid(user_id),
            LinkedAccount.provider == provider,
        )
        if account_id:
            query = query.where(LinkedAccount.id == _uuid(account_id))

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).all()
        except (SQLAlchemyError, ValueError) as e:
            raise RepositoryError("get-accounts-by-provider", format_unknown_cause(e)) from e

        return [
            LinkedAccountRef(id=str(row.id), provider_account_id=row.provider_account_id)
            for row in rows
        ]

    async def list_for_user(
        self,
        user_id: str,
        provider: str | None = None,
    ) -> list[Subscription]:
        """List all subscriptions (active or not) of a user."""
        query = select(WebhookSubscription).where(WebhookSubscription.user_id == _uuid(user_id))
        if provider:
            query = query.where(WebhookSubscription.provider == provider)

        try:
            async with self._session_factory() as session:
                rows = (await session.scalars(query)).all()
        except (SQLAlchemyError, ValueError) as e:
            raise RepositoryError("list-subscriptions-for-user", format_unknown_cause(e)) from e

        return [_to_record(row) for row in rows]

    async def find_active_by_id(self, subscription_id: str) -> Subscription | None:
        """Active subscription with this channel id, or None."""
        query = select(WebhookSubscription).where(
            WebhookSubscription.id == subscription_id,
            WebhookSubscription.active.is_(True),
        )

        try:
            async with self._session_factory() as session:
                row = (await session.scalars(query.limit(1))).first()
        except SQLAlchemyError as e:
            raise RepositoryError("find-active-sub-by-id", format_unknown_cause(e)) from e

        return _to_record(row) if row is not None else None

    async def upsert(self, values: SubscriptionUpsert) -> None:
        """Insert a subscription, or update it in place when the id exists."""
        now = datetime.now(timezone.utc)
        config = values.config.model_dump(by_alias=True)
        columns = {
            "id": values.id,
            "user_id": _uuid(values.user_id),
            "account_id": _uuid(values.account_id),
            "provider": values.provider,
            "provider_account_id": values.provider_account_id,
            "config": config,
            "webhook_token": values.webhook_token,
            "active": values.active,
            "expires_at": as_utc(values.expires_at),
            "last_notified_at": values.last_notified_at,
            "created_at": now,
            "updated_at": now,
        }

        try:
            async with self._session_factory() as session:
                dialect = session.get_bind().dialect.name
                insert = postgresql_insert if dialect == "postgresql" else sqlite_insert
                statement = insert(WebhookSubscription).values(**columns)
                statement = statement.on_conflict_do_update(
                    index_elements=[WebhookSubscription.id],
                    set_={
                        "active": values.active,
                        "config": config,
                        "expires_at": as_utc(values.expires_at),
                        "last_notified_at": values.last_notified_at,
                        "provider_account_id": values.provider_account_id,
                        "updated_at": now,
                        "webhook_token": values.webhook_token,
                    },
                )
                await session.execute(statement)
                await session.commit()
        except (SQLAlchemyError, ValueError) as e:
            raise RepositoryError("upsert-sub", format_unknown_cause(e)) from e

        logger.debug(f"Upserted subscription {values.id} ({config['type']})")

    async def deactivate_by_id(self, subscription_id: str) -> None:
        """Mark a subscription inactive; rows are never deleted."""
        await self._update(
            "deactivate-sub-by-id",
            subscription_id,
            active=False,
            updated_at=datetime.now(timezone.utc),
        )

    async def touch_last_notified(self, subscription_id: str, now: datetime) -> None:
        """Record that a notification arrived on this channel."""
        await self._update("touch-sub-by-id", subscription_id, last_notified_at=as_utc(now))

    async def _update(self, operation: str, subscription_id: str, **values) -> None:
        statement = (
            update(WebhookSubscription)
            .where(WebhookSubscription.id == subscription_id)
            .values(**values)
        )
        try:
            async with self._session_factory() as session:
                await session.execute(statement)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryError(operation, format_unknown_cause(e)) from e
