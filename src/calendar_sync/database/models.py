"""Database models for calendar synchronization.

## Security Notes

- OAuth tokens of linked accounts are encrypted at rest (Fernet)
- The encryption key is derived from the application secret
- Webhook tokens are shared secrets; treat the table as sensitive

## Schema Overview

```
users
├── linked_accounts (1:N) - encrypted tokens, one per Google account
└── webhook_subscriptions (1:N) - one row per watch channel
```

Subscription rows are never deleted by the service; stale channels are
marked inactive.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""

    type_annotation_map = {
        dict[str, Any]: JSON().with_variant(JSONB(), "postgresql"),
    }


class User(Base):
    """Application user.

    A user can link several Google accounts; each gets its own
    `LinkedAccount` row and its own set of watch channels.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    picture_url: Mapped[str | None] = mapped_column(String(512))

    # Account status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    linked_accounts: Mapped[list["LinkedAccount"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    webhook_subscriptions: Mapped[list["WebhookSubscription"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class LinkedAccount(Base):
    """A provider account linked to a user, with its OAuth tokens.

    Tokens are encrypted at rest. Encryption happens in the token provider,
    not at the database level, to allow for key rotation.
    """

    __tablename__ = "linked_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # Provider identification
    provider: Mapped[str] = mapped_column(String(32), nullable=False)  # google
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))

    # Tokens (encrypted)
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text)
    scope: Mapped[str | None] = mapped_column(Text)  # Space-separated scopes
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="linked_accounts")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "provider", "provider_account_id", name="uq_user_provider_account"
        ),
        Index("ix_linked_accounts_user_provider", "user_id", "provider"),
    )

    def __repr__(self) -> str:
        return f"<LinkedAccount provider={self.provider} account={self.provider_account_id}>"


class WebhookSubscription(Base):
    """A provider watch channel.

    The primary key is the channel id sent to Google, so renewing a channel
    under the same id updates the row in place.

    `config` is a tagged union:
    - {"type": "calendar-list", "resourceId": ...}
    - {"type": "calendar-events", "calendarId": ..., "resourceId": ...}
    """

    __tablename__ = "webhook_subscriptions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("linked_accounts.id", ondelete="CASCADE"), nullable=False
    )
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="google")
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)

    config: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    webhook_token: Mapped[str | None] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="webhook_subscriptions")

    __table_args__ = (
        Index("ix_webhook_subscriptions_user_provider", "user_id", "provider"),
        Index("ix_webhook_subscriptions_account", "account_id"),
    )

    def __repr__(self) -> str:
        return f"<WebhookSubscription {self.id} active={self.active}>"
