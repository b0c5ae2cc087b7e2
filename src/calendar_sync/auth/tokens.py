"""Access tokens for linked accounts.

`DatabaseTokenProvider.get_access_token` is the capability the webhook and
calendar services consume: give it an account and its user, get back a
usable access token or an `AuthError`.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calendar_sync.auth.google import GoogleOAuth
from calendar_sync.database.encryption import TokenCipher
from calendar_sync.database.models import LinkedAccount
from calendar_sync.errors import AuthError, RepositoryError, format_unknown_cause
from calendar_sync.webhooks.models import GOOGLE_PROVIDER

logger = logging.getLogger(__name__)

# Refresh slightly early so a token never expires mid-request
EXPIRY_MARGIN = timedelta(minutes=1)


class DatabaseTokenProvider:
    """Reads linked-account tokens and refreshes them when expired."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        oauth: GoogleOAuth,
        cipher: TokenCipher,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory
        self.oauth = oauth
        self.cipher = cipher
        self._now = now

    def _is_expired(self, expires_at: datetime | None) -> bool:
        if expires_at is None:
            return False
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= self._now() + EXPIRY_MARGIN

    async def get_access_token(self, account_id: str, user_id: str) -> str:
        """Return a valid access token for a linked Google account.

        Raises:
            AuthError: Unknown account, undecryptable or revoked tokens
            RepositoryError: The account could not be read or updated
        """
        try:
            query = select(LinkedAccount).where(
                LinkedAccount.id == uuid.UUID(str(account_id)),
                LinkedAccount.user_id == uuid.UUID(str(user_id)),
                LinkedAccount.provider == GOOGLE_PROVIDER,
            )
        except ValueError as e:
            raise AuthError(account_id, "Invalid account or user id") from e

        try:
            async with self._session_factory() as session:
                account = (await session.scalars(query)).first()
                if account is None:
                    raise AuthError(account_id, "Linked account not found")

                try:
                    access_token = self.cipher.decrypt(account.access_token_encrypted)
                    refresh_token = self.cipher.decrypt(account.refresh_token_encrypted)
                except ValueError as e:
                    raise AuthError(account_id, "Stored tokens could not be decrypted") from e

                if access_token and not self._is_expired(account.expires_at):
                    return access_token

                if not refresh_token:
                    raise AuthError(account_id, "No access token available")

                logger.info(f"Refreshing access token for account {account_id}")
                tokens = await self.oauth.refresh_access_token(account_id, refresh_token)

                account.access_token_encrypted = self.cipher.encrypt(tokens.access_token)
                if tokens.refresh_token:
                    account.refresh_token_encrypted = self.cipher.encrypt(tokens.refresh_token)
                account.expires_at = tokens.expires_at
                if tokens.scope:
                    account.scope = tokens.scope
                await session.commit()

                return tokens.access_token
        except SQLAlchemyError as e:
            raise RepositoryError("get-access-token", format_unknown_cause(e)) from e
