"""Google OAuth token refresh and user profile lookup.

Linked accounts are created by the sign-in flow of the main application;
this service only keeps their access tokens usable.

## OAuth Endpoints

- Token: https://oauth2.googleapis.com/token
- User Info: https://www.googleapis.com/oauth2/v2/userinfo
- Revoke: https://oauth2.googleapis.com/revoke
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from calendar_sync.calendar.schema import UserProfile, decode_user_profile
from calendar_sync.config import get_settings
from calendar_sync.errors import AuthError, ProviderError

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


@dataclass
class GoogleTokens:
    """OAuth tokens from Google."""

    access_token: str
    refresh_token: str | None
    token_type: str
    expires_at: datetime | None
    scope: str


class GoogleOAuth:
    """Google OAuth 2.0 client for token refresh and profile lookup.

    Example:
        ```python
        oauth = GoogleOAuth()
        tokens = await oauth.refresh_access_token(account_id, refresh_token)
        profile = await oauth.get_user_info(tokens.access_token)
        ```
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        """Initialize Google OAuth client.

        Args:
            client_id: Google OAuth client ID (or from settings)
            client_secret: Google OAuth client secret (or from settings)
            http_client: Shared HTTP client (tests pass a mock transport)
            timeout: Request timeout in seconds
        """
        settings = get_settings()

        self.client_id = client_id or settings.google_client_id
        self.client_secret = client_secret or settings.google_client_secret
        self.timeout = timeout
        self._http_client = http_client

        if not self.is_configured:
            logger.warning(
                "Google OAuth not configured. Set GOOGLE_CLIENT_ID and "
                "GOOGLE_CLIENT_SECRET environment variables."
            )

    @property
    def is_configured(self) -> bool:
        """Check if Google OAuth is properly configured."""
        return bool(self.client_id and self.client_secret)

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def _post_token(self, data: dict[str, str]) -> httpx.Response:
        return await self._client().post(GOOGLE_TOKEN_URL, data=data)

    async def refresh_access_token(self, account_id: str, refresh_token: str) -> GoogleTokens:
        """Refresh an expired access token.

        Args:
            account_id: Linked account the token belongs to (for errors)
            refresh_token: The refresh token

        Returns:
            New GoogleTokens (refresh_token may be the same)

        Raises:
            AuthError: If Google refuses the refresh (revoked, expired)
        """
        if not self.is_configured:
            raise AuthError(account_id, "Google OAuth not configured", operation="refresh-token")

        try:
            response = await self._post_token(
                {
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                }
            )
        except httpx.HTTPError as e:
            raise AuthError(account_id, f"Token refresh failed: {e}", operation="refresh-token") from e

        if response.status_code != 200:
            logger.error(f"Token refresh failed for account {account_id}: {response.text}")
            raise AuthError(
                account_id,
                f"Token refresh failed: {response.status_code}",
                operation="refresh-token",
            )

        data = response.json()

        expires_at = None
        if "expires_in" in data:
            expires_at = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(
                seconds=data["expires_in"]
            )

        return GoogleTokens(
            access_token=data["access_token"],
            # Google may not return a new refresh token
            refresh_token=data.get("refresh_token", refresh_token),
            token_type=data.get("token_type", "Bearer"),
            expires_at=expires_at,
            scope=data.get("scope", ""),
        )

    async def get_user_info(self, access_token: str) -> UserProfile:
        """Get the profile of the Google account owning a token.

        Raises:
            ProviderError: If the request fails
            ValidationError: If the response is not a user profile
        """
        try:
            response = await self._client().get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Network error: {e}", operation="google-account-info") from e

        if response.status_code != 200:
            logger.error(f"User info request failed: {response.text}")
            raise ProviderError(
                f"User info request failed: {response.status_code}",
                operation="google-account-info",
                status_code=response.status_code,
            )

        return decode_user_profile(response.json(), "google-account-info")

