"""Session tokens shared with the main application.

The main application signs users in and sets a signed JWT session cookie;
this service verifies the same cookie to identify the caller of its API.

## Token Structure

```json
{
  "sub": "user-uuid",
  "iat": 1234567890,
  "exp": 1235172690,
  "type": "session"
}
```
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from calendar_sync.config import get_settings

logger = logging.getLogger(__name__)

# JWT configuration
ALGORITHM = "HS256"
TOKEN_TYPE = "session"


@dataclass
class SessionData:
    """Data stored in the session token."""

    user_id: uuid.UUID
    created_at: datetime
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) > self.expires_at


def create_session_token(
    user_id: uuid.UUID,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session token for a user.

    Used by the CLI and tests; production tokens come from the main
    application, signed with the same secret.
    """
    settings = get_settings()

    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.session_max_age_seconds)

    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "type": TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def verify_session_token(token: str) -> SessionData | None:
    """Verify and decode a session token.

    Returns:
        SessionData if valid, None if invalid or expired
    """
    settings = get_settings()

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.debug(f"Session token verification failed: {e}")
        return None

    if payload.get("type") != TOKEN_TYPE:
        logger.debug("Invalid token type")
        return None

    try:
        session = SessionData(
            user_id=uuid.UUID(payload["sub"]),
            created_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, ValueError, TypeError) as e:
        logger.debug(f"Invalid token payload: {e}")
        return None

    if session.is_expired:
        logger.debug("Session token expired")
        return None

    return session
