"""Authentication and linked-account tokens.

- Session cookies (signed JWT) identify the API caller
- Linked Google accounts keep encrypted OAuth tokens; the token provider
  hands out valid access tokens and refreshes expired ones
"""

from calendar_sync.auth.dependencies import get_current_user, get_linked_account
from calendar_sync.auth.google import GoogleOAuth, GoogleTokens
from calendar_sync.auth.session import SessionData, create_session_token, verify_session_token
from calendar_sync.auth.tokens import DatabaseTokenProvider

__all__ = [
    "get_current_user",
    "get_linked_account",
    "GoogleOAuth",
    "GoogleTokens",
    "SessionData",
    "create_session_token",
    "verify_session_token",
    "DatabaseTokenProvider",
]
