"""Error taxonomy for calendar synchronization.

Every expected failure is raised as a subclass of `CalendarSyncError` so
callers can branch on the type instead of parsing messages:

- `ProviderError`: a Google Calendar API call failed (network, 4xx, 5xx)
- `ValidationError`: a provider response did not match the event schema, or
  the caller asked for something invalid (e.g. scope "following" on a
  non-recurring event, a localhost webhook callback)
- `AuthError`: no usable access token for a linked account
- `RepositoryError`: the subscription store failed

Each error carries the name of the operation that failed.
"""

from __future__ import annotations

from typing import Any


def format_unknown_cause(cause: Any) -> str:
    """Extract a human-readable message from an arbitrary error cause."""
    if isinstance(cause, BaseException):
        message = str(cause).strip()
        return message or type(cause).__name__
    if isinstance(cause, str):
        return cause or "Unknown error"
    if cause is None:
        return "Unknown error"
    message = getattr(cause, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()
    return str(cause)


class CalendarSyncError(Exception):
    """Base exception for calendar synchronization errors."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class ProviderError(CalendarSyncError):
    """Raised when a call to the calendar provider fails."""

    def __init__(
        self,
        message: str,
        operation: str,
        provider: str = "google",
        status_code: int | None = None,
        reason: str | None = None,
    ):
        super().__init__(message, operation=operation)
        self.provider = provider
        self.status_code = status_code
        self.reason = reason

    @property
    def is_transient(self) -> bool:
        """Whether retrying the same request may succeed."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500

    def __str__(self) -> str:
        return f"{self.operation}: {self.message}"


class ValidationError(CalendarSyncError):
    """Raised for schema mismatches and invalid requests."""


class AuthError(CalendarSyncError):
    """Raised when no valid access token exists for a linked account."""

    def __init__(self, account_id: str, message: str, operation: str = "get-access-token"):
        super().__init__(message, operation=operation)
        self.account_id = account_id


class RepositoryError(CalendarSyncError):
    """Raised when the subscription store fails."""

    def __init__(self, operation: str, message: str):
        super().__init__(message, operation=operation)
