"""Database module for calendar synchronization.

This module provides:
- SQLAlchemy async database connection
- User, linked account, and webhook subscription models
- Encrypted storage for OAuth tokens
"""

from calendar_sync.database.connection import (
    DatabaseSession,
    close_db,
    get_db,
    init_db,
)
from calendar_sync.database.models import (
    Base,
    LinkedAccount,
    User,
    WebhookSubscription,
)

__all__ = [
    # Connection
    "get_db",
    "init_db",
    "close_db",
    "DatabaseSession",
    # Models
    "Base",
    "User",
    "LinkedAccount",
    "WebhookSubscription",
]
