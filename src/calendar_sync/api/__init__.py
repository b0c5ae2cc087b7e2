"""FastAPI application and routes.

## API Structure

- /api/webhooks/google-calendar - Google push notification receiver
- /api/calendars/{account_id}/... - Calendar and event access, scoped mutations
- /api/sync/refresh - Refresh watch channels for the current user
- /health - Health check

## Authentication

All endpoints except the webhook receiver and the health check require the
session cookie. The webhook receiver authenticates pushes with the shared
channel token instead.
"""

from calendar_sync.api.app import create_app

__all__ = ["create_app"]
