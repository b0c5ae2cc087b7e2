"""FastAPI application factory.

Creates and configures the FastAPI application with all routes and middleware.

## Usage

```python
from calendar_sync.api import create_app

app = create_app()

# Run with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
```

## Configuration

The app is configured via environment variables. See `calendar_sync.config`
for available settings.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from calendar_sync.api.errors import register_exception_handlers
from calendar_sync.auth.google import GoogleOAuth
from calendar_sync.auth.tokens import DatabaseTokenProvider
from calendar_sync.config import Settings, get_settings
from calendar_sync.database.connection import close_db, get_session_factory, init_db
from calendar_sync.database.encryption import get_token_cipher
from calendar_sync.realtime.publisher import RealtimePublisher
from calendar_sync.webhooks.google_calendar import GoogleCalendarWebhookManager
from calendar_sync.webhooks.repository import SubscriptionRepository
from calendar_sync.webhooks.service import WebhookService

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings) -> None:
    """Wire the shared services onto `app.state`.

    Requires an initialized database.
    """
    session_factory = get_session_factory()
    webhook_settings = settings.webhook_settings()

    repository = SubscriptionRepository(session_factory)
    token_provider = DatabaseTokenProvider(
        session_factory,
        GoogleOAuth(settings.google_client_id, settings.google_client_secret),
        get_token_cipher(),
    )
    publisher = RealtimePublisher.from_url(settings.redis_url)

    app.state.token_provider = token_provider
    app.state.publisher = publisher
    app.state.webhook_service = WebhookService(
        repository=repository,
        manager=GoogleCalendarWebhookManager(repository, webhook_settings),
        get_access_token=token_provider.get_access_token,
        publisher=publisher,
        settings=webhook_settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown tasks:
    - Initialize database connection and services
    - Flush pending realtime publishes on shutdown
    """
    settings = get_settings()

    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    await init_db()
    build_services(app, settings)

    if not settings.webhook_base_url:
        logger.warning("WEBHOOK_BASE_URL is not set; webhook refreshes will be rejected")

    yield

    logger.info("Shutting down")
    await app.state.publisher.close()
    await app.state.token_provider.oauth.aclose()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Recurring-event mutations and push notification sync for Google Calendar",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    from calendar_sync.api.routes import events, sync, webhooks

    app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])
    app.include_router(events.router, prefix="/api/calendars", tags=["Calendars"])
    app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    return app
