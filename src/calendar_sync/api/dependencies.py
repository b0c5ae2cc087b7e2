"""FastAPI dependencies for the service objects built at startup.

The lifespan handler stores shared services on `app.state`; routes reach
them through these dependencies so tests can swap any of them with
`app.dependency_overrides`.
"""

from __future__ import annotations

from fastapi import Depends, Request

from calendar_sync.auth.dependencies import get_linked_account
from calendar_sync.auth.tokens import DatabaseTokenProvider
from calendar_sync.calendar.google_calendar import GoogleCalendarClient
from calendar_sync.calendar.mutations import RecurrenceMutationEngine
from calendar_sync.database.models import LinkedAccount
from calendar_sync.webhooks.service import WebhookService


def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service


def get_token_provider(request: Request) -> DatabaseTokenProvider:
    return request.app.state.token_provider


async def get_calendar_client(
    account: LinkedAccount = Depends(get_linked_account),
    tokens: DatabaseTokenProvider = Depends(get_token_provider),
) -> GoogleCalendarClient:
    """Provider client authenticated as the linked account in the path."""
    access_token = await tokens.get_access_token(str(account.id), str(account.user_id))
    return GoogleCalendarClient(access_token)


def get_mutation_engine(
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> RecurrenceMutationEngine:
    return RecurrenceMutationEngine(client)
