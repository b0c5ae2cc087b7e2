"""Webhook refresh routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel

from calendar_sync.api.dependencies import get_webhook_service
from calendar_sync.auth.dependencies import get_current_user
from calendar_sync.database.models import User
from calendar_sync.errors import format_unknown_cause
from calendar_sync.webhooks.google_calendar import validate_callback_url
from calendar_sync.webhooks.service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter()


class RefreshRequest(BaseModel):
    """Refresh watch channels for one linked account, or all of them."""

    account_id: str | None = None


class RefreshResponse(BaseModel):
    status: str
    account_id: str | None = None


async def run_refresh(service: WebhookService, user_id: str, account_id: str | None) -> None:
    try:
        await service.refresh_all(user_id, account_id)
    except Exception as e:
        logger.warning(f"Webhook refresh failed for user {user_id}: {format_unknown_cause(e)}")


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def refresh_webhooks(
    background_tasks: BackgroundTasks,
    body: RefreshRequest | None = None,
    user: User = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service),
) -> RefreshResponse:
    """Schedule a refresh of the current user's watch channels."""
    # Fail the request, not the background task, on a bad callback URL
    validate_callback_url(service.settings.callback_url)

    account_id = body.account_id if body else None
    background_tasks.add_task(run_refresh, service, str(user.id), account_id)
    return RefreshResponse(status="scheduled", account_id=account_id)
