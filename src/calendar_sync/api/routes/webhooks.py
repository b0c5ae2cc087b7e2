"""Inbound push notification routes.

Google expects a fast 2xx. Anything else makes it redeliver, so only
rejected pushes (bad headers or token) get a 4xx. Unknown and stale
channels are acknowledged, and so are pushes the store failed to process.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse

from calendar_sync.api.dependencies import get_webhook_service
from calendar_sync.errors import format_unknown_cause
from calendar_sync.webhooks.service import (
    FollowUpRefresh,
    NotificationOutcome,
    WebhookService,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def run_follow_up_refresh(service: WebhookService, follow_up: FollowUpRefresh) -> None:
    """Refresh an account's channels after its calendar list changed."""
    try:
        await service.refresh_all(follow_up.user_id, follow_up.account_id)
    except Exception as e:
        logger.warning(
            f"Follow-up webhook refresh failed for account {follow_up.account_id}: "
            f"{format_unknown_cause(e)}"
        )


@router.post("/google-calendar")
async def google_calendar_notification(
    request: Request,
    background_tasks: BackgroundTasks,
    service: WebhookService = Depends(get_webhook_service),
) -> JSONResponse:
    """Receive a Google Calendar push notification."""
    result = await service.handle_google_notification(request.headers)

    if result.outcome is NotificationOutcome.REJECTED:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": result.message},
        )

    if result.outcome in (NotificationOutcome.UNKNOWN_CHANNEL, NotificationOutcome.UNAVAILABLE):
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"status": result.outcome.value},
        )

    if result.follow_up_refresh is not None:
        background_tasks.add_task(run_follow_up_refresh, service, result.follow_up_refresh)

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": result.outcome.value},
    )
