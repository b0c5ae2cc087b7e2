"""Mapping of service errors to HTTP responses.

| Error           | Status |
|-----------------|--------|
| ValidationError | 422    |
| AuthError       | 401    |
| ProviderError   | 404 when the provider says not found, else 502 |
| RepositoryError | 503    |
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from calendar_sync.errors import (
    AuthError,
    CalendarSyncError,
    ProviderError,
    RepositoryError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def status_for_error(error: CalendarSyncError) -> int:
    if isinstance(error, ValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(error, AuthError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(error, ProviderError):
        if error.status_code in (404, 410):
            return status.HTTP_404_NOT_FOUND
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, RepositoryError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def calendar_sync_error_handler(request: Request, exc: CalendarSyncError) -> JSONResponse:
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "operation": exc.operation,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CalendarSyncError, calendar_sync_error_handler)
