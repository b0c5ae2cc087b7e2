"""FastAPI dependencies for authentication.

## Usage

```python
from fastapi import Depends
from calendar_sync.auth import get_current_user
from calendar_sync.database import User

@router.post("/api/sync/refresh")
async def refresh(user: User = Depends(get_current_user)):
    ...
```
"""

from __future__ import annotations

import logging
import uuid

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from calendar_sync.auth.session import SessionData, verify_session_token
from calendar_sync.config import get_settings
from calendar_sync.database.connection import get_db_session
from calendar_sync.database.models import LinkedAccount, User

logger = logging.getLogger(__name__)


async def get_session_data(request: Request) -> SessionData | None:
    """Extract and verify session data from the session cookie.

    Returns None if no session or invalid session.
    """
    token = request.cookies.get(get_settings().session_cookie_name)
    if not token:
        return None
    return verify_session_token(token)


async def get_current_user(
    session: SessionData | None = Depends(get_session_data),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Get the current authenticated user.

    Raises 401 if not authenticated.
    """
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(
        select(User).where(User.id == session.user_id, User.is_active.is_(True))
    )
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning(f"Session for non-existent/inactive user: {session.user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_linked_account(
    account_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> LinkedAccount:
    """Resolve the `account_id` path parameter to one of the user's accounts.

    Raises 404 for unknown accounts and accounts of other users.
    """
    try:
        parsed = uuid.UUID(account_id)
    except ValueError:
        parsed = None

    account = None
    if parsed is not None:
        result = await db.execute(
            select(LinkedAccount).where(
                LinkedAccount.id == parsed,
                LinkedAccount.user_id == user.id,
            )
        )
        account = result.scalar_one_or_none()

    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Linked account not found",
        )

    return account
