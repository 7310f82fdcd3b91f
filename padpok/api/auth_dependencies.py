"""
Identity dependencies for FastAPI routes.

Authentication happens upstream (gateway or mobile backend); requests reach
this API with the authenticated user's id in the X-User-Id header.
"""

from fastapi import Depends, Header, HTTPException, status
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from padpok.services import user_service
from padpok.database.db import get_db_session


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    x_user_id: Optional[str] = Header(default=None),
) -> dict:
    """
    Dependency to get the current user from the X-User-Id header.

    Returns:
        User dictionary

    Raises:
        HTTPException: 401 if the header is missing, malformed or names no user
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any identified user."""
    return user
