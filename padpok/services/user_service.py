"""
User service layer for player profile records.
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from padpok.database.models import User
from padpok.services.exceptions import NotFoundError, ValidationError
from padpok.utils.datetime_utils import isoformat_or_none
import logging

logger = logging.getLogger(__name__)

MAX_USERNAME_LENGTH = 50


async def create_user(session: AsyncSession, username: str, email: Optional[str] = None) -> int:
    """
    Create a new player.

    Args:
        session: Database session
        username: Unique display name (compared case-insensitively)
        email: Optional user email

    Returns:
        User ID of the created user

    Raises:
        ValidationError: If the username is empty, too long or already taken
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required")
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValidationError(f"Username must be at most {MAX_USERNAME_LENGTH} characters")

    result = await session.execute(
        select(User.id).where(func.lower(User.username) == username.lower())
    )
    if result.scalar_one_or_none():
        raise ValidationError(f"Username {username} is already taken")

    new_user = User(username=username, email=email.strip() if email else None)
    session.add(new_user)
    await session.flush()
    user_id = new_user.id
    await session.commit()

    logger.info(f"Created user {user_id} ({username})")
    return user_id


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def require_user(session: AsyncSession, user_id: int) -> Dict:
    """Like get_user_by_id, but raises NotFoundError for unknown ids."""
    user = await get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "created_at": isoformat_or_none(user.created_at),
    }
