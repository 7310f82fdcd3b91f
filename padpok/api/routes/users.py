"""User profile, stats, medal and history route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from padpok.api.routes import to_http_exception
from padpok.database.db import get_db_session
from padpok.services import medal_service, results_service, stats_service, user_service
from padpok.models.schemas import (
    CreateUserRequest,
    MatchHistoryEntryResponse,
    PlayerStatsResponse,
    UserMedalResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/users", response_model=UserResponse, status_code=201)
async def create_user(
    user_request: CreateUserRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a player.

    Request body:
        {"username": "lucia", "email": "lucia@example.com"}
    """
    try:
        user_id = await user_service.create_user(session, user_request.username, user_request.email)
        return await user_service.get_user_by_id(session, user_id)
    except Exception as e:
        raise to_http_exception(e, "creating user")


@router.get("/api/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, session: AsyncSession = Depends(get_db_session)):
    """Get a player's profile."""
    try:
        return await user_service.require_user(session, user_id)
    except Exception as e:
        raise to_http_exception(e, "fetching user")


@router.get("/api/users/{user_id}/stats", response_model=PlayerStatsResponse)
async def get_user_stats(user_id: int, session: AsyncSession = Depends(get_db_session)):
    """Get a player's points, wins, losses and streaks."""
    try:
        return await stats_service.get_player_stats(session, user_id)
    except Exception as e:
        raise to_http_exception(e, "fetching stats")


@router.get("/api/users/{user_id}/medals", response_model=List[UserMedalResponse])
async def get_user_medals(user_id: int, session: AsyncSession = Depends(get_db_session)):
    """Get the medal catalog with the player's progress."""
    try:
        await user_service.require_user(session, user_id)
        return await medal_service.get_user_medals(session, user_id)
    except Exception as e:
        raise to_http_exception(e, "fetching medals")


@router.get("/api/users/{user_id}/history", response_model=List[MatchHistoryEntryResponse])
async def get_user_history(
    user_id: int,
    limit: int = 50,
    session: AsyncSession = Depends(get_db_session),
):
    """Get a player's completed matches, newest first."""
    try:
        await user_service.require_user(session, user_id)
        return await results_service.get_user_match_history(session, user_id, limit=limit)
    except Exception as e:
        raise to_http_exception(e, "fetching match history")
