"""Match lifecycle route handlers: create, list, join, leave, score."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from padpok.api.auth_dependencies import require_user
from padpok.api.routes import to_http_exception
from padpok.database.db import get_db_session
from padpok.services import match_service
from padpok.models.schemas import (
    CreateMatchRequest,
    JoinMatchRequest,
    MatchResponse,
    SubmitScoreRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/matches", response_model=MatchResponse, status_code=201)
async def create_match(
    match_request: CreateMatchRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a new match. The current user is seated in team1, first position.

    Request body:
        {
            "title": "Friday doubles",
            "location": "Club Norte, court 3",
            "scheduled_at": "2026-05-08T19:00:00+02:00",
            "players_needed": 4,        // Optional, 2-4
            "level": "Intermediate",    // Optional
            "age_range": "18-35",       // Optional
            "description": "Bring balls", // Optional
            "group_id": 3               // Optional, group match
        }
    """
    try:
        return await match_service.create_match(
            session,
            creator_id=user["id"],
            title=match_request.title,
            location=match_request.location,
            scheduled_at=match_request.scheduled_at,
            players_needed=match_request.players_needed,
            level=match_request.level,
            age_range=match_request.age_range,
            description=match_request.description,
            group_id=match_request.group_id,
        )
    except Exception as e:
        raise to_http_exception(e, "creating match")


@router.get("/api/matches", response_model=List[MatchResponse])
async def list_matches(
    status: Optional[str] = None,
    mine: bool = False,
    group_id: Optional[int] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List matches by start time.

    Query params:
        status: open | full | cancelled | completed
        mine: only matches the current user created or plays in
        group_id: only matches of this group
    """
    try:
        return await match_service.list_matches(
            session, status=status, user_id=user["id"] if mine else None, group_id=group_id
        )
    except Exception as e:
        raise to_http_exception(e, "listing matches")


@router.get("/api/matches/{match_id}", response_model=MatchResponse)
async def get_match(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a single match."""
    try:
        return await match_service.get_match(session, match_id)
    except Exception as e:
        raise to_http_exception(e, "fetching match")


@router.post("/api/matches/{match_id}/join", response_model=MatchResponse)
async def join_match(
    match_id: int,
    join_request: JoinMatchRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Join a team.

    Request body:
        {"team": "team2", "position": "first"}  // position optional
    """
    try:
        return await match_service.join_match(
            session, match_id, user["id"], join_request.team, join_request.position
        )
    except Exception as e:
        raise to_http_exception(e, "joining match")


@router.post("/api/matches/{match_id}/leave", response_model=MatchResponse)
async def leave_match(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a match."""
    try:
        return await match_service.leave_match(session, match_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "leaving match")


@router.post("/api/matches/{match_id}/score", response_model=MatchResponse)
async def submit_score(
    match_id: int,
    score_request: SubmitScoreRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Add the result of a match. Completes the match.

    Request body:
        {
            "set1": {"team1": 6, "team2": 4},
            "set2": {"team1": 3, "team2": 6},
            "set3": {"team1": 7, "team2": 6},  // Optional
            "winner": "team1"                  // Optional
        }
    """
    try:
        return await match_service.submit_score(
            session, match_id, user["id"], score_request.to_score()
        )
    except Exception as e:
        raise to_http_exception(e, "adding result")


@router.post("/api/matches/{match_id}/score/confirm", response_model=MatchResponse)
async def confirm_score(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Confirm the stored result of a match."""
    try:
        return await match_service.confirm_score(session, match_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "confirming result")
