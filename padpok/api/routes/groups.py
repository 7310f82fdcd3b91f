"""Group route handlers: create, browse, membership and group ranking."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from padpok.api.auth_dependencies import require_user
from padpok.api.routes import to_http_exception
from padpok.database.db import get_db_session
from padpok.services import group_service
from padpok.models.schemas import (
    CreateGroupRequest,
    GroupRankingEntryResponse,
    GroupResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/groups", response_model=GroupResponse, status_code=201)
async def create_group(
    group_request: CreateGroupRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a group. The current user becomes its admin.

    Request body:
        {"name": "Tuesday crew", "description": "Club Norte", "is_private": false}
    """
    try:
        return await group_service.create_group(
            session,
            admin_id=user["id"],
            name=group_request.name,
            description=group_request.description,
            is_private=group_request.is_private,
        )
    except Exception as e:
        raise to_http_exception(e, "creating group")


@router.get("/api/groups", response_model=List[GroupResponse])
async def list_groups(
    mine: bool = False,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List groups.

    Query params:
        mine: the current user's groups instead of every public group
    """
    try:
        return await group_service.list_groups(session, member_id=user["id"] if mine else None)
    except Exception as e:
        raise to_http_exception(e, "listing groups")


@router.get("/api/groups/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a group with its members."""
    try:
        return await group_service.get_group(session, group_id)
    except Exception as e:
        raise to_http_exception(e, "fetching group")


@router.post("/api/groups/{group_id}/join", response_model=GroupResponse)
async def join_group(
    group_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a public group."""
    try:
        return await group_service.join_group(session, group_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "joining group")


@router.post("/api/groups/{group_id}/leave", response_model=GroupResponse)
async def leave_group(
    group_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a group."""
    try:
        return await group_service.leave_group(session, group_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "leaving group")


@router.delete("/api/groups/{group_id}")
async def delete_group(
    group_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a group (admin only)."""
    try:
        await group_service.delete_group(session, group_id, user["id"])
        return {"success": True}
    except Exception as e:
        raise to_http_exception(e, "deleting group")


@router.get("/api/groups/{group_id}/ranking", response_model=List[GroupRankingEntryResponse])
async def get_group_ranking(
    group_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Rank the group's members by their group matches."""
    try:
        return await group_service.get_group_ranking(session, group_id)
    except Exception as e:
        raise to_http_exception(e, "fetching group ranking")
