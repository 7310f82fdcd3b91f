"""Rankings route handler."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from padpok.api.routes import to_http_exception
from padpok.database.db import get_db_session
from padpok.services import stats_service
from padpok.models.schemas import RankingEntryResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/rankings", response_model=List[RankingEntryResponse])
async def get_rankings(
    sort_by: str = "points",
    limit: int = 50,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Rank players.

    Query params:
        sort_by: points | matches_played | wins
        limit: maximum number of rows
    """
    try:
        return await stats_service.get_rankings(session, sort_by=sort_by, limit=limit)
    except Exception as e:
        raise to_http_exception(e, "fetching rankings")
