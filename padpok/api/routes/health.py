"""Health check route handler."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from padpok.database.db import get_db_session

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/health")
async def health_check(session: AsyncSession = Depends(get_db_session)):
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "healthy", "message": "API is running"}
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return {"status": "unhealthy", "message": f"Error: {str(e)}"}
