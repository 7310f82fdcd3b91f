"""Medal catalog route handler."""

from typing import List

from fastapi import APIRouter

from padpok.services import medal_service
from padpok.models.schemas import MedalDefinitionResponse

router = APIRouter()


@router.get("/api/medals", response_model=List[MedalDefinitionResponse])
async def get_medals():
    """List every medal that can be unlocked."""
    return medal_service.get_medal_catalog()
