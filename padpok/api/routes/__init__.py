"""
API routes - combined router from all domain modules.

Shared infrastructure (error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import logging

from fastapi import APIRouter, HTTPException

from padpok.services.exceptions import (
    CapacityError,
    MembershipError,
    NotFoundError,
    StateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared error mapping
# ---------------------------------------------------------------------------
ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (CapacityError, 409),
    (MembershipError, 409),
    (StateError, 409),
]


def to_http_exception(error: Exception, action: str) -> HTTPException:
    """
    Map a service error to an HTTPException.

    Match engine errors keep their user-facing message; anything else is
    logged and reported as a 500.
    """
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    logger.error(f"Error {action}: {error}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Error {action}: {str(error)}")


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from padpok.api.routes.users import router as users_router  # noqa: E402
from padpok.api.routes.matches import router as matches_router  # noqa: E402
from padpok.api.routes.groups import router as groups_router  # noqa: E402
from padpok.api.routes.medals import router as medals_router  # noqa: E402
from padpok.api.routes.rankings import router as rankings_router  # noqa: E402
from padpok.api.routes.notifications import router as notifications_router  # noqa: E402
from padpok.api.routes.health import router as health_router  # noqa: E402

router = APIRouter()
router.include_router(users_router)
router.include_router(matches_router)
router.include_router(groups_router)
router.include_router(medals_router)
router.include_router(rankings_router)
router.include_router(notifications_router)
router.include_router(health_router)
