"""
Padpok Match API Server

FastAPI server for organizing doubles matches, recording results and
serving stats, medals and rankings.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn

from padpok.api.routes import router
from padpok.database import db
from padpok.services.match_sweep_service import SWEEP_ENABLED, get_match_sweep_service

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up Padpok Match API...")

    # Fallback for local development; production schemas come from alembic
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    # Start match sweep worker (cancellations, result reminders, pending results)
    if SWEEP_ENABLED:
        try:
            get_match_sweep_service().start()
        except Exception as e:
            logger.error(f"Failed to start match sweep worker: {e}", exc_info=True)
    else:
        logger.info("Match sweep worker disabled (MATCH_SWEEP_ENABLED=false)")

    yield  # App is running

    logger.info("Shutting down Padpok Match API...")

    try:
        get_match_sweep_service().stop()
    except Exception as e:
        logger.error(f"Error stopping match sweep worker: {e}", exc_info=True)


app = FastAPI(
    title="Padpok Match API",
    description="API for padel match organization, results, medals and rankings",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:8081").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
