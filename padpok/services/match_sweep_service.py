"""
Match sweep service: proactive lifecycle maintenance.

Cancellation is already applied lazily on every read; this worker runs the
same transitions on a timer so creators hear about a cancelled match even
if nobody opens it. Each pass:
  1. cancels under-filled matches inside the 24h window (notifying creators),
  2. reminds players of started, unscored matches to add the result,
  3. re-applies completed matches whose per-player credit did not finish.
"""

import asyncio
import logging
import os
from typing import Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from padpok.database import db
from padpok.services import match_service
from padpok.utils.datetime_utils import Clock, utcnow

logger = logging.getLogger(__name__)

# How often the worker sweeps (seconds)
POLL_INTERVAL_SECONDS = int(os.getenv("MATCH_SWEEP_INTERVAL_SECONDS", "300"))

SWEEP_ENABLED = os.getenv("MATCH_SWEEP_ENABLED", "true").lower() == "true"


class MatchSweepService:
    """Background service that keeps match state current without a reader."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        clock: Clock = utcnow,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._interval_seconds = interval_seconds
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def start(self) -> None:
        """Start the background sweep worker."""
        if not self.running:
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info(f"Match sweep worker started (every {self._interval_seconds}s)")

    def stop(self) -> None:
        """Stop the background sweep worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Match sweep worker stopped")

    async def _poll_loop(self) -> None:
        """Main loop: sweep, then wait. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in match sweep worker: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> Dict[str, int]:
        """
        Run a single sweep pass.

        Returns:
            Counts: 'cancelled', 'reminded', 'results_applied'
        """
        session_factory = self._session_factory or db.AsyncSessionLocal
        async with session_factory() as session:
            cancelled = await match_service.reconcile_matches(session, clock=self._clock)
            reminded = await match_service.send_result_reminders(session, clock=self._clock)
            applied = await match_service.apply_pending_results(session, clock=self._clock)

        counts = {"cancelled": cancelled, "reminded": reminded, "results_applied": applied}
        if any(counts.values()):
            logger.info(f"Match sweep: {counts}")
        return counts


# Global singleton
_sweep_service = MatchSweepService()


def get_match_sweep_service() -> MatchSweepService:
    """Get the global match sweep service instance."""
    return _sweep_service
