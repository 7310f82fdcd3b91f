"""
Match status policy.

    OPEN  --roster reaches capacity-->  FULL
    OPEN/FULL --now >= start - 24h and roster < capacity--> CANCELLED (terminal)
    FULL  --valid score accepted after start-->  COMPLETED (terminal)

Cancellation is time-triggered but evaluated lazily: every read path calls
reconcile() before returning match data, and the periodic sweep calls the
same function. Nothing here owns a timer.
"""

from datetime import datetime, timedelta

from padpok.database.models import MatchStatus
from padpok.models.match_state import TEAMS, MatchState, Score
from padpok.services.exceptions import NotReadyForResultError, StateError
from padpok.services.score_validator import check_score
from padpok.utils.constants import CANCELLATION_WINDOW_HOURS
from padpok.utils.datetime_utils import ensure_utc

CANCELLATION_WINDOW = timedelta(hours=CANCELLATION_WINDOW_HOURS)


def roster_status(state: MatchState) -> MatchStatus:
    """Status implied by the roster alone, for a non-terminal match."""
    return MatchStatus.FULL if state.roster.is_full else MatchStatus.OPEN


def should_cancel(state: MatchState, now: datetime) -> bool:
    """True if the match is under-filled inside the cancellation window."""
    if state.is_terminal:
        return False
    if state.roster.is_full:
        return False
    return ensure_utc(now) >= ensure_utc(state.scheduled_at) - CANCELLATION_WINDOW


def reconcile(state: MatchState, now: datetime) -> MatchState:
    """
    Normalize a match on read.

    Returns the same object when nothing changes, so callers can detect a
    transition with an identity check.
    """
    if state.is_terminal:
        return state
    if should_cancel(state, now):
        return state.model_copy(
            update={"status": MatchStatus.CANCELLED, "cancelled_at": ensure_utc(now)}
        )
    expected = roster_status(state)
    if expected != state.status:
        return state.model_copy(update={"status": expected})
    return state


def ensure_ready_for_result(state: MatchState, now: datetime) -> None:
    """
    Check that a score may be submitted.

    Raises:
        StateError: Match is cancelled or already has a result
        NotReadyForResultError: Roster incomplete or match not started yet
    """
    if state.status == MatchStatus.CANCELLED:
        raise StateError("Cannot add a result: the match was cancelled")
    if state.status == MatchStatus.COMPLETED:
        raise StateError("This match already has a result")
    if not state.roster.is_full:
        raise NotReadyForResultError(
            f"The match needs {state.roster.players_needed} players before a result can be added"
        )
    if not all(state.roster.team(team) for team in TEAMS):
        raise NotReadyForResultError("Both teams need players before a result can be added")
    if ensure_utc(now) < ensure_utc(state.scheduled_at):
        raise NotReadyForResultError("The match has not started yet")


def complete(state: MatchState, score: Score, submitted_by: int, now: datetime) -> MatchState:
    """
    Accept a score and move the match to COMPLETED.

    The stored score always carries the computed winner. The submitter counts
    as the first confirmation.
    """
    ensure_ready_for_result(state, now)
    winner = check_score(score)
    return state.model_copy(
        update={
            "status": MatchStatus.COMPLETED,
            "score": score.model_copy(update={"winner": winner}),
            "submitted_by": submitted_by,
            "confirmed_by": [submitted_by],
            "completed_at": ensure_utc(now),
        }
    )


def needs_result_reminder(state: MatchState, now: datetime, reminder_after: timedelta) -> bool:
    """True if a full match started long enough ago and still has no result."""
    return (
        state.status == MatchStatus.FULL
        and state.score is None
        and ensure_utc(now) >= ensure_utc(state.scheduled_at) + reminder_after
    )
