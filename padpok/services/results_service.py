"""
Applies a completed match to every participant's ledger, medals and history.

Each participant is handled in its own transaction, guarded by a
match_result_applications row unique on (match_id, user_id). A retried or
concurrent application therefore credits nobody twice. Failures here never
undo the match completion itself; whatever is left over is picked up again
by the sweep while matches.results_applied is false.
"""

from typing import Dict, List
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from padpok.database.models import Match, MatchHistory, MatchResultApplication, MatchStatus
from padpok.database.store import DocumentStore, MAX_CONDITIONAL_RETRIES
from padpok.models.match_state import MatchState, TEAMS, other_team
from padpok.services import medal_service, stats_service
from padpok.services.exceptions import NotFoundError, StateError
from padpok.utils.datetime_utils import Clock, isoformat_or_none, to_local, utcnow

logger = logging.getLogger(__name__)


def build_outcomes(state: MatchState) -> List[medal_service.MatchOutcome]:
    """One MatchOutcome per participant of a completed match."""
    if state.score is None or state.score.winner is None:
        raise StateError("The match has no accepted result")

    local_start = to_local(state.scheduled_at)
    outcomes = []
    for team in TEAMS:
        members = state.roster.team(team)
        opponents = state.roster.team(other_team(team))
        for user_id in members:
            outcomes.append(medal_service.MatchOutcome(
                match_id=state.id,
                user_id=user_id,
                team=team,
                won=state.score.winner == team,
                partner_ids=[pid for pid in members if pid != user_id],
                opponent_ids=list(opponents),
                local_start=local_start,
            ))
    return outcomes


async def _already_applied(session: AsyncSession, match_id: int, user_id: int) -> bool:
    result = await session.execute(
        select(MatchResultApplication.id).where(
            MatchResultApplication.match_id == match_id,
            MatchResultApplication.user_id == user_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def _apply_outcome(
    session: AsyncSession,
    state: MatchState,
    outcome: medal_service.MatchOutcome,
    clock: Clock,
) -> List[str]:
    """Write guard, ledger, medals and history for one participant, then commit."""
    store = DocumentStore(session)
    await store.put(MatchResultApplication(match_id=outcome.match_id, user_id=outcome.user_id))
    await stats_service.record_match_result(session, outcome.user_id, outcome.won)
    unlocked = await medal_service.apply_outcome_to_medals(session, outcome, clock())
    await store.put(MatchHistory(
        match_id=outcome.match_id,
        user_id=outcome.user_id,
        result="win" if outcome.won else "loss",
        team=outcome.team,
        position=state.roster.position_of(outcome.user_id),
        partner_id=outcome.partner_ids[0] if outcome.partner_ids else None,
        opponent_ids=list(outcome.opponent_ids),
        score=state.score.model_dump(mode="json"),
        played_at=state.scheduled_at,
        group_id=state.group_id,
    ))
    await store.commit()
    return unlocked


async def apply_match_results(
    session: AsyncSession,
    match_id: int,
    clock: Clock = utcnow,
) -> Dict:
    """
    Credit a completed match to all of its participants exactly once.

    Args:
        session: Database session (committed per participant)
        match_id: Completed match
        clock: Time source for medal timestamps

    Returns:
        Dict with 'applied', 'skipped' and 'failed' user id lists and
        'unlocked' (user id -> newly unlocked medal ids)

    Raises:
        NotFoundError: Unknown match
        StateError: Match is not completed
    """
    store = DocumentStore(session)
    match = await store.get(Match, match_id)
    if match is None:
        raise NotFoundError(f"Match {match_id} not found")
    if match.status != MatchStatus.COMPLETED:
        raise StateError("Results can only be applied to a completed match")

    state = MatchState.from_record(match)
    summary = {"applied": [], "skipped": [], "failed": [], "unlocked": {}}

    for outcome in build_outcomes(state):
        for attempt in range(MAX_CONDITIONAL_RETRIES):
            try:
                if await _already_applied(session, match_id, outcome.user_id):
                    summary["skipped"].append(outcome.user_id)
                    break
                unlocked = await _apply_outcome(session, state, outcome, clock)
                summary["applied"].append(outcome.user_id)
                if unlocked:
                    summary["unlocked"][outcome.user_id] = unlocked
                break
            except (stats_service.StaleStatsEntry, medal_service.StaleMedalProgress, IntegrityError) as e:
                await store.rollback()
                logger.info(
                    f"Retrying result application for user {outcome.user_id} in match {match_id} "
                    f"(attempt {attempt + 1}): {e}"
                )
            except Exception as e:
                await store.rollback()
                logger.warning(f"Failed to apply match {match_id} result for user {outcome.user_id}: {e}")
                summary["failed"].append(outcome.user_id)
                break
        else:
            logger.warning(
                f"Gave up applying match {match_id} result for user {outcome.user_id} "
                f"after {MAX_CONDITIONAL_RETRIES} attempts"
            )
            summary["failed"].append(outcome.user_id)

    if not summary["failed"]:
        await session.execute(
            update(Match)
            .where(Match.id == match_id)
            .values(results_applied=True)
            .execution_options(synchronize_session=False)
        )
        await store.commit()
        logger.info(f"Match {match_id} result applied to {len(summary['applied'])} players")
    return summary


async def get_user_match_history(session: AsyncSession, user_id: int, limit: int = 50) -> List[Dict]:
    """List a user's completed matches, newest first."""
    result = await session.execute(
        select(MatchHistory, Match.title)
        .join(Match, MatchHistory.match_id == Match.id)
        .where(MatchHistory.user_id == user_id)
        .order_by(MatchHistory.played_at.desc(), MatchHistory.id.desc())
        .limit(limit)
    )
    return [
        {
            "match_id": row.match_id,
            "match_title": title,
            "result": row.result,
            "team": row.team,
            "position": row.position,
            "partner_id": row.partner_id,
            "opponent_ids": list(row.opponent_ids or []),
            "score": row.score,
            "played_at": isoformat_or_none(row.played_at),
            "group_id": row.group_id,
        }
        for row, title in result.all()
    ]
