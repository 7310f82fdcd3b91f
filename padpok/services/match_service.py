"""
Match service: persists the match engine's transitions.

Every mutation follows the same shape: read the row, run a pure
MatchState -> MatchState function from the roster/lifecycle modules, and
write the result with a version-checked conditional update. A lost update
is re-read and retried; only the writer whose update lands sees the
transition, so notices tied to a transition (match full, cancellation)
go out exactly once.
"""

import os
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from padpok.database.models import Match, MatchLevel, MatchStatus
from padpok.database.store import DocumentStore, MAX_CONDITIONAL_RETRIES
from padpok.models.match_state import MatchState, Score
from padpok.services import (
    group_service,
    lifecycle_service,
    notification_service,
    results_service,
    roster_service,
)
from padpok.services.exceptions import (
    ConcurrencyError,
    NotAMemberError,
    NotFoundError,
    StateError,
    ValidationError,
)
from padpok.services.notification_service import NotificationDispatcher
from padpok.services.user_service import require_user
from padpok.utils.constants import (
    CANCELLATION_REASON,
    GROUP_MATCH_MIN_NOTICE_HOURS,
    MAX_PLAYERS_NEEDED,
    MAX_TITLE_LENGTH,
    MIN_PLAYERS_NEEDED,
)
from padpok.utils.datetime_utils import Clock, ensure_utc, isoformat_or_none, utcnow

logger = logging.getLogger(__name__)

RESULT_REMINDER_AFTER = timedelta(hours=float(os.getenv("RESULT_REMINDER_HOURS", "3")))

_ACTIVE_STATUSES = (MatchStatus.OPEN, MatchStatus.FULL)


def _match_to_dict(match: Match) -> Dict:
    return {
        "id": match.id,
        "title": match.title,
        "location": match.location,
        "description": match.description,
        "level": match.level.value if match.level else None,
        "age_range": match.age_range,
        "scheduled_at": isoformat_or_none(match.scheduled_at),
        "players_needed": match.players_needed,
        "team1": match.team1_ids,
        "team2": match.team2_ids,
        "players": match.player_ids,
        "status": match.status.value,
        "score": match.score,
        "submitted_by": match.submitted_by,
        "confirmed_by": list(match.confirmed_by or []),
        "results_applied": match.results_applied,
        "cancelled_at": isoformat_or_none(match.cancelled_at),
        "completed_at": isoformat_or_none(match.completed_at),
        "created_by": match.created_by,
        "group_id": match.group_id,
        "created_at": isoformat_or_none(match.created_at),
    }


async def _mutate_match(
    session: AsyncSession,
    match_id: int,
    transform: Callable[[MatchState], MatchState],
) -> Tuple[MatchState, MatchState, Match]:
    """
    Apply a pure transition to a stored match and commit it atomically.

    The transform may raise a MatchError; nothing is written in that case.
    Returning the same state object means "no change".

    Returns:
        (previous_state, new_state, fresh_row)

    Raises:
        NotFoundError: Unknown match
        ConcurrencyError: Lost the conditional update on every attempt
    """
    store = DocumentStore(session)
    for attempt in range(MAX_CONDITIONAL_RETRIES):
        match = await store.get(Match, match_id)
        if match is None:
            raise NotFoundError(f"Match {match_id} not found")

        current = MatchState.from_record(match)
        new_state = transform(current)
        if new_state is current:
            return current, current, match

        if await store.conditional_update(Match, match_id, match.version, **new_state.to_record_values()):
            await store.commit()
            fresh = await store.get(Match, match_id)
            return current, new_state, fresh

        await store.rollback()
        logger.info(f"Match {match_id} changed concurrently, retrying (attempt {attempt + 1})")

    raise ConcurrencyError("The match was updated by someone else at the same time, please retry")


async def _reconcile_match(
    session: AsyncSession,
    match_id: int,
    now: datetime,
    dispatcher: NotificationDispatcher,
) -> Tuple[Dict, bool]:
    """
    Persist reconcile() for one match. Returns (match_dict, cancelled_now).

    Only the call that actually writes the cancellation notifies the creator.
    """
    previous, state, match = await _mutate_match(
        session, match_id, lambda s: lifecycle_service.reconcile(s, now)
    )
    result = _match_to_dict(match)
    cancelled_now = state.status == MatchStatus.CANCELLED and previous.status != MatchStatus.CANCELLED
    if cancelled_now:
        logger.info(f"Match {match_id} cancelled: {CANCELLATION_REASON}")
        await notification_service.notify_match_cancelled(dispatcher, state, CANCELLATION_REASON)
    return result, cancelled_now


def _dispatcher_for(session: AsyncSession, dispatcher: Optional[NotificationDispatcher]) -> NotificationDispatcher:
    return dispatcher if dispatcher is not None else NotificationDispatcher(session)


async def create_match(
    session: AsyncSession,
    creator_id: int,
    title: str,
    location: str,
    scheduled_at: datetime,
    players_needed: int = 4,
    level: str = MatchLevel.INTERMEDIATE.value,
    age_range: Optional[str] = None,
    description: Optional[str] = None,
    group_id: Optional[int] = None,
    clock: Clock = utcnow,
) -> Dict:
    """
    Create a match and seat its creator in team1, first position.

    Group matches must be scheduled at least GROUP_MATCH_MIN_NOTICE_HOURS ahead
    and can only be created by group members.

    Raises:
        ValidationError: Bad title, location, level, capacity or a start time in the past
        NotFoundError: Unknown creator or group
        NotAMemberError: Creator is not a member of the group
    """
    title = (title or "").strip()
    location = (location or "").strip()
    if not title:
        raise ValidationError("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    if not location:
        raise ValidationError("Location is required")
    if not MIN_PLAYERS_NEEDED <= players_needed <= MAX_PLAYERS_NEEDED:
        raise ValidationError(
            f"Players needed must be between {MIN_PLAYERS_NEEDED} and {MAX_PLAYERS_NEEDED}"
        )
    try:
        match_level = MatchLevel(level)
    except ValueError:
        raise ValidationError(f"Unknown level: {level}")

    scheduled_at = ensure_utc(scheduled_at)
    if scheduled_at <= ensure_utc(clock()):
        raise ValidationError("The match must start in the future")

    await require_user(session, creator_id)
    if group_id is not None:
        await group_service.require_group(session, group_id)
        if not await group_service.is_member(session, group_id, creator_id):
            raise NotAMemberError("Only group members can create group matches")
        min_start = ensure_utc(clock()) + timedelta(hours=GROUP_MATCH_MIN_NOTICE_HOURS)
        if scheduled_at < min_start:
            raise ValidationError(
                f"Group matches must be scheduled at least {GROUP_MATCH_MIN_NOTICE_HOURS} hours ahead"
            )

    roster = roster_service.seat_creator(creator_id, players_needed)
    match = Match(
        title=title,
        location=location,
        description=description,
        level=match_level,
        age_range=age_range,
        scheduled_at=scheduled_at,
        players_needed=players_needed,
        status=MatchStatus.FULL if roster.is_full else MatchStatus.OPEN,
        created_by=creator_id,
        group_id=group_id,
        confirmed_by=[],
        **roster.slots(),
    )
    store = DocumentStore(session)
    await store.put(match)
    match_id = match.id
    await store.commit()
    logger.info(f"User {creator_id} created match {match_id} for {scheduled_at.isoformat()}")

    fresh = await store.get(Match, match_id)
    return _match_to_dict(fresh)


async def get_match(
    session: AsyncSession,
    match_id: int,
    clock: Clock = utcnow,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Dict:
    """
    Get a match, reconciled against the current time.

    Raises:
        NotFoundError: Unknown match
    """
    result, _ = await _reconcile_match(session, match_id, clock(), _dispatcher_for(session, dispatcher))
    return result


async def list_matches(
    session: AsyncSession,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    group_id: Optional[int] = None,
    clock: Clock = utcnow,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> List[Dict]:
    """
    List matches ordered by start time, each reconciled before it is returned.

    Args:
        session: Database session
        status: Optional status filter, applied after reconciliation
        user_id: If set, only matches the user created or plays in
        group_id: If set, only that group's matches

    Raises:
        ValidationError: Unknown status
    """
    status_filter = None
    if status is not None:
        try:
            status_filter = MatchStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status: {status}")

    criteria = []
    if user_id is not None:
        criteria.append(or_(
            Match.created_by == user_id,
            Match.team1_player1_id == user_id,
            Match.team1_player2_id == user_id,
            Match.team2_player1_id == user_id,
            Match.team2_player2_id == user_id,
        ))
    if group_id is not None:
        criteria.append(Match.group_id == group_id)

    store = DocumentStore(session)
    rows = await store.query(Match, *criteria, order_by=[Match.scheduled_at.asc(), Match.id.asc()])
    match_ids = [row.id for row in rows]
    statuses = {row.id: row.status for row in rows}

    now = clock()
    dispatcher = _dispatcher_for(session, dispatcher)
    matches = []
    for match_id in match_ids:
        if statuses[match_id] in _ACTIVE_STATUSES:
            match, _ = await _reconcile_match(session, match_id, now, dispatcher)
        else:
            match = _match_to_dict(await store.get(Match, match_id))
        if status_filter is None or match["status"] == status_filter.value:
            matches.append(match)
    return matches


async def join_match(
    session: AsyncSession,
    match_id: int,
    user_id: int,
    team: str,
    position: Optional[str] = None,
    clock: Clock = utcnow,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Dict:
    """
    Seat a player in a team.

    Raises:
        NotFoundError: Unknown match or user
        NotAMemberError: Group match and the user is not in the group
        TeamFullError / AlreadyJoinedError / StateError / ValidationError: see roster_service.join
        ConcurrencyError: Lost the race on every attempt
    """
    dispatcher = _dispatcher_for(session, dispatcher)
    await require_user(session, user_id)
    current, _ = await _reconcile_match(session, match_id, clock(), dispatcher)
    if current["group_id"] is not None and not await group_service.is_member(
        session, current["group_id"], user_id
    ):
        raise NotAMemberError("Only group members can join this match")

    def seat(state: MatchState) -> MatchState:
        new_state, _ = roster_service.join(state, user_id, team, position)
        return new_state

    previous, state, match = await _mutate_match(session, match_id, seat)
    result = _match_to_dict(match)
    logger.info(f"User {user_id} joined {team} in match {match_id}")

    if state.roster.is_full and not previous.roster.is_full:
        logger.info(f"Match {match_id} is full")
        await notification_service.notify_match_full(dispatcher, state)
    return result


async def leave_match(
    session: AsyncSession,
    match_id: int,
    user_id: int,
    clock: Clock = utcnow,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Dict:
    """
    Remove a player from a match. Not being in the match is a no-op.

    Raises:
        NotFoundError: Unknown match
        StateError: Match is cancelled or completed
    """
    await _reconcile_match(session, match_id, clock(), _dispatcher_for(session, dispatcher))
    previous, state, match = await _mutate_match(
        session, match_id, lambda s: roster_service.leave(s, user_id)
    )
    if state is not previous:
        logger.info(f"User {user_id} left match {match_id}")
    return _match_to_dict(match)


async def submit_score(
    session: AsyncSession,
    match_id: int,
    user_id: int,
    score: Score,
    clock: Clock = utcnow,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Dict:
    """
    Accept a match result and complete the match.

    The score is write-once. After the match is stored as completed the other
    participants are notified and the result is credited to every player;
    both steps are best-effort and never undo the completion.

    Raises:
        NotFoundError: Unknown match
        NotAMemberError: Submitter does not play in the match
        StateError: Match cancelled or already has a result
        NotReadyForResultError: Roster incomplete or match not started
        ValidationError: Score breaks the set rules or names the wrong winner
    """
    dispatcher = _dispatcher_for(session, dispatcher)
    now = clock()
    await _reconcile_match(session, match_id, now, dispatcher)

    def accept(state: MatchState) -> MatchState:
        if state.roster.team_of(user_id) is None:
            raise NotAMemberError("Only players of this match can add its result")
        return lifecycle_service.complete(state, score, user_id, now)

    _, state, _ = await _mutate_match(session, match_id, accept)
    logger.info(f"Match {match_id} completed, winner {state.score.winner}")

    await notification_service.notify_result_added(dispatcher, state, user_id)
    try:
        await results_service.apply_match_results(session, match_id, clock)
    except Exception as e:
        logger.warning(f"Could not apply results for match {match_id}, the sweep will retry: {e}")

    match = await DocumentStore(session).get(Match, match_id)
    return _match_to_dict(match)


async def confirm_score(
    session: AsyncSession,
    match_id: int,
    user_id: int,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Dict:
    """
    Record that a participant agrees with the stored result. Idempotent.

    Raises:
        NotFoundError: Unknown match
        StateError: Match has no result yet
        NotAMemberError: User does not play in the match
    """
    dispatcher = _dispatcher_for(session, dispatcher)

    def confirm(state: MatchState) -> MatchState:
        if state.status != MatchStatus.COMPLETED or state.score is None:
            raise StateError("Only a match with a result can be confirmed")
        if state.roster.team_of(user_id) is None:
            raise NotAMemberError("Only players of this match can confirm its result")
        if user_id in state.confirmed_by:
            return state
        return state.model_copy(update={"confirmed_by": [*state.confirmed_by, user_id]})

    previous, state, match = await _mutate_match(session, match_id, confirm)
    result = _match_to_dict(match)
    if state is not previous:
        logger.info(f"User {user_id} confirmed the result of match {match_id}")
        await notification_service.notify_result_confirmed(dispatcher, state, user_id)
    return result


async def reconcile_matches(
    session: AsyncSession,
    clock: Clock = utcnow,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> int:
    """
    Cancel every active match that is under-filled inside the cancellation window.

    Returns:
        Number of matches cancelled by this call
    """
    now = clock()
    dispatcher = _dispatcher_for(session, dispatcher)
    store = DocumentStore(session)
    due = await store.query(
        Match,
        Match.status.in_(_ACTIVE_STATUSES),
        Match.scheduled_at <= ensure_utc(now) + lifecycle_service.CANCELLATION_WINDOW,
    )
    cancelled = 0
    for match_id in [row.id for row in due]:
        try:
            _, cancelled_now = await _reconcile_match(session, match_id, now, dispatcher)
        except ConcurrencyError as e:
            logger.warning(f"Skipping match {match_id} in this sweep: {e}")
            continue
        if cancelled_now:
            cancelled += 1
    return cancelled


async def send_result_reminders(
    session: AsyncSession,
    clock: Clock = utcnow,
    dispatcher: Optional[NotificationDispatcher] = None,
    reminder_after: timedelta = RESULT_REMINDER_AFTER,
) -> int:
    """
    Ask the players of finished-but-unscored matches to add the result, once per match.

    Returns:
        Number of matches reminded
    """
    now = clock()
    dispatcher = _dispatcher_for(session, dispatcher)
    store = DocumentStore(session)
    candidates = await store.query(
        Match,
        Match.status == MatchStatus.FULL,
        Match.result_reminder_sent == False,  # noqa: E712
        Match.scheduled_at <= ensure_utc(now) - reminder_after,
    )

    due = [(MatchState.from_record(match), match.version) for match in candidates]

    reminded = 0
    for state, version in due:
        if not lifecycle_service.needs_result_reminder(state, now, reminder_after):
            continue
        if not await store.conditional_update(Match, state.id, version, result_reminder_sent=True):
            await store.rollback()
            continue
        await store.commit()
        await notification_service.notify_add_result(dispatcher, state)
        reminded += 1
    return reminded


async def apply_pending_results(session: AsyncSession, clock: Clock = utcnow) -> int:
    """
    Re-apply completed matches whose per-player credit did not finish.

    Returns:
        Number of matches now fully applied
    """
    store = DocumentStore(session)
    pending = await store.query(
        Match,
        Match.status == MatchStatus.COMPLETED,
        Match.results_applied == False,  # noqa: E712
    )
    done = 0
    for match_id in [row.id for row in pending]:
        try:
            summary = await results_service.apply_match_results(session, match_id, clock)
        except Exception as e:
            logger.warning(f"Pending results for match {match_id} still not applied: {e}")
            continue
        if not summary["failed"]:
            done += 1
    return done
