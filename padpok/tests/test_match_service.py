"""
Tests for the match service: roster changes, lazy cancellation, scoring and
result application against a real (SQLite) database.
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from padpok.database.models import (
    Match,
    MatchHistory,
    MatchResultApplication,
    MatchStatus,
    Notification,
    NotificationType,
)
from padpok.database.store import DocumentStore
from padpok.models.match_state import Score, SetScore
from padpok.services import match_service, results_service, stats_service
from padpok.services.exceptions import (
    AlreadyJoinedError,
    ConcurrencyError,
    NotAMemberError,
    NotFoundError,
    NotReadyForResultError,
    StateError,
    TeamFullError,
    ValidationError,
)
from padpok.tests.conftest import FailingDispatcher, schedule

TEAM1_WINS = Score(set1=SetScore(team1=6, team2=4), set2=SetScore(team1=7, team2=5), winner="team1")


async def create(db_session, clock, creator, **kwargs):
    params = {
        "title": "Friday doubles",
        "location": "Club Norte, court 3",
        "scheduled_at": schedule(days=3),
    }
    params.update(kwargs)
    return await match_service.create_match(db_session, creator_id=creator, clock=clock, **params)


async def full_match(db_session, clock, dispatcher, users):
    """ana + bea vs carla + dani, starting in three days."""
    match = await create(db_session, clock, users[0])
    await match_service.join_match(db_session, match["id"], users[1], "team1", clock=clock, dispatcher=dispatcher)
    await match_service.join_match(db_session, match["id"], users[2], "team2", clock=clock, dispatcher=dispatcher)
    return await match_service.join_match(
        db_session, match["id"], users[3], "team2", clock=clock, dispatcher=dispatcher
    )


async def count(db_session, model, *criteria):
    result = await db_session.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar_one()


# ============================================================================
# Creation
# ============================================================================


@pytest.mark.asyncio
async def test_create_match_seats_creator(db_session, clock, users):
    match = await create(db_session, clock, users[0])
    assert match["team1"] == [users[0]]
    assert match["team2"] == []
    assert match["status"] == "open"
    assert match["players_needed"] == 4
    assert match["level"] == "Intermediate"


@pytest.mark.asyncio
async def test_create_match_in_the_past_fails(db_session, clock, users):
    with pytest.raises(ValidationError):
        await create(db_session, clock, users[0], scheduled_at=schedule(days=-1))


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [
    {"title": ""},
    {"title": "x" * 41},
    {"location": "  "},
    {"players_needed": 5},
    {"players_needed": 1},
    {"level": "Pro"},
])
async def test_create_match_rejects_bad_input(db_session, clock, users, kwargs):
    with pytest.raises(ValidationError):
        await create(db_session, clock, users[0], **kwargs)


@pytest.mark.asyncio
async def test_create_match_unknown_creator(db_session, clock):
    with pytest.raises(NotFoundError):
        await create(db_session, clock, 999)


# ============================================================================
# Roster
# ============================================================================


@pytest.mark.asyncio
async def test_filling_the_match_notifies_once(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)

    assert match["status"] == "full"
    assert match["team1"] == [users[0], users[1]]
    assert match["team2"] == [users[2], users[3]]
    full_notices = dispatcher.of_kind(NotificationType.MATCH_FULL.value)
    assert sorted(n["recipient_id"] for n in full_notices) == sorted(users[:4])

    # Reading the match again does not notify again
    await match_service.get_match(db_session, match["id"], clock=clock, dispatcher=dispatcher)
    assert len(dispatcher.of_kind(NotificationType.MATCH_FULL.value)) == 4


@pytest.mark.asyncio
async def test_full_notice_is_stored(db_session, clock, dispatcher, users):
    await full_match(db_session, clock, dispatcher, users)
    stored = await count(
        db_session, Notification, Notification.type == NotificationType.MATCH_FULL.value
    )
    assert stored == 4


@pytest.mark.asyncio
async def test_join_full_team(db_session, clock, dispatcher, users):
    match = await create(db_session, clock, users[0])
    await match_service.join_match(db_session, match["id"], users[1], "team1", clock=clock, dispatcher=dispatcher)
    with pytest.raises(TeamFullError):
        await match_service.join_match(
            db_session, match["id"], users[2], "team1", clock=clock, dispatcher=dispatcher
        )

    stored = await match_service.get_match(db_session, match["id"], clock=clock, dispatcher=dispatcher)
    assert stored["team1"] == [users[0], users[1]]


@pytest.mark.asyncio
async def test_join_twice(db_session, clock, dispatcher, users):
    match = await create(db_session, clock, users[0])
    with pytest.raises(AlreadyJoinedError):
        await match_service.join_match(
            db_session, match["id"], users[0], "team2", clock=clock, dispatcher=dispatcher
        )


@pytest.mark.asyncio
async def test_join_unknown_match(db_session, clock, dispatcher, users):
    with pytest.raises(NotFoundError):
        await match_service.join_match(db_session, 404, users[1], "team2", clock=clock, dispatcher=dispatcher)


@pytest.mark.asyncio
async def test_leave_and_rejoin(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    left = await match_service.leave_match(db_session, match["id"], users[2], clock=clock, dispatcher=dispatcher)
    assert left["status"] == "open"
    assert left["team2"] == [users[3]]

    rejoined = await match_service.join_match(
        db_session, match["id"], users[4], "team2", clock=clock, dispatcher=dispatcher
    )
    assert rejoined["status"] == "full"


@pytest.mark.asyncio
async def test_leave_when_absent_is_no_op(db_session, clock, dispatcher, users):
    match = await create(db_session, clock, users[0])
    result = await match_service.leave_match(db_session, match["id"], users[4], clock=clock, dispatcher=dispatcher)
    assert result["players"] == [users[0]]


@pytest.mark.asyncio
async def test_lost_race_surfaces_as_concurrency_error(db_session, clock, dispatcher, users, monkeypatch):
    match = await create(db_session, clock, users[0])

    async def lose_race(self, model, record_id, expected_version, **values):
        return False

    monkeypatch.setattr(DocumentStore, "conditional_update", lose_race, raising=True)
    with pytest.raises(ConcurrencyError):
        await match_service.join_match(db_session, match["id"], users[1], "team2", clock=clock, dispatcher=dispatcher)


@pytest.mark.asyncio
async def test_conditional_update_rejects_stale_version(db_session, clock, users):
    match = await create(db_session, clock, users[0])
    store = DocumentStore(db_session)
    row = await store.get(Match, match["id"])
    version = row.version

    assert await store.conditional_update(Match, match["id"], version, title="First writer")
    assert not await store.conditional_update(Match, match["id"], version, title="Second writer")
    await store.commit()

    row = await store.get(Match, match["id"])
    assert row.title == "First writer"
    assert row.version == version + 1


# ============================================================================
# Lazy cancellation
# ============================================================================


@pytest.mark.asyncio
async def test_underfilled_match_is_cancelled_on_read_exactly_once(db_session, clock, dispatcher, users):
    match = await create(db_session, clock, users[0], scheduled_at=schedule(days=2))
    clock.advance(days=1, hours=1)

    cancelled = await match_service.get_match(db_session, match["id"], clock=clock, dispatcher=dispatcher)
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelled_at"] is not None

    again = await match_service.get_match(db_session, match["id"], clock=clock, dispatcher=dispatcher)
    assert again["status"] == "cancelled"

    notices = dispatcher.of_kind(NotificationType.MATCH_CANCELLED.value)
    assert len(notices) == 1
    assert notices[0]["recipient_id"] == users[0]
    assert notices[0]["payload"] == {"reason": "insufficient players 24h before start."}


@pytest.mark.asyncio
async def test_listing_cancels_stale_matches(db_session, clock, dispatcher, users):
    soon = await create(db_session, clock, users[0], scheduled_at=schedule(hours=30))
    later = await create(db_session, clock, users[1], scheduled_at=schedule(days=5))
    clock.advance(hours=8)

    matches = await match_service.list_matches(db_session, clock=clock, dispatcher=dispatcher)
    statuses = {m["id"]: m["status"] for m in matches}
    assert statuses == {soon["id"]: "cancelled", later["id"]: "open"}

    open_only = await match_service.list_matches(db_session, status="open", clock=clock, dispatcher=dispatcher)
    assert [m["id"] for m in open_only] == [later["id"]]


@pytest.mark.asyncio
async def test_list_matches_for_user(db_session, clock, dispatcher, users):
    mine = await create(db_session, clock, users[0])
    joined = await create(db_session, clock, users[1], scheduled_at=schedule(days=4))
    await create(db_session, clock, users[2], scheduled_at=schedule(days=5))
    await match_service.join_match(db_session, joined["id"], users[0], "team2", clock=clock, dispatcher=dispatcher)

    matches = await match_service.list_matches(db_session, user_id=users[0], clock=clock, dispatcher=dispatcher)
    assert [m["id"] for m in matches] == [mine["id"], joined["id"]]


@pytest.mark.asyncio
async def test_list_matches_unknown_status(db_session, clock, users):
    with pytest.raises(ValidationError):
        await match_service.list_matches(db_session, status="postponed", clock=clock)


@pytest.mark.asyncio
async def test_cannot_join_match_cancelled_on_read(db_session, clock, dispatcher, users):
    match = await create(db_session, clock, users[0], scheduled_at=schedule(hours=30))
    clock.advance(hours=7)
    with pytest.raises(StateError):
        await match_service.join_match(db_session, match["id"], users[1], "team2", clock=clock, dispatcher=dispatcher)
    assert len(dispatcher.of_kind(NotificationType.MATCH_CANCELLED.value)) == 1


@pytest.mark.asyncio
async def test_full_match_is_not_cancelled(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=2, hours=23)
    stored = await match_service.get_match(db_session, match["id"], clock=clock, dispatcher=dispatcher)
    assert stored["status"] == "full"


@pytest.mark.asyncio
async def test_cancellation_survives_notification_failure(db_session, clock, users):
    match = await create(db_session, clock, users[0], scheduled_at=schedule(hours=20))
    cancelled = await match_service.get_match(
        db_session, match["id"], clock=clock, dispatcher=FailingDispatcher(db_session)
    )
    assert cancelled["status"] == "cancelled"

    row = await DocumentStore(db_session).get(Match, match["id"])
    assert row.status == MatchStatus.CANCELLED


# ============================================================================
# Scoring
# ============================================================================


@pytest.mark.asyncio
async def test_submit_score_completes_and_credits_everyone(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=2)

    completed = await match_service.submit_score(
        db_session, match["id"], users[2], TEAM1_WINS, clock=clock, dispatcher=dispatcher
    )
    assert completed["status"] == "completed"
    assert completed["score"]["winner"] == "team1"
    assert completed["submitted_by"] == users[2]
    assert completed["confirmed_by"] == [users[2]]
    assert completed["results_applied"] is True

    for winner in users[:2]:
        stats = await stats_service.get_player_stats(db_session, winner)
        assert (stats["points"], stats["wins"], stats["losses"], stats["matches_played"]) == (3, 1, 0, 1)
    for loser in users[2:4]:
        stats = await stats_service.get_player_stats(db_session, loser)
        assert (stats["points"], stats["wins"], stats["losses"], stats["matches_played"]) == (1, 0, 1, 1)

    added = dispatcher.of_kind(NotificationType.RESULT_ADDED.value)
    assert sorted(n["recipient_id"] for n in added) == sorted([users[0], users[1], users[3]])
    assert added[0]["payload"]["score"]["winner"] == "team1"


@pytest.mark.asyncio
async def test_result_writes_history(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=2)
    await match_service.submit_score(db_session, match["id"], users[0], TEAM1_WINS, clock=clock, dispatcher=dispatcher)

    history = await results_service.get_user_match_history(db_session, users[0])
    assert len(history) == 1
    assert history[0]["result"] == "win"
    assert history[0]["team"] == "team1"
    assert history[0]["partner_id"] == users[1]
    assert sorted(history[0]["opponent_ids"]) == sorted(users[2:4])
    assert history[0]["match_title"] == "Friday doubles"
    assert history[0]["position"] == "first"
    assert history[0]["group_id"] is None

    partner_history = await results_service.get_user_match_history(db_session, users[1])
    assert partner_history[0]["position"] == "second"


@pytest.mark.asyncio
async def test_reapplying_results_credits_nobody_twice(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=2)
    await match_service.submit_score(db_session, match["id"], users[0], TEAM1_WINS, clock=clock, dispatcher=dispatcher)

    summary = await results_service.apply_match_results(db_session, match["id"], clock)
    assert summary["applied"] == []
    assert sorted(summary["skipped"]) == sorted(users[:4])

    stats = await stats_service.get_player_stats(db_session, users[0])
    assert stats["matches_played"] == 1
    assert await count(db_session, MatchResultApplication, MatchResultApplication.match_id == match["id"]) == 4
    assert await count(db_session, MatchHistory, MatchHistory.match_id == match["id"]) == 4


@pytest.mark.asyncio
async def test_second_score_is_rejected(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=2)
    await match_service.submit_score(db_session, match["id"], users[0], TEAM1_WINS, clock=clock, dispatcher=dispatcher)

    other = Score(set1=SetScore(team1=0, team2=6), set2=SetScore(team1=0, team2=6))
    with pytest.raises(StateError):
        await match_service.submit_score(db_session, match["id"], users[2], other, clock=clock, dispatcher=dispatcher)


@pytest.mark.asyncio
async def test_score_before_start_is_rejected(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    with pytest.raises(NotReadyForResultError):
        await match_service.submit_score(db_session, match["id"], users[0], TEAM1_WINS, clock=clock, dispatcher=dispatcher)


@pytest.mark.asyncio
async def test_score_by_outsider_is_rejected(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=2)
    with pytest.raises(NotAMemberError):
        await match_service.submit_score(db_session, match["id"], users[4], TEAM1_WINS, clock=clock, dispatcher=dispatcher)


@pytest.mark.asyncio
async def test_invalid_score_leaves_match_full(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=2)
    wrong_winner = TEAM1_WINS.model_copy(update={"winner": "team2"})
    with pytest.raises(ValidationError):
        await match_service.submit_score(db_session, match["id"], users[0], wrong_winner, clock=clock, dispatcher=dispatcher)

    stored = await match_service.get_match(db_session, match["id"], clock=clock, dispatcher=dispatcher)
    assert stored["status"] == "full"
    assert stored["score"] is None


@pytest.mark.asyncio
async def test_failed_result_application_keeps_completion(db_session, clock, dispatcher, users, monkeypatch):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=2)

    async def broken_apply(session, match_id, clock=None):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(results_service, "apply_match_results", broken_apply, raising=True)
    completed = await match_service.submit_score(
        db_session, match["id"], users[0], TEAM1_WINS, clock=clock, dispatcher=dispatcher
    )
    assert completed["status"] == "completed"
    assert completed["results_applied"] is False

    monkeypatch.undo()
    assert await match_service.apply_pending_results(db_session, clock=clock) == 1
    stats = await stats_service.get_player_stats(db_session, users[0])
    assert stats["points"] == 3


# ============================================================================
# Confirmation and reminders
# ============================================================================


@pytest.mark.asyncio
async def test_confirm_score(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=2)
    await match_service.submit_score(db_session, match["id"], users[0], TEAM1_WINS, clock=clock, dispatcher=dispatcher)

    confirmed = await match_service.confirm_score(db_session, match["id"], users[2], dispatcher=dispatcher)
    assert confirmed["confirmed_by"] == [users[0], users[2]]

    notices = dispatcher.of_kind(NotificationType.RESULT_CONFIRMED.value)
    assert sorted(n["recipient_id"] for n in notices) == sorted([users[0], users[1], users[3]])
    assert notices[0]["payload"] == {"confirmed_by": users[2]}

    # Confirming twice changes nothing and sends nothing
    await match_service.confirm_score(db_session, match["id"], users[2], dispatcher=dispatcher)
    assert len(dispatcher.of_kind(NotificationType.RESULT_CONFIRMED.value)) == 3


@pytest.mark.asyncio
async def test_confirm_requires_result(db_session, clock, dispatcher, users):
    match = await full_match(db_session, clock, dispatcher, users)
    with pytest.raises(StateError):
        await match_service.confirm_score(db_session, match["id"], users[1], dispatcher=dispatcher)


@pytest.mark.asyncio
async def test_result_reminder_sent_once(db_session, clock, dispatcher, users):
    await full_match(db_session, clock, dispatcher, users)
    clock.advance(days=3, hours=4)

    assert await match_service.send_result_reminders(db_session, clock=clock, dispatcher=dispatcher) == 1
    assert await match_service.send_result_reminders(db_session, clock=clock, dispatcher=dispatcher) == 0
    reminders = dispatcher.of_kind(NotificationType.ADD_RESULT.value)
    assert sorted(n["recipient_id"] for n in reminders) == sorted(users[:4])


@pytest.mark.asyncio
async def test_reconcile_matches_counts_cancellations(db_session, clock, dispatcher, users):
    await create(db_session, clock, users[0], scheduled_at=schedule(hours=30))
    await create(db_session, clock, users[1], scheduled_at=schedule(hours=40))
    await create(db_session, clock, users[2], scheduled_at=schedule(days=6))
    clock.advance(hours=10)

    assert await match_service.reconcile_matches(db_session, clock=clock, dispatcher=dispatcher) == 1
    assert await match_service.reconcile_matches(db_session, clock=clock, dispatcher=dispatcher) == 0


@pytest.mark.asyncio
async def test_two_player_match_needs_one_player_per_team(db_session, clock, dispatcher, users):
    match = await create(db_session, clock, users[0], players_needed=2)
    with pytest.raises(TeamFullError):
        await match_service.join_match(db_session, match["id"], users[1], "team1", clock=clock, dispatcher=dispatcher)

    joined = await match_service.join_match(
        db_session, match["id"], users[1], "team2", clock=clock, dispatcher=dispatcher
    )
    assert joined["status"] == "full"
    assert (joined["team1"], joined["team2"]) == ([users[0]], [users[1]])
