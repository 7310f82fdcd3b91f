"""
Tests for the stats ledger and rankings.
"""
import pytest

from padpok.database.models import PlayerStats
from padpok.services import stats_service
from padpok.services.exceptions import NotFoundError, ValidationError
from padpok.services.stats_service import StatsEntry


def test_win_adds_three_points():
    entry = StatsEntry(user_id=1).record_result(True)
    assert entry.to_values() == {
        "points": 3,
        "matches_played": 1,
        "wins": 1,
        "losses": 0,
        "current_streak": 1,
        "best_streak": 1,
    }


def test_loss_adds_one_point_and_resets_streak():
    entry = StatsEntry(user_id=1, current_streak=4, best_streak=4).record_result(False)
    assert entry.points == 1
    assert entry.losses == 1
    assert entry.current_streak == 0
    assert entry.best_streak == 4


def test_record_result_returns_new_entry():
    entry = StatsEntry(user_id=1)
    entry.record_result(True)
    assert entry.matches_played == 0


def test_sequence_of_results():
    entry = StatsEntry(user_id=1)
    for won in (True, True, False, True):
        entry = entry.record_result(won)
    assert entry.points == 10
    assert entry.wins == 3
    assert entry.losses == 1
    assert entry.matches_played == 4
    assert entry.current_streak == 1
    assert entry.best_streak == 2
    assert entry.win_rate == 0.75


@pytest.mark.asyncio
async def test_record_match_result_creates_and_updates_row(db_session, users):
    await stats_service.record_match_result(db_session, users[0], True)
    await db_session.commit()
    await stats_service.record_match_result(db_session, users[0], False)
    await db_session.commit()

    stats = await stats_service.get_player_stats(db_session, users[0])
    assert stats["points"] == 4
    assert stats["matches_played"] == 2
    assert stats["username"] == "ana"


@pytest.mark.asyncio
async def test_stale_row_is_detected(db_session, users, monkeypatch):
    await stats_service.record_match_result(db_session, users[0], True)
    await db_session.commit()

    async def lose_race(self, model, record_id, expected_version, **values):
        return False

    monkeypatch.setattr(stats_service.DocumentStore, "conditional_update", lose_race, raising=True)
    with pytest.raises(stats_service.StaleStatsEntry):
        await stats_service.record_match_result(db_session, users[0], True)


@pytest.mark.asyncio
async def test_player_without_matches_has_zero_stats(db_session, users):
    stats = await stats_service.get_player_stats(db_session, users[1])
    assert stats["points"] == 0
    assert stats["win_rate"] == 0.0


@pytest.mark.asyncio
async def test_unknown_player_stats(db_session):
    with pytest.raises(NotFoundError):
        await stats_service.get_player_stats(db_session, 999)


@pytest.mark.asyncio
async def test_rankings_order_and_tie_breaks(db_session, users):
    db_session.add_all([
        PlayerStats(user_id=users[0], points=9, matches_played=3, wins=3),
        PlayerStats(user_id=users[1], points=9, matches_played=5, wins=2, losses=3),
        PlayerStats(user_id=users[2], points=12, matches_played=4, wins=4),
        PlayerStats(user_id=users[3], points=9, matches_played=3, wins=3),
    ])
    await db_session.commit()

    rankings = await stats_service.get_rankings(db_session)
    assert [row["user_id"] for row in rankings] == [users[2], users[0], users[3], users[1]]
    assert [row["rank"] for row in rankings] == [1, 2, 3, 4]

    by_matches = await stats_service.get_rankings(db_session, sort_by="matches_played", limit=2)
    assert [row["user_id"] for row in by_matches] == [users[1], users[2]]


@pytest.mark.asyncio
async def test_rankings_reject_unknown_sort_key(db_session):
    with pytest.raises(ValidationError):
        await stats_service.get_rankings(db_session, sort_by="elo")
