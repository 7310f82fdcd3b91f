"""
Tests for team slot assignment.
"""
import pytest

from padpok.database.models import MatchStatus
from padpok.models.match_state import MatchState, Roster
from padpok.services import roster_service
from padpok.services.exceptions import (
    AlreadyJoinedError,
    CapacityError,
    MembershipError,
    StateError,
    TeamFullError,
    ValidationError,
)
from padpok.tests.conftest import schedule


def make_state(players_needed=4, status=MatchStatus.OPEN, **slots):
    if not slots:
        slots = {"team1_player1_id": 1}
    return MatchState(
        id=10,
        title="Friday doubles",
        created_by=1,
        scheduled_at=schedule(days=3),
        status=status,
        roster=Roster(players_needed=players_needed, **slots),
    )


def test_seat_creator_takes_team1_first_position():
    roster = roster_service.seat_creator(7, 4)
    assert roster.team1_player1_id == 7
    assert roster.members == [7]


def test_join_free_team():
    state, became_full = roster_service.join(make_state(), 2, "team2")
    assert state.roster.team("team2") == [2]
    assert state.status == MatchStatus.OPEN
    assert not became_full


def test_join_full_team_is_capacity_error():
    state = make_state(team1_player1_id=1, team1_player2_id=2)
    with pytest.raises(CapacityError):
        roster_service.join(state, 3, "team1")
    with pytest.raises(TeamFullError):
        roster_service.join(state, 3, "team1")


def test_join_twice_is_membership_error():
    state = make_state()
    with pytest.raises(MembershipError):
        roster_service.join(state, 1, "team2")
    with pytest.raises(AlreadyJoinedError):
        roster_service.join(state, 1, "team2")


def test_last_join_fills_the_match():
    state = make_state(team1_player1_id=1, team1_player2_id=2, team2_player1_id=3)
    state, became_full = roster_service.join(state, 4, "team2")
    assert became_full
    assert state.status == MatchStatus.FULL
    assert state.roster.members == [1, 2, 3, 4]


def test_two_player_match_fills_after_one_join():
    state, became_full = roster_service.join(make_state(players_needed=2), 2, "team2")
    assert became_full
    assert state.status == MatchStatus.FULL


def test_join_over_capacity_with_free_team_slot():
    state = make_state(players_needed=2, team1_player1_id=1, team2_player1_id=2,
                       status=MatchStatus.FULL)
    with pytest.raises(CapacityError):
        roster_service.join(state, 3, "team1")


def test_requested_position_is_used_when_free():
    state, _ = roster_service.join(make_state(), 2, "team2", position="second")
    assert state.roster.team2_player2_id == 2
    assert state.roster.team2_player1_id is None


def test_taken_position_falls_back_to_other_one():
    state, _ = roster_service.join(make_state(), 2, "team1", position="first")
    assert state.roster.team1_player1_id == 1
    assert state.roster.team1_player2_id == 2


def test_unknown_team_is_rejected():
    with pytest.raises(ValidationError):
        roster_service.join(make_state(), 2, "team3")


@pytest.mark.parametrize("status", [MatchStatus.CANCELLED, MatchStatus.COMPLETED])
def test_cannot_join_terminal_match(status):
    with pytest.raises(StateError):
        roster_service.join(make_state(status=status), 2, "team2")


def test_leave_removes_player():
    state = make_state(team1_player1_id=1, team2_player1_id=2)
    state = roster_service.leave(state, 2)
    assert state.roster.members == [1]


def test_leave_full_match_reopens_it():
    state = make_state(team1_player1_id=1, team1_player2_id=2, team2_player1_id=3,
                       team2_player2_id=4, status=MatchStatus.FULL)
    state = roster_service.leave(state, 3)
    assert state.status == MatchStatus.OPEN
    assert state.roster.team("team2") == [4]


def test_leave_when_absent_is_a_no_op():
    state = make_state()
    assert roster_service.leave(state, 99) is state


def test_cannot_leave_cancelled_match():
    with pytest.raises(StateError):
        roster_service.leave(make_state(status=MatchStatus.CANCELLED), 1)


def test_roster_rejects_player_in_two_slots():
    with pytest.raises(ValueError):
        Roster(team1_player1_id=1, team2_player1_id=1)


def test_roster_rejects_bad_capacity():
    with pytest.raises(ValueError):
        Roster(players_needed=5)


def test_two_player_match_is_one_against_one():
    with pytest.raises(CapacityError):
        roster_service.join(make_state(players_needed=2), 2, "team1")


def test_three_player_match_keeps_a_place_in_each_team():
    state, _ = roster_service.join(make_state(players_needed=3), 2, "team1")
    with pytest.raises(CapacityError):
        roster_service.join(state, 3, "team1")
    state, became_full = roster_service.join(state, 3, "team2")
    assert became_full
    assert state.roster.team("team2") == [3]


def test_roster_rejects_team_over_match_capacity():
    with pytest.raises(ValueError):
        Roster(players_needed=2, team1_player1_id=1, team1_player2_id=2)


def test_rejoining_own_team_in_two_player_match_is_already_joined():
    with pytest.raises(AlreadyJoinedError):
        roster_service.join(make_state(players_needed=2), 1, "team1")
