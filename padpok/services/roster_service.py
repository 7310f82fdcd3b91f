"""
Team/slot assignment for a single match.

All functions are pure: they take a MatchState and return a new one (or
raise). Persisting the result atomically is the match service's job.
"""

from typing import Optional, Tuple

from padpok.database.models import MatchStatus
from padpok.models.match_state import MatchState, Roster
from padpok.services.exceptions import (
    AlreadyJoinedError,
    StateError,
    TeamFullError,
    ValidationError,
)

_POSITIONS = {"first": 1, "second": 2}


def seat_creator(creator_id: int, players_needed: int) -> Roster:
    """Build the initial roster: the creator takes team1, first position."""
    return Roster(team1_player1_id=creator_id, players_needed=players_needed)


def _ensure_mutable(state: MatchState, action: str) -> None:
    if state.status == MatchStatus.CANCELLED:
        raise StateError(f"Cannot {action}: the match was cancelled")
    if state.status == MatchStatus.COMPLETED:
        raise StateError(f"Cannot {action}: the match already has a result")


def join(
    state: MatchState,
    user_id: int,
    team: str,
    position: Optional[str] = None,
) -> Tuple[MatchState, bool]:
    """
    Seat a player in a team slot.

    Args:
        state: Current match snapshot
        user_id: Joining player
        team: 'team1' or 'team2'
        position: Optional 'first'/'second'; if taken, the other free position is used

    Returns:
        (new_state, became_full) where became_full is True only on the join that
        fills the roster

    Raises:
        StateError: Match is cancelled or completed
        TeamFullError: The team has no free place
        AlreadyJoinedError: The player is already in either team
        ValidationError: Unknown team or position
    """
    _ensure_mutable(state, "join")
    if team not in ("team1", "team2"):
        raise ValidationError(f"Unknown team: {team}")
    if position is not None and position not in _POSITIONS:
        raise ValidationError(f"Unknown position: {position}")

    roster = state.roster
    if roster.team_of(user_id) is not None:
        raise AlreadyJoinedError("You are already in a team for this match")
    if len(roster.team(team)) >= roster.team_capacity:
        raise TeamFullError(f"{team} is already full")
    if roster.is_full:
        raise TeamFullError("This match has no free places left")

    slots = roster.slots()
    order = [1, 2]
    if position is not None and _POSITIONS[position] == 2:
        order = [2, 1]
    for slot_position in order:
        column = f"{team}_player{slot_position}_id"
        if slots[column] is None:
            slots[column] = user_id
            break

    new_roster = Roster(players_needed=roster.players_needed, **slots)
    became_full = new_roster.is_full and not roster.is_full
    status = MatchStatus.FULL if new_roster.is_full else MatchStatus.OPEN
    return state.model_copy(update={"roster": new_roster, "status": status}), became_full


def leave(state: MatchState, user_id: int) -> MatchState:
    """
    Remove a player from whichever slot holds them.

    Leaving when not present is a no-op. A full match drops back to open.

    Raises:
        StateError: Match is cancelled or completed (rosters are frozen)
    """
    _ensure_mutable(state, "leave")
    roster = state.roster
    if roster.team_of(user_id) is None:
        return state

    slots = {column: (None if occupant == user_id else occupant)
             for column, occupant in roster.slots().items()}
    new_roster = Roster(players_needed=roster.players_needed, **slots)
    status = MatchStatus.FULL if new_roster.is_full else MatchStatus.OPEN
    return state.model_copy(update={"roster": new_roster, "status": status})
