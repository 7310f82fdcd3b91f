"""
Pydantic value types shared by the match engine.

These are immutable snapshots: engine operations take a MatchState and
return a new one, and the match service persists the difference with a
conditional update.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, model_validator

from padpok.database.models import MatchStatus
from padpok.utils.constants import (
    DEFAULT_PLAYERS_NEEDED,
    MAX_PLAYERS_NEEDED,
    MIN_PLAYERS_NEEDED,
    TEAM_SLOT_SIZE,
)
from padpok.utils.datetime_utils import ensure_utc

Team = Literal["team1", "team2"]
Position = Literal["first", "second"]

TEAMS = ("team1", "team2")


def other_team(team: str) -> str:
    return "team2" if team == "team1" else "team1"


class SetScore(BaseModel):
    """Games won by each side in one set."""

    model_config = ConfigDict(frozen=True)
    team1: int
    team2: int

    @property
    def not_played(self) -> bool:
        return self.team1 == 0 and self.team2 == 0


class Score(BaseModel):
    """A match result: two mandatory sets, an optional third, and the declared winner."""

    model_config = ConfigDict(frozen=True)
    set1: SetScore
    set2: SetScore
    set3: Optional[SetScore] = None
    winner: Optional[Team] = None

    def sets(self) -> List[SetScore]:
        """Return the submitted sets in order (set3 only if present)."""
        played = [self.set1, self.set2]
        if self.set3 is not None:
            played.append(self.set3)
        return played


class Roster(BaseModel):
    """
    Team slots of a match.

    Two teams with two positions each. The roster is the union of the
    occupied slots; a player may occupy only one slot.
    """

    model_config = ConfigDict(frozen=True)
    team1_player1_id: Optional[int] = None
    team1_player2_id: Optional[int] = None
    team2_player1_id: Optional[int] = None
    team2_player2_id: Optional[int] = None
    players_needed: int = DEFAULT_PLAYERS_NEEDED

    @model_validator(mode="after")
    def check_invariants(self) -> "Roster":
        if not MIN_PLAYERS_NEEDED <= self.players_needed <= MAX_PLAYERS_NEEDED:
            raise ValueError(
                f"players_needed must be between {MIN_PLAYERS_NEEDED} and {MAX_PLAYERS_NEEDED}"
            )
        members = self.members
        if len(members) != len(set(members)):
            raise ValueError("A player can only hold one team slot")
        if len(members) > self.players_needed:
            raise ValueError("Roster exceeds players_needed")
        for team in TEAMS:
            if len(self.team(team)) > self.team_capacity:
                raise ValueError(f"{team} holds more than {self.team_capacity} players")
        return self

    @property
    def team_capacity(self) -> int:
        """Places per team; a 2-player match is one against one."""
        return min(TEAM_SLOT_SIZE, (self.players_needed + 1) // 2)

    def team(self, team: str) -> List[int]:
        """Occupied ids of one team, in position order."""
        if team == "team1":
            slots = (self.team1_player1_id, self.team1_player2_id)
        elif team == "team2":
            slots = (self.team2_player1_id, self.team2_player2_id)
        else:
            raise ValueError(f"Unknown team: {team}")
        return [pid for pid in slots if pid is not None]

    @property
    def members(self) -> List[int]:
        return self.team("team1") + self.team("team2")

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def is_full(self) -> bool:
        return self.size >= self.players_needed

    def team_of(self, user_id: int) -> Optional[str]:
        for team in TEAMS:
            if user_id in self.team(team):
                return team
        return None

    def position_of(self, user_id: int) -> Optional[str]:
        """'first' or 'second' slot of a player within their team."""
        for column, occupant in self.slots().items():
            if occupant == user_id:
                return "first" if column.endswith("player1_id") else "second"
        return None

    def slots(self) -> Dict[str, Optional[int]]:
        """Slot column -> occupant, as persisted on the Match row."""
        return {
            "team1_player1_id": self.team1_player1_id,
            "team1_player2_id": self.team1_player2_id,
            "team2_player1_id": self.team2_player1_id,
            "team2_player2_id": self.team2_player2_id,
        }


class MatchState(BaseModel):
    """Snapshot of everything the lifecycle policy needs to know about a match."""

    model_config = ConfigDict(frozen=True)
    id: Optional[int] = None
    title: str
    created_by: int
    scheduled_at: datetime
    group_id: Optional[int] = None
    status: MatchStatus = MatchStatus.OPEN
    roster: Roster
    score: Optional[Score] = None
    submitted_by: Optional[int] = None
    confirmed_by: List[int] = []
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (MatchStatus.CANCELLED, MatchStatus.COMPLETED)

    @classmethod
    def from_record(cls, match) -> "MatchState":
        """Build a snapshot from a Match ORM row."""
        return cls(
            id=match.id,
            title=match.title,
            created_by=match.created_by,
            group_id=match.group_id,
            scheduled_at=ensure_utc(match.scheduled_at),
            status=match.status,
            roster=Roster(
                team1_player1_id=match.team1_player1_id,
                team1_player2_id=match.team1_player2_id,
                team2_player1_id=match.team2_player1_id,
                team2_player2_id=match.team2_player2_id,
                players_needed=match.players_needed,
            ),
            score=Score.model_validate(match.score) if match.score else None,
            submitted_by=match.submitted_by,
            confirmed_by=list(match.confirmed_by or []),
            cancelled_at=ensure_utc(match.cancelled_at),
            completed_at=ensure_utc(match.completed_at),
        )

    def to_record_values(self) -> Dict[str, Any]:
        """Column values the engine owns on the Match row."""
        return {
            **self.roster.slots(),
            "status": self.status,
            "score": self.score.model_dump(mode="json") if self.score else None,
            "submitted_by": self.submitted_by,
            "confirmed_by": list(self.confirmed_by),
            "cancelled_at": self.cancelled_at,
            "completed_at": self.completed_at,
        }
