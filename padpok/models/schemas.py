"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, ConfigDict

from padpok.models.match_state import Score, SetScore


# ============================================================================
# Users
# ============================================================================


class CreateUserRequest(BaseModel):
    """Request to create a player."""

    username: str = Field(min_length=1, max_length=50)
    email: Optional[str] = None


class UserResponse(BaseModel):
    """Player profile."""

    id: int
    username: str
    email: Optional[str] = None
    created_at: Optional[str] = None


class PlayerStatsResponse(BaseModel):
    """Ledger entry of one player."""

    user_id: int
    username: Optional[str] = None
    points: int
    matches_played: int
    wins: int
    losses: int
    current_streak: int
    best_streak: int
    win_rate: float


class RankingEntryResponse(PlayerStatsResponse):
    """One row of the rankings table."""

    rank: int


class MatchHistoryEntryResponse(BaseModel):
    """One completed match from a player's point of view."""

    match_id: int
    match_title: Optional[str] = None
    result: Literal["win", "loss"]
    team: Literal["team1", "team2"]
    position: Optional[Literal["first", "second"]] = None
    partner_id: Optional[int] = None
    opponent_ids: List[int] = []
    score: Optional[dict] = None
    played_at: Optional[str] = None
    group_id: Optional[int] = None


# ============================================================================
# Matches
# ============================================================================


class CreateMatchRequest(BaseModel):
    """
    Request to create a new match. The creator is seated in team1.

    scheduled_at should carry a UTC offset; naive values are read as UTC.
    """

    title: str = Field(min_length=1, max_length=40)
    location: str = Field(min_length=1)
    scheduled_at: datetime
    players_needed: int = 4
    level: Literal["Beginner", "Intermediate", "Advanced"] = "Intermediate"
    age_range: Optional[str] = None
    description: Optional[str] = None
    group_id: Optional[int] = None


class JoinMatchRequest(BaseModel):
    """Request to join a team. If position is taken the other free one is used."""

    team: Literal["team1", "team2"]
    position: Optional[Literal["first", "second"]] = None


class SubmitScoreRequest(BaseModel):
    """
    Request to add the result of a match.

    set3 may be omitted or sent as 0-0 when only two sets were played.
    winner is optional; when given it must match the sets.
    """

    set1: SetScore
    set2: SetScore
    set3: Optional[SetScore] = None
    winner: Optional[Literal["team1", "team2"]] = None

    def to_score(self) -> Score:
        return Score(set1=self.set1, set2=self.set2, set3=self.set3, winner=self.winner)


class MatchResponse(BaseModel):
    """Match data as returned by every match endpoint."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    title: str
    location: str
    description: Optional[str] = None
    level: Optional[str] = None
    age_range: Optional[str] = None
    scheduled_at: str
    players_needed: int
    team1: List[int]
    team2: List[int]
    players: List[int]
    status: Literal["open", "full", "cancelled", "completed"]
    score: Optional[dict] = None
    submitted_by: Optional[int] = None
    confirmed_by: List[int] = []
    results_applied: bool = False
    cancelled_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_by: int
    group_id: Optional[int] = None
    created_at: Optional[str] = None


# ============================================================================
# Groups
# ============================================================================


class CreateGroupRequest(BaseModel):
    """Request to create a group. The creator becomes its admin and first member."""

    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    is_private: bool = False


class GroupResponse(BaseModel):
    """Group with its member ids."""

    id: int
    name: str
    description: Optional[str] = None
    is_private: bool
    admin_id: int
    members: List[int]
    created_at: Optional[str] = None


class GroupRankingEntryResponse(BaseModel):
    """One member in a group's ranking, counting only that group's matches."""

    rank: int
    user_id: int
    username: Optional[str] = None
    points: int
    matches_played: int
    wins: int
    losses: int


# ============================================================================
# Medals
# ============================================================================


class MedalDefinitionResponse(BaseModel):
    """Catalog entry."""

    id: str
    name: str
    description: str
    icon: str
    type: str
    requirement: dict


class UserMedalResponse(MedalDefinitionResponse):
    """Catalog entry merged with one user's progress."""

    progress: int
    unlocked: bool
    unlocked_at: Optional[str] = None
    last_updated: Optional[str] = None


# ============================================================================
# Notification schemas
# ============================================================================


class NotificationResponse(BaseModel):
    """Notification response."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    type: str
    match_id: Optional[int] = None
    match_title: Optional[str] = None
    title: str
    message: str
    data: Optional[dict] = None
    is_read: bool
    read_at: Optional[str] = None
    created_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    """Paginated notification list response."""

    notifications: List[NotificationResponse]
    total_count: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    """Unread notification count response."""

    count: int
