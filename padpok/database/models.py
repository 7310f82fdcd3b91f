"""
SQLAlchemy ORM models for the padel match system.
"""

from typing import List
import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    JSON,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from padpok.database.db import Base


class MatchStatus(str, enum.Enum):
    """Match lifecycle status."""

    OPEN = "open"
    FULL = "full"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class MatchLevel(str, enum.Enum):
    """Skill level a match is aimed at."""

    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    MATCH_FULL = "match_full"
    RESULT_ADDED = "result_added"
    RESULT_CONFIRMED = "result_confirmed"
    ADD_RESULT = "add_result"
    MATCH_CANCELLED = "match_cancelled"


TEAM_SLOT_COLUMNS = [
    "team1_player1_id",
    "team1_player2_id",
    "team2_player1_id",
    "team2_player2_id",
]
"""The four slot columns on the Match table that reference users."""


class User(Base):
    """Player accounts."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    stats = relationship("PlayerStats", back_populates="user", uselist=False)
    medals = relationship("UserMedal", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_users_username", "username"),)


class Group(Base):
    """Player groups that organize their own matches and keep their own ranking."""

    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    is_private = Column(Boolean, default=False, nullable=False)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    admin = relationship("User", foreign_keys=[admin_id])

    __table_args__ = (Index("idx_groups_name", "name"),)


class GroupMember(Base):
    """Group membership (the admin is a member too)."""

    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        Index("idx_group_members_user", "user_id"),
    )


class Match(Base):
    """Ad-hoc doubles matches, from signup to result."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(40), nullable=False)
    location = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    level = Column(Enum(MatchLevel), default=MatchLevel.INTERMEDIATE, nullable=False)
    age_range = Column(String, nullable=True)  # e.g. "18-30", "+45", "all"
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    players_needed = Column(Integer, default=4, nullable=False)
    team1_player1_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    team1_player2_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    team2_player1_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    team2_player2_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(Enum(MatchStatus), default=MatchStatus.OPEN, nullable=False)
    score = Column(JSON, nullable=True)  # {"set1": {...}, "set2": {...}, "set3": {...}, "winner": "team1"}
    submitted_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    confirmed_by = Column(JSON, nullable=True)  # list of user ids
    results_applied = Column(Boolean, default=False, nullable=False)
    result_reminder_sent = Column(Boolean, default=False, nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)  # NULL for open matches
    version = Column(Integer, default=1, nullable=False)  # bumped by every conditional update
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    creator = relationship("User", foreign_keys=[created_by], backref="created_matches")

    @property
    def team1_ids(self) -> List[int]:
        """Get team1 member ids in position order."""
        return [pid for pid in (self.team1_player1_id, self.team1_player2_id) if pid is not None]

    @property
    def team2_ids(self) -> List[int]:
        """Get team2 member ids in position order."""
        return [pid for pid in (self.team2_player1_id, self.team2_player2_id) if pid is not None]

    @property
    def player_ids(self) -> List[int]:
        """Get every participant id (the roster)."""
        return self.team1_ids + self.team2_ids

    __table_args__ = (
        CheckConstraint("players_needed BETWEEN 2 AND 4", name="ck_matches_players_needed"),
        Index("idx_matches_status_scheduled", "status", "scheduled_at"),
        Index("idx_matches_created_by", "created_by"),
        Index("idx_matches_group_scheduled", "group_id", "scheduled_at"),
    )


class PlayerStats(Base):
    """Per-user points/win/loss/streak ledger."""

    __tablename__ = "player_stats"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    points = Column(Integer, default=0, nullable=False)
    matches_played = Column(Integer, default=0, nullable=False)
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    best_streak = Column(Integer, default=0, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="stats")

    __table_args__ = (
        Index("idx_player_stats_points", "points"),
    )


class UserMedal(Base):
    """Progress of one user towards one medal."""

    __tablename__ = "user_medals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    medal_id = Column(String(50), nullable=False)  # MedalDefinition.id from the catalog
    progress = Column(Integer, default=0, nullable=False)
    unlocked = Column(Boolean, default=False, nullable=False)
    unlocked_at = Column(DateTime(timezone=True), nullable=True)
    win_streak = Column(Integer, default=0, nullable=False)  # current streak, win_streak medals
    unique_players = Column(JSON, nullable=True)  # ids met so far, unique_players medals
    weekend_matches = Column(Integer, default=0, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, default=1, nullable=False)

    user = relationship("User", back_populates="medals")

    __table_args__ = (
        UniqueConstraint("user_id", "medal_id", name="uq_user_medals_user_medal"),
        Index("idx_user_medals_user", "user_id"),
    )


class MatchResultApplication(Base):
    """Marks that a completed match has been credited to one participant."""

    __tablename__ = "match_result_applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    applied_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_result_applications_match_user"),
    )


class MatchHistory(Base):
    """One row per participant per completed match."""

    __tablename__ = "match_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    result = Column(String(10), nullable=False)  # 'win' or 'loss'
    team = Column(String(10), nullable=False)  # 'team1' or 'team2'
    position = Column(String(10), nullable=True)  # 'first' or 'second'
    partner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    opponent_ids = Column(JSON, nullable=True)
    score = Column(JSON, nullable=True)
    played_at = Column(DateTime(timezone=True), nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_match_history_match_user"),
        Index("idx_match_history_user_played", "user_id", "played_at"),
        Index("idx_match_history_group", "group_id"),
    )


class Notification(Base):
    """User notifications about match events."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)  # NotificationType enum value
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=True)
    match_title = Column(String(255), nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(Text, nullable=True)  # JSON string for flexible metadata (score, reason, etc.)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", backref="notifications")

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "created_at"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )
