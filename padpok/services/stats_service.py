"""
Stats ledger and rankings.

Each completed match credits every participant once: +3 points and a win
for the winners, +1 point and a loss for the losers. Counters only grow;
the streak resets on a loss.
"""

from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from padpok.database.models import PlayerStats, User
from padpok.database.store import DocumentStore
from padpok.services.exceptions import NotFoundError, ValidationError
from padpok.utils.constants import POINTS_PER_LOSS, POINTS_PER_WIN

logger = logging.getLogger(__name__)

RANKING_SORT_KEYS = ("points", "matches_played", "wins")


class StatsEntry:
    """Encapsulates the ledger counters for a single player."""

    def __init__(
        self,
        user_id: int,
        points: int = 0,
        matches_played: int = 0,
        wins: int = 0,
        losses: int = 0,
        current_streak: int = 0,
        best_streak: int = 0,
    ):
        self.user_id = user_id
        self.points = points
        self.matches_played = matches_played
        self.wins = wins
        self.losses = losses
        self.current_streak = current_streak
        self.best_streak = best_streak

    @classmethod
    def from_row(cls, row: PlayerStats) -> "StatsEntry":
        return cls(
            user_id=row.user_id,
            points=row.points,
            matches_played=row.matches_played,
            wins=row.wins,
            losses=row.losses,
            current_streak=row.current_streak,
            best_streak=row.best_streak,
        )

    @property
    def win_rate(self) -> float:
        """Calculate overall win rate."""
        if self.matches_played == 0:
            return 0.0
        return self.wins / self.matches_played

    def record_result(self, won: bool) -> "StatsEntry":
        """Return a new entry with one match result applied."""
        entry = StatsEntry(**self.to_values(), user_id=self.user_id)
        entry.matches_played += 1
        if won:
            entry.points += POINTS_PER_WIN
            entry.wins += 1
            entry.current_streak += 1
            entry.best_streak = max(entry.best_streak, entry.current_streak)
        else:
            entry.points += POINTS_PER_LOSS
            entry.losses += 1
            entry.current_streak = 0
        return entry

    def to_values(self) -> Dict[str, int]:
        """Column values as persisted on PlayerStats."""
        return {
            "points": self.points,
            "matches_played": self.matches_played,
            "wins": self.wins,
            "losses": self.losses,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
        }

    def to_dict(self) -> Dict:
        return {"user_id": self.user_id, **self.to_values(), "win_rate": round(self.win_rate, 3)}


class StaleStatsEntry(Exception):
    """Raised inside a result application when the stats row changed underneath us."""


async def record_match_result(session: AsyncSession, user_id: int, won: bool) -> StatsEntry:
    """
    Credit one match result to a user's ledger entry. Does not commit.

    The row is created lazily; updates are version-checked so results from
    overlapping matches are never lost.

    Raises:
        StaleStatsEntry: If a concurrent writer updated the row first
    """
    store = DocumentStore(session)
    row = await store.get(PlayerStats, user_id)
    if row is None:
        entry = StatsEntry(user_id=user_id).record_result(won)
        await store.put(PlayerStats(user_id=user_id, **entry.to_values()))
        return entry

    entry = StatsEntry.from_row(row).record_result(won)
    updated = await store.conditional_update(PlayerStats, user_id, row.version, **entry.to_values())
    if not updated:
        raise StaleStatsEntry(f"player_stats row for user {user_id} changed concurrently")
    return entry


async def get_player_stats(session: AsyncSession, user_id: int) -> Dict:
    """
    Get a user's ledger entry (zeros if they have not played yet).

    Raises:
        NotFoundError: If the user does not exist
    """
    store = DocumentStore(session)
    user = await store.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    row = await store.get(PlayerStats, user_id)
    entry = StatsEntry.from_row(row) if row else StatsEntry(user_id=user_id)
    return {**entry.to_dict(), "username": user.username}


async def get_rankings(
    session: AsyncSession,
    sort_by: str = "points",
    limit: Optional[int] = 50,
) -> List[Dict]:
    """
    Rank players by a ledger counter.

    Args:
        session: Database session
        sort_by: 'points', 'matches_played' or 'wins'
        limit: Maximum number of rows (None for all)

    Returns:
        Ranking rows ordered by the chosen counter (desc), then wins (desc),
        then user id; each row carries its 1-based rank

    Raises:
        ValidationError: If sort_by is not a rankable counter
    """
    if sort_by not in RANKING_SORT_KEYS:
        raise ValidationError(f"Cannot rank by {sort_by!r}; use one of {', '.join(RANKING_SORT_KEYS)}")

    sort_column = getattr(PlayerStats, sort_by)
    query = (
        select(PlayerStats, User.username)
        .join(User, PlayerStats.user_id == User.id)
        .order_by(sort_column.desc(), PlayerStats.wins.desc(), PlayerStats.user_id.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    result = await session.execute(query)

    rankings = []
    for rank, (row, username) in enumerate(result.all(), start=1):
        entry = StatsEntry.from_row(row)
        rankings.append({"rank": rank, "username": username, **entry.to_dict()})
    return rankings
