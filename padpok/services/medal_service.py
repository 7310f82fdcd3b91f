"""
Medal (achievement) engine.

Medal requirements are a tagged union over six kinds. evaluate_medal()
applies one completed match to one medal's progress; unlocking is a one-way
latch, and unlocked medals are never evaluated again.
"""

from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union, get_args
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from padpok.database.models import UserMedal
from padpok.database.store import DocumentStore
from padpok.utils.constants import MORNING_BEFORE_HOUR, NIGHT_FROM_HOUR
from padpok.utils.datetime_utils import isoformat_or_none

logger = logging.getLogger(__name__)


# ============================================================================
# Requirement kinds
# ============================================================================

class MatchesPlayedRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["matches_played"] = "matches_played"
    value: int


class WinsRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["wins"] = "wins"
    value: int


class WinStreakRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["win_streak"] = "win_streak"
    value: int


class UniquePlayersRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["unique_players"] = "unique_players"
    value: int


class TimeOfDayRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["time_of_day"] = "time_of_day"
    time_of_day: Literal["morning", "night"]
    value: int = 1


class WeekendMatchesRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["weekend_matches"] = "weekend_matches"
    value: int


MedalRequirement = Annotated[
    Union[
        MatchesPlayedRequirement,
        WinsRequirement,
        WinStreakRequirement,
        UniquePlayersRequirement,
        TimeOfDayRequirement,
        WeekendMatchesRequirement,
    ],
    Field(discriminator="kind"),
]


class MedalDefinition(BaseModel):
    """Static medal metadata plus its unlock requirement."""

    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    description: str
    icon: str
    type: Literal["single", "progressive"]
    requirement: MedalRequirement


MEDAL_CATALOG: List[MedalDefinition] = [
    MedalDefinition(
        id="first_match",
        name="First Match",
        description="Play your first match",
        icon="trophy",
        type="single",
        requirement=MatchesPlayedRequirement(value=1),
    ),
    MedalDefinition(
        id="win_streak_3",
        name="Winning Streak",
        description="Win 3 matches in a row",
        icon="flame",
        type="progressive",
        requirement=WinStreakRequirement(value=3),
    ),
    MedalDefinition(
        id="social_butterfly",
        name="Social Butterfly",
        description="Play with 5 different players",
        icon="people",
        type="progressive",
        requirement=UniquePlayersRequirement(value=5),
    ),
    MedalDefinition(
        id="early_bird",
        name="Early Bird",
        description="Play a match before 9 AM",
        icon="sunny",
        type="single",
        requirement=TimeOfDayRequirement(time_of_day="morning"),
    ),
    MedalDefinition(
        id="night_owl",
        name="Night Owl",
        description="Play a match after 10 PM",
        icon="moon",
        type="single",
        requirement=TimeOfDayRequirement(time_of_day="night"),
    ),
    MedalDefinition(
        id="weekend_warrior",
        name="Weekend Warrior",
        description="Play 5 matches on a weekend",
        icon="calendar",
        type="progressive",
        requirement=WeekendMatchesRequirement(value=5),
    ),
]


# ============================================================================
# Progress and match outcome
# ============================================================================

class MedalProgress(BaseModel):
    """Progress of one user towards one medal."""

    model_config = ConfigDict(frozen=True)
    medal_id: str
    progress: int = 0
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    win_streak: int = 0
    unique_players: List[int] = []
    weekend_matches: int = 0
    last_updated: Optional[datetime] = None


class MatchOutcome(BaseModel):
    """What one participant experienced in one completed match."""

    model_config = ConfigDict(frozen=True)
    match_id: int
    user_id: int
    team: str
    won: bool
    partner_ids: List[int] = []
    opponent_ids: List[int] = []
    local_start: datetime  # match start in the match timezone

    @property
    def other_player_ids(self) -> List[int]:
        return [pid for pid in self.partner_ids + self.opponent_ids if pid != self.user_id]


# ============================================================================
# Per-kind transforms
# ============================================================================

def _matches_played(req: MatchesPlayedRequirement, p: MedalProgress, o: MatchOutcome) -> dict:
    return {"progress": p.progress + 1}


def _wins(req: WinsRequirement, p: MedalProgress, o: MatchOutcome) -> dict:
    return {"progress": p.progress + 1} if o.won else {}


def _win_streak(req: WinStreakRequirement, p: MedalProgress, o: MatchOutcome) -> dict:
    # progress keeps the best streak ever seen, win_streak the current one
    if o.won:
        streak = p.win_streak + 1
        return {"win_streak": streak, "progress": max(p.progress, streak)}
    return {"win_streak": 0}


def _unique_players(req: UniquePlayersRequirement, p: MedalProgress, o: MatchOutcome) -> dict:
    seen = list(p.unique_players)
    for pid in o.other_player_ids:
        if pid not in seen:
            seen.append(pid)
    return {"unique_players": seen, "progress": len(seen)}


def _time_of_day(req: TimeOfDayRequirement, p: MedalProgress, o: MatchOutcome) -> dict:
    hour = o.local_start.hour
    if req.time_of_day == "morning" and hour < MORNING_BEFORE_HOUR:
        return {"progress": 1}
    if req.time_of_day == "night" and hour >= NIGHT_FROM_HOUR:
        return {"progress": 1}
    return {}


def _weekend_matches(req: WeekendMatchesRequirement, p: MedalProgress, o: MatchOutcome) -> dict:
    if o.local_start.weekday() >= 5:  # Saturday=5, Sunday=6
        count = p.weekend_matches + 1
        return {"weekend_matches": count, "progress": p.progress + 1}
    return {}


_TRANSFORMS = {
    MatchesPlayedRequirement: _matches_played,
    WinsRequirement: _wins,
    WinStreakRequirement: _win_streak,
    UniquePlayersRequirement: _unique_players,
    TimeOfDayRequirement: _time_of_day,
    WeekendMatchesRequirement: _weekend_matches,
}

# Every member of the MedalRequirement union must have a transform
_REQUIREMENT_KINDS = get_args(get_args(MedalRequirement)[0])
if set(_REQUIREMENT_KINDS) != set(_TRANSFORMS):
    raise RuntimeError("Medal requirement kind without a transform")


def evaluate_medal(
    definition: MedalDefinition,
    progress: Optional[MedalProgress],
    outcome: MatchOutcome,
    now: datetime,
) -> MedalProgress:
    """
    Apply one match outcome to one medal.

    Args:
        definition: Medal being evaluated
        progress: Stored progress, or None when the user has none yet
        outcome: The participant's view of the completed match
        now: Evaluation time (stored as last_updated / unlocked_at)

    Returns:
        The new progress. Already-unlocked progress is returned unchanged.
    """
    if progress is None:
        progress = MedalProgress(medal_id=definition.id)
    if progress.unlocked:
        return progress

    requirement = definition.requirement
    transform = _TRANSFORMS.get(type(requirement))
    if transform is None:
        raise TypeError(f"Unhandled medal requirement: {requirement!r}")

    changes = transform(requirement, progress, outcome)
    changes["last_updated"] = now
    updated = progress.model_copy(update=changes)
    if updated.progress >= requirement.value:
        updated = updated.model_copy(update={"unlocked": True, "unlocked_at": now})
    return updated


def evaluate_medals(
    catalog: List[MedalDefinition],
    progress_by_medal: Dict[str, MedalProgress],
    outcome: MatchOutcome,
    now: datetime,
) -> Dict[str, MedalProgress]:
    """Evaluate every locked medal; returns only the medals that were touched."""
    touched = {}
    for definition in catalog:
        current = progress_by_medal.get(definition.id)
        if current is not None and current.unlocked:
            continue
        touched[definition.id] = evaluate_medal(definition, current, outcome, now)
    return touched


def get_medal_definition(medal_id: str) -> Optional[MedalDefinition]:
    for definition in MEDAL_CATALOG:
        if definition.id == medal_id:
            return definition
    return None


# ============================================================================
# Persistence
# ============================================================================

def _row_to_progress(row: UserMedal) -> MedalProgress:
    return MedalProgress(
        medal_id=row.medal_id,
        progress=row.progress,
        unlocked=row.unlocked,
        unlocked_at=row.unlocked_at,
        win_streak=row.win_streak,
        unique_players=list(row.unique_players or []),
        weekend_matches=row.weekend_matches,
        last_updated=row.last_updated,
    )


def _progress_values(progress: MedalProgress) -> dict:
    return {
        "progress": progress.progress,
        "unlocked": progress.unlocked,
        "unlocked_at": progress.unlocked_at,
        "win_streak": progress.win_streak,
        "unique_players": list(progress.unique_players),
        "weekend_matches": progress.weekend_matches,
        "last_updated": progress.last_updated,
    }


async def _load_user_medal_rows(session: AsyncSession, user_id: int) -> Dict[str, UserMedal]:
    store = DocumentStore(session)
    rows = await store.query(UserMedal, UserMedal.user_id == user_id)
    return {row.medal_id: row for row in rows}


class StaleMedalProgress(Exception):
    """Raised inside a result application when a medal row changed underneath us."""


async def apply_outcome_to_medals(
    session: AsyncSession,
    outcome: MatchOutcome,
    now: datetime,
    catalog: Optional[List[MedalDefinition]] = None,
) -> List[str]:
    """
    Evaluate and persist medal progress for one participant. Does not commit.

    Existing rows are written with a version-checked update, so two matches
    finishing at once for the same user cannot lose each other's progress.

    Returns:
        Ids of medals unlocked by this outcome

    Raises:
        StaleMedalProgress: If a concurrent writer updated one of the rows
    """
    catalog = catalog or MEDAL_CATALOG
    store = DocumentStore(session)
    rows = await _load_user_medal_rows(session, outcome.user_id)
    current = {medal_id: _row_to_progress(row) for medal_id, row in rows.items()}

    touched = evaluate_medals(catalog, current, outcome, now)
    newly_unlocked = []
    for medal_id, progress in touched.items():
        row = rows.get(medal_id)
        if row is None:
            await store.put(UserMedal(user_id=outcome.user_id, medal_id=medal_id, **_progress_values(progress)))
        else:
            updated = await store.conditional_update(
                UserMedal, row.id, row.version, **_progress_values(progress)
            )
            if not updated:
                raise StaleMedalProgress(f"user_medals row {row.id} changed concurrently")
        if progress.unlocked and not current.get(medal_id, MedalProgress(medal_id=medal_id)).unlocked:
            newly_unlocked.append(medal_id)

    if newly_unlocked:
        logger.info(f"User {outcome.user_id} unlocked medals {newly_unlocked} in match {outcome.match_id}")
    return newly_unlocked


async def get_user_medals(session: AsyncSession, user_id: int) -> List[Dict]:
    """
    List the whole catalog with the user's progress merged in.

    Medals with no stored progress are reported as locked with progress 0.
    """
    rows = await _load_user_medal_rows(session, user_id)
    medals = []
    for definition in MEDAL_CATALOG:
        row = rows.get(definition.id)
        progress = _row_to_progress(row) if row else MedalProgress(medal_id=definition.id)
        medals.append({
            "id": definition.id,
            "name": definition.name,
            "description": definition.description,
            "icon": definition.icon,
            "type": definition.type,
            "requirement": definition.requirement.model_dump(),
            "progress": progress.progress,
            "unlocked": progress.unlocked,
            "unlocked_at": isoformat_or_none(progress.unlocked_at),
            "last_updated": isoformat_or_none(progress.last_updated),
        })
    return medals


def get_medal_catalog() -> List[Dict]:
    """Return the static medal catalog as plain dicts."""
    return [definition.model_dump() for definition in MEDAL_CATALOG]
