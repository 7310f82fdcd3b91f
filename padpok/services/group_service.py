"""
Group service: player groups with their own matches and ranking.

A group is a membership list plus an admin. Matches created with a group_id
belong to that group; only members may create or join them. The group
ranking is computed from match_history rows tagged with the group, so it
never drifts from the results that were actually applied.
"""

from typing import Dict, List, Optional
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from padpok.database.models import Group, GroupMember, Match, MatchHistory, User
from padpok.database.store import DocumentStore
from padpok.services.exceptions import MembershipError, NotFoundError, StateError, ValidationError
from padpok.services.user_service import require_user
from padpok.utils.constants import MAX_GROUP_NAME_LENGTH, POINTS_PER_LOSS, POINTS_PER_WIN
from padpok.utils.datetime_utils import isoformat_or_none

logger = logging.getLogger(__name__)


def _group_to_dict(group: Group, member_ids: List[int]) -> Dict:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "is_private": group.is_private,
        "admin_id": group.admin_id,
        "members": member_ids,
        "created_at": isoformat_or_none(group.created_at),
    }


async def _member_ids(session: AsyncSession, group_id: int) -> List[int]:
    result = await session.execute(
        select(GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.id.asc())
    )
    return list(result.scalars().all())


async def require_group(session: AsyncSession, group_id: int) -> Group:
    """Fetch a group row or raise NotFoundError."""
    group = await DocumentStore(session).get(Group, group_id)
    if group is None:
        raise NotFoundError(f"Group {group_id} not found")
    return group


async def is_member(session: AsyncSession, group_id: int, user_id: int) -> bool:
    result = await session.execute(
        select(GroupMember.id).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def create_group(
    session: AsyncSession,
    admin_id: int,
    name: str,
    description: Optional[str] = None,
    is_private: bool = False,
) -> Dict:
    """
    Create a group; the creator becomes admin and first member.

    Raises:
        ValidationError: Empty or too long name
        NotFoundError: Unknown creator
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Group name is required")
    if len(name) > MAX_GROUP_NAME_LENGTH:
        raise ValidationError(f"Group name must be at most {MAX_GROUP_NAME_LENGTH} characters")

    await require_user(session, admin_id)

    store = DocumentStore(session)
    group = await store.put(Group(
        name=name,
        description=description,
        is_private=is_private,
        admin_id=admin_id,
    ))
    group_id = group.id
    await store.put(GroupMember(group_id=group_id, user_id=admin_id))
    await store.commit()
    logger.info(f"User {admin_id} created group {group_id} ({name})")

    return await get_group(session, group_id)


async def get_group(session: AsyncSession, group_id: int) -> Dict:
    """
    Get a group with its member ids.

    Raises:
        NotFoundError: Unknown group
    """
    group = await require_group(session, group_id)
    return _group_to_dict(group, await _member_ids(session, group_id))


async def list_groups(session: AsyncSession, member_id: Optional[int] = None) -> List[Dict]:
    """
    List groups by name.

    With member_id, only the groups that user belongs to (private ones
    included); otherwise every public group.
    """
    query = select(Group)
    if member_id is not None:
        query = query.join(GroupMember, GroupMember.group_id == Group.id).where(
            GroupMember.user_id == member_id
        )
    else:
        query = query.where(Group.is_private == False)  # noqa: E712
    result = await session.execute(query.order_by(Group.name.asc(), Group.id.asc()))
    groups = list(result.scalars().all())

    return [_group_to_dict(group, await _member_ids(session, group.id)) for group in groups]


async def join_group(session: AsyncSession, group_id: int, user_id: int) -> Dict:
    """
    Add a user to a public group. Joining twice is a no-op.

    Raises:
        NotFoundError: Unknown group or user
        MembershipError: The group is private
    """
    group = await require_group(session, group_id)
    await require_user(session, user_id)
    if await is_member(session, group_id, user_id):
        return await get_group(session, group_id)
    if group.is_private:
        raise MembershipError("This group is private")

    try:
        await DocumentStore(session).put(GroupMember(group_id=group_id, user_id=user_id))
        await session.commit()
        logger.info(f"User {user_id} joined group {group_id}")
    except IntegrityError:
        # Concurrent join of the same user; the unique constraint kept one row
        await session.rollback()
    return await get_group(session, group_id)


async def leave_group(session: AsyncSession, group_id: int, user_id: int) -> Dict:
    """
    Remove a user from a group. Not being a member is a no-op.

    Raises:
        NotFoundError: Unknown group
        StateError: The admin tries to leave
    """
    group = await require_group(session, group_id)
    if group.admin_id == user_id:
        raise StateError("The admin cannot leave the group; delete it instead")

    result = await session.execute(
        delete(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )
    if result.rowcount:
        await session.commit()
        logger.info(f"User {user_id} left group {group_id}")
    return await get_group(session, group_id)


async def delete_group(session: AsyncSession, group_id: int, user_id: int) -> None:
    """
    Delete a group. Its matches and history rows stay, detached from the group.

    Raises:
        NotFoundError: Unknown group
        MembershipError: Caller is not the admin
    """
    group = await require_group(session, group_id)
    if group.admin_id != user_id:
        raise MembershipError("Only the group admin can delete the group")

    await session.execute(
        update(Match).where(Match.group_id == group_id).values(group_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(MatchHistory).where(MatchHistory.group_id == group_id).values(group_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.execute(delete(GroupMember).where(GroupMember.group_id == group_id))
    await session.execute(delete(Group).where(Group.id == group_id))
    await session.commit()
    logger.info(f"User {user_id} deleted group {group_id}")


async def get_group_ranking(session: AsyncSession, group_id: int) -> List[Dict]:
    """
    Rank a group's members by the matches they played in that group.

    Members without group matches are listed with zeros. Former members who
    played group matches keep their place. Ordered by points, then wins
    (both desc), then user id.

    Raises:
        NotFoundError: Unknown group
    """
    await require_group(session, group_id)

    wins = func.sum(case((MatchHistory.result == "win", 1), else_=0))
    result = await session.execute(
        select(MatchHistory.user_id, func.count(MatchHistory.id), wins)
        .where(MatchHistory.group_id == group_id)
        .group_by(MatchHistory.user_id)
    )
    played = {user_id: (int(count), int(won or 0)) for user_id, count, won in result.all()}

    user_ids = set(played) | set(await _member_ids(session, group_id))
    if not user_ids:
        return []
    names = await session.execute(select(User.id, User.username).where(User.id.in_(user_ids)))
    usernames = dict(names.all())

    rows = []
    for user_id in user_ids:
        matches_played, won = played.get(user_id, (0, 0))
        lost = matches_played - won
        rows.append({
            "user_id": user_id,
            "username": usernames.get(user_id),
            "points": won * POINTS_PER_WIN + lost * POINTS_PER_LOSS,
            "matches_played": matches_played,
            "wins": won,
            "losses": lost,
        })
    rows.sort(key=lambda row: (-row["points"], -row["wins"], row["user_id"]))
    return [{"rank": rank, **row} for rank, row in enumerate(rows, start=1)]
