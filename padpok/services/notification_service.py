"""
Notification service for match events.

Handles creation, retrieval, and status updates for in-app notifications,
plus the dispatcher the match engine calls after a state change. Dispatch
is fire-and-forget: a failure is logged and never undoes the change that
triggered it.
"""

from typing import List, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_
from padpok.database.models import Notification, NotificationType
from padpok.models.match_state import MatchState
from padpok.services.exceptions import NotFoundError
from padpok.utils.datetime_utils import utcnow, isoformat_or_none
import json
import logging

logger = logging.getLogger(__name__)

NOTIFICATION_TEXT = {
    NotificationType.MATCH_FULL.value: (
        "Match full",
        'Everyone is in for "{match_title}". See you on court!',
    ),
    NotificationType.RESULT_ADDED.value: (
        "Result added",
        'A result was added for "{match_title}". Check it and confirm.',
    ),
    NotificationType.RESULT_CONFIRMED.value: (
        "Result confirmed",
        'A player confirmed the result of "{match_title}".',
    ),
    NotificationType.ADD_RESULT.value: (
        "Add the result",
        '"{match_title}" has finished. Add the result so it counts for the ranking.',
    ),
    NotificationType.MATCH_CANCELLED.value: (
        "Match cancelled",
        '"{match_title}" was cancelled: {reason}',
    ),
}


def _notification_to_dict(notif: Notification) -> Dict:
    return {
        "id": notif.id,
        "user_id": notif.user_id,
        "type": notif.type,
        "match_id": notif.match_id,
        "match_title": notif.match_title,
        "title": notif.title,
        "message": notif.message,
        "data": json.loads(notif.data) if notif.data else None,
        "is_read": notif.is_read,
        "read_at": isoformat_or_none(notif.read_at),
        "created_at": isoformat_or_none(notif.created_at),
    }


async def create_notification(
    session: AsyncSession,
    user_id: int,
    type: str,
    title: str,
    message: str,
    match_id: Optional[int] = None,
    match_title: Optional[str] = None,
    data: Optional[Dict] = None,
) -> Dict:
    """
    Create a single notification for a user. Flushes, does not commit.

    Args:
        session: Database session
        user_id: ID of the user to notify
        type: Notification type (NotificationType enum value)
        title: Notification title
        message: Notification message text
        match_id: Optional match the notification is about
        match_title: Optional match title, denormalized for display
        data: Optional JSON metadata (dict will be serialized to JSON string)

    Returns:
        Dict containing the created notification data

    Raises:
        ValueError: If required fields are missing or invalid
    """
    if not user_id:
        raise ValueError("user_id is required")
    if not type:
        raise ValueError("type is required")
    if not title:
        raise ValueError("title is required")
    if not message:
        raise ValueError("message is required")

    notification = Notification(
        user_id=user_id,
        type=type,
        match_id=match_id,
        match_title=match_title,
        title=title,
        message=message,
        data=json.dumps(data) if data is not None else None,
        is_read=False,
    )

    session.add(notification)
    await session.flush()
    await session.refresh(notification)
    return _notification_to_dict(notification)


async def get_user_notifications(
    session: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False
) -> Dict:
    """
    Fetch user notifications with pagination.

    Returns:
        Dict containing:
            - notifications: List of notification dicts (newest first)
            - total_count: Total number of notifications matching the criteria
            - has_more: Boolean indicating if there are more notifications
    """
    query = select(Notification).where(Notification.user_id == user_id)

    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await session.execute(count_query)
    total_count = total_result.scalar_one() or 0

    query = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(query)
    notification_dicts = [_notification_to_dict(notif) for notif in result.scalars().all()]

    return {
        "notifications": notification_dicts,
        "total_count": total_count,
        "has_more": (offset + len(notification_dicts)) < total_count,
    }


async def get_unread_count(session: AsyncSession, user_id: int) -> int:
    """Get count of unread notifications for a user."""
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read == False  # noqa: E712
            )
        )
    )
    return result.scalar_one() or 0


async def mark_as_read(session: AsyncSession, notification_id: int, user_id: int) -> Dict:
    """
    Mark a single notification as read.

    Raises:
        NotFoundError: If notification not found or doesn't belong to user
    """
    result = await session.execute(
        select(Notification).where(
            and_(
                Notification.id == notification_id,
                Notification.user_id == user_id
            )
        )
    )
    notification = result.scalar_one_or_none()

    if not notification:
        raise NotFoundError("Notification not found or access denied")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await session.flush()
        await session.refresh(notification)

    return _notification_to_dict(notification)


async def mark_all_as_read(session: AsyncSession, user_id: int) -> int:
    """Mark all user notifications as read; returns how many changed."""
    result = await session.execute(
        update(Notification)
        .where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read == False  # noqa: E712
            )
        )
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return result.rowcount or 0


class NotificationDispatcher:
    """
    Sends match notices.

    notify() matches the collaborator contract used by the match engine:
    (kind, match_id, match_title, recipient_id, payload).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def notify(
        self,
        kind: str,
        match_id: Optional[int],
        match_title: str,
        recipient_id: int,
        payload: Optional[Dict] = None,
    ) -> Optional[Dict]:
        title, template = NOTIFICATION_TEXT[kind]
        message = template.format(match_title=match_title, **(payload or {}))
        return await create_notification(
            self.session,
            user_id=recipient_id,
            type=kind,
            title=title,
            message=message,
            match_id=match_id,
            match_title=match_title,
            data=payload,
        )

    async def notify_many(
        self,
        kind: str,
        match_id: Optional[int],
        match_title: str,
        recipient_ids: List[int],
        payload: Optional[Dict] = None,
    ) -> int:
        """
        Notify several users and commit. Never raises.

        Returns:
            Number of notifications created (0 on failure)
        """
        if not recipient_ids:
            return 0
        try:
            for recipient_id in recipient_ids:
                await self.notify(kind, match_id, match_title, recipient_id, payload)
            await self.session.commit()
            return len(recipient_ids)
        except Exception as e:
            logger.warning(f"Failed to send {kind} notifications for match {match_id}: {e}")
            try:
                await self.session.rollback()
            except Exception as rollback_error:
                logger.warning(f"Rollback after failed {kind} notification also failed: {rollback_error}")
            return 0


#
# Business logic helpers for the match lifecycle
#

async def notify_match_full(dispatcher: NotificationDispatcher, state: MatchState) -> int:
    """Tell every participant that the roster is complete."""
    return await dispatcher.notify_many(
        NotificationType.MATCH_FULL.value, state.id, state.title, state.roster.members, {}
    )


async def notify_result_added(
    dispatcher: NotificationDispatcher, state: MatchState, submitted_by: int
) -> int:
    """Tell every participant except the submitter that a result was added."""
    recipients = [pid for pid in state.roster.members if pid != submitted_by]
    return await dispatcher.notify_many(
        NotificationType.RESULT_ADDED.value,
        state.id,
        state.title,
        recipients,
        {"score": state.score.model_dump() if state.score else None},
    )


async def notify_result_confirmed(
    dispatcher: NotificationDispatcher, state: MatchState, confirmed_by: int
) -> int:
    """Tell every other participant that someone confirmed the result."""
    recipients = [pid for pid in state.roster.members if pid != confirmed_by]
    return await dispatcher.notify_many(
        NotificationType.RESULT_CONFIRMED.value,
        state.id,
        state.title,
        recipients,
        {"confirmed_by": confirmed_by},
    )


async def notify_add_result(dispatcher: NotificationDispatcher, state: MatchState) -> int:
    """Remind every participant to add the result of a finished match."""
    return await dispatcher.notify_many(
        NotificationType.ADD_RESULT.value, state.id, state.title, state.roster.members, {}
    )


async def notify_match_cancelled(
    dispatcher: NotificationDispatcher, state: MatchState, reason: str
) -> int:
    """Tell the creator their match was cancelled."""
    return await dispatcher.notify_many(
        NotificationType.MATCH_CANCELLED.value,
        state.id,
        state.title,
        [state.created_by],
        {"reason": reason},
    )
