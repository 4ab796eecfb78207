"""
Notification Record Store: the user's inbox.

Every query is scoped to the owning user. Records are never edited apart
from ``is_read``; the in-app channel is the only writer of new rows.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Notification, NotificationType

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class NotificationStore:
    """Repository over the ``notifications`` table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(
        self,
        user_id: UUID,
        title: str,
        message: str,
        notification_type: NotificationType,
        related_id: UUID | None = None,
        related_type: str | None = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=notification_type,
            related_id=related_id,
            related_type=related_type,
            is_read=False,
        )
        self._session.add(notification)
        await self._session.flush()
        return notification

    async def list_recent(
        self,
        user_id: UUID,
        limit: int = DEFAULT_PAGE_SIZE,
        unread_only: bool = False,
    ) -> list[Notification]:
        """Most recent records for a user, newest first."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        if unread_only:
            query = query.where(Notification.is_read.is_(False))

        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def unread_count(self, user_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def set_read(
        self,
        user_id: UUID,
        notification_ids: Sequence[UUID] | None,
        is_read: bool = True,
    ) -> int:
        """
        Set the read flag on some (or, with ``notification_ids=None``, all)
        of a user's records.

        Rows already in the requested state are left untouched, so repeating
        the call is a no-op and ``updated_at`` does not move.

        Returns:
            Number of rows whose flag actually changed
        """
        stmt = (
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read.is_not(is_read),
            )
            .values(is_read=is_read, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if notification_ids is not None:
            if not notification_ids:
                return 0
            stmt = stmt.where(Notification.id.in_(list(notification_ids)))

        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def delete(self, user_id: UUID, notification_id: UUID) -> bool:
        result = await self._session.execute(
            delete(Notification)
            .where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)
