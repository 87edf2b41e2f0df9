"""Notification inbox repository: list and mark-read for the calling user."""

import logging
from typing import Optional, List

from sqlalchemy import select, update, func

from ..connection import get_database
from ..models import NotificationDB
from ..exceptions import NotFoundError
from ...models.records import Notification
from ...utils.datetime_utils import get_local_now
from ...utils.errors import backend_errors
from ...utils.permissions import UserContext

logger = logging.getLogger(__name__)


def _to_view(row: NotificationDB) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        title=row.title,
        message=row.message,
        data=row.data,
        read=row.read,
        read_at=row.read_at,
        created_at=row.created_at,
    )


class NotificationRepository:
    """Repository for the caller's notifications."""

    def __init__(self):
        self.db = get_database()

    async def list_for_user(
        self,
        ctx: UserContext,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        """Newest first."""
        with backend_errors("list notifications"):
            async with self.db.session() as session:
                query = select(NotificationDB).where(NotificationDB.user_id == ctx.user_id)
                if unread_only:
                    query = query.where(NotificationDB.read.is_(False))
                result = await session.execute(
                    query.order_by(NotificationDB.created_at.desc(), NotificationDB.id.desc()).limit(limit)
                )
                return [_to_view(row) for row in result.scalars().all()]

    async def unread_count(self, ctx: UserContext) -> int:
        with backend_errors("count notifications"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(func.count(NotificationDB.id)).where(
                        NotificationDB.user_id == ctx.user_id,
                        NotificationDB.read.is_(False),
                    )
                )
                return result.scalar() or 0

    async def mark_read(self, ctx: UserContext, notification_id: int) -> Notification:
        """Mark one of the caller's notifications read. Other users' rows are not found."""
        with backend_errors("mark notification read"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(NotificationDB).where(
                        NotificationDB.id == notification_id,
                        NotificationDB.user_id == ctx.user_id,
                    )
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise NotFoundError("notification", notification_id)
                if not row.read:
                    row.read = True
                    row.read_at = get_local_now()
                return _to_view(row)

    async def mark_all_read(self, ctx: UserContext) -> int:
        """Returns the number of notifications marked."""
        with backend_errors("mark notifications read"):
            async with self.db.session() as session:
                result = await session.execute(
                    update(NotificationDB)
                    .where(NotificationDB.user_id == ctx.user_id, NotificationDB.read.is_(False))
                    .values(read=True, read_at=get_local_now())
                )
                count = result.rowcount or 0
        logger.info(f"Marked {count} notifications read for user {ctx.user_id}")
        return count
