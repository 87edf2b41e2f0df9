"""
Fire-and-forget notification sink.

Accessors queue notifications while their session is open and dispatch
them only after it commits, so a rolled-back write never notifies anyone.
Delivery runs as a tracked background task; a failure is logged and never
reaches the accessor's caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..database.connection import Database, get_database
from ..database.models import NotificationDB
from ..utils.background_tasks import create_safe_task

logger = logging.getLogger(__name__)


@dataclass
class PendingNotification:
    """A notification waiting for its write to commit."""
    user_id: int
    type: str
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationSink:
    """Persists in-app notifications in the background."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def notify(
        self,
        user_id: Optional[int],
        type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[asyncio.Task]:
        """Schedule delivery. Returns the background task, or None when there is no recipient."""
        if not user_id:
            return None
        return create_safe_task(
            self.deliver(user_id, type, title, message, data),
            f"notify-{type}-{user_id}",
        )

    def dispatch(self, pending: Iterable[PendingNotification]) -> List[asyncio.Task]:
        """Schedule every queued notification."""
        tasks = []
        for item in pending:
            task = self.notify(item.user_id, item.type, item.title, item.message, item.data)
            if task is not None:
                tasks.append(task)
        return tasks

    async def deliver(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Write one notification row and return its id."""
        async with self.db.session() as session:
            notification = NotificationDB(
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                data=data or {},
            )
            session.add(notification)
            await session.flush()
            logger.debug(f"Notification {type} queued for user {user_id}")
            return notification.id
