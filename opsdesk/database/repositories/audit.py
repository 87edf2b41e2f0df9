"""
Audit log repository for tracking all changes.

Every accessor write appends entries in the same session as the write:
- What changed (field, old value, new value)
- Who changed it
- When it changed
- A snapshot of the row for creates and deletes

Soft deletes keep the rows; the audit trail keeps how they got there.
"""

import logging
import json
from typing import Optional, List, Dict, Any
from datetime import date, datetime, timedelta
from enum import Enum

from sqlalchemy import select, and_, inspect
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import get_database
from ..models import AuditLogDB
from ...models.records import AuditEntry
from ...utils.errors import backend_errors
from ...utils.permissions import UserContext, require_superadmin

logger = logging.getLogger(__name__)


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def row_snapshot(row: Any, exclude: tuple = ()) -> Dict[str, Any]:
    """Column values of a mapped row, JSON-safe."""
    snapshot = {}
    for attr in inspect(row).mapper.column_attrs:
        if attr.key in exclude:
            continue
        value = getattr(row, attr.key)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        snapshot[attr.key] = value
    return snapshot


async def record_audit(
    session: AsyncSession,
    ctx: UserContext,
    action: str,
    entity_type: str,
    entity_id: Any,
    field_changed: Optional[str] = None,
    old_value: Any = None,
    new_value: Any = None,
    reason: Optional[str] = None,
    snapshot: Optional[Dict[str, Any]] = None,
) -> AuditLogDB:
    """Append an audit entry inside the caller's session."""
    entry = AuditLogDB(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        field_changed=field_changed,
        old_value=_to_text(old_value),
        new_value=_to_text(new_value),
        changed_by=str(ctx.user_id),
        reason=reason,
        source="api",
        snapshot=snapshot,
    )
    session.add(entry)
    logger.debug(f"Audit log: {action} on {entity_type}/{entity_id} by {ctx.user_id}")
    return entry


def _to_entry(row: AuditLogDB) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        action=row.action,
        field_changed=row.field_changed,
        old_value=row.old_value,
        new_value=row.new_value,
        changed_by=row.changed_by,
        timestamp=row.timestamp,
        snapshot=row.snapshot,
    )


class AuditRepository:
    """Read side of the audit trail."""

    def __init__(self):
        self.db = get_database()

    async def get_entity_history(
        self,
        ctx: UserContext,
        entity_type: str,
        entity_id: Any,
    ) -> List[AuditEntry]:
        """Full history of one record, newest first."""
        require_superadmin(ctx, "view audit history")
        with backend_errors("load audit history"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(AuditLogDB)
                    .where(
                        and_(
                            AuditLogDB.entity_type == entity_type,
                            AuditLogDB.entity_id == str(entity_id),
                        )
                    )
                    .order_by(AuditLogDB.timestamp.desc(), AuditLogDB.id.desc())
                )
                return [_to_entry(row) for row in result.scalars().all()]

    async def get_user_activity(
        self,
        ctx: UserContext,
        user_id: int,
        days: int = 7,
    ) -> List[AuditEntry]:
        """Recent changes made by a user. Users may read their own activity."""
        if user_id != ctx.user_id:
            require_superadmin(ctx, "view other users' activity")
        since = datetime.now() - timedelta(days=days)
        with backend_errors("load user activity"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(AuditLogDB)
                    .where(
                        and_(
                            AuditLogDB.changed_by == str(user_id),
                            AuditLogDB.timestamp >= since,
                        )
                    )
                    .order_by(AuditLogDB.timestamp.desc(), AuditLogDB.id.desc())
                )
                return [_to_entry(row) for row in result.scalars().all()]

    async def get_recent_logs(
        self,
        ctx: UserContext,
        limit: int = 50,
        action_filter: Optional[str] = None,
    ) -> List[AuditEntry]:
        """Get recent audit logs."""
        require_superadmin(ctx, "view audit logs")
        with backend_errors("load audit logs"):
            async with self.db.session() as session:
                query = select(AuditLogDB)

                if action_filter:
                    query = query.where(AuditLogDB.action == action_filter)

                query = query.order_by(AuditLogDB.timestamp.desc(), AuditLogDB.id.desc()).limit(limit)
                result = await session.execute(query)
                return [_to_entry(row) for row in result.scalars().all()]
