"""
Leave request repository.

Requesters create, edit and cancel their own pending requests. Approvers
(superadmins, HR department members, the requester's direct manager)
approve or reject pending ones. Every decision notifies the requester.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import get_database
from ..models import LeaveRequestDB, ProfileDB
from ..exceptions import ValidationError, NotFoundError, ForbiddenError
from .audit import record_audit, row_snapshot
from .lookups import (
    resolve_profile,
    get_team_member_ids,
    get_hr_member_ids,
    is_hr_member,
    load_profile_summaries,
)
from ...models.api_validation import (
    LeaveRequestCreate,
    LeaveRequestUpdate,
    LeaveDecision,
    LeaveBulkDecision,
    LeaveRequestFilter,
    LeaveSort,
)
from ...models.records import LeaveRequest, LeaveStatus, UserRole, BulkResult
from ...services.notifications import NotificationSink, PendingNotification
from ...utils.datetime_utils import get_local_now, get_local_today, inclusive_days
from ...utils.errors import backend_errors
from ...utils.permissions import UserContext, require_superadmin
from ...utils.validation import parse_input

logger = logging.getLogger(__name__)

ENTITY = "leave_request"

_METADATA_FIELDS = ("coverage_plan", "contact_during_leave", "documents")


def _build_metadata(data: Any, base: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    metadata = dict(base or {})
    for key in _METADATA_FIELDS:
        if key not in data.model_fields_set:
            continue
        value = getattr(data, key)
        if value:
            metadata[key] = value
        else:
            metadata.pop(key, None)
    return metadata or None


def _plural_days(days: int) -> str:
    return f"{days} day{'s' if days != 1 else ''}"


class LeaveRequestRepository:
    """Repository for leave request operations."""

    def __init__(self):
        self.db = get_database()

    # ==================== HELPERS ====================

    def _sink(self) -> NotificationSink:
        return NotificationSink(self.db)

    async def _get_live_row(self, session: AsyncSession, request_id: int) -> LeaveRequestDB:
        result = await session.execute(
            select(LeaveRequestDB).where(
                LeaveRequestDB.id == request_id,
                LeaveRequestDB.deleted_at.is_(None),
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(ENTITY, request_id)
        return row

    async def _can_approve(self, session: AsyncSession, ctx: UserContext, row: LeaveRequestDB) -> bool:
        if ctx.is_superadmin:
            return True
        if await is_hr_member(session, ctx):
            return True
        if ctx.role == UserRole.MANAGER:
            requester = await session.get(ProfileDB, row.user_id)
            return bool(requester and requester.manager_id == ctx.user_id)
        return False

    async def _to_views(self, session: AsyncSession, rows: List[LeaveRequestDB]) -> List[LeaveRequest]:
        summaries = await load_profile_summaries(
            session, [r.user_id for r in rows] + [r.approved_by_id for r in rows]
        )
        return [
            LeaveRequest(
                id=row.id,
                user_id=row.user_id,
                type=row.type,
                start_date=row.start_date,
                end_date=row.end_date,
                days=row.days,
                status=row.status,
                reason=row.reason,
                approved_by_id=row.approved_by_id,
                approved_at=row.approved_at,
                approval_notes=row.approval_notes,
                metadata=row.extra,
                user=summaries.get(row.user_id),
                approved_by=summaries.get(row.approved_by_id),
                created_by=row.created_by,
                updated_by=row.updated_by,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )
            for row in rows
        ]

    async def _to_view(self, session: AsyncSession, row: LeaveRequestDB) -> LeaveRequest:
        return (await self._to_views(session, [row]))[0]

    @staticmethod
    def _decision_notice(row: LeaveRequestDB, decision: str, ctx: UserContext) -> PendingNotification:
        return PendingNotification(
            user_id=row.user_id,
            type=f"leave_request_{decision}",
            title=f"Leave Request {decision.capitalize()}",
            message=(
                f"Your {row.type} leave request ({row.start_date.isoformat()} to "
                f"{row.end_date.isoformat()}) has been {decision}"
            ),
            data={
                "leave_request_id": row.id,
                "type": row.type,
                "start_date": row.start_date.isoformat(),
                "end_date": row.end_date.isoformat(),
                "days": row.days,
                "decided_by_id": ctx.user_id,
                "approval_notes": row.approval_notes,
            },
        )

    # ==================== QUERIES ====================

    async def list(
        self,
        ctx: UserContext,
        filters: Optional[Any] = None,
        sort: Optional[Any] = None,
    ) -> List[LeaveRequest]:
        """
        Leave requests for the "my" or "all" view.

        The "all" view is limited to what the caller can approve: everything
        for superadmins and HR, direct reports for managers.
        """
        filters = parse_input(LeaveRequestFilter, filters)
        sort = parse_input(LeaveSort, sort) if sort is not None else None
        today = get_local_today()

        with backend_errors("list leave requests"):
            async with self.db.session() as session:
                query = select(LeaveRequestDB).where(LeaveRequestDB.deleted_at.is_(None))

                if filters.view == "my":
                    query = query.where(LeaveRequestDB.user_id == ctx.user_id)
                elif not (ctx.is_superadmin or await is_hr_member(session, ctx)):
                    if ctx.role != UserRole.MANAGER:
                        raise ForbiddenError("Only approvers can view all leave requests")
                    team = [ctx.user_id] + await get_team_member_ids(session, ctx.user_id)
                    query = query.where(LeaveRequestDB.user_id.in_(team))

                if filters.user_id is not None:
                    query = query.where(LeaveRequestDB.user_id == filters.user_id)
                if filters.department_id is not None:
                    query = query.join(ProfileDB, ProfileDB.id == LeaveRequestDB.user_id).where(
                        ProfileDB.department_id == filters.department_id
                    )
                if filters.status:
                    query = query.where(LeaveRequestDB.status.in_([s.value for s in filters.status]))

                if filters.window == "active":
                    query = query.where(
                        LeaveRequestDB.status.in_([LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value]),
                        LeaveRequestDB.end_date >= today,
                    )
                elif filters.window == "past":
                    query = query.where(
                        or_(
                            LeaveRequestDB.end_date < today,
                            LeaveRequestDB.status.in_([LeaveStatus.CANCELLED.value, LeaveStatus.REJECTED.value]),
                        )
                    )
                elif filters.window == "pending":
                    query = query.where(LeaveRequestDB.status == LeaveStatus.PENDING.value)

                order = [LeaveRequestDB.created_at.asc(), LeaveRequestDB.id.asc()]
                if sort is not None:
                    column = getattr(LeaveRequestDB, sort.field)
                    order.insert(0, column.desc() if sort.direction == "desc" else column.asc())

                result = await session.execute(query.order_by(*order))
                return await self._to_views(session, list(result.scalars().all()))

    async def get_by_id(self, ctx: UserContext, request_id: int) -> LeaveRequest:
        """A leave request, visible to its requester and its approvers."""
        with backend_errors("load leave request"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, request_id)
                if row.user_id != ctx.user_id and not await self._can_approve(session, ctx, row):
                    raise ForbiddenError(f"You do not have access to leave request {request_id}")
                return await self._to_view(session, row)

    # ==================== WRITES ====================

    async def create(self, ctx: UserContext, data: Any) -> LeaveRequest:
        """Submit a leave request for the caller; notifies their manager and HR."""
        data = parse_input(LeaveRequestCreate, data)
        pending: List[PendingNotification] = []

        with backend_errors("create leave request"):
            async with self.db.session() as session:
                user_id = await resolve_profile(session, ctx.user_id, field="user_id")
                now = get_local_now()
                row = LeaveRequestDB(
                    user_id=user_id,
                    type=data.type.value,
                    start_date=data.start_date,
                    end_date=data.end_date,
                    days=inclusive_days(data.start_date, data.end_date),
                    status=LeaveStatus.PENDING.value,
                    reason=data.reason,
                    extra=_build_metadata(data),
                    created_by=ctx.user_id,
                    updated_by=ctx.user_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
                await record_audit(session, ctx, "created", ENTITY, row.id, snapshot=row_snapshot(row))

                requester = await session.get(ProfileDB, user_id)
                recipients = []
                if requester.manager_id:
                    recipients.append(requester.manager_id)
                for hr_id in await get_hr_member_ids(session):
                    if hr_id not in recipients:
                        recipients.append(hr_id)

                for recipient in recipients:
                    if recipient == ctx.user_id:
                        continue
                    pending.append(PendingNotification(
                        user_id=recipient,
                        type="leave_request_submitted",
                        title="Leave Request Submitted",
                        message=(
                            f"{requester.full_name} has submitted a {row.type} leave request "
                            f"for {_plural_days(row.days)}"
                        ),
                        data={
                            "leave_request_id": row.id,
                            "user_id": user_id,
                            "user_name": requester.full_name,
                            "type": row.type,
                            "start_date": row.start_date.isoformat(),
                            "end_date": row.end_date.isoformat(),
                            "days": row.days,
                        },
                    ))

                view = await self._to_view(session, row)

        self._sink().dispatch(pending)
        logger.info(f"Leave request {view.id} created for user {view.user_id} ({view.days} days)")
        return view

    async def update(self, ctx: UserContext, request_id: int, data: Any) -> LeaveRequest:
        """Edit the caller's own pending request."""
        data = parse_input(LeaveRequestUpdate, data)
        provided = data.model_fields_set

        with backend_errors("update leave request"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, request_id)
                if row.user_id != ctx.user_id:
                    raise ForbiddenError("You can only edit your own leave requests")
                if row.status != LeaveStatus.PENDING.value:
                    raise ValidationError("Only pending leave requests can be edited", field="status")

                start = data.start_date if "start_date" in provided else row.start_date
                end = data.end_date if "end_date" in provided else row.end_date
                if end < start:
                    raise ValidationError("End date must be after start date", field="end_date")

                changes = {}
                for field, value in (
                    ("type", data.type.value if "type" in provided else row.type),
                    ("start_date", start),
                    ("end_date", end),
                    ("days", inclusive_days(start, end)),
                    ("reason", data.reason if "reason" in provided else row.reason),
                ):
                    if getattr(row, field) != value:
                        changes[field] = (getattr(row, field), value)
                        setattr(row, field, value)

                metadata = _build_metadata(data, row.extra)
                if metadata != row.extra:
                    changes["metadata"] = (row.extra, metadata)
                    row.extra = metadata

                row.updated_at = max(get_local_now(), row.created_at)
                row.updated_by = ctx.user_id

                for field, (old, new) in changes.items():
                    await record_audit(
                        session, ctx, "updated", ENTITY, row.id,
                        field_changed=field, old_value=old, new_value=new,
                    )
                view = await self._to_view(session, row)

        logger.info(f"Leave request {request_id} updated: {', '.join(changes) or 'no changes'}")
        return view

    async def cancel(self, ctx: UserContext, request_id: int) -> LeaveRequest:
        """Withdraw the caller's own pending request."""
        with backend_errors("cancel leave request"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, request_id)
                if row.user_id != ctx.user_id:
                    raise ForbiddenError("You can only cancel your own leave requests")
                if row.status != LeaveStatus.PENDING.value:
                    raise ValidationError("Only pending leave requests can be cancelled", field="status")

                row.status = LeaveStatus.CANCELLED.value
                row.updated_at = max(get_local_now(), row.created_at)
                row.updated_by = ctx.user_id
                await record_audit(
                    session, ctx, "status_changed", ENTITY, row.id,
                    field_changed="status", old_value=LeaveStatus.PENDING.value,
                    new_value=LeaveStatus.CANCELLED.value,
                )
                view = await self._to_view(session, row)

        logger.info(f"Leave request {request_id} cancelled by user {ctx.user_id}")
        return view

    async def _decide(
        self,
        session: AsyncSession,
        ctx: UserContext,
        row: LeaveRequestDB,
        status: LeaveStatus,
        approval_notes: Optional[str],
    ) -> PendingNotification:
        verb = "approve" if status == LeaveStatus.APPROVED else "reject"
        past = status.value
        if not await self._can_approve(session, ctx, row):
            raise ForbiddenError(f"You do not have permission to {verb} this leave request")
        if row.status != LeaveStatus.PENDING.value:
            raise ValidationError(f"Only pending leave requests can be {past}", field="status")

        now = get_local_now()
        row.status = status.value
        row.approved_by_id = ctx.user_id
        row.approved_at = now
        row.approval_notes = approval_notes
        row.updated_at = max(now, row.created_at)
        row.updated_by = ctx.user_id
        await record_audit(
            session, ctx, past, ENTITY, row.id,
            field_changed="status", old_value=LeaveStatus.PENDING.value, new_value=status.value,
            reason=approval_notes,
        )
        return self._decision_notice(row, past, ctx)

    async def approve(self, ctx: UserContext, request_id: int, data: Any = None) -> LeaveRequest:
        """Approve a pending request."""
        data = parse_input(LeaveDecision, data)
        with backend_errors("approve leave request"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, request_id)
                notice = await self._decide(session, ctx, row, LeaveStatus.APPROVED, data.approval_notes)
                view = await self._to_view(session, row)

        self._sink().dispatch([notice])
        logger.info(f"Leave request {request_id} approved by user {ctx.user_id}")
        return view

    async def reject(self, ctx: UserContext, request_id: int, data: Any = None) -> LeaveRequest:
        """Reject a pending request."""
        data = parse_input(LeaveDecision, data)
        with backend_errors("reject leave request"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, request_id)
                notice = await self._decide(session, ctx, row, LeaveStatus.REJECTED, data.approval_notes)
                view = await self._to_view(session, row)

        self._sink().dispatch([notice])
        logger.info(f"Leave request {request_id} rejected by user {ctx.user_id}")
        return view

    async def soft_delete(self, ctx: UserContext, request_id: int) -> None:
        require_superadmin(ctx, "delete leave requests")
        with backend_errors("delete leave request"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, request_id)
                row.deleted_at = get_local_now()
                await record_audit(session, ctx, "deleted", ENTITY, row.id, snapshot=row_snapshot(row))
        logger.info(f"Soft-deleted leave request {request_id}")

    # ==================== BULK ====================

    async def _bulk_decide(self, ctx: UserContext, data: Any, status: LeaveStatus) -> BulkResult:
        require_superadmin(ctx, "perform bulk operations")
        data = parse_input(LeaveBulkDecision, data)
        outcome = BulkResult()
        notices: List[PendingNotification] = []

        with backend_errors(f"bulk {status.value} leave requests"):
            async with self.db.session() as session:
                for request_id in data.ids:
                    try:
                        row = await self._get_live_row(session, request_id)
                        notices.append(await self._decide(session, ctx, row, status, data.approval_notes))
                        outcome.success += 1
                    except (NotFoundError, ValidationError, ForbiddenError) as e:
                        outcome.failed += 1
                        outcome.errors.append(f"{request_id}: {e}")

        self._sink().dispatch(notices)
        logger.info(f"Bulk {status.value} {outcome.success} leave requests ({outcome.failed} failed)")
        return outcome

    async def bulk_approve(self, ctx: UserContext, data: Any) -> BulkResult:
        return await self._bulk_decide(ctx, data, LeaveStatus.APPROVED)

    async def bulk_reject(self, ctx: UserContext, data: Any) -> BulkResult:
        return await self._bulk_decide(ctx, data, LeaveStatus.REJECTED)
