"""
Task repository for the three-level task tree.

One repository class serves both Tasks and Dev Tasks; the `kind` column
keeps the two trees apart.

Handles:
- Filtered, sorted listing returned as nested trees
- Task CRUD with parent/level bookkeeping
- Cascading soft delete
- Task comments (author edits, author or superadmin deletes)
- Bulk operations and analytics for superadmins
- Notifications on assignment and status changes
"""

import logging
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, case, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import get_database
from ..models import TaskDB, TaskCommentDB, ProfileDB
from ..exceptions import ValidationError, NotFoundError, ForbiddenError
from .audit import record_audit, row_snapshot
from .lookups import (
    resolve_profile,
    resolve_project,
    get_visible_user_ids,
    load_profile_summaries,
)
from ...config import settings
from ...models.api_validation import (
    TaskCreate,
    TaskUpdate,
    TaskBulkUpdate,
    TaskCommentCreate,
    TaskFilter,
    TaskSort,
)
from ...models.records import BulkResult
from ...models.task import (
    MAX_TASK_LEVEL,
    TaskKind,
    TaskNode,
    TaskComment,
    TaskStatus,
    TaskPriority,
    TaskAnalytics,
    TeamPerformance,
)
from ...services.notifications import NotificationSink, PendingNotification
from ...utils.datetime_utils import get_local_now, get_local_today, end_of_week
from ...utils.errors import backend_errors
from ...utils.validation import parse_input, contains_pattern
from ...utils.permissions import UserContext, require_superadmin
from ...utils.task_tree import build_tree

logger = logging.getLogger(__name__)

# Priority sorts by urgency, not alphabetically
_PRIORITY_RANK = case(
    {p.value: rank for rank, p in enumerate(TaskPriority)},
    value=TaskDB.priority,
    else_=len(TaskPriority),
)

_SORT_COLUMNS = {
    "assigned_to": TaskDB.assigned_to_id,
    "priority": _PRIORITY_RANK,
}

Visible = Optional[List[int]]


class TaskRepository:
    """Repository for task tree operations."""

    def __init__(self, kind: TaskKind = TaskKind.TASK):
        self.kind = TaskKind(kind)
        self.entity_type = "task" if self.kind == TaskKind.TASK else "dev_task"
        self.label = "Task" if self.kind == TaskKind.TASK else "Dev task"
        self.db = get_database()

    # ==================== HELPERS ====================

    def _sink(self) -> NotificationSink:
        return NotificationSink(self.db)

    def _live(self):
        return and_(TaskDB.kind == self.kind.value, TaskDB.deleted_at.is_(None))

    async def _get_live_row(self, session: AsyncSession, task_id: int) -> TaskDB:
        result = await session.execute(
            select(TaskDB).where(TaskDB.id == task_id, self._live())
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(self.entity_type, task_id)
        return row

    async def _get_parent(self, session: AsyncSession, parent_id: int, visible: Visible) -> TaskDB:
        result = await session.execute(
            select(TaskDB).where(TaskDB.id == parent_id, self._live())
        )
        parent = result.scalar_one_or_none()
        if parent is None:
            raise ValidationError(f"Parent {self.label.lower()} {parent_id} not found", field="parent_id")
        if parent.level >= MAX_TASK_LEVEL:
            raise ValidationError("Sub-subtasks cannot have subtasks", field="parent_id")
        self._ensure_visible(parent, visible)
        return parent

    def _ensure_visible(self, row: TaskDB, visible: Visible) -> None:
        if visible is not None and row.assigned_to_id not in visible:
            raise ForbiddenError(f"You do not have access to {self.label.lower()} {row.id}")

    @staticmethod
    def _ensure_assignable(visible: Visible, assignee_id: int) -> None:
        if visible is not None and assignee_id not in visible:
            raise ForbiddenError("You can only assign tasks to yourself or your direct reports")

    async def _descendants(self, session: AsyncSession, root_id: int) -> List[TaskDB]:
        """Live descendants, one level at a time, each level in creation order."""
        found: List[TaskDB] = []
        frontier = [root_id]
        for _ in range(MAX_TASK_LEVEL):
            if not frontier:
                break
            result = await session.execute(
                select(TaskDB)
                .where(TaskDB.parent_id.in_(frontier), self._live())
                .order_by(TaskDB.created_at, TaskDB.id)
            )
            rows = list(result.scalars().all())
            found.extend(rows)
            frontier = [r.id for r in rows]
        return found

    @staticmethod
    def _to_node(row: TaskDB, summaries: Dict[int, Any]) -> TaskNode:
        return TaskNode(
            id=row.id,
            kind=row.kind,
            name=row.name,
            description=row.description,
            status=row.status,
            priority=row.priority,
            category=row.category,
            level=row.level,
            parent_id=row.parent_id,
            project_id=row.project_id,
            assigned_to=row.assigned_to_id,
            assignee=summaries.get(row.assigned_to_id),
            due_date=row.due_date,
            start_date=row.start_date,
            is_draft=row.is_draft,
            progress=row.progress,
            created_by=row.created_by,
            updated_by=row.updated_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def _load_tree(self, session: AsyncSession, row: TaskDB) -> TaskNode:
        """The node for `row` with its live subtree nested."""
        rows = [row] + await self._descendants(session, row.id)
        summaries = await load_profile_summaries(session, [r.assigned_to_id for r in rows])
        return build_tree([self._to_node(r, summaries) for r in rows])[0]

    def _filter_conditions(self, filters: TaskFilter) -> list:
        conditions = []
        if filters.status:
            conditions.append(TaskDB.status.in_([s.value for s in filters.status]))
        if filters.priority:
            conditions.append(TaskDB.priority.in_([p.value for p in filters.priority]))
        if filters.assigned_to:
            conditions.append(TaskDB.assigned_to_id.in_(filters.assigned_to))
        if filters.project_id:
            conditions.append(TaskDB.project_id.in_(filters.project_id))
        if not filters.include_drafts:
            conditions.append(TaskDB.is_draft.is_(False))

        if filters.due_date:
            due = filters.due_date
            today = get_local_today()
            if due.type == "today":
                conditions.append(TaskDB.due_date == today)
            elif due.type == "this-week":
                conditions.append(TaskDB.due_date >= today)
                conditions.append(TaskDB.due_date <= end_of_week(today))
            elif due.type == "overdue":
                conditions.append(TaskDB.due_date < today)
                conditions.append(TaskDB.status != TaskStatus.COMPLETED.value)
            else:
                if due.start:
                    conditions.append(TaskDB.due_date >= due.start)
                if due.end:
                    conditions.append(TaskDB.due_date <= due.end)

        term = (filters.search or "").strip()
        if len(term) >= settings.min_search_length:
            pattern = contains_pattern(term)
            conditions.append(or_(
                TaskDB.name.ilike(pattern, escape="\\"),
                TaskDB.description.ilike(pattern, escape="\\"),
            ))
        return conditions

    @staticmethod
    def _order_by(sort: Optional[TaskSort]) -> list:
        default = [TaskDB.created_at.asc(), TaskDB.id.asc()]
        if sort is None:
            return default
        column = _SORT_COLUMNS.get(sort.field, getattr(TaskDB, sort.field, None))
        ordered = column.desc() if sort.direction == "desc" else column.asc()
        return [ordered] + default

    def _notice(self, row: TaskDB, user_id: int, type: str, title: str, message: str) -> PendingNotification:
        return PendingNotification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data={"task_id": row.id, "kind": self.kind.value},
        )

    async def _change_notices(
        self,
        session: AsyncSession,
        ctx: UserContext,
        row: TaskDB,
        changes: Dict[str, Tuple[Any, Any]],
    ) -> List[PendingNotification]:
        """Notifications for an update; the caller never notifies themself."""
        notices: List[PendingNotification] = []

        def others(user_id: Optional[int]) -> bool:
            return user_id is not None and user_id != ctx.user_id

        if "assigned_to_id" in changes and others(row.assigned_to_id):
            notices.append(self._notice(
                row, row.assigned_to_id, "task_assigned",
                f"{self.label} assigned",
                f'You have been assigned "{row.name}"',
            ))

        if "status" in changes:
            old_status, new_status = changes["status"]
            if others(row.assigned_to_id):
                notices.append(self._notice(
                    row, row.assigned_to_id, "task_status_changed",
                    f"{self.label} status changed",
                    f'"{row.name}" moved from {old_status} to {new_status}',
                ))
            if new_status == TaskStatus.COMPLETED.value and others(row.created_by) \
                    and row.created_by != row.assigned_to_id:
                notices.append(self._notice(
                    row, row.created_by, "task_completed",
                    f"{self.label} completed",
                    f'"{row.name}" has been completed',
                ))
            if new_status == TaskStatus.BLOCKED.value and row.assigned_to_id is not None:
                assignee = await session.get(ProfileDB, row.assigned_to_id)
                if assignee and others(assignee.manager_id):
                    notices.append(self._notice(
                        row, assignee.manager_id, "task_blocked",
                        f"{self.label} blocked",
                        f'"{row.name}" assigned to {assignee.full_name} is blocked',
                    ))

        if "priority" in changes and others(row.assigned_to_id):
            notices.append(self._notice(
                row, row.assigned_to_id, "task_priority_changed",
                f"{self.label} priority changed",
                f'"{row.name}" is now {row.priority} priority',
            ))
        return notices

    async def _move(
        self,
        session: AsyncSession,
        row: TaskDB,
        new_parent_id: Optional[int],
        visible: Visible,
        changes: Dict[str, Tuple[Any, Any]],
    ) -> None:
        """Re-parent `row`, shifting the levels of its whole subtree."""
        descendants = await self._descendants(session, row.id)

        if new_parent_id is None:
            new_level = 0
        else:
            if new_parent_id == row.id:
                raise ValidationError("A task cannot be its own parent", field="parent_id")
            if new_parent_id in {d.id for d in descendants}:
                raise ValidationError("A task cannot be moved under its own subtask", field="parent_id")
            parent = await self._get_parent(session, new_parent_id, visible)
            new_level = parent.level + 1

        depth = max((d.level - row.level for d in descendants), default=0)
        if new_level + depth > MAX_TASK_LEVEL:
            raise ValidationError(
                f"Moving this task would push its subtasks below level {MAX_TASK_LEVEL}",
                field="parent_id",
            )

        shift = new_level - row.level
        changes["parent_id"] = (row.parent_id, new_parent_id)
        row.parent_id = new_parent_id
        if shift:
            changes["level"] = (row.level, new_level)
            row.level = new_level
            for descendant in descendants:
                descendant.level += shift

    async def _cascade_delete(self, session: AsyncSession, ctx: UserContext, row: TaskDB) -> List[int]:
        """Soft-delete a node and every live descendant. Returns the affected ids."""
        now = get_local_now()
        descendants = await self._descendants(session, row.id)
        for target in [row] + descendants:
            target.deleted_at = now
            await record_audit(
                session, ctx, "deleted", self.entity_type, target.id,
                reason=None if target is row else f"parent {row.id} deleted",
                snapshot=row_snapshot(target),
            )
        return [row.id] + [d.id for d in descendants]

    # ==================== QUERIES ====================

    async def list(
        self,
        ctx: UserContext,
        filters: Optional[Any] = None,
        sort: Optional[Any] = None,
    ) -> List[TaskNode]:
        """
        Filtered tasks as trees.

        Matching descendants are nested under their matching parents; a
        match whose parent did not match is returned as a root. Without a
        sort, rows come in creation order.
        """
        filters = parse_input(TaskFilter, filters)
        sort = parse_input(TaskSort, sort) if sort is not None else None

        with backend_errors(f"list {self.entity_type}s"):
            async with self.db.session() as session:
                query = select(TaskDB).where(self._live())

                visible = await get_visible_user_ids(session, ctx)
                if visible is not None:
                    query = query.where(TaskDB.assigned_to_id.in_(visible))

                query = query.where(*self._filter_conditions(filters)).order_by(*self._order_by(sort))
                result = await session.execute(query)
                rows = result.scalars().all()

                summaries = await load_profile_summaries(session, [r.assigned_to_id for r in rows])
                return build_tree([self._to_node(r, summaries) for r in rows])

    async def get_by_id(self, ctx: UserContext, task_id: int) -> TaskNode:
        """A task with its live subtree."""
        with backend_errors(f"load {self.entity_type}"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, task_id)
                self._ensure_visible(row, await get_visible_user_ids(session, ctx))
                return await self._load_tree(session, row)

    # ==================== WRITES ====================

    async def create(self, ctx: UserContext, data: Any) -> TaskNode:
        """
        Create a task, subtask or sub-subtask.

        `level` follows from the parent. The assignee defaults to the caller.
        """
        data = parse_input(TaskCreate, data)
        pending: List[PendingNotification] = []

        with backend_errors(f"create {self.entity_type}"):
            async with self.db.session() as session:
                visible = await get_visible_user_ids(session, ctx)

                level = 0
                if data.parent_id is not None:
                    parent = await self._get_parent(session, data.parent_id, visible)
                    level = parent.level + 1

                assignee_ref = data.assigned_to if data.assigned_to is not None else ctx.user_id
                assignee_id = await resolve_profile(session, assignee_ref)
                self._ensure_assignable(visible, assignee_id)
                project_id = await resolve_project(session, data.project_id)

                now = get_local_now()
                row = TaskDB(
                    kind=self.kind.value,
                    name=data.name,
                    description=data.description,
                    status=data.status.value,
                    priority=data.priority.value,
                    category=data.category,
                    level=level,
                    parent_id=data.parent_id,
                    project_id=project_id,
                    assigned_to_id=assignee_id,
                    due_date=data.due_date,
                    start_date=data.start_date,
                    is_draft=data.is_draft,
                    progress=data.progress,
                    created_by=ctx.user_id,
                    updated_by=ctx.user_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()

                await record_audit(
                    session, ctx, "created", self.entity_type, row.id,
                    snapshot=row_snapshot(row),
                )

                if assignee_id != ctx.user_id:
                    pending.append(self._notice(
                        row, assignee_id, "task_assigned",
                        f"New {self.label.lower()} assigned",
                        f'You have been assigned "{row.name}"',
                    ))

                summaries = await load_profile_summaries(session, [assignee_id])
                node = self._to_node(row, summaries)

        self._sink().dispatch(pending)
        logger.info(f"Created {self.entity_type} {node.id} at level {node.level}")
        return node

    async def update(self, ctx: UserContext, task_id: int, data: Any) -> TaskNode:
        """
        Merge the provided fields into a task.

        Only keys present in `data` change. Status is advisory: any status
        may follow any other, and nothing rolls up to the parent.
        """
        data = parse_input(TaskUpdate, data)
        provided = data.model_fields_set
        pending: List[PendingNotification] = []

        with backend_errors(f"update {self.entity_type}"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, task_id)
                visible = await get_visible_user_ids(session, ctx)
                self._ensure_visible(row, visible)

                changes: Dict[str, Tuple[Any, Any]] = {}

                def apply(attr: str, value: Any) -> None:
                    old = getattr(row, attr)
                    if old != value:
                        changes[attr] = (old, value)
                        setattr(row, attr, value)

                for field in ("name", "description", "category", "due_date", "start_date", "is_draft", "progress"):
                    if field in provided:
                        apply(field, getattr(data, field))
                for field in ("status", "priority"):
                    if field in provided:
                        apply(field, getattr(data, field).value)

                if "project_id" in provided:
                    apply("project_id", await resolve_project(session, data.project_id))

                # An assignee can be changed but not cleared
                if "assigned_to" in provided and data.assigned_to is not None:
                    assignee_id = await resolve_profile(session, data.assigned_to)
                    if assignee_id != row.assigned_to_id:
                        self._ensure_assignable(visible, assignee_id)
                        apply("assigned_to_id", assignee_id)

                if "parent_id" in provided and data.parent_id != row.parent_id:
                    await self._move(session, row, data.parent_id, visible, changes)

                row.updated_at = max(get_local_now(), row.created_at)
                row.updated_by = ctx.user_id

                for attr, (old, new) in changes.items():
                    await record_audit(
                        session, ctx,
                        "status_changed" if attr == "status" else "updated",
                        self.entity_type, row.id,
                        field_changed=attr, old_value=old, new_value=new,
                    )

                pending = await self._change_notices(session, ctx, row, changes)
                await session.flush()
                node = await self._load_tree(session, row)

        self._sink().dispatch(pending)
        logger.info(f"Updated {self.entity_type} {task_id}: {', '.join(changes) or 'no changes'}")
        return node

    async def soft_delete(self, ctx: UserContext, task_id: int) -> None:
        """Mark a task and its whole subtree deleted. Rows are kept."""
        require_superadmin(ctx, f"delete {self.label.lower()}s")

        with backend_errors(f"delete {self.entity_type}"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, task_id)
                deleted = await self._cascade_delete(session, ctx, row)

        logger.info(f"Soft-deleted {self.entity_type} {task_id} with {len(deleted) - 1} descendants")

    # ==================== COMMENTS ====================

    @property
    def comment_entity_type(self) -> str:
        return f"{self.entity_type}_comment"

    async def _get_live_comment(self, session: AsyncSession, comment_id: int) -> TaskCommentDB:
        """A live comment whose task is live and of this kind."""
        result = await session.execute(
            select(TaskCommentDB)
            .join(TaskDB, TaskDB.id == TaskCommentDB.task_id)
            .where(
                TaskCommentDB.id == comment_id,
                TaskCommentDB.deleted_at.is_(None),
                self._live(),
            )
        )
        comment = result.scalar_one_or_none()
        if comment is None:
            raise NotFoundError("comment", comment_id)
        return comment

    @staticmethod
    def _to_comment(row: TaskCommentDB, summaries: Dict[int, Any]) -> TaskComment:
        return TaskComment(
            id=row.id,
            task_id=row.task_id,
            content=row.content,
            created_by=row.created_by,
            author=summaries.get(row.created_by),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def list_comments(self, ctx: UserContext, task_id: int) -> List[TaskComment]:
        """Live comments on a visible task, oldest first."""
        with backend_errors(f"list {self.entity_type} comments"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, task_id)
                self._ensure_visible(row, await get_visible_user_ids(session, ctx))

                result = await session.execute(
                    select(TaskCommentDB)
                    .where(TaskCommentDB.task_id == task_id, TaskCommentDB.deleted_at.is_(None))
                    .order_by(TaskCommentDB.created_at, TaskCommentDB.id)
                )
                comments = result.scalars().all()
                summaries = await load_profile_summaries(session, [c.created_by for c in comments])
                return [self._to_comment(c, summaries) for c in comments]

    async def add_comment(self, ctx: UserContext, task_id: int, data: Any) -> TaskComment:
        """Comment on a task the caller can see."""
        data = parse_input(TaskCommentCreate, data)

        with backend_errors(f"add {self.entity_type} comment"):
            async with self.db.session() as session:
                row = await self._get_live_row(session, task_id)
                self._ensure_visible(row, await get_visible_user_ids(session, ctx))

                now = get_local_now()
                comment = TaskCommentDB(
                    task_id=row.id,
                    content=data.content,
                    created_by=ctx.user_id,
                    updated_by=ctx.user_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(comment)
                await session.flush()

                await record_audit(
                    session, ctx, "created", self.comment_entity_type, comment.id,
                    reason=f"{self.entity_type} {row.id}",
                    snapshot=row_snapshot(comment),
                )
                summaries = await load_profile_summaries(session, [ctx.user_id])
                view = self._to_comment(comment, summaries)

        logger.info(f"Added comment {view.id} to {self.entity_type} {task_id}")
        return view

    async def update_comment(self, ctx: UserContext, comment_id: int, data: Any) -> TaskComment:
        """Edit a comment. Only its author may."""
        data = parse_input(TaskCommentCreate, data)

        with backend_errors(f"update {self.entity_type} comment"):
            async with self.db.session() as session:
                comment = await self._get_live_comment(session, comment_id)
                if comment.created_by != ctx.user_id:
                    raise ForbiddenError("You can only edit your own comments")

                if comment.content != data.content:
                    await record_audit(
                        session, ctx, "updated", self.comment_entity_type, comment.id,
                        field_changed="content", old_value=comment.content, new_value=data.content,
                    )
                    comment.content = data.content
                comment.updated_at = max(get_local_now(), comment.created_at)
                comment.updated_by = ctx.user_id

                summaries = await load_profile_summaries(session, [comment.created_by])
                view = self._to_comment(comment, summaries)

        logger.info(f"Updated comment {comment_id}")
        return view

    async def delete_comment(self, ctx: UserContext, comment_id: int) -> None:
        """Soft-delete a comment. The author or a superadmin may."""
        with backend_errors(f"delete {self.entity_type} comment"):
            async with self.db.session() as session:
                comment = await self._get_live_comment(session, comment_id)
                if comment.created_by != ctx.user_id and not ctx.is_superadmin:
                    raise ForbiddenError("You can only delete your own comments")

                comment.deleted_at = get_local_now()
                comment.updated_by = ctx.user_id
                await record_audit(
                    session, ctx, "deleted", self.comment_entity_type, comment.id,
                    snapshot=row_snapshot(comment),
                )

        logger.info(f"Soft-deleted comment {comment_id}")

    # ==================== BULK ====================

    async def bulk_update(self, ctx: UserContext, data: Any) -> BulkResult:
        """Apply the same status/priority/assignee/project to many tasks."""
        require_superadmin(ctx, "perform bulk operations")
        data = parse_input(TaskBulkUpdate, data)
        provided = data.model_fields_set - {"ids"}
        outcome = BulkResult()
        pending: List[PendingNotification] = []

        with backend_errors(f"bulk update {self.entity_type}s"):
            async with self.db.session() as session:
                values: Dict[str, Any] = {}
                if "status" in provided and data.status is not None:
                    values["status"] = data.status.value
                if "priority" in provided and data.priority is not None:
                    values["priority"] = data.priority.value
                if "assigned_to" in provided and data.assigned_to is not None:
                    values["assigned_to_id"] = await resolve_profile(session, data.assigned_to)
                if "project_id" in provided:
                    values["project_id"] = await resolve_project(session, data.project_id)
                if not values:
                    raise ValidationError("No fields to update")

                for task_id in data.ids:
                    result = await session.execute(
                        select(TaskDB).where(TaskDB.id == task_id, self._live())
                    )
                    row = result.scalar_one_or_none()
                    if row is None:
                        outcome.failed += 1
                        outcome.errors.append(f"{self.label} {task_id} not found")
                        continue

                    changes: Dict[str, Tuple[Any, Any]] = {}
                    for attr, value in values.items():
                        old = getattr(row, attr)
                        if old != value:
                            changes[attr] = (old, value)
                            setattr(row, attr, value)
                    row.updated_at = max(get_local_now(), row.created_at)
                    row.updated_by = ctx.user_id

                    for attr, (old, new) in changes.items():
                        await record_audit(
                            session, ctx,
                            "status_changed" if attr == "status" else "updated",
                            self.entity_type, row.id,
                            field_changed=attr, old_value=old, new_value=new,
                            reason="bulk update",
                        )
                    pending.extend(await self._change_notices(session, ctx, row, changes))
                    outcome.success += 1

        self._sink().dispatch(pending)
        logger.info(f"Bulk updated {outcome.success} {self.entity_type}s ({outcome.failed} failed)")
        return outcome

    async def bulk_delete(self, ctx: UserContext, ids: List[int]) -> BulkResult:
        """Soft-delete many tasks, each with its subtree."""
        require_superadmin(ctx, "perform bulk operations")
        if not ids:
            raise ValidationError("No task ids provided", field="ids")
        outcome = BulkResult()

        with backend_errors(f"bulk delete {self.entity_type}s"):
            async with self.db.session() as session:
                deleted: set = set()
                for task_id in ids:
                    if task_id in deleted:
                        # Already removed with an ancestor earlier in the batch
                        outcome.success += 1
                        continue
                    result = await session.execute(
                        select(TaskDB).where(TaskDB.id == task_id, self._live())
                    )
                    row = result.scalar_one_or_none()
                    if row is None:
                        outcome.failed += 1
                        outcome.errors.append(f"{self.label} {task_id} not found")
                        continue
                    deleted.update(await self._cascade_delete(session, ctx, row))
                    await session.flush()
                    outcome.success += 1

        logger.info(f"Bulk deleted {outcome.success} {self.entity_type}s ({outcome.failed} failed)")
        return outcome

    # ==================== ANALYTICS ====================

    async def get_analytics(self, ctx: UserContext) -> TaskAnalytics:
        """Counts by status and priority, completion rate, overdue count, per-assignee numbers."""
        require_superadmin(ctx, "view task analytics")
        today = get_local_today()

        with backend_errors(f"load {self.entity_type} analytics"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(TaskDB.status, TaskDB.priority, TaskDB.due_date, TaskDB.assigned_to_id)
                    .where(self._live())
                )
                rows = result.all()
                summaries = await load_profile_summaries(session, [r.assigned_to_id for r in rows])

        by_status = {s.value: 0 for s in TaskStatus}
        by_priority = {p.value: 0 for p in TaskPriority}
        per_user: Dict[int, List[int]] = {}
        overdue = 0
        completed_value = TaskStatus.COMPLETED.value

        for status, priority, due_date, assignee_id in rows:
            by_status[status] = by_status.get(status, 0) + 1
            by_priority[priority] = by_priority.get(priority, 0) + 1
            if due_date and due_date < today and status != completed_value:
                overdue += 1
            if assignee_id is not None:
                totals = per_user.setdefault(assignee_id, [0, 0])
                totals[0] += 1
                if status == completed_value:
                    totals[1] += 1

        total = len(rows)
        team = [
            TeamPerformance(
                user_id=user_id,
                user_name=summaries[user_id].full_name if user_id in summaries else str(user_id),
                total_tasks=count,
                completed_tasks=done,
                completion_rate=round(done / count * 100, 1),
            )
            for user_id, (count, done) in sorted(per_user.items())
        ]
        return TaskAnalytics(
            total=total,
            by_status=by_status,
            by_priority=by_priority,
            completion_rate=round(by_status[completed_value] / total * 100, 1) if total else 0.0,
            overdue_count=overdue,
            team_performance=team,
        )
