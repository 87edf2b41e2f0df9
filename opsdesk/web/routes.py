"""
HTTP routes for the record accessors.

The upstream auth proxy sets the identity headers; every route resolves a
UserContext from them and passes it to the accessor explicitly. Request
bodies are handed to the accessors untyped, validation happens there.
"""

import logging
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, Response

from ..database.connection import Database
from ..database.repositories import (
    TaskRepository,
    LeaveRequestRepository,
    CredentialRepository,
    LookupRepository,
    NotificationRepository,
    AuditRepository,
)
from ..models.records import UserRole
from ..models.task import TaskKind
from ..utils.permissions import UserContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ============================================================================
# Dependencies
# ============================================================================

def get_user_context(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_department_id: Optional[str] = Header(None),
) -> UserContext:
    """Build the caller's UserContext from the auth proxy headers."""
    if not x_user_id or not x_user_id.strip().isdigit():
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        role = UserRole((x_user_role or UserRole.EXECUTIVE.value).strip().lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_user_role}")
    department_id = None
    if x_department_id and x_department_id.strip().isdigit():
        department_id = int(x_department_id)
    return UserContext(
        user_id=int(x_user_id),
        role=role,
        email=x_user_email,
        department_id=department_id,
    )


def get_db(request: Request) -> Database:
    return request.app.state.db


def _bind(repo, db: Database):
    repo.db = db
    return repo


def task_repository(db: Database = Depends(get_db)) -> TaskRepository:
    return _bind(TaskRepository(TaskKind.TASK), db)


def dev_task_repository(db: Database = Depends(get_db)) -> TaskRepository:
    return _bind(TaskRepository(TaskKind.DEV), db)


def leave_repository(db: Database = Depends(get_db)) -> LeaveRequestRepository:
    return _bind(LeaveRequestRepository(), db)


def credential_repository(db: Database = Depends(get_db)) -> CredentialRepository:
    return _bind(CredentialRepository(), db)


def lookup_repository(db: Database = Depends(get_db)) -> LookupRepository:
    return _bind(LookupRepository(), db)


def notification_repository(db: Database = Depends(get_db)) -> NotificationRepository:
    return _bind(NotificationRepository(), db)


def audit_repository(db: Database = Depends(get_db)) -> AuditRepository:
    return _bind(AuditRepository(), db)


def _sort(field: Optional[str], direction: str) -> Optional[Dict[str, str]]:
    if not field:
        return None
    return {"field": field, "direction": direction}


def _drop_empty(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v not in (None, [], "")}


# ============================================================================
# Tasks and Dev Tasks
# ============================================================================

def build_task_router(path: str, repository) -> APIRouter:
    """Same endpoints for both task trees, bound to their repository dependency."""
    tasks = APIRouter(prefix=path)

    @tasks.get("")
    async def list_tasks(
        status: Optional[List[str]] = Query(None),
        priority: Optional[List[str]] = Query(None),
        assigned_to: Optional[List[int]] = Query(None),
        project_id: Optional[List[int]] = Query(None),
        due: Optional[str] = None,
        due_start: Optional[str] = None,
        due_end: Optional[str] = None,
        search: Optional[str] = None,
        include_drafts: bool = True,
        sort_field: Optional[str] = None,
        sort_dir: str = "asc",
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        filters = _drop_empty({
            "status": status,
            "priority": priority,
            "assigned_to": assigned_to,
            "project_id": project_id,
            "search": search,
        })
        filters["include_drafts"] = include_drafts
        if due:
            filters["due_date"] = _drop_empty({"type": due, "start": due_start, "end": due_end})
        return await repo.list(ctx, filters, _sort(sort_field, sort_dir))

    @tasks.get("/analytics")
    async def task_analytics(
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.get_analytics(ctx)

    @tasks.post("/bulk-update")
    async def bulk_update_tasks(
        payload: Dict[str, Any] = Body(...),
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.bulk_update(ctx, payload)

    @tasks.post("/bulk-delete")
    async def bulk_delete_tasks(
        payload: Dict[str, Any] = Body(...),
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.bulk_delete(ctx, payload.get("ids") or [])

    @tasks.get("/{task_id}")
    async def get_task(
        task_id: int,
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.get_by_id(ctx, task_id)

    @tasks.post("", status_code=201)
    async def create_task(
        payload: Dict[str, Any] = Body(...),
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.create(ctx, payload)

    @tasks.patch("/{task_id}")
    async def update_task(
        task_id: int,
        payload: Dict[str, Any] = Body(...),
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.update(ctx, task_id, payload)

    @tasks.delete("/{task_id}", status_code=204)
    async def delete_task(
        task_id: int,
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        await repo.soft_delete(ctx, task_id)
        return Response(status_code=204)

    @tasks.get("/{task_id}/comments")
    async def list_comments(
        task_id: int,
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.list_comments(ctx, task_id)

    @tasks.post("/{task_id}/comments", status_code=201)
    async def add_comment(
        task_id: int,
        payload: Dict[str, Any] = Body(...),
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.add_comment(ctx, task_id, payload)

    @tasks.patch("/comments/{comment_id}")
    async def update_comment(
        comment_id: int,
        payload: Dict[str, Any] = Body(...),
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        return await repo.update_comment(ctx, comment_id, payload)

    @tasks.delete("/comments/{comment_id}", status_code=204)
    async def delete_comment(
        comment_id: int,
        ctx: UserContext = Depends(get_user_context),
        repo: TaskRepository = Depends(repository),
    ):
        await repo.delete_comment(ctx, comment_id)
        return Response(status_code=204)

    return tasks


router.include_router(build_task_router("/tasks", task_repository))
router.include_router(build_task_router("/dev-tasks", dev_task_repository))


# ============================================================================
# Leave Requests
# ============================================================================

@router.get("/leave-requests")
async def list_leave_requests(
    view: str = "my",
    window: str = "all",
    status: Optional[List[str]] = Query(None),
    user_id: Optional[int] = None,
    department_id: Optional[int] = None,
    sort_field: Optional[str] = None,
    sort_dir: str = "asc",
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    filters = _drop_empty({
        "view": view,
        "window": window,
        "status": status,
        "user_id": user_id,
        "department_id": department_id,
    })
    return await repo.list(ctx, filters, _sort(sort_field, sort_dir))


@router.post("/leave-requests/bulk-approve")
async def bulk_approve_leave_requests(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    return await repo.bulk_approve(ctx, payload)


@router.post("/leave-requests/bulk-reject")
async def bulk_reject_leave_requests(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    return await repo.bulk_reject(ctx, payload)


@router.get("/leave-requests/{request_id}")
async def get_leave_request(
    request_id: int,
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    return await repo.get_by_id(ctx, request_id)


@router.post("/leave-requests", status_code=201)
async def create_leave_request(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    return await repo.create(ctx, payload)


@router.patch("/leave-requests/{request_id}")
async def update_leave_request(
    request_id: int,
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    return await repo.update(ctx, request_id, payload)


@router.post("/leave-requests/{request_id}/cancel")
async def cancel_leave_request(
    request_id: int,
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    return await repo.cancel(ctx, request_id)


@router.post("/leave-requests/{request_id}/approve")
async def approve_leave_request(
    request_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    return await repo.approve(ctx, request_id, payload)


@router.post("/leave-requests/{request_id}/reject")
async def reject_leave_request(
    request_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    return await repo.reject(ctx, request_id, payload)


@router.delete("/leave-requests/{request_id}", status_code=204)
async def delete_leave_request(
    request_id: int,
    ctx: UserContext = Depends(get_user_context),
    repo: LeaveRequestRepository = Depends(leave_repository),
):
    await repo.soft_delete(ctx, request_id)
    return Response(status_code=204)


# ============================================================================
# Credentials
# ============================================================================

@router.get("/credentials")
async def list_credentials(
    category: Optional[str] = None,
    department_id: Optional[int] = None,
    search: Optional[str] = None,
    sort_field: Optional[str] = None,
    sort_dir: str = "asc",
    ctx: UserContext = Depends(get_user_context),
    repo: CredentialRepository = Depends(credential_repository),
):
    filters = _drop_empty({"category": category, "department_id": department_id, "search": search})
    return await repo.list(ctx, filters, _sort(sort_field, sort_dir))


@router.get("/credentials/{credential_id}")
async def get_credential(
    credential_id: int,
    ctx: UserContext = Depends(get_user_context),
    repo: CredentialRepository = Depends(credential_repository),
):
    return await repo.get_by_id(ctx, credential_id)


@router.post("/credentials", status_code=201)
async def create_credential(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: CredentialRepository = Depends(credential_repository),
):
    return await repo.create(ctx, payload)


@router.patch("/credentials/{credential_id}")
async def update_credential(
    credential_id: int,
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: CredentialRepository = Depends(credential_repository),
):
    return await repo.update(ctx, credential_id, payload)


@router.delete("/credentials/{credential_id}", status_code=204)
async def delete_credential(
    credential_id: int,
    ctx: UserContext = Depends(get_user_context),
    repo: CredentialRepository = Depends(credential_repository),
):
    await repo.soft_delete(ctx, credential_id)
    return Response(status_code=204)


@router.post("/credentials/{credential_id}/reveal")
async def reveal_credential_secret(
    credential_id: int,
    ctx: UserContext = Depends(get_user_context),
    repo: CredentialRepository = Depends(credential_repository),
):
    return {"password": await repo.reveal_secret(ctx, credential_id)}


# ============================================================================
# Organization lookups
# ============================================================================

@router.get("/departments")
async def list_departments(
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.list_departments(ctx)


@router.post("/departments", status_code=201)
async def create_department(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.create_department(ctx, payload)


@router.get("/verticals")
async def list_verticals(
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.list_verticals(ctx)


@router.post("/verticals", status_code=201)
async def create_vertical(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.create_vertical(ctx, payload)


@router.post("/teams/resolve")
async def resolve_team(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.resolve_team(ctx, payload)


@router.get("/profiles")
async def list_profiles(
    department_id: Optional[int] = None,
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.list_profiles(ctx, department_id)


@router.get("/profiles/{profile_id}")
async def get_profile(
    profile_id: int,
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.get_profile(ctx, profile_id)


@router.post("/profiles", status_code=201)
async def create_profile(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.create_profile(ctx, payload)


@router.get("/projects")
async def list_projects(
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.list_projects(ctx)


@router.post("/projects", status_code=201)
async def create_project(
    payload: Dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    repo: LookupRepository = Depends(lookup_repository),
):
    return await repo.create_project(ctx, payload)


# ============================================================================
# Notifications
# ============================================================================

@router.get("/notifications")
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=500),
    ctx: UserContext = Depends(get_user_context),
    repo: NotificationRepository = Depends(notification_repository),
):
    return await repo.list_for_user(ctx, unread_only=unread_only, limit=limit)


@router.get("/notifications/unread-count")
async def unread_notification_count(
    ctx: UserContext = Depends(get_user_context),
    repo: NotificationRepository = Depends(notification_repository),
):
    return {"count": await repo.unread_count(ctx)}


@router.post("/notifications/read-all")
async def mark_all_notifications_read(
    ctx: UserContext = Depends(get_user_context),
    repo: NotificationRepository = Depends(notification_repository),
):
    return {"marked": await repo.mark_all_read(ctx)}


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    ctx: UserContext = Depends(get_user_context),
    repo: NotificationRepository = Depends(notification_repository),
):
    return await repo.mark_read(ctx, notification_id)


# ============================================================================
# Audit
# ============================================================================

@router.get("/audit")
async def recent_audit_logs(
    limit: int = Query(50, ge=1, le=500),
    action: Optional[str] = None,
    ctx: UserContext = Depends(get_user_context),
    repo: AuditRepository = Depends(audit_repository),
):
    return await repo.get_recent_logs(ctx, limit=limit, action_filter=action)


@router.get("/audit/users/{user_id}")
async def user_activity(
    user_id: int,
    days: int = Query(7, ge=1, le=365),
    ctx: UserContext = Depends(get_user_context),
    repo: AuditRepository = Depends(audit_repository),
):
    return await repo.get_user_activity(ctx, user_id, days=days)


@router.get("/audit/{entity_type}/{entity_id}")
async def entity_history(
    entity_type: str,
    entity_id: str,
    ctx: UserContext = Depends(get_user_context),
    repo: AuditRepository = Depends(audit_repository),
):
    return await repo.get_entity_history(ctx, entity_type, entity_id)
