"""
Organization lookups and foreign-key resolution.

Foreign-key inputs (assignee, department, vertical, team, project) are
resolved at write time. A reference is an id or, for lookups, a
case-insensitive name, code or email. The result is a live row id or None,
never a dangling id.
"""

import logging
import re
from typing import Optional, List, Sequence, Type, Union

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import get_database
from ..models import DepartmentDB, VerticalDB, TeamDB, ProfileDB, ProjectDB
from ..exceptions import ValidationError, NotFoundError
from .audit import record_audit
from ...models.api_validation import (
    DepartmentCreate,
    VerticalCreate,
    ProjectCreate,
    ProfileCreate,
    TeamResolve,
)
from ...models.records import Department, Vertical, Team, Project, Profile, UserRole
from ...models.task import ProfileSummary
from ...utils.errors import backend_errors
from ...utils.permissions import UserContext, require_superadmin
from ...utils.validation import parse_input

logger = logging.getLogger(__name__)

Reference = Union[int, str, None]

HR_DEPARTMENT_CODE = "hr"


def slugify(value: str) -> str:
    """Lowercase hyphenated code: Sales & Legal -> sales-legal."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def _live(model: Type) -> list:
    conditions = []
    if hasattr(model, "deleted_at"):
        conditions.append(model.deleted_at.is_(None))
    if hasattr(model, "is_active"):
        conditions.append(model.is_active.is_(True))
    return conditions


async def resolve_reference(
    session: AsyncSession,
    model: Type,
    ref: Reference,
    columns: Sequence[str],
    label: str,
    field: Optional[str] = None,
) -> Optional[int]:
    """
    Resolve `ref` to the id of a live row of `model`.

    None (or blank) resolves to None. Anything else must match a row: by id
    when it is an integer or all digits, otherwise case-insensitively on
    `columns`.

    Raises:
        ValidationError: when a supplied reference matches no live row
    """
    if ref is None or (isinstance(ref, str) and not ref.strip()):
        return None

    query = select(model.id).where(*_live(model))
    if isinstance(ref, int) or (isinstance(ref, str) and ref.strip().isdigit()):
        query = query.where(model.id == int(ref))
    else:
        needle = ref.strip().lower()
        query = query.where(
            or_(*[func.lower(getattr(model, column)) == needle for column in columns])
        ).order_by(model.id)

    result = await session.execute(query.limit(1))
    row_id = result.scalar_one_or_none()
    if row_id is None:
        raise ValidationError(f"{label} '{ref}' not found", field=field)
    return row_id


async def resolve_profile(session: AsyncSession, ref: Reference, field: str = "assigned_to") -> Optional[int]:
    return await resolve_reference(session, ProfileDB, ref, ("email", "full_name"), "Profile", field)


async def resolve_department(session: AsyncSession, ref: Reference, field: str = "department") -> Optional[int]:
    return await resolve_reference(session, DepartmentDB, ref, ("code", "name"), "Department", field)


async def resolve_vertical(session: AsyncSession, ref: Reference, field: str = "vertical") -> Optional[int]:
    return await resolve_reference(session, VerticalDB, ref, ("code", "name"), "Vertical", field)


async def resolve_project(session: AsyncSession, ref: Reference, field: str = "project_id") -> Optional[int]:
    return await resolve_reference(session, ProjectDB, ref, ("name",), "Project", field)


async def get_or_create_team(
    session: AsyncSession,
    department_id: int,
    vertical_id: Optional[int] = None,
) -> TeamDB:
    """Find the team for a department/vertical pair, creating it on first use."""
    query = select(TeamDB).where(
        TeamDB.department_id == department_id,
        TeamDB.deleted_at.is_(None),
    )
    if vertical_id is None:
        query = query.where(TeamDB.vertical_id.is_(None))
    else:
        query = query.where(TeamDB.vertical_id == vertical_id)

    result = await session.execute(query.order_by(TeamDB.id).limit(1))
    team = result.scalar_one_or_none()
    if team:
        return team

    department = await session.get(DepartmentDB, department_id)
    if department is None or department.deleted_at is not None:
        raise ValidationError(f"Department '{department_id}' not found", field="department")

    name = department.name
    if vertical_id is not None:
        vertical = await session.get(VerticalDB, vertical_id)
        if vertical is None or vertical.deleted_at is not None:
            raise ValidationError(f"Vertical '{vertical_id}' not found", field="vertical")
        name = f"{department.name} – {vertical.name}"

    team = TeamDB(
        name=name,
        code=slugify(name),
        department_id=department_id,
        vertical_id=vertical_id,
        is_active=True,
    )
    session.add(team)
    await session.flush()
    logger.info(f"Created team {team.code} for department {department_id}")
    return team


async def get_team_member_ids(session: AsyncSession, manager_id: int) -> List[int]:
    """Active direct reports of a manager."""
    result = await session.execute(
        select(ProfileDB.id)
        .where(ProfileDB.manager_id == manager_id, ProfileDB.is_active.is_(True))
        .order_by(ProfileDB.id)
    )
    return list(result.scalars().all())


async def get_visible_user_ids(session: AsyncSession, ctx: UserContext) -> Optional[List[int]]:
    """
    Users whose records the caller may see. None means everyone.

    Executives see their own, managers add their direct reports.
    """
    if ctx.is_superadmin:
        return None
    if ctx.role == UserRole.MANAGER:
        return [ctx.user_id] + await get_team_member_ids(session, ctx.user_id)
    return [ctx.user_id]


async def get_hr_member_ids(session: AsyncSession) -> List[int]:
    """Active members of the HR department."""
    result = await session.execute(
        select(ProfileDB.id)
        .join(DepartmentDB, ProfileDB.department_id == DepartmentDB.id)
        .where(
            func.lower(DepartmentDB.code) == HR_DEPARTMENT_CODE,
            DepartmentDB.deleted_at.is_(None),
            ProfileDB.is_active.is_(True),
        )
        .order_by(ProfileDB.id)
    )
    return list(result.scalars().all())


async def is_hr_member(session: AsyncSession, ctx: UserContext) -> bool:
    department_id = ctx.department_id
    if department_id is None:
        profile = await session.get(ProfileDB, ctx.user_id)
        department_id = profile.department_id if profile else None
    if department_id is None:
        return False
    department = await session.get(DepartmentDB, department_id)
    return bool(department and department.code and department.code.lower() == HR_DEPARTMENT_CODE)


async def load_profile_summaries(session: AsyncSession, ids: Sequence[Optional[int]]) -> dict:
    """id -> ProfileSummary for the given profile ids."""
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    result = await session.execute(select(ProfileDB).where(ProfileDB.id.in_(wanted)))
    return {
        p.id: ProfileSummary(id=p.id, full_name=p.full_name, email=p.email)
        for p in result.scalars().all()
    }


def _to_profile(row: ProfileDB) -> Profile:
    return Profile(
        id=row.id,
        full_name=row.full_name,
        email=row.email,
        role=row.role,
        manager_id=row.manager_id,
        department_id=row.department_id,
        is_active=row.is_active,
    )


class LookupRepository:
    """Departments, verticals, teams, profiles and projects."""

    def __init__(self):
        self.db = get_database()

    # ==================== DEPARTMENTS & VERTICALS ====================

    async def list_departments(self, ctx: UserContext) -> List[Department]:
        with backend_errors("list departments"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(DepartmentDB).where(DepartmentDB.deleted_at.is_(None)).order_by(DepartmentDB.name)
                )
                return [Department(id=d.id, name=d.name, code=d.code) for d in result.scalars().all()]

    async def create_department(self, ctx: UserContext, data) -> Department:
        require_superadmin(ctx, "create departments")
        data = parse_input(DepartmentCreate, data)
        with backend_errors("create department"):
            async with self.db.session() as session:
                department = DepartmentDB(name=data.name, code=data.code or slugify(data.name))
                session.add(department)
                await session.flush()
                await record_audit(session, ctx, "created", "department", department.id, new_value=data.name)
                logger.info(f"Created department {department.code}")
                return Department(id=department.id, name=department.name, code=department.code)

    async def list_verticals(self, ctx: UserContext) -> List[Vertical]:
        with backend_errors("list verticals"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(VerticalDB).where(VerticalDB.deleted_at.is_(None)).order_by(VerticalDB.name)
                )
                return [Vertical(id=v.id, name=v.name, code=v.code) for v in result.scalars().all()]

    async def create_vertical(self, ctx: UserContext, data) -> Vertical:
        require_superadmin(ctx, "create verticals")
        data = parse_input(VerticalCreate, data)
        with backend_errors("create vertical"):
            async with self.db.session() as session:
                vertical = VerticalDB(name=data.name, code=data.code or slugify(data.name))
                session.add(vertical)
                await session.flush()
                await record_audit(session, ctx, "created", "vertical", vertical.id, new_value=data.name)
                logger.info(f"Created vertical {vertical.code}")
                return Vertical(id=vertical.id, name=vertical.name, code=vertical.code)

    async def resolve_team(self, ctx: UserContext, data) -> Team:
        """Lookup-or-create the team for a department/vertical pair."""
        data = parse_input(TeamResolve, data)
        with backend_errors("resolve team"):
            async with self.db.session() as session:
                department_id = await resolve_department(session, data.department)
                vertical_id = await resolve_vertical(session, data.vertical)
                team = await get_or_create_team(session, department_id, vertical_id)
                return Team(
                    id=team.id,
                    name=team.name,
                    code=team.code,
                    department_id=team.department_id,
                    vertical_id=team.vertical_id,
                    is_active=team.is_active,
                )

    # ==================== PROFILES ====================

    async def list_profiles(self, ctx: UserContext, department_id: Optional[int] = None) -> List[Profile]:
        with backend_errors("list profiles"):
            async with self.db.session() as session:
                query = select(ProfileDB).where(ProfileDB.is_active.is_(True))
                if department_id is not None:
                    query = query.where(ProfileDB.department_id == department_id)
                result = await session.execute(query.order_by(ProfileDB.full_name, ProfileDB.id))
                return [_to_profile(p) for p in result.scalars().all()]

    async def get_profile(self, ctx: UserContext, profile_id: int) -> Profile:
        with backend_errors("load profile"):
            async with self.db.session() as session:
                profile = await session.get(ProfileDB, profile_id)
                if profile is None:
                    raise NotFoundError("profile", profile_id)
                return _to_profile(profile)

    async def create_profile(self, ctx: UserContext, data) -> Profile:
        """Register a profile mirrored from the identity provider."""
        require_superadmin(ctx, "create profiles")
        data = parse_input(ProfileCreate, data)
        with backend_errors("create profile"):
            async with self.db.session() as session:
                manager_id = await resolve_profile(session, data.manager, field="manager")
                department_id = await resolve_department(session, data.department)
                profile = ProfileDB(
                    full_name=data.full_name,
                    email=str(data.email).lower(),
                    role=data.role.value,
                    manager_id=manager_id,
                    department_id=department_id,
                    is_active=True,
                )
                session.add(profile)
                await session.flush()
                await record_audit(session, ctx, "created", "profile", profile.id, new_value=profile.email)
                logger.info(f"Created profile {profile.id} ({data.role.value})")
                return _to_profile(profile)

    # ==================== PROJECTS ====================

    async def list_projects(self, ctx: UserContext) -> List[Project]:
        with backend_errors("list projects"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(ProjectDB)
                    .where(ProjectDB.deleted_at.is_(None))
                    .order_by(ProjectDB.created_at, ProjectDB.id)
                )
                return [
                    Project(
                        id=p.id,
                        name=p.name,
                        description=p.description,
                        status=p.status,
                        created_at=p.created_at,
                    )
                    for p in result.scalars().all()
                ]

    async def create_project(self, ctx: UserContext, data) -> Project:
        data = parse_input(ProjectCreate, data)
        with backend_errors("create project"):
            async with self.db.session() as session:
                project = ProjectDB(
                    name=data.name,
                    description=data.description,
                    status="active",
                    created_by=ctx.user_id,
                )
                session.add(project)
                await session.flush()
                await record_audit(session, ctx, "created", "project", project.id, new_value=data.name)
                logger.info(f"Created project {project.id}: {project.name}")
                return Project(
                    id=project.id,
                    name=project.name,
                    description=project.description,
                    status=project.status,
                    created_at=project.created_at,
                )
