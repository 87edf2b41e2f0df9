"""
Unit tests for organization lookups and foreign-key resolution.
"""

import pytest

from opsdesk.database.exceptions import ValidationError, NotFoundError, ForbiddenError
from opsdesk.database.repositories.lookups import (
    slugify,
    resolve_department,
    resolve_profile,
    get_visible_user_ids,
    get_hr_member_ids,
)
from opsdesk.models.records import UserRole


def test_slugify():
    assert slugify("Sales & Legal") == "sales-legal"
    assert slugify("  Engineering  ") == "engineering"
    assert slugify("Ops – EMEA") == "ops-emea"


@pytest.mark.asyncio
async def test_resolve_reference_forms(db, org):
    async with db.session() as session:
        assert await resolve_department(session, org.ids.hr_dept) == org.ids.hr_dept
        assert await resolve_department(session, str(org.ids.hr_dept)) == org.ids.hr_dept
        assert await resolve_department(session, "HR") == org.ids.hr_dept
        assert await resolve_department(session, "human resources") == org.ids.hr_dept
        assert await resolve_department(session, None) is None
        assert await resolve_department(session, "  ") is None
        assert await resolve_profile(session, "Alice Smith") == org.ids.alice


@pytest.mark.asyncio
async def test_resolve_reference_unknown(db, org):
    async with db.session() as session:
        with pytest.raises(ValidationError) as exc_info:
            await resolve_department(session, "finance")

    assert exc_info.value.field == "department"
    assert str(exc_info.value) == "Department 'finance' not found"


@pytest.mark.asyncio
async def test_visible_user_ids(db, org):
    async with db.session() as session:
        assert await get_visible_user_ids(session, org.admin) is None
        assert await get_visible_user_ids(session, org.manager) == [org.ids.max, org.ids.alice, org.ids.bob]
        assert await get_visible_user_ids(session, org.alice) == [org.ids.alice]
        assert await get_hr_member_ids(session) == [org.ids.hana]


@pytest.mark.asyncio
async def test_departments(lookup_repo, org):
    created = await lookup_repo.create_department(org.admin, {"name": "Sales & Marketing"})
    assert created.code == "sales-marketing"

    names = [d.name for d in await lookup_repo.list_departments(org.alice)]
    assert names == ["Engineering", "Human Resources", "Sales & Marketing"]

    with pytest.raises(ForbiddenError):
        await lookup_repo.create_department(org.manager, {"name": "Shadow IT"})


@pytest.mark.asyncio
async def test_resolve_team_creates_once(lookup_repo, org):
    vertical = await lookup_repo.create_vertical(org.admin, {"name": "EMEA"})

    team = await lookup_repo.resolve_team(org.alice, {"department": "engineering", "vertical": "emea"})
    again = await lookup_repo.resolve_team(org.bob, {"department": org.ids.eng_dept, "vertical": vertical.id})

    assert team.id == again.id
    assert team.name == "Engineering – EMEA"
    assert team.code == "engineering-emea"
    assert team.vertical_id == vertical.id


@pytest.mark.asyncio
async def test_resolve_team_without_vertical(lookup_repo, org):
    team = await lookup_repo.resolve_team(org.alice, {"department": "hr"})

    assert team.name == "Human Resources"
    assert team.vertical_id is None


@pytest.mark.asyncio
async def test_resolve_team_unknown_vertical(lookup_repo, org):
    with pytest.raises(ValidationError):
        await lookup_repo.resolve_team(org.alice, {"department": "hr", "vertical": "apac"})


@pytest.mark.asyncio
async def test_create_profile(lookup_repo, org):
    profile = await lookup_repo.create_profile(org.admin, {
        "full_name": "Nina Park",
        "email": "Nina.Park@Example.com",
        "role": "executive",
        "manager": "max@example.com",
        "department": "engineering",
    })

    assert profile.email == "nina.park@example.com"
    assert profile.manager_id == org.ids.max
    assert profile.role == UserRole.EXECUTIVE

    reports = [p.id for p in await lookup_repo.list_profiles(org.admin, org.ids.eng_dept)]
    assert profile.id in reports


@pytest.mark.asyncio
async def test_create_profile_duplicate_email(lookup_repo, org):
    with pytest.raises(ValidationError) as exc_info:
        await lookup_repo.create_profile(org.admin, {"full_name": "Alice Again", "email": "alice@example.com"})

    assert "already exists" in str(exc_info.value)


@pytest.mark.asyncio
async def test_create_profile_invalid_email(lookup_repo, org):
    with pytest.raises(ValidationError) as exc_info:
        await lookup_repo.create_profile(org.admin, {"full_name": "Nobody", "email": "not-an-email"})

    assert exc_info.value.field == "email"


@pytest.mark.asyncio
async def test_get_profile(lookup_repo, org):
    assert (await lookup_repo.get_profile(org.alice, org.ids.bob)).full_name == "Bob Jones"

    with pytest.raises(NotFoundError):
        await lookup_repo.get_profile(org.alice, 4040)


@pytest.mark.asyncio
async def test_projects(lookup_repo, task_repo, org):
    project = await lookup_repo.create_project(org.alice, {"name": "Website relaunch"})
    assert [p.id for p in await lookup_repo.list_projects(org.bob)] == [project.id]

    task = await task_repo.create(org.alice, {"name": "Copy", "project_id": "website relaunch"})
    assert task.project_id == project.id

    found = await task_repo.list(org.alice, {"project_id": [project.id]})
    assert [t.id for t in found] == [task.id]
