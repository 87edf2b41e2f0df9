"""
Unit tests for the audit trail.
"""

import pytest

from opsdesk.database.exceptions import ForbiddenError
from opsdesk.database.models import TaskDB
from opsdesk.database.repositories.audit import record_audit, row_snapshot, _to_text
from opsdesk.models.task import TaskStatus


def test_to_text():
    assert _to_text(None) is None
    assert _to_text(TaskStatus.BLOCKED) == "blocked"
    assert _to_text({"documents": ["a.pdf"]}) == '{"documents": ["a.pdf"]}'
    assert _to_text(3) == "3"


def test_row_snapshot_excludes_columns():
    row = TaskDB(id=1, kind="task", name="Launch", level=0, progress=0)

    snapshot = row_snapshot(row, exclude=("description",))

    assert snapshot["name"] == "Launch"
    assert "description" not in snapshot


@pytest.mark.asyncio
async def test_record_and_read_history(db, audit_repo, org):
    async with db.session() as session:
        await record_audit(session, org.alice, "updated", "task", 7, field_changed="name", old_value="A", new_value="B")
        await record_audit(session, org.alice, "status_changed", "task", 7, field_changed="status",
                           old_value="not-started", new_value="completed")
        await record_audit(session, org.bob, "created", "task", 8)

    history = await audit_repo.get_entity_history(org.admin, "task", 7)

    assert [e.action for e in history] == ["status_changed", "updated"]
    assert history[1].old_value == "A"


@pytest.mark.asyncio
async def test_history_is_superadmin_only(audit_repo, org):
    with pytest.raises(ForbiddenError):
        await audit_repo.get_entity_history(org.manager, "task", 1)
    with pytest.raises(ForbiddenError):
        await audit_repo.get_recent_logs(org.alice)


@pytest.mark.asyncio
async def test_user_activity(db, audit_repo, org):
    async with db.session() as session:
        await record_audit(session, org.alice, "created", "task", 1)
        await record_audit(session, org.bob, "created", "task", 2)

    mine = await audit_repo.get_user_activity(org.alice, org.ids.alice)
    assert [e.entity_id for e in mine] == ["1"]

    with pytest.raises(ForbiddenError):
        await audit_repo.get_user_activity(org.alice, org.ids.bob)

    assert len(await audit_repo.get_user_activity(org.admin, org.ids.bob)) == 1


@pytest.mark.asyncio
async def test_recent_logs_filter(db, audit_repo, org):
    async with db.session() as session:
        await record_audit(session, org.admin, "created", "task", 1)
        await record_audit(session, org.admin, "deleted", "task", 1)

    logs = await audit_repo.get_recent_logs(org.admin, action_filter="deleted")

    assert [e.action for e in logs] == ["deleted"]
