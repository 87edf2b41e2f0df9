"""
Pytest configuration and shared fixtures.

Repository tests run against a throwaway SQLite file per test so the real
queries, constraints and cascades are exercised.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio

from opsdesk.database.connection import Database
from opsdesk.database.models import DepartmentDB, ProfileDB
from opsdesk.database.repositories import (
    TaskRepository,
    LeaveRequestRepository,
    CredentialRepository,
    LookupRepository,
    NotificationRepository,
    AuditRepository,
)
from opsdesk.models.records import UserRole
from opsdesk.models.task import TaskKind
from opsdesk.utils.background_tasks import drain_background_tasks
from opsdesk.utils.permissions import UserContext


@pytest_asyncio.fixture
async def db(tmp_path):
    """Initialized database on a temporary SQLite file."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'opsdesk.db'}")
    assert await database.initialize()
    yield database
    await drain_background_tasks()
    await database.close()


@pytest_asyncio.fixture
async def org(db):
    """
    A small organization:

    - ada: superadmin in Engineering
    - max: manager in Engineering, manages alice and bob
    - alice, bob: executives reporting to max
    - hana: executive in HR
    - omar: executive with no department and no manager
    """
    async with db.session() as session:
        hr = DepartmentDB(name="Human Resources", code="hr")
        eng = DepartmentDB(name="Engineering", code="engineering")
        session.add_all([hr, eng])
        await session.flush()

        ada = ProfileDB(full_name="Ada Admin", email="ada@example.com", role="superadmin", department_id=eng.id)
        max_ = ProfileDB(full_name="Max Manager", email="max@example.com", role="manager", department_id=eng.id)
        session.add_all([ada, max_])
        await session.flush()

        alice = ProfileDB(
            full_name="Alice Smith", email="alice@example.com", role="executive",
            manager_id=max_.id, department_id=eng.id,
        )
        bob = ProfileDB(
            full_name="Bob Jones", email="bob@example.com", role="executive",
            manager_id=max_.id, department_id=eng.id,
        )
        hana = ProfileDB(full_name="Hana Lee", email="hana@example.com", role="executive", department_id=hr.id)
        omar = ProfileDB(full_name="Omar Diaz", email="omar@example.com", role="executive")
        session.add_all([alice, bob, hana, omar])
        await session.flush()

        ids = SimpleNamespace(
            hr_dept=hr.id, eng_dept=eng.id,
            ada=ada.id, max=max_.id, alice=alice.id, bob=bob.id, hana=hana.id, omar=omar.id,
        )

    return SimpleNamespace(
        ids=ids,
        admin=UserContext(user_id=ids.ada, role=UserRole.SUPERADMIN, email="ada@example.com", department_id=ids.eng_dept),
        manager=UserContext(user_id=ids.max, role=UserRole.MANAGER, email="max@example.com", department_id=ids.eng_dept),
        alice=UserContext(user_id=ids.alice, email="alice@example.com", department_id=ids.eng_dept),
        bob=UserContext(user_id=ids.bob, email="bob@example.com", department_id=ids.eng_dept),
        hana=UserContext(user_id=ids.hana, email="hana@example.com", department_id=ids.hr_dept),
        omar=UserContext(user_id=ids.omar, email="omar@example.com"),
    )


def _bind(repo, db):
    repo.db = db
    return repo


@pytest.fixture
def task_repo(db):
    return _bind(TaskRepository(TaskKind.TASK), db)


@pytest.fixture
def dev_task_repo(db):
    return _bind(TaskRepository(TaskKind.DEV), db)


@pytest.fixture
def leave_repo(db):
    return _bind(LeaveRequestRepository(), db)


@pytest.fixture
def credential_repo(db):
    return _bind(CredentialRepository(), db)


@pytest.fixture
def lookup_repo(db):
    return _bind(LookupRepository(), db)


@pytest.fixture
def notification_repo(db):
    return _bind(NotificationRepository(), db)


@pytest.fixture
def audit_repo(db):
    return _bind(AuditRepository(), db)
