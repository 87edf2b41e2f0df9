"""
Relational store for OpsDesk.

Handles:
- Organization lookups (departments, verticals, teams, profiles, projects)
- Tasks and dev tasks (three-level tree)
- Leave requests and credentials
- Notifications and audit logs

Repositories live in `opsdesk.database.repositories`.
"""

from .connection import (
    get_database,
    Database,
    normalize_database_url,
)
from .exceptions import (
    OpsDeskError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    BackendError,
    TreeIntegrityError,
)
from .models import (
    Base,
    DepartmentDB,
    VerticalDB,
    TeamDB,
    ProfileDB,
    ProjectDB,
    TaskDB,
    TaskCommentDB,
    LeaveRequestDB,
    CredentialDB,
    NotificationDB,
    AuditLogDB,
)

__all__ = [
    "get_database",
    "Database",
    "normalize_database_url",
    "OpsDeskError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "BackendError",
    "TreeIntegrityError",
    "Base",
    "DepartmentDB",
    "VerticalDB",
    "TeamDB",
    "ProfileDB",
    "ProjectDB",
    "TaskDB",
    "TaskCommentDB",
    "LeaveRequestDB",
    "CredentialDB",
    "NotificationDB",
    "AuditLogDB",
]
