"""
Record accessors.

Each repository handles validation, foreign-key resolution, permissions
and soft-delete semantics for its domain. Every operation takes the
caller's UserContext explicitly.
"""

from .tasks import TaskRepository
from .leave_requests import LeaveRequestRepository
from .credentials import CredentialRepository
from .lookups import LookupRepository, get_or_create_team
from .notifications import NotificationRepository
from .audit import AuditRepository, record_audit

__all__ = [
    "TaskRepository",
    "LeaveRequestRepository",
    "CredentialRepository",
    "LookupRepository",
    "get_or_create_team",
    "NotificationRepository",
    "AuditRepository",
    "record_audit",
]
