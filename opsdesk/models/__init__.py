"""Data models for OpsDesk."""

from .task import (
    MAX_TASK_LEVEL,
    TaskKind,
    TaskStatus,
    TaskPriority,
    ProfileSummary,
    TaskNode,
    TaskComment,
    TeamPerformance,
    TaskAnalytics,
)
from .records import (
    UserRole,
    LeaveType,
    LeaveStatus,
    Department,
    Vertical,
    Team,
    Project,
    Profile,
    LeaveRequest,
    MaskedCredential,
    Notification,
    AuditEntry,
    BulkResult,
)

__all__ = [
    "MAX_TASK_LEVEL",
    "TaskKind",
    "TaskStatus",
    "TaskPriority",
    "ProfileSummary",
    "TaskNode",
    "TaskComment",
    "TeamPerformance",
    "TaskAnalytics",
    "UserRole",
    "LeaveType",
    "LeaveStatus",
    "Department",
    "Vertical",
    "Team",
    "Project",
    "Profile",
    "LeaveRequest",
    "MaskedCredential",
    "Notification",
    "AuditEntry",
    "BulkResult",
]
