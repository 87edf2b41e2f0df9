"""View models for the flat record domains (leave, credentials, lookups, notifications)."""

from datetime import datetime, date
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

from .task import ProfileSummary


class UserRole(str, Enum):
    """Roles supplied by the identity provider."""
    EXECUTIVE = "executive"
    MANAGER = "manager"
    SUPERADMIN = "superadmin"


class LeaveType(str, Enum):
    ANNUAL = "annual"
    SICK = "sick"
    PERSONAL = "personal"
    UNPAID = "unpaid"
    OTHER = "other"


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# ==================== ORGANIZATION ====================

class Department(BaseModel):
    id: int
    name: str
    code: Optional[str] = None


class Vertical(BaseModel):
    id: int
    name: str
    code: Optional[str] = None


class Team(BaseModel):
    id: int
    name: str
    code: str
    department_id: int
    vertical_id: Optional[int] = None
    is_active: bool = True


class Project(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: str = "active"
    created_at: datetime


class Profile(BaseModel):
    id: int
    full_name: str
    email: str
    role: UserRole
    manager_id: Optional[int] = None
    department_id: Optional[int] = None
    is_active: bool = True


# ==================== LEAVE ====================

class LeaveRequest(BaseModel):
    """A leave request as shown to the requester and approvers."""
    id: int
    user_id: int
    type: LeaveType
    start_date: date
    end_date: date
    days: int
    status: LeaveStatus
    reason: Optional[str] = None

    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    user: Optional[ProfileSummary] = None
    approved_by: Optional[ProfileSummary] = None

    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class BulkResult(BaseModel):
    """Outcome of a per-item bulk operation."""
    success: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


# ==================== CREDENTIALS ====================

class MaskedCredential(BaseModel):
    """Credential without its secret; `has_password` tells whether one is stored."""
    id: int
    name: str
    category: Optional[str] = None
    url: Optional[str] = None
    username: Optional[str] = None
    has_password: bool = False
    notes: Optional[str] = None
    department_id: Optional[int] = None
    last_used_at: Optional[datetime] = None
    last_used_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


# ==================== NOTIFICATIONS ====================

class Notification(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime


# ==================== AUDIT ====================

class AuditEntry(BaseModel):
    id: int
    entity_type: str
    entity_id: Optional[str] = None
    action: str
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: str
    timestamp: datetime
    snapshot: Optional[Dict[str, Any]] = None
