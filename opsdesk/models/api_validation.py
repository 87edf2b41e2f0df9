"""
Pydantic models for accessor input validation.

Form submissions arrive untyped; every accessor runs its input through one
of these models before touching the database.
"""

from datetime import date
from typing import Optional, List, Literal, Union
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator

from .task import TaskStatus, TaskPriority
from .records import LeaveType, LeaveStatus, UserRole


# Identifier accepted for a foreign key: a row id, or a name/code/email
Reference = Union[int, str]


def _blank_to_none(v):
    """Empty form fields mean "not provided"."""
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _required_text(v: Optional[str], label: str) -> str:
    if v is None:
        raise ValueError(f"{label} cannot be empty")
    stripped = v.strip()
    if not stripped:
        raise ValueError(f"{label} cannot be empty")
    return stripped


# ============================================
# TASKS
# ============================================

class TaskCreate(BaseModel):
    """Input validation for creating tasks and subtasks."""
    name: str = Field(..., max_length=500)
    description: Optional[str] = Field(None, max_length=10000)
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.MEDIUM
    parent_id: Optional[int] = None
    project_id: Optional[Reference] = None
    assigned_to: Optional[Reference] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    category: Optional[str] = Field(None, max_length=100)
    is_draft: bool = False
    progress: int = 0

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _required_text(v, "name")

    @field_validator(
        "description", "category", "project_id", "assigned_to", "due_date", "start_date",
        mode="before",
    )
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)

    @field_validator("progress")
    @classmethod
    def clamp_progress(cls, v):
        return max(0, min(100, v))


class TaskUpdate(BaseModel):
    """
    Partial task update. Only fields present in the payload are applied;
    `parent_id: null` moves the task to the top level.
    """
    name: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=10000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    parent_id: Optional[int] = None
    project_id: Optional[Reference] = None
    assigned_to: Optional[Reference] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    category: Optional[str] = Field(None, max_length=100)
    is_draft: Optional[bool] = None
    progress: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _required_text(v, "name")

    @field_validator("status", "priority", "is_draft")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("value cannot be null")
        return v

    @field_validator(
        "description", "category", "project_id", "assigned_to", "due_date", "start_date",
        mode="before",
    )
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)

    @field_validator("progress")
    @classmethod
    def clamp_progress(cls, v):
        if v is None:
            return v
        return max(0, min(100, v))


class TaskBulkUpdate(BaseModel):
    """Fields that may be changed on many tasks at once."""
    ids: List[int] = Field(..., min_length=1, max_length=500)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[Reference] = None
    project_id: Optional[Reference] = None

    @field_validator("project_id", "assigned_to", mode="before")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)


class DueDateFilter(BaseModel):
    """Due date window."""
    type: Literal["today", "this-week", "overdue", "custom"]
    start: Optional[date] = None
    end: Optional[date] = None

    @model_validator(mode="after")
    def check_custom_range(self) -> "DueDateFilter":
        if self.type == "custom":
            if self.start is None and self.end is None:
                raise ValueError("custom due date filter needs a start or an end")
            if self.start and self.end and self.end < self.start:
                raise ValueError("End date must be after start date")
        return self


class TaskFilter(BaseModel):
    """Input validation for task filtering. All predicates are AND-ed."""
    status: Optional[List[TaskStatus]] = None
    priority: Optional[List[TaskPriority]] = None
    assigned_to: Optional[List[int]] = None
    project_id: Optional[List[int]] = None
    due_date: Optional[DueDateFilter] = None
    search: Optional[str] = Field(None, max_length=200)
    include_drafts: bool = True


TaskSortField = Literal[
    "name", "status", "priority", "category", "level", "assigned_to",
    "due_date", "start_date", "progress", "created_at", "updated_at",
]


class TaskSort(BaseModel):
    field: TaskSortField
    direction: Literal["asc", "desc"] = "asc"


class TaskCommentCreate(BaseModel):
    """A comment body; also used when editing one."""
    content: str = Field(..., max_length=5000)

    @field_validator("content", mode="before")
    @classmethod
    def validate_content(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("Comment content is required")
        return v

    @field_validator("content")
    @classmethod
    def strip_content(cls, v):
        return v.strip()


# ============================================
# LEAVE REQUESTS
# ============================================

class LeaveRequestCreate(BaseModel):
    """Input validation for a new leave request."""
    type: LeaveType
    start_date: date
    end_date: date
    reason: str = Field(..., max_length=2000)
    coverage_plan: Optional[str] = Field(None, max_length=2000)
    contact_during_leave: Optional[str] = Field(None, max_length=200)
    documents: Optional[List[str]] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        return _required_text(v, "reason")

    @field_validator("coverage_plan", "contact_during_leave", mode="before")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def check_range(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("End date must be after start date")
        return self


class LeaveRequestUpdate(BaseModel):
    """Partial update of a pending leave request."""
    type: Optional[LeaveType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=2000)
    coverage_plan: Optional[str] = Field(None, max_length=2000)
    contact_during_leave: Optional[str] = Field(None, max_length=200)
    documents: Optional[List[str]] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        return _required_text(v, "reason")

    @field_validator("type", "start_date", "end_date")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("value cannot be null")
        return v


class LeaveBulkDecision(BaseModel):
    ids: List[int] = Field(..., min_length=1, max_length=500)
    approval_notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("approval_notes", mode="before")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)


class LeaveDecision(BaseModel):
    approval_notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("approval_notes", mode="before")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)


class LeaveRequestFilter(BaseModel):
    view: Literal["my", "all"] = "my"
    window: Literal["active", "past", "pending", "all"] = "all"
    status: Optional[List[LeaveStatus]] = None
    user_id: Optional[int] = None
    department_id: Optional[int] = None


LeaveSortField = Literal["type", "start_date", "end_date", "days", "status", "created_at", "updated_at"]


class LeaveSort(BaseModel):
    field: LeaveSortField
    direction: Literal["asc", "desc"] = "asc"


# ============================================
# CREDENTIALS
# ============================================

class CredentialCreate(BaseModel):
    name: str = Field(..., max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    url: Optional[str] = Field(None, max_length=500)
    username: Optional[str] = Field(None, max_length=200)
    password: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=5000)
    department: Optional[Reference] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _required_text(v, "name")

    @field_validator("category", "url", "username", "password", "notes", "department", mode="before")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)


class CredentialUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    url: Optional[str] = Field(None, max_length=500)
    username: Optional[str] = Field(None, max_length=200)
    password: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=5000)
    department: Optional[Reference] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _required_text(v, "name")

    @field_validator("category", "url", "username", "password", "notes", "department", mode="before")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)


class CredentialFilter(BaseModel):
    category: Optional[str] = None
    department_id: Optional[int] = None
    search: Optional[str] = Field(None, max_length=200)


CredentialSortField = Literal["name", "category", "url", "username", "created_at", "updated_at", "last_used_at"]


class CredentialSort(BaseModel):
    field: CredentialSortField
    direction: Literal["asc", "desc"] = "asc"


# ============================================
# ORGANIZATION
# ============================================

class DepartmentCreate(BaseModel):
    name: str = Field(..., max_length=100)
    code: Optional[str] = Field(None, max_length=50)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _required_text(v, "name")


class VerticalCreate(DepartmentCreate):
    pass


class ProjectCreate(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = Field(None, max_length=5000)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _required_text(v, "name")


class ProfileCreate(BaseModel):
    """Validation for registering a user profile."""
    full_name: str = Field(..., max_length=200)
    email: EmailStr
    role: UserRole = UserRole.EXECUTIVE
    manager: Optional[Reference] = None
    department: Optional[Reference] = None

    @field_validator("full_name")
    @classmethod
    def validate_name(cls, v):
        return _required_text(v, "full_name")

    @field_validator("manager", "department", mode="before")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)


class TeamResolve(BaseModel):
    department: Reference
    vertical: Optional[Reference] = None

    @field_validator("vertical", mode="before")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)
