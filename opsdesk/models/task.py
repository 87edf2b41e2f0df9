"""Task tree data model shared by Tasks and Dev Tasks."""

from datetime import datetime, date
from enum import Enum
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, model_validator


# Level 0 task, level 1 subtask, level 2 sub-subtask
MAX_TASK_LEVEL = 2


class TaskKind(str, Enum):
    """Which accessor owns the row."""
    TASK = "task"
    DEV = "dev"


class TaskStatus(str, Enum):
    """Task status. Advisory only: any status may follow any other."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    IN_REVIEW = "in-review"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class TaskPriority(str, Enum):
    """Task priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ProfileSummary(BaseModel):
    """Assignee as shown next to a task."""
    id: int
    full_name: str
    email: str


class TaskNode(BaseModel):
    """
    One node of the task tree.

    `subtasks` holds the live children of the node. Level 2 nodes are leaves.
    """

    id: int
    kind: TaskKind = TaskKind.TASK

    # Core fields
    name: str
    description: Optional[str] = None

    # Classification
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.MEDIUM
    category: Optional[str] = None

    # Hierarchy
    level: int = Field(0, ge=0, le=MAX_TASK_LEVEL)
    parent_id: Optional[int] = None
    project_id: Optional[int] = None

    # Assignment
    assigned_to: Optional[int] = None
    assignee: Optional[ProfileSummary] = None

    # Timing
    due_date: Optional[date] = None
    start_date: Optional[date] = None

    is_draft: bool = False
    progress: int = 0

    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    subtasks: List["TaskNode"] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_children(self) -> "TaskNode":
        if self.subtasks and self.level >= MAX_TASK_LEVEL:
            raise ValueError(f"level {self.level} tasks cannot have subtasks")
        for child in self.subtasks:
            if child.level != self.level + 1:
                raise ValueError(
                    f"subtask {child.id} has level {child.level}, expected {self.level + 1}"
                )
        return self


class TaskComment(BaseModel):
    """A comment on a task, with its author."""
    id: int
    task_id: int
    content: str
    created_by: int
    author: Optional[ProfileSummary] = None
    created_at: datetime
    updated_at: datetime


class TeamPerformance(BaseModel):
    """Per-assignee completion numbers."""
    user_id: int
    user_name: str
    total_tasks: int
    completed_tasks: int
    completion_rate: float


class TaskAnalytics(BaseModel):
    """Aggregate numbers for the task dashboard."""
    total: int
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
    completion_rate: float
    overdue_count: int
    team_performance: List[TeamPerformance] = Field(default_factory=list)
