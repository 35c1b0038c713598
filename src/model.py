"""
model.py

Domain models for the project calculation system.

Entities
--------
- Project
- Milestone
- Task
- User

Derived views
-------------
- TaskDetail
- MilestoneDetail
- ProjectDetail

Records are plain dataclasses keyed by integer id and joined through
foreign-key-style fields (Milestone.project_id, Task.milestone_id); nothing
holds a live pointer to its parent or children.  Detail views are frozen
and rebuilt on every read; they are never persisted.
Timestamps are always stored in UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import FrozenSet, Optional, Set, Tuple


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Status(str, Enum):
    """Lifecycle status shared by projects, milestones and tasks."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class Project:
    """
    Top-level unit of planned work, owned by a manager.

    `completed_at` is set iff `status` is COMPLETED; the service layer stamps
    it on the first transition to COMPLETED and clears it on the way out.
    An `id` of 0 means the record has not been inserted yet.
    """
    id: int = 0
    name: str = ""
    description: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    manager_id: Optional[int] = None            # FK → User.id
    status: Status = Status.NOT_STARTED
    deadline: Optional[date] = None
    start_date: Optional[date] = None
    completed_at: Optional[datetime] = None


@dataclass
class Milestone:
    """A checkpoint within a project; its status drives project progress."""
    id: int = 0
    project_id: int = 0                         # FK → Project.id
    name: str = ""
    description: str = ""
    status: Status = Status.NOT_STARTED
    deadline: Optional[date] = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class Task:
    """
    A unit of work inside a milestone.

    Hours are whole, non-negative numbers.  `coworker_ids` holds the ids of
    the employees assigned to the task (many-to-many with users).
    """
    id: int = 0
    milestone_id: int = 0                       # FK → Milestone.id
    name: str = ""
    description: str = ""
    status: Status = Status.NOT_STARTED
    estimated_hours: int = 0
    actual_hours_used: int = 0
    coworker_ids: Set[int] = field(default_factory=set)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class User:
    id: int = 0
    username: str = ""
    full_name: str = ""
    email: str = ""
    role: Role = Role.EMPLOYEE
    created_at: datetime = field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaskDetail:
    id: int
    milestone_id: int
    name: str
    description: str
    status: Status
    estimated_hours: int
    actual_hours_used: int
    coworker_ids: FrozenSet[int]


@dataclass(frozen=True)
class MilestoneDetail:
    """A milestone together with every task that belongs to it."""
    id: int
    project_id: int
    name: str
    description: str
    status: Status
    deadline: Optional[date]
    tasks: Tuple[TaskDetail, ...] = ()

    @property
    def is_completed(self) -> bool:
        return self.status == Status.COMPLETED


@dataclass(frozen=True)
class ProjectDetail:
    """
    Read-only composition of a project, its milestones (with tasks) and the
    progress percentage computed from the milestone statuses at read time.
    """
    id: int
    name: str
    description: str
    created_at: datetime
    manager_id: Optional[int]
    status: Status
    deadline: Optional[date]
    start_date: Optional[date]
    completed_at: Optional[datetime]
    milestones: Tuple[MilestoneDetail, ...] = ()
    progress: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == Status.COMPLETED
