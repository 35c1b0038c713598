"""
application.py

Application layer for the project calculation system.

Overview
--------
The application layer sits between the presentation layer (API) and the
service layer.  It is responsible for:

  1. Defining clean output DTOs (dataclasses) that carry only the data the
     presentation layer needs; raw domain objects are not leaked upward.
  2. Declaring the UnitOfWork abstraction that groups the repository ports
     (ports.py) behind one object handed to every use case.
  3. Implementing Use Case handlers, one class per user-facing operation,
     that build the services over the UoW's repositories, call them, and
     assemble DTOs from the result.

Structure
---------
DTOs
    UserDTO, ProjectDTO, TaskDTO, MilestoneDTO, ProjectDetailDTO,
    ProjectProgressDTO, ProjectHoursDTO

Unit of Work
    AbstractUnitOfWork

Use Cases
    --- Projects ---
    CreateProjectUseCase, UpdateProjectUseCase, DeleteProjectUseCase,
    GetProjectUseCase, ListProjectsUseCase

    --- Rollups ---
    GetProjectDetailUseCase, ListProjectDetailsUseCase,
    GetProjectProgressUseCase, GetProjectHoursUseCase,
    ListProjectMilestonesUseCase

    --- Milestones & tasks ---
    AddMilestoneUseCase, SetMilestoneStatusUseCase, AddTaskUseCase,
    RecordTaskHoursUseCase, AssignCoworkerUseCase

    --- Users ---
    CreateUserUseCase, UpdateUserUseCase, DeleteUserUseCase,
    GetUserUseCase, GetUserByUsernameUseCase, ListUsersUseCase

Design notes
------------
- Use cases receive commands / plain ids and return DTOs only.
- All timestamps flowing out are ISO-8601 strings (UTC) for easy JSON
  serialisation.
- Errors bubble up unchanged as DomainError; the API maps them to HTTP.
- Unlike UserQueryService.create, CreateUserUseCase checks the username
  before creating, so a clash is reported as a duplicate name rather than
  a storage failure.
"""

from __future__ import annotations

import abc
import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from errors import DomainError, ErrorKind, ErrorReason
from log import LoggingObserver
from model import (
    Milestone,
    MilestoneDetail,
    Project,
    ProjectDetail,
    Role,
    Status,
    Task,
    TaskDetail,
    User,
)
from ports import (
    AbstractMilestoneRepository,
    AbstractProjectRepository,
    AbstractTaskRepository,
    AbstractUserRepository,
)
from service import (
    MilestoneAggregator,
    MilestoneService,
    ProjectRollupService,
    UserQueryService,
)
from validation import validate_username


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fmt(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO-8601 UTC string, or None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _fmt_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

@dataclass
class UserDTO:
    id: int
    username: str
    full_name: str
    email: str
    role: str
    created_at: str


@dataclass
class ProjectDTO:
    id: int
    name: str
    description: str
    created_at: str
    manager_id: Optional[int]
    status: str
    deadline: Optional[str]
    start_date: Optional[str]
    completed_at: Optional[str]


@dataclass
class TaskDTO:
    id: int
    milestone_id: int
    name: str
    description: str
    status: str
    estimated_hours: int
    actual_hours_used: int
    coworker_ids: List[int]


@dataclass
class MilestoneDTO:
    """A milestone row with its task rows."""
    id: int
    project_id: int
    name: str
    description: str
    status: str
    deadline: Optional[str]
    tasks: List[TaskDTO]


@dataclass
class ProjectDetailDTO:
    """Full project view: the project, its milestones and tasks, and progress."""
    id: int
    name: str
    description: str
    created_at: str
    manager_id: Optional[int]
    status: str
    deadline: Optional[str]
    start_date: Optional[str]
    completed_at: Optional[str]
    progress: int
    milestones: List[MilestoneDTO]


@dataclass
class ProjectProgressDTO:
    project_id: int
    progress: int


@dataclass
class ProjectHoursDTO:
    project_id: int
    estimated_hours: int
    actual_hours_used: int


# ===========================================================================
# DTO ASSEMBLERS
# ===========================================================================

class _Assembler:
    """Converts domain records and detail views into DTOs."""

    @staticmethod
    def user(u: User) -> UserDTO:
        return UserDTO(
            id=u.id,
            username=u.username,
            full_name=u.full_name,
            email=u.email,
            role=u.role.value,
            created_at=_fmt(u.created_at),
        )

    @staticmethod
    def project(p: Project) -> ProjectDTO:
        return ProjectDTO(
            id=p.id,
            name=p.name,
            description=p.description,
            created_at=_fmt(p.created_at),
            manager_id=p.manager_id,
            status=p.status.value,
            deadline=_fmt_date(p.deadline),
            start_date=_fmt_date(p.start_date),
            completed_at=_fmt(p.completed_at),
        )

    @staticmethod
    def task(t: Union[Task, TaskDetail]) -> TaskDTO:
        return TaskDTO(
            id=t.id,
            milestone_id=t.milestone_id,
            name=t.name,
            description=t.description,
            status=t.status.value,
            estimated_hours=t.estimated_hours,
            actual_hours_used=t.actual_hours_used,
            coworker_ids=sorted(t.coworker_ids),
        )

    @staticmethod
    def milestone(m: MilestoneDetail) -> MilestoneDTO:
        return MilestoneDTO(
            id=m.id,
            project_id=m.project_id,
            name=m.name,
            description=m.description,
            status=m.status.value,
            deadline=_fmt_date(m.deadline),
            tasks=[_Assembler.task(t) for t in m.tasks],
        )

    @staticmethod
    def project_detail(d: ProjectDetail) -> ProjectDetailDTO:
        return ProjectDetailDTO(
            id=d.id,
            name=d.name,
            description=d.description,
            created_at=_fmt(d.created_at),
            manager_id=d.manager_id,
            status=d.status.value,
            deadline=_fmt_date(d.deadline),
            start_date=_fmt_date(d.start_date),
            completed_at=_fmt(d.completed_at),
            progress=d.progress,
            milestones=[_Assembler.milestone(m) for m in d.milestones],
        )


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups all repositories under a single boundary.
    Use as a context manager:

        with uow:
            uow.projects.insert(project)
            uow.commit()
    """
    projects: AbstractProjectRepository
    milestones: AbstractMilestoneRepository
    tasks: AbstractTaskRepository
    users: AbstractUserRepository

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...


# ===========================================================================
# SERVICE FACTORIES
# ===========================================================================

_observer = LoggingObserver()


def _project_svc(uow: AbstractUnitOfWork) -> ProjectRollupService:
    aggregator = MilestoneAggregator(uow.milestones, uow.tasks)
    return ProjectRollupService(uow.projects, aggregator, observer=_observer)


def _user_svc(uow: AbstractUnitOfWork) -> UserQueryService:
    return UserQueryService(uow.users, observer=_observer)


def _milestone_svc(uow: AbstractUnitOfWork) -> MilestoneService:
    return MilestoneService(
        uow.projects, uow.milestones, uow.tasks, uow.users, observer=_observer
    )


# ===========================================================================
# USE CASES — PROJECTS
# ===========================================================================

@dataclass
class CreateProjectCommand:
    name: str
    description: str = ""
    manager_id: Optional[int] = None
    status: Status = Status.NOT_STARTED
    deadline: Optional[date] = None
    start_date: Optional[date] = None


class CreateProjectUseCase:
    def execute(self, cmd: CreateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            if cmd.manager_id is not None:
                _user_svc(uow).get_by_id(cmd.manager_id)
            project = _project_svc(uow).create(
                Project(
                    name=cmd.name,
                    description=cmd.description,
                    manager_id=cmd.manager_id,
                    status=cmd.status,
                    deadline=cmd.deadline,
                    start_date=cmd.start_date,
                )
            )
            uow.commit()
            return _Assembler.project(project)


# Project fields an explicit None may clear.
_CLEARABLE_PROJECT_FIELDS = frozenset({"manager_id", "deadline", "start_date"})


@dataclass
class UpdateProjectCommand:
    """
    `changes` maps project field names to new values.  Fields not present
    keep their stored value; None clears a field in _CLEARABLE_PROJECT_FIELDS
    and is rejected for any other.
    """
    project_id: int
    changes: Dict[str, Any] = field(default_factory=dict)


class UpdateProjectUseCase:
    def execute(self, cmd: UpdateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            svc = _project_svc(uow)
            current = svc.get_by_id(cmd.project_id)
            for name, value in cmd.changes.items():
                if value is None and name not in _CLEARABLE_PROJECT_FIELDS:
                    raise DomainError.invalid_field(
                        ErrorKind.UPDATE,
                        DomainError.validation(name, "required", f"{name} must not be null."),
                        "project",
                    )
            if cmd.changes.get("manager_id") is not None:
                _user_svc(uow).get_by_id(cmd.changes["manager_id"])
            project = svc.update(dataclasses.replace(current, **cmd.changes))
            uow.commit()
            return _Assembler.project(project)


class DeleteProjectUseCase:
    def execute(self, project_id: int, uow: AbstractUnitOfWork) -> None:
        with uow:
            _project_svc(uow).delete(project_id)
            uow.commit()


class GetProjectUseCase:
    def execute(self, project_id: int, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            return _Assembler.project(_project_svc(uow).get_by_id(project_id))


class ListProjectsUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> List[ProjectDTO]:
        with uow:
            return [_Assembler.project(p) for p in _project_svc(uow).list_all()]


# ===========================================================================
# USE CASES — ROLLUPS
# ===========================================================================

class ProjectScope(str, Enum):
    ALL = "all"
    FINISHED = "finished"
    ONGOING = "ongoing"


@dataclass
class ProjectDetailsQuery:
    """
    Selects which project details to list.  `manager_id` takes precedence
    over `employee_id`, which takes precedence over `scope`.
    """
    scope: ProjectScope = ProjectScope.ALL
    manager_id: Optional[int] = None
    employee_id: Optional[int] = None


class GetProjectDetailUseCase:
    def execute(self, project_id: int, uow: AbstractUnitOfWork) -> ProjectDetailDTO:
        with uow:
            return _Assembler.project_detail(_project_svc(uow).detail(project_id))


class ListProjectDetailsUseCase:
    def execute(
        self, query: ProjectDetailsQuery, uow: AbstractUnitOfWork
    ) -> List[ProjectDetailDTO]:
        with uow:
            svc = _project_svc(uow)
            if query.manager_id is not None:
                details = svc.by_manager(query.manager_id)
            elif query.employee_id is not None:
                details = svc.by_employee(query.employee_id)
            elif query.scope == ProjectScope.FINISHED:
                details = svc.finished_details()
            elif query.scope == ProjectScope.ONGOING:
                details = svc.ongoing_details()
            else:
                details = svc.all_details()
            return [_Assembler.project_detail(d) for d in details]


class GetProjectProgressUseCase:
    def execute(self, project_id: int, uow: AbstractUnitOfWork) -> ProjectProgressDTO:
        with uow:
            svc = _project_svc(uow)
            svc.get_by_id(project_id)
            return ProjectProgressDTO(project_id=project_id, progress=svc.progress(project_id))


class GetProjectHoursUseCase:
    def execute(self, project_id: int, uow: AbstractUnitOfWork) -> ProjectHoursDTO:
        with uow:
            svc = _project_svc(uow)
            return ProjectHoursDTO(
                project_id=project_id,
                estimated_hours=svc.estimated_hours(project_id),
                actual_hours_used=svc.actual_hours_used(project_id),
            )


class ListProjectMilestonesUseCase:
    def execute(
        self,
        project_id: int,
        scope: ProjectScope,
        uow: AbstractUnitOfWork,
    ) -> List[MilestoneDTO]:
        with uow:
            svc = _project_svc(uow)
            if scope == ProjectScope.FINISHED:
                milestones = svc.finished_milestones(project_id)
            elif scope == ProjectScope.ONGOING:
                milestones = svc.ongoing_milestones(project_id)
            else:
                milestones = list(svc.detail(project_id).milestones)
            return [_Assembler.milestone(m) for m in milestones]


# ===========================================================================
# USE CASES — MILESTONES & TASKS
# ===========================================================================

@dataclass
class AddMilestoneCommand:
    project_id: int
    name: str
    description: str = ""
    status: Status = Status.NOT_STARTED
    deadline: Optional[date] = None


class AddMilestoneUseCase:
    def execute(self, cmd: AddMilestoneCommand, uow: AbstractUnitOfWork) -> MilestoneDTO:
        with uow:
            milestone = _milestone_svc(uow).add_milestone(
                Milestone(
                    project_id=cmd.project_id,
                    name=cmd.name,
                    description=cmd.description,
                    status=cmd.status,
                    deadline=cmd.deadline,
                )
            )
            uow.commit()
            return _Assembler.milestone(
                MilestoneAggregator(uow.milestones, uow.tasks).detail(milestone.id)
            )


class SetMilestoneStatusUseCase:
    def execute(
        self, milestone_id: int, status: Status, uow: AbstractUnitOfWork
    ) -> MilestoneDTO:
        with uow:
            _milestone_svc(uow).set_milestone_status(milestone_id, status)
            uow.commit()
            return _Assembler.milestone(
                MilestoneAggregator(uow.milestones, uow.tasks).detail(milestone_id)
            )


@dataclass
class AddTaskCommand:
    milestone_id: int
    name: str
    description: str = ""
    status: Status = Status.NOT_STARTED
    estimated_hours: int = 0
    actual_hours_used: int = 0
    coworker_ids: Set[int] = field(default_factory=set)


class AddTaskUseCase:
    def execute(self, cmd: AddTaskCommand, uow: AbstractUnitOfWork) -> TaskDTO:
        with uow:
            task = _milestone_svc(uow).add_task(
                Task(
                    milestone_id=cmd.milestone_id,
                    name=cmd.name,
                    description=cmd.description,
                    status=cmd.status,
                    estimated_hours=cmd.estimated_hours,
                    actual_hours_used=cmd.actual_hours_used,
                    coworker_ids=set(cmd.coworker_ids),
                )
            )
            uow.commit()
            return _Assembler.task(task)


class RecordTaskHoursUseCase:
    def execute(
        self, task_id: int, actual_hours_used: int, uow: AbstractUnitOfWork
    ) -> TaskDTO:
        with uow:
            task = _milestone_svc(uow).record_task_hours(task_id, actual_hours_used)
            uow.commit()
            return _Assembler.task(task)


class AssignCoworkerUseCase:
    def execute(self, task_id: int, user_id: int, uow: AbstractUnitOfWork) -> TaskDTO:
        with uow:
            task = _milestone_svc(uow).assign_coworker(task_id, user_id)
            uow.commit()
            return _Assembler.task(task)


# ===========================================================================
# USE CASES — USERS
# ===========================================================================

def _validate_username(username: str, kind: ErrorKind) -> None:
    try:
        validate_username(username)
    except DomainError as exc:
        raise DomainError.invalid_field(kind, exc, "user") from exc


@dataclass
class CreateUserCommand:
    username: str
    full_name: str = ""
    email: str = ""
    role: Role = Role.EMPLOYEE


class CreateUserUseCase:
    def execute(self, cmd: CreateUserCommand, uow: AbstractUnitOfWork) -> UserDTO:
        with uow:
            _validate_username(cmd.username, ErrorKind.CREATION)
            svc = _user_svc(uow)
            if svc.exists_by_username(cmd.username):
                raise DomainError.creation(
                    ErrorReason.DUPLICATE_NAME,
                    f"Username '{cmd.username}' is already taken.",
                    entity="user",
                    key=cmd.username,
                    field="username",
                )
            user = svc.create(
                User(
                    username=cmd.username,
                    full_name=cmd.full_name,
                    email=cmd.email,
                    role=cmd.role,
                )
            )
            uow.commit()
            return _Assembler.user(user)


@dataclass
class UpdateUserCommand:
    """Fields left as None keep their stored value."""
    user_id: int
    username: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[Role] = None


class UpdateUserUseCase:
    def execute(self, cmd: UpdateUserCommand, uow: AbstractUnitOfWork) -> UserDTO:
        with uow:
            svc = _user_svc(uow)
            current = svc.get_by_id(cmd.user_id)
            if cmd.username is not None:
                _validate_username(cmd.username, ErrorKind.UPDATE)
                if svc.exists_by_username_excluding_id(cmd.username, cmd.user_id):
                    raise DomainError.update(
                        ErrorReason.DUPLICATE_NAME,
                        f"Username '{cmd.username}' is already taken.",
                        entity="user",
                        key=cmd.user_id,
                        field="username",
                    )
            changes = {
                name: value
                for name, value in (
                    ("username", cmd.username),
                    ("full_name", cmd.full_name),
                    ("email", cmd.email),
                    ("role", cmd.role),
                )
                if value is not None
            }
            user = svc.update(dataclasses.replace(current, **changes))
            uow.commit()
            return _Assembler.user(user)


class DeleteUserUseCase:
    def execute(self, user_id: int, uow: AbstractUnitOfWork) -> None:
        with uow:
            _user_svc(uow).delete(user_id)
            uow.commit()


class GetUserUseCase:
    def execute(self, user_id: int, uow: AbstractUnitOfWork) -> UserDTO:
        with uow:
            return _Assembler.user(_user_svc(uow).get_by_id(user_id))


class GetUserByUsernameUseCase:
    def execute(self, username: str, uow: AbstractUnitOfWork) -> UserDTO:
        with uow:
            return _Assembler.user(_user_svc(uow).get_by_username(username))


class ListUsersUseCase:
    def execute(self, uow: AbstractUnitOfWork, employees_only: bool = False) -> List[UserDTO]:
        with uow:
            svc = _user_svc(uow)
            users = svc.list_employees() if employees_only else svc.list_all()
            return [_Assembler.user(u) for u in users]
