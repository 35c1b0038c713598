"""
service.py

Service layer for the project calculation system.

Responsibilities
----------------
Services read current state through the repository ports on every call,
enforce the business invariants before delegating writes to those ports,
and compute every derived figure (progress, hour totals, filtered views)
from scratch.  Nothing is cached between calls.

Services
--------
- MilestoneAggregator   – composes milestones with their tasks into detail views
- ProjectRollupService  – project CRUD, completion stamping, progress and
                          hour rollups, filtered detail views
- UserQueryService      – user CRUD, role filtering, username checks
- MilestoneService      – milestone/task writes feeding the rollups

Design notes
------------
- Failures raise DomainError (errors.py).  Validation and uniqueness checks
  run before any write.  StorageError from a port, on a read or a write, is
  re-raised as the domain error matching the operation (reason
  PERSISTENCE_FAILURE) with the original fault chained as __cause__.
- Read-check-write sequences (name uniqueness, load-then-update) are two
  separate port calls and are not atomic; concurrent callers can race.
  Serialising access is left to the repository layer.
- Logging is not done here.  Each public operation reports to an injected
  OperationObserver (see log.LoggingObserver).
"""

from __future__ import annotations

import contextlib
import dataclasses
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

from errors import DomainError, ErrorKind, ErrorReason
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
    StorageError,
)
from validation import (
    validate_description,
    validate_hours,
    validate_name,
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _same_name(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()


def _percentage(part: int, whole: int) -> int:
    """100 * part / whole rounded half-up, in integer arithmetic."""
    return (200 * part + whole) // (2 * whole)


class OperationObserver:
    """
    Hook invoked around every public service operation.

    The base class does nothing; subclasses override what they need.
    `failed` only sees DomainError; anything else is a bug and propagates
    without being reported.
    """

    def started(self, component: str, operation: str, **context: Any) -> None:
        pass

    def succeeded(self, component: str, operation: str, **context: Any) -> None:
        pass

    def failed(
        self, component: str, operation: str, error: DomainError, **context: Any
    ) -> None:
        pass


@contextlib.contextmanager
def _storage_guard(kind: ErrorKind, entity: str, operation: str) -> Iterator[None]:
    """Re-raise any StorageError from the block as a PERSISTENCE_FAILURE of `kind`."""
    try:
        yield
    except StorageError as exc:
        raise DomainError.storage_failure(
            kind,
            f"Storage error during {entity}.{operation}.",
            entity=entity,
        ) from exc


class _ObservedService:
    component = ""

    def __init__(self, observer: Optional[OperationObserver] = None):
        self._observer = observer or OperationObserver()

    @contextlib.contextmanager
    def _observed(
        self,
        operation: str,
        kind: ErrorKind = ErrorKind.RETRIEVAL,
        **context: Any,
    ) -> Iterator[None]:
        """
        Report `operation` to the observer.  Storage faults not already
        wrapped inside the block surface as PERSISTENCE_FAILURE of `kind`.
        """
        self._observer.started(self.component, operation, **context)
        try:
            with _storage_guard(kind, self.component, operation):
                yield
        except DomainError as exc:
            self._observer.failed(self.component, operation, exc, **context)
            raise
        self._observer.succeeded(self.component, operation, **context)


# ---------------------------------------------------------------------------
# MilestoneAggregator
# ---------------------------------------------------------------------------

class MilestoneAggregator:
    """
    Builds MilestoneDetail views: each milestone with its tasks and the
    coworker ids assigned to them.  Composes only; computes nothing.
    """

    def __init__(
        self,
        milestones: AbstractMilestoneRepository,
        tasks: AbstractTaskRepository,
    ):
        self._milestones = milestones
        self._tasks = tasks

    def _compose(self, milestone: Milestone) -> MilestoneDetail:
        tasks = tuple(
            TaskDetail(
                id=t.id,
                milestone_id=t.milestone_id,
                name=t.name,
                description=t.description,
                status=t.status,
                estimated_hours=t.estimated_hours,
                actual_hours_used=t.actual_hours_used,
                coworker_ids=frozenset(t.coworker_ids),
            )
            for t in self._tasks.list_for_milestone(milestone.id)
        )
        return MilestoneDetail(
            id=milestone.id,
            project_id=milestone.project_id,
            name=milestone.name,
            description=milestone.description,
            status=milestone.status,
            deadline=milestone.deadline,
            tasks=tasks,
        )

    def for_project(self, project_id: int) -> List[MilestoneDetail]:
        with _storage_guard(ErrorKind.RETRIEVAL, "milestone", "for_project"):
            return [self._compose(m) for m in self._milestones.list_for_project(project_id)]

    def detail(self, milestone_id: int) -> MilestoneDetail:
        with _storage_guard(ErrorKind.RETRIEVAL, "milestone", "detail"):
            milestone = self._milestones.get(milestone_id)
            if milestone is None:
                raise DomainError.not_found("milestone", milestone_id)
            return self._compose(milestone)


# ---------------------------------------------------------------------------
# ProjectRollupService
# ---------------------------------------------------------------------------

class ProjectRollupService(_ObservedService):
    """
    Project reads and writes plus every figure derived from the
    project → milestone → task hierarchy.
    """

    component = "project"

    def __init__(
        self,
        projects: AbstractProjectRepository,
        aggregator: MilestoneAggregator,
        observer: Optional[OperationObserver] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(observer)
        self._projects = projects
        self._aggregator = aggregator
        self._clock = clock

    # -- lookups ------------------------------------------------------------

    def _load(self, project_id: int) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise DomainError.not_found("project", project_id)
        return project

    def list_all(self) -> List[Project]:
        with self._observed("list_all"):
            return self._projects.list_all()

    def get_by_id(self, project_id: int) -> Project:
        with self._observed("get_by_id", project_id=project_id):
            return self._load(project_id)

    def _named(self, name: Any) -> Optional[Project]:
        if not isinstance(name, str):
            return None
        return self._projects.get_by_name(name)

    def _taken_by_other(self, project_id: int, name: Any) -> bool:
        existing = self._named(name)
        return existing is not None and existing.id != project_id

    def exists_by_name(self, name: str) -> bool:
        with self._observed("exists_by_name", name=name):
            return self._named(name) is not None

    def other_exists_with_name(self, project_id: int, name: str) -> bool:
        """True if a project other than `project_id` already uses `name`."""
        with self._observed("other_exists_with_name", project_id=project_id, name=name):
            return self._taken_by_other(project_id, name)

    # -- writes -------------------------------------------------------------

    def _stamp_completion(
        self, project: Project, current: Optional[Project]
    ) -> Project:
        if project.status != Status.COMPLETED:
            return dataclasses.replace(project, completed_at=None)
        if current is not None and current.completed_at is not None:
            return dataclasses.replace(project, completed_at=current.completed_at)
        return dataclasses.replace(project, completed_at=self._clock())

    def create(self, project: Project) -> Project:
        with self._observed("create", ErrorKind.CREATION, name=project.name):
            try:
                validate_name(project.name)
                validate_description(project.description)
            except DomainError as exc:
                raise DomainError.invalid_field(ErrorKind.CREATION, exc, "project") from exc

            if self._named(project.name) is not None:
                raise DomainError.creation(
                    ErrorReason.DUPLICATE_NAME,
                    f"Project name '{project.name}' is already taken.",
                    entity="project",
                    key=project.name,
                    field="name",
                )

            record = self._stamp_completion(project, None)
            try:
                return self._projects.insert(record)
            except StorageError as exc:
                raise DomainError.creation(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Failed to create project '{project.name}'.",
                    entity="project",
                    key=project.name,
                ) from exc

    def delete(self, project_id: int) -> None:
        with self._observed("delete", ErrorKind.DELETION, project_id=project_id):
            try:
                deleted = self._projects.delete(project_id)
            except StorageError as exc:
                raise DomainError.deletion(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Failed to delete project {project_id}.",
                    entity="project",
                    key=project_id,
                ) from exc
            if not deleted:
                raise DomainError.not_found("project", project_id)

    def update(self, project: Project) -> Project:
        """
        Persist `project` over the stored record with the same id.

        The incoming record is not mutated; the stored version (with
        `completed_at` stamped or cleared and `created_at` kept from the
        current record) is returned.
        """
        with self._observed("update", ErrorKind.UPDATE, project_id=project.id):
            current = self._load(project.id)

            try:
                validate_name(project.name)
                validate_description(project.description)
            except DomainError as exc:
                raise DomainError.invalid_field(ErrorKind.UPDATE, exc, "project") from exc

            if not _same_name(current.name, project.name) and self._taken_by_other(
                project.id, project.name
            ):
                raise DomainError.update(
                    ErrorReason.DUPLICATE_NAME,
                    f"Project name '{project.name}' is already taken.",
                    entity="project",
                    key=project.id,
                    field="name",
                )

            record = self._stamp_completion(
                dataclasses.replace(project, created_at=current.created_at), current
            )
            try:
                updated = self._projects.update(record)
            except StorageError as exc:
                raise DomainError.update(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Storage error while updating project {project.id}.",
                    entity="project",
                    key=project.id,
                ) from exc
            if not updated:
                raise DomainError.update(
                    ErrorReason.NOT_FOUND,
                    f"Cannot update: no project found with id {project.id}.",
                    entity="project",
                    key=project.id,
                )
            return record

    # -- rollups ------------------------------------------------------------

    def _progress(self, milestones: List[MilestoneDetail]) -> int:
        if not milestones:
            return 0
        completed = sum(1 for m in milestones if m.is_completed)
        return _percentage(completed, len(milestones))

    def _detail(self, project: Project) -> ProjectDetail:
        milestones = self._aggregator.for_project(project.id)
        return ProjectDetail(
            id=project.id,
            name=project.name,
            description=project.description,
            created_at=project.created_at,
            manager_id=project.manager_id,
            status=project.status,
            deadline=project.deadline,
            start_date=project.start_date,
            completed_at=project.completed_at,
            milestones=tuple(milestones),
            progress=self._progress(milestones),
        )

    def _all_details(self) -> List[ProjectDetail]:
        return [self._detail(p) for p in self._projects.list_all()]

    def progress(self, project_id: int) -> int:
        """Percentage (0-100) of the project's milestones that are completed."""
        with self._observed("progress", project_id=project_id):
            return self._progress(self._aggregator.for_project(project_id))

    def detail(self, project_id: int) -> ProjectDetail:
        with self._observed("detail", project_id=project_id):
            return self._detail(self._load(project_id))

    def all_details(self) -> List[ProjectDetail]:
        with self._observed("all_details"):
            return self._all_details()

    def finished_details(self) -> List[ProjectDetail]:
        with self._observed("finished_details"):
            return [d for d in self._all_details() if d.is_completed]

    def ongoing_details(self) -> List[ProjectDetail]:
        with self._observed("ongoing_details"):
            return [d for d in self._all_details() if not d.is_completed]

    def finished_milestones(self, project_id: int) -> List[MilestoneDetail]:
        with self._observed("finished_milestones", project_id=project_id):
            detail = self._detail(self._load(project_id))
            return [m for m in detail.milestones if m.is_completed]

    def ongoing_milestones(self, project_id: int) -> List[MilestoneDetail]:
        with self._observed("ongoing_milestones", project_id=project_id):
            detail = self._detail(self._load(project_id))
            return [m for m in detail.milestones if not m.is_completed]

    def by_manager(self, manager_id: int) -> List[ProjectDetail]:
        with self._observed("by_manager", manager_id=manager_id):
            return [d for d in self._all_details() if d.manager_id == manager_id]

    def by_employee(self, employee_id: int) -> List[ProjectDetail]:
        """
        Projects where `employee_id` is a coworker on at least one task.
        Each project appears once, in listing order, however many of its
        tasks the employee is assigned to.
        """
        with self._observed("by_employee", employee_id=employee_id):
            found: Dict[int, None] = {}
            for project in self._projects.list_all():
                for milestone in self._aggregator.for_project(project.id):
                    if any(employee_id in t.coworker_ids for t in milestone.tasks):
                        found[project.id] = None
                        break
            return [self._detail(self._load(project_id)) for project_id in found]

    def estimated_hours(self, project_id: int) -> int:
        with self._observed("estimated_hours", project_id=project_id):
            detail = self._detail(self._load(project_id))
            return sum(t.estimated_hours for m in detail.milestones for t in m.tasks)

    def actual_hours_used(self, project_id: int) -> int:
        with self._observed("actual_hours_used", project_id=project_id):
            detail = self._detail(self._load(project_id))
            return sum(t.actual_hours_used for m in detail.milestones for t in m.tasks)


# ---------------------------------------------------------------------------
# UserQueryService
# ---------------------------------------------------------------------------

class UserQueryService(_ObservedService):
    """
    User reads and writes.

    Unlike project creation, `create` does not check for an existing
    username first; a clash is left to the user repository, whose failure
    surfaces as a creation error with reason PERSISTENCE_FAILURE.
    """

    component = "user"

    def __init__(
        self,
        users: AbstractUserRepository,
        observer: Optional[OperationObserver] = None,
    ):
        super().__init__(observer)
        self._users = users

    def list_all(self) -> List[User]:
        with self._observed("list_all"):
            return self._users.list_all()

    def list_employees(self) -> List[User]:
        with self._observed("list_employees"):
            return [u for u in self._users.list_all() if u.role == Role.EMPLOYEE]

    def get_by_id(self, user_id: int) -> User:
        with self._observed("get_by_id", user_id=user_id):
            user = self._users.get(user_id)
            if user is None:
                raise DomainError.not_found("user", user_id)
            return user

    def get_by_username(self, username: str) -> User:
        with self._observed("get_by_username", username=username):
            user = self._users.get_by_username(username)
            if user is None:
                raise DomainError.not_found("user", username)
            return user

    def create(self, user: User) -> User:
        with self._observed("create", ErrorKind.CREATION, username=user.username):
            try:
                return self._users.insert(user)
            except StorageError as exc:
                raise DomainError.creation(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Failed to create user with username '{user.username}'.",
                    entity="user",
                    key=user.username,
                ) from exc

    def delete(self, user_id: int) -> None:
        with self._observed("delete", ErrorKind.DELETION, user_id=user_id):
            try:
                deleted = self._users.delete(user_id)
            except StorageError as exc:
                raise DomainError.deletion(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Failed to delete user {user_id}.",
                    entity="user",
                    key=user_id,
                ) from exc
            if not deleted:
                raise DomainError.not_found("user", user_id)

    def update(self, user: User) -> User:
        with self._observed("update", ErrorKind.UPDATE, user_id=user.id):
            try:
                updated = self._users.update(user)
            except StorageError as exc:
                raise DomainError.update(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Storage error while updating user {user.id}.",
                    entity="user",
                    key=user.id,
                ) from exc
            if not updated:
                raise DomainError.not_found("user", user.id)
            return user

    def exists_by_username(self, username: str) -> bool:
        with self._observed("exists_by_username", username=username):
            return self._users.get_by_username(username) is not None

    def exists_by_id(self, user_id: int) -> bool:
        with self._observed("exists_by_id", user_id=user_id):
            return self._users.get(user_id) is not None

    def exists_by_username_excluding_id(self, username: str, excluded_id: int) -> bool:
        """True if `username` belongs to a user other than `excluded_id`."""
        with self._observed(
            "exists_by_username_excluding_id", username=username, excluded_id=excluded_id
        ):
            user = self._users.get_by_username(username)
            return user is not None and user.id != excluded_id


# ---------------------------------------------------------------------------
# MilestoneService
# ---------------------------------------------------------------------------

class MilestoneService(_ObservedService):
    """
    Writes to milestones and tasks: the records the project rollups are
    computed from.
    """

    component = "milestone"

    def __init__(
        self,
        projects: AbstractProjectRepository,
        milestones: AbstractMilestoneRepository,
        tasks: AbstractTaskRepository,
        users: AbstractUserRepository,
        observer: Optional[OperationObserver] = None,
    ):
        super().__init__(observer)
        self._projects = projects
        self._milestones = milestones
        self._tasks = tasks
        self._users = users

    def _load_milestone(self, milestone_id: int) -> Milestone:
        milestone = self._milestones.get(milestone_id)
        if milestone is None:
            raise DomainError.not_found("milestone", milestone_id)
        return milestone

    def _load_task(self, task_id: int) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise DomainError.not_found("task", task_id)
        return task

    def _save_task(self, task: Task) -> Task:
        try:
            updated = self._tasks.update(task)
        except StorageError as exc:
            raise DomainError.update(
                ErrorReason.PERSISTENCE_FAILURE,
                f"Storage error while updating task {task.id}.",
                entity="task",
                key=task.id,
            ) from exc
        if not updated:
            raise DomainError.update(
                ErrorReason.NOT_FOUND,
                f"Cannot update: no task found with id {task.id}.",
                entity="task",
                key=task.id,
            )
        return task

    def add_milestone(self, milestone: Milestone) -> Milestone:
        with self._observed("add_milestone", ErrorKind.CREATION, project_id=milestone.project_id):
            try:
                validate_name(milestone.name)
                validate_description(milestone.description)
            except DomainError as exc:
                raise DomainError.invalid_field(ErrorKind.CREATION, exc, "milestone") from exc
            if self._projects.get(milestone.project_id) is None:
                raise DomainError.not_found("project", milestone.project_id)
            try:
                return self._milestones.insert(milestone)
            except StorageError as exc:
                raise DomainError.creation(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Failed to create milestone '{milestone.name}'.",
                    entity="milestone",
                    key=milestone.name,
                ) from exc

    def set_milestone_status(self, milestone_id: int, status: Status) -> Milestone:
        with self._observed("set_milestone_status", ErrorKind.UPDATE, milestone_id=milestone_id):
            milestone = dataclasses.replace(
                self._load_milestone(milestone_id), status=Status(status)
            )
            try:
                updated = self._milestones.update(milestone)
            except StorageError as exc:
                raise DomainError.update(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Storage error while updating milestone {milestone_id}.",
                    entity="milestone",
                    key=milestone_id,
                ) from exc
            if not updated:
                raise DomainError.update(
                    ErrorReason.NOT_FOUND,
                    f"Cannot update: no milestone found with id {milestone_id}.",
                    entity="milestone",
                    key=milestone_id,
                )
            return milestone

    def add_task(self, task: Task) -> Task:
        with self._observed("add_task", ErrorKind.CREATION, milestone_id=task.milestone_id):
            try:
                validate_name(task.name)
                validate_description(task.description)
                validate_hours(task.estimated_hours, "estimated_hours")
                validate_hours(task.actual_hours_used, "actual_hours_used")
            except DomainError as exc:
                raise DomainError.invalid_field(ErrorKind.CREATION, exc, "task") from exc
            self._load_milestone(task.milestone_id)
            for user_id in task.coworker_ids:
                if self._users.get(user_id) is None:
                    raise DomainError.not_found("user", user_id)
            try:
                return self._tasks.insert(task)
            except StorageError as exc:
                raise DomainError.creation(
                    ErrorReason.PERSISTENCE_FAILURE,
                    f"Failed to create task '{task.name}'.",
                    entity="task",
                    key=task.name,
                ) from exc

    def record_task_hours(self, task_id: int, actual_hours_used: int) -> Task:
        with self._observed("record_task_hours", ErrorKind.UPDATE, task_id=task_id):
            try:
                validate_hours(actual_hours_used, "actual_hours_used")
            except DomainError as exc:
                raise DomainError.invalid_field(ErrorKind.UPDATE, exc, "task") from exc
            task = dataclasses.replace(
                self._load_task(task_id), actual_hours_used=actual_hours_used
            )
            return self._save_task(task)

    def assign_coworker(self, task_id: int, user_id: int) -> Task:
        with self._observed("assign_coworker", ErrorKind.UPDATE, task_id=task_id, user_id=user_id):
            current = self._load_task(task_id)
            if self._users.get(user_id) is None:
                raise DomainError.not_found("user", user_id)
            task = dataclasses.replace(current, coworker_ids=current.coworker_ids | {user_id})
            return self._save_task(task)
