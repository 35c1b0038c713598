"""
ports.py

Repository interfaces the service layer depends on.

Lookups return None when a record is absent; translating absence into a
DomainError is the service layer's job, never the port's.  update() and
delete() report whether a matching record existed.  Any underlying I/O
fault surfaces as StorageError.
"""

from __future__ import annotations

import abc
from typing import List, Optional

from model import Milestone, Project, Task, User


class StorageError(Exception):
    """Raised by a repository when the backing store fails."""


class AbstractProjectRepository(abc.ABC):
    @abc.abstractmethod
    def list_all(self) -> List[Project]: ...
    @abc.abstractmethod
    def get(self, project_id: int) -> Optional[Project]: ...
    @abc.abstractmethod
    def get_by_name(self, name: str) -> Optional[Project]:
        """Case-insensitive lookup by project name."""
    @abc.abstractmethod
    def insert(self, project: Project) -> Project: ...
    @abc.abstractmethod
    def update(self, project: Project) -> bool: ...
    @abc.abstractmethod
    def delete(self, project_id: int) -> bool: ...


class AbstractMilestoneRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, milestone_id: int) -> Optional[Milestone]: ...
    @abc.abstractmethod
    def list_for_project(self, project_id: int) -> List[Milestone]: ...
    @abc.abstractmethod
    def insert(self, milestone: Milestone) -> Milestone: ...
    @abc.abstractmethod
    def update(self, milestone: Milestone) -> bool: ...
    @abc.abstractmethod
    def delete(self, milestone_id: int) -> bool: ...


class AbstractTaskRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, task_id: int) -> Optional[Task]: ...
    @abc.abstractmethod
    def list_for_milestone(self, milestone_id: int) -> List[Task]: ...
    @abc.abstractmethod
    def insert(self, task: Task) -> Task: ...
    @abc.abstractmethod
    def update(self, task: Task) -> bool: ...
    @abc.abstractmethod
    def delete(self, task_id: int) -> bool: ...


class AbstractUserRepository(abc.ABC):
    @abc.abstractmethod
    def list_all(self) -> List[User]: ...
    @abc.abstractmethod
    def get(self, user_id: int) -> Optional[User]: ...
    @abc.abstractmethod
    def get_by_username(self, username: str) -> Optional[User]: ...
    @abc.abstractmethod
    def insert(self, user: User) -> User: ...
    @abc.abstractmethod
    def update(self, user: User) -> bool: ...
    @abc.abstractmethod
    def delete(self, user_id: int) -> bool: ...
