"""
infrastructure.py

In-memory implementation of all repository interfaces and the Unit of Work.

This is a self-contained backend that stores everything in plain Python
dicts keyed by integer id.  It is meant for local development, demos and
tests that run without a real database, but it
behaves like one where the services can tell the difference:

  - ids are assigned on insert from a per-table counter and never reused;
  - records are copied on the way in and on the way out, so callers never
    hold a live reference into the store;
  - project names (case-insensitive) and usernames (exact) are unique at
    the storage level, and a clash raises StorageError like a unique
    constraint would.

To swap in a real database later, implement the same Abstract* interfaces
from ports.py and override get_uow() in api.py.
"""

from __future__ import annotations

import copy
import itertools
from typing import Callable, Optional

from application import AbstractUnitOfWork
from model import Project, User
from ports import (
    AbstractMilestoneRepository,
    AbstractProjectRepository,
    AbstractTaskRepository,
    AbstractUserRepository,
    StorageError,
)


# ---------------------------------------------------------------------------
# Generic in-memory table
# ---------------------------------------------------------------------------

class _Store(dict):
    """A dict of records keyed by id, with an id sequence and copy-on-access."""

    def __init__(self):
        super().__init__()
        self._ids = itertools.count(1)

    def fetch(self, key: int):
        obj = self.get(key)
        return copy.deepcopy(obj) if obj is not None else None

    def add(self, obj):
        obj = copy.deepcopy(obj)
        obj.id = next(self._ids)
        self[obj.id] = obj
        return copy.deepcopy(obj)

    def replace(self, obj) -> bool:
        if obj.id not in self:
            return False
        self[obj.id] = copy.deepcopy(obj)
        return True

    def remove(self, key: int) -> bool:
        return self.pop(key, None) is not None

    def all(self) -> list:
        return [copy.deepcopy(obj) for obj in self.values()]

    def first(self, predicate: Callable) -> Optional[object]:
        found = next((obj for obj in self.values() if predicate(obj)), None)
        return copy.deepcopy(found) if found is not None else None


# ---------------------------------------------------------------------------
# Shared in-memory database (module-level singleton)
# Persists for the lifetime of the process; restarting uvicorn resets it.
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    def __init__(self):
        self.projects:   _Store = _Store()
        self.milestones: _Store = _Store()
        self.tasks:      _Store = _Store()
        self.users:      _Store = _Store()


# Module-level singleton shared across all requests
_db = InMemoryDatabase()


# ---------------------------------------------------------------------------
# Repository implementations
# ---------------------------------------------------------------------------

class InMemoryProjectRepository(AbstractProjectRepository):
    def __init__(self, store: _Store): self._s = store
    def list_all(self):               return self._s.all()
    def get(self, project_id):        return self._s.fetch(project_id)
    def delete(self, project_id):     return self._s.remove(project_id)

    def get_by_name(self, name):
        if not isinstance(name, str):
            return None
        key = name.casefold()
        return self._s.first(lambda p: p.name.casefold() == key)

    def _check_unique(self, project: Project) -> None:
        key = project.name.casefold()
        for other in self._s.values():
            if other.id != project.id and other.name.casefold() == key:
                raise StorageError(f"Duplicate project name: {project.name!r}")

    def insert(self, project):
        self._check_unique(project)
        return self._s.add(project)

    def update(self, project):
        if project.id not in self._s:
            return False
        self._check_unique(project)
        return self._s.replace(project)


class InMemoryMilestoneRepository(AbstractMilestoneRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, milestone_id):      return self._s.fetch(milestone_id)
    def list_for_project(self, project_id):
        return [m for m in self._s.all() if m.project_id == project_id]
    def insert(self, milestone):      return self._s.add(milestone)
    def update(self, milestone):      return self._s.replace(milestone)
    def delete(self, milestone_id):   return self._s.remove(milestone_id)


class InMemoryTaskRepository(AbstractTaskRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, task_id):           return self._s.fetch(task_id)
    def list_for_milestone(self, milestone_id):
        return [t for t in self._s.all() if t.milestone_id == milestone_id]
    def insert(self, task):           return self._s.add(task)
    def update(self, task):           return self._s.replace(task)
    def delete(self, task_id):        return self._s.remove(task_id)


class InMemoryUserRepository(AbstractUserRepository):
    def __init__(self, store: _Store): self._s = store
    def list_all(self):               return self._s.all()
    def get(self, user_id):           return self._s.fetch(user_id)
    def delete(self, user_id):        return self._s.remove(user_id)

    def get_by_username(self, username):
        return self._s.first(lambda u: u.username == username)

    def _check_unique(self, user: User) -> None:
        for other in self._s.values():
            if other.id != user.id and other.username == user.username:
                raise StorageError(f"Duplicate username: {user.username!r}")

    def insert(self, user):
        self._check_unique(user)
        return self._s.add(user)

    def update(self, user):
        if user.id not in self._s:
            return False
        self._check_unique(user)
        return self._s.replace(user)


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Wraps all in-memory repositories.  commit() and rollback() are no-ops
    because dict mutations are immediate.
    In a real SQL implementation, commit() would call session.commit().
    """

    def __init__(self, db: InMemoryDatabase = _db):
        self.projects   = InMemoryProjectRepository(db.projects)
        self.milestones = InMemoryMilestoneRepository(db.milestones)
        self.tasks      = InMemoryTaskRepository(db.tasks)
        self.users      = InMemoryUserRepository(db.users)

    def commit(self)   -> None: pass   # no-op for in-memory
    def rollback(self) -> None: pass   # no-op for in-memory
