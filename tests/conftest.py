"""Shared pytest fixtures and test helpers for projectcalc tests."""

import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("PROJECTCALC_MCP_ENABLED", "false")

from infrastructure import InMemoryDatabase, InMemoryUnitOfWork
from model import Milestone, Project, Role, Status, Task, User
from service import (
    MilestoneAggregator,
    MilestoneService,
    OperationObserver,
    ProjectRollupService,
    UserQueryService,
)


class FakeClock:
    """Deterministic clock; advance() moves time forward by whole minutes."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, minutes=1):
        self.now += timedelta(minutes=minutes)


class RecordingObserver(OperationObserver):
    """Collects (event, component, operation) tuples."""

    def __init__(self):
        self.events = []

    def started(self, component, operation, **context):
        self.events.append(("started", component, operation))

    def succeeded(self, component, operation, **context):
        self.events.append(("succeeded", component, operation))

    def failed(self, component, operation, error, **context):
        self.events.append(("failed", component, operation))


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def uow(db):
    return InMemoryUnitOfWork(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def aggregator(uow):
    return MilestoneAggregator(uow.milestones, uow.tasks)


@pytest.fixture
def project_service(uow, aggregator, observer, clock):
    return ProjectRollupService(uow.projects, aggregator, observer=observer, clock=clock)


@pytest.fixture
def user_service(uow, observer):
    return UserQueryService(uow.users, observer=observer)


@pytest.fixture
def milestone_service(uow, observer):
    return MilestoneService(uow.projects, uow.milestones, uow.tasks, uow.users, observer=observer)


@pytest.fixture
def manager(uow):
    return uow.users.insert(User(username="mona", full_name="Mona Manager", role=Role.MANAGER))


@pytest.fixture
def employees(uow):
    return [
        uow.users.insert(User(username="erik", role=Role.EMPLOYEE)),
        uow.users.insert(User(username="ella", role=Role.EMPLOYEE)),
    ]


def add_project(uow, name, status=Status.NOT_STARTED, manager_id=None):
    """Insert a project straight through the repository."""
    return uow.projects.insert(Project(name=name, status=status, manager_id=manager_id))


def add_milestone(uow, project_id, status=Status.NOT_STARTED, name="Milestone"):
    return uow.milestones.insert(Milestone(project_id=project_id, name=name, status=status))


def add_task(uow, milestone_id, estimated=0, actual=0, coworkers=(), name="Task"):
    return uow.tasks.insert(
        Task(
            milestone_id=milestone_id,
            name=name,
            estimated_hours=estimated,
            actual_hours_used=actual,
            coworker_ids=set(coworkers),
        )
    )
