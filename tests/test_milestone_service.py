"""Unit tests for MilestoneAggregator and MilestoneService."""

import pytest

from conftest import add_milestone, add_project, add_task
from errors import DomainError, ErrorKind, ErrorReason
from model import Milestone, Status, Task
from ports import StorageError
from service import MilestoneAggregator, MilestoneService, ProjectRollupService


class TestMilestoneAggregator:
    """Test cases for MilestoneAggregator."""

    def test_for_project_only_includes_its_milestones(self, uow, aggregator):
        alpha = add_project(uow, "Alpha")
        beta = add_project(uow, "Beta")
        add_milestone(uow, alpha.id, name="A1")
        add_milestone(uow, beta.id, name="B1")
        assert [m.name for m in aggregator.for_project(alpha.id)] == ["A1"]

    def test_tasks_attached_to_their_milestone(self, uow, aggregator):
        project = add_project(uow, "Alpha")
        m1 = add_milestone(uow, project.id)
        m2 = add_milestone(uow, project.id)
        add_task(uow, m1.id, name="T1", coworkers=[1, 2])
        add_task(uow, m2.id, name="T2")

        details = aggregator.for_project(project.id)
        assert [t.name for t in details[0].tasks] == ["T1"]
        assert [t.name for t in details[1].tasks] == ["T2"]
        assert details[0].tasks[0].coworker_ids == frozenset({1, 2})

    def test_detail_missing_raises_not_found(self, aggregator):
        with pytest.raises(DomainError) as exc_info:
            aggregator.detail(9)
        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.entity == "milestone"


class TestMilestoneWrites:
    """Test cases for milestone writes."""

    def test_add_milestone(self, uow, milestone_service):
        project = add_project(uow, "Alpha")
        milestone = milestone_service.add_milestone(Milestone(project_id=project.id, name="M1"))
        assert uow.milestones.get(milestone.id).name == "M1"

    def test_add_milestone_unknown_project(self, milestone_service):
        with pytest.raises(DomainError) as exc_info:
            milestone_service.add_milestone(Milestone(project_id=12, name="M1"))
        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.entity == "project"

    def test_add_milestone_invalid_name(self, uow, milestone_service):
        project = add_project(uow, "Alpha")
        with pytest.raises(DomainError) as exc_info:
            milestone_service.add_milestone(Milestone(project_id=project.id, name=""))
        assert exc_info.value.reason == ErrorReason.INVALID_FIELD

    def test_set_milestone_status_drives_progress(self, uow, milestone_service, project_service):
        """Test completing a milestone is reflected in the project's progress."""
        project = add_project(uow, "Alpha")
        milestone = add_milestone(uow, project.id)
        add_milestone(uow, project.id)

        milestone_service.set_milestone_status(milestone.id, Status.COMPLETED)
        assert project_service.progress(project.id) == 50

    def test_set_status_unknown_milestone(self, milestone_service):
        with pytest.raises(DomainError) as exc_info:
            milestone_service.set_milestone_status(4, Status.COMPLETED)
        assert exc_info.value.kind == ErrorKind.NOT_FOUND


class TestTaskWrites:
    """Test cases for task writes."""

    @pytest.fixture
    def milestone(self, uow):
        return add_milestone(uow, add_project(uow, "Alpha").id)

    def test_add_task(self, uow, milestone_service, milestone, employees):
        task = milestone_service.add_task(
            Task(
                milestone_id=milestone.id,
                name="Build",
                estimated_hours=8,
                coworker_ids={employees[0].id},
            )
        )
        stored = uow.tasks.get(task.id)
        assert stored.estimated_hours == 8
        assert stored.coworker_ids == {employees[0].id}

    @pytest.mark.parametrize(
        "estimated, actual, field",
        [(-1, 0, "estimated_hours"), (0, -3, "actual_hours_used"), (1.5, 0, "estimated_hours")],
    )
    def test_add_task_rejects_bad_hours(self, milestone_service, milestone, estimated, actual, field):
        with pytest.raises(DomainError) as exc_info:
            milestone_service.add_task(
                Task(
                    milestone_id=milestone.id,
                    name="Build",
                    estimated_hours=estimated,
                    actual_hours_used=actual,
                )
            )
        assert exc_info.value.kind == ErrorKind.CREATION
        assert exc_info.value.reason == ErrorReason.INVALID_FIELD
        assert exc_info.value.field == field

    def test_add_task_unknown_coworker(self, milestone_service, milestone):
        with pytest.raises(DomainError) as exc_info:
            milestone_service.add_task(
                Task(milestone_id=milestone.id, name="Build", coworker_ids={404})
            )
        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.entity == "user"

    def test_add_task_unknown_milestone(self, milestone_service):
        with pytest.raises(DomainError) as exc_info:
            milestone_service.add_task(Task(milestone_id=31, name="Build"))
        assert exc_info.value.entity == "milestone"

    def test_record_task_hours(self, uow, milestone_service, milestone):
        task = add_task(uow, milestone.id, estimated=5)
        milestone_service.record_task_hours(task.id, 6)
        assert uow.tasks.get(task.id).actual_hours_used == 6

    def test_record_negative_hours_rejected(self, uow, milestone_service, milestone):
        task = add_task(uow, milestone.id)
        with pytest.raises(DomainError) as exc_info:
            milestone_service.record_task_hours(task.id, -2)
        assert exc_info.value.kind == ErrorKind.UPDATE
        assert exc_info.value.rule == "negative"

    def test_assign_coworker_makes_project_visible_to_employee(
        self, uow, milestone_service, project_service, milestone, employees
    ):
        """Test assigning an employee to a task lists the project under them."""
        task = add_task(uow, milestone.id)
        erik = employees[0]
        assert project_service.by_employee(erik.id) == []

        milestone_service.assign_coworker(task.id, erik.id)
        milestone_service.assign_coworker(task.id, erik.id)

        assert uow.tasks.get(task.id).coworker_ids == {erik.id}
        assert [d.id for d in project_service.by_employee(erik.id)] == [milestone.project_id]

    def test_assign_unknown_user(self, uow, milestone_service, milestone):
        task = add_task(uow, milestone.id)
        with pytest.raises(DomainError) as exc_info:
            milestone_service.assign_coworker(task.id, 999)
        assert exc_info.value.entity == "user"


class _Unreachable:
    """A repository whose every call fails."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise StorageError(f"{name} failed")
        return fail


class TestReadFailures:
    """Test cases for storage faults raised while loading records."""

    @pytest.mark.parametrize(
        "call",
        [lambda agg: agg.for_project(1), lambda agg: agg.detail(1)],
    )
    def test_aggregator_wraps_faults(self, uow, call):
        aggregator = MilestoneAggregator(_Unreachable(), uow.tasks)
        with pytest.raises(DomainError) as exc_info:
            call(aggregator)
        assert exc_info.value.kind == ErrorKind.RETRIEVAL
        assert exc_info.value.reason == ErrorReason.PERSISTENCE_FAILURE
        assert isinstance(exc_info.value.__cause__, StorageError)

    def test_progress_with_unreadable_milestones(self, uow, observer):
        """Test a rollup over unreadable milestones fails as a domain error."""
        project = add_project(uow, "Alpha")
        aggregator = MilestoneAggregator(uow.milestones, _Unreachable())
        add_milestone(uow, project.id)
        svc = ProjectRollupService(uow.projects, aggregator, observer=observer)
        with pytest.raises(DomainError) as exc_info:
            svc.progress(project.id)
        assert exc_info.value.is_persistence_failure
        assert observer.events[-1] == ("failed", "project", "progress")

    def test_add_milestone_with_unreadable_projects(self, uow):
        svc = MilestoneService(_Unreachable(), uow.milestones, uow.tasks, uow.users)
        with pytest.raises(DomainError) as exc_info:
            svc.add_milestone(Milestone(project_id=1, name="M1"))
        assert exc_info.value.kind == ErrorKind.CREATION
        assert exc_info.value.reason == ErrorReason.PERSISTENCE_FAILURE
        assert uow.milestones.list_for_project(1) == []

    def test_add_task_with_unreadable_users(self, uow):
        milestone = add_milestone(uow, add_project(uow, "Alpha").id)
        svc = MilestoneService(uow.projects, uow.milestones, uow.tasks, _Unreachable())
        with pytest.raises(DomainError) as exc_info:
            svc.add_task(Task(milestone_id=milestone.id, name="Build", coworker_ids={1}))
        assert exc_info.value.kind == ErrorKind.CREATION
        assert exc_info.value.reason == ErrorReason.PERSISTENCE_FAILURE

    @pytest.mark.parametrize(
        "call",
        [
            lambda svc, task_id: svc.record_task_hours(task_id, 3),
            lambda svc, task_id: svc.assign_coworker(task_id, 1),
        ],
    )
    def test_task_updates_with_unreadable_tasks(self, uow, call):
        svc = MilestoneService(uow.projects, uow.milestones, _Unreachable(), uow.users)
        with pytest.raises(DomainError) as exc_info:
            call(svc, 1)
        assert exc_info.value.kind == ErrorKind.UPDATE
        assert exc_info.value.reason == ErrorReason.PERSISTENCE_FAILURE

    def test_set_status_with_unreadable_milestones(self, uow):
        svc = MilestoneService(uow.projects, _Unreachable(), uow.tasks, uow.users)
        with pytest.raises(DomainError) as exc_info:
            svc.set_milestone_status(1, Status.COMPLETED)
        assert exc_info.value.kind == ErrorKind.UPDATE
        assert exc_info.value.reason == ErrorReason.PERSISTENCE_FAILURE
