"""
Unit Tests for TaskWorkflowService
Phase numbering, the Pending -> Submitted -> Approved lifecycle and views
"""
import pytest
from sqlalchemy import select

from app.core.exceptions import (
    UnauthorizedError,
    InvalidTransitionError,
    MissingAssignmentError,
    TaskNotFoundError,
)
from app.models.notification import Notification
from app.models.task import Task, TaskStatus
from app.models.user import UserRole
from app.modules.auth.capabilities import ActorContext
from app.schemas.task import TaskCreate
from app.services.group_service import GroupService
from app.services.task_service import (
    TaskWorkflowService,
    can_transition,
    history_order,
    partition_tasks,
    phase_title,
)


@pytest.fixture
def service(db_session, locks):
    return TaskWorkflowService(db_session, locks=locks)


def as_actor(user):
    return ActorContext.for_user(user)


async def inbox(db_session, user):
    result = await db_session.execute(select(Notification).where(Notification.user_id == user.id))
    return list(result.scalars().all())


class TestTransitions:

    @pytest.mark.parametrize('current, target, allowed', [
        (TaskStatus.PENDING, TaskStatus.SUBMITTED, True),
        (TaskStatus.SUBMITTED, TaskStatus.APPROVED, True),
        (TaskStatus.PENDING, TaskStatus.APPROVED, False),
        (TaskStatus.SUBMITTED, TaskStatus.PENDING, False),
        (TaskStatus.APPROVED, TaskStatus.SUBMITTED, False),
        (TaskStatus.APPROVED, TaskStatus.PENDING, False),
    ])
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_phase_title(self):
        assert phase_title(3) == 'Phase 3'


class TestCreateTask:

    async def test_phases_are_numbered_in_order(self, service, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)

        first = await service.create_task(as_actor(supervisor), project.id)
        second = await service.create_task(as_actor(supervisor), project.id, TaskCreate(description='Literature review'))

        assert (first.title, first.number) == ('Phase 1', 1)
        assert (second.title, second.number) == ('Phase 2', 2)
        assert second.description == 'Literature review'
        assert first.assigned_to == student.id
        assert first.status == TaskStatus.PENDING
        assert first.created_by == supervisor.id

    async def test_assignee_gets_notified(self, service, db_session, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)

        task = await service.create_task(as_actor(supervisor), project.id)

        notes = await inbox(db_session, student)
        assert [n.event_type for n in notes] == ['task_created']
        assert notes[0].task_id == task.id

    async def test_group_phase_goes_to_head(self, service, make_project, supervisor, student, other_student):
        project = await make_project(supervisor=supervisor, members=[student, other_student], head=other_student)

        task = await service.create_task(as_actor(supervisor), project.id)

        assert task.assigned_to == other_student.id

    async def test_group_without_head_rejected(self, service, db_session, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, members=[student])

        with pytest.raises(MissingAssignmentError):
            await service.create_task(as_actor(supervisor), project.id)

        await db_session.refresh(project)
        assert project.phase_counter == 0
        assert project.tasks == []

    async def test_individual_without_student_rejected(self, service, make_project, super_admin):
        project = await make_project()

        with pytest.raises(MissingAssignmentError) as exc_info:
            await service.create_task(as_actor(super_admin), project.id)

        assert exc_info.value.details['project_type'] == 'Individual'

    async def test_student_cannot_create(self, service, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)

        with pytest.raises(UnauthorizedError):
            await service.create_task(as_actor(student), project.id)

    async def test_other_supervisor_cannot_create(self, service, make_project, supervisor, other_supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)

        with pytest.raises(UnauthorizedError):
            await service.create_task(as_actor(other_supervisor), project.id)

    async def test_numbers_not_reused_after_delete(self, service, make_project, supervisor, student):
        """Test a withdrawn phase's number stays used"""
        project = await make_project(supervisor=supervisor, assigned_student=student)

        await service.create_task(as_actor(supervisor), project.id)
        second = await service.create_task(as_actor(supervisor), project.id)
        await service.delete_task(as_actor(supervisor), second.id)
        third = await service.create_task(as_actor(supervisor), project.id)

        assert third.title == 'Phase 3'


class TestSubmitAndApprove:

    async def test_full_lifecycle(self, service, db_session, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        task = await service.create_task(as_actor(supervisor), project.id)

        submitted = await service.submit_task(as_actor(student), task.id)
        assert submitted.status == TaskStatus.SUBMITTED
        assert submitted.submitted_at is not None

        approved = await service.approve_task(as_actor(supervisor), task.id)
        assert approved.status == TaskStatus.APPROVED
        assert approved.approved_by == supervisor.id
        assert approved.approved_at is not None

        supervisor_notes = await inbox(db_session, supervisor)
        student_notes = await inbox(db_session, student)
        assert [n.event_type for n in supervisor_notes] == ['task_submitted']
        assert sorted(n.event_type for n in student_notes) == ['task_approved', 'task_created']

    async def test_only_assignee_may_submit(self, service, make_project, supervisor, student, other_student):
        project = await make_project(supervisor=supervisor, members=[student, other_student], head=student)
        task = await service.create_task(as_actor(supervisor), project.id)

        with pytest.raises(UnauthorizedError):
            await service.submit_task(as_actor(other_student), task.id)

    async def test_new_head_takes_over_open_phase(
        self, service, db_session, locks, make_project, supervisor, student, other_student
    ):
        """Test the promoted head submits, and a removed former head cannot"""
        groups = GroupService(db_session, locks=locks)
        project = await make_project(supervisor=supervisor, members=[student, other_student], head=student)
        task = await service.create_task(as_actor(supervisor), project.id)

        await groups.promote_to_head(as_actor(supervisor), project.id, other_student.id)
        await groups.remove_member(as_actor(supervisor), project.id, student.id)

        assert task.assigned_to == other_student.id
        with pytest.raises(UnauthorizedError):
            await service.submit_task(as_actor(student), task.id)

        submitted = await service.submit_task(as_actor(other_student), task.id)
        assert submitted.status == TaskStatus.SUBMITTED

    async def test_demoted_head_cannot_submit(
        self, service, db_session, locks, make_project, supervisor, student, other_student
    ):
        groups = GroupService(db_session, locks=locks)
        project = await make_project(supervisor=supervisor, members=[student, other_student], head=student)
        task = await service.create_task(as_actor(supervisor), project.id)

        await groups.promote_to_head(as_actor(supervisor), project.id, other_student.id)

        with pytest.raises(UnauthorizedError):
            await service.submit_task(as_actor(student), task.id)

    async def test_approved_phase_keeps_its_owner(
        self, service, db_session, locks, make_project, supervisor, student, other_student
    ):
        groups = GroupService(db_session, locks=locks)
        project = await make_project(supervisor=supervisor, members=[student, other_student], head=student)
        done = await service.create_task(as_actor(supervisor), project.id)
        await service.submit_task(as_actor(student), done.id)
        await service.approve_task(as_actor(supervisor), done.id)
        open_phase = await service.create_task(as_actor(supervisor), project.id)

        await groups.promote_to_head(as_actor(supervisor), project.id, other_student.id)

        assert done.assigned_to == student.id
        assert open_phase.assigned_to == other_student.id

    async def test_supervisor_cannot_submit(self, service, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        task = await service.create_task(as_actor(supervisor), project.id)

        with pytest.raises(UnauthorizedError):
            await service.submit_task(as_actor(supervisor), task.id)

    async def test_double_submit_rejected(self, service, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        task = await service.create_task(as_actor(supervisor), project.id)
        await service.submit_task(as_actor(student), task.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.submit_task(as_actor(student), task.id)

        assert exc_info.value.details['current'] == 'Submitted'

    async def test_approve_pending_rejected(self, service, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        task = await service.create_task(as_actor(supervisor), project.id)

        with pytest.raises(InvalidTransitionError):
            await service.approve_task(as_actor(supervisor), task.id)

    async def test_double_approve_is_noop(self, service, db_session, make_project, supervisor, student):
        """Test approving twice succeeds without a second event"""
        project = await make_project(supervisor=supervisor, assigned_student=student)
        task = await service.create_task(as_actor(supervisor), project.id)
        await service.submit_task(as_actor(student), task.id)
        await service.approve_task(as_actor(supervisor), task.id)
        version = task.version

        again = await service.approve_task(as_actor(supervisor), task.id)

        assert again.status == TaskStatus.APPROVED
        assert again.version == version
        approvals = [n for n in await inbox(db_session, student) if n.event_type == 'task_approved']
        assert len(approvals) == 1

    async def test_other_supervisor_cannot_approve(self, service, make_project, supervisor, other_supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        task = await service.create_task(as_actor(supervisor), project.id)
        await service.submit_task(as_actor(student), task.id)

        with pytest.raises(UnauthorizedError):
            await service.approve_task(as_actor(other_supervisor), task.id)

    async def test_unknown_task(self, service, student):
        with pytest.raises(TaskNotFoundError):
            await service.submit_task(as_actor(student), 'missing')


class TestDeleteTask:

    async def test_delete_pending(self, service, db_session, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        task = await service.create_task(as_actor(supervisor), project.id)

        await service.delete_task(as_actor(supervisor), task.id)

        assert await db_session.get(Task, task.id) is None

    async def test_submitted_cannot_be_deleted(self, service, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        task = await service.create_task(as_actor(supervisor), project.id)
        await service.submit_task(as_actor(student), task.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.delete_task(as_actor(supervisor), task.id)

        assert exc_info.value.details['reason'] == 'not_pending'


class TestViews:

    async def test_active_and_history(self, service, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        tasks = [await service.create_task(as_actor(supervisor), project.id) for _ in range(5)]
        for task in tasks[:3]:
            await service.submit_task(as_actor(student), task.id)
            await service.approve_task(as_actor(supervisor), task.id)

        active, history = await service.list_project_tasks(as_actor(student), project.id)

        assert [t.title for t in active] == ['Phase 4', 'Phase 5']
        assert [t.title for t in history] == ['Phase 3', 'Phase 2', 'Phase 1']

    async def test_history_with_five_approved(self, service, make_project, supervisor, student):
        project = await make_project(supervisor=supervisor, assigned_student=student)
        for _ in range(5):
            task = await service.create_task(as_actor(supervisor), project.id)
            await service.submit_task(as_actor(student), task.id)
            await service.approve_task(as_actor(supervisor), task.id)

        active, history = await service.list_project_tasks(as_actor(student), project.id)

        assert active == []
        assert [t.title for t in history] == ['Phase 5', 'Phase 4', 'Phase 3', 'Phase 2', 'Phase 1']

    async def test_outsider_cannot_list(self, service, make_project, supervisor, student, other_student):
        project = await make_project(supervisor=supervisor, assigned_student=student)

        with pytest.raises(UnauthorizedError):
            await service.list_project_tasks(as_actor(other_student), project.id)

    async def test_tasks_for_student(self, service, make_user, make_project, supervisor, other_supervisor, student):
        allocated = await make_user(UserRole.STUDENT, supervisor_id=supervisor.id)
        project = await make_project(supervisor=supervisor, assigned_student=allocated)
        task = await service.create_task(as_actor(supervisor), project.id)

        own = await service.list_tasks_for_student(as_actor(allocated), allocated.id)
        by_supervisor = await service.list_tasks_for_student(as_actor(supervisor), allocated.id)

        assert [t.id for t in own] == [task.id]
        assert [t.id for t in by_supervisor] == [task.id]

        with pytest.raises(UnauthorizedError):
            await service.list_tasks_for_student(as_actor(other_supervisor), allocated.id)
        with pytest.raises(UnauthorizedError):
            await service.list_tasks_for_student(as_actor(student), allocated.id)


class TestHistoryOrder:
    """History is ordered by title text, not by number"""

    def test_lexicographic_descending(self):
        tasks = [Task(title=f'Phase {n}', number=n, status=TaskStatus.APPROVED) for n in (1, 2, 9, 10, 11)]

        ordered = [t.title for t in history_order(tasks)]

        assert ordered == ['Phase 9', 'Phase 2', 'Phase 11', 'Phase 10', 'Phase 1']

    def test_partition_keeps_active_in_creation_order(self):
        tasks = [
            Task(title='Phase 3', number=3, status=TaskStatus.PENDING),
            Task(title='Phase 1', number=1, status=TaskStatus.SUBMITTED),
            Task(title='Phase 2', number=2, status=TaskStatus.APPROVED),
        ]

        active, history = partition_tasks(tasks)

        assert [t.number for t in active] == [1, 3]
        assert [t.number for t in history] == [2]
