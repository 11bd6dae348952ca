"""
Task/Phase Workflow

Each phase moves Pending -> Submitted -> Approved and never back. Phase
numbers come from the project's ``phase_counter`` so a deleted phase's
number is never handed out again.
"""

from typing import Dict, List, Optional, Sequence, Set, Tuple
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    TaskNotFoundError,
    UnauthorizedError,
    InvalidTransitionError,
    MissingAssignmentError,
)
from app.core.logging_config import logger
from app.models.project import Project
from app.models.task import Task, TaskStatus
from app.modules.auth.capabilities import ActorContext, Capability, require
from app.schemas.task import TaskCreate
from app.services.locking import EntityLockRegistry, entity_locks, commit_or_conflict
from app.services.notification_service import NotificationDispatcher, NotificationEvent, EventType
from app.services.project_service import (
    get_project_or_404,
    get_user_or_404,
    require_oversight,
    can_view_project,
)


TASK_TRANSITIONS: Dict[TaskStatus, Set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.SUBMITTED},
    TaskStatus.SUBMITTED: {TaskStatus.APPROVED},
    TaskStatus.APPROVED: set(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TASK_TRANSITIONS.get(current, set())


def phase_title(number: int) -> str:
    return f"Phase {number}"


def resolve_assignee(project: Project) -> Optional[str]:
    """Individual: the assigned student. Group: the project head."""
    if project.is_group:
        return project.project_head_id
    return project.assigned_student_id


def history_order(tasks: Sequence[Task]) -> List[Task]:
    """
    Approved phases by title, descending.

    Plain string comparison, so "Phase 9" sorts ahead of "Phase 10".
    """
    return sorted(tasks, key=lambda t: t.title, reverse=True)


def partition_tasks(tasks: Sequence[Task]) -> Tuple[List[Task], List[Task]]:
    """Split into (active, history); active keeps creation order"""
    active = sorted((t for t in tasks if t.status != TaskStatus.APPROVED), key=lambda t: t.number)
    history = history_order([t for t in tasks if t.status == TaskStatus.APPROVED])
    return active, history


class TaskWorkflowService:
    """Creation, submission, approval and queries for project phases"""

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        locks: EntityLockRegistry = entity_locks,
    ):
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher(db)
        self.locks = locks

    async def _get_task(self, task_id: str, for_update: bool = False) -> Task:
        query = select(Task).where(Task.id == str(task_id))
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        task = result.scalar_one_or_none()
        if not task:
            raise TaskNotFoundError(str(task_id))
        return task

    # =====================================================
    # CREATE
    # =====================================================

    async def create_task(self, ctx: ActorContext, project_id: str, data: Optional[TaskCreate] = None) -> Task:
        require(ctx, Capability.CREATE_TASK)
        data = data or TaskCreate()

        async with self.locks.hold("project", project_id):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            require_oversight(ctx, project, Capability.CREATE_TASK)

            assignee_id = resolve_assignee(project)
            if not assignee_id:
                raise MissingAssignmentError(project.id, project.project_type.value)

            project.phase_counter = (project.phase_counter or 0) + 1
            number = project.phase_counter

            task = Task(
                number=number,
                title=phase_title(number),
                description=data.description,
                due_date=data.due_date,
                assigned_to=assignee_id,
                created_by=ctx.user_id,
                status=TaskStatus.PENDING,
            )
            project.tasks.append(task)
            await commit_or_conflict(self.db, "Project", project.id)

        logger.log_transition(
            "task", task.id, None, task.status.value,
            actor_id=ctx.user_id, project_id=project.id, title=task.title
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.TASK_CREATED,
                recipients=[assignee_id],
                title=f"New phase: {task.title}",
                message=f"{task.title} was added to '{project.title}'",
                actor_id=ctx.user_id,
                project_id=project.id,
                task_id=task.id,
            )
        ])
        return task

    # =====================================================
    # SUBMIT / APPROVE
    # =====================================================

    async def submit_task(self, ctx: ActorContext, task_id: str) -> Task:
        require(ctx, Capability.SUBMIT_TASK)

        task = await self._get_task(task_id)
        project_id = task.project_id

        # Same lock as promote_to_head, so the head cannot change mid-submission
        async with self.locks.hold_many([("project", project_id), ("task", task_id)]):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            task = await self._get_task(task_id, for_update=True)
            if project.is_group:
                allowed = project.project_head_id is not None and project.project_head_id == ctx.user_id
            else:
                allowed = task.assigned_to == ctx.user_id
            if not allowed:
                raise UnauthorizedError(
                    "Only the assigned student or the group's head may submit this phase",
                    action="submit_task",
                )

            if not can_transition(task.status, TaskStatus.SUBMITTED):
                raise InvalidTransitionError(
                    f"{task.title} is {task.status.value}, only a Pending phase can be submitted",
                    current=task.status.value,
                    requested=TaskStatus.SUBMITTED.value,
                )

            task.status = TaskStatus.SUBMITTED
            task.submitted_at = datetime.utcnow()
            await commit_or_conflict(self.db, "Task", task.id)

        logger.log_transition(
            "task", task.id, TaskStatus.PENDING.value, TaskStatus.SUBMITTED.value,
            actor_id=ctx.user_id, project_id=task.project_id
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.TASK_SUBMITTED,
                recipients=[project.supervisor_id],
                title=f"{task.title} submitted",
                message=f"{task.title} of '{project.title}' is waiting for approval",
                actor_id=ctx.user_id,
                project_id=project.id,
                task_id=task.id,
            )
        ])
        return task

    async def approve_task(self, ctx: ActorContext, task_id: str) -> Task:
        """Approving an already-approved phase is a successful no-op"""
        require(ctx, Capability.APPROVE_TASK)

        async with self.locks.hold("task", task_id):
            task = await self._get_task(task_id, for_update=True)
            project = await get_project_or_404(self.db, task.project_id)
            require_oversight(ctx, project, Capability.APPROVE_TASK)

            if task.status == TaskStatus.APPROVED:
                logger.debug(f"Task {task.id} already approved, nothing to do")
                return task

            if not can_transition(task.status, TaskStatus.APPROVED):
                raise InvalidTransitionError(
                    f"{task.title} is {task.status.value}, only a Submitted phase can be approved",
                    current=task.status.value,
                    requested=TaskStatus.APPROVED.value,
                )

            task.status = TaskStatus.APPROVED
            task.approved_at = datetime.utcnow()
            task.approved_by = ctx.user_id
            await commit_or_conflict(self.db, "Task", task.id)

        logger.log_transition(
            "task", task.id, TaskStatus.SUBMITTED.value, TaskStatus.APPROVED.value,
            actor_id=ctx.user_id, project_id=project.id
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.TASK_APPROVED,
                recipients=[task.assigned_to],
                title=f"{task.title} approved",
                message=f"{task.title} of '{project.title}' was approved",
                actor_id=ctx.user_id,
                project_id=project.id,
                task_id=task.id,
            )
        ])
        return task

    # =====================================================
    # DELETE
    # =====================================================

    async def delete_task(self, ctx: ActorContext, task_id: str) -> None:
        """Only Pending phases can be withdrawn; the number stays used"""
        require(ctx, Capability.CREATE_TASK)

        task = await self._get_task(task_id)
        project_id = task.project_id

        async with self.locks.hold_many([("project", project_id), ("task", task_id)]):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            require_oversight(ctx, project, Capability.CREATE_TASK)

            task = await self._get_task(task_id, for_update=True)
            if task.status != TaskStatus.PENDING:
                raise InvalidTransitionError(
                    f"{task.title} is {task.status.value}, only a Pending phase can be deleted",
                    current=task.status.value,
                    reason="not_pending",
                )

            project.tasks.remove(task)
            await commit_or_conflict(self.db, "Project", project.id)

        logger.info(
            f"Deleted {task.title} from project {project_id}",
            extra={"event_type": "task_deleted", "task_id": task_id, "project_id": project_id, "actor_id": ctx.user_id}
        )

    # =====================================================
    # QUERIES
    # =====================================================

    async def get_task(self, ctx: ActorContext, task_id: str) -> Task:
        task = await self._get_task(task_id)
        project = await get_project_or_404(self.db, task.project_id)
        if not can_view_project(ctx, project):
            raise UnauthorizedError("You do not have access to this phase", action="view_task")
        return task

    async def list_project_tasks(self, ctx: ActorContext, project_id: str) -> Tuple[List[Task], List[Task]]:
        """(active, history) for one project"""
        project = await get_project_or_404(self.db, project_id)
        if not can_view_project(ctx, project):
            raise UnauthorizedError("You do not have access to this project", action="view_project")
        return partition_tasks(project.tasks)

    async def list_tasks_for_student(self, ctx: ActorContext, student_id: str) -> List[Task]:
        """Visible to the student, their allocated supervisor and super-admins"""
        student = await get_user_or_404(self.db, student_id)

        allowed = (
            ctx.user_id == student.id
            or ctx.can(Capability.OVERSEE_ANY_PROJECT)
            or (ctx.is_supervisor and student.supervisor_id == ctx.user_id)
        )
        if not allowed:
            raise UnauthorizedError("You may not view this student's phases", action="view_student_tasks")

        result = await self.db.execute(
            select(Task)
            .where(Task.assigned_to == student.id)
            .order_by(Task.created_at, Task.number)
        )
        return list(result.scalars().all())
