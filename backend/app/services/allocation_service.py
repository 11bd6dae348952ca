"""
Allocation / Capacity Service

Pairs students with supervisors. A supervisor's load is the number of
students pointing at them; it is recomputed under the supervisor's row
lock on every allocation so it can never pass the capacity.
"""

from dataclasses import dataclass
from typing import List, Optional
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ValidationError, CapacityExceededError
from app.core.logging_config import logger
from app.models.project import Project, ProjectType
from app.models.user import User, UserRole
from app.modules.auth.capabilities import ActorContext, Capability, require
from app.services.locking import EntityLockRegistry, entity_locks, commit_or_conflict
from app.services.notification_service import NotificationDispatcher, NotificationEvent, EventType
from app.services.project_service import get_user_or_404


@dataclass
class SupervisorLoad:
    supervisor: User
    capacity: int
    current_load: int

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.current_load, 0)

    def to_dict(self):
        return {
            "id": self.supervisor.id,
            "email": self.supervisor.email,
            "full_name": self.supervisor.full_name,
            "department": self.supervisor.department,
            "capacity": self.capacity,
            "current_load": self.current_load,
            "remaining": self.remaining,
        }


class AllocationService:
    """Service for student-to-supervisor allocation"""

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        locks: EntityLockRegistry = entity_locks,
        default_capacity: Optional[int] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher(db)
        self.locks = locks
        self.default_capacity = (
            default_capacity if default_capacity is not None else settings.DEFAULT_SUPERVISOR_CAPACITY
        )

    def capacity_of(self, supervisor: User) -> int:
        return supervisor.capacity if supervisor.capacity is not None else self.default_capacity

    async def current_load(self, supervisor_id: str) -> int:
        count = await self.db.scalar(
            select(func.count(User.id)).where(
                User.supervisor_id == supervisor_id,
                User.role == UserRole.STUDENT,
            )
        )
        return count or 0

    # =====================================================
    # ALLOCATION
    # =====================================================

    async def assign_supervisor(self, ctx: ActorContext, student_id: str, supervisor_id: str) -> User:
        """
        Point the student at the supervisor, and attach the supervisor to
        the student's unsupervised Individual projects. Re-allocating to the
        current supervisor changes nothing.
        """
        require(ctx, Capability.ASSIGN_SUPERVISOR)

        async with self.locks.hold_many([("user", student_id), ("user", supervisor_id)]):
            student = await get_user_or_404(self.db, student_id, for_update=True)
            supervisor = await get_user_or_404(self.db, supervisor_id, for_update=True)

            if not student.is_student:
                raise ValidationError("Only students can be allocated", field="student_id")
            if not supervisor.is_supervisor:
                raise ValidationError("Students can only be allocated to a supervisor", field="supervisor_id")

            if student.supervisor_id == supervisor.id:
                return student

            capacity = self.capacity_of(supervisor)
            load = await self.current_load(supervisor.id)
            if load >= capacity:
                logger.warning(
                    f"Allocation of {student.id} to {supervisor.id} rejected: {load}/{capacity}",
                    extra={"event_type": "capacity_exceeded", "supervisor_id": supervisor.id, "current_load": load}
                )
                raise CapacityExceededError(supervisor.id, capacity, load)

            previous_supervisor = student.supervisor_id
            student.supervisor_id = supervisor.id
            # Bumps the supervisor's version so a racing allocation in another process fails
            supervisor.updated_at = datetime.utcnow()

            orphaned = await self.db.execute(
                select(Project)
                .where(
                    Project.assigned_student_id == student.id,
                    Project.project_type == ProjectType.INDIVIDUAL,
                    Project.supervisor_id.is_(None),
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            attached = list(orphaned.scalars().all())
            for project in attached:
                project.supervisor_id = supervisor.id

            await commit_or_conflict(self.db, "User", supervisor.id)

        logger.log_transition(
            "allocation", student.id, previous_supervisor, supervisor.id,
            actor_id=ctx.user_id, current_load=load + 1, capacity=capacity,
            projects_attached=[p.id for p in attached]
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.SUPERVISOR_ASSIGNED,
                recipients=[student.id],
                title="Supervisor assigned",
                message=f"{supervisor.full_name or supervisor.email} is now your supervisor",
                actor_id=ctx.user_id,
                data={"supervisor_id": supervisor.id},
            ),
            NotificationEvent(
                type=EventType.SUPERVISOR_ASSIGNED,
                recipients=[supervisor.id],
                title="New student",
                message=f"{student.full_name or student.email} was allocated to you",
                actor_id=ctx.user_id,
                data={"student_id": student.id},
            ),
        ])
        return student

    async def authorize(self, ctx: ActorContext, student_id: str, supervisor_id: str) -> User:
        """Super-admin facing name for assign_supervisor"""
        return await self.assign_supervisor(ctx, student_id, supervisor_id)

    # =====================================================
    # ROSTERS
    # =====================================================

    async def list_unassigned(self, ctx: ActorContext) -> List[User]:
        require(ctx, Capability.VIEW_UNASSIGNED)
        result = await self.db.execute(
            select(User)
            .where(
                User.role == UserRole.STUDENT,
                User.supervisor_id.is_(None),
                User.is_active == True,  # noqa: E712
            )
            .order_by(User.created_at, User.email)
        )
        return list(result.scalars().all())

    async def list_supervisors(self, ctx: ActorContext) -> List[SupervisorLoad]:
        require(ctx, Capability.VIEW_SUPERVISORS)

        result = await self.db.execute(
            select(User)
            .where(User.role == UserRole.SUPERVISOR, User.is_active == True)  # noqa: E712
            .order_by(User.full_name, User.email)
        )
        supervisors = list(result.scalars().all())

        load_rows = await self.db.execute(
            select(User.supervisor_id, func.count(User.id))
            .where(User.role == UserRole.STUDENT, User.supervisor_id.is_not(None))
            .group_by(User.supervisor_id)
        )
        loads = {supervisor_id: count for supervisor_id, count in load_rows.all()}

        return [
            SupervisorLoad(
                supervisor=supervisor,
                capacity=self.capacity_of(supervisor),
                current_load=loads.get(supervisor.id, 0),
            )
            for supervisor in supervisors
        ]

    async def list_my_students(self, ctx: ActorContext) -> List[User]:
        require(ctx, Capability.VIEW_OWN_STUDENTS)
        result = await self.db.execute(
            select(User)
            .where(User.role == UserRole.STUDENT, User.supervisor_id == ctx.user_id)
            .order_by(User.full_name, User.email)
        )
        return list(result.scalars().all())
