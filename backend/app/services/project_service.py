"""
Project Service Layer
Project aggregate: creation, pipeline status, proposal review and queries.

Every mutation follows the same shape: role check, entity lock, row lock,
relationship and state checks, write, commit, then notify.
"""

from typing import List, Optional, Iterable, Sequence

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    ProjectNotFoundError,
    UserNotFoundError,
    UnauthorizedError,
    ValidationError,
    InvalidTransitionError,
)
from app.core.logging_config import logger
from app.models.project import Project, ProjectMember, ProjectStatus, ProjectType, ApprovalStatus
from app.models.user import User
from app.modules.auth.capabilities import ActorContext, Capability, require
from app.schemas.project import ProjectCreate
from app.services.locking import EntityLockRegistry, entity_locks, commit_or_conflict
from app.services.notification_service import NotificationDispatcher, NotificationEvent, EventType


# =====================================================
# SHARED LOOKUPS AND RELATIONSHIP CHECKS
# =====================================================

async def get_project_or_404(db: AsyncSession, project_id: str, for_update: bool = False) -> Project:
    query = select(Project).where(Project.id == str(project_id))
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    project = result.scalar_one_or_none()
    if not project:
        raise ProjectNotFoundError(str(project_id))
    return project


async def get_user_or_404(db: AsyncSession, user_id: str, for_update: bool = False) -> User:
    query = select(User).where(User.id == str(user_id))
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    user = result.scalar_one_or_none()
    if not user:
        raise UserNotFoundError(str(user_id))
    return user


async def load_students(db: AsyncSession, student_ids: Sequence[str], field: str) -> List[User]:
    """Load users in the given order, every one of them must be an active student"""
    users = []
    for student_id in student_ids:
        user = await get_user_or_404(db, student_id)
        if not user.is_student:
            raise ValidationError(f"User '{student_id}' is not a student", field=field)
        users.append(user)
    return users


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Drop blanks and repeats, keep first-seen order"""
    out: List[str] = []
    for value in ids:
        value = str(value).strip() if value is not None else ""
        if value and value not in out:
            out.append(value)
    return out


def can_oversee_project(ctx: ActorContext, project: Project) -> bool:
    """Super-admins oversee everything, supervisors only what they supervise"""
    if ctx.can(Capability.OVERSEE_ANY_PROJECT):
        return True
    return ctx.is_supervisor and project.supervisor_id is not None and project.supervisor_id == ctx.user_id


def require_oversight(ctx: ActorContext, project: Project, capability: Capability) -> None:
    require(ctx, capability)
    if not can_oversee_project(ctx, project):
        raise UnauthorizedError(
            "Only the project's supervisor or a super-admin may do this",
            action=capability.value,
        )


def can_view_project(ctx: ActorContext, project: Project) -> bool:
    if not ctx.can(Capability.VIEW_PROJECTS):
        return False
    if can_oversee_project(ctx, project):
        return True
    return ctx.user_id in (project.assigned_student_id, project.created_by) or ctx.user_id in project.member_ids


def project_audience(project: Project) -> List[str]:
    """Students a project-level event is addressed to"""
    if project.is_group:
        return list(project.member_ids)
    return [project.assigned_student_id] if project.assigned_student_id else []


def check_status_move(current: ProjectStatus, requested: ProjectStatus, policy: str) -> None:
    """Raise InvalidTransitionError when ``policy`` forbids current -> requested"""
    if policy == "forward_only" and requested.pipeline_index < current.pipeline_index:
        raise InvalidTransitionError(
            f"Status can only move forward ({current.value} -> {requested.value} rejected)",
            current=current.value,
            requested=requested.value,
            reason="forward_only",
        )


class ProjectService:
    """Service for the project aggregate"""

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        locks: EntityLockRegistry = entity_locks,
        status_policy: Optional[str] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher(db)
        self.locks = locks
        self.status_policy = status_policy or settings.STATUS_TRANSITION_POLICY

    # =====================================================
    # CREATION
    # =====================================================

    async def create_project(self, ctx: ActorContext, data: ProjectCreate) -> Project:
        """
        Students always get an Individual project assigned to themselves with
        no supervisor. Supervisors and super-admins pick the type and the
        students; a supervisor becomes the project's supervisor.
        """
        require(ctx, Capability.CREATE_PROJECT)

        title = (data.title or "").strip()
        description = (data.description or "").strip()
        if not title:
            raise ValidationError("Project title is required", field="title")
        if not description:
            raise ValidationError("Project description is required", field="description")

        project = Project(
            title=title,
            description=description,
            department=data.department,
            deadline=data.deadline,
            created_by=ctx.user_id,
            status=ProjectStatus.PENDING,
            approval_status=ApprovalStatus.PENDING,
            phase_counter=0,
            members=[],
            tasks=[],
        )

        if not ctx.can(Capability.CHOOSE_PROJECT_TYPE):
            project.project_type = ProjectType.INDIVIDUAL
            project.assigned_student_id = ctx.user_id
            project.supervisor_id = None
        else:
            await self._apply_admin_choices(ctx, project, data)

        self.db.add(project)
        await self.db.commit()

        logger.log_transition(
            "project", project.id, None, project.status.value,
            actor_id=ctx.user_id, project_type=project.project_type.value
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.PROJECT_CREATED,
                recipients=project_audience(project),
                title="New project",
                message=f"You have been added to project '{project.title}'",
                actor_id=ctx.user_id,
                project_id=project.id,
            )
        ])
        return project

    async def _apply_admin_choices(self, ctx: ActorContext, project: Project, data: ProjectCreate) -> None:
        project.project_type = data.project_type or ProjectType.INDIVIDUAL

        if project.project_type == ProjectType.GROUP:
            member_ids = unique_ids(data.member_ids or [])
            if not member_ids:
                raise ValidationError("A group project needs at least one member", field="member_ids")
            await load_students(self.db, member_ids, field="member_ids")
            if data.project_head_id and data.project_head_id not in member_ids:
                raise ValidationError("Project head must be one of the members", field="project_head_id")

            project.members = [
                ProjectMember(user_id=member_id, position=position)
                for position, member_id in enumerate(member_ids)
            ]
            project.project_head_id = data.project_head_id
        else:
            assignees = unique_ids(
                ([data.assigned_student_id] if data.assigned_student_id else []) + list(data.member_ids or [])
            )
            if len(assignees) != 1:
                raise ValidationError(
                    "An individual project needs exactly one assigned student",
                    field="assigned_student_id",
                )
            await load_students(self.db, assignees, field="assigned_student_id")
            project.assigned_student_id = assignees[0]

        if ctx.is_supervisor:
            project.supervisor_id = ctx.user_id
        elif data.supervisor_id:
            supervisor = await get_user_or_404(self.db, data.supervisor_id)
            if not supervisor.is_supervisor:
                raise ValidationError("supervisor_id must reference a supervisor", field="supervisor_id")
            project.supervisor_id = supervisor.id

    # =====================================================
    # QUERIES
    # =====================================================

    async def get_project(self, ctx: ActorContext, project_id: str) -> Project:
        project = await get_project_or_404(self.db, project_id)
        if not can_view_project(ctx, project):
            raise UnauthorizedError("You do not have access to this project", action="view_project")
        return project

    async def list_projects(self, ctx: ActorContext) -> List[Project]:
        """Super-admin: all. Supervisor: supervised. Student: assigned or member of."""
        require(ctx, Capability.VIEW_PROJECTS)

        query = select(Project).order_by(Project.created_at.desc())
        if ctx.can(Capability.OVERSEE_ANY_PROJECT):
            pass
        elif ctx.is_supervisor:
            query = query.where(Project.supervisor_id == ctx.user_id)
        elif ctx.is_student:
            member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == ctx.user_id)
            query = query.where(
                or_(
                    Project.assigned_student_id == ctx.user_id,
                    Project.id.in_(member_of),
                )
            )
        else:
            return []

        result = await self.db.execute(query)
        return list(result.scalars().all())

    # =====================================================
    # PIPELINE STATUS
    # =====================================================

    async def update_status(self, ctx: ActorContext, project_id: str, new_status: ProjectStatus) -> Project:
        require(ctx, Capability.UPDATE_PROJECT_STATUS)

        async with self.locks.hold("project", project_id):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            require_oversight(ctx, project, Capability.UPDATE_PROJECT_STATUS)

            previous = project.status
            if previous == new_status:
                return project

            check_status_move(previous, new_status, self.status_policy)

            project.status = new_status
            await commit_or_conflict(self.db, "Project", project.id)

        logger.log_transition(
            "project", project.id, previous.value, new_status.value,
            actor_id=ctx.user_id, policy=self.status_policy
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.PROJECT_STATUS_CHANGED,
                recipients=project_audience(project),
                title="Project status updated",
                message=f"'{project.title}' moved from {previous.value} to {new_status.value}",
                actor_id=ctx.user_id,
                project_id=project.id,
                data={"from": previous.value, "to": new_status.value},
            )
        ])
        return project

    # =====================================================
    # PROPOSAL REVIEW
    # =====================================================

    async def review_proposal(self, ctx: ActorContext, project_id: str, approve: bool) -> Project:
        """pending -> active | rejected, rejected -> active; active is final"""
        require(ctx, Capability.REVIEW_PROPOSAL)

        target = ApprovalStatus.ACTIVE if approve else ApprovalStatus.REJECTED

        async with self.locks.hold("project", project_id):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            require_oversight(ctx, project, Capability.REVIEW_PROPOSAL)

            previous = project.approval_status
            if previous == target:
                return project
            if previous == ApprovalStatus.ACTIVE:
                raise InvalidTransitionError(
                    "An approved proposal cannot be rejected",
                    current=previous.value,
                    requested=target.value,
                )

            project.approval_status = target
            await commit_or_conflict(self.db, "Project", project.id)

        logger.log_transition(
            "proposal", project.id, previous.value, target.value, actor_id=ctx.user_id
        )

        verdict = "approved" if approve else "rejected"
        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.PROPOSAL_REVIEWED,
                recipients=project_audience(project),
                title=f"Proposal {verdict}",
                message=f"Your proposal '{project.title}' was {verdict}",
                actor_id=ctx.user_id,
                project_id=project.id,
                data={"approval_status": target.value},
            )
        ])
        return project
