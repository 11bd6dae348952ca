"""
Group Formation Engine

Turns an Individual project into a Group project and manages its member
list and its single project head. The head is one column on the project
row, so promoting somebody always demotes whoever held the role.
"""

from typing import List, Optional
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ResourceNotFoundError,
    ValidationError,
    InvalidTransitionError,
)
from app.core.logging_config import logger
from app.models.project import Project, ProjectMember, ProjectType
from app.models.task import TaskStatus
from app.modules.auth.capabilities import ActorContext, Capability, require
from app.services.locking import EntityLockRegistry, entity_locks, commit_or_conflict
from app.services.notification_service import NotificationDispatcher, NotificationEvent, EventType
from app.services.project_service import (
    get_project_or_404,
    load_students,
    require_oversight,
    unique_ids,
)


def hand_over_open_phases(project: Project, head_id: str) -> List[str]:
    """Give every phase that is not yet Approved to ``head_id``; returns the moved task ids"""
    moved = []
    for task in project.tasks:
        if task.status != TaskStatus.APPROVED and task.assigned_to != head_id:
            task.assigned_to = head_id
            moved.append(task.id)
    return moved


def _require_group(project: Project, action: str) -> None:
    if not project.is_group:
        raise InvalidTransitionError(
            f"Cannot {action} on an Individual project",
            current=project.project_type.value,
            reason="not_group",
        )


class GroupService:
    """Service for group membership and the project head role"""

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        locks: EntityLockRegistry = entity_locks,
    ):
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher(db)
        self.locks = locks

    # =====================================================
    # FORMATION
    # =====================================================

    async def convert_to_group(
        self,
        ctx: ActorContext,
        project_id: str,
        member_ids: List[str],
        project_head_id: Optional[str] = None,
    ) -> Project:
        """
        The previously assigned student stays on as the first member. At
        least one member must be supplied in the same call.
        """
        require(ctx, Capability.MANAGE_GROUP)

        requested = unique_ids(member_ids or [])
        if not requested:
            raise ValidationError("A group needs at least one member", field="member_ids")

        async with self.locks.hold("project", project_id):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            require_oversight(ctx, project, Capability.MANAGE_GROUP)

            if project.is_group:
                raise InvalidTransitionError(
                    "Project is already a group project",
                    current=project.project_type.value,
                    requested=ProjectType.GROUP.value,
                )

            members = unique_ids(([project.assigned_student_id] if project.assigned_student_id else []) + requested)
            await load_students(self.db, members, field="member_ids")

            if project_head_id and project_head_id not in members:
                raise ValidationError("Project head must be one of the members", field="project_head_id")

            project.project_type = ProjectType.GROUP
            project.assigned_student_id = None
            project.members = [
                ProjectMember(user_id=member_id, position=position)
                for position, member_id in enumerate(members)
            ]
            project.project_head_id = project_head_id
            if project_head_id:
                hand_over_open_phases(project, project_head_id)
            await commit_or_conflict(self.db, "Project", project.id)

        logger.log_transition(
            "project", project.id, ProjectType.INDIVIDUAL.value, ProjectType.GROUP.value,
            actor_id=ctx.user_id, members=members, project_head_id=project_head_id
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.GROUP_FORMED,
                recipients=members,
                title="Group formed",
                message=f"'{project.title}' is now a group project",
                actor_id=ctx.user_id,
                project_id=project.id,
                data={"member_ids": members, "project_head_id": project_head_id},
            )
        ])
        return project

    # =====================================================
    # MEMBERSHIP
    # =====================================================

    async def add_member(self, ctx: ActorContext, project_id: str, student_id: str) -> Project:
        """Adding someone who is already a member is a no-op"""
        require(ctx, Capability.MANAGE_GROUP)

        async with self.locks.hold("project", project_id):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            require_oversight(ctx, project, Capability.MANAGE_GROUP)
            _require_group(project, "add members")

            if student_id in project.member_ids:
                return project

            await load_students(self.db, [student_id], field="student_id")

            next_position = max((m.position for m in project.members), default=-1) + 1
            project.members.append(ProjectMember(user_id=student_id, position=next_position))
            # Membership rows live in another table, bump the project row so its version moves
            project.updated_at = datetime.utcnow()
            await commit_or_conflict(self.db, "Project", project.id)

        logger.info(
            f"Added member {student_id} to project {project.id}",
            extra={"event_type": "member_added", "project_id": project.id, "student_id": student_id, "actor_id": ctx.user_id}
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.MEMBER_ADDED,
                recipients=[student_id],
                title="Added to group",
                message=f"You were added to '{project.title}'",
                actor_id=ctx.user_id,
                project_id=project.id,
            )
        ])
        return project

    async def remove_member(self, ctx: ActorContext, project_id: str, student_id: str) -> Project:
        """The current head cannot be removed until someone else is promoted"""
        require(ctx, Capability.MANAGE_GROUP)

        async with self.locks.hold("project", project_id):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            require_oversight(ctx, project, Capability.MANAGE_GROUP)
            _require_group(project, "remove members")

            membership = next((m for m in project.members if m.user_id == student_id), None)
            if membership is None:
                raise ResourceNotFoundError("Member", student_id)

            if project.project_head_id == student_id:
                raise InvalidTransitionError(
                    "Cannot remove the project head, promote another member first",
                    reason="head_removal_blocked",
                )
            if len(project.members) == 1:
                raise InvalidTransitionError(
                    "Cannot remove the last member of a group",
                    reason="last_member",
                )

            project.members.remove(membership)
            project.updated_at = datetime.utcnow()
            await commit_or_conflict(self.db, "Project", project.id)

        logger.info(
            f"Removed member {student_id} from project {project.id}",
            extra={"event_type": "member_removed", "project_id": project.id, "student_id": student_id, "actor_id": ctx.user_id}
        )

        await self.dispatcher.dispatch([
            NotificationEvent(
                type=EventType.MEMBER_REMOVED,
                recipients=[student_id],
                title="Removed from group",
                message=f"You were removed from '{project.title}'",
                actor_id=ctx.user_id,
                project_id=project.id,
            )
        ])
        return project

    # =====================================================
    # PROJECT HEAD
    # =====================================================

    async def promote_to_head(self, ctx: ActorContext, project_id: str, member_id: str) -> Project:
        require(ctx, Capability.MANAGE_GROUP)

        async with self.locks.hold("project", project_id):
            project = await get_project_or_404(self.db, project_id, for_update=True)
            require_oversight(ctx, project, Capability.MANAGE_GROUP)
            _require_group(project, "promote a head")

            if member_id not in project.member_ids:
                raise ValidationError("Only a member of the group can become its head", field="member_id")

            previous = project.project_head_id
            if previous == member_id:
                return project

            project.project_head_id = member_id
            moved = hand_over_open_phases(project, member_id)
            await commit_or_conflict(self.db, "Project", project.id)

        logger.log_transition(
            "project_head", project.id, previous, member_id, actor_id=ctx.user_id, reassigned_tasks=moved
        )

        events = [
            NotificationEvent(
                type=EventType.HEAD_PROMOTED,
                recipients=[member_id],
                title="You are now project head",
                message=f"You now lead '{project.title}'",
                actor_id=ctx.user_id,
                project_id=project.id,
                data={"previous_head_id": previous},
            )
        ]
        if previous:
            events.append(
                NotificationEvent(
                    type=EventType.HEAD_PROMOTED,
                    recipients=[previous],
                    title="Project head changed",
                    message=f"Another member now leads '{project.title}'",
                    actor_id=ctx.user_id,
                    project_id=project.id,
                    data={"new_head_id": member_id},
                )
            )
        await self.dispatcher.dispatch(events)
        return project
