"""
Channel Gates

``can_post`` decides who may speak on a project's channel: its supervisor,
a super-admin, and on the student side exactly one person (the assigned
student, or the head of a group). Everybody else who can see the project
reads along.

Direct channels connect a student with a supervisor who oversees them,
or anyone with a super-admin. Delivery for both kinds is delegated to a
MessageTransport.
"""

from typing import List, Optional, Protocol, runtime_checkable

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UnauthorizedError, ValidationError
from app.core.logging_config import logger
from app.models.chat_message import ChatMessage
from app.models.project import Project, ProjectMember
from app.models.user import User, UserRole
from app.modules.auth.capabilities import ActorContext, Capability
from app.services.project_service import get_project_or_404, get_user_or_404, can_view_project


MAX_MESSAGE_LENGTH = 5000


def can_post(ctx: ActorContext, project: Project) -> bool:
    if not ctx.can(Capability.POST_MESSAGE):
        return False
    if ctx.can(Capability.OVERSEE_ANY_PROJECT):
        return True
    if ctx.is_supervisor and project.supervisor_id == ctx.user_id:
        return True
    if project.is_group:
        return project.project_head_id is not None and project.project_head_id == ctx.user_id
    return project.assigned_student_id is not None and project.assigned_student_id == ctx.user_id


def direct_channel_id(user_a: str, user_b: str) -> str:
    """Same id whichever side asks"""
    first, second = sorted((str(user_a), str(user_b)))
    return f"dm:{first}:{second}"


async def supervises(db: AsyncSession, supervisor: User, student: User) -> bool:
    """Allocated supervisor, or supervisor of a project the student is on"""
    if student.supervisor_id == supervisor.id:
        return True
    member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == student.id)
    found = await db.scalar(
        select(Project.id)
        .where(
            Project.supervisor_id == supervisor.id,
            or_(Project.assigned_student_id == student.id, Project.id.in_(member_of)),
        )
        .limit(1)
    )
    return found is not None


def _clean_text(text: Optional[str]) -> str:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Message text is required", field="text")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message is longer than {MAX_MESSAGE_LENGTH} characters", field="text")
    return text
@runtime_checkable
class MessageTransport(Protocol):
    """send/receive pair for a channel (a project id or a direct_channel_id)"""

    async def send(self, channel_id: str, actor_id: str, text: str) -> ChatMessage:
        ...

    async def receive(self, channel_id: str) -> List[ChatMessage]:
        ...


class DatabaseMessageTransport:
    """Default transport: messages are rows in chat_messages"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def send(self, channel_id: str, actor_id: str, text: str) -> ChatMessage:
        message = ChatMessage(channel_id=channel_id, sender_id=actor_id, text=text)
        self.db.add(message)
        await self.db.commit()
        return message

    async def receive(self, channel_id: str) -> List[ChatMessage]:
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.channel_id == channel_id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
        )
        return list(result.scalars().all())


class ChatService:
    def __init__(self, db: AsyncSession, transport: Optional[MessageTransport] = None):
        self.db = db
        self.transport = transport or DatabaseMessageTransport(db)

    async def post_message(self, ctx: ActorContext, project_id: str, text: str) -> ChatMessage:
        project = await get_project_or_404(self.db, project_id)
        if not can_post(ctx, project):
            logger.warning(
                f"Post to channel {project.id} by {ctx.user_id} rejected",
                extra={"event_type": "chat_rejected", "project_id": project.id, "actor_id": ctx.user_id}
            )
            raise UnauthorizedError("Only the supervisor or the project's lead student may post here", action="post_message")

        text = _clean_text(text)
        message = await self.transport.send(project.id, ctx.user_id, text)
        logger.info(
            f"Message posted to channel {project.id}",
            extra={"event_type": "chat_posted", "project_id": project.id, "actor_id": ctx.user_id}
        )
        return message

    async def list_messages(self, ctx: ActorContext, project_id: str) -> List[ChatMessage]:
        project = await get_project_or_404(self.db, project_id)
        if not can_view_project(ctx, project):
            raise UnauthorizedError("You do not have access to this project", action="view_project")
        return await self.transport.receive(project.id)

    # =====================================================
    # DIRECT CHANNEL
    # =====================================================

    async def _direct_counterpart(self, ctx: ActorContext, counterpart_id: str) -> User:
        """
        A student and a supervisor who oversees them may talk one to one; a
        super-admin may talk to anyone.
        """
        if not ctx.can(Capability.POST_MESSAGE):
            raise UnauthorizedError("Your role may not send messages", action="direct_message")
        if counterpart_id == ctx.user_id:
            raise ValidationError("Cannot open a conversation with yourself", field="recipient_id")

        actor = await get_user_or_404(self.db, ctx.user_id)
        counterpart = await get_user_or_404(self.db, counterpart_id)

        if ctx.is_super_admin or counterpart.role == UserRole.SUPER_ADMIN:
            return counterpart
        if ctx.is_student and counterpart.is_supervisor:
            allowed = await supervises(self.db, counterpart, actor)
        elif ctx.is_supervisor and counterpart.is_student:
            allowed = await supervises(self.db, actor, counterpart)
        else:
            allowed = False

        if not allowed:
            logger.warning(
                f"Direct channel {ctx.user_id} <-> {counterpart_id} rejected",
                extra={"event_type": "chat_rejected", "actor_id": ctx.user_id, "counterpart_id": counterpart_id}
            )
            raise UnauthorizedError(
                "Direct messages are limited to a student and their supervisor", action="direct_message"
            )
        return counterpart

    async def post_direct(self, ctx: ActorContext, recipient_id: str, text: str) -> ChatMessage:
        recipient = await self._direct_counterpart(ctx, recipient_id)
        text = _clean_text(text)

        channel_id = direct_channel_id(ctx.user_id, recipient.id)
        message = await self.transport.send(channel_id, ctx.user_id, text)
        logger.info(
            f"Direct message to {recipient.id}",
            extra={"event_type": "chat_posted", "channel_id": channel_id, "actor_id": ctx.user_id}
        )
        return message

    async def list_direct(self, ctx: ActorContext, counterpart_id: str) -> List[ChatMessage]:
        counterpart = await self._direct_counterpart(ctx, counterpart_id)
        return await self.transport.receive(direct_channel_id(ctx.user_id, counterpart.id))
