"""
Notification Service

Workflow services describe what happened as NotificationEvent objects and
hand them to the dispatcher once their transaction has committed. The
dispatcher fans each event out into one inbox row per recipient and then
offers it to the push collaborator. Nothing here can undo a transition:
every failure is logged and swallowed at this boundary.
"""

from typing import Dict, Any, List, Optional, Iterable, Protocol, Tuple, runtime_checkable
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotificationNotFoundError
from app.core.logging_config import logger
from app.models.notification import Notification
from app.modules.auth.capabilities import ActorContext


class EventType(str, Enum):
    """Events emitted after a committed transition"""

    # Project events
    PROJECT_CREATED = "project_created"
    PROJECT_STATUS_CHANGED = "project_status_changed"
    PROPOSAL_REVIEWED = "proposal_reviewed"

    # Allocation events
    SUPERVISOR_ASSIGNED = "supervisor_assigned"

    # Group events
    GROUP_FORMED = "group_formed"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    HEAD_PROMOTED = "head_promoted"

    # Phase events
    TASK_CREATED = "task_created"
    TASK_SUBMITTED = "task_submitted"
    TASK_APPROVED = "task_approved"


@dataclass
class NotificationEvent:
    """'Notify these actors that this happened'"""
    type: EventType
    recipients: List[str]
    title: str
    message: str
    actor_id: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def resolved_recipients(self) -> List[str]:
        """Recipients without blanks, duplicates or the actor who caused the event"""
        seen = []
        for user_id in self.recipients:
            if user_id and user_id != self.actor_id and user_id not in seen:
                seen.append(user_id)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "recipients": self.resolved_recipients(),
            "title": self.title,
            "message": self.message,
            "actor_id": self.actor_id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


@runtime_checkable
class PushSender(Protocol):
    """External push-delivery collaborator"""

    async def send(self, user_id: str, title: str, body: str, data: Dict[str, Any]) -> None:
        ...


class LoggingPushSender:
    """Default sender: records the push instead of delivering it"""

    async def send(self, user_id: str, title: str, body: str, data: Dict[str, Any]) -> None:
        logger.info(
            f"Push to {user_id}: {title}",
            extra={"event_type": "push", "recipient_id": user_id, "push_data": data}
        )


class NotificationDispatcher:
    """Turns committed-transition events into inbox rows and push calls"""

    def __init__(self, db: AsyncSession, push_sender: Optional[PushSender] = None):
        self.db = db
        self.push_sender = push_sender or LoggingPushSender()

    async def dispatch(self, events: Iterable[NotificationEvent]) -> List[Notification]:
        """Persist and push; never raises"""
        events = [e for e in events if e.resolved_recipients()]
        if not events:
            return []

        rows: List[Notification] = []
        try:
            # Own session: a failed insert must not roll back or expire the caller's objects
            async with AsyncSession(self.db.bind, expire_on_commit=False) as session:
                for event in events:
                    for user_id in event.resolved_recipients():
                        row = Notification(
                            user_id=user_id,
                            event_type=event.type.value,
                            title=event.title,
                            message=event.message,
                            project_id=event.project_id,
                            task_id=event.task_id,
                            payload=event.data or None,
                        )
                        session.add(row)
                        rows.append(row)
                await session.commit()
        except Exception as e:
            logger.log_error_with_context(
                e, context="notification_dispatch",
                events=[event.type.value for event in events]
            )
            return []

        for event in events:
            for user_id in event.resolved_recipients():
                try:
                    await self.push_sender.send(user_id, event.title, event.message, event.to_dict())
                except Exception as e:
                    logger.log_error_with_context(
                        e, context="push_delivery",
                        recipient_id=user_id, notification_type=event.type.value
                    )

        logger.debug(f"Dispatched {len(rows)} notifications for {len(events)} events")
        return rows


class NotificationService:
    """An actor's own inbox"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_owned(self, ctx: ActorContext, notification_id: str) -> Notification:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == ctx.user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotificationNotFoundError(notification_id)
        return notification

    async def list_notifications(
        self,
        ctx: ActorContext,
        unread_only: bool = False,
        limit: int = 50,
    ) -> Tuple[List[Notification], int]:
        """Newest first, plus the unread count across the whole inbox"""
        query = select(Notification).where(Notification.user_id == ctx.user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)

        result = await self.db.execute(query)
        items = list(result.scalars().all())

        unread = await self.db.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == ctx.user_id,
                Notification.is_read == False,  # noqa: E712
            )
        )
        return items, unread or 0

    async def mark_read(self, ctx: ActorContext, notification_id: str) -> Notification:
        notification = await self._get_owned(ctx, notification_id)
        if not notification.is_read:
            notification.is_read = True
            await self.db.commit()
        return notification

    async def mark_all_read(self, ctx: ActorContext) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == ctx.user_id, Notification.is_read == False)  # noqa: E712
            .values(is_read=True)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete_notification(self, ctx: ActorContext, notification_id: str) -> None:
        notification = await self._get_owned(ctx, notification_id)
        await self.db.delete(notification)
        await self.db.commit()
