from app.services.project_service import ProjectService
from app.services.task_service import TaskWorkflowService
from app.services.group_service import GroupService
from app.services.allocation_service import AllocationService, SupervisorLoad
from app.services.chat_service import ChatService, can_post
from app.services.notification_service import (
    NotificationService,
    NotificationDispatcher,
    NotificationEvent,
    EventType,
)

__all__ = [
    # Workflow engine
    "ProjectService",
    "TaskWorkflowService",
    "GroupService",
    "AllocationService",
    "SupervisorLoad",
    # Communication
    "ChatService",
    "can_post",
    "NotificationService",
    "NotificationDispatcher",
    "NotificationEvent",
    "EventType",
]
