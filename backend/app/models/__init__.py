# Re-export all models for convenient imports
from app.models.user import User, UserRole
from app.models.project import Project, ProjectMember, ProjectStatus, ProjectType, ApprovalStatus
from app.models.task import Task, TaskStatus
from app.models.notification import Notification
from app.models.chat_message import ChatMessage

__all__ = [
    # User
    "User",
    "UserRole",
    # Project
    "Project",
    "ProjectMember",
    "ProjectStatus",
    "ProjectType",
    "ApprovalStatus",
    # Task
    "Task",
    "TaskStatus",
    # Communication
    "Notification",
    "ChatMessage",
]
