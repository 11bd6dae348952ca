# API endpoints
from . import health, projects, tasks, users, chat, notifications

__all__ = ["health", "projects", "tasks", "users", "chat", "notifications"]
