from fastapi import APIRouter
from app.api.v1.endpoints import health, projects, tasks, users, chat, notifications

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(projects.router)
api_router.include_router(tasks.router)
api_router.include_router(users.router)
api_router.include_router(chat.router)
api_router.include_router(notifications.router)
