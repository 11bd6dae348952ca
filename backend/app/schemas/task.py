"""Pydantic schemas for project phases"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime

from app.models.task import TaskStatus


class TaskCreate(BaseModel):
    """Title is never supplied, it is always derived as "Phase n" """
    description: Optional[str] = Field(None, max_length=5000)
    due_date: Optional[datetime] = None


class TaskResponse(BaseModel):
    id: str
    project_id: str
    number: int
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    approved_by: Optional[str] = None
    status: TaskStatus
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectTasksResponse(BaseModel):
    """Active phases in creation order, history in descending title order"""
    project_id: str
    active: List[TaskResponse]
    history: List[TaskResponse]


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    total: int
