from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime

from app.models.user import UserRole


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    department: Optional[str] = None
    role: UserRole
    supervisor_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int


class AuthorizeRequest(BaseModel):
    """Allocate a student to a supervisor"""
    student_id: str
    supervisor_id: str


class SupervisorLoadResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    department: Optional[str] = None
    capacity: int
    current_load: int
    remaining: int


class SupervisorListResponse(BaseModel):
    supervisors: List[SupervisorLoadResponse]
    total: int
