from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime

from app.models.project import ProjectStatus, ProjectType, ApprovalStatus


class ProjectCreate(BaseModel):
    """
    Students only supply the descriptive fields; type, students and
    supervisor are honoured for supervisors and super-admins.
    """
    title: str = ""
    description: str = ""
    department: Optional[str] = Field(None, max_length=255)
    deadline: Optional[datetime] = None
    project_type: Optional[ProjectType] = None
    assigned_student_id: Optional[str] = None
    member_ids: Optional[List[str]] = None
    project_head_id: Optional[str] = None
    supervisor_id: Optional[str] = None


class ProjectStatusUpdate(BaseModel):
    status: ProjectStatus


class ProposalReview(BaseModel):
    approve: bool


class GroupFormation(BaseModel):
    member_ids: List[str] = Field(default_factory=list)
    project_head_id: Optional[str] = None


class MemberAdd(BaseModel):
    student_id: str


class HeadPromotion(BaseModel):
    member_id: str


class ProjectResponse(BaseModel):
    id: str
    title: str
    description: str
    department: Optional[str] = None
    deadline: Optional[datetime] = None
    project_type: ProjectType
    status: ProjectStatus
    approval_status: ApprovalStatus
    supervisor_id: Optional[str] = None
    assigned_student_id: Optional[str] = None
    project_head_id: Optional[str] = None
    member_ids: List[str] = Field(default_factory=list)
    phase_counter: int = 0
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProjectListResponse(BaseModel):
    projects: List[ProjectResponse]
    total: int
