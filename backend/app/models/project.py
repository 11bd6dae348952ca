from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.core.database import Base, generate_uuid


class ProjectType(str, enum.Enum):
    """Project types"""
    INDIVIDUAL = "Individual"
    GROUP = "Group"


class ProjectStatus(str, enum.Enum):
    """Five-stage pipeline, declaration order is pipeline order"""
    PENDING = "Pending"
    PROPOSAL = "Proposal"
    IMPLEMENTATION = "Implementation"
    TESTING = "Testing"
    COMPLETED = "Completed"

    @property
    def pipeline_index(self) -> int:
        return list(ProjectStatus).index(self)


class ApprovalStatus(str, enum.Enum):
    """Coarse proposal approval, decided before the pipeline matters"""
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class Project(Base):
    """Project model - the aggregate every workflow rule is checked against"""
    __tablename__ = "projects"

    __table_args__ = (
        Index('ix_projects_supervisor_id', 'supervisor_id'),
        Index('ix_projects_assigned_student_id', 'assigned_student_id'),
        Index('ix_projects_status', 'status'),
        Index('ix_projects_created_at', 'created_at'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    department = Column(String(255), nullable=True)
    deadline = Column(DateTime, nullable=True)

    project_type = Column(SQLEnum(ProjectType), default=ProjectType.INDIVIDUAL, nullable=False)
    status = Column(SQLEnum(ProjectStatus), default=ProjectStatus.PENDING, nullable=False)
    approval_status = Column(SQLEnum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False)

    supervisor_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Individual projects
    assigned_student_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Group projects: a single column, so there can never be two heads
    project_head_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Highest phase number ever handed out, never decremented
    phase_counter = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectMember.position",
        lazy="selectin",
    )
    tasks = relationship(
        "Task",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Task.number",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def member_ids(self):
        return [m.user_id for m in self.members]

    @property
    def is_group(self) -> bool:
        return self.project_type == ProjectType.GROUP

    def __repr__(self):
        return f"<Project {self.title} ({self.status.value if self.status else '-'})>"


class ProjectMember(Base):
    """Group membership, ``position`` keeps insertion order for display"""
    __tablename__ = "project_members"

    __table_args__ = (
        Index('ix_project_members_project_id', 'project_id'),
        Index('ix_project_members_user_id', 'user_id'),
        Index('ix_project_members_project_user', 'project_id', 'user_id', unique=True),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="members")

    def __repr__(self):
        return f"<ProjectMember {self.user_id} in {self.project_id}>"
