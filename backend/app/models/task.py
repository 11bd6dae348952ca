"""Phase (task) model attached to a project"""
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.core.database import Base, generate_uuid


class TaskStatus(str, enum.Enum):
    """Phase status, only ever moves forward"""
    PENDING = "Pending"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"


class Task(Base):
    """A numbered deliverable ("Phase n") owned by one project"""
    __tablename__ = "tasks"

    __table_args__ = (
        Index('ix_tasks_project_id', 'project_id'),
        Index('ix_tasks_assigned_to', 'assigned_to'),
        Index('ix_tasks_status', 'status'),
        Index('ix_tasks_project_number', 'project_id', 'number', unique=True),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    number = Column(Integer, nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)

    assigned_to = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    status = Column(SQLEnum(TaskStatus), default=TaskStatus.PENDING, nullable=False)

    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", back_populates="tasks")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Task {self.title} ({self.status.value if self.status else '-'})>"
