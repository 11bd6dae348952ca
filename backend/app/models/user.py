from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, ForeignKey, Index
from datetime import datetime
import enum

from app.core.database import Base, generate_uuid


class UserRole(str, enum.Enum):
    """User roles"""
    STUDENT = "student"
    SUPERVISOR = "supervisor"
    SUPER_ADMIN = "super-admin"


class User(Base):
    """
    An actor known to the workflow engine.

    Supervisors carry a ``capacity``; their current load is never stored, it is
    the number of students whose ``supervisor_id`` points at them.
    """
    __tablename__ = "users"

    __table_args__ = (
        Index('ix_users_role', 'role'),
        Index('ix_users_supervisor_id', 'supervisor_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)

    role = Column(SQLEnum(UserRole), default=UserRole.STUDENT, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Supervisor only
    capacity = Column(Integer, nullable=True)

    # Student only: null while waiting in the unassigned pool
    supervisor_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_supervisor(self) -> bool:
        return self.role == UserRole.SUPERVISOR

    def __repr__(self):
        return f"<User {self.email} ({self.role.value if self.role else '-'})>"
