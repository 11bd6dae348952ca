from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON, Boolean, Index
from datetime import datetime

from app.core.database import Base, generate_uuid


class Notification(Base):
    """One inbox entry per recipient per dispatched event"""
    __tablename__ = "notifications"

    __table_args__ = (
        Index('ix_notifications_user_id', 'user_id'),
        Index('ix_notifications_user_read', 'user_id', 'is_read'),
        Index('ix_notifications_created_at', 'created_at'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Stored as string, not SQLEnum, so new event types need no migration
    event_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    payload = Column(JSON, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Notification {self.event_type} -> {self.user_id}>"
