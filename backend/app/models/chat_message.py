"""
Chat Message Model - rows behind the database-backed message transport
"""

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index
from datetime import datetime

from app.core.database import Base, generate_uuid


class ChatMessage(Base):
    """
    One message on a channel. A project channel's id is the project id; a
    direct channel's id is built from the two user ids (see chat_service).
    """
    __tablename__ = "chat_messages"

    __table_args__ = (
        Index('ix_chat_messages_channel_id', 'channel_id'),
        Index('ix_chat_messages_created_at', 'created_at'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    channel_id = Column(String(80), nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ChatMessage {self.id} in {self.channel_id}>"
