from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime


class ChatMessageCreate(BaseModel):
    text: str = ""


class ChatMessageResponse(BaseModel):
    id: str
    channel_id: str
    sender_id: Optional[str] = None
    text: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatHistoryResponse(BaseModel):
    project_id: str
    can_post: bool
    messages: List[ChatMessageResponse]


class DirectMessageCreate(BaseModel):
    recipient_id: str
    text: str = ""


class DirectChatHistoryResponse(BaseModel):
    channel_id: str
    counterpart_id: str
    messages: List[ChatMessageResponse]
