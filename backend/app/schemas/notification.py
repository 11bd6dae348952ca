from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime


class NotificationResponse(BaseModel):
    id: str
    event_type: str
    title: str
    message: str
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int
