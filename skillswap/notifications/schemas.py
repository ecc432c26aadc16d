from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from .models import NotificationType


# list notifications
class NotificationItem(BaseModel):
    id: str
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    type: NotificationType
    message: str
    read: bool
    status: Optional[str] = None
    connection_id: Optional[str] = None
    session_id: Optional[str] = None
    skill_name: Optional[str] = None
    created_at: datetime


class NotificationsResponseModel(BaseModel):
    notifications: List[NotificationItem]


# unread count
class UnreadCountResponseModel(BaseModel):
    unread: int


# mark as read
class MarkReadResponseModel(BaseModel):
    notification: NotificationItem


class MarkAllReadResponseModel(BaseModel):
    marked_read: int
