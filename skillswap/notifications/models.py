from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


NOTIFICATIONS_COLLECTION = "notifications"


notifications_sql = """
CREATE TABLE notifications (
    id text PRIMARY KEY,

    recipient_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    sender_id UUID REFERENCES auth.users(id) ON DELETE SET NULL,
    sender_name text,

    type text NOT NULL CHECK (type IN ('connection_request', 'connection_update', 'session_request')),
    message text NOT NULL,
    read boolean NOT NULL DEFAULT false,
    status text,

    connection_id text,
    session_id text,
    skill_name text,
    schema_version int NOT NULL default 2,

    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX idx_notifications_recipient ON notifications(recipient_id, created_at DESC);
"""


class NotificationType(str, Enum):
    connection_request = "connection_request"
    connection_update = "connection_update"
    session_request = "session_request"


class Notification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    recipient_id: str
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    type: NotificationType
    message: str
    read: bool = False
    status: Optional[str] = None
    connection_id: Optional[str] = None
    session_id: Optional[str] = None
    skill_name: Optional[str] = None
    created_at: datetime
    schema_version: int = 2
