from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


CONVERSATIONS_COLLECTION = "conversations"
MESSAGES_COLLECTION = "messages"


conversations_sql = """
CREATE TABLE conversations (
    -- canonical pair id, same derivation as connections.id
    id text PRIMARY KEY,
    participants text[] NOT NULL,
    user_id1 UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    user_id2 UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    participant_names jsonb NOT NULL DEFAULT '{}'::jsonb,
    unread_counts jsonb NOT NULL DEFAULT '{}'::jsonb,
    last_message text,
    last_message_at TIMESTAMPTZ,
    is_active BOOLEAN DEFAULT TRUE,
    schema_version int NOT NULL default 2,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ DEFAULT now(),

    -- Enforce canonical ordering
    CONSTRAINT user1_less_than_user2 CHECK (user_id1 < user_id2)
);
"""

messages_sql = """
CREATE TABLE messages (
    id text PRIMARY KEY,
    conversation_id text REFERENCES conversations(id) ON DELETE CASCADE,
    sender_id UUID REFERENCES auth.users(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    read BOOLEAN NOT NULL DEFAULT FALSE,
    schema_version int NOT NULL default 2,
    created_at TIMESTAMPTZ DEFAULT now()
);

CREATE INDEX idx_messages_conversation_id ON messages(conversation_id, created_at);
"""


class Conversation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    participants: List[str]
    user_id1: str
    user_id2: str
    participant_names: Dict[str, str] = {}
    unread_counts: Dict[str, int] = {}
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    is_active: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None
    schema_version: int = 2


class Message(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    conversation_id: str
    sender_id: str
    content: str
    read: bool = False
    created_at: datetime
    schema_version: int = 2
