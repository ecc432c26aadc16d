from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


CONNECTIONS_COLLECTION = "connections"
FRIENDS_COLLECTION = "friends"
SCHEMA_VERSION = 2


connections_sql = """
CREATE TYPE connection_status AS ENUM ('pending', 'accepted', 'rejected');

create table connections (
  -- canonical pair id: least(sender, recipient) || '_' || greatest(sender, recipient)
  id text PRIMARY KEY,

  sender_id  uuid references auth.users(id) on delete cascade,
  recipient_id  uuid references auth.users(id) on delete cascade,

  status connection_status NOT NULL default 'pending',

  skill_name text,
  message text,
  schema_version int NOT NULL default 2,

  created_at timestamp with time zone default now(),
  updated_at timestamp with time zone,

  CONSTRAINT prevent_self_request CHECK (sender_id <> recipient_id)
);
"""

friends_sql = """
CREATE TABLE friends (
    id text PRIMARY KEY,

    user_id1 UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    user_id2 UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,

    connection_request_id text NOT NULL REFERENCES connections(id),
    schema_version int NOT NULL default 2,

    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),

    -- Prevent duplicates by enforcing canonical ordering
    CONSTRAINT user1_less_than_user2 CHECK (user_id1 < user_id2),

    -- Prevent (A,B) OR (B,A) duplicates
    CONSTRAINT unique_friend_pair UNIQUE (user_id1, user_id2)
);
"""


class ConnectionStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class ConnectionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    sender_id: str
    recipient_id: str
    status: ConnectionStatus
    skill_name: Optional[str] = None
    message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    schema_version: int = SCHEMA_VERSION

    def other_party(self, user_id: str) -> str:
        return self.recipient_id if user_id == self.sender_id else self.sender_id


class Friend(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id1: str
    user_id2: str
    connection_request_id: str
    created_at: datetime
    schema_version: int = SCHEMA_VERSION

    def friend_of(self, user_id: str) -> str:
        return self.user_id2 if user_id == self.user_id1 else self.user_id1
