from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional
from datetime import datetime

from .models import ConnectionStatus


# connection request
class ConnectionRequestModel(BaseModel):
    recipient_id: str
    skill_name: Optional[str] = Field(default=None, max_length=100)
    message: Optional[str] = Field(default=None, max_length=500)

    @field_validator("recipient_id")
    @classmethod
    def validate_recipient_id(cls, recipient_id: str) -> str:
        recipient_id = recipient_id.strip()
        if not recipient_id:
            raise ValueError("recipient_id must not be empty.")
        return recipient_id


class ConnectionRequestDetail(BaseModel):
    id: str
    sender_id: str
    recipient_id: str
    status: ConnectionStatus
    skill_name: Optional[str] = None
    message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ConnectionRequestResponseModel(BaseModel):
    message: str
    request_id: str


# respond to connection request
class RespondToConnectionModel(BaseModel):
    decision: Literal["accepted", "rejected"]


class RespondToConnectionResponseModel(BaseModel):
    request: ConnectionRequestDetail


# withdraw connection request
class WithdrawConnectionResponseModel(BaseModel):
    request_withdrawn: bool


# list connections
class ConnectionListResponseModel(BaseModel):
    requests: List[ConnectionRequestDetail]


# friends
class FriendItem(BaseModel):
    friend_id: str
    connection_request_id: str
    created_at: datetime


class FriendsResponseModel(BaseModel):
    friends: List[FriendItem]


class AreFriendsResponseModel(BaseModel):
    are_friends: bool
