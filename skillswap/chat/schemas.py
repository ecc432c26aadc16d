from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Dict, Optional


# Send Messages
class SendMessageModel(BaseModel):
    conversation_id: str
    content: str = Field(min_length=1)


class MessageData(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    content: str
    read: bool
    created_at: datetime


class SendMessageResponseModel(BaseModel):
    message: MessageData


# Direct messages
class CreateDirectConversationModel(BaseModel):
    receiver_id: str


class CreateDirectConversationResponseModel(BaseModel):
    conversation_id: str
    is_new: bool


# Get Conversations
class ConversationData(BaseModel):
    id: str
    participants: List[str]
    participant_names: Dict[str, str]
    unread_count: int
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    created_at: datetime


class GetConversationsResponseModel(BaseModel):
    conversations: List[ConversationData]


# Get messages
class GetMessagesResponseModel(BaseModel):
    messages: List[MessageData]


# Mark read
class MarkConversationReadResponseModel(BaseModel):
    conversation_id: str
    unread_count: int
