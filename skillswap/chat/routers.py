from fastapi import APIRouter, Depends

from skillswap.core.dependencies import get_conversations, get_current_user_id

from .service import ConversationService
from .schemas import (
    SendMessageModel,
    SendMessageResponseModel,
    CreateDirectConversationModel,
    CreateDirectConversationResponseModel,
    GetConversationsResponseModel,
    GetMessagesResponseModel,
    MarkConversationReadResponseModel,
)


router = APIRouter()


@router.post(
    "/conversations/direct",
    response_model=CreateDirectConversationResponseModel,
    status_code=200,
)
async def get_or_create_direct_conversation(
    data: CreateDirectConversationModel,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversations),
):
    """
    Get or create a direct (1-on-1) conversation with a friend.

    Used when a user starts a chat from outside an existing conversation
    (e.g. clicking "Message" on a friend's profile). Accepting a connection
    request already creates this conversation, so this mostly returns it.

    **Input**
    - `receiver_id`: ID of the friend to message

    **Returns**
    - `conversation_id`: Canonical id of the direct conversation
    - `is_new`: Whether the conversation was newly created

    **Errors**
    - 400: Conversation with yourself
    - 401: Unauthorized
    - 403: Users are not friends
    - 503: Database unavailable
    """
    conversation_id, is_new = await conversations.open_direct_conversation(
        user_id, data.receiver_id
    )
    return {"conversation_id": conversation_id, "is_new": is_new}


@router.post(
    "/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
async def send_message(
    data: SendMessageModel,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversations),
):
    """
    Send a message to an existing conversation.

    Messages are always sent to conversations, never directly to users. The
    sender must be a participant and still be friends with the other one.

    **Errors**
    - 400: Empty or oversized message
    - 403: Not a participant, or no longer friends
    - 404: Conversation not found
    """
    message = await conversations.send_message(
        data.conversation_id, user_id, data.content
    )
    return {"message": message.model_dump()}


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
async def get_conversations_for_user(
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversations),
):
    """
    All conversations of the authenticated user, most recently active first.

    The result is typically used to populate the chat sidebar or inbox view.
    `unread_count` is the caller's own unread counter.
    """
    rows = await conversations.get_user_conversations(user_id)

    return {
        "conversations": [
            {
                **row.model_dump(),
                "unread_count": row.unread_counts.get(user_id, 0),
            }
            for row in rows
        ]
    }


@router.get(
    "/messages/{conversation_id}",
    response_model=GetMessagesResponseModel,
    status_code=200,
)
async def get_messages(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversations),
):
    """
    Full message history of a conversation, oldest to newest.

    **Errors**
    - 403: User is not a member of the conversation
    - 404: Conversation does not exist
    """
    messages = await conversations.get_messages(conversation_id, user_id)
    return {"messages": [m.model_dump() for m in messages]}


@router.post(
    "/conversations/{conversation_id}/read",
    response_model=MarkConversationReadResponseModel,
    status_code=200,
)
async def mark_conversation_read(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversations),
):
    await conversations.mark_conversation_read(conversation_id, user_id)
    return {"conversation_id": conversation_id, "unread_count": 0}
