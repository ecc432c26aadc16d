import logging
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from skillswap.connections.models import FRIENDS_COLLECTION
from skillswap.connections.pairing import pair_id, sorted_pair
from skillswap.errors import InvalidRequestError, NotAuthorizedError, NotFoundError
from skillswap.store.base import DocumentStore, Query, Unsubscribe
from skillswap.utils.get_username import get_display_name
from skillswap.utils.clock import Clock, utc_now

from .models import CONVERSATIONS_COLLECTION, MESSAGES_COLLECTION, Conversation, Message


logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
PREVIEW_LENGTH = 120


class ConversationService:
    def __init__(self, store: DocumentStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    async def ensure_conversation(
        self,
        user_a: str,
        user_b: str,
        names: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Get or create the direct conversation between two users.

        The conversation id is the canonical pair id, so calling this from
        either side, or more than once, always resolves to the same document.
        """
        conversation_id = pair_id(user_a, user_b)

        existing = await self.store.get_document(CONVERSATIONS_COLLECTION, conversation_id)
        if existing:
            return conversation_id

        names = names or {}
        low, high = sorted_pair(user_a, user_b)
        now = self.clock()
        conversation = Conversation(
            id=conversation_id,
            participants=[user_a, user_b],
            user_id1=low,
            user_id2=high,
            participant_names={
                user_a: names.get(user_a, "User"),
                user_b: names.get(user_b, "User"),
            },
            unread_counts={user_a: 0, user_b: 0},
            created_at=now,
            updated_at=now,
        )

        created = await self.store.create_document(
            CONVERSATIONS_COLLECTION,
            conversation_id,
            conversation.model_dump(mode="json", exclude={"id"}),
        )
        if created:
            logger.info(f"conversation_created id={conversation_id}")
        return conversation_id

    async def open_direct_conversation(self, user_id: str, other_user_id: str) -> Tuple[str, bool]:
        """Conversation id with a friend, and whether it was just created."""
        if not other_user_id or other_user_id == user_id:
            raise InvalidRequestError("Cannot start a conversation with yourself.")

        friendship = await self.store.get_document(
            FRIENDS_COLLECTION, pair_id(user_id, other_user_id)
        )
        if not friendship:
            raise NotAuthorizedError("You can only message users you are friends with.")

        conversation_id = pair_id(user_id, other_user_id)
        if await self.store.get_document(CONVERSATIONS_COLLECTION, conversation_id):
            return conversation_id, False

        names = {
            user_id: await get_display_name(self.store, user_id, default="User"),
            other_user_id: await get_display_name(self.store, other_user_id, default="User"),
        }
        await self.ensure_conversation(user_id, other_user_id, names)
        return conversation_id, True

    async def get_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        document = await self.store.get_document(CONVERSATIONS_COLLECTION, conversation_id)
        if not document:
            raise NotFoundError("Conversation not found.")

        conversation = Conversation.model_validate(document)
        if user_id not in conversation.participants:
            raise NotAuthorizedError("You are not a member of this conversation.")
        return conversation

    async def get_user_conversations(self, user_id: str) -> List[Conversation]:
        # user_id1 / user_id2 hold the sorted participants so a user is found
        # with two equality queries.
        as_first = await self.store.query_documents(
            Query(CONVERSATIONS_COLLECTION).where("user_id1", user_id)
        )
        as_second = await self.store.query_documents(
            Query(CONVERSATIONS_COLLECTION).where("user_id2", user_id)
        )

        conversations = [Conversation.model_validate(d) for d in as_first + as_second]
        conversations.sort(
            key=lambda c: c.last_message_at or c.updated_at or c.created_at,
            reverse=True,
        )
        return conversations

    async def send_message(self, conversation_id: str, sender_id: str, content: str) -> Message:
        content = (content or "").strip()
        if not content:
            raise InvalidRequestError("Message content cannot be empty.")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidRequestError(
                f"Message content cannot exceed {MAX_MESSAGE_LENGTH} characters."
            )

        conversation = await self.get_conversation(conversation_id, sender_id)
        other_user_id = next(
            (uid for uid in conversation.participants if uid != sender_id), None
        )

        # Check friendship still exists
        friendship = await self.store.get_document(
            FRIENDS_COLLECTION, pair_id(sender_id, other_user_id)
        )
        if not friendship:
            raise NotAuthorizedError("You can only message users you are connected with.")

        now = self.clock()
        message = Message(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=now,
        )
        await self.store.set_document(
            MESSAGES_COLLECTION, message.id, message.model_dump(mode="json", exclude={"id"})
        )

        unread_counts = dict(conversation.unread_counts)
        unread_counts[other_user_id] = unread_counts.get(other_user_id, 0) + 1
        await self.store.update_document(
            CONVERSATIONS_COLLECTION,
            conversation_id,
            {
                "last_message": content[:PREVIEW_LENGTH],
                "last_message_at": now.isoformat(),
                "unread_counts": unread_counts,
                "updated_at": now.isoformat(),
            },
        )

        logger.info(f"message_sent id={message.id} conversation={conversation_id} sender={sender_id}")
        return message

    async def get_messages(self, conversation_id: str, user_id: str) -> List[Message]:
        await self.get_conversation(conversation_id, user_id)
        documents = await self.store.query_documents(self._messages_query(conversation_id))
        return [Message.model_validate(d) for d in documents]

    async def mark_conversation_read(self, conversation_id: str, user_id: str) -> None:
        conversation = await self.get_conversation(conversation_id, user_id)
        if not conversation.unread_counts.get(user_id):
            return

        unread_counts = dict(conversation.unread_counts)
        unread_counts[user_id] = 0
        await self.store.update_document(
            CONVERSATIONS_COLLECTION, conversation_id, {"unread_counts": unread_counts}
        )

    async def subscribe_to_messages(
        self,
        conversation_id: str,
        user_id: str,
        callback: Callable[[List[Message]], None],
    ) -> Unsubscribe:
        await self.get_conversation(conversation_id, user_id)

        def on_snapshot(documents):
            callback([Message.model_validate(d) for d in documents])

        return await self.store.subscribe(self._messages_query(conversation_id), on_snapshot)

    @staticmethod
    def _messages_query(conversation_id: str) -> Query:
        return Query(MESSAGES_COLLECTION).where("conversation_id", conversation_id).order("created_at")
