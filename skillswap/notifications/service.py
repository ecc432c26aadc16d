import logging
import uuid
from typing import Callable, List, Optional

from skillswap.errors import NotAuthorizedError, NotFoundError
from skillswap.store.base import DocumentStore, Query, Unsubscribe
from skillswap.utils.clock import Clock, utc_now

from .models import NOTIFICATIONS_COLLECTION, Notification, NotificationType


logger = logging.getLogger(__name__)


def connection_request_message(sender_name: str, skill_name: Optional[str]) -> str:
    return f"{sender_name} wants to connect with you for {skill_name or 'general connection'}"


def connection_response_message(responder_name: str, accepted: bool) -> str:
    verb = "accepted" if accepted else "declined"
    return f"{responder_name} has {verb} your connection request"


class NotificationRelay:
    """
    Fan-out of state transitions into recipient-scoped notification records.

    Writing the record is all the relay does: listening clients receive it
    through the document store's subscription mechanism. There is no queue
    and no ordering beyond the store's own `created_at` ordering.
    """

    def __init__(self, store: DocumentStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    async def notify(
        self,
        recipient_id: str,
        sender_id: Optional[str],
        type: NotificationType,
        message: str,
        *,
        sender_name: Optional[str] = None,
        connection_id: Optional[str] = None,
        session_id: Optional[str] = None,
        skill_name: Optional[str] = None,
        status: Optional[str] = None,
        dedupe_key: Optional[str] = None,
    ) -> str:
        """
        Write one notification for `recipient_id` and return its id.

        When `dedupe_key` is given (one per request id per transition) the id
        is derived from it, so a retried emission overwrites the same record
        instead of adding a second one.
        """
        if dedupe_key:
            notification_id = uuid.uuid5(uuid.NAMESPACE_URL, f"notification:{dedupe_key}").hex
        else:
            notification_id = uuid.uuid4().hex

        notification = Notification(
            id=notification_id,
            recipient_id=recipient_id,
            sender_id=sender_id,
            sender_name=sender_name,
            type=type,
            message=message,
            read=False,
            status=status,
            connection_id=connection_id,
            session_id=session_id,
            skill_name=skill_name,
            created_at=self.clock(),
        )

        await self.store.set_document(
            NOTIFICATIONS_COLLECTION,
            notification_id,
            notification.model_dump(mode="json", exclude={"id"}),
        )

        logger.info(
            f"notification_created id={notification_id} type={type.value} "
            f"recipient={recipient_id} sender={sender_id}"
        )
        return notification_id

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        document = await self.store.get_document(NOTIFICATIONS_COLLECTION, notification_id)
        return Notification.model_validate(document) if document else None

    async def get_user_notifications(
        self,
        user_id: str,
        *,
        type: Optional[NotificationType] = None,
        unread_only: bool = False,
    ) -> List[Notification]:
        documents = await self.store.query_documents(
            self._recipient_query(user_id, type=type, unread_only=unread_only)
        )
        return [Notification.model_validate(d) for d in documents]

    async def get_unread_count(self, user_id: str) -> int:
        return len(await self.get_user_notifications(user_id, unread_only=True))

    async def mark_as_read(self, notification_id: str, caller_id: str) -> Notification:
        notification = await self.get_notification(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found.")

        # Notifications are owned by their recipient.
        if notification.recipient_id != caller_id:
            raise NotAuthorizedError("You can only update your own notifications.")

        if not notification.read:
            await self.store.update_document(
                NOTIFICATIONS_COLLECTION, notification_id, {"read": True}
            )
            notification.read = True
            logger.info(f"notification_read id={notification_id} recipient={caller_id}")

        return notification

    async def mark_all_as_read(self, user_id: str) -> int:
        unread = await self.get_user_notifications(user_id, unread_only=True)
        for notification in unread:
            await self.store.update_document(
                NOTIFICATIONS_COLLECTION, notification.id, {"read": True}
            )

        logger.info(f"notifications_read_all recipient={user_id} count={len(unread)}")
        return len(unread)

    async def subscribe_to_notifications(
        self,
        recipient_id: str,
        callback: Callable[[List[Notification]], None],
        *,
        unread_only: bool = False,
    ) -> Unsubscribe:
        def on_snapshot(documents):
            callback([Notification.model_validate(d) for d in documents])

        logger.info(f"notification_subscription recipient={recipient_id} unread_only={unread_only}")
        return await self.store.subscribe(
            self._recipient_query(recipient_id, unread_only=unread_only), on_snapshot
        )

    @staticmethod
    def _recipient_query(
        user_id: str,
        type: Optional[NotificationType] = None,
        unread_only: bool = False,
    ) -> Query:
        query = Query(NOTIFICATIONS_COLLECTION).where("recipient_id", user_id)
        if type is not None:
            query = query.where("type", type.value)
        if unread_only:
            query = query.where("read", False)
        return query.order("created_at", desc=True)
