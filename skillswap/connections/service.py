"""
Connection request reconciliation.

A connection request between two users lives at one document address, the
canonical pair id, whatever side clicked "Connect" first. Its status moves
through

    (none) -> pending -> accepted
                      -> rejected -> pending (re-opened by the original sender)

and every accepted transition fans out into a Friend record, a Conversation
and a notification for the original sender.

The status write is the source of truth. Friend, Conversation and
notification writes happen afterwards as independent store calls with no
shared transaction: a failure there is logged and does not undo the status
change. Creating the request and the Friend record are insert-if-absent
writes, so of two users racing to open the same pair exactly one wins. Status
updates after that are last-write-wins on the single document, so their
precondition read can be stale by the time a write lands: best-effort, not
linearizable.
"""

import logging
from typing import Awaitable, Callable, List, Optional

from skillswap.chat.service import ConversationService
from skillswap.errors import (
    AlreadyConnectedError,
    DuplicateRequestError,
    InvalidRequestError,
    NotAuthorizedError,
    NotFoundError,
    SelfConnectionError,
)
from skillswap.notifications.models import NotificationType
from skillswap.notifications.service import (
    NotificationRelay,
    connection_request_message,
    connection_response_message,
)
from skillswap.store.base import DocumentStore, Query, Unsubscribe
from skillswap.utils.clock import Clock, utc_now
from skillswap.utils.get_username import get_display_name

from .models import (
    CONNECTIONS_COLLECTION,
    FRIENDS_COLLECTION,
    ConnectionRequest,
    ConnectionStatus,
    Friend,
)
from .pairing import pair_id, sorted_pair


logger = logging.getLogger(__name__)

RequestsCallback = Callable[[List[ConnectionRequest]], None]


def _require_identity(value: Optional[str], name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"{name} must be a non-empty string.")
    return value


class ConnectionReconciler:
    def __init__(
        self,
        store: DocumentStore,
        relay: Optional[NotificationRelay] = None,
        conversations: Optional[ConversationService] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.clock = clock
        self.relay = relay or NotificationRelay(store, clock=clock)
        self.conversations = conversations or ConversationService(store, clock=clock)

    # ---------- STATE TRANSITIONS ----------

    async def request_connection(
        self,
        sender_id: str,
        recipient_id: str,
        *,
        skill_name: Optional[str] = None,
        message: Optional[str] = None,
    ) -> str:
        """
        Create (or re-open) the connection request from `sender_id` to
        `recipient_id` and return its canonical id.

        Raises SelfConnectionError, DuplicateRequestError or
        AlreadyConnectedError before anything is written.
        """
        _require_identity(sender_id, "sender_id")
        _require_identity(recipient_id, "recipient_id")

        # Prevent sending to self
        if sender_id == recipient_id:
            raise SelfConnectionError()

        request_id = pair_id(sender_id, recipient_id)
        existing = await self.store.get_document(CONNECTIONS_COLLECTION, request_id)
        now = self.clock()

        if existing is None:
            record = ConnectionRequest(
                id=request_id,
                sender_id=sender_id,
                recipient_id=recipient_id,
                status=ConnectionStatus.pending,
                skill_name=skill_name,
                message=message,
                created_at=now,
                updated_at=now,
            )
            created = await self.store.create_document(
                CONNECTIONS_COLLECTION,
                request_id,
                record.model_dump(mode="json", exclude={"id"}),
            )
            if not created:
                # The other user's request for this pair landed after our read.
                raise DuplicateRequestError(
                    "Connection request already sent (or already pending from the other user)."
                )
            logger.info(
                f"connection_request_created id={request_id} sender={sender_id} recipient={recipient_id}"
            )
        else:
            current = ConnectionRequest.model_validate(existing)

            if current.status == ConnectionStatus.pending:
                raise DuplicateRequestError(
                    "Connection request already sent (or already pending from the other user)."
                )
            if current.status == ConnectionStatus.accepted:
                raise AlreadyConnectedError()

            # Rejected: only the original sender may re-open it.
            if current.sender_id != sender_id:
                raise DuplicateRequestError(
                    "A previous request between these users was declined; "
                    "only its original sender can send it again."
                )

            changes = {"status": ConnectionStatus.pending.value, "updated_at": now.isoformat()}
            if skill_name is not None:
                changes["skill_name"] = skill_name
            if message is not None:
                changes["message"] = message

            await self.store.update_document(CONNECTIONS_COLLECTION, request_id, changes)
            record = current.model_copy(
                update={
                    "status": ConnectionStatus.pending,
                    "updated_at": now,
                    "skill_name": skill_name if skill_name is not None else current.skill_name,
                    "message": message if message is not None else current.message,
                }
            )
            logger.info(f"connection_request_reopened id={request_id} sender={sender_id}")

        await self._best_effort("request_notification", request_id, self._notify_request(record))
        return request_id

    async def respond_to_connection(
        self, request_id: str, responder_id: str, decision
    ) -> ConnectionRequest:
        """
        Accept or reject a pending request. Only its recipient may respond.

        Repeating the decision the request already holds writes no new
        notification. A repeated acceptance re-runs the Friend and
        Conversation writes, which are idempotent, so a side effect that failed
        the first time is filled in. Any other response to a request that is
        not pending raises NotFoundError.
        """
        _require_identity(responder_id, "responder_id")

        try:
            decision = ConnectionStatus(decision)
        except ValueError:
            raise InvalidRequestError("decision must be 'accepted' or 'rejected'.")
        if decision == ConnectionStatus.pending:
            raise InvalidRequestError("decision must be 'accepted' or 'rejected'.")

        current = await self.get_connection(request_id)
        if current is None:
            raise NotFoundError("Connection request not found.")

        if current.recipient_id != responder_id:
            raise NotAuthorizedError("You can only respond to connection requests sent to you.")

        if current.status == decision:
            logger.info(f"connection_response_repeat id={request_id} status={decision.value}")
            if decision == ConnectionStatus.accepted:
                await self._ensure_accepted(current)
            return current

        if current.status != ConnectionStatus.pending:
            raise NotFoundError("No pending connection request found.")

        now = self.clock()
        await self.store.update_document(
            CONNECTIONS_COLLECTION,
            request_id,
            {"status": decision.value, "updated_at": now.isoformat()},
        )
        record = current.model_copy(update={"status": decision, "updated_at": now})
        logger.info(f"connection_request_{decision.value} id={request_id} responder={responder_id}")

        if decision == ConnectionStatus.accepted:
            await self._ensure_accepted(record)

        await self._best_effort("response_notification", request_id, self._notify_response(record))
        return record

    async def withdraw_connection(self, request_id: str, sender_id: str) -> ConnectionRequest:
        """
        Cancel a pending request (only the sender can). The record is kept
        with status `rejected`, so the same sender may send it again later.
        """
        current = await self.get_connection(request_id)
        if current is None:
            raise NotFoundError("Connection request not found.")

        if current.sender_id != sender_id:
            raise NotAuthorizedError("Only the sender can withdraw a connection request.")

        if current.status != ConnectionStatus.pending:
            raise NotFoundError("No pending connection request to withdraw.")

        now = self.clock()
        await self.store.update_document(
            CONNECTIONS_COLLECTION,
            request_id,
            {"status": ConnectionStatus.rejected.value, "updated_at": now.isoformat()},
        )
        logger.info(f"connection_request_withdrawn id={request_id} sender={sender_id}")
        return current.model_copy(update={"status": ConnectionStatus.rejected, "updated_at": now})

    # ---------- READS ----------

    async def get_connection(self, request_id: str) -> Optional[ConnectionRequest]:
        document = await self.store.get_document(CONNECTIONS_COLLECTION, request_id)
        return ConnectionRequest.model_validate(document) if document else None

    async def get_user_connection_requests(self, user_id: str) -> List[ConnectionRequest]:
        """Sent and received requests, newest first."""
        sent = await self.store.query_documents(self._sent_query(user_id))
        received = await self.store.query_documents(self._received_query(user_id))
        return self._merge(sent, received)

    async def get_pending_requests(self, user_id: str) -> List[ConnectionRequest]:
        documents = await self.store.query_documents(self._incoming_pending_query(user_id))
        return [ConnectionRequest.model_validate(d) for d in documents]

    async def get_user_friends(self, user_id: str) -> List[Friend]:
        as_first = await self.store.query_documents(
            Query(FRIENDS_COLLECTION).where("user_id1", user_id)
        )
        as_second = await self.store.query_documents(
            Query(FRIENDS_COLLECTION).where("user_id2", user_id)
        )
        return [Friend.model_validate(d) for d in as_first + as_second]

    async def are_friends(self, user_a: str, user_b: str) -> bool:
        if user_a == user_b:
            return False
        friend = await self.store.get_document(FRIENDS_COLLECTION, pair_id(user_a, user_b))
        return friend is not None

    # ---------- SUBSCRIPTIONS ----------

    async def subscribe_to_incoming_requests(
        self, recipient_id: str, callback: RequestsCallback
    ) -> Unsubscribe:
        """Push the pending requests addressed to `recipient_id`, newest first."""

        def on_snapshot(documents):
            callback([ConnectionRequest.model_validate(d) for d in documents])

        return await self.store.subscribe(self._incoming_pending_query(recipient_id), on_snapshot)

    async def subscribe_to_connections(self, user_id: str, callback: RequestsCallback) -> Unsubscribe:
        """Push every request the user sent or received, merged and newest first."""
        snapshots = {"sent": [], "received": []}

        def on_update(side: str):
            def on_snapshot(documents):
                snapshots[side] = documents
                callback(self._merge(snapshots["sent"], snapshots["received"]))

            return on_snapshot

        unsubscribe_sent = await self.store.subscribe(self._sent_query(user_id), on_update("sent"))
        unsubscribe_received = await self.store.subscribe(
            self._received_query(user_id), on_update("received")
        )

        async def unsubscribe() -> None:
            await unsubscribe_sent()
            await unsubscribe_received()

        return unsubscribe

    # ---------- SIDE EFFECTS ----------

    async def _best_effort(self, effect: str, request_id: str, operation: Awaitable[None]) -> bool:
        try:
            await operation
        except Exception:
            logger.exception(f"side_effect_failed effect={effect} request={request_id}")
            return False
        return True

    async def _ensure_accepted(self, record: ConnectionRequest) -> None:
        await self._best_effort("friend_record", record.id, self._ensure_friend(record))
        await self._best_effort("conversation", record.id, self._ensure_conversation(record))

    async def _notify_request(self, record: ConnectionRequest) -> None:
        sender_name = await get_display_name(self.store, record.sender_id)
        await self.relay.notify(
            record.recipient_id,
            record.sender_id,
            NotificationType.connection_request,
            connection_request_message(sender_name, record.skill_name),
            sender_name=sender_name,
            connection_id=record.id,
            skill_name=record.skill_name,
            status=ConnectionStatus.pending.value,
            dedupe_key=f"{record.id}:pending:{record.updated_at.isoformat()}",
        )

    async def _notify_response(self, record: ConnectionRequest) -> None:
        responder_name = await get_display_name(self.store, record.recipient_id, default="User")
        await self.relay.notify(
            record.sender_id,
            record.recipient_id,
            NotificationType.connection_update,
            connection_response_message(
                responder_name, record.status == ConnectionStatus.accepted
            ),
            sender_name=responder_name,
            connection_id=record.id,
            skill_name=record.skill_name,
            status=record.status.value,
            dedupe_key=f"{record.id}:{record.status.value}:{record.updated_at.isoformat()}",
        )

    async def _ensure_friend(self, record: ConnectionRequest) -> None:
        # The deterministic id plus a create-if-absent write keep one Friend
        # per pair however many acceptances race.
        friend_id = pair_id(record.sender_id, record.recipient_id)
        if await self.store.get_document(FRIENDS_COLLECTION, friend_id):
            return

        user_id1, user_id2 = sorted_pair(record.sender_id, record.recipient_id)
        friend = Friend(
            id=friend_id,
            user_id1=user_id1,
            user_id2=user_id2,
            connection_request_id=record.id,
            created_at=self.clock(),
        )
        created = await self.store.create_document(
            FRIENDS_COLLECTION, friend_id, friend.model_dump(mode="json", exclude={"id"})
        )
        if created:
            logger.info(f"friend_created id={friend_id} request={record.id}")

    async def _ensure_conversation(self, record: ConnectionRequest) -> None:
        names = {
            record.sender_id: await get_display_name(self.store, record.sender_id, default="User"),
            record.recipient_id: await get_display_name(
                self.store, record.recipient_id, default="User"
            ),
        }
        await self.conversations.ensure_conversation(record.sender_id, record.recipient_id, names)

    # ---------- QUERIES ----------

    @staticmethod
    def _sent_query(user_id: str) -> Query:
        return Query(CONNECTIONS_COLLECTION).where("sender_id", user_id).order("created_at", desc=True)

    @staticmethod
    def _received_query(user_id: str) -> Query:
        return (
            Query(CONNECTIONS_COLLECTION)
            .where("recipient_id", user_id)
            .order("created_at", desc=True)
        )

    @staticmethod
    def _incoming_pending_query(user_id: str) -> Query:
        return (
            Query(CONNECTIONS_COLLECTION)
            .where("recipient_id", user_id)
            .where("status", ConnectionStatus.pending.value)
            .order("created_at", desc=True)
        )

    @staticmethod
    def _merge(sent: List[dict], received: List[dict]) -> List[ConnectionRequest]:
        requests = [ConnectionRequest.model_validate(d) for d in sent + received]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests
