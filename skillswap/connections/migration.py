"""
One-off migration of documents written before schema version 2.

Older clients stored the same identity under several names at once
(`senderId` / `userId` / `userA`, `recipientId` / `receiverId` /
`connectedUserId` / `userB`) plus camelCase timestamps and display names.
Friend rows were added under random ids with `userId1` / `userId2`, and
conversations carried only a `participants` array. Version 2 keeps one
snake_case field set, stores friends under the canonical pair id and gives
conversations sorted `user_id1` / `user_id2`. Run this once per environment,
outside request handling:

    await migrate_legacy_data(store)

Every step is safe to re-run.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from skillswap.chat.models import CONVERSATIONS_COLLECTION, Conversation
from skillswap.store.base import Document, DocumentStore, Query
from skillswap.utils.clock import Clock, utc_now

from .models import (
    CONNECTIONS_COLLECTION,
    FRIENDS_COLLECTION,
    SCHEMA_VERSION,
    ConnectionRequest,
    ConnectionStatus,
    Friend,
)
from .pairing import pair_id, sorted_pair


logger = logging.getLogger(__name__)

SENDER_KEYS = ("sender_id", "senderId", "userId", "userA")
RECIPIENT_KEYS = ("recipient_id", "recipientId", "receiverId", "connectedUserId", "userB")


@dataclass
class MigrationReport:
    migrated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    # Friend records written at the pair id, from legacy rows or accepted requests.
    friends_written: List[str] = field(default_factory=list)


def _first(document: Document, keys) -> Optional[str]:
    for key in keys:
        value = document.get(key)
        if value:
            return value
    return None


def _is_current(document: Document) -> bool:
    return (document.get("schema_version") or 0) >= SCHEMA_VERSION


def migrate_legacy_connection(document: Document, clock: Clock = utc_now) -> Document:
    """Map one legacy connection document onto the v2 field set (without `id`)."""
    sender_id = _first(document, SENDER_KEYS)
    recipient_id = _first(document, RECIPIENT_KEYS)
    if not sender_id or not recipient_id:
        raise ValueError(f"connection {document.get('id')} has no sender/recipient")

    created_at = document.get("created_at") or document.get("createdAt") or clock()
    record = ConnectionRequest(
        id=document["id"],
        sender_id=sender_id,
        recipient_id=recipient_id,
        status=ConnectionStatus(document.get("status", "pending")),
        skill_name=document.get("skill_name") or document.get("skillName"),
        message=document.get("message") or None,
        created_at=created_at,
        updated_at=document.get("updated_at") or document.get("updatedAt") or created_at,
        schema_version=SCHEMA_VERSION,
    )
    return record.model_dump(mode="json", exclude={"id"})


def migrate_legacy_friend(document: Document, clock: Clock = utc_now) -> Friend:
    """Legacy friend row -> Friend keyed by the canonical pair id."""
    user_a = _first(document, ("user_id1", "userId1"))
    user_b = _first(document, ("user_id2", "userId2"))
    if not user_a or not user_b or user_a == user_b:
        raise ValueError(f"friend {document.get('id')} has no user pair")

    user_id1, user_id2 = sorted_pair(user_a, user_b)
    friend_id = pair_id(user_a, user_b)
    return Friend(
        id=friend_id,
        user_id1=user_id1,
        user_id2=user_id2,
        connection_request_id=_first(document, ("connection_request_id", "connectionRequestId"))
        or friend_id,
        created_at=document.get("created_at") or document.get("createdAt") or clock(),
        schema_version=SCHEMA_VERSION,
    )


def migrate_legacy_conversation(document: Document, clock: Clock = utc_now) -> Document:
    """Legacy conversation -> v2 field set (without `id`), sorted participants added."""
    participants = [p for p in document.get("participants") or [] if p]
    if len(set(participants)) != 2:
        raise ValueError(f"conversation {document.get('id')} is not a two-person conversation")

    user_id1, user_id2 = sorted_pair(*participants)
    created_at = document.get("created_at") or document.get("createdAt") or clock()
    conversation = Conversation(
        id=document["id"],
        participants=participants,
        user_id1=user_id1,
        user_id2=user_id2,
        participant_names=document.get("participant_names") or document.get("participantNames") or {},
        unread_counts=document.get("unread_counts") or document.get("unreadCounts") or {},
        last_message=document.get("last_message") or document.get("lastMessage"),
        last_message_at=document.get("last_message_at") or document.get("lastMessageTime"),
        is_active=document.get("is_active", document.get("isActive", True)),
        created_at=created_at,
        updated_at=document.get("updated_at") or document.get("updatedAt") or created_at,
        schema_version=SCHEMA_VERSION,
    )
    return conversation.model_dump(mode="json", exclude={"id"})


async def _write_friend(store: DocumentStore, friend: Friend) -> bool:
    return await store.create_document(
        FRIENDS_COLLECTION, friend.id, friend.model_dump(mode="json", exclude={"id"})
    )


async def migrate_friends(store: DocumentStore, clock: Clock = utc_now) -> MigrationReport:
    report = MigrationReport()

    for document in await store.query_documents(Query(FRIENDS_COLLECTION)):
        doc_id = document["id"]
        if _is_current(document):
            report.skipped.append(doc_id)
            continue

        try:
            friend = migrate_legacy_friend(document, clock)
        except ValueError as e:
            logger.error(f"friend_migration_failed id={doc_id} error={e}")
            report.failed.append(doc_id)
            continue

        if doc_id == friend.id:
            await store.set_document(
                FRIENDS_COLLECTION, doc_id, friend.model_dump(mode="json", exclude={"id"})
            )
            report.friends_written.append(friend.id)
        else:
            if await _write_friend(store, friend):
                report.friends_written.append(friend.id)
            # No delete in the store contract: retire the random-id row so a
            # re-run skips it. It has no user_id1/user_id2, so no query sees it.
            await store.update_document(
                FRIENDS_COLLECTION,
                doc_id,
                {"schema_version": SCHEMA_VERSION, "migrated_to": friend.id},
            )
        report.migrated.append(doc_id)

    return report


async def migrate_connections(store: DocumentStore, clock: Clock = utc_now) -> MigrationReport:
    """
    Rewrite legacy connection documents and make sure every accepted
    request has its Friend record at the pair id.

    Legacy friend rows are migrated first so their original `created_at`
    and request id are kept; only accepted requests still missing a friend
    get a new one.
    """
    friends = await migrate_friends(store, clock)

    report = MigrationReport(friends_written=list(friends.friends_written))
    documents = await store.query_documents(Query(CONNECTIONS_COLLECTION))

    for document in documents:
        doc_id = document["id"]
        if _is_current(document):
            report.skipped.append(doc_id)
            current = document
        else:
            try:
                migrated = migrate_legacy_connection(document, clock)
            except ValueError as e:
                logger.error(f"connection_migration_failed id={doc_id} error={e}")
                report.failed.append(doc_id)
                continue

            # Full replace drops the legacy duplicate fields.
            await store.set_document(CONNECTIONS_COLLECTION, doc_id, migrated)
            report.migrated.append(doc_id)
            current = {**migrated, "id": doc_id}

        try:
            record = ConnectionRequest.model_validate(current)
        except ValueError as e:
            logger.error(f"connection_migration_failed id={doc_id} error={e}")
            report.failed.append(doc_id)
            continue

        if record.status != ConnectionStatus.accepted:
            continue

        user_id1, user_id2 = sorted_pair(record.sender_id, record.recipient_id)
        friend = Friend(
            id=pair_id(record.sender_id, record.recipient_id),
            user_id1=user_id1,
            user_id2=user_id2,
            connection_request_id=record.id,
            created_at=record.updated_at or record.created_at,
        )
        if await _write_friend(store, friend):
            report.friends_written.append(friend.id)

    logger.info(
        f"connection_migration_done migrated={len(report.migrated)} "
        f"skipped={len(report.skipped)} failed={len(report.failed)} "
        f"friends_written={len(report.friends_written)} legacy_friends={len(friends.migrated)}"
    )
    return report


async def migrate_conversations(store: DocumentStore, clock: Clock = utc_now) -> MigrationReport:
    report = MigrationReport()

    for document in await store.query_documents(Query(CONVERSATIONS_COLLECTION)):
        doc_id = document["id"]
        if _is_current(document):
            report.skipped.append(doc_id)
            continue

        try:
            migrated = migrate_legacy_conversation(document, clock)
        except ValueError as e:
            logger.error(f"conversation_migration_failed id={doc_id} error={e}")
            report.failed.append(doc_id)
            continue

        await store.set_document(CONVERSATIONS_COLLECTION, doc_id, migrated)
        report.migrated.append(doc_id)

    logger.info(
        f"conversation_migration_done migrated={len(report.migrated)} "
        f"skipped={len(report.skipped)} failed={len(report.failed)}"
    )
    return report


async def migrate_legacy_data(
    store: DocumentStore, clock: Clock = utc_now
) -> Dict[str, MigrationReport]:
    return {
        CONNECTIONS_COLLECTION: await migrate_connections(store, clock),
        CONVERSATIONS_COLLECTION: await migrate_conversations(store, clock),
    }
