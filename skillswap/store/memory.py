import copy
import logging
from typing import Dict, List, Optional

from .base import Document, DocumentStore, Query, SnapshotCallback, Unsubscribe


logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local document store with the same contract as the hosted one.

    Used for local development (STORE_BACKEND=memory) and tests. Subscribers
    get a snapshot on subscribe and after every write to their collection that
    touches a matching document.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._subscriptions: Dict[int, tuple] = {}
        self._next_subscription_id = 0

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        document = self._collections.get(collection, {}).get(doc_id)
        if document is None:
            return None
        return copy.deepcopy(document)

    async def set_document(self, collection: str, doc_id: str, fields: Document) -> None:
        before = self._collections.get(collection, {}).get(doc_id)
        document = copy.deepcopy(fields)
        document["id"] = doc_id
        self._collections.setdefault(collection, {})[doc_id] = document
        self._notify(collection, before, document)

    async def create_document(self, collection: str, doc_id: str, fields: Document) -> bool:
        if doc_id in self._collections.get(collection, {}):
            return False
        await self.set_document(collection, doc_id, fields)
        return True

    async def update_document(self, collection: str, doc_id: str, fields: Document) -> None:
        documents = self._collections.get(collection, {})
        if doc_id not in documents:
            # Same behaviour as an UPDATE matching no row: nothing is written.
            logger.warning(f"memory_store_update_missing collection={collection} id={doc_id}")
            return

        before = copy.deepcopy(documents[doc_id])
        documents[doc_id].update(copy.deepcopy(fields))
        self._notify(collection, before, documents[doc_id])

    async def query_documents(self, query: Query) -> List[Document]:
        return self._run(query)

    async def subscribe(self, query: Query, callback: SnapshotCallback) -> Unsubscribe:
        subscription_id = self._next_subscription_id
        self._next_subscription_id += 1
        self._subscriptions[subscription_id] = (query, callback)

        callback(self._run(query))

        async def unsubscribe() -> None:
            self._subscriptions.pop(subscription_id, None)

        return unsubscribe

    def _run(self, query: Query) -> List[Document]:
        documents = [
            copy.deepcopy(document)
            for document in self._collections.get(query.collection, {}).values()
            if query.matches(document)
        ]

        if query.order_by:
            # Missing values sort first, like NULLS FIRST on an ascending order.
            documents.sort(
                key=lambda d: (d.get(query.order_by) is not None, d.get(query.order_by) or ""),
                reverse=query.descending,
            )

        if query.limit is not None:
            documents = documents[: query.limit]

        return documents

    def _notify(self, collection: str, before: Optional[Document], after: Document) -> None:
        for query, callback in list(self._subscriptions.values()):
            if query.collection != collection:
                continue
            if query.matches(after) or (before is not None and query.matches(before)):
                # A broken subscriber must not fail the write or starve the others.
                try:
                    callback(self._run(query))
                except Exception:
                    logger.exception(f"subscriber_callback_failed collection={collection}")
