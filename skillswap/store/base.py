"""
Document store contract consumed by the connection services.

A store is a networked, schemaless key-document database: documents live in
named collections, are addressed by a string id, and can be queried by field
equality. Subscriptions push the full ordered result set of a query to a
callback on subscribe and again after every change that may affect it, with
at-least-once delivery. Concurrent writes to one document are last-write-wins;
`create_document` is the only conditional write.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple


Document = Dict[str, Any]
SnapshotCallback = Callable[[List[Document]], None]
Unsubscribe = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class Query:
    collection: str
    filters: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def where(self, name: str, value: Any) -> "Query":
        return Query(
            collection=self.collection,
            filters=self.filters + ((name, value),),
            order_by=self.order_by,
            descending=self.descending,
            limit=self.limit,
        )

    def order(self, name: str, desc: bool = False) -> "Query":
        return Query(
            collection=self.collection,
            filters=self.filters,
            order_by=name,
            descending=desc,
            limit=self.limit,
        )

    def matches(self, document: Document) -> bool:
        return all(document.get(name) == value for name, value in self.filters)


class DocumentStore(ABC):
    """Every method is a network round trip and may raise StoreUnavailableError."""

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return the document with its `id` included, or None when absent."""

    @abstractmethod
    async def set_document(self, collection: str, doc_id: str, fields: Document) -> None:
        """Create or fully replace a document."""

    @abstractmethod
    async def create_document(self, collection: str, doc_id: str, fields: Document) -> bool:
        """
        Write a document only if none exists under `doc_id`.

        Returns False, without writing, when the id is taken. Unlike a
        get-then-set this is a single atomic step.
        """

    @abstractmethod
    async def update_document(self, collection: str, doc_id: str, fields: Document) -> None:
        """Merge `fields` into an existing document."""

    @abstractmethod
    async def query_documents(self, query: Query) -> List[Document]:
        pass

    @abstractmethod
    async def subscribe(self, query: Query, callback: SnapshotCallback) -> Unsubscribe:
        pass

    async def close(self) -> None:
        return None
