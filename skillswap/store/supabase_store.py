import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Set

from postgrest.exceptions import APIError
from supabase import AsyncClient

from skillswap.errors import StoreUnavailableError

from .base import Document, DocumentStore, Query, SnapshotCallback, Unsubscribe
from .retry import RetryPolicy


logger = logging.getLogger(__name__)

# Postgres unique_violation, returned by PostgREST when an insert hits an existing key.
UNIQUE_VIOLATION = "23505"


class SupabaseDocumentStore(DocumentStore):
    """
    Document store backed by Supabase tables.

    Each collection is a table in the `public` schema with a text `id` primary
    key. Subscriptions use Realtime postgres-changes channels: any change
    event on the table re-runs the query and hands the fresh result set to
    the callback.
    """

    def __init__(
        self,
        client: AsyncClient,
        retry_policy: Optional[RetryPolicy] = None,
        schema: str = "public",
    ):
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.schema = schema
        self._refresh_tasks: Set[asyncio.Task] = set()

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        async def call():
            return await (
                self.client.table(collection)
                .select("*")
                .eq("id", doc_id)
                .limit(1)
                .execute()
            )

        response = await self.retry_policy.run(call, f"get {collection}/{doc_id}")
        if not response.data:
            return None
        return dict(response.data[0])

    async def set_document(self, collection: str, doc_id: str, fields: Document) -> None:
        row = {**fields, "id": doc_id}

        async def call():
            return await self.client.table(collection).upsert(row).execute()

        await self.retry_policy.run(call, f"set {collection}/{doc_id}")

    async def create_document(self, collection: str, doc_id: str, fields: Document) -> bool:
        row = {**fields, "id": doc_id}

        async def call():
            try:
                await self.client.table(collection).insert(row).execute()
            except APIError as e:
                if e.code == UNIQUE_VIOLATION:
                    return False
                raise
            return True

        return await self.retry_policy.run(call, f"create {collection}/{doc_id}")

    async def update_document(self, collection: str, doc_id: str, fields: Document) -> None:
        async def call():
            return await (
                self.client.table(collection).update(fields).eq("id", doc_id).execute()
            )

        await self.retry_policy.run(call, f"update {collection}/{doc_id}")

    async def query_documents(self, query: Query) -> List[Document]:
        async def call():
            builder = self.client.table(query.collection).select("*")
            for name, value in query.filters:
                builder = builder.eq(name, value)
            if query.order_by:
                builder = builder.order(query.order_by, desc=query.descending)
            if query.limit is not None:
                builder = builder.limit(query.limit)
            return await builder.execute()

        response = await self.retry_policy.run(call, f"query {query.collection}")
        return [dict(row) for row in response.data or []]

    async def subscribe(self, query: Query, callback: SnapshotCallback) -> Unsubscribe:
        channel = self.client.channel(f"{query.collection}-{uuid.uuid4().hex[:12]}")

        async def refresh():
            try:
                callback(await self.query_documents(query))
            except Exception:
                # The channel stays open; the next change event triggers a new refresh.
                logger.exception(f"subscription_refresh_failed collection={query.collection}")

        def on_change(payload: Dict[str, Any]):
            task = asyncio.get_running_loop().create_task(refresh())
            self._refresh_tasks.add(task)
            task.add_done_callback(self._refresh_tasks.discard)

        # Realtime accepts a single `column=eq.value` filter; the remaining
        # filters are applied by the re-query.
        realtime_filter = None
        if query.filters:
            name, value = query.filters[0]
            realtime_filter = f"{name}=eq.{value}"

        channel.on_postgres_changes(
            "*",
            callback=on_change,
            table=query.collection,
            schema=self.schema,
            filter=realtime_filter,
        )
        await self.retry_policy.run(channel.subscribe, f"subscribe {query.collection}")
        logger.info(
            f"subscription_opened collection={query.collection} filter={realtime_filter}"
        )

        async def unsubscribe() -> None:
            async def call():
                return await self.client.remove_channel(channel)

            await self.retry_policy.run(call, f"unsubscribe {query.collection}")
            logger.info(f"subscription_closed collection={query.collection}")

        # The first snapshot is part of the call: its failure reaches the caller.
        try:
            callback(await self.query_documents(query))
        except Exception:
            try:
                await unsubscribe()
            except StoreUnavailableError:
                logger.warning(f"subscription_cleanup_failed collection={query.collection}")
            raise

        return unsubscribe

    async def close(self) -> None:
        for task in list(self._refresh_tasks):
            task.cancel()
        await self.client.remove_all_channels()
