import asyncio

import httpx
import pytest
from postgrest.exceptions import APIError

from skillswap.errors import StoreUnavailableError
from skillswap.store.base import Query
from skillswap.store.retry import RetryPolicy
from skillswap.store.supabase_store import SupabaseDocumentStore


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeBuilder:
    """Records the postgrest call chain and answers with the client's rows."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._record("select", *args, **kwargs)

    def eq(self, *args, **kwargs):
        return self._record("eq", *args, **kwargs)

    def order(self, *args, **kwargs):
        return self._record("order", *args, **kwargs)

    def limit(self, *args, **kwargs):
        return self._record("limit", *args, **kwargs)

    def upsert(self, *args, **kwargs):
        return self._record("upsert", *args, **kwargs)

    def insert(self, *args, **kwargs):
        return self._record("insert", *args, **kwargs)

    def update(self, *args, **kwargs):
        return self._record("update", *args, **kwargs)

    async def execute(self):
        self.client.executed.append((self.table, self.calls))
        if self.client.failures:
            raise self.client.failures.pop(0)
        return FakeResponse(list(self.client.rows))


class FakeChannel:
    def __init__(self, name, failure=None):
        self.name = name
        self.failure = failure
        self.handlers = []
        self.subscribed = False

    def on_postgres_changes(self, event, callback, table=None, schema=None, filter=None):
        self.handlers.append(
            {"event": event, "callback": callback, "table": table, "schema": schema, "filter": filter}
        )
        return self

    async def subscribe(self):
        if self.failure:
            raise self.failure
        self.subscribed = True
        return self


class FakeClient:
    def __init__(self, rows=None):
        self.rows = rows or []
        self.failures = []
        self.executed = []
        self.channels = []
        self.removed = []
        self.removed_all = False
        self.channel_failure = None

    def table(self, name):
        return FakeBuilder(self, name)

    def channel(self, name):
        channel = FakeChannel(name, self.channel_failure)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel):
        self.removed.append(channel)

    async def remove_all_channels(self):
        self.removed_all = True


async def no_sleep(delay):
    return None


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def supabase_store(fake_client):
    return SupabaseDocumentStore(fake_client, retry_policy=RetryPolicy(max_attempts=3, sleep=no_sleep))


async def test_get_document(supabase_store, fake_client):
    fake_client.rows = [{"id": "a_b", "status": "pending"}]

    assert await supabase_store.get_document("connections", "a_b") == {"id": "a_b", "status": "pending"}

    table, calls = fake_client.executed[-1]
    assert table == "connections"
    assert calls == [("select", ("*",), {}), ("eq", ("id", "a_b"), {}), ("limit", (1,), {})]


async def test_get_missing_document(supabase_store, fake_client):
    assert await supabase_store.get_document("connections", "a_b") is None


async def test_set_document_upserts_with_id(supabase_store, fake_client):
    await supabase_store.set_document("friends", "a_b", {"user_id1": "a"})

    table, calls = fake_client.executed[-1]
    assert table == "friends"
    assert calls == [("upsert", ({"user_id1": "a", "id": "a_b"},), {})]


async def test_create_document_inserts(supabase_store, fake_client):
    assert await supabase_store.create_document("connections", "a_b", {"status": "pending"})

    table, calls = fake_client.executed[-1]
    assert table == "connections"
    assert calls == [("insert", ({"status": "pending", "id": "a_b"},), {})]


async def test_create_document_on_taken_id(supabase_store, fake_client):
    fake_client.failures = [
        APIError({"message": "duplicate key value", "code": "23505", "hint": None, "details": None})
    ]

    assert not await supabase_store.create_document("connections", "a_b", {"status": "pending"})
    assert len(fake_client.executed) == 1


async def test_create_document_other_api_error_surfaces(supabase_store, fake_client):
    fake_client.failures = [
        APIError({"message": "permission denied", "code": "42501", "hint": None, "details": None})
    ]

    with pytest.raises(StoreUnavailableError) as exc_info:
        await supabase_store.create_document("connections", "a_b", {"status": "pending"})

    assert exc_info.value.operation == "create connections/a_b"
    assert isinstance(exc_info.value.__cause__, APIError)


async def test_update_document(supabase_store, fake_client):
    await supabase_store.update_document("connections", "a_b", {"status": "accepted"})

    _, calls = fake_client.executed[-1]
    assert calls == [("update", ({"status": "accepted"},), {}), ("eq", ("id", "a_b"), {})]


async def test_query_documents_builds_filters(supabase_store, fake_client):
    fake_client.rows = [{"id": "n1"}, {"id": "n2"}]
    query = Query("notifications", limit=5).where("recipient_id", "u2").where("read", False)

    rows = await supabase_store.query_documents(query.order("created_at", desc=True))

    assert [r["id"] for r in rows] == ["n1", "n2"]
    _, calls = fake_client.executed[-1]
    assert calls == [
        ("select", ("*",), {}),
        ("eq", ("recipient_id", "u2"), {}),
        ("eq", ("read", False), {}),
        ("order", ("created_at",), {"desc": True}),
        ("limit", (5,), {}),
    ]


async def test_transport_failure_is_retried(supabase_store, fake_client):
    fake_client.rows = [{"id": "a_b"}]
    fake_client.failures = [httpx.ConnectError("refused")]

    assert await supabase_store.get_document("connections", "a_b") == {"id": "a_b"}
    assert len(fake_client.executed) == 2


async def test_persistent_failure_surfaces(supabase_store, fake_client):
    fake_client.failures = [httpx.ConnectError("refused")] * 3

    with pytest.raises(StoreUnavailableError) as exc_info:
        await supabase_store.set_document("connections", "a_b", {"status": "pending"})

    assert exc_info.value.operation == "set connections/a_b"
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


async def test_subscribe_requeries_on_change(supabase_store, fake_client):
    fake_client.rows = [{"id": "n1"}]
    snapshots = []

    unsubscribe = await supabase_store.subscribe(
        Query("notifications").where("recipient_id", "u2"), snapshots.append
    )

    (channel,) = fake_client.channels
    assert channel.subscribed
    (handler,) = channel.handlers
    assert handler["table"] == "notifications"
    assert handler["schema"] == "public"
    assert handler["filter"] == "recipient_id=eq.u2"
    assert snapshots == [[{"id": "n1"}]]

    fake_client.rows = [{"id": "n2"}, {"id": "n1"}]
    handler["callback"]({"eventType": "INSERT"})
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert snapshots[-1] == [{"id": "n2"}, {"id": "n1"}]

    await unsubscribe()
    assert fake_client.removed == [channel]


async def test_refresh_failure_keeps_subscription(supabase_store, fake_client):
    snapshots = []
    await supabase_store.subscribe(Query("connections"), snapshots.append)
    (handler,) = fake_client.channels[0].handlers
    assert handler["filter"] is None

    fake_client.failures = [ValueError("bad row")]
    handler["callback"]({"eventType": "UPDATE"})
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert len(snapshots) == 1

    handler["callback"]({"eventType": "UPDATE"})
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert len(snapshots) == 2


async def test_close_removes_channels(supabase_store, fake_client):
    await supabase_store.close()
    assert fake_client.removed_all


async def test_failed_first_snapshot_raises(supabase_store, fake_client):
    fake_client.failures = [ValueError("permission denied")]
    snapshots = []

    with pytest.raises(StoreUnavailableError) as exc_info:
        await supabase_store.subscribe(
            Query("notifications").where("recipient_id", "u2"), snapshots.append
        )

    assert exc_info.value.operation == "query notifications"
    assert snapshots == []
    # The half-open channel is not left behind.
    assert fake_client.removed == fake_client.channels


async def test_realtime_subscribe_failure_raises_store_unavailable(supabase_store, fake_client):
    fake_client.channel_failure = ConnectionError("realtime socket down")

    with pytest.raises(StoreUnavailableError) as exc_info:
        await supabase_store.subscribe(Query("connections"), lambda documents: None)

    assert exc_info.value.operation == "subscribe connections"
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert fake_client.executed == []


async def test_realtime_subscribe_transport_error_is_retried(supabase_store, fake_client):
    fake_client.channel_failure = httpx.ConnectError("refused")

    with pytest.raises(StoreUnavailableError):
        await supabase_store.subscribe(Query("connections"), lambda documents: None)


async def test_unsubscribe_failure_raises_store_unavailable(supabase_store, fake_client):
    unsubscribe = await supabase_store.subscribe(Query("connections"), lambda documents: None)

    async def broken_remove(channel):
        raise RuntimeError("socket closed")

    fake_client.remove_channel = broken_remove

    with pytest.raises(StoreUnavailableError) as exc_info:
        await unsubscribe()

    assert exc_info.value.operation == "unsubscribe connections"
