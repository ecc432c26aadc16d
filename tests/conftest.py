from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi import Header, Query
from fastapi.testclient import TestClient

from skillswap.chat.service import ConversationService
from skillswap.connections.service import ConnectionReconciler
from skillswap.core.dependencies import get_current_user_id, get_websocket_user_id
from skillswap.errors import StoreUnavailableError
from skillswap.main import create_app
from skillswap.notifications.service import NotificationRelay
from skillswap.store.memory import InMemoryDocumentStore


class FakeClock:
    """Starts at a fixed instant and moves one second forward per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FlakyStore(InMemoryDocumentStore):
    """In-memory store whose writes to the collections in `failing` blow up."""

    def __init__(self):
        super().__init__()
        self.failing = set()
        self.fail_reads = False

    def _check(self, operation: str, collection: str):
        if collection in self.failing:
            raise StoreUnavailableError(operation, ConnectionError(f"{collection} is down"))

    async def get_document(self, collection, doc_id):
        if self.fail_reads:
            self._check("get_document", collection)
        return await super().get_document(collection, doc_id)

    async def set_document(self, collection, doc_id, fields):
        self._check("set_document", collection)
        await super().set_document(collection, doc_id, fields)

    async def create_document(self, collection, doc_id, fields):
        self._check("create_document", collection)
        return await super().create_document(collection, doc_id, fields)

    async def update_document(self, collection, doc_id, fields):
        self._check("update_document", collection)
        await super().update_document(collection, doc_id, fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def relay(store, clock):
    return NotificationRelay(store, clock=clock)


@pytest.fixture
def conversations(store, clock):
    return ConversationService(store, clock=clock)


@pytest.fixture
def reconciler(store, relay, conversations, clock):
    return ConnectionReconciler(store, relay=relay, conversations=conversations, clock=clock)


def header_user_id(x_test_user: str = Header(...)) -> str:
    return x_test_user


def query_user_id(token: Optional[str] = Query(default=None)) -> Optional[str]:
    return token


@pytest.fixture
def client(store):
    """
    Client for an app backed by `store`. The caller is whoever the
    `X-Test-User` header names; on the WebSocket the `token` is the user id.
    """
    app = create_app(store)
    app.dependency_overrides[get_current_user_id] = header_user_id
    app.dependency_overrides[get_websocket_user_id] = query_user_id

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def as_user():
    def headers(user_id: str) -> dict:
        return {"X-Test-User": user_id}

    return headers
