import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .chat import routers as chat_router
from .chat.service import ConversationService
from .connections import routers as connections_router
from .connections.migration import migrate_legacy_data
from .connections.service import ConnectionReconciler
from .core import config
from .core.middleware import logging_middleware
from .core.supabase_client import create_supabase_client
from .errors import SkillSwapError
from .notifications import routers as notifications_router
from .notifications.service import NotificationRelay
from .store.base import DocumentStore
from .store.memory import InMemoryDocumentStore
from .store.retry import RetryPolicy, exponential_backoff
from .store.supabase_store import SupabaseDocumentStore
from .utils.logging_config import setup_logging


logger = logging.getLogger(__name__)


async def build_store() -> DocumentStore:
    if config.STORE_BACKEND == "memory":
        logger.warning("store_backend=memory data is lost on restart")
        return InMemoryDocumentStore()

    if config.STORE_BACKEND != "supabase":
        raise RuntimeError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND}")

    client = await create_supabase_client()
    retry_policy = RetryPolicy(
        max_attempts=config.STORE_MAX_ATTEMPTS,
        backoff=exponential_backoff(config.STORE_BACKOFF_BASE, config.STORE_BACKOFF_MAX),
    )
    return SupabaseDocumentStore(client, retry_policy=retry_policy)


def create_app(store: Optional[DocumentStore] = None) -> FastAPI:
    """
    Build the application. Pass `store` to run against an existing document
    store (tests do this with an in-memory one); otherwise one is created
    from config on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()

        owned = store is None
        app_store = await build_store() if owned else store

        relay = NotificationRelay(app_store)
        conversations = ConversationService(app_store)
        app.state.store = app_store
        app.state.relay = relay
        app.state.conversations = conversations
        app.state.reconciler = ConnectionReconciler(
            app_store, relay=relay, conversations=conversations
        )

        if config.MIGRATE_ON_STARTUP:
            await migrate_legacy_data(app_store)

        logger.info(f"app_started store={type(app_store).__name__}")
        try:
            yield
        finally:
            if owned:
                await app_store.close()
            logger.info("app_stopped")

    app = FastAPI(title="SkillSwap Connections", lifespan=lifespan)
    app.include_router(
        connections_router.router, prefix="/connections", tags=["Connections"]
    )
    app.include_router(
        notifications_router.router, prefix="/notifications", tags=["Notifications"]
    )
    app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(logging_middleware)

    @app.exception_handler(SkillSwapError)
    async def skillswap_error_handler(request: Request, exc: SkillSwapError):
        if exc.status_code >= 500:
            logger.error(f"request_failed path={request.url.path} error={exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
