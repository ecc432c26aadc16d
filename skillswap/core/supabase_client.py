import logging
from typing import Optional

from supabase import AsyncClient, acreate_client

from skillswap.core import config


logger = logging.getLogger(__name__)


async def create_supabase_client(
    url: Optional[str] = None, key: Optional[str] = None
) -> AsyncClient:
    """
    Create the async Supabase client used by the document store.

    The client is created by the application on startup and closed on
    shutdown; nothing here runs at import time.
    """
    supabase_url = url or config.SUPABASE_URL
    supabase_key = key or config.SUPABASE_KEY

    if not supabase_url or not supabase_key:
        raise RuntimeError("PUBLIC_SUPABASE_URL and SECRET_API_KEY must be set.")

    client: AsyncClient = await acreate_client(supabase_url, supabase_key)
    logger.info(f"supabase_client_created url={supabase_url}")
    return client
