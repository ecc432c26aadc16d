from typing import Optional

from skillswap.store.base import DocumentStore


PROFILES_COLLECTION = "profiles"
UNKNOWN_USER = "Unknown User"


async def get_display_name(store: DocumentStore, user_id: str, default: str = UNKNOWN_USER) -> str:
    """Get a user's display name using their id, falling back to `default`."""

    profile: Optional[dict] = await store.get_document(PROFILES_COLLECTION, user_id)
    if not profile:
        return default

    return profile.get("display_name") or profile.get("username") or default
