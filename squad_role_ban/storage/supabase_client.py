# squad_role_ban/storage/supabase_client.py
from typing import Dict, List, Optional

from loguru import logger
from supabase import create_async_client, AsyncClient
from postgrest import APIResponse
from postgrest.exceptions import APIError

from squad_role_ban.config.settings import settings

# Module-level storage for the async client instance
_async_supabase_client: Optional[AsyncClient] = None


async def initialize_supabase() -> Optional[AsyncClient]:
    """Initializes the global ASYNC Supabase client and returns it."""
    global _async_supabase_client
    if _async_supabase_client:
        logger.debug("Async Supabase client already initialized.")
        return _async_supabase_client

    if not settings.supabase_url or not settings.supabase_key:
        logger.critical("Supabase URL or Key not configured in settings.")
        raise SystemExit("Supabase configuration missing.")

    logger.debug(
        f"Attempting to initialize Async Supabase client with URL: {settings.supabase_url}"
    )

    try:
        client: AsyncClient = await create_async_client(
            settings.supabase_url, settings.supabase_key
        )
        _async_supabase_client = client
        logger.success("Async Supabase client initialized successfully.")
        return client
    except Exception as e:
        logger.exception(f"Failed to initialize Async Supabase client: {e}")
        return None


class SupabaseTagStore:
    """Squad tags persisted as rows of (squad_key, tags)."""

    def __init__(self, client: AsyncClient, table_name: str = "squad_tags"):
        self.client = client
        self.table_name = table_name

    async def load_all(self) -> Optional[Dict[str, List[str]]]:
        """Returns squad key to tag tokens, or None if the fetch failed."""
        try:
            response: APIResponse = (
                await self.client.table(self.table_name)
                .select("squad_key, tags")
                .execute()
            )
            state = {row["squad_key"]: list(row.get("tags") or []) for row in response.data}
            logger.info(f"Loaded tags for {len(state)} squads from {self.table_name}.")
            return state
        except APIError as e:
            logger.error(f"Supabase API error loading squad tags: {e.message}")
            logger.debug(f"Full APIError details: {e}")
            return None
        except Exception as e:
            logger.error(f"An unexpected error occurred loading squad tags: {e}")
            logger.exception("Traceback:")
            return None

    async def save(self, squad_key: str, tokens: List[str]) -> bool:
        """Upserts the tag tokens of one squad."""
        try:
            await (
                self.client.table(self.table_name)
                .upsert({"squad_key": squad_key, "tags": tokens})
                .execute()
            )
            logger.success(f"Saved tags {tokens} for squad {squad_key}.")
            return True
        except APIError as e:
            logger.error(f"Error during upsert to {self.table_name}: {e.message}")
            logger.debug(f"Full APIError details: {e}")
            return False
        except Exception as e:
            logger.error(
                f"An unexpected error occurred during upsert to {self.table_name}: {e}"
            )
            logger.exception("Traceback:")
            return False

    async def clear(self) -> bool:
        """Deletes every persisted squad."""
        try:
            # PostgREST refuses unfiltered deletes
            await self.client.table(self.table_name).delete().neq("squad_key", "").execute()
            logger.success(f"Cleared all squad tags from {self.table_name}.")
            return True
        except APIError as e:
            logger.error(f"Error clearing {self.table_name}: {e.message}")
            logger.debug(f"Full APIError details: {e}")
            return False
        except Exception as e:
            logger.error(f"An unexpected error occurred clearing {self.table_name}: {e}")
            logger.exception("Traceback:")
            return False
