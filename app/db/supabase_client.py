"""Supabase client for the matching tables.

The client is synchronous; async callers go through SupabaseMatchingStore,
which runs each table function in a worker thread.
"""

from functools import lru_cache

from supabase import Client, create_client

from app.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Process-wide Supabase client using the service role key.

    Raises:
        RuntimeError: If the client cannot be created
    """
    settings = get_settings()
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
