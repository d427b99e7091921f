"""Supabase client factories for database and auth operations."""

from functools import lru_cache
from typing import Any

from supabase import AsyncClient, Client, acreate_client, create_client
from supabase.lib.client_options import AsyncClientOptions, SyncClientOptions
from supabase_auth import SyncMemoryStorage

from src.core.config import Settings, get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses the secret key, which bypasses RLS at the PostgREST level. Only use
    it where the caller's identity has already been verified.

    IMPORTANT: Do NOT use this client for auth operations that call
    set_session() - use create_auth_client() instead to avoid polluting
    the singleton's Authorization header.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


def create_auth_client() -> Client:
    """Create a fresh Supabase client for auth operations.

    Use this for operations that call auth.set_session(), auth.sign_in_*(),
    or any method that modifies the client's Authorization header.

    Returns:
        Client: Fresh Supabase client instance with isolated session storage.
    """
    settings = get_settings()
    options = SyncClientOptions(
        storage=SyncMemoryStorage(),
        auto_refresh_token=False,
        persist_session=False,
    )
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
        options=options,
    )


async def create_async_client(settings: Settings) -> AsyncClient:
    """Create an async Supabase client acting as an end user.

    Uses the publishable (anon) key so every row access goes through RLS
    as the signed-in identity. The client keeps its session in memory and
    refreshes tokens on its own.

    Args:
        settings: Settings providing the project URL and anon key.

    Returns:
        AsyncClient: Client bound to no session until a sign-in happens.
    """
    options = AsyncClientOptions(
        auto_refresh_token=True,
        persist_session=True,
    )
    return await acreate_client(
        settings.supabase_url,
        settings.supabase_anon_key,
        options=options,
    )


async def check_database_connection() -> dict[str, Any]:
    """Check if database connection is healthy.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        client = get_supabase_client()
        client.table(get_settings().profiles_table).select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
