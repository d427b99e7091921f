"""Explicit context shared by client-side auth operations."""

import logging
from dataclasses import dataclass, field

from supabase import AsyncClient

from src.client.gateway import ProfileGateway
from src.core.config import Settings, get_settings
from src.core.supabase import create_async_client

logger = logging.getLogger(__name__)


@dataclass
class ClientContext:
    """Settings plus the end-user Supabase client for one client session.

    Created once when the session starts and passed to everything that
    talks to the hosted backend.
    """

    settings: Settings
    supabase: AsyncClient
    profiles: ProfileGateway = field(init=False)

    def __post_init__(self) -> None:
        self.profiles = ProfileGateway(self.supabase, self.settings)


async def create_client_context(settings: Settings | None = None) -> ClientContext:
    """Build a context with a fresh async Supabase client.

    Args:
        settings: Settings to use; defaults to the environment settings.

    Returns:
        ClientContext: Context bound to a new client.

    Raises:
        ValueError: If no publishable (anon) key is configured.
    """
    settings = settings or get_settings()
    if not settings.supabase_anon_key:
        raise ValueError("SUPABASE_ANON_KEY is required for client sessions")

    client = await create_async_client(settings)
    logger.debug("Created client context for %s", settings.supabase_url)
    return ClientContext(settings=settings, supabase=client)
