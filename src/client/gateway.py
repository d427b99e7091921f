"""Async access to the profiles table as the signed-in user."""

from typing import Any
from uuid import UUID

from supabase import AsyncClient

from src.core.config import Settings
from src.models.profile import ProfileCreate, ProfileUpdate


class ProfileGateway:
    """Row operations on the profiles table filtered by identity id.

    Calls go through RLS, so each identity can only reach its own row.
    Store errors surface as postgrest ``APIError``.
    """

    def __init__(self, client: AsyncClient, settings: Settings) -> None:
        self.client = client
        self.table = settings.profiles_table

    async def fetch(self, user_id: UUID) -> dict[str, Any] | None:
        """Read the profile row, or None when it does not exist."""
        response = (
            await self.client.table(self.table)
            .select("*")
            .eq("id", str(user_id))
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def create(self, row: ProfileCreate) -> dict[str, Any] | None:
        """Insert a profile row and return it."""
        response = await self.client.table(self.table).insert(dict(row)).execute()
        return response.data[0] if response.data else None

    async def update(self, user_id: UUID, payload: ProfileUpdate) -> dict[str, Any] | None:
        """Update columns of the profile row; None when no row matched."""
        response = (
            await self.client.table(self.table)
            .update(dict(payload))
            .eq("id", str(user_id))
            .execute()
        )
        return response.data[0] if response.data else None
