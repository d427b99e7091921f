"""Profile business logic service."""

import logging
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError

from src.api.middleware.error_handler import NotFoundError
from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.schemas.auth import UserContext
from src.schemas.profile import Identity, StudentProfile, StudentProfileUpdate
from src.services.profile_defaults import (
    build_profile_insert,
    candidate_handle,
    conflict_target,
    metadata_mirror,
    profile_update_payload,
    random_handle,
)
from src.services.profile_view import build_student_profile

logger = logging.getLogger(__name__)


class ProfileService:
    """Service for managing user profiles."""

    def __init__(self) -> None:
        """Initialize profile service with Supabase client."""
        self.client = get_supabase_client()
        self.settings = get_settings()

    @property
    def table(self) -> str:
        return self.settings.profiles_table

    async def get_profile(self, user_id: UUID) -> dict[str, Any] | None:
        """Get a profile by identity ID.

        Args:
            user_id: The auth user ID.

        Returns:
            dict | None: The profile data or None if not found.
        """
        response = (
            self.client.table(self.table)
            .select("*")
            .eq("id", str(user_id))
            .limit(1)
            .execute()
        )

        return response.data[0] if response.data else None

    async def get_public_profile(self, username: str) -> dict[str, Any] | None:
        """Get a profile by username.

        Args:
            username: The profile's unique username.

        Returns:
            dict | None: The profile data or None if not found.
        """
        response = (
            self.client.table(self.table)
            .select("*")
            .eq("username", username)
            .limit(1)
            .execute()
        )

        return response.data[0] if response.data else None

    async def create_profile(self, identity: Identity) -> dict[str, Any] | None:
        """Create a profile row with provisioning defaults.

        A primary-key conflict means another request created the row first,
        so the existing row is fetched. A username conflict is retried once
        with a random username.

        Args:
            identity: The identity to create a profile for.

        Returns:
            dict | None: The created (or concurrently created) profile.
        """
        row = build_profile_insert(identity, candidate_handle(identity) or None, self.settings)

        try:
            response = self.client.table(self.table).insert(row).execute()
        except APIError as e:
            target = conflict_target(e)
            if target == "primary_key":
                logger.info("Profile for user %s already created, re-fetching", identity.id)
                return await self.get_profile(identity.id)
            if target != "username":
                raise

            row["username"] = random_handle(self.settings.handle_prefix, self.settings.handle_escape_range)
            response = self.client.table(self.table).insert(row).execute()

        logger.info("Created profile for user %s", identity.id)
        return response.data[0] if response.data else None

    async def get_or_create_profile(self, identity: Identity) -> dict[str, Any] | None:
        """Get existing profile or create a new one.

        Args:
            identity: The identity whose profile is wanted.

        Returns:
            dict | None: The profile data.
        """
        profile = await self.get_profile(identity.id)
        if profile:
            return profile

        return await self.create_profile(identity)

    async def get_identity(self, user: UserContext) -> Identity:
        """Load the full identity for an authenticated user.

        Falls back to the token claims when the admin lookup fails.

        Args:
            user: The authenticated user context.

        Returns:
            Identity: Identity with metadata when available.
        """
        try:
            response = self.client.auth.admin.get_user_by_id(str(user.user_id))
            if response and response.user:
                return Identity.model_validate(response.user, from_attributes=True)
        except Exception as e:
            logger.warning("Identity lookup failed for user %s: %s", user.user_id, str(e))

        return Identity(id=user.user_id, email=user.email)

    async def get_student_profile(self, user: UserContext) -> StudentProfile:
        """Build the merged profile view for the authenticated user.

        Profile read failures degrade to metadata and defaults.

        Args:
            user: The authenticated user context.

        Returns:
            StudentProfile: The merged view.
        """
        identity = await self.get_identity(user)

        try:
            profile = await self.get_or_create_profile(identity)
        except Exception as e:
            logger.warning("Profile unavailable for user %s, using defaults: %s", user.user_id, str(e))
            profile = None

        return build_student_profile(identity, profile, self.settings)

    async def mirror_identity_metadata(self, user_id: UUID, data: StudentProfileUpdate) -> None:
        """Copy name and avatar changes into identity metadata.

        Best effort: failures are logged and never raised.
        """
        mirror = metadata_mirror(data)
        if not mirror:
            return

        try:
            self.client.auth.admin.update_user_by_id(str(user_id), {"user_metadata": mirror})
        except Exception as e:
            logger.warning("Failed to update auth metadata for user %s: %s", user_id, str(e))

    async def update_profile(
        self,
        user: UserContext,
        data: StudentProfileUpdate,
    ) -> StudentProfile:
        """Apply a partial update to the authenticated user's profile.

        Args:
            user: The authenticated user context.
            data: The fields to update; unset fields are left untouched.

        Returns:
            StudentProfile: The merged view after the update.

        Raises:
            NotFoundError: If the user has no profile row.
        """
        identity = await self.get_identity(user)
        payload = profile_update_payload(data)

        if not payload:
            # No changes, return current view
            return build_student_profile(identity, await self.get_profile(user.user_id), self.settings)

        response = (
            self.client.table(self.table)
            .update(payload)
            .eq("id", str(user.user_id))
            .execute()
        )

        if not response.data:
            raise NotFoundError("Profile not found")

        await self.mirror_identity_metadata(user.user_id, data)

        return build_student_profile(identity, response.data[0], self.settings)
