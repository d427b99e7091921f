"""Profile provisioning for newly created identities."""

import logging
from typing import Any

from postgrest.exceptions import APIError

from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.schemas.profile import Identity
from src.services.profile_defaults import (
    build_profile_insert,
    candidate_handle,
    conflict_target,
    random_handle,
)

logger = logging.getLogger(__name__)


class ProfileProvisioningService:
    """Creates the single profile row that belongs to a new identity.

    Mirrors the store's handle_new_user() trigger. Provisioning must never
    make identity creation fail: insert errors are logged and swallowed,
    except for a second username conflict after the fallback retry.
    """

    def __init__(self) -> None:
        """Initialize provisioning service with Supabase client."""
        self.client = get_supabase_client()
        self.settings = get_settings()

    def _handle_taken(self, username: str) -> bool:
        response = (
            self.client.table(self.settings.profiles_table)
            .select("id")
            .eq("username", username)
            .limit(1)
            .execute()
        )
        return bool(response.data)

    def resolve_username(self, base: str) -> str:
        """Resolve a unique username starting from a candidate.

        Appends 1, 2, ... to the candidate while it is taken. Past the
        suffix limit a random fallback is used without further checks.

        Args:
            base: The preferred candidate (synthesized when empty).

        Returns:
            str: A username that was free when checked.
        """
        settings = self.settings
        if not base:
            base = random_handle(settings.handle_prefix, settings.handle_random_range)

        username = base
        counter = 0
        while self._handle_taken(username):
            counter += 1
            if counter > settings.handle_suffix_limit:
                username = random_handle(settings.handle_prefix, settings.handle_escape_range)
                break
            username = f"{base}{counter}"

        return username

    def _fetch(self, identity: Identity) -> dict[str, Any] | None:
        response = (
            self.client.table(self.settings.profiles_table)
            .select("*")
            .eq("id", str(identity.id))
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def _insert(self, row: dict[str, Any]) -> dict[str, Any] | None:
        response = self.client.table(self.settings.profiles_table).insert(row).execute()
        return response.data[0] if response.data else None

    async def provision(self, identity: Identity) -> dict[str, Any] | None:
        """Create the profile row for a newly created identity.

        An identity whose row already exists (the store trigger usually
        creates it first) is returned as-is.

        Args:
            identity: The identity that was just inserted.

        Returns:
            dict | None: The identity's profile row, or None when creation
            was skipped after a swallowed error.

        Raises:
            APIError: If a look-up fails, or the fallback insert after a
                username conflict fails.
        """
        existing = self._fetch(identity)
        if existing:
            logger.debug("Profile for user %s already provisioned", identity.id)
            return existing

        username = self.resolve_username(candidate_handle(identity))
        row = build_profile_insert(identity, username, self.settings)

        try:
            profile = self._insert(row)
        except APIError as e:
            target = conflict_target(e)
            if target == "primary_key":
                logger.info("Profile for user %s was created concurrently, re-fetching", identity.id)
                return self._fetch(identity)
            if target != "username":
                logger.warning("Failed to create user profile for user %s: %s", identity.id, e.message)
                return None

            # Lost a race for the same username; one retry with a random one
            row["username"] = random_handle(self.settings.handle_prefix, self.settings.handle_escape_range)
            logger.info(
                "Username %s taken concurrently for user %s, retrying as %s",
                username,
                identity.id,
                row["username"],
            )
            profile = self._insert(row)
        except Exception as e:
            logger.warning("Failed to create user profile for user %s: %s", identity.id, str(e))
            return None

        logger.info("Provisioned profile for user %s (username=%s)", identity.id, row["username"])
        return profile
