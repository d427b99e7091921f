"""Defaulting rules shared by profile provisioning and the client reconciler.

Both the backend provisioning path and the client-side fetch-or-create path
build new profile rows here, so a row looks the same whichever side ends up
creating it.
"""

import copy
import random
from typing import Any

from postgrest.exceptions import APIError

from src.core.config import Settings
from src.models.profile import Preferences, ProfileCreate, ProfileUpdate
from src.schemas.profile import Identity, StudentProfileUpdate

# Postgres SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"

DEFAULT_PREFERENCES: Preferences = {
    "notifications": {
        "email": True,
        "push": True,
        "assignments": True,
        "grades": True,
        "announcements": False,
    },
    "theme": "light",
    "language": "en",
}

# View-model field -> profile column, where they differ
COLUMN_NAMES = {"avatar": "avatar_url"}

# View-model field -> identity metadata key mirrored on update
METADATA_MIRROR_KEYS = {
    "first_name": "firstName",
    "last_name": "lastName",
    "avatar": "avatar",
}


def metadata_value(metadata: dict[str, Any], *keys: str) -> str:
    """Return the first non-empty metadata value among keys, or ''."""
    for key in keys:
        value = metadata.get(key)
        if value:
            return str(value)
    return ""


def email_local_part(email: str | None) -> str:
    """Return the part of an email address before '@'."""
    return (email or "").split("@", 1)[0]


def candidate_handle(identity: Identity) -> str:
    """Pick the preferred username for a new identity.

    Order: explicit username, given name, email local part. May be ''.
    """
    metadata = identity.user_metadata
    return metadata_value(metadata, "username", "firstName", "first_name") or email_local_part(identity.email)


def random_handle(prefix: str, upper: int) -> str:
    """Synthesize a username as prefix + random integer in [0, upper)."""
    return f"{prefix}{random.randrange(upper)}"


def default_avatar_url(settings: Settings, email: str | None) -> str:
    """Deterministic avatar URL keyed by email."""
    return settings.avatar_url_template.replace("{email}", email or "")


def build_profile_insert(identity: Identity, username: str | None, settings: Settings) -> ProfileCreate:
    """Build the row written when a profile is provisioned.

    Args:
        identity: The identity the row belongs to.
        username: Resolved username (may be None for the nullable column).
        settings: Settings providing the avatar template.

    Returns:
        ProfileCreate: Insert payload for the profiles table.
    """
    metadata = identity.user_metadata
    return {
        "id": str(identity.id),
        "username": username,
        "first_name": metadata_value(metadata, "firstName", "first_name"),
        "last_name": metadata_value(metadata, "lastName", "last_name"),
        "avatar_url": metadata_value(metadata, "avatar") or default_avatar_url(settings, identity.email),
        "preferences": copy.deepcopy(DEFAULT_PREFERENCES),
    }


def conflict_target(error: APIError) -> str | None:
    """Classify a PostgREST error raised by a profile insert.

    Returns:
        'username' for a username uniqueness conflict, 'primary_key' for any
        other unique violation (the row already exists), None otherwise.
    """
    if error.code != UNIQUE_VIOLATION:
        return None
    text = " ".join(str(part) for part in (error.message, error.details) if part)
    if "username" in text:
        return "username"
    return "primary_key"


def profile_update_payload(update: StudentProfileUpdate) -> ProfileUpdate:
    """Translate a partial view-model update into profile column values.

    Only fields the caller supplied are included; a supplied None is written
    as NULL. Dates become ISO dates and nested blocks are dumped in their
    stored key style.
    """
    payload: dict[str, Any] = {}
    for name, value in update.supplied_fields().items():
        if value is None:
            pass
        elif name == "date_of_birth":
            value = value.isoformat()
        elif name == "academic_info":
            value = value.model_dump(by_alias=True)
        elif name == "preferences":
            value = value.model_dump()
        payload[COLUMN_NAMES.get(name, name)] = value
    return payload  # type: ignore[return-value]


def metadata_mirror(update: StudentProfileUpdate) -> dict[str, Any]:
    """Identity metadata to mirror for an update (name and avatar only)."""
    return {
        METADATA_MIRROR_KEYS[name]: value
        for name, value in update.supplied_fields().items()
        if name in METADATA_MIRROR_KEYS and value
    }
