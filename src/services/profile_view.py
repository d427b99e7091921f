"""Merge an identity and its profile row into the StudentProfile view."""

from datetime import date, datetime, timezone
from typing import Any

from src.core.config import Settings
from src.schemas.profile import (
    AcademicInfoSchema,
    Identity,
    NotificationSettings,
    PreferencesSchema,
    StudentProfile,
)
from src.services.profile_defaults import default_avatar_url, email_local_part

_NOTIFICATION_DEFAULTS = NotificationSettings()


def _first(*values: Any, default: Any = "") -> Any:
    """First truthy value, else default."""
    for value in values:
        if value:
            return value
    return default


def _first_present(*values: Any, default: Any) -> Any:
    """First value that is not None, else default."""
    for value in values:
        if value is not None:
            return value
    return default


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _preferences(stored: dict[str, Any], metadata: dict[str, Any]) -> PreferencesSchema:
    stored_notifications = stored.get("notifications") or {}
    metadata_notifications = metadata.get("notifications") or {}
    notifications = NotificationSettings(
        **{
            channel: _first_present(
                stored_notifications.get(channel),
                metadata_notifications.get(channel),
                default=getattr(_NOTIFICATION_DEFAULTS, channel),
            )
            for channel in NotificationSettings.model_fields
        }
    )
    return PreferencesSchema(
        notifications=notifications,
        theme=_first(stored.get("theme"), metadata.get("theme"), default="light"),
        language=_first(stored.get("language"), metadata.get("language"), default="en"),
    )


def _academic_info(stored: dict[str, Any], metadata: dict[str, Any]) -> AcademicInfoSchema:
    return AcademicInfoSchema(
        student_id=_first(stored.get("studentId"), metadata.get("studentId")),
        major=_first(stored.get("major"), metadata.get("major")),
        year=str(_first(stored.get("year"), metadata.get("year"))),
        gpa=_first(stored.get("gpa"), metadata.get("gpa"), default=0),
        enrolled_subjects=_first(stored.get("enrolledSubjects"), metadata.get("enrolledSubjects"), default=[]),
    )


def build_student_profile(
    identity: Identity,
    profile: dict[str, Any] | None,
    settings: Settings,
    now: datetime | None = None,
) -> StudentProfile:
    """Build the view model for an identity.

    Each field takes the profile column when it is non-empty, then the
    identity metadata, then a literal default. A missing profile row
    degrades to metadata and defaults.

    Args:
        identity: The authenticated identity.
        profile: The user_profiles row, or None when there is none.
        settings: Settings providing the avatar template.
        now: Timestamp recorded as last_login (defaults to current UTC time).

    Returns:
        StudentProfile: The merged view.
    """
    row = profile or {}
    metadata = identity.user_metadata

    return StudentProfile(
        id=identity.id,
        email=identity.email or "",
        username=_first(row.get("username"), metadata.get("username"), email_local_part(identity.email)),
        first_name=_first(row.get("first_name"), metadata.get("firstName"), metadata.get("first_name")),
        last_name=_first(row.get("last_name"), metadata.get("lastName"), metadata.get("last_name")),
        avatar=_first(
            row.get("avatar_url"),
            metadata.get("avatar"),
            default_avatar_url(settings, identity.email),
        ),
        bio=_first(row.get("bio"), metadata.get("bio")),
        date_of_birth=_parse_date(_first(row.get("date_of_birth"), metadata.get("dateOfBirth"), default=None)),
        phone=_first(row.get("phone"), metadata.get("phone")),
        location=_first(row.get("location"), metadata.get("location")),
        join_date=identity.created_at,
        last_login=now or datetime.now(timezone.utc),
        is_email_verified=identity.email_confirmed_at is not None,
        preferences=_preferences(row.get("preferences") or {}, metadata),
        academic_info=_academic_info(row.get("academic_info") or {}, metadata),
    )
