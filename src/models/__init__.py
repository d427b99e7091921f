"""Database model type definitions."""

from src.models.profile import (
    AcademicInfo,
    NotificationPreferences,
    Preferences,
    Profile,
    ProfileCreate,
    ProfileUpdate,
)

__all__ = [
    "AcademicInfo",
    "NotificationPreferences",
    "Preferences",
    "Profile",
    "ProfileCreate",
    "ProfileUpdate",
]
