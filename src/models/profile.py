"""Profile model type definitions for database operations."""

from typing import TypedDict


class NotificationPreferences(TypedDict, total=False):
    """Per-channel notification toggles stored in preferences."""

    email: bool
    push: bool
    assignments: bool
    grades: bool
    announcements: bool


class Preferences(TypedDict, total=False):
    """The preferences jsonb column."""

    notifications: NotificationPreferences
    theme: str
    language: str


class AcademicInfo(TypedDict, total=False):
    """The academic_info jsonb column.

    Keys are camelCase because the web client reads the blob as-is.
    """

    studentId: str
    major: str
    year: str
    gpa: float
    enrolledSubjects: list[str]


class Profile(TypedDict):
    """user_profiles table row representation.

    One row per auth identity; id is the identity id.
    """

    id: str
    username: str | None
    first_name: str
    last_name: str
    bio: str | None
    date_of_birth: str | None
    phone: str | None
    location: str | None
    avatar_url: str | None
    academic_info: AcademicInfo
    preferences: Preferences
    created_at: str
    updated_at: str


class ProfileCreate(TypedDict, total=False):
    """Data written when a profile row is provisioned.

    Only id is required; the table supplies the remaining defaults.
    """

    id: str
    username: str | None
    first_name: str
    last_name: str
    avatar_url: str
    preferences: Preferences


class ProfileUpdate(TypedDict, total=False):
    """Column values that can be updated on a profile.

    All fields are optional for partial updates.
    """

    first_name: str
    last_name: str
    bio: str
    date_of_birth: str
    phone: str
    location: str
    avatar_url: str
    academic_info: AcademicInfo
    preferences: Preferences
