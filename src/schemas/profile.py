"""Profile Pydantic schemas for API request/response models."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """Auth identity as seen by profile code.

    Built from a Supabase auth user (``from_attributes``) or from an
    ``auth.users`` webhook record.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Auth user ID")
    email: str | None = Field(default=None, description="Identity email address")
    user_metadata: dict[str, Any] = Field(default_factory=dict, description="Free-form registration metadata")
    created_at: datetime | None = Field(default=None, description="Identity creation timestamp")
    email_confirmed_at: datetime | None = Field(default=None, description="Email confirmation timestamp")


class NotificationSettings(BaseModel):
    """Per-channel notification toggles."""

    model_config = ConfigDict(from_attributes=True)

    email: bool = True
    push: bool = True
    assignments: bool = True
    grades: bool = True
    announcements: bool = False


class PreferencesSchema(BaseModel):
    """User preferences block."""

    model_config = ConfigDict(from_attributes=True)

    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    theme: str = Field(default="light", description="UI theme")
    language: str = Field(default="en", description="UI language code")


class AcademicInfoSchema(BaseModel):
    """Academic information block.

    Stored with camelCase keys; use ``model_dump(by_alias=True)`` when
    writing to the table.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    student_id: str = Field(default="", alias="studentId")
    major: str = ""
    year: str = ""
    gpa: float = 0
    enrolled_subjects: list[str] = Field(default_factory=list, alias="enrolledSubjects")


class StudentProfile(BaseModel):
    """Merged Identity + Profile view presented to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Identity and profile ID")
    email: str = Field(default="", description="Identity email address")
    username: str = Field(default="", description="Unique display handle")
    first_name: str = ""
    last_name: str = ""
    avatar: str = Field(default="", description="Avatar image URL")
    bio: str = ""
    date_of_birth: date | None = None
    phone: str = ""
    location: str = ""
    join_date: datetime | None = Field(default=None, description="Identity creation timestamp")
    last_login: datetime | None = Field(default=None, description="When this view was built")
    is_email_verified: bool = False
    preferences: PreferencesSchema = Field(default_factory=PreferencesSchema)
    academic_info: AcademicInfoSchema = Field(default_factory=AcademicInfoSchema)


class StudentProfileUpdate(BaseModel):
    """Schema for updating a profile.

    All fields are optional for partial updates; fields that are not sent
    are never written. A field sent as null clears the stored value.
    """

    model_config = ConfigDict(from_attributes=True)

    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    avatar: str | None = Field(default=None, description="New avatar URL")
    bio: str | None = Field(default=None, max_length=2000)
    date_of_birth: date | None = None
    phone: str | None = Field(default=None, max_length=50)
    location: str | None = Field(default=None, max_length=255)
    academic_info: AcademicInfoSchema | None = None
    preferences: PreferencesSchema | None = None

    def supplied_fields(self) -> dict[str, Any]:
        """Return the fields the caller actually sent, as model values (None included)."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class PublicProfile(BaseModel):
    """Profile fields readable by anyone under the public read policy."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str | None = None
    first_name: str = ""
    last_name: str = ""
    avatar_url: str | None = None
    bio: str | None = None
    location: str | None = None
