"""Schemas for Supabase database webhook payloads."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.schemas.profile import Identity


class AuthUserRecord(BaseModel):
    """An auth.users row as delivered by a database webhook."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    email: str | None = None
    raw_user_meta_data: dict[str, Any] | None = None
    created_at: datetime | None = None
    email_confirmed_at: datetime | None = None

    def to_identity(self) -> Identity:
        """Convert the raw row into an Identity."""
        return Identity(
            id=self.id,
            email=self.email,
            user_metadata=self.raw_user_meta_data or {},
            created_at=self.created_at,
            email_confirmed_at=self.email_confirmed_at,
        )


class AuthUserWebhook(BaseModel):
    """Database webhook envelope for auth.users changes."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(description="INSERT, UPDATE or DELETE")
    table: str = Field(description="Table that changed")
    table_schema: str = Field(alias="schema", description="Schema of the table")
    record: AuthUserRecord | None = Field(default=None, description="New row")
    old_record: dict[str, Any] | None = Field(default=None, description="Previous row")


class WebhookAck(BaseModel):
    """Acknowledgment returned to the webhook sender."""

    status: str = Field(default="received")
    profile_created: bool | None = Field(default=None, description="Set for handled INSERT events")
