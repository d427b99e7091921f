"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    Populated by the auth dependency from the validated JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="User's role (e.g., 'authenticated')")
    access_token: str | None = Field(default=None, exclude=True, description="Raw bearer token")


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens."""

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="User's role")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self, access_token: str | None = None) -> UserContext:
        """Convert token payload to UserContext.

        Args:
            access_token: The raw token, kept for calls made on the user's behalf.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            role=self.role,
            access_token=access_token,
        )


class AuthenticatedResponse(BaseModel):
    """Response for authenticated test endpoint."""

    model_config = ConfigDict(from_attributes=True)

    authenticated: bool = Field(default=True, description="Authentication status")
    user_id: str = Field(description="Authenticated user ID")
    email: str | None = Field(default=None, description="User email if available")
    role: str | None = Field(default=None, description="User role if available")


# Signup and login schemas


class SignupRequest(BaseModel):
    """Request schema for student registration."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(..., description="User's email address", min_length=3, max_length=255)
    password: str = Field(..., description="User's password", min_length=8, max_length=100)
    username: str | None = Field(default=None, description="Preferred username", max_length=50)
    first_name: str | None = Field(default=None, description="Given name", max_length=255)
    last_name: str | None = Field(default=None, description="Family name", max_length=255)

    def user_metadata(self) -> dict[str, str]:
        """Identity metadata sent at sign-up, in the keys the web client uses."""
        metadata = {
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }
        return {key: value for key, value in metadata.items() if value}


class SignupResponse(BaseModel):
    """Response schema for user signup."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(description="Newly created user ID")
    email: str = Field(description="User's email address")
    message: str = Field(description="Success message")
    email_sent: bool = Field(description="Whether verification email was sent")
    profile_created: bool = Field(default=False, description="Whether a profile row was provisioned")


class LoginRequest(BaseModel):
    """Request schema for user login."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(..., description="User's email address")
    password: str = Field(..., description="User's password")


class LoginResponse(BaseModel):
    """Response schema for user login."""

    model_config = ConfigDict(from_attributes=True)

    access_token: str = Field(description="JWT access token")
    refresh_token: str | None = Field(default=None, description="Refresh token if available")
    user_id: str = Field(description="User ID")
    email: str = Field(description="User's email address")
    expires_in: int = Field(description="Token expiration time in seconds")


# Password reset schemas


class ForgotPasswordRequest(BaseModel):
    """Request schema for password reset request."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(..., description="User's email address", min_length=3, max_length=255)


class ForgotPasswordResponse(BaseModel):
    """Response schema for password reset request."""

    model_config = ConfigDict(from_attributes=True)

    message: str = Field(description="Status message")
    email_sent: bool = Field(description="Whether password reset email was sent")


# Refresh token schemas


class RefreshTokenRequest(BaseModel):
    """Request schema for refreshing access token."""

    model_config = ConfigDict(from_attributes=True)

    refresh_token: str = Field(..., description="Refresh token")


class RefreshTokenResponse(BaseModel):
    """Response schema for refreshing access token."""

    model_config = ConfigDict(from_attributes=True)

    access_token: str = Field(description="New JWT access token")
    refresh_token: str | None = Field(default=None, description="New refresh token if rotated")
    expires_in: int = Field(description="Token expiration time in seconds")
