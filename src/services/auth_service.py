"""Authentication business logic service."""

import logging
from typing import Any

from src.api.middleware.error_handler import ValidationError
from src.core.config import get_settings
from src.core.supabase import create_auth_client, get_supabase_client
from src.schemas.auth import SignupRequest
from src.schemas.profile import Identity
from src.services.provisioning_service import ProfileProvisioningService

logger = logging.getLogger(__name__)

RESET_EMAIL_MESSAGE = "If an account exists with this email, a password reset link has been sent."


class AuthService:
    """Service for managing user authentication."""

    def __init__(self) -> None:
        """Initialize auth service with isolated Supabase client.

        Uses create_auth_client() instead of get_supabase_client() so that
        sign-in calls never touch the singleton's Authorization header.
        """
        self.client = create_auth_client()
        self.settings = get_settings()

    async def signup(self, data: SignupRequest) -> dict[str, Any]:
        """Register a new student and provision their profile.

        Profile provisioning runs after the identity exists and can never
        fail the registration.

        Args:
            data: Signup request with credentials and optional names.

        Returns:
            dict: Signup response with user_id, email, email_sent and
            profile_created.

        Raises:
            ValidationError: If signup fails (e.g., email already exists).
        """
        try:
            signup_data: dict[str, Any] = {
                "email": data.email,
                "password": data.password,
                "options": {
                    "email_redirect_to": self.settings.auth_redirect_url,
                    "data": data.user_metadata(),
                },
            }

            response = self.client.auth.sign_up(signup_data)

            if not response.user:
                raise ValidationError("Failed to create user account")

            user = response.user
            logger.info("User signed up: %s", user.id)

        except ValidationError:
            raise
        except Exception as e:
            error_msg = str(e)
            logger.error("Signup failed: %s", error_msg)

            if "already registered" in error_msg.lower() or "already exists" in error_msg.lower():
                raise ValidationError("An account with this email already exists") from e
            if "invalid email" in error_msg.lower():
                raise ValidationError("Invalid email address") from e
            if "password" in error_msg.lower() and "weak" in error_msg.lower():
                raise ValidationError("Password is too weak. Please use a stronger password.") from e

            raise ValidationError(f"Signup failed: {error_msg}") from e

        profile_created = await self._provision_profile(user, data)

        return {
            "user_id": str(user.id),
            "email": user.email or data.email,
            "email_sent": response.session is None,  # Email sent if no session (requires verification)
            "profile_created": profile_created,
            "message": "User created successfully. Please check your email to verify your account.",
        }

    async def _provision_profile(self, user: Any, data: SignupRequest) -> bool:
        """Run profile provisioning for a fresh identity; never raises."""
        identity = Identity(
            id=user.id,
            email=user.email or data.email,
            user_metadata=data.user_metadata(),
        )
        try:
            profile = await ProfileProvisioningService().provision(identity)
        except Exception as e:
            logger.error("Profile provisioning aborted for user %s: %s", identity.id, str(e))
            return False

        return profile is not None

    async def login(
        self,
        email: str,
        password: str,
    ) -> dict[str, Any]:
        """Login user with email and password.

        Args:
            email: User's email address.
            password: User's password.

        Returns:
            dict: Login response with access_token, refresh_token, and user info.

        Raises:
            ValidationError: If login fails.
        """
        try:
            response = self.client.auth.sign_in_with_password(
                {
                    "email": email,
                    "password": password,
                }
            )

            if not response.user:
                raise ValidationError("Login failed")

            if not response.session:
                raise ValidationError("Login failed: No session created")

            user = response.user
            session = response.session

            logger.info("User logged in: %s", user.id)

            return {
                "access_token": session.access_token,
                "refresh_token": session.refresh_token,
                "user_id": str(user.id),
                "email": user.email or email,
                "expires_in": session.expires_in or 3600,
            }

        except ValidationError:
            raise
        except Exception as e:
            error_msg = str(e)
            logger.error("Login failed: %s", error_msg)

            if "invalid" in error_msg.lower() and "credentials" in error_msg.lower():
                raise ValidationError("Invalid email or password") from e
            if "email not confirmed" in error_msg.lower() or "not verified" in error_msg.lower():
                raise ValidationError("Please verify your email before logging in") from e

            raise ValidationError(f"Login failed: {error_msg}") from e

    async def logout(self, access_token: str | None) -> dict[str, Any]:
        """Revoke the sessions of the token's owner.

        The client drops its tokens regardless, so failures are only logged.

        Args:
            access_token: User's access token.

        Returns:
            dict: Logout response.
        """
        if access_token:
            try:
                get_supabase_client().auth.admin.sign_out(access_token)
                logger.info("User logged out")
            except Exception as e:
                logger.error("Logout failed: %s", str(e))

        return {"message": "Logged out successfully"}

    async def request_password_reset(self, email: str) -> dict[str, Any]:
        """Request password reset email.

        Always reports success so the response does not reveal whether the
        email is registered.

        Args:
            email: User's email address.

        Returns:
            dict: Response with email_sent status.
        """
        try:
            self.client.auth.reset_password_for_email(
                email,
                options={"redirect_to": self.settings.password_reset_redirect_url},
            )
            logger.info("Password reset email sent to: %s", email)
        except Exception as e:
            logger.error("Password reset request failed: %s", str(e))

        return {
            "email_sent": True,
            "message": RESET_EMAIL_MESSAGE,
        }

    async def refresh_token(self, refresh_token: str) -> dict[str, Any]:
        """Refresh access token using refresh token.

        Args:
            refresh_token: The refresh token.

        Returns:
            dict: New access token, refresh token, and expiration.

        Raises:
            ValidationError: If refresh fails.
        """
        try:
            response = self.client.auth.refresh_session(refresh_token)

            if not response.session:
                raise ValidationError("Failed to refresh token")

            session = response.session
            logger.info("Token refreshed for user")

            return {
                "access_token": session.access_token,
                "refresh_token": session.refresh_token,
                "expires_in": session.expires_in or 3600,
            }

        except ValidationError:
            raise
        except Exception as e:
            error_msg = str(e)
            logger.error("Token refresh failed: %s", error_msg)

            if "invalid" in error_msg.lower() or "expired" in error_msg.lower():
                raise ValidationError("Invalid or expired refresh token") from e

            raise ValidationError(f"Token refresh failed: {error_msg}") from e
