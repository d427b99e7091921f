"""Integration tests for authentication endpoints."""

import time
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient
from jose import jwt

TEST_JWT_SECRET = "test-jwt-secret-for-unit-tests-0123456789"
USER_ID = "550e8400-e29b-41d4-a716-446655440000"


def create_test_token(sub: str = USER_ID, email: str | None = "alice@example.com") -> str:
    """Create a test JWT token."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "aud": "authenticated",
        "exp": now + 3600,
        "iat": now,
    }
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


class TestSignup:
    """Tests for POST /api/v1/auth/signup."""

    @patch("src.services.auth_service.ProfileProvisioningService")
    @patch("src.services.auth_service.create_auth_client")
    def test_signup_creates_account_and_profile(
        self, mock_auth_client: MagicMock, mock_provisioning: MagicMock, client: TestClient
    ) -> None:
        """Test that signup returns 201 and reports the provisioned profile."""
        signup_response = MagicMock()
        signup_response.user.id = USER_ID
        signup_response.user.email = "alice@example.com"
        signup_response.session = None
        mock_auth_client.return_value.auth.sign_up.return_value = signup_response
        mock_provisioning.return_value.provision = AsyncMock(return_value={"id": USER_ID, "username": "alice"})

        response = client.post(
            "/api/v1/auth/signup",
            json={"email": "alice@example.com", "password": "s3cretpass", "first_name": "Alice"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["user_id"] == USER_ID
        assert data["email_sent"] is True
        assert data["profile_created"] is True

    @patch("src.services.auth_service.create_auth_client")
    def test_signup_duplicate_email_returns_400(self, mock_auth_client: MagicMock, client: TestClient) -> None:
        mock_auth_client.return_value.auth.sign_up.side_effect = Exception("User already registered")

        response = client.post(
            "/api/v1/auth/signup",
            json={"email": "alice@example.com", "password": "s3cretpass"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "An account with this email already exists"

    def test_signup_rejects_short_password(self, client: TestClient) -> None:
        response = client.post("/api/v1/auth/signup", json={"email": "alice@example.com", "password": "short"})

        assert response.status_code == 422


class TestLogin:
    """Tests for POST /api/v1/auth/login."""

    @patch("src.services.auth_service.create_auth_client")
    def test_login_returns_tokens(self, mock_auth_client: MagicMock, client: TestClient) -> None:
        login_response = MagicMock()
        login_response.user.id = USER_ID
        login_response.user.email = "alice@example.com"
        login_response.session.access_token = "access"
        login_response.session.refresh_token = "refresh"
        login_response.session.expires_in = 3600
        mock_auth_client.return_value.auth.sign_in_with_password.return_value = login_response

        response = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "s3cretpass"})

        assert response.status_code == 200
        assert response.json()["access_token"] == "access"

    @patch("src.services.auth_service.create_auth_client")
    def test_login_invalid_credentials_returns_401(self, mock_auth_client: MagicMock, client: TestClient) -> None:
        mock_auth_client.return_value.auth.sign_in_with_password.side_effect = Exception(
            "Invalid login credentials"
        )

        response = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"


class TestSessionEndpoints:
    """Tests for me, logout, forgot-password and refresh."""

    def test_me_returns_token_claims(self, client: TestClient) -> None:
        response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {create_test_token()}"})

        assert response.status_code == 200
        assert response.json() == {"user_id": USER_ID, "email": "alice@example.com", "role": "authenticated"}

    def test_me_requires_auth(self, client: TestClient) -> None:
        assert client.get("/api/v1/auth/me").status_code == 401

    @patch("src.services.auth_service.get_supabase_client")
    @patch("src.services.auth_service.create_auth_client")
    def test_logout_revokes_token(
        self, mock_auth_client: MagicMock, mock_admin_client: MagicMock, client: TestClient
    ) -> None:
        token = create_test_token()

        response = client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        mock_admin_client.return_value.auth.admin.sign_out.assert_called_once_with(token)

    @patch("src.services.auth_service.create_auth_client")
    def test_forgot_password_always_succeeds(self, mock_auth_client: MagicMock, client: TestClient) -> None:
        mock_auth_client.return_value.auth.reset_password_for_email.side_effect = Exception("User not found")

        response = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.com"})

        assert response.status_code == 200
        assert response.json()["email_sent"] is True

    @patch("src.services.auth_service.create_auth_client")
    def test_refresh_returns_new_tokens(self, mock_auth_client: MagicMock, client: TestClient) -> None:
        refresh_response = MagicMock()
        refresh_response.session.access_token = "new-access"
        refresh_response.session.refresh_token = "new-refresh"
        refresh_response.session.expires_in = 3600
        mock_auth_client.return_value.auth.refresh_session.return_value = refresh_response

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": "old-refresh"})

        assert response.status_code == 200
        assert response.json()["access_token"] == "new-access"
        mock_auth_client.return_value.auth.refresh_session.assert_called_once_with("old-refresh")
