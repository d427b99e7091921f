"""Unit tests for the client-side AuthReconciler."""

import asyncio
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from postgrest.exceptions import APIError
from supabase_auth.errors import AuthError

from src.client.context import ClientContext
from src.client.errors import AuthOperationError, NotAuthenticatedError, ProfileUpdateError
from src.client.reconciler import AuthReconciler, open_auth_session
from src.client.state import AuthStatus
from src.schemas.profile import Identity, StudentProfileUpdate

USER_ID = "550e8400-e29b-41d4-a716-446655440000"


def auth_user(email: str = "alice@example.com", **metadata: Any) -> SimpleNamespace:
    return SimpleNamespace(
        id=USER_ID,
        email=email,
        user_metadata=metadata,
        created_at=None,
        email_confirmed_at=None,
    )


def unique_violation(column: str) -> APIError:
    return APIError(
        {
            "message": "duplicate key value violates unique constraint",
            "code": "23505",
            "details": f"Key ({column})=(x) already exists.",
            "hint": None,
        }
    )


async def wait_for(predicate: Callable[[], bool]) -> None:
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def mock_supabase() -> MagicMock:
    """Async Supabase client double with an auth namespace."""
    client = MagicMock()
    client.auth.get_session = AsyncMock(return_value=None)
    client.auth.sign_in_with_password = AsyncMock()
    client.auth.sign_up = AsyncMock()
    client.auth.sign_out = AsyncMock()
    client.auth.update_user = AsyncMock()
    client.auth.reset_password_for_email = AsyncMock()
    return client


@pytest.fixture
def profiles() -> MagicMock:
    gateway = MagicMock()
    gateway.fetch = AsyncMock(return_value=None)
    gateway.create = AsyncMock(side_effect=lambda row: dict(row))
    gateway.update = AsyncMock()
    return gateway


@pytest.fixture
def reconciler(test_settings: Any, mock_supabase: MagicMock, profiles: MagicMock) -> AuthReconciler:
    context = ClientContext(settings=test_settings, supabase=mock_supabase)
    context.profiles = profiles
    return AuthReconciler(context)


def emit(mock_supabase: MagicMock, event: str, session: Any) -> None:
    callback = mock_supabase.auth.on_auth_state_change.call_args.args[0]
    callback(event, session)


class TestStart:
    """Tests for start and the initial session."""

    @pytest.mark.asyncio
    async def test_without_session_goes_idle(self, reconciler: AuthReconciler, mock_supabase: MagicMock) -> None:
        state = await reconciler.start()

        assert state.status == AuthStatus.IDLE
        assert state.is_loading is False
        assert state.user is None
        mock_supabase.auth.on_auth_state_change.assert_called_once()

        await reconciler.stop()
        mock_supabase.auth.on_auth_state_change.return_value.unsubscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_existing_session_provisions_missing_profile(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        """alice@example.com without metadata gets username alice and the default avatar."""
        mock_supabase.auth.get_session.return_value = SimpleNamespace(user=auth_user())

        state = await reconciler.start()

        assert state.status == AuthStatus.AUTHENTICATED
        assert state.user.username == "alice"
        assert state.user.avatar == "https://api.dicebear.com/7.x/avataaars/svg?seed=alice@example.com"
        assert state.user.preferences.theme == "light"
        row = profiles.create.call_args.args[0]
        assert row["id"] == USER_ID
        assert row["username"] == "alice"

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_profile_errors_still_authenticate(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        mock_supabase.auth.get_session.return_value = SimpleNamespace(user=auth_user(firstName="Alice"))
        profiles.fetch.side_effect = APIError({"message": "timeout", "code": "57014"})

        state = await reconciler.start()

        assert state.status == AuthStatus.AUTHENTICATED
        assert state.user.first_name == "Alice"
        profiles.create.assert_not_called()

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_session_error_goes_idle(self, reconciler: AuthReconciler, mock_supabase: MagicMock) -> None:
        mock_supabase.auth.get_session.side_effect = AuthError("Invalid Refresh Token", "refresh_token_not_found")

        state = await reconciler.start()

        assert state.status == AuthStatus.IDLE

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_unexpected_session_error_stops_owner(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock
    ) -> None:
        mock_supabase.auth.get_session.side_effect = RuntimeError("network down")

        with pytest.raises(RuntimeError):
            await reconciler.start()

        assert reconciler._owner is None
        mock_supabase.auth.on_auth_state_change.return_value.unsubscribe.assert_called_once()


class TestEnsureProfile:
    """Tests for fetch-or-create."""

    @pytest.mark.asyncio
    async def test_is_idempotent(self, reconciler: AuthReconciler, profiles: MagicMock) -> None:
        stored: dict[str, Any] = {}

        async def fetch(user_id: Any) -> dict[str, Any] | None:
            return stored.get(str(user_id))

        async def create(row: dict[str, Any]) -> dict[str, Any]:
            stored[row["id"]] = dict(row)
            return dict(row)

        profiles.fetch.side_effect = fetch
        profiles.create.side_effect = create
        identity = Identity(id=USER_ID, email="alice@example.com")

        first = await reconciler.ensure_profile(identity)
        second = await reconciler.ensure_profile(identity)

        assert first == second
        assert profiles.create.call_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_creation_refetches(self, reconciler: AuthReconciler, profiles: MagicMock) -> None:
        existing = {"id": USER_ID, "username": "alice"}
        profiles.fetch.side_effect = [None, existing]
        profiles.create.side_effect = unique_violation("id")

        result = await reconciler.ensure_profile(Identity(id=USER_ID, email="alice@example.com"))

        assert result == existing

    @pytest.mark.asyncio
    async def test_username_conflict_retries_once(self, reconciler: AuthReconciler, profiles: MagicMock) -> None:
        profiles.create.side_effect = [unique_violation("username"), {"id": USER_ID, "username": "user99"}]

        with patch("src.services.profile_defaults.random.randrange", return_value=99):
            result = await reconciler.ensure_profile(Identity(id=USER_ID, email="alice@example.com"))

        assert result["username"] == "user99"
        assert profiles.create.call_args.args[0]["username"] == "user99"

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, reconciler: AuthReconciler, profiles: MagicMock) -> None:
        profiles.create.side_effect = APIError({"message": "permission denied", "code": "42501"})

        with pytest.raises(APIError):
            await reconciler.ensure_profile(Identity(id=USER_ID, email="alice@example.com"))


class TestCredentialOperations:
    """Tests for login, register, logout and reset_password."""

    @pytest.mark.asyncio
    async def test_login_success(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        await reconciler.start()
        profiles.fetch.return_value = {"id": USER_ID, "username": "alice", "first_name": "Alice"}
        mock_supabase.auth.sign_in_with_password.return_value = SimpleNamespace(user=auth_user())

        user = await reconciler.login("alice@example.com", "s3cretpass")

        assert user.first_name == "Alice"
        assert reconciler.state.status == AuthStatus.AUTHENTICATED
        mock_supabase.auth.sign_in_with_password.assert_awaited_once_with(
            {"email": "alice@example.com", "password": "s3cretpass"}
        )

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_login_loads_profile_once(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        """The SIGNED_IN raised by the sign-in call does not trigger a second load."""
        await reconciler.start()
        profiles.fetch.return_value = {"id": USER_ID, "username": "alice"}
        response = SimpleNamespace(user=auth_user())

        async def sign_in(credentials: dict[str, str]) -> SimpleNamespace:
            emit(mock_supabase, "SIGNED_IN", response)
            return response

        mock_supabase.auth.sign_in_with_password.side_effect = sign_in

        await reconciler.login("alice@example.com", "s3cretpass")
        await reconciler.stop()

        profiles.fetch.assert_awaited_once()
        assert reconciler.state.user.username == "alice"

    @pytest.mark.asyncio
    async def test_register_loads_profile_once(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        await reconciler.start()
        response = SimpleNamespace(user=auth_user())

        async def sign_up(credentials: dict[str, Any]) -> SimpleNamespace:
            emit(mock_supabase, "SIGNED_IN", response)
            return response

        mock_supabase.auth.sign_up.side_effect = sign_up

        await reconciler.register("alice@example.com", "s3cretpass")
        await reconciler.stop()

        profiles.fetch.assert_awaited_once()
        profiles.create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_signed_in_event_after_login_is_handled(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        await reconciler.start()
        profiles.fetch.return_value = {"id": USER_ID, "username": "alice"}
        mock_supabase.auth.sign_in_with_password.return_value = SimpleNamespace(user=auth_user())
        await reconciler.login("alice@example.com", "s3cretpass")

        emit(mock_supabase, "SIGNED_IN", SimpleNamespace(user=auth_user()))
        await reconciler.stop()

        assert profiles.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_login_failure(self, reconciler: AuthReconciler, mock_supabase: MagicMock) -> None:
        await reconciler.start()
        mock_supabase.auth.sign_in_with_password.side_effect = AuthError(
            "Invalid login credentials", "invalid_credentials"
        )

        with pytest.raises(AuthOperationError) as exc_info:
            await reconciler.login("alice@example.com", "wrong")

        assert exc_info.value.message == "Invalid login credentials"
        assert reconciler.state.status == AuthStatus.IDLE
        assert reconciler.state.error == "Invalid login credentials"
        assert reconciler.state.is_loading is False

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_register_sends_metadata(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        await reconciler.start()
        mock_supabase.auth.sign_up.return_value = SimpleNamespace(user=auth_user())

        user = await reconciler.register("alice@example.com", "s3cretpass", username="wonder", first_name="Alice")

        mock_supabase.auth.sign_up.assert_awaited_once_with(
            {
                "email": "alice@example.com",
                "password": "s3cretpass",
                "options": {"data": {"username": "wonder", "firstName": "Alice"}},
            }
        )
        assert user.username == "wonder"
        assert user.first_name == "Alice"
        assert profiles.create.call_args.args[0]["username"] == "wonder"

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_register_without_user_fails(self, reconciler: AuthReconciler, mock_supabase: MagicMock) -> None:
        await reconciler.start()
        mock_supabase.auth.sign_up.return_value = SimpleNamespace(user=None)

        with pytest.raises(AuthOperationError):
            await reconciler.register("alice@example.com", "s3cretpass")

        assert reconciler.state.error == "Failed to create user account"

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_logout_clears_user_even_on_error(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock
    ) -> None:
        mock_supabase.auth.get_session.return_value = SimpleNamespace(user=auth_user())
        await reconciler.start()
        mock_supabase.auth.sign_out.side_effect = AuthError("network", "unexpected_failure")

        await reconciler.logout()

        assert reconciler.state.user is None
        assert reconciler.state.status == AuthStatus.IDLE

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_reset_password(self, reconciler: AuthReconciler, mock_supabase: MagicMock) -> None:
        await reconciler.reset_password("alice@example.com")

        mock_supabase.auth.reset_password_for_email.assert_awaited_once_with(
            "alice@example.com", {"redirect_to": "http://localhost:5173/reset-password"}
        )

    @pytest.mark.asyncio
    async def test_reset_password_failure(self, reconciler: AuthReconciler, mock_supabase: MagicMock) -> None:
        mock_supabase.auth.reset_password_for_email.side_effect = AuthError("rate limited", "over_email_send_rate_limit")

        with pytest.raises(AuthOperationError) as exc_info:
            await reconciler.reset_password("alice@example.com")

        assert exc_info.value.message == "rate limited"


class TestAuthEvents:
    """Tests for externally triggered auth events."""

    @pytest.mark.asyncio
    async def test_signed_in_and_out_events(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        await reconciler.start()
        profiles.fetch.return_value = {"id": USER_ID, "username": "alice"}

        emit(mock_supabase, "SIGNED_IN", SimpleNamespace(user=auth_user()))
        await wait_for(lambda: reconciler.state.is_authenticated)
        assert reconciler.state.user.username == "alice"

        emit(mock_supabase, "SIGNED_OUT", None)
        await wait_for(lambda: not reconciler.state.is_authenticated)
        assert reconciler.state.status == AuthStatus.IDLE

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_other_events_are_ignored(self, reconciler: AuthReconciler, mock_supabase: MagicMock) -> None:
        await reconciler.start()
        before = reconciler.state

        emit(mock_supabase, "TOKEN_REFRESHED", SimpleNamespace(user=auth_user()))
        await reconciler.stop()

        assert reconciler.state is before

    @pytest.mark.asyncio
    async def test_listeners_see_every_change(self, reconciler: AuthReconciler) -> None:
        seen = []
        remove = reconciler.add_listener(lambda state: seen.append(state.status))

        await reconciler.start()
        remove()
        await reconciler.stop()

        assert seen == [AuthStatus.IDLE]


class TestUpdateProfile:
    """Tests for update_profile."""

    @pytest.fixture
    def signed_in_reconciler(
        self, reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> AuthReconciler:
        mock_supabase.auth.get_session.return_value = SimpleNamespace(user=auth_user())
        profiles.fetch.return_value = {"id": USER_ID, "username": "alice", "first_name": "Alice", "bio": "Old"}
        return reconciler

    @pytest.mark.asyncio
    async def test_requires_authentication(self, reconciler: AuthReconciler) -> None:
        await reconciler.start()

        with pytest.raises(NotAuthenticatedError):
            await reconciler.update_profile(StudentProfileUpdate(bio="Hi"))

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_merges_only_supplied_fields(
        self, signed_in_reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        reconciler = signed_in_reconciler
        await reconciler.start()
        profiles.update.return_value = {"id": USER_ID, "bio": "Physics nerd"}

        user = await reconciler.update_profile(StudentProfileUpdate(bio="Physics nerd"))

        profiles.update.assert_awaited_once()
        assert profiles.update.call_args.args[1] == {"bio": "Physics nerd"}
        assert user.bio == "Physics nerd"
        assert user.first_name == "Alice"
        assert user.username == "alice"
        assert reconciler.state.is_loading is False
        mock_supabase.auth.update_user.assert_not_called()

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_mirrors_name_into_metadata(
        self, signed_in_reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        reconciler = signed_in_reconciler
        await reconciler.start()
        profiles.update.return_value = {"id": USER_ID, "first_name": "Alicia"}
        mock_supabase.auth.update_user.side_effect = AuthError("metadata too large", "unexpected_failure")

        user = await reconciler.update_profile(StudentProfileUpdate(first_name="Alicia"))

        mock_supabase.auth.update_user.assert_awaited_once_with({"data": {"firstName": "Alicia"}})
        assert user.first_name == "Alicia"

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_store_failure(
        self, signed_in_reconciler: AuthReconciler, profiles: MagicMock
    ) -> None:
        reconciler = signed_in_reconciler
        await reconciler.start()
        profiles.update.side_effect = APIError({"message": "permission denied", "code": "42501"})

        with pytest.raises(ProfileUpdateError) as exc_info:
            await reconciler.update_profile(StudentProfileUpdate(bio="Hi"))

        assert exc_info.value.message == "permission denied"
        assert reconciler.state.status == AuthStatus.UPDATE_FAILED
        assert reconciler.state.error == "permission denied"
        assert reconciler.state.user.bio == "Old"
        assert reconciler.state.is_loading is False

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_missing_row(self, signed_in_reconciler: AuthReconciler, profiles: MagicMock) -> None:
        reconciler = signed_in_reconciler
        await reconciler.start()
        profiles.update.return_value = None

        with pytest.raises(ProfileUpdateError):
            await reconciler.update_profile(StudentProfileUpdate(bio="Hi"))

        assert reconciler.state.status == AuthStatus.UPDATE_FAILED

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_sign_out_during_update_wins(
        self, signed_in_reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        reconciler = signed_in_reconciler
        await reconciler.start()
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_update(user_id: Any, payload: dict[str, Any]) -> dict[str, Any]:
            started.set()
            await release.wait()
            return {"id": USER_ID, **payload}

        profiles.update.side_effect = slow_update

        task = asyncio.create_task(reconciler.update_profile(StudentProfileUpdate(bio="late")))
        await started.wait()

        emit(mock_supabase, "SIGNED_OUT", None)
        await wait_for(lambda: reconciler.state.user is None)

        release.set()
        result = await task

        assert result is None
        assert reconciler.state.user is None
        assert reconciler.state.status == AuthStatus.IDLE

        await reconciler.stop()

    @pytest.mark.asyncio
    async def test_sign_out_after_update_wins(
        self, signed_in_reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        reconciler = signed_in_reconciler
        await reconciler.start()
        profiles.update.return_value = {"id": USER_ID, "bio": "early"}

        user = await reconciler.update_profile(StudentProfileUpdate(bio="early"))
        assert user.bio == "early"

        emit(mock_supabase, "SIGNED_OUT", None)
        await reconciler.stop()

        assert reconciler.state.user is None
        assert reconciler.state.status == AuthStatus.IDLE
        assert reconciler.state.is_loading is False

    @pytest.mark.asyncio
    async def test_null_clears_field(
        self, signed_in_reconciler: AuthReconciler, mock_supabase: MagicMock, profiles: MagicMock
    ) -> None:
        reconciler = signed_in_reconciler
        await reconciler.start()
        profiles.update.return_value = {"id": USER_ID, "bio": None}

        user = await reconciler.update_profile(StudentProfileUpdate.model_validate({"bio": None}))

        assert profiles.update.call_args.args[1] == {"bio": None}
        assert user.bio == ""
        assert user.first_name == "Alice"
        mock_supabase.auth.update_user.assert_not_called()

        await reconciler.stop()


class TestOpenAuthSession:
    """Tests for the scoped session helper."""

    @pytest.mark.asyncio
    async def test_starts_and_stops(self, test_settings: Any, mock_supabase: MagicMock) -> None:
        context = ClientContext(settings=test_settings, supabase=mock_supabase)

        with patch("src.client.reconciler.create_client_context", AsyncMock(return_value=context)):
            async with open_auth_session(test_settings) as reconciler:
                assert reconciler.state.status == AuthStatus.IDLE

        mock_supabase.auth.on_auth_state_change.return_value.unsubscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_failed_start_is_cleaned_up(self, test_settings: Any, mock_supabase: MagicMock) -> None:
        context = ClientContext(settings=test_settings, supabase=mock_supabase)
        mock_supabase.auth.get_session.side_effect = RuntimeError("network down")

        with patch("src.client.reconciler.create_client_context", AsyncMock(return_value=context)):
            with pytest.raises(RuntimeError):
                async with open_auth_session(test_settings):
                    pass

        mock_supabase.auth.on_auth_state_change.return_value.unsubscribe.assert_called_once()
        pending = [task for task in asyncio.all_tasks() if task.get_name() == "auth-reconciler"]
        assert pending == []
