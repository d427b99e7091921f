"""Client-side reconciliation of auth events and profile data.

AuthReconciler keeps one view of "who is signed in and what is their
profile". Supabase auth notifications and the explicit operations below all
reach the state through a single asyncio queue drained by one owner task,
so state changes are applied in arrival order by a single writer.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from postgrest.exceptions import APIError
from supabase_auth.errors import AuthError

from src.client.context import ClientContext, create_client_context
from src.client.errors import AuthOperationError, NotAuthenticatedError, ProfileUpdateError
from src.client.state import (
    AuthAction,
    AuthState,
    LoadingChanged,
    LoggedOut,
    LoginFailed,
    LoginStarted,
    LoginSucceeded,
    NoSession,
    ProfileUpdated,
    ProfileUpdateFailed,
    reduce,
)
from src.core.config import Settings
from src.schemas.profile import Identity, StudentProfile, StudentProfileUpdate
from src.services.profile_defaults import (
    build_profile_insert,
    candidate_handle,
    conflict_target,
    metadata_mirror,
    profile_update_payload,
    random_handle,
)
from src.services.profile_view import build_student_profile

logger = logging.getLogger(__name__)

StateListener = Callable[[AuthState], None]


@dataclass(frozen=True)
class _AuthEvent:
    event: str
    session: Any


@dataclass(frozen=True)
class _Dispatch:
    action: AuthAction
    done: asyncio.Future


_STOP = object()


class AuthReconciler:
    """Single source of truth for the signed-in student on the client."""

    def __init__(self, context: ClientContext) -> None:
        self.context = context
        self.settings = context.settings
        self.auth = context.supabase.auth
        self._state = AuthState()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._owner: asyncio.Task | None = None
        self._subscription: Any = None
        self._listeners: list[StateListener] = []
        # Credential calls in flight; their own SIGNED_IN is handled by the caller
        self._signing_in = 0

    @property
    def state(self) -> AuthState:
        """Current state snapshot."""
        return self._state

    @property
    def profiles(self):
        return self.context.profiles

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with every new state; returns a function that removes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # Lifecycle

    async def start(self) -> AuthState:
        """Subscribe to auth events and resolve the initial session.

        If the initial session cannot be resolved the reconciler is stopped
        again before the error is raised.

        Returns:
            AuthState: State once the initial session has been resolved.
        """
        if self._owner is not None:
            return self._state

        self._owner = asyncio.create_task(self._drain(), name="auth-reconciler")
        self._subscription = self.auth.on_auth_state_change(self._on_auth_state_change)
        try:
            await self._load_initial_session()
        except Exception:
            await self.stop()
            raise
        return self._state

    async def stop(self) -> None:
        """Unsubscribe and let the owner task finish queued work."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

        if self._owner is not None:
            self._queue.put_nowait(_STOP)
            await self._owner
            self._owner = None

    def _on_auth_state_change(self, event: str, session: Any) -> None:
        if event == "SIGNED_IN" and self._signing_in:
            logger.debug("Skipping SIGNED_IN raised by an explicit sign-in")
            return
        self._queue.put_nowait(_AuthEvent(event=event, session=session))

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return

            if isinstance(item, _Dispatch):
                self._apply(item.action)
                if not item.done.done():
                    item.done.set_result(self._state)
            else:
                try:
                    await self._handle_auth_event(item)
                except Exception:
                    logger.exception("Failed to handle auth event %s", item.event)

    async def _handle_auth_event(self, item: _AuthEvent) -> None:
        if item.event == "SIGNED_IN" and item.session is not None and item.session.user is not None:
            identity = Identity.model_validate(item.session.user, from_attributes=True)
            self._apply(LoginSucceeded(await self._load_user(identity)))
        elif item.event == "SIGNED_OUT":
            self._apply(LoggedOut())
        else:
            logger.debug("Ignoring auth event %s", item.event)

    def _apply(self, action: AuthAction) -> None:
        new_state = reduce(self._state, action)
        if new_state is self._state:
            return

        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("Auth state listener failed")

    async def _dispatch(self, action: AuthAction) -> AuthState:
        """Hand an action to the owner task and wait until it is applied."""
        if self._owner is None or self._owner.done():
            self._apply(action)
            return self._state

        done = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Dispatch(action=action, done=done))
        return await done

    # Profile loading

    async def ensure_profile(self, identity: Identity) -> dict[str, Any] | None:
        """Fetch the identity's profile row, creating it when missing.

        Creation mirrors server-side provisioning defaults. A primary-key
        conflict means another tab or the store trigger created the row
        first, so it is re-fetched.

        Args:
            identity: The signed-in identity.

        Returns:
            dict | None: The profile row.

        Raises:
            APIError: If the read fails, or creation fails for another reason.
        """
        profile = await self.profiles.fetch(identity.id)
        if profile:
            return profile

        row = build_profile_insert(identity, candidate_handle(identity) or None, self.settings)
        try:
            return await self.profiles.create(row)
        except APIError as e:
            target = conflict_target(e)
            if target == "primary_key":
                logger.info("Profile for %s was created concurrently, re-fetching", identity.id)
                return await self.profiles.fetch(identity.id)
            if target != "username":
                raise

        row["username"] = random_handle(self.settings.handle_prefix, self.settings.handle_escape_range)
        return await self.profiles.create(row)

    async def _load_user(self, identity: Identity) -> StudentProfile:
        """Build the view model; profile problems degrade to defaults."""
        try:
            profile = await self.ensure_profile(identity)
        except Exception as e:
            logger.warning("Could not load profile for %s, using defaults: %s", identity.id, str(e))
            profile = None

        return build_student_profile(identity, profile, self.settings)

    async def _load_initial_session(self) -> None:
        try:
            session = await self.auth.get_session()
        except AuthError as e:
            logger.error("Error getting initial session: %s", e.message)
            session = None

        if session is None or session.user is None:
            await self._dispatch(NoSession())
            return

        identity = Identity.model_validate(session.user, from_attributes=True)
        await self._dispatch(LoginSucceeded(await self._load_user(identity)))

    # Credential operations

    async def _fail_login(self, message: str, cause: Exception | None = None) -> None:
        await self._dispatch(LoginFailed(message))
        raise AuthOperationError(message) from cause

    async def login(self, email: str, password: str) -> StudentProfile:
        """Sign in with email and password.

        Raises:
            AuthOperationError: If the credentials are rejected.
        """
        await self._dispatch(LoginStarted())

        self._signing_in += 1
        try:
            response = await self.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            await self._fail_login(e.message, e)
        finally:
            self._signing_in -= 1

        if response.user is None:
            await self._fail_login("Login failed")

        user = await self._load_user(Identity.model_validate(response.user, from_attributes=True))
        await self._dispatch(LoginSucceeded(user))
        logger.info("User logged in: %s", user.id)
        return user

    async def register(
        self,
        email: str,
        password: str,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> StudentProfile:
        """Create an account and sign the student in.

        The store provisions the profile while creating the identity; the
        fetch-or-create step covers the case where it did not.

        Raises:
            AuthOperationError: If the account cannot be created.
        """
        metadata = {
            key: value
            for key, value in {"username": username, "firstName": first_name, "lastName": last_name}.items()
            if value
        }
        await self._dispatch(LoginStarted())

        self._signing_in += 1
        try:
            response = await self.auth.sign_up(
                {"email": email, "password": password, "options": {"data": metadata}}
            )
        except AuthError as e:
            await self._fail_login(e.message, e)
        finally:
            self._signing_in -= 1

        if response.user is None:
            await self._fail_login("Failed to create user account")

        identity = Identity.model_validate(response.user, from_attributes=True)
        identity.user_metadata = {**metadata, **identity.user_metadata}

        user = await self._load_user(identity)
        await self._dispatch(LoginSucceeded(user))
        logger.info("User registered: %s", user.id)
        return user

    async def logout(self) -> None:
        """Sign out and clear all cached profile data."""
        try:
            await self.auth.sign_out()
        except AuthError as e:
            logger.error("Error signing out: %s", e.message)

        await self._dispatch(LoggedOut())

    async def reset_password(self, email: str) -> None:
        """Send a password reset email.

        Raises:
            AuthOperationError: If the auth service rejects the request.
        """
        try:
            await self.auth.reset_password_for_email(
                email,
                {"redirect_to": self.settings.password_reset_redirect_url},
            )
        except AuthError as e:
            raise AuthOperationError(e.message) from e

    # Profile updates

    async def _mirror_metadata(self, changes: StudentProfileUpdate) -> None:
        mirror = metadata_mirror(changes)
        if not mirror:
            return

        try:
            await self.auth.update_user({"data": mirror})
        except Exception as e:
            logger.warning("Failed to update auth metadata: %s", str(e))

    async def update_profile(self, changes: StudentProfileUpdate) -> StudentProfile | None:
        """Write a partial profile update and merge it into the view.

        Only fields the caller supplied are written and merged. The view is
        changed only after the store acknowledges the write.

        Args:
            changes: Fields to change.

        Returns:
            StudentProfile | None: The updated view, or None if the user
            signed out while the update was in flight.

        Raises:
            NotAuthenticatedError: If nobody is signed in.
            ProfileUpdateError: If the store rejects the write.
        """
        current = self._state.user
        if current is None:
            raise NotAuthenticatedError("You must be signed in to update your profile")

        await self._dispatch(LoadingChanged(True))
        try:
            payload = profile_update_payload(changes)
            if payload:
                try:
                    row = await self.profiles.update(current.id, payload)
                except Exception as e:
                    message = e.message if isinstance(e, APIError) else str(e)
                    await self._dispatch(ProfileUpdateFailed(message))
                    raise ProfileUpdateError(message) from e

                if row is None:
                    await self._dispatch(ProfileUpdateFailed("Profile not found"))
                    raise ProfileUpdateError("Profile not found")

                await self._mirror_metadata(changes)

            state = await self._dispatch(ProfileUpdated(changes.supplied_fields()))
        finally:
            await self._dispatch(LoadingChanged(False))

        return state.user


@asynccontextmanager
async def open_auth_session(settings: Settings | None = None) -> AsyncIterator[AuthReconciler]:
    """Create a client context and run a reconciler for its lifetime.

    Args:
        settings: Settings to use; defaults to the environment settings.

    Yields:
        AuthReconciler: Started reconciler; stopped on exit.
    """
    context = await create_client_context(settings)
    reconciler = AuthReconciler(context)
    try:
        await reconciler.start()
        yield reconciler
    finally:
        await reconciler.stop()
