"""Auth state, the actions that change it, and the reducer applying them."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Union

from src.schemas.profile import StudentProfile


class AuthStatus(str, Enum):
    """Where the client is in the sign-in lifecycle."""

    LOADING = "loading"
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    UPDATE_FAILED = "update_failed"


@dataclass(frozen=True)
class AuthState:
    """Snapshot of the current user and request status."""

    status: AuthStatus = AuthStatus.LOADING
    user: StudentProfile | None = None
    is_loading: bool = True
    error: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


@dataclass(frozen=True)
class LoginStarted:
    pass


@dataclass(frozen=True)
class LoginSucceeded:
    user: StudentProfile


@dataclass(frozen=True)
class LoginFailed:
    error: str


@dataclass(frozen=True)
class NoSession:
    pass


@dataclass(frozen=True)
class LoggedOut:
    pass


@dataclass(frozen=True)
class ProfileUpdated:
    changes: dict[str, Any]


@dataclass(frozen=True)
class ProfileUpdateFailed:
    error: str


@dataclass(frozen=True)
class LoadingChanged:
    is_loading: bool


AuthAction = Union[
    LoginStarted,
    LoginSucceeded,
    LoginFailed,
    NoSession,
    LoggedOut,
    ProfileUpdated,
    ProfileUpdateFailed,
    LoadingChanged,
]


def _merge_changes(user: StudentProfile, changes: dict[str, Any]) -> StudentProfile:
    # Cleared fields take the view default
    fields = StudentProfile.model_fields
    update = {
        name: fields[name].get_default(call_default_factory=True) if value is None else value
        for name, value in changes.items()
    }
    return user.model_copy(update=update)


def reduce(state: AuthState, action: AuthAction) -> AuthState:
    """Return the state that results from applying an action.

    Profile actions arriving after a sign-out leave the state untouched,
    so a late update can never resurrect a signed-out user.
    """
    if isinstance(action, LoginStarted):
        return replace(state, status=AuthStatus.AUTHENTICATING, is_loading=True, error=None)

    if isinstance(action, LoginSucceeded):
        return AuthState(status=AuthStatus.AUTHENTICATED, user=action.user, is_loading=False, error=None)

    if isinstance(action, LoginFailed):
        return AuthState(status=AuthStatus.IDLE, user=None, is_loading=False, error=action.error)

    if isinstance(action, (NoSession, LoggedOut)):
        return AuthState(status=AuthStatus.IDLE, user=None, is_loading=False, error=None)

    if isinstance(action, ProfileUpdated):
        if state.user is None:
            return state
        return replace(
            state,
            status=AuthStatus.AUTHENTICATED,
            user=_merge_changes(state.user, action.changes),
            error=None,
        )

    if isinstance(action, ProfileUpdateFailed):
        if state.user is None:
            return state
        return replace(state, status=AuthStatus.UPDATE_FAILED, error=action.error)

    if isinstance(action, LoadingChanged):
        return replace(state, is_loading=action.is_loading)

    return state
