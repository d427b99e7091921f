"""Async client for signing students in and keeping their profile current."""

from src.client.context import ClientContext, create_client_context
from src.client.errors import AuthOperationError, ClientError, NotAuthenticatedError, ProfileUpdateError
from src.client.reconciler import AuthReconciler, open_auth_session
from src.client.state import AuthState, AuthStatus

__all__ = [
    "AuthOperationError",
    "AuthReconciler",
    "AuthState",
    "AuthStatus",
    "ClientContext",
    "ClientError",
    "NotAuthenticatedError",
    "ProfileUpdateError",
    "create_client_context",
    "open_auth_session",
]
