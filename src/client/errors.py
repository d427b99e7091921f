"""Errors raised by the client auth package."""


class ClientError(Exception):
    """Base class for client-side auth and profile errors.

    ``message`` is human-readable and safe to show to the user.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthOperationError(ClientError):
    """A credential operation (login, register, password reset) failed."""


class ProfileUpdateError(ClientError):
    """Writing profile changes to the store failed."""


class NotAuthenticatedError(ClientError):
    """An operation needed a signed-in user but there is none."""
