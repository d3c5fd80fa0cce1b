"""
auth/errors.py -- Exception taxonomy for authentication and storage.

Two families:

  AuthError -- user-recoverable. Route handlers catch these, push
      exc.message as a flash message and redirect back to the form. They
      never reach the generic error page.

  InfrastructureError -- the store or the identity provider is unavailable.
      Defined in core/errors.py and re-exported here. These propagate out
      of route handlers and become a generic 503 response (api/main.py).

NotAuthenticated is raised by the access guard and mapped to a redirect to
/login (HTML) or a 401 (JSON API) by api/main.py.

Layer rule: no imports from api/, web/, or vault/.
"""

from __future__ import annotations

from core.errors import InfrastructureError, ProviderUnavailable, StoreUnavailable

__all__ = [
    "AuthError",
    "AuthFailure",
    "DuplicateUsername",
    "FederationRejected",
    "InfrastructureError",
    "InvalidCredential",
    "InvalidRegistration",
    "NotAuthenticated",
    "NotFound",
    "ProviderUnavailable",
    "RegistrationFailure",
    "StoreUnavailable",
    "WrongMethod",
]


class AuthError(Exception):
    """Base class for authentication failures shown to the user."""

    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AuthFailure(AuthError):
    """verify() failed."""


class NotFound(AuthFailure):
    # Same wording as InvalidCredential so the flash does not reveal whether
    # the username exists.
    message = "Invalid credential. Password or username is incorrect."


class InvalidCredential(AuthFailure):
    message = "Invalid credential. Password or username is incorrect."


class WrongMethod(AuthFailure):
    message = "This account signs in with Google. Use the Google button below."


class RegistrationFailure(AuthError):
    """register() failed."""


class DuplicateUsername(RegistrationFailure):
    message = "A user with the given username is already registered."


class InvalidRegistration(RegistrationFailure):
    message = "Username and password are both required."


class FederationRejected(AuthError):
    """The provider handshake completed without a usable identity."""

    message = "Google sign-in failed. Please try again."


class NotAuthenticated(Exception):
    """Raised by the access guard when the request has no valid session."""

    message = "User not authenticated! Please log in."
