"""
auth/errors.py -- Exception taxonomy for the auth core.

Every AuthError is recoverable by the caller and carries:
  code    -- stable machine-readable identifier (API error envelope "code")
  message -- text that is safe to show to the end user

The boundary layers (api/, web/) map codes to HTTP outcomes. The auth core
never imports fastapi for this.

HashFormatError is deliberately NOT an AuthError. A corrupt stored hash is a
server fault: it is fatal for the request and surfaces as a generic 500,
never as "wrong password".

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for recoverable auth failures."""

    code: str = "auth_error"
    default_message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed input, raised before any store access."""

    code = "validation_error"
    default_message = "Invalid input."

    def __init__(self, message: str | None = None, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = errors or []


class DuplicateUserError(AuthError):
    code = "duplicate_user"
    default_message = "A user with that username or email already exists."


class InvalidCredentialsError(AuthError):
    """Wrong email or wrong password. One message for both (no enumeration)."""

    code = "invalid_credentials"
    default_message = "Invalid email/password combination."


class NotAuthenticatedError(AuthError):
    code = "unauthenticated"
    default_message = "Authentication required."


class SessionNotFoundError(NotAuthenticatedError):
    """Session is missing, destroyed or expired. All three look the same."""


class ForbiddenError(AuthError):
    code = "forbidden"
    default_message = "Admin access required."


class UserNotFoundError(AuthError):
    code = "not_found"
    default_message = "User not found."


class HashFormatError(ValueError):
    """The stored password hash is not a valid bcrypt hash."""
