"""
auth/errors.py -- Typed failures raised by the auth core.

Every exception carries a stable machine-readable code and a human message.
The transport layer maps each class to an HTTP status (see api/main.py) and
returns code + message in the ErrorResponse envelope.

Enumeration resistance: InvalidCredentials has exactly one message, used for
both "no such account" and "wrong password". Do not subclass it per cause.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth-core failures."""

    code = "auth_error"
    default_message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


class ValidationConflict(AuthError):
    code = "conflict"
    default_message = "Username or email already in use."


class DuplicateUsername(ValidationConflict):
    code = "duplicate_username"
    default_message = "Username already exists."


class DuplicateEmail(ValidationConflict):
    code = "duplicate_email"
    default_message = "Email already registered."


class PasswordTooLong(AuthError):
    """bcrypt reads at most 72 bytes; longer input is refused, never truncated."""

    code = "password_too_long"
    default_message = "Password must be at most 72 bytes when UTF-8 encoded."


# ---------------------------------------------------------------------------
# Signin / sessions
# ---------------------------------------------------------------------------


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    default_message = "Invalid username or password."


class AccountDisabled(AuthError):
    code = "account_disabled"
    default_message = "Account has been disabled."


class SessionNotFound(AuthError):
    code = "session_not_found"
    default_message = "Session does not exist."


class SessionExpired(AuthError):
    code = "session_expired"
    default_message = "Session has expired."


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class InvalidResetToken(AuthError):
    code = "invalid_reset_token"
    default_message = "Reset token is invalid."


class TokenAlreadyUsed(AuthError):
    code = "reset_token_used"
    default_message = "Reset token has already been used."


class TokenExpired(AuthError):
    code = "reset_token_expired"
    default_message = "Reset token has expired."


class AccountNotFound(AuthError):
    code = "account_not_found"
    default_message = "Account does not exist."


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class StoreFailure(AuthError):
    """Any storage-layer error. The original exception is chained as __cause__."""

    code = "store_failure"
    default_message = "Storage operation failed."


class DuplicateRecord(StoreFailure):
    """A unique constraint rejected a write."""

    code = "duplicate_record"
    default_message = "A record with the same unique key already exists."


class HashingError(AuthError):
    code = "hashing_error"
    default_message = "Password hashing failed."


class EntropyError(AuthError):
    code = "entropy_error"
    default_message = "Secure random source unavailable."
