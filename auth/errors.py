"""
auth/errors.py -- Error taxonomy for the token lifecycle engine.

Every failure the core can report is an AuthError subclass with a stable
`code`. The core raises; it never logs or formats. The HTTP layer maps
codes to status codes and the error envelope (api/main.py).

Detail policy:
  InvalidInput carries a caller-facing message (the caller's own data was
  out of policy, so echoing the rule back leaks nothing).
  InvalidCredentials always carries the same fixed message, whatever the
  underlying cause -- unknown email, wrong password, revoked or expired
  refresh token. That is the enumeration-resistance guarantee.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by auth/."""

    code = "auth_error"
    default_message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidInput(AuthError):
    code = "invalid_input"
    default_message = "Invalid input."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    default_message = "Invalid credentials."

    def __init__(self) -> None:
        # Fixed message: callers must not be able to attach a cause.
        super().__init__()


class Conflict(AuthError):
    code = "conflict"
    default_message = "Email already registered."


class PersistenceError(AuthError):
    code = "persistence_error"
    default_message = "Storage unavailable."


class HashingError(AuthError):
    code = "hashing_error"
    default_message = "Password hashing failed."


class DeadlineExceeded(AuthError):
    code = "deadline_exceeded"
    default_message = "Operation deadline exceeded."


class Unauthorized(AuthError):
    """Access token verification failed. Subclasses say why."""

    code = "unauthorized"
    default_message = "Invalid or expired token."


class InvalidSignatureError(Unauthorized):
    code = "invalid_signature"


class ExpiredTokenError(Unauthorized):
    code = "token_expired"


class MalformedTokenError(Unauthorized):
    code = "malformed_token"
