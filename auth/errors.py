"""
auth/errors.py -- Exception taxonomy for the session subsystem.

Every error carries a stable machine-readable code and the HTTP status the API
layer maps it to. None of them are retried internally; each one ends the
current operation.

Store connectivity failures (sqlalchemy.exc.*) are deliberately NOT part of
this hierarchy. They propagate unchanged and surface as a 500, never as an
authentication failure.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    status_code = 400
    message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidCredentials(AuthError):
    """Unknown email or wrong password -- the two are never distinguished."""

    code = "invalid_credentials"
    status_code = 401
    message = "Invalid credentials."


class EmailInUse(AuthError):
    code = "email_in_use"
    status_code = 409
    message = "Email already in use."


class InvalidRefreshToken(AuthError):
    code = "invalid_refresh_token"
    status_code = 401
    message = "Invalid refresh token."


class RefreshTokenExpired(AuthError):
    code = "refresh_token_expired"
    status_code = 401
    message = "Refresh token expired."


class UserNotFound(AuthError):
    code = "user_not_found"
    status_code = 404
    message = "User not found."


class PasswordMismatch(AuthError):
    """Change-password was called with a wrong current password."""

    code = "password_mismatch"
    status_code = 400
    message = "Current password is incorrect."
