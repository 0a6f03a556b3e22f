"""
auth/errors.py -- Exception taxonomy for authentication and authorization.

Every failure the auth core can produce is an AuthError subclass carrying the
HTTP status and a machine-readable code. The api/ layer registers a single
exception handler for AuthError, so auth/ never builds responses itself.

Messages are deliberately generic. They never include the submitted username,
password or token.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for authentication/authorization failures."""

    status_code: int = 400
    code: str = "auth_error"
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed login input (e.g. empty username or password)."""

    status_code = 400
    code = "validation_error"
    default_message = "Username and password are required."


class InvalidCredentials(AuthError):
    """Unknown username, wrong password or disabled account -- one outward error."""

    status_code = 401
    code = "bad_credentials"
    default_message = "Invalid username or password."


class Unauthenticated(AuthError):
    """Missing, malformed, tampered or expired bearer token."""

    status_code = 401
    code = "unauthorized"
    default_message = "Invalid or expired token."


class Forbidden(AuthError):
    """Valid identity without the required permission."""

    status_code = 403
    code = "forbidden"
    default_message = "Access denied."
