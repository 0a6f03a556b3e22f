"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, the token codec and the routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from auth.permissions import Role


@dataclass
class User:
    """An identity that can log in to the admin service.

    hashed_password is a bcrypt hash (cost factor and salt embedded). It is
    stripped from the object the credential verifier returns and never leaves
    the server.

    is_active=False suspends the account without deleting it. Suspended users
    cannot log in; tokens they already hold stay valid until expiry unless
    VERIFY_IDENTITY_STATUS is enabled.
    """

    username: str
    role: Role
    email: str = ""
    id: int | None = None
    hashed_password: str | None = None
    is_active: bool = True
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims carried by a verified session token."""

    user_id: int
    username: str
    role: Role
    issued_at: datetime
    expires_at: datetime
