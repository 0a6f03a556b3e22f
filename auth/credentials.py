"""
auth/credentials.py -- Password hashing and the credential verifier.

Passwords: bcrypt directly (no passlib wrapper). Bcrypt's embedded salt and
     cost factor make offline brute force expensive, and checkpw compares in
     constant time.

Enumeration resistance:
     authenticate_user() raises the same InvalidCredentials for an unknown
     username, a wrong password and a disabled account. It also runs bcrypt in
     every branch -- against _DUMMY_HASH when the username does not exist -- so
     response time does not reveal whether an account exists.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

import bcrypt

from auth.errors import InvalidCredentials, ValidationError
from auth.models import User

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("desawisata.auth.credentials")


# bcrypt's input limit, in UTF-8 bytes. Current bcrypt releases reject longer
# input instead of truncating it.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValueError if the password is longer than MAX_PASSWORD_BYTES once
    encoded. The API models and the CLI reject such passwords before this.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash, or input over MAX_PASSWORD_BYTES
        return False


# Computed once at import so the first failed login costs the same as later ones.
_DUMMY_HASH: str = hash_password("desawisata_timing_dummy")


def authenticate_user(store: UserStore, username: str, password: str) -> User:
    """Verify a username/password pair and return the identity without its hash.

    Raises:
        ValidationError:    username or password is empty or only whitespace. The store
                            is not queried.
        InvalidCredentials: unknown username, wrong password, or inactive account.
    """
    username = (username or "").strip()
    if not username or not (password or "").strip():
        raise ValidationError()

    user = store.get_by_username(username)
    if user is None or user.hashed_password is None:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password, _DUMMY_HASH)
        logger.info("Login failed: unknown account")
        raise InvalidCredentials()
    if not verify_password(password, user.hashed_password):
        logger.info("Login failed: bad password for user_id=%s", user.id)
        raise InvalidCredentials()
    if not user.is_active:
        logger.info("Login refused: inactive account user_id=%s", user.id)
        raise InvalidCredentials()

    store.update_last_login(user.id)
    logger.info("Login succeeded for user_id=%s role=%s", user.id, user.role.value)
    return dataclasses.replace(user, hashed_password=None)
