"""
auth/tokens.py -- Session token codec (signed, time-bound, stateless JWTs).

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, username (sub), role, iat and exp. Verification is purely
       cryptographic -- it never consults the database -- and raises
       Unauthenticated on any failure. The route layer turns that into a 401.

  The codec captures the secret and lifetime once, when it is built from
       Settings at startup. No call re-reads configuration.

  Staleness window: because verification is stateless, a deactivated or
       deleted user's token stays valid until it expires. This is accepted;
       deployments that need prompt revocation enable VERIFY_IDENTITY_STATUS
       so the guard re-checks the identity once per request.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from jose import JWTError, jwt

from auth.errors import Unauthenticated
from auth.models import TokenClaims, User
from auth.permissions import Role
from core.config import Settings, get_settings

logger = logging.getLogger("desawisata.auth.tokens")

_ALGORITHM = "HS256"

_DECODE_OPTIONS = {
    "require_exp": True,
    "require_iat": True,
    "require_sub": True,
}


class TokenCodec:
    """Issue and verify bearer tokens.

    Usage:
        codec = TokenCodec(secret_key=settings.secret_key, lifetime_seconds=86400)
        token = codec.issue(user)
        claims = codec.verify(token)   # TokenClaims, or raises Unauthenticated
    """

    def __init__(self, secret_key: str, lifetime_seconds: int, algorithm: str = _ALGORITHM) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a signing secret")
        if lifetime_seconds <= 0:
            raise ValueError("Token lifetime must be positive")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.lifetime = timedelta(seconds=lifetime_seconds)

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(secret_key=settings.secret_key, lifetime_seconds=settings.token_expire_seconds)

    def issue(self, user: User, issued_at: datetime | None = None) -> str:
        """Encode a signed token for an authenticated user.

        issued_at defaults to now (UTC). Passing an explicit value is only
        meaningful for tests and tooling that need a token with a known age.
        """
        if user.id is None:
            raise ValueError("Cannot issue a token for a user without an id")
        iat = (issued_at or datetime.now(timezone.utc)).replace(microsecond=0)
        payload = {
            "sub": user.username,
            "user_id": user.id,
            "role": Role(user.role).value,
            "iat": iat,
            "exp": iat + self.lifetime,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str | None) -> TokenClaims:
        """Decode and validate a token. Raises Unauthenticated on any failure.

        Checks, in order: presence, signature and algorithm, required claims,
        expiry (valid only while now < exp), and that the role claim names a
        known role.
        """
        if not token:
            raise Unauthenticated("Token required.")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm], options=_DECODE_OPTIONS)
        except JWTError as exc:
            logger.debug("Token rejected: %s", type(exc).__name__)
            raise Unauthenticated() from exc

        try:
            user_id = int(payload["user_id"])
            role = Role(payload["role"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError) as exc:
            raise Unauthenticated() from exc

        # jose tolerates now == exp; the session is over at exp.
        if datetime.now(timezone.utc) >= expires_at:
            raise Unauthenticated()

        return TokenClaims(
            user_id=user_id,
            username=str(payload["sub"]),
            role=role,
            issued_at=issued_at,
            expires_at=expires_at,
        )


@lru_cache
def get_token_codec() -> TokenCodec:
    """Return the process-wide codec built from the Settings singleton."""
    return TokenCodec.from_settings(get_settings())
