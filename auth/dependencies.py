"""
auth/dependencies.py -- FastAPI Depends() helpers: the authorization guard.

Two steps, always in this order:
  1. authenticate()          -- Authorization: Bearer <token> -> TokenClaims.
                                Missing or invalid token raises Unauthenticated (401).
  2. require_permission(...) -- depends on authenticate(), then checks the
                                caller's role against the permission catalog.
                                Insufficient permission raises Forbidden (403).

Because require_permission() receives the claims through Depends(authenticate),
an unauthenticated request fails in step 1 and never reaches a permission
check, so a 401 response says nothing about what an endpoint requires.

The catalog and the token codec are read from app.state, where the lifespan
puts the process-wide instances. Both are immutable, so concurrent requests
share them without locking.

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, Request

from auth.errors import Forbidden, Unauthenticated
from auth.models import TokenClaims
from auth.permissions import Permission, PermissionCatalog, permission_value

logger = logging.getLogger("desawisata.auth.guard")


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization")
    if not header:
        raise Unauthenticated("Token required.")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthenticated()
    return token


def authenticate(request: Request) -> TokenClaims:
    """Verify the bearer token and attach its claims to request.state.identity.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: TokenClaims = Depends(authenticate)): ...

    Idempotent within a request: if the claims are already attached they are
    returned without decoding the token again.
    """
    cached = getattr(request.state, "identity", None)
    if cached is not None:
        return cached

    claims = request.app.state.token_codec.verify(_bearer_token(request))

    if request.app.state.settings.verify_identity_status:
        user = request.app.state.user_store.get_by_id(claims.user_id)
        if user is None or not user.is_active:
            logger.info("Token rejected: identity user_id=%s is gone or inactive", claims.user_id)
            raise Unauthenticated()

    request.state.identity = claims
    return claims


def require_permission(*permissions: Permission | str) -> Callable[..., TokenClaims]:
    """Build a dependency that allows the request iff the role holds every permission.

    Use as a FastAPI dependency:
        @router.get("/payments")
        def route(identity: TokenClaims = Depends(require_permission(Permission.PEMBAYARAN_READ))): ...

    or router-wide:
        router = APIRouter(dependencies=[Depends(require_permission("users:manage"))])
    """
    if not permissions:
        raise ValueError("require_permission() needs at least one permission")
    required = tuple(permission_value(p) for p in permissions)

    def dependency(request: Request, identity: TokenClaims = Depends(authenticate)) -> TokenClaims:
        catalog: PermissionCatalog = request.app.state.catalog
        for permission in required:
            if not catalog.has_permission(identity.role, permission):
                logger.warning(
                    "Access denied: user=%s role=%s permission=%s path=%s",
                    identity.username,
                    identity.role.value,
                    permission,
                    request.url.path,
                )
                raise Forbidden()
        return identity

    dependency.__name__ = f"require_permission[{','.join(required)}]"
    return dependency
