"""
api/routes/auth.py -- Login, session and policy endpoints.

Routes:
  POST /api/login              -- password login; returns a bearer token
  POST /api/auth/login         -- same handler, path used by the SPA client
  POST /api/auth/logout        -- stateless acknowledgement; the client discards its token
  POST /api/setup              -- create the first ADMIN when no users exist
  GET  /api/auth/me            -- claims of the current token (requires auth)
  PUT  /api/auth/profile       -- change own email / password (requires auth)
  GET  /api/auth/permissions   -- caller's role, grants and visible menu (requires auth)
  GET  /api/auth/policy        -- full UI policy mirror (requires auth)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  authenticate_user() provides timing equalization -- use it, never inline
  get_by_username() + verify_password().
  Cache-Control: no-store on login responses.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    PermissionsResponse,
    PolicyResponse,
    ProfileUpdate,
    SessionUser,
    UserCreate,
    UserResponse,
)
from auth.credentials import authenticate_user, hash_password, verify_password
from auth.dependencies import authenticate
from auth.errors import Unauthenticated
from auth.mirror import PolicyMirror
from auth.models import TokenClaims, User
from auth.permissions import Role
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import get_settings

logger = logging.getLogger("desawisata.api.auth")

_settings = get_settings()

# Auth policy:
# - POST /api/login, /api/auth/login: public -- login endpoint must be unauthenticated
# - POST /api/auth/logout:            public -- tokens are stateless, nothing to revoke
# - POST /api/setup:                  public, but only while no user exists
# - everything else:                  requires a valid token (authenticate)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_settings.login_rate_limit)  # brute-force mitigation
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a bearer token.

    Unknown username, wrong password and a deactivated account all produce
    the identical 401 body. Empty fields fail with 400 before any lookup.
    Defined as a plain def so bcrypt runs in the threadpool.
    """
    user_store: UserStore = request.app.state.user_store
    codec: TokenCodec = request.app.state.token_codec

    user = authenticate_user(user_store, body.username, body.password)
    token = codec.issue(user)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=int(codec.lifetime.total_seconds()),
            user=SessionUser(id=user.id, username=user.username, email=user.email, role=user.role),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """End the session on the client side.

    Tokens are stateless and there is no revocation list: the token stays
    valid until it expires, so the client must discard it.
    """
    return JSONResponse(content={"message": "Logged out."})


@router.post("/setup", response_model=UserResponse, status_code=201)
def setup(request: Request, body: UserCreate) -> UserResponse:
    """Create the first administrator. Returns 409 once any user exists.

    The app.state.setup_required flag is only a hint; the store is re-checked
    here and a concurrent insert surfaces as IntegrityError.
    """
    user_store: UserStore = request.app.state.user_store
    if user_store.has_users():
        request.app.state.setup_required = False
        raise HTTPException(
            status_code=409,
            detail={"code": "setup_complete", "message": "Setup already complete."},
        )

    admin = User(
        username=body.username,
        email=body.email,
        role=Role.ADMIN,
        hashed_password=hash_password(body.password),
    )
    try:
        user_id = user_store.create_user(admin)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "setup_complete", "message": "Setup already complete."},
        ) from exc

    request.app.state.setup_required = False
    logger.info("Initial administrator created (user_id=%s)", user_id)
    return UserResponse.from_user(user_store.get_by_id(user_id))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(identity: TokenClaims = Depends(authenticate)) -> MeResponse:
    """Return the identity carried by the current token."""
    return MeResponse(
        user_id=identity.user_id,
        username=identity.username,
        role=identity.role,
        expires_at=identity.expires_at.isoformat(),
    )


@router.put("/auth/profile", response_model=UserResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    identity: TokenClaims = Depends(authenticate),
) -> UserResponse:
    """Let a user change their own email or password.

    Changing the password requires the current password. Role and active
    status are not editable here -- that is user management (users:manage).
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(identity.user_id)
    if user is None:
        raise Unauthenticated()

    updates: dict = {}
    if body.email is not None and body.email != user.email:
        updates["email"] = body.email
    if body.new_password is not None:
        if not body.current_password or not verify_password(body.current_password, user.hashed_password or ""):
            raise HTTPException(
                status_code=400,
                detail={"code": "bad_current_password", "message": "Current password is incorrect."},
            )
        updates["hashed_password"] = hash_password(body.new_password)

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    try:
        user_store.update_user(user.id, **updates)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "That email address is already in use."},
        ) from exc
    return UserResponse.from_user(user_store.get_by_id(user.id))


@router.get("/auth/permissions", response_model=PermissionsResponse)
async def my_permissions(request: Request, identity: TokenClaims = Depends(authenticate)) -> PermissionsResponse:
    """Return the caller's grants and the menu entries the UI should show.

    Advisory only -- the server re-checks every action it displays.
    """
    mirror: PolicyMirror = request.app.state.policy_mirror
    return PermissionsResponse(
        username=identity.username,
        role=mirror.role_entry(identity.role),
        menu=[mirror.menu_entry(m) for m in mirror.menu_for(identity)],
    )


@router.get("/auth/policy", response_model=PolicyResponse)
async def policy(request: Request, identity: TokenClaims = Depends(authenticate)) -> PolicyResponse:
    """Return the full role table so the SPA can render role badges and menus."""
    mirror: PolicyMirror = request.app.state.policy_mirror
    return PolicyResponse(**mirror.snapshot())
