"""
api/routes/users.py -- User management endpoints (users:manage).

Routes:
  GET    /api/users              -- paginated list with ?page=&limit=&search=
  POST   /api/users              -- create a user
  PUT    /api/users/{id}         -- update email / role / password / is_active
  PATCH  /api/users/{id}/status  -- activate or deactivate
  DELETE /api/users/{id}         -- delete

Identity lifecycle rules enforced here:
  - An administrator cannot delete or deactivate their own account.
  - The last active ADMIN can never be deleted, deactivated or demoted --
    there would be no way back in without direct database access.

Role changes and deactivation take effect at the target's next login. Tokens
already issued stay valid until expiry unless VERIFY_IDENTITY_STATUS is on.
"""

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import Pagination, UserCreate, UserListResponse, UserResponse, UserStatusUpdate, UserUpdate
from auth.credentials import hash_password
from auth.dependencies import require_permission
from auth.models import TokenClaims, User
from auth.permissions import Permission, Role
from auth.store import LastAdminError, UserStore

logger = logging.getLogger("desawisata.api.users")

# Auth policy: every route requires users:manage. The router-level dependency
# enforces it; handlers that need the caller's identity declare the same
# dependency, which FastAPI resolves once per request.
_manage_users = require_permission(Permission.USERS_MANAGE)
router = APIRouter(dependencies=[Depends(_manage_users)])


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str = Query(default="", max_length=50),
) -> UserListResponse:
    """List user accounts ordered by username."""
    user_store: UserStore = request.app.state.user_store
    total = user_store.count_users(search)
    users = user_store.list_users(search=search, limit=limit, offset=(page - 1) * limit)
    return UserListResponse(
        data=[UserResponse.from_user(u) for u in users],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0),
    )


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current: TokenClaims = Depends(_manage_users),
) -> UserResponse:
    """Create a new account with any role."""
    user_store: UserStore = request.app.state.user_store
    new_user = User(
        username=body.username,
        email=body.email,
        role=body.role,
        hashed_password=hash_password(body.password),
        is_active=body.is_active,
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that username or email already exists."},
        ) from exc

    logger.info("User %s created user_id=%s role=%s", current.username, user_id, body.role.value)
    return UserResponse.from_user(user_store.get_by_id(user_id))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    current: TokenClaims = Depends(_manage_users),
) -> UserResponse:
    """Update a user's email, role, password or active status."""
    user_store: UserStore = request.app.state.user_store
    target = _get_or_404(user_store, user_id)

    updates: dict = {}
    if body.email is not None:
        updates["email"] = body.email
    if body.password is not None:
        updates["hashed_password"] = hash_password(body.password)
    if body.role is not None and body.role != target.role:
        updates["role"] = body.role
    if body.is_active is not None and body.is_active != target.is_active:
        if not body.is_active:
            _ensure_not_self(target, current, "self_deactivation", "You cannot deactivate your own account.")
        updates["is_active"] = body.is_active

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    action = "demote" if updates.get("role", Role.ADMIN) != Role.ADMIN else "deactivate"
    try:
        updated = user_store.update_user(user_id, protect_last_admin=True, **updates)
    except LastAdminError as exc:
        raise _last_admin(action) from exc
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "That email address is already in use."},
        ) from exc
    if not updated:
        raise _not_found()

    logger.info("User %s updated user_id=%s fields=%s", current.username, user_id, sorted(updates))
    return UserResponse.from_user(user_store.get_by_id(user_id))


@router.patch("/users/{user_id}/status", response_model=UserResponse)
def set_user_status(
    request: Request,
    user_id: int,
    body: UserStatusUpdate,
    current: TokenClaims = Depends(_manage_users),
) -> UserResponse:
    """Activate or deactivate an account without deleting it."""
    user_store: UserStore = request.app.state.user_store
    target = _get_or_404(user_store, user_id)

    if not body.is_active:
        _ensure_not_self(target, current, "self_deactivation", "You cannot deactivate your own account.")
    try:
        updated = user_store.update_user(user_id, protect_last_admin=True, is_active=body.is_active)
    except LastAdminError as exc:
        raise _last_admin("deactivate") from exc
    if not updated:
        raise _not_found()

    logger.info("User %s set user_id=%s is_active=%s", current.username, user_id, body.is_active)
    return UserResponse.from_user(user_store.get_by_id(user_id))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int,
    current: TokenClaims = Depends(_manage_users),
) -> Response:
    """Permanently delete an account."""
    user_store: UserStore = request.app.state.user_store
    target = _get_or_404(user_store, user_id)

    _ensure_not_self(target, current, "self_deletion", "You cannot delete your own account.")
    try:
        deleted = user_store.delete_user(user_id, protect_last_admin=True)
    except LastAdminError as exc:
        raise _last_admin("delete") from exc
    if not deleted:
        raise _not_found()

    logger.info("User %s deleted user_id=%s", current.username, user_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "User not found."},
    )


def _get_or_404(user_store: UserStore, user_id: int) -> User:
    user = user_store.get_by_id(user_id)
    if user is None:
        raise _not_found()
    return user


def _last_admin(action: str) -> HTTPException:
    # The store refuses the write itself; see UserStore.delete_user/update_user.
    return HTTPException(
        status_code=400,
        detail={"code": "last_admin", "message": f"Cannot {action} the last active admin account."},
    )


def _ensure_not_self(target: User, current: TokenClaims, code: str, message: str) -> None:
    if target.id == current.user_id:
        raise HTTPException(status_code=400, detail={"code": code, "message": message})
