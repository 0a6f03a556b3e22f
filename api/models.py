"""
API request and response models for the Desa Wisata admin REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from auth.credentials import MAX_PASSWORD_BYTES
from auth.models import User
from auth.permissions import Role

# Loose shape check only; deliverability is not our concern.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


def _within_bcrypt_limit(value: str) -> str:
    # max_length counts characters; bcrypt counts UTF-8 bytes.
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
    return value


NewPassword = Annotated[str, Field(min_length=8, max_length=72), AfterValidator(_within_bcrypt_limit)]


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Envelope returned on every 4xx/5xx response.

    error is the human-readable message the front end displays; code is the
    stable machine-readable identifier.
    """

    model_config = ConfigDict(frozen=True)

    error: str
    code: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Login / session
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/login and POST /api/auth/login.

    Empty values are allowed through here on purpose: the credential verifier
    rejects them with the validation_error code before any lookup.
    """

    username: str = Field(default="", max_length=50)
    password: str = Field(default="", max_length=72)


class SessionUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: Role


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: SessionUser


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    role: Role
    expires_at: str


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/auth/profile -- a user editing their own account."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=100, pattern=EMAIL_PATTERN)
    current_password: Optional[str] = Field(default=None, max_length=72)
    new_password: Optional[NewPassword] = None


# ---------------------------------------------------------------------------
# Policy mirror
# ---------------------------------------------------------------------------


class MenuItemResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    permission: str
    roles: list[Role]


class RoleEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    name: str
    description: str
    permissions: list[str]


class PermissionsResponse(BaseModel):
    """Response for GET /api/auth/permissions -- the caller's own grants."""

    model_config = ConfigDict(frozen=True)

    username: str
    role: RoleEntry
    menu: list[MenuItemResponse]


class PolicyResponse(BaseModel):
    """Response for GET /api/auth/policy -- the full role table."""

    model_config = ConfigDict(frozen=True)

    roles: list[RoleEntry]
    menu: list[MenuItemResponse]


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/users and POST /api/setup."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: str = Field(max_length=100, pattern=EMAIL_PATTERN)
    password: NewPassword
    role: Role = Role.STAFF
    is_active: bool = True


class UserUpdate(BaseModel):
    """Request body for PUT /api/users/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=100, pattern=EMAIL_PATTERN)
    role: Optional[Role] = None
    password: Optional[NewPassword] = None
    is_active: Optional[bool] = None


class UserStatusUpdate(BaseModel):
    """Request body for PATCH /api/users/{id}/status."""

    is_active: bool


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: Role
    is_active: bool
    created_at: str
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Map a domain User to the API shape. The password hash is never included."""
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at or "",
            last_login=user.last_login,
        )


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    limit: int
    total: int
    pages: int


class UserListResponse(BaseModel):
    """Paginated user list, shaped like the admin table expects: {data, pagination}."""

    model_config = ConfigDict(frozen=True)

    data: list[UserResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class DashboardResponse(BaseModel):
    """Response for GET /api/dashboard."""

    model_config = ConfigDict(frozen=True)

    message: str
    role: Role
    access: list[str]
    menu: list[MenuItemResponse]
