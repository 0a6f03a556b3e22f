"""
auth/permissions.py -- Roles, permission strings and the static permission catalog.

The catalog is the single source of truth for "what each role may do". It is
built once per process from ROLE_GRANTS, validated for totality, and then
shared read-only by the authorization guard and the UI policy mirror. Role
definitions change only by redeploying, never through the API.

Permission strings follow "resource:action". The wildcard "*" satisfies every
permission check, including permissions that are not in the Permission enum.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType


class Role(str, Enum):
    """The closed set of roles. Every identity holds exactly one."""

    ADMIN = "ADMIN"
    FINANCE = "FINANCE"
    STAFF = "STAFF"
    RECEPTIONIST = "RECEPTIONIST"

    @classmethod
    def _missing_(cls, value):
        # Legacy rows store roles in lower case ("admin", "finance", ...).
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None


class Permission(str, Enum):
    """Wire-level permission strings shared with the front end."""

    WILDCARD = "*"

    USERS_MANAGE = "users:manage"

    PENGUNJUNG_READ = "pengunjung:read"
    PENGUNJUNG_CREATE = "pengunjung:create"
    PENGUNJUNG_UPDATE = "pengunjung:update"
    PENGUNJUNG_DELETE = "pengunjung:delete"

    HOMESTAY_READ = "homestay:read"
    HOMESTAY_CREATE = "homestay:create"
    HOMESTAY_UPDATE = "homestay:update"
    HOMESTAY_DELETE = "homestay:delete"

    RESERVASI_READ = "reservasi:read"
    RESERVASI_CREATE = "reservasi:create"
    RESERVASI_UPDATE = "reservasi:update"
    RESERVASI_DELETE = "reservasi:delete"

    PEMBAYARAN_READ = "pembayaran:read"
    PEMBAYARAN_CREATE = "pembayaran:create"
    PEMBAYARAN_UPDATE = "pembayaran:update"
    PEMBAYARAN_DELETE = "pembayaran:delete"

    LAPORAN_GENERATE = "laporan:generate"
    DASHBOARD_VIEW = "dashboard:view"
    SETTINGS_MANAGE = "settings:manage"


def permission_value(permission: Permission | str) -> str:
    """Return the plain string for a Permission member or raw string.

    Enum members hash by name, not value, so set lookups must use the string.
    """
    return permission.value if isinstance(permission, Permission) else permission


# ---------------------------------------------------------------------------
# Versioned grant table -- the compatibility contract with the front end
# ---------------------------------------------------------------------------

_P = Permission

ROLE_GRANTS: Mapping[Role, tuple[Permission, ...]] = {
    Role.ADMIN: (_P.WILDCARD,),
    Role.FINANCE: (
        _P.PEMBAYARAN_READ,
        _P.PEMBAYARAN_CREATE,
        _P.PEMBAYARAN_UPDATE,
        _P.RESERVASI_READ,
        _P.LAPORAN_GENERATE,
        _P.DASHBOARD_VIEW,
    ),
    Role.STAFF: (
        _P.HOMESTAY_READ,
        _P.HOMESTAY_CREATE,
        _P.HOMESTAY_UPDATE,
        _P.HOMESTAY_DELETE,
        _P.RESERVASI_READ,
        _P.DASHBOARD_VIEW,
    ),
    Role.RECEPTIONIST: (
        _P.PENGUNJUNG_READ,
        _P.PENGUNJUNG_CREATE,
        _P.PENGUNJUNG_DELETE,
        _P.RESERVASI_READ,
        _P.RESERVASI_CREATE,
        _P.RESERVASI_DELETE,
        _P.HOMESTAY_READ,
        _P.DASHBOARD_VIEW,
    ),
}


@dataclass(frozen=True)
class RoleInfo:
    """Display metadata shown next to a role in the admin UI."""

    name: str
    description: str


ROLE_INFO: Mapping[Role, RoleInfo] = {
    Role.ADMIN: RoleInfo("Administrator", "Akses penuh ke semua fitur sistem"),
    Role.FINANCE: RoleInfo("Keuangan", "Mengelola pembayaran dan laporan keuangan"),
    Role.STAFF: RoleInfo("Staff", "Mengelola homestay dan event"),
    Role.RECEPTIONIST: RoleInfo("Resepsionis", "Mengelola pengunjung dan reservasi"),
}


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class PermissionCatalog:
    """Immutable role -> permission-set lookup.

    Usage:
        catalog = PermissionCatalog.from_table(ROLE_GRANTS)
        catalog.has_permission(Role.FINANCE, "pembayaran:read")   # True
        catalog.roles_with("pembayaran:read")                     # {ADMIN, FINANCE}
    """

    __slots__ = ("_grants",)

    def __init__(self, grants: Mapping[Role, frozenset[str]]) -> None:
        missing = [role.value for role in Role if role not in grants]
        if missing:
            raise ValueError(f"Permission catalog has no grants for roles: {', '.join(missing)}")
        empty = [role.value for role, perms in grants.items() if not perms]
        if empty:
            raise ValueError(f"Permission catalog has empty grant sets for roles: {', '.join(empty)}")
        object.__setattr__(self, "_grants", MappingProxyType({role: frozenset(grants[role]) for role in Role}))

    def __setattr__(self, name, value):
        raise AttributeError("PermissionCatalog is immutable")

    @classmethod
    def from_table(cls, table: Mapping[Role, Iterable[Permission | str]]) -> PermissionCatalog:
        return cls({Role(role): frozenset(permission_value(p) for p in perms) for role, perms in table.items()})

    @property
    def grants(self) -> Mapping[Role, frozenset[str]]:
        """Read-only view of the whole table."""
        return self._grants

    def grants_for(self, role: Role | str) -> frozenset[str]:
        """Return the grant set for a role. Raises ValueError for unknown roles."""
        return self._grants[Role(role)]

    def has_permission(self, role: Role | str, permission: Permission | str) -> bool:
        """True iff the role holds the exact permission string or the wildcard."""
        try:
            granted = self.grants_for(role)
        except ValueError:
            return False
        return Permission.WILDCARD.value in granted or permission_value(permission) in granted

    def roles_with(self, permission: Permission | str) -> frozenset[Role]:
        """Derive the set of roles allowed to perform a permission."""
        return frozenset(role for role in Role if self.has_permission(role, permission))


@lru_cache
def get_catalog() -> PermissionCatalog:
    """Return the process-wide catalog built from ROLE_GRANTS."""
    return PermissionCatalog.from_table(ROLE_GRANTS)
