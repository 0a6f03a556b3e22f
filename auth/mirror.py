"""
auth/mirror.py -- UI policy mirror built from the server permission catalog.

The single-page front end hides menus and buttons the user cannot use. It
gets the data for that from here, and this object is built from the same
PermissionCatalog instance the authorization guard enforces, so the two can
never drift apart.

Nothing in this module is a security boundary. Every action it lets the UI
display is re-checked by auth.dependencies.require_permission() on the server.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from auth.models import TokenClaims, User
from auth.permissions import ROLE_INFO, Permission, PermissionCatalog, Role, permission_value


@dataclass(frozen=True)
class MenuItem:
    path: str
    name: str
    permission: str


# Sidebar entries of the admin SPA, in display order.
MENU: tuple[MenuItem, ...] = (
    MenuItem("/dashboard", "Dashboard", Permission.DASHBOARD_VIEW.value),
    MenuItem("/pengunjung", "Pengunjung", Permission.PENGUNJUNG_READ.value),
    MenuItem("/homestay", "Homestay & Event", Permission.HOMESTAY_READ.value),
    MenuItem("/reservasi", "Reservasi", Permission.RESERVASI_READ.value),
    MenuItem("/pembayaran", "Pembayaran", Permission.PEMBAYARAN_READ.value),
    MenuItem("/laporan-keuangan", "Laporan Keuangan", Permission.LAPORAN_GENERATE.value),
    MenuItem("/users", "User Management", Permission.USERS_MANAGE.value),
    MenuItem("/admin", "Admin Panel", Permission.SETTINGS_MANAGE.value),
)


def _role_of(user: User | TokenClaims | Mapping[str, Any] | None) -> Role | None:
    if user is None:
        return None
    raw = user.get("role") if isinstance(user, Mapping) else getattr(user, "role", None)
    if raw is None:
        return None
    try:
        return Role(raw)
    except ValueError:
        return None


class PolicyMirror:
    """Read-only projection of the catalog for UI affordances."""

    def __init__(self, catalog: PermissionCatalog, menu: tuple[MenuItem, ...] = MENU) -> None:
        self._catalog = catalog
        self._menu = menu

    def has_permission(self, user: User | TokenClaims | Mapping[str, Any] | None, permission: Permission | str) -> bool:
        """Whether the UI should offer an action. False for no user or an unknown role."""
        role = _role_of(user)
        if role is None:
            return False
        return self._catalog.has_permission(role, permission_value(permission))

    def menu_for(self, user: User | TokenClaims | Mapping[str, Any] | None) -> list[MenuItem]:
        """Sidebar entries visible to the user."""
        return [item for item in self._menu if self.has_permission(user, item.permission)]

    def menu_entry(self, item: MenuItem) -> dict:
        """One sidebar entry with the roles allowed to open it, in Role order."""
        allowed = self._catalog.roles_with(item.permission)
        return {
            "path": item.path,
            "name": item.name,
            "permission": item.permission,
            "roles": [role.value for role in Role if role in allowed],
        }

    def role_entry(self, role: Role) -> dict:
        info = ROLE_INFO[role]
        return {
            "role": role.value,
            "name": info.name,
            "description": info.description,
            "permissions": sorted(self._catalog.grants_for(role)),
        }

    def snapshot(self) -> dict:
        """JSON-ready copy of the whole policy for the front end."""
        return {
            "roles": [self.role_entry(role) for role in Role],
            "menu": [self.menu_entry(m) for m in self._menu],
        }
