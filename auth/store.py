"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Roles are stored as their enum value ("ADMIN", "FINANCE", ...); the mapper
  also accepts the lower-case spellings used by older databases.

Last-admin protection:
  delete_user() and update_user() accept protect_last_admin=True. The guard is
  part of the DELETE/UPDATE statement itself, and guarded writes are
  serialized per store, so two administrators removing each other at the same
  moment cannot both succeed. A blocked write raises LastAdminError.

DB URL: passed in by the caller (Settings.database_url in production).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, and_, create_engine, event, func, not_, or_, select
from sqlalchemy.engine import Engine

from auth.models import User
from auth.permissions import Role

# Columns an update may touch. id, username and created_at are immutable.
_MUTABLE_FIELDS = frozenset({"email", "role", "is_active", "hashed_password"})


class LastAdminError(Exception):
    """The write would leave the service without an active ADMIN."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(100), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=Role.STAFF.value),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", Text),  # ISO 8601 timestamp of last successful login
)


def _is_active_admin(table):
    return and_(table.c.role == Role.ADMIN.value, table.c.is_active == 1)


def _keeps_an_admin(user_id: int):
    """WHERE clause: the row is not an active ADMIN, or another active ADMIN exists.

    The count runs over an alias so it is not correlated with the table being
    deleted from or updated.
    """
    others = _users.alias("other_admins")
    other_admins = (
        select(func.count())
        .select_from(others)
        .where(and_(_is_active_admin(others), others.c.id != user_id))
        .scalar_subquery()
    )
    return or_(not_(_is_active_admin(_users)), other_admins > 0)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(db_url=get_settings().database_url)
        store.create_user(User(username="admin", email="admin@desawisata.com",
                               role=Role.ADMIN, hashed_password=hash_password("secret")))
        user = store.get_by_username("admin")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._admin_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists (first-run detection)."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Callers translate that into a 409.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    is_active=1 if user.is_active else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, search: str = "", limit: int | None = None, offset: int = 0) -> list[User]:
        """Return users ordered by username, optionally filtered by a username/email substring."""
        query = _users.select().order_by(_users.c.username)
        if search:
            pattern = f"%{search}%"
            query = query.where(_users.c.username.like(pattern) | _users.c.email.like(pattern))
        if limit is not None:
            query = query.limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self, search: str = "") -> int:
        """Count users matching the same filter as list_users()."""
        query = select(func.count()).select_from(_users)
        if search:
            pattern = f"%{search}%"
            query = query.where(_users.c.username.like(pattern) | _users.c.email.like(pattern))
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def update_user(self, user_id: int, protect_last_admin: bool = False, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: email, role, is_active, hashed_password. Unknown keys
        raise ValueError rather than being silently ignored.

        With protect_last_admin=True, an update that demotes or deactivates
        the last active ADMIN is not applied and raises LastAdminError.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value

        removes_admin = fields.get("is_active") == 0 or fields.get("role", Role.ADMIN.value) != Role.ADMIN.value
        stmt = _users.update().where(_users.c.id == user_id).values(**fields)
        if not (protect_last_admin and removes_admin):
            return self._execute_write(stmt) > 0
        with self._admin_guard:
            return self._guarded_write(stmt.where(_keeps_an_admin(user_id)), user_id)

    def count_active_admins(self) -> int:
        """Return the number of active ADMIN users."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users).where(_is_active_admin(_users))).scalar()
        return result or 0

    def delete_user(self, user_id: int, protect_last_admin: bool = False) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        With protect_last_admin=True, deleting the last active ADMIN raises
        LastAdminError instead. The self-deletion rule is the caller's job.
        """
        stmt = _users.delete().where(_users.c.id == user_id)
        if not protect_last_admin:
            return self._execute_write(stmt) > 0
        with self._admin_guard:
            return self._guarded_write(stmt.where(_keeps_an_admin(user_id)), user_id)

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        self._execute_write(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute_write(self, stmt) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(stmt)
            conn.commit()
        return result.rowcount

    def _guarded_write(self, stmt, user_id: int) -> bool:
        # Caller holds _admin_guard. Zero rows means missing user or last admin.
        if self._execute_write(stmt) > 0:
            return True
        if self.get_by_id(user_id) is not None:
            raise LastAdminError()
        return False


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        is_active=bool(row.is_active),
        created_at=row.created_at,
        last_login=row.last_login,
    )
