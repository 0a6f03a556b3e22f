"""Shared helpers for building isolated user stores in tests."""

import itertools
from dataclasses import dataclass

from fastapi.testclient import TestClient

from auth.credentials import hash_password
from auth.models import User
from auth.permissions import Role
from auth.store import UserStore
from auth.tokens import TokenCodec

_db_counter = itertools.count()

PASSWORD = "rahasia123"


def make_store(prefix: str = "test_auth") -> UserStore:
    """Create a UserStore on a fresh named shared-memory database.

    Named shared-memory URIs (not plain :memory:) are required because
    TestClient runs sync route handlers in a thread pool. Plain :memory: DBs
    are per-connection and would present a blank schema to each worker thread.
    """
    url = f"sqlite:///file:{prefix}_{next(_db_counter)}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url)


def add_user(store: UserStore, username: str, role: Role, password: str = PASSWORD, is_active: bool = True) -> User:
    """Insert a user and return it as stored (with id and created_at)."""
    uid = store.create_user(
        User(
            username=username,
            email=f"{username}@desawisata.test",
            role=role,
            hashed_password=hash_password(password),
            is_active=is_active,
        )
    )
    return store.get_by_id(uid)


@dataclass
class ApiContext:
    """What the api fixture yields: a started client, its store and one user per role."""

    client: TestClient
    store: UserStore
    codec: TokenCodec
    users: dict[Role, User]

    def token_for(self, role: Role) -> str:
        return self.codec.issue(self.users[role])

    def headers_for(self, role: Role) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token_for(role)}"}
