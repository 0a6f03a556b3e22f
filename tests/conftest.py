"""
tests/conftest.py -- Shared test fixtures for the Desa Wisata admin API.

This module provides:
  - _patch_lifespan(): wires a test store into app.state via install_auth_state
  - api: TestClient plus one user of every role, with token helpers
  - empty_api: TestClient over a store with no users (first-run setup)
  - store: an empty isolated UserStore for unit tests
  - codec / catalog: the process-wide auth objects the app uses

Store construction helpers live in tests/helpers.py.

DEBUG must be set before any auth/core import so get_settings() generates a
SECRET_KEY in dev mode instead of raising ConfigurationError. Rate limiting is
disabled so repeated logins in one module are not throttled. ALLOWED_HOSTS
adds the TestClient host name.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
# TestClient sends Host: testserver, which production hosts do not include.
os.environ.setdefault("ALLOWED_HOSTS", '["localhost", "127.0.0.1", "testserver"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app, install_auth_state
from auth.permissions import PermissionCatalog, Role, get_catalog
from auth.store import UserStore
from auth.tokens import TokenCodec, get_token_codec
from tests.helpers import ApiContext, add_user, make_store


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Uses the same install_auth_state() as production so the tests exercise the
    real wiring of catalog, codec and mirror, but with an isolated store.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        install_auth_state(app, user_store)
        yield

    return test_lifespan


def _client_for(user_store: UserStore) -> TestClient:
    app.router.lifespan_context = _patch_lifespan(user_store)
    return TestClient(app, raise_server_exceptions=True)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def codec() -> TokenCodec:
    return get_token_codec()


@pytest.fixture
def catalog() -> PermissionCatalog:
    return get_catalog()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = make_store("test_unit")
    yield s
    s.close()


@pytest.fixture(scope="module")
def api() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for integration tests.

    One user per role is created before the client starts:
    admin / keuangan / staff / resepsionis, all with password PASSWORD.
    Module-scoped: tests that mutate these users must restore them.
    """
    user_store = make_store("test_api")
    users = {
        Role.ADMIN: add_user(user_store, "admin", Role.ADMIN),
        Role.FINANCE: add_user(user_store, "keuangan", Role.FINANCE),
        Role.STAFF: add_user(user_store, "staff", Role.STAFF),
        Role.RECEPTIONIST: add_user(user_store, "resepsionis", Role.RECEPTIONIST),
    }

    with _client_for(user_store) as client:
        yield ApiContext(client=client, store=user_store, codec=get_token_codec(), users=users)

    user_store.close()


@pytest.fixture
def empty_api() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) over a database with no users.

    Do not combine with the api fixture in one module: both install their
    store on the shared app.state.
    """
    user_store = make_store("test_setup")
    with _client_for(user_store) as client:
        yield client, user_store
    user_store.close()
