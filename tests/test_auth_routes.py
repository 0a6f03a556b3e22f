"""
tests/test_auth_routes.py -- Integration tests for login, session and policy routes.

These tests exercise the full stack: FastAPI routing -> credential verifier ->
token codec -> guard -> policy mirror -> response model serialization.

Coverage:
  - POST /api/login and /api/auth/login: token shape, no-store, identical failure bodies
  - Empty credentials fail with 400 before any lookup
  - GET /api/auth/me, /api/auth/permissions, /api/auth/policy
  - PUT /api/auth/profile: email and password changes
  - POST /api/setup refuses once users exist; POST /api/auth/logout
  - GET /api/dashboard for every role

Fixtures used (from conftest.py):
  - api: ApiContext with one user per role, all with password PASSWORD.
"""

from __future__ import annotations

import pytest

from auth.permissions import Role
from tests.helpers import PASSWORD, ApiContext, add_user


class TestLogin:
    @pytest.mark.parametrize("path", ["/api/login", "/api/auth/login"])
    def test_login_returns_token_and_user(self, api: ApiContext, path: str) -> None:
        resp = api.client.post(path, json={"username": "keuangan", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        body = resp.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 86400
        assert body["user"] == {
            "id": api.users[Role.FINANCE].id,
            "username": "keuangan",
            "email": "keuangan@desawisata.test",
            "role": "FINANCE",
        }
        assert "hashed_password" not in body["user"]

    def test_issued_token_verifies_to_the_user(self, api: ApiContext) -> None:
        token = api.client.post("/api/login", json={"username": "resepsionis", "password": PASSWORD}).json()["token"]
        claims = api.codec.verify(token)
        assert claims.username == "resepsionis"
        assert claims.role is Role.RECEPTIONIST

    def test_issued_token_opens_protected_routes(self, api: ApiContext) -> None:
        token = api.client.post("/api/login", json={"username": "staff", "password": PASSWORD}).json()["token"]
        resp = api.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["username"] == "staff"

    def test_failure_bodies_are_identical(self, api: ApiContext) -> None:
        """Unknown user, wrong password and inactive account must be indistinguishable."""
        add_user(api.store, "nonaktif", Role.STAFF, is_active=False)
        unknown = api.client.post("/api/login", json={"username": "tidak_ada", "password": PASSWORD})
        wrong = api.client.post("/api/login", json={"username": "admin", "password": "salah12345"})
        inactive = api.client.post("/api/login", json={"username": "nonaktif", "password": PASSWORD})
        assert unknown.status_code == wrong.status_code == inactive.status_code == 401
        assert unknown.content == wrong.content == inactive.content
        assert unknown.json() == {"error": "Invalid username or password.", "code": "bad_credentials"}

    def test_failure_advertises_bearer_and_is_not_cached(self, api: ApiContext) -> None:
        resp = api.client.post("/api/login", json={"username": "admin", "password": "salah12345"})
        assert resp.headers["www-authenticate"] == "Bearer"
        assert resp.headers["cache-control"] == "no-store"

    @pytest.mark.parametrize(
        "body",
        [
            {"username": "", "password": PASSWORD},
            {"username": "admin", "password": ""},
            {"username": "   ", "password": PASSWORD},
            {"username": "admin", "password": "   "},
            {},
        ],
    )
    def test_empty_fields_are_400(self, api: ApiContext, body: dict) -> None:
        resp = api.client.post("/api/login", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Username and password are required.", "code": "validation_error"}

    def test_response_never_echoes_the_password(self, api: ApiContext) -> None:
        resp = api.client.post("/api/login", json={"username": "admin", "password": "rahasia-bocor"})
        assert "rahasia-bocor" not in resp.text


class TestSession:
    def test_me_requires_a_token(self, api: ApiContext) -> None:
        resp = api.client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Token required.", "code": "unauthorized"}

    def test_me_rejects_a_garbage_token(self, api: ApiContext) -> None:
        resp = api.client.get("/api/auth/me", headers={"Authorization": "Bearer rusak"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or expired token.", "code": "unauthorized"}

    def test_me_returns_claims(self, api: ApiContext) -> None:
        resp = api.client.get("/api/auth/me", headers=api.headers_for(Role.FINANCE))
        assert resp.status_code == 200
        body = resp.json()
        assert body["user_id"] == api.users[Role.FINANCE].id
        assert body["username"] == "keuangan"
        assert body["role"] == "FINANCE"
        assert body["expires_at"]

    def test_logout_acknowledges(self, api: ApiContext) -> None:
        resp = api.client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out."}

    def test_setup_refuses_once_users_exist(self, api: ApiContext) -> None:
        resp = api.client.post(
            "/api/setup",
            json={"username": "penyusup", "email": "penyusup@desawisata.test", "password": "rahasia123"},
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "setup_complete"
        assert api.store.get_by_username("penyusup") is None


class TestPolicy:
    def test_permissions_for_receptionist(self, api: ApiContext) -> None:
        resp = api.client.get("/api/auth/permissions", headers=api.headers_for(Role.RECEPTIONIST))
        assert resp.status_code == 200
        body = resp.json()
        assert body["username"] == "resepsionis"
        assert body["role"]["role"] == "RECEPTIONIST"
        assert body["role"]["name"] == "Resepsionis"
        assert "pembayaran:read" not in body["role"]["permissions"]
        assert "pengunjung:create" in body["role"]["permissions"]
        assert [m["path"] for m in body["menu"]] == ["/dashboard", "/pengunjung", "/homestay", "/reservasi"]

    def test_permissions_for_admin_is_the_wildcard(self, api: ApiContext) -> None:
        body = api.client.get("/api/auth/permissions", headers=api.headers_for(Role.ADMIN)).json()
        assert body["role"]["permissions"] == ["*"]
        assert len(body["menu"]) == 8

    def test_policy_lists_every_role(self, api: ApiContext) -> None:
        resp = api.client.get("/api/auth/policy", headers=api.headers_for(Role.STAFF))
        assert resp.status_code == 200
        body = resp.json()
        assert [r["role"] for r in body["roles"]] == ["ADMIN", "FINANCE", "STAFF", "RECEPTIONIST"]
        assert {m["path"] for m in body["menu"]} >= {"/dashboard", "/users"}

    def test_policy_menu_lists_allowed_roles(self, api: ApiContext) -> None:
        body = api.client.get("/api/auth/policy", headers=api.headers_for(Role.STAFF)).json()
        roles_by_path = {m["path"]: m["roles"] for m in body["menu"]}
        assert roles_by_path["/laporan-keuangan"] == ["ADMIN", "FINANCE"]
        assert roles_by_path["/homestay"] == ["ADMIN", "STAFF", "RECEPTIONIST"]

    def test_policy_requires_a_token(self, api: ApiContext) -> None:
        assert api.client.get("/api/auth/policy").status_code == 401


class TestProfile:
    def test_change_email(self, api: ApiContext) -> None:
        user = add_user(api.store, "profil_email", Role.STAFF)
        headers = {"Authorization": f"Bearer {api.codec.issue(user)}"}
        resp = api.client.put("/api/auth/profile", json={"email": "baru@desawisata.test"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["email"] == "baru@desawisata.test"

    def test_change_password_requires_current_password(self, api: ApiContext) -> None:
        user = add_user(api.store, "profil_pw", Role.STAFF)
        headers = {"Authorization": f"Bearer {api.codec.issue(user)}"}
        resp = api.client.put(
            "/api/auth/profile",
            json={"current_password": "salah12345", "new_password": "sandibaru123"},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "bad_current_password"

        resp = api.client.put(
            "/api/auth/profile",
            json={"current_password": PASSWORD, "new_password": "sandibaru123"},
            headers=headers,
        )
        assert resp.status_code == 200
        login = api.client.post("/api/login", json={"username": "profil_pw", "password": "sandibaru123"})
        assert login.status_code == 200

    def test_new_password_over_72_bytes_is_422(self, api: ApiContext) -> None:
        resp = api.client.put(
            "/api/auth/profile",
            json={"current_password": PASSWORD, "new_password": "\u00e9" * 40},
            headers=api.headers_for(Role.STAFF),
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_error"

    def test_over_long_login_password_is_401(self, api: ApiContext) -> None:
        resp = api.client.post("/api/login", json={"username": "admin", "password": "\u00e9" * 40})
        assert resp.status_code == 401
        assert resp.json()["code"] == "bad_credentials"

    def test_empty_update_is_400(self, api: ApiContext) -> None:
        resp = api.client.put("/api/auth/profile", json={}, headers=api.headers_for(Role.STAFF))
        assert resp.status_code == 400
        assert resp.json()["code"] == "no_changes"

    def test_email_in_use_is_409(self, api: ApiContext) -> None:
        resp = api.client.put(
            "/api/auth/profile",
            json={"email": "admin@desawisata.test"},
            headers=api.headers_for(Role.RECEPTIONIST),
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "conflict"

    def test_profile_cannot_change_role(self, api: ApiContext) -> None:
        resp = api.client.put(
            "/api/auth/profile",
            json={"role": "ADMIN"},
            headers=api.headers_for(Role.STAFF),
        )
        assert resp.status_code == 400
        assert api.store.get_by_id(api.users[Role.STAFF].id).role is Role.STAFF


class TestDashboard:
    @pytest.mark.parametrize("role", list(Role))
    def test_every_role_reaches_the_dashboard(self, api: ApiContext, role: Role) -> None:
        resp = api.client.get("/api/dashboard", headers=api.headers_for(role))
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == f"Welcome {api.users[role].username}"
        assert body["role"] == role.value

    def test_admin_access_is_the_wildcard(self, api: ApiContext) -> None:
        body = api.client.get("/api/dashboard", headers=api.headers_for(Role.ADMIN)).json()
        assert body["access"] == ["*"]

    def test_finance_access_and_menu(self, api: ApiContext) -> None:
        body = api.client.get("/api/dashboard", headers=api.headers_for(Role.FINANCE)).json()
        assert "pembayaran:read" in body["access"]
        assert [m["path"] for m in body["menu"]] == ["/dashboard", "/reservasi", "/pembayaran", "/laporan-keuangan"]

    def test_dashboard_requires_a_token(self, api: ApiContext) -> None:
        assert api.client.get("/api/dashboard").status_code == 401
