"""
tests/test_api_routes.py -- Integration tests for the OrgVault REST API.

These tests exercise the full stack: FastAPI routing -> auth dependency injection
-> stores -> response model serialization -> the shared error envelope.

Fixtures used (from conftest.py):
  - api: module-scoped namespace with client, stores, ids and per-role headers.
    Accounts: admin@example.com (admin), manager@example.com (manager),
    user@example.com (user), all with password "testpass123".

The database is shared by every test in this module, so each test creates
OUs with names of its own.
"""

from __future__ import annotations

from auth.models import User


def _ou_with_division(api, ou_name: str, division_name: str = "Sales"):
    ou = api.hierarchy.create_ou(ou_name)
    division = api.hierarchy.create_division(division_name, ou.id)
    return ou, division


def _new_user(api, email: str) -> int:
    return api.users.create_user(User(firstname="Extra", lastname="User", email=email, hashed_password="x"))


class TestAuthFailure:
    """Unauthenticated requests to protected routes must return 401."""

    def test_credentials_unauthenticated(self, api) -> None:
        resp = api.client.get("/api/v1/credentials")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_ous_unauthenticated(self, api) -> None:
        assert api.client.get("/api/v1/ous").status_code == 401

    def test_bad_token(self, api) -> None:
        resp = api.client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401


class TestAuthRoutes:
    def test_login_valid(self, api) -> None:
        resp = api.client.post("/api/v1/auth/login", json={"email": "Admin@Example.com", "password": "testpass123"})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["role"] == "admin"
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_invalid(self, api) -> None:
        resp = api.client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_me(self, api) -> None:
        resp = api.client.get("/api/v1/auth/me", headers=api.headers["manager"])
        assert resp.status_code == 200
        assert resp.json()["email"] == "manager@example.com"
        assert resp.json()["role"] == "manager"

    def test_register_creates_plain_user(self, api) -> None:
        body = {"firstname": "New", "lastname": "Person", "email": "new@example.com", "password": "longenough"}
        resp = api.client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 201, resp.text
        assert resp.json()["role"] == "user"

        dup = api.client.post("/api/v1/auth/register", json=body)
        assert dup.status_code == 409
        assert dup.json()["error"]["code"] == "duplicate_name"

    def test_scope_without_memberships(self, api) -> None:
        resp = api.client.get("/api/v1/auth/scope", headers=api.headers["user"])
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "no_access"


class TestUserManagement:
    def test_list_users_requires_manager_or_admin(self, api) -> None:
        assert api.client.get("/api/v1/users", headers=api.headers["user"]).status_code == 403
        resp = api.client.get("/api/v1/users", headers=api.headers["manager"])
        assert resp.status_code == 200
        emails = [u["email"] for u in resp.json()]
        assert "admin@example.com" in emails
        assert all("hashed_password" not in u for u in resp.json())

    def test_role_change_admin_only(self, api) -> None:
        target = _new_user(api, "role-change@example.com")

        denied = api.client.put(f"/api/v1/users/{target}/role", json={"role": "admin"}, headers=api.headers["manager"])
        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "forbidden"

        ok = api.client.put(f"/api/v1/users/{target}/role", json={"role": "manager"}, headers=api.headers["admin"])
        assert ok.status_code == 200
        assert ok.json()["role"] == "manager"

    def test_role_change_unknown_user(self, api) -> None:
        resp = api.client.put("/api/v1/users/9999/role", json={"role": "user"}, headers=api.headers["admin"])
        assert resp.status_code == 404


class TestHierarchyRoutes:
    def test_create_ou_admin_only(self, api) -> None:
        denied = api.client.post("/api/v1/ous", json={"name": "Nope"}, headers=api.headers["manager"])
        assert denied.status_code == 403

        resp = api.client.post("/api/v1/ous", json={"name": "Routes OU"}, headers=api.headers["admin"])
        assert resp.status_code == 201
        assert resp.json()["name"] == "Routes OU"

    def test_duplicate_division_is_warning(self, api) -> None:
        ou = api.hierarchy.create_ou("Dup OU")
        first = api.client.post("/api/v1/divisions", json={"name": "Ops", "ou_id": ou.id}, headers=api.headers["admin"])
        assert first.status_code == 201
        dup = api.client.post("/api/v1/divisions", json={"name": " OPS ", "ou_id": ou.id}, headers=api.headers["admin"])
        assert dup.status_code == 409
        assert dup.json()["error"] == {
            "code": "duplicate_name",
            "message": dup.json()["error"]["message"],
            "detail": None,
            "severity": "warning",
        }

    def test_delete_ou_in_use(self, api) -> None:
        ou, _division = _ou_with_division(api, "Busy OU")
        resp = api.client.delete(f"/api/v1/ous/{ou.id}", headers=api.headers["admin"])
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "in_use"

    def test_delete_empty_division(self, api) -> None:
        _ou, division = _ou_with_division(api, "Tidy OU")
        resp = api.client.delete(f"/api/v1/divisions/{division.id}", headers=api.headers["admin"])
        assert resp.status_code == 204

    def test_destinations(self, api) -> None:
        ou, division = _ou_with_division(api, "Dest OU", "Billing")
        rows = api.client.get("/api/v1/destinations", headers=api.headers["user"]).json()
        assert {"ou_id": ou.id, "ou_name": "Dest OU", "division_id": division.id, "division_name": "Billing"} in rows


class TestMembershipRoutes:
    def test_division_assignment_duplicate(self, api) -> None:
        _ou, division = _ou_with_division(api, "Member OU")
        uid = _new_user(api, "member@example.com")
        body = {"user_id": uid, "division_id": division.id}

        first = api.client.post("/api/v1/memberships/divisions", json=body, headers=api.headers["admin"])
        assert first.status_code == 201, first.text
        assert first.json()["kind"] == "division"

        dup = api.client.post("/api/v1/memberships/divisions", json=body, headers=api.headers["admin"])
        assert dup.status_code == 409
        assert dup.json()["error"]["severity"] == "warning"

        members = api.client.get(f"/api/v1/memberships/divisions/{division.id}", headers=api.headers["manager"])
        assert [m["user_id"] for m in members.json()] == [uid]

        gone = api.client.delete(
            f"/api/v1/memberships/divisions/{division.id}/users/{uid}", headers=api.headers["admin"]
        )
        assert gone.status_code == 204

    def test_manager_assignment_idempotent(self, api) -> None:
        ou = api.hierarchy.create_ou("Managed OU")
        body = {"user_id": api.ids["manager"], "ou_id": ou.id}
        for _ in range(2):
            resp = api.client.post("/api/v1/memberships/ou-managers", json=body, headers=api.headers["admin"])
            assert resp.status_code == 200
        assert api.hierarchy.get_ou(ou.id).managers == [api.ids["manager"]]

    def test_user_sees_only_own_memberships(self, api) -> None:
        own = api.client.get(f"/api/v1/memberships/users/{api.ids['user']}", headers=api.headers["user"])
        assert own.status_code == 200
        other = api.client.get(f"/api/v1/memberships/users/{api.ids['admin']}", headers=api.headers["user"])
        assert other.status_code == 403


class TestCredentialRoutes:
    def test_manager_flow(self, api) -> None:
        """Manager of one OU lists, creates and updates there, and is denied elsewhere."""
        mine, mine_div = _ou_with_division(api, "Cred Mine")
        other, other_div = _ou_with_division(api, "Cred Other")
        api.registry.assign_manager(api.ids["manager"], mine.id)
        foreign = api.catalog.create(other.id, other_div.id, "Foreign", "svc", "pw")

        created = api.client.post(
            "/api/v1/credentials",
            json={
                "ou_id": mine.id,
                "division_id": mine_div.id,
                "name": "Mine",
                "username": "svc",
                "secret": "first",
            },
            headers=api.headers["manager"],
        )
        assert created.status_code == 201, created.text
        cred_id = created.json()["id"]

        listed = api.client.get("/api/v1/credentials", headers=api.headers["manager"]).json()
        names = {c["name"] for c in listed}
        assert "Mine" in names
        assert "Foreign" not in names

        patched = api.client.patch(
            f"/api/v1/credentials/{cred_id}", json={"username": "svc2", "secret": ""}, headers=api.headers["manager"]
        )
        assert patched.status_code == 200
        assert patched.json()["secret"] == "first"
        assert patched.json()["username"] == "svc2"

        denied = api.client.patch(
            f"/api/v1/credentials/{foreign.id}", json={"name": "stolen"}, headers=api.headers["manager"]
        )
        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "forbidden"

    def test_missing_field_message(self, api) -> None:
        ou, division = _ou_with_division(api, "Cred Blank")
        resp = api.client.post(
            "/api/v1/credentials",
            json={"ou_id": ou.id, "division_id": division.id, "name": "", "username": "u", "secret": "s"},
            headers=api.headers["admin"],
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "All fields except notes are required."

    def test_user_without_memberships_gets_no_access(self, api) -> None:
        resp = api.client.get("/api/v1/credentials", headers=api.headers["user"])
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "no_access"
