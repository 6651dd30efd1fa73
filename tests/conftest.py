"""
tests/conftest.py -- Shared test fixtures for OrgVault unit and integration tests.

This module provides:
  - engine / users / hierarchy / registry / catalog: stores on a fresh
    in-memory SQLite engine per test (single-threaded unit tests)
  - make_user: fixture returning a helper that inserts a user with a given role
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api: module-scoped TestClient plus admin / manager / user tokens

Design: unit tests use plain sqlite:///:memory:, which SQLAlchemy serves from
one connection per thread. The API fixture uses a file database under
tmp_path_factory because TestClient runs sync route handlers in a thread
pool, and each worker thread would otherwise see its own blank schema.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.models import Role
from core.schema import create_db_engine
from org.hierarchy import HierarchyStore
from org.membership import MembershipRegistry
from vault.catalog import CredentialCatalog

# Computed once: bcrypt is deliberately slow.
_TEST_PASSWORD = "testpass123"
_TEST_HASH = hash_password(_TEST_PASSWORD)


def _create_user(users: UserStore, email: str, role: Role = Role.user, firstname: str = "Test") -> int:
    """Insert an active user with the shared test password and return its id."""
    return users.create_user(
        User(
            firstname=firstname,
            lastname="User",
            email=email,
            role=role,
            hashed_password=_TEST_HASH,
        )
    )


# ---------------------------------------------------------------------------
# Unit-test fixtures -- fresh in-memory database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def hierarchy(engine) -> HierarchyStore:
    return HierarchyStore(engine)


@pytest.fixture
def registry(engine) -> MembershipRegistry:
    return MembershipRegistry(engine)


@pytest.fixture
def catalog(engine) -> CredentialCatalog:
    return CredentialCatalog(engine)


@pytest.fixture
def make_user(users):
    """Return a helper: make_user(email, role=Role.user) -> user id."""

    def _make(email: str, role: Role = Role.user) -> int:
        return _create_user(users, email, role)

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(engine):
    """Return an async context manager that replaces the real lifespan.

    Wires stores built on the test engine into app.state so TestClient
    routes never touch the configured DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.user_store = UserStore(engine)
        app.state.hierarchy = HierarchyStore(engine)
        app.state.registry = MembershipRegistry(engine)
        app.state.catalog = CredentialCatalog(engine)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api(tmp_path_factory) -> Generator[SimpleNamespace, None, None]:
    """Yield a namespace with the TestClient, stores, user ids and auth headers.

    Three accounts are created before the client starts:
      admin   admin@example.com    Role.admin
      manager manager@example.com  Role.manager (no OUs yet)
      user    user@example.com     Role.user    (no memberships yet)

    base_url uses localhost so TrustedHostMiddleware accepts the requests.
    """
    db_path = tmp_path_factory.mktemp("api") / "orgvault.db"
    eng = create_db_engine(f"sqlite:///{db_path}")
    users = UserStore(eng)

    ids = {
        "admin": _create_user(users, "admin@example.com", Role.admin, firstname="Admin"),
        "manager": _create_user(users, "manager@example.com", Role.manager, firstname="Manager"),
        "user": _create_user(users, "user@example.com", Role.user, firstname="Plain"),
    }
    headers = {
        name: {"Authorization": f"Bearer {create_access_token(uid, f'{name}@example.com', name)}"}
        for name, uid in ids.items()
    }

    app.router.lifespan_context = _patch_lifespan(eng)
    limiter.reset()

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield SimpleNamespace(
            client=client,
            engine=eng,
            ids=ids,
            headers=headers,
            hierarchy=HierarchyStore(eng),
            registry=MembershipRegistry(eng),
            catalog=CredentialCatalog(eng),
            users=users,
        )

    eng.dispose()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Keep per-route limits from leaking between tests in the same process."""
    limiter.reset()
    yield
