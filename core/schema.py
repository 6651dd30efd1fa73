"""
core/schema.py -- SQLAlchemy Core schema and engine factory shared by every store.

Uses SQLAlchemy Core (not ORM) so the dataclasses in core/, auth/, org/ and
vault/ remain the authoritative domain representation. All stores share one
engine because membership writes touch users, OUs and divisions together.

Uniqueness lives in the schema, not in application code:
  ous              UNIQUE(normalized_name)
  divisions        UNIQUE(ou_id, normalized_name)
  users            UNIQUE(email)
  managed_ous      UNIQUE(user_id, ou_id)
  memberships      UNIQUE(user_id, ou_id, division_id)
                   partial UNIQUE(user_id, ou_id) WHERE division_id IS NULL

The partial index is required because both SQLite and PostgreSQL treat NULLs
as distinct in a plain UNIQUE constraint, which would allow duplicate OU-only
memberships.

insert_if_absent() is the only concurrency control for assignments: an
INSERT ... ON CONFLICT DO NOTHING decided by the database, never a
read-then-write.

Layer rule: core/ is the kernel. No imports from api/, auth/, org/, or vault/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine

from core.config import get_settings

_INSERT_BY_DIALECT = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("firstname", String(100), nullable=False),
    Column("lastname", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # stored trimmed + lowercased
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

ous = Table(
    "ous",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("normalized_name", String(255), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

divisions = Table(
    "divisions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("normalized_name", String(255), nullable=False),
    Column("ou_id", Integer, ForeignKey("ous.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("ou_id", "normalized_name", name="uq_division_ou_name"),
)

managed_ous = Table(
    "managed_ous",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("ou_id", Integer, ForeignKey("ous.id"), nullable=False),
    UniqueConstraint("user_id", "ou_id", name="uq_managed_ou"),
)

# Reserved: read into Identity.managed_divisions, no operation writes it yet.
managed_divisions = Table(
    "managed_divisions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("division_id", Integer, ForeignKey("divisions.id"), nullable=False),
    UniqueConstraint("user_id", "division_id", name="uq_managed_division"),
)

memberships = Table(
    "memberships",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("ou_id", Integer, ForeignKey("ous.id"), nullable=False),
    Column("division_id", Integer, ForeignKey("divisions.id")),  # NULL = OU-only membership
    Column("assigned_at", String(32), nullable=False),
    UniqueConstraint("user_id", "ou_id", "division_id", name="uq_membership"),
)

Index(
    "uq_membership_ou_only",
    memberships.c.user_id,
    memberships.c.ou_id,
    unique=True,
    sqlite_where=memberships.c.division_id.is_(None),
    postgresql_where=memberships.c.division_id.is_(None),
)

credentials = Table(
    "credentials",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("ou_id", Integer, ForeignKey("ous.id"), nullable=False),
    Column("division_id", Integer, ForeignKey("divisions.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("username", String(255), nullable=False),
    Column("secret", Text, nullable=False),  # plaintext at rest
    Column("notes", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def insert_if_absent(conn: Connection, table: Table, **values) -> bool:
    """Insert a row unless it would violate a unique constraint.

    Returns True if the row was inserted, False if an equal row already
    existed. The decision is made by the database in a single statement, so
    two concurrent callers can never both see True for the same key.
    """
    insert = _INSERT_BY_DIALECT[conn.dialect.name]
    result = conn.execute(insert(table).values(**values).on_conflict_do_nothing())
    return result.rowcount > 0


# ---------------------------------------------------------------------------
# SQLite connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. SQLite ignores REFERENCES clauses unless
    foreign_keys is on, and HierarchyStore relies on them to refuse deleting
    an OU or division that gained a dependant after its own checks ran.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def create_db_engine(db_url: str | None = None) -> Engine:
    """Create the shared engine and make sure every table exists.

    Usage:
        engine = create_db_engine()                               # DATABASE_URL
        engine = create_db_engine("sqlite:///:memory:")           # tests
        engine = create_db_engine("postgresql+psycopg://u:pw@h/db")
    """
    db_url = db_url or get_settings().database_url
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a thread pool, so one pooled
        # connection may be used from several threads.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if engine.dialect.name not in _INSERT_BY_DIALECT:
        raise ValueError(f"Unsupported database dialect: {engine.dialect.name}")
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine
