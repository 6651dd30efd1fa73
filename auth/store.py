"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as org/ and vault/ stores).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Email uniqueness is enforced by the UNIQUE constraint on users.email; the
  IntegrityError is translated to DuplicateNameError here so a concurrent
  duplicate registration gets the same answer as a sequential one.

Layer rule: no imports from api/, org/, or vault/.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import User
from core.errors import DuplicateNameError, NotFoundError, ValidationError
from core.models import Identity, Role
from core.schema import managed_divisions, managed_ous, now_iso, users

logger = logging.getLogger("orgvault.auth")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        uid = store.create_user(User(firstname="Ada", lastname="L", email="ada@x.io", hashed_password=h))
        identity = store.get_identity(uid)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises DuplicateNameError if the (normalized) email is already taken.
        """
        email = normalize_email(user.email)
        if not email or not user.firstname.strip() or not user.lastname.strip() or not user.hashed_password:
            raise ValidationError("All fields are required.")
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    users.insert().values(
                        firstname=user.firstname.strip(),
                        lastname=user.lastname.strip(),
                        email=email,
                        hashed_password=user.hashed_password,
                        role=Role(user.role).value,
                        is_active=1 if user.is_active else 0,
                        created_at=now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateNameError("Email already in use.") from exc
        user_id = result.inserted_primary_key[0]
        logger.info("Created user id=%s role=%s", user_id, Role(user.role).value)
        return user_id

    def set_role(self, user_id: int, role: Role | str) -> User:
        """Replace the user's single effective role.

        The admin-only capability check is the caller's job
        (core.access.ensure_admin). Raises ValidationError for an unknown role
        and NotFoundError for an unknown user.
        """
        try:
            role = Role(role)
        except ValueError as exc:
            raise ValidationError(f"Invalid role: {role!r}") from exc
        with self.engine.connect() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(role=role.value))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("User not found.")
        logger.info("Set role user_id=%s role=%s", user_id, role.value)
        return self.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return (result or 0) > 0

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
            if row is None:
                return None
            ou_ids, division_ids = self._managed(conn, [user_id])
        return _row_to_user(row, ou_ids.get(user_id, ()), division_ids.get(user_id, ()))

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == normalize_email(email))).fetchone()
            if row is None:
                return None
            ou_ids, division_ids = self._managed(conn, [row.id])
        return _row_to_user(row, ou_ids.get(row.id, ()), division_ids.get(row.id, ()))

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(users.select().order_by(users.c.email)).fetchall()
            ou_ids, division_ids = self._managed(conn, [r.id for r in rows])
        return [_row_to_user(r, ou_ids.get(r.id, ()), division_ids.get(r.id, ())) for r in rows]

    def get_identity(self, user_id: int) -> Identity | None:
        """Return the per-request Identity for an active user, or None."""
        user = self.get_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return Identity(
            user_id=user.id,
            role=user.role,
            managed_ous=user.managed_ous,
            managed_divisions=user.managed_divisions,
        )

    @staticmethod
    def _managed(conn, user_ids: list[int]) -> tuple[dict[int, list[int]], dict[int, list[int]]]:
        """Fetch managed OU and division ids for a batch of users in two queries."""
        ou_ids: dict[int, list[int]] = {}
        division_ids: dict[int, list[int]] = {}
        if not user_ids:
            return ou_ids, division_ids
        for row in conn.execute(
            select(managed_ous.c.user_id, managed_ous.c.ou_id).where(managed_ous.c.user_id.in_(user_ids))
        ):
            ou_ids.setdefault(row.user_id, []).append(row.ou_id)
        for row in conn.execute(
            select(managed_divisions.c.user_id, managed_divisions.c.division_id).where(
                managed_divisions.c.user_id.in_(user_ids)
            )
        ):
            division_ids.setdefault(row.user_id, []).append(row.division_id)
        return ou_ids, division_ids


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, ou_ids, division_ids) -> User:
    return User(
        id=row.id,
        firstname=row.firstname,
        lastname=row.lastname,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        managed_ous=frozenset(ou_ids),
        managed_divisions=frozenset(division_ids),
        created_at=row.created_at,
        is_active=bool(row.is_active),
    )
