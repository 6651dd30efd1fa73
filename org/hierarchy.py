"""
org/hierarchy.py -- Hierarchy Store: Organisational Units and their Divisions.

Pattern: Repository + Data Mapper. HierarchyStore is the repository; the
_row_to_* functions are the mappers.

Name uniqueness:
  OU names are unique across all OUs, division names are unique within their
  OU. Both compare the trimmed, lowercased form (core.models.normalize_name).
  The database constraint decides; an IntegrityError on insert becomes
  DuplicateNameError, so concurrent creates cannot both succeed.

Delete policy:
  Deleting an OU or division that is still referenced raises InUseError
  instead of cascading or leaving dangling references. An OU is referenced
  by divisions, memberships, credentials and managers; a division by
  memberships and credentials. Callers remove the dependants first. The
  foreign keys back the checks, so a dependant inserted concurrently makes
  the DELETE fail with IntegrityError, which is also reported as InUseError.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import exists, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.errors import DuplicateNameError, InUseError, NotFoundError, ValidationError
from core.models import normalize_name
from core.schema import credentials, divisions, managed_divisions, managed_ous, memberships, now_iso, ous
from org.models import Division, OrganisationalUnit

logger = logging.getLogger("orgvault.hierarchy")

_division_columns = (divisions, ous.c.name.label("ou_name"))

# Checked before a delete to name the blocking dependant. A dependant added
# after these checks is caught by the foreign keys instead.
_OU_DEPENDANTS = (
    ("divisions", divisions.c.ou_id),
    ("memberships", memberships.c.ou_id),
    ("credentials", credentials.c.ou_id),
    ("managers", managed_ous.c.ou_id),
)
_DIVISION_DEPENDANTS = (
    ("memberships", memberships.c.division_id),
    ("credentials", credentials.c.division_id),
    ("managers", managed_divisions.c.division_id),
)


class HierarchyStore:
    """Repository for OrganisationalUnit and Division entities.

    Usage:
        store = HierarchyStore(engine)
        east = store.create_ou("East")
        sales = store.create_division("Sales", east.id)
        store.list_divisions()          # joined with OU names
        store.delete_division(sales.id)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Organisational Units
    # ------------------------------------------------------------------

    def create_ou(self, name: str) -> OrganisationalUnit:
        """Create an OU with no managers.

        Raises ValidationError for a blank name and DuplicateNameError when an
        OU with the same normalized name exists.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("OU name is required.")
        now = now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    ous.insert().values(
                        name=name,
                        normalized_name=normalize_name(name),
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateNameError(f"OU '{name}' already exists.") from exc
        ou_id = result.inserted_primary_key[0]
        logger.info("Created OU id=%s", ou_id)
        return self.get_ou(ou_id)

    def get_ou(self, ou_id: int) -> Optional[OrganisationalUnit]:
        """Fetch a single OU by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(ous.select().where(ous.c.id == ou_id)).fetchone()
            if row is None:
                return None
            managers = conn.execute(
                select(managed_ous.c.user_id).where(managed_ous.c.ou_id == ou_id).order_by(managed_ous.c.user_id)
            ).scalars()
            return _row_to_ou(row, list(managers))

    def list_ous(self) -> list[OrganisationalUnit]:
        """Return all OUs ordered by name, each with its manager ids."""
        with self.engine.connect() as conn:
            rows = conn.execute(ous.select().order_by(ous.c.normalized_name)).fetchall()
            manager_rows = conn.execute(
                select(managed_ous.c.ou_id, managed_ous.c.user_id).order_by(managed_ous.c.user_id)
            ).fetchall()
        managers: dict[int, list[int]] = {}
        for m in manager_rows:
            managers.setdefault(m.ou_id, []).append(m.user_id)
        return [_row_to_ou(r, managers.get(r.id, [])) for r in rows]

    def delete_ou(self, ou_id: int) -> None:
        """Delete an OU. Raises NotFoundError if absent, InUseError if still referenced."""
        with self.engine.connect() as conn:
            if conn.execute(select(ous.c.id).where(ous.c.id == ou_id)).fetchone() is None:
                raise NotFoundError("OU not found.")
            for label, column in _OU_DEPENDANTS:
                if conn.execute(select(exists().where(column == ou_id))).scalar():
                    raise InUseError(f"OU still has {label}; remove them first.")
            try:
                conn.execute(ous.delete().where(ous.c.id == ou_id))
                conn.commit()
            except IntegrityError as exc:
                raise InUseError("OU is still referenced; remove its dependants first.") from exc
        logger.info("Deleted OU id=%s", ou_id)

    # ------------------------------------------------------------------
    # Divisions
    # ------------------------------------------------------------------

    def create_division(self, name: str, ou_id: int) -> Division:
        """Create a division under an existing OU.

        Raises ValidationError for a blank name, NotFoundError for an unknown
        OU, and DuplicateNameError when the OU already has a division with the
        same normalized name. The same name under a different OU is fine.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Division name is required.")
        if self.get_ou(ou_id) is None:
            raise NotFoundError("OU not found.")
        now = now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    divisions.insert().values(
                        name=name,
                        normalized_name=normalize_name(name),
                        ou_id=ou_id,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateNameError(f"Division '{name}' already exists in this OU.") from exc
        division_id = result.inserted_primary_key[0]
        logger.info("Created division id=%s ou_id=%s", division_id, ou_id)
        return self.get_division(division_id)

    def get_division(self, division_id: int) -> Optional[Division]:
        """Fetch a single division, joined with its OU name. Returns None if not found."""
        stmt = (
            select(*_division_columns)
            .select_from(divisions.join(ous, divisions.c.ou_id == ous.c.id))
            .where(divisions.c.id == division_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
            if row is None:
                return None
            managers = conn.execute(
                select(managed_divisions.c.user_id)
                .where(managed_divisions.c.division_id == division_id)
                .order_by(managed_divisions.c.user_id)
            ).scalars()
            return _row_to_division(row, list(managers))

    def list_divisions(self, ou_id: Optional[int] = None) -> list[Division]:
        """Return divisions ordered by OU name then division name, optionally for one OU."""
        stmt = (
            select(*_division_columns)
            .select_from(divisions.join(ous, divisions.c.ou_id == ous.c.id))
            .order_by(ous.c.normalized_name, divisions.c.normalized_name)
        )
        if ou_id is not None:
            stmt = stmt.where(divisions.c.ou_id == ou_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            manager_rows = conn.execute(
                select(managed_divisions.c.division_id, managed_divisions.c.user_id).order_by(
                    managed_divisions.c.user_id
                )
            ).fetchall()
        managers: dict[int, list[int]] = {}
        for m in manager_rows:
            managers.setdefault(m.division_id, []).append(m.user_id)
        return [_row_to_division(r, managers.get(r.id, [])) for r in rows]

    def delete_division(self, division_id: int) -> None:
        """Delete a division. Raises NotFoundError if absent, InUseError if still referenced."""
        with self.engine.connect() as conn:
            if conn.execute(select(divisions.c.id).where(divisions.c.id == division_id)).fetchone() is None:
                raise NotFoundError("Division not found.")
            for label, column in _DIVISION_DEPENDANTS:
                if conn.execute(select(exists().where(column == division_id))).scalar():
                    raise InUseError(f"Division still has {label}; remove them first.")
            try:
                conn.execute(divisions.delete().where(divisions.c.id == division_id))
                conn.commit()
            except IntegrityError as exc:
                raise InUseError("Division is still referenced; remove its dependants first.") from exc
        logger.info("Deleted division id=%s", division_id)


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_ou(row, managers: list[int]) -> OrganisationalUnit:
    return OrganisationalUnit(
        id=row.id,
        name=row.name,
        normalized_name=row.normalized_name,
        managers=managers,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_division(row, managers: list[int]) -> Division:
    return Division(
        id=row.id,
        name=row.name,
        normalized_name=row.normalized_name,
        ou_id=row.ou_id,
        ou_name=row.ou_name,
        managers=managers,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
