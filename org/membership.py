"""
org/membership.py -- Membership Registry: who belongs to which OU / division.

Four kinds of assignment, each independently idempotent and revocable:

  assign / revoke                  division membership (user, OU, division)
  assign_manager / revoke_manager  OU manager flag + OU-only membership
  assign_member / revoke_member    OU-only membership (division_id NULL)
  memberships_of / members_of      annotated read queries

Duplicate handling differs by path:
  assign() and assign_member() raise DuplicateMembershipError when the row
  already exists, because the admin UI shows a specific "already assigned"
  notice. assign_manager() is silently idempotent on both of its writes.

Concurrency: every insert goes through core.schema.insert_if_absent(), a
single INSERT ... ON CONFLICT DO NOTHING backed by the unique indexes. Two
concurrent assignments for the same key store exactly one row; the loser
sees either silent success or DuplicateMembershipError, never a second row.

revoke_manager() deliberately leaves the OU-only membership in place: no
longer managing an OU does not remove base access to it.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine

from core.access import resolve_read_scope
from core.errors import DuplicateMembershipError, NotFoundError
from core.models import DivisionMembership, Identity, Membership, OUMembership, ReadScope
from core.schema import divisions, insert_if_absent, managed_ous, memberships, now_iso, ous, users

logger = logging.getLogger("orgvault.membership")

_ou_alias = ous.alias("membership_ou")

_annotated = (
    select(
        memberships,
        _ou_alias.c.name.label("ou_name"),
        divisions.c.name.label("division_name"),
        divisions.c.ou_id.label("division_ou_id"),
        users.c.firstname,
        users.c.lastname,
        users.c.email,
    )
    .select_from(
        memberships.join(_ou_alias, memberships.c.ou_id == _ou_alias.c.id)
        .outerjoin(divisions, memberships.c.division_id == divisions.c.id)
        .join(users, memberships.c.user_id == users.c.id)
    )
    .order_by(_ou_alias.c.normalized_name, divisions.c.normalized_name, memberships.c.id)
)


class MembershipRegistry:
    """Repository for membership rows and OU-manager assignments.

    Usage:
        registry = MembershipRegistry(engine)
        registry.assign(user_id, division_id)        # DuplicateMembershipError on repeat
        registry.assign_manager(user_id, ou_id)      # silent on repeat
        scope = registry.read_scope(identity)        # NoAccessError if empty
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Division membership
    # ------------------------------------------------------------------

    def assign(self, user_id: int, division_id: int) -> DivisionMembership:
        """Add a user to a division.

        The OU is taken from the division row, never from the caller.
        Raises NotFoundError for an unknown user or division and
        DuplicateMembershipError if the user is already in the division.
        """
        with self.engine.connect() as conn:
            self._require_user(conn, user_id)
            ou_id = conn.execute(select(divisions.c.ou_id).where(divisions.c.id == division_id)).scalar()
            if ou_id is None:
                raise NotFoundError("Division not found.")
            inserted = insert_if_absent(
                conn,
                memberships,
                user_id=user_id,
                ou_id=ou_id,
                division_id=division_id,
                assigned_at=now_iso(),
            )
            conn.commit()
        if not inserted:
            raise DuplicateMembershipError("User is already assigned to this division.")
        logger.info("Assigned user_id=%s to division_id=%s", user_id, division_id)
        return self._fetch_one(
            (memberships.c.user_id == user_id) & (memberships.c.division_id == division_id)
        )

    def revoke(self, user_id: int, division_id: int) -> None:
        """Remove a user from a division. Raises NotFoundError if not assigned."""
        with self.engine.connect() as conn:
            result = conn.execute(
                memberships.delete().where(
                    (memberships.c.user_id == user_id) & (memberships.c.division_id == division_id)
                )
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Assignment not found.")
        logger.info("Revoked user_id=%s from division_id=%s", user_id, division_id)

    # ------------------------------------------------------------------
    # OU manager
    # ------------------------------------------------------------------

    def assign_manager(self, user_id: int, ou_id: int) -> None:
        """Make a user manager of an OU, and an OU member if not already.

        Both writes are insert-if-absent in one transaction, so repeating the
        call changes nothing and raises nothing. Raises NotFoundError for an
        unknown user or OU.
        """
        with self.engine.connect() as conn:
            self._require_user(conn, user_id)
            self._require_ou(conn, ou_id)
            added_manager = insert_if_absent(conn, managed_ous, user_id=user_id, ou_id=ou_id)
            added_member = insert_if_absent(
                conn,
                memberships,
                user_id=user_id,
                ou_id=ou_id,
                division_id=None,
                assigned_at=now_iso(),
            )
            conn.commit()
        logger.info(
            "Assigned manager user_id=%s ou_id=%s (new_manager=%s new_member=%s)",
            user_id,
            ou_id,
            added_manager,
            added_member,
        )

    def revoke_manager(self, user_id: int, ou_id: int) -> None:
        """Stop a user managing an OU. The OU-only membership is kept."""
        with self.engine.connect() as conn:
            conn.execute(
                managed_ous.delete().where((managed_ous.c.user_id == user_id) & (managed_ous.c.ou_id == ou_id))
            )
            conn.commit()
        logger.info("Revoked manager user_id=%s ou_id=%s", user_id, ou_id)

    # ------------------------------------------------------------------
    # OU-only membership
    # ------------------------------------------------------------------

    def assign_member(self, user_id: int, ou_id: int) -> OUMembership:
        """Add a user to an OU without a specific division.

        Raises NotFoundError for an unknown user or OU and
        DuplicateMembershipError if the OU-only membership already exists.
        """
        with self.engine.connect() as conn:
            self._require_user(conn, user_id)
            self._require_ou(conn, ou_id)
            inserted = insert_if_absent(
                conn,
                memberships,
                user_id=user_id,
                ou_id=ou_id,
                division_id=None,
                assigned_at=now_iso(),
            )
            conn.commit()
        if not inserted:
            raise DuplicateMembershipError("User is already a member of this OU.")
        logger.info("Assigned member user_id=%s ou_id=%s", user_id, ou_id)
        return self._fetch_one(
            (memberships.c.user_id == user_id)
            & (memberships.c.ou_id == ou_id)
            & memberships.c.division_id.is_(None)
        )

    def revoke_member(self, user_id: int, ou_id: int) -> None:
        """Delete the OU-only membership. Division memberships in the same OU are untouched.

        Raises NotFoundError if the user has no OU-only membership there.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                memberships.delete().where(
                    (memberships.c.user_id == user_id)
                    & (memberships.c.ou_id == ou_id)
                    & memberships.c.division_id.is_(None)
                )
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Assignment not found.")
        logger.info("Revoked member user_id=%s ou_id=%s", user_id, ou_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def memberships_of(self, user_id: int) -> list[Membership]:
        """Return every membership row of a user with OU / division names."""
        with self.engine.connect() as conn:
            rows = conn.execute(_annotated.where(memberships.c.user_id == user_id)).fetchall()
        return [_row_to_membership(r) for r in rows]

    def members_of(self, division_id: int) -> list[DivisionMembership]:
        """Return the division-scoped membership rows of one division, with user details."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _annotated.where(memberships.c.division_id == division_id).order_by(None).order_by(users.c.email)
            ).fetchall()
        return [_row_to_membership(r) for r in rows]

    def read_scope(self, identity: Identity) -> ReadScope:
        """Resolve the caller's read scope from their stored memberships.

        Raises NoAccessError for a non-admin with no reachable division or OU.
        """
        if identity.is_admin:
            return resolve_read_scope(identity, ())
        return resolve_read_scope(identity, self.memberships_of(identity.user_id))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch_one(self, condition) -> Optional[Membership]:
        with self.engine.connect() as conn:
            row = conn.execute(_annotated.where(condition)).fetchone()
        return _row_to_membership(row) if row is not None else None

    @staticmethod
    def _require_user(conn, user_id: int) -> None:
        if conn.execute(select(users.c.id).where(users.c.id == user_id)).fetchone() is None:
            raise NotFoundError("User not found.")

    @staticmethod
    def _require_ou(conn, ou_id: int) -> None:
        if conn.execute(select(ous.c.id).where(ous.c.id == ou_id)).fetchone() is None:
            raise NotFoundError("OU not found.")


# ---------------------------------------------------------------------------
# Row mapper (DB row -> tagged membership variant)
# ---------------------------------------------------------------------------


def _row_to_membership(row) -> Membership:
    user_name = f"{row.firstname} {row.lastname}".strip()
    if row.division_id is None:
        return OUMembership(
            id=row.id,
            user_id=row.user_id,
            ou_id=row.ou_id,
            assigned_at=row.assigned_at,
            ou_name=row.ou_name,
            user_name=user_name,
            user_email=row.email,
        )
    # ou_id is copied from the division at write time and divisions never
    # change OU, so a mismatch means the row was written outside the registry.
    if row.division_ou_id != row.ou_id:
        raise RuntimeError(f"membership {row.id} disagrees with its division's OU")
    return DivisionMembership(
        id=row.id,
        user_id=row.user_id,
        ou_id=row.ou_id,
        division_id=row.division_id,
        assigned_at=row.assigned_at,
        ou_name=row.ou_name,
        division_name=row.division_name,
        user_name=user_name,
        user_email=row.email,
    )
