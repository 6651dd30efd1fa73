"""
vault/catalog.py -- Credential Catalog: storage and scoped listing of shared credentials.

Pattern: Repository + Data Mapper. CredentialCatalog is the repository;
_row_to_credential is the mapper.

The catalog validates field shape and OU/division consistency only. It does
not derive access scope: list() receives a ReadScope that core.access already
resolved, and update() trusts the caller's is_manager_or_admin answer after
vault.service has run the write check.

Update semantics:
  secret    optional -- None, missing or blank keeps the stored value
  name,
  username  overwrite when present; present-but-blank is a ValidationError
  notes     overwrite when present (None clears)
  ou_id,
  division_id  overwrite when present; the division must belong to the OU

Security: all queries use bound parameters. No f-strings in SQL. Secrets are
never logged.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.engine import Engine

from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.models import ReadScope
from core.schema import credentials, divisions, now_iso, ous
from vault.models import Credential

logger = logging.getLogger("orgvault.vault")

_UPDATABLE_FIELDS = frozenset({"ou_id", "division_id", "name", "username", "secret", "notes"})
_REQUIRED_TEXT_FIELDS = ("name", "username")

_joined = (
    select(
        credentials,
        ous.c.name.label("ou_name"),
        divisions.c.name.label("division_name"),
    )
    .select_from(
        credentials.join(ous, credentials.c.ou_id == ous.c.id).join(
            divisions, credentials.c.division_id == divisions.c.id
        )
    )
    .order_by(ous.c.normalized_name, divisions.c.normalized_name, credentials.c.name)
)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class CredentialCatalog:
    """Repository for Credential entities.

    Usage:
        catalog = CredentialCatalog(engine)
        cred = catalog.create(ou_id, division_id, "Payroll portal", "svc-payroll", "s3cret")
        catalog.update(cred.id, {"username": "svc-payroll-2"}, is_manager_or_admin=True)
        catalog.list(scope)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(
        self,
        ou_id: int,
        division_id: int,
        name: str,
        username: str,
        secret: str,
        notes: Optional[str] = None,
    ) -> Credential:
        """Store a new credential. Every field except notes is mandatory.

        Raises ValidationError for missing fields, an unknown OU or division,
        or a division that does not belong to the OU.
        """
        if any(_blank(v) for v in (ou_id, division_id, name, username, secret)):
            raise ValidationError("All fields except notes are required.")
        now = now_iso()
        with self.engine.connect() as conn:
            self._check_location(conn, ou_id, division_id)
            result = conn.execute(
                credentials.insert().values(
                    ou_id=ou_id,
                    division_id=division_id,
                    name=name.strip(),
                    username=username.strip(),
                    secret=secret,
                    notes=notes,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        credential_id = result.inserted_primary_key[0]
        logger.info("Created credential id=%s division_id=%s", credential_id, division_id)
        return self.get(credential_id)

    def update(self, credential_id: int, fields: dict[str, Any], is_manager_or_admin: bool) -> Credential:
        """Apply a partial update and return the stored credential.

        Raises AuthorizationError if the caller is not a manager or admin,
        ValidationError for unknown or blank required fields or an inconsistent
        OU/division pair, and NotFoundError for an unknown id.
        """
        if not is_manager_or_admin:
            raise AuthorizationError("Only managers and admins can update credentials.")
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown credential fields: {sorted(unknown)!r}")

        values = dict(fields)
        if _blank(values.get("secret")):
            values.pop("secret", None)
        for key in _REQUIRED_TEXT_FIELDS:
            if key in values:
                if _blank(values[key]):
                    raise ValidationError(f"{key} cannot be blank.")
                values[key] = values[key].strip()
        for key in ("ou_id", "division_id"):
            if key in values and values[key] is None:
                raise ValidationError(f"{key} cannot be empty.")

        current = self.get(credential_id)
        if current is None:
            raise NotFoundError("Credential not found.")

        with self.engine.connect() as conn:
            if "ou_id" in values or "division_id" in values:
                self._check_location(
                    conn,
                    values.get("ou_id", current.ou_id),
                    values.get("division_id", current.division_id),
                )
            values["updated_at"] = now_iso()
            result = conn.execute(credentials.update().where(credentials.c.id == credential_id).values(**values))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Credential not found.")
        logger.info("Updated credential id=%s fields=%s", credential_id, sorted(k for k in values if k != "secret"))
        return self.get(credential_id)

    def get(self, credential_id: int) -> Optional[Credential]:
        """Fetch a single credential by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_joined.where(credentials.c.id == credential_id)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def list(self, scope: ReadScope) -> list[Credential]:
        """Return the credentials covered by scope (division OR OU in scope)."""
        stmt = _joined
        if not scope.unrestricted:
            stmt = stmt.where(
                or_(
                    credentials.c.division_id.in_(scope.division_ids),
                    credentials.c.ou_id.in_(scope.ou_ids),
                )
            )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_credential(r) for r in rows]

    @staticmethod
    def _check_location(conn, ou_id: int, division_id: int) -> None:
        owner = conn.execute(select(divisions.c.ou_id).where(divisions.c.id == division_id)).scalar()
        if owner is None:
            raise ValidationError("Invalid division ID.")
        if owner != ou_id:
            raise ValidationError("Division does not belong to the selected OU.")


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> Credential:
    return Credential(
        id=row.id,
        ou_id=row.ou_id,
        division_id=row.division_id,
        name=row.name,
        username=row.username,
        secret=row.secret,
        notes=row.notes,
        ou_name=row.ou_name,
        division_name=row.division_name,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
