"""
vault/service.py -- Identity-driven credential operations.

Each function takes the verified Identity explicitly, asks core.access for a
decision against the caller's stored memberships, and only then touches the
catalog. The API routes and the CLI both go through here; neither reads or
writes credentials through the catalog directly.

Layer rule: vault/ imports from core/ and org/. It does NOT import from api/
or auth/.
"""

from __future__ import annotations

import logging
from typing import Any

from core.access import ensure_can_create, ensure_can_update
from core.errors import NotFoundError, ValidationError
from core.models import Identity, Role
from org.membership import MembershipRegistry
from vault.catalog import CredentialCatalog
from vault.models import Credential

logger = logging.getLogger("orgvault.vault")

_WRITE_ROLES = {Role.manager, Role.admin}


def _memberships(registry: MembershipRegistry, identity: Identity):
    # Admins bypass every scope test, so skip the lookup.
    if identity.is_admin:
        return ()
    return registry.memberships_of(identity.user_id)


def list_credentials(
    registry: MembershipRegistry, catalog: CredentialCatalog, identity: Identity
) -> list[Credential]:
    """Return the credentials the caller may read.

    Raises NoAccessError for a non-admin whose scope is empty.
    """
    scope = registry.read_scope(identity)
    return catalog.list(scope)


def create_credential(
    registry: MembershipRegistry,
    catalog: CredentialCatalog,
    identity: Identity,
    fields: dict[str, Any],
) -> Credential:
    """Add a credential for any caller with some access. Raises NoAccessError otherwise."""
    ou_id = fields.get("ou_id")
    division_id = fields.get("division_id")
    if ou_id is None or division_id is None:
        raise ValidationError("All fields except notes are required.")
    ensure_can_create(identity, _memberships(registry, identity))
    credential = catalog.create(
        ou_id=ou_id,
        division_id=division_id,
        name=fields.get("name"),
        username=fields.get("username"),
        secret=fields.get("secret"),
        notes=fields.get("notes"),
    )
    logger.info("user_id=%s added credential id=%s", identity.user_id, credential.id)
    return credential


def update_credential(
    registry: MembershipRegistry,
    catalog: CredentialCatalog,
    credential_id: int,
    fields: dict[str, Any],
    identity: Identity,
) -> Credential:
    """Modify a credential the caller manages.

    The caller must cover the credential's current location and, when it is
    being moved, the new one as well.
    """
    current = catalog.get(credential_id)
    if current is None:
        raise NotFoundError("Credential not found.")

    memberships = _memberships(registry, identity)
    ensure_can_update(identity, memberships, current.ou_id, current.division_id)

    new_ou = fields.get("ou_id", current.ou_id)
    new_division = fields.get("division_id", current.division_id)
    if (new_ou, new_division) != (current.ou_id, current.division_id):
        ensure_can_update(identity, memberships, new_ou, new_division)

    credential = catalog.update(
        credential_id,
        fields,
        is_manager_or_admin=identity.role in _WRITE_ROLES,
    )
    logger.info("user_id=%s updated credential id=%s", identity.user_id, credential_id)
    return credential
