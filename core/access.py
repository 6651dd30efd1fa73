"""
core/access.py -- Access Resolver: pure read-scope and write-authorization decisions.

Input is always explicit: the caller's Identity (role + managerial
assignments) and their Membership rows. Nothing here touches storage or
request state, so every rule is testable with plain dataclasses.

Read scope:
  admin   -> UNRESTRICTED
  manager -> managed divisions + managed OUs + membership-derived scope
  user    -> membership-derived scope only
  An empty scope raises NoAccessError instead of yielding an empty listing.

Membership-derived scope: every membership row grants its OU, and a division
membership also grants its division. A member of East/Sales therefore reads
every credential filed under East.

Layer rule: core/ is the kernel. No imports from api/, auth/, org/, or vault/.
"""

from __future__ import annotations

from collections.abc import Iterable

from core.errors import AuthorizationError, NoAccessError
from core.models import UNRESTRICTED, DivisionMembership, Identity, Membership, OUMembership, ReadScope, Role

_WRITE_ROLES = frozenset({Role.manager, Role.admin})


def membership_scope(memberships: Iterable[Membership]) -> ReadScope:
    """Collect the division and OU ids reachable through membership rows."""
    division_ids: set[int] = set()
    ou_ids: set[int] = set()
    for membership in memberships:
        if isinstance(membership, DivisionMembership):
            division_ids.add(membership.division_id)
        elif not isinstance(membership, OUMembership):
            raise TypeError(f"Unknown membership variant: {type(membership).__name__}")
        ou_ids.add(membership.ou_id)
    return ReadScope(division_ids=frozenset(division_ids), ou_ids=frozenset(ou_ids))


def resolve_read_scope(identity: Identity, memberships: Iterable[Membership]) -> ReadScope:
    """Return the scope the caller may list credentials from.

    Raises NoAccessError when a non-admin resolves to nothing, so callers are
    rejected before querying rather than silently shown an empty list.
    """
    if identity.role is Role.admin:
        return UNRESTRICTED

    scope = membership_scope(memberships)
    if identity.role is Role.manager:
        scope = ReadScope(
            division_ids=scope.division_ids | identity.managed_divisions,
            ou_ids=scope.ou_ids | identity.managed_ous,
        )

    if scope.is_empty:
        raise NoAccessError()
    return scope


def ensure_can_update(identity: Identity, memberships: Iterable[Membership], ou_id: int, division_id: int) -> None:
    """Raise AuthorizationError unless the caller may modify a credential at (ou_id, division_id).

    Only managers and admins write. Admins skip the scope test; managers must
    be able to read the credential's division or OU.
    """
    if identity.role not in _WRITE_ROLES:
        raise AuthorizationError("Only managers and admins can update credentials.")
    if identity.role is Role.admin:
        return
    try:
        scope = resolve_read_scope(identity, memberships)
    except NoAccessError as exc:
        raise AuthorizationError("No managed divisions or OUs linked to your account.") from exc
    if not scope.covers(ou_id, division_id):
        raise AuthorizationError("Credential is outside your managed or member scope.")


def ensure_can_create(identity: Identity, memberships: Iterable[Membership]) -> None:
    """Raise NoAccessError unless the caller has some access at all.

    Any role with a non-empty scope may add a credential to any division;
    the target is not checked against that scope.
    """
    resolve_read_scope(identity, memberships)


def ensure_admin(identity: Identity, action: str = "perform this action") -> None:
    """Capability check for admin-only operations (role assignment, hierarchy edits)."""
    if identity.role is not Role.admin:
        raise AuthorizationError(f"Admin access required to {action}.")
