"""Unit tests for core/access.py -- pure read-scope and write-authorization rules.

No database: every case is built from plain Identity and membership dataclasses.
"""

import pytest

from core.access import ensure_admin, ensure_can_create, ensure_can_update, membership_scope, resolve_read_scope
from core.errors import AuthorizationError, NoAccessError
from core.models import DivisionMembership, Identity, OUMembership, Role

EAST, WEST = 1, 2
EAST_SALES, EAST_FINANCE, WEST_SALES = 10, 11, 20


def _identity(role: Role, managed_ous=(), managed_divisions=()) -> Identity:
    return Identity(
        user_id=7,
        role=role,
        managed_ous=frozenset(managed_ous),
        managed_divisions=frozenset(managed_divisions),
    )


class TestMembershipScope:
    def test_every_row_grants_its_ou(self):
        scope = membership_scope(
            [
                OUMembership(user_id=7, ou_id=WEST),
                DivisionMembership(user_id=7, ou_id=EAST, division_id=EAST_SALES),
            ]
        )
        assert scope.ou_ids == frozenset({WEST, EAST})
        assert scope.division_ids == frozenset({EAST_SALES})

    def test_division_membership_grants_sibling_divisions(self):
        scope = membership_scope([DivisionMembership(user_id=7, ou_id=EAST, division_id=EAST_SALES)])
        assert scope.covers(EAST, EAST_FINANCE)
        assert not scope.covers(WEST, WEST_SALES)

    def test_unknown_variant_rejected(self):
        with pytest.raises(TypeError):
            membership_scope([object()])


class TestResolveReadScope:
    def test_admin_unrestricted_without_memberships(self):
        scope = resolve_read_scope(_identity(Role.admin), [])
        assert scope.unrestricted
        assert scope.covers(WEST, WEST_SALES)

    def test_user_without_memberships(self):
        with pytest.raises(NoAccessError) as exc_info:
            resolve_read_scope(_identity(Role.user), [])
        assert exc_info.value.status_code == 403

    def test_manager_with_empty_scope(self):
        with pytest.raises(NoAccessError):
            resolve_read_scope(_identity(Role.manager), [])

    def test_manager_union(self):
        """Managed OUs, managed divisions and membership rows all contribute."""
        identity = _identity(Role.manager, managed_ous=[EAST], managed_divisions=[WEST_SALES])
        scope = resolve_read_scope(identity, [OUMembership(user_id=7, ou_id=WEST)])
        assert scope.ou_ids == frozenset({EAST, WEST})
        assert scope.division_ids == frozenset({WEST_SALES})

    def test_user_ignores_managed_sets(self):
        identity = _identity(Role.user, managed_ous=[EAST])
        with pytest.raises(NoAccessError):
            resolve_read_scope(identity, [])


class TestEnsureCanUpdate:
    def test_plain_user_never_writes(self):
        with pytest.raises(AuthorizationError):
            ensure_can_update(_identity(Role.user), [OUMembership(user_id=7, ou_id=EAST)], EAST, EAST_SALES)

    def test_admin_bypasses_scope(self):
        ensure_can_update(_identity(Role.admin), [], WEST, WEST_SALES)

    def test_manager_in_scope(self):
        ensure_can_update(_identity(Role.manager, managed_ous=[EAST]), [], EAST, EAST_FINANCE)

    def test_manager_outside_scope(self):
        with pytest.raises(AuthorizationError):
            ensure_can_update(_identity(Role.manager, managed_ous=[EAST]), [], WEST, WEST_SALES)

    def test_manager_without_scope_gets_authorization_error(self):
        with pytest.raises(AuthorizationError):
            ensure_can_update(_identity(Role.manager), [], EAST, EAST_SALES)


class TestEnsureCanCreate:
    def test_user_with_any_membership_may_create(self):
        ensure_can_create(_identity(Role.user), [DivisionMembership(user_id=7, ou_id=EAST, division_id=EAST_SALES)])

    def test_admin_without_memberships(self):
        ensure_can_create(_identity(Role.admin), [])

    def test_no_scope_propagates_no_access(self):
        with pytest.raises(NoAccessError):
            ensure_can_create(_identity(Role.user), [])


def test_ensure_admin():
    ensure_admin(_identity(Role.admin))
    with pytest.raises(AuthorizationError, match="change user roles"):
        ensure_admin(_identity(Role.manager), "change user roles")
