"""Unit tests for vault/service.py -- identity-driven credential operations.

Covers the end-to-end access rules with real stores:
- a user with no memberships gets NoAccessError, then sees the OU once added
- a division member reads every credential in that division's OU
- creation needs some access, not scope over the target location
- a manager reads and writes inside managed OUs only
- moving a credential needs scope over both the old and new location
- admins read and write everywhere
"""

import pytest

from core.errors import AuthorizationError, NoAccessError, NotFoundError
from core.models import Role
from vault import service


@pytest.fixture
def world(hierarchy, catalog, registry, users, make_user):
    """Two OUs, one credential in each, and one account per role.

    The manager manages East; the user has no memberships.
    """
    east = hierarchy.create_ou("East")
    west = hierarchy.create_ou("West")
    east_sales = hierarchy.create_division("Sales", east.id)
    west_sales = hierarchy.create_division("Sales", west.id)
    east_cred = catalog.create(east.id, east_sales.id, "East portal", "svc-e", "pw-east")
    west_cred = catalog.create(west.id, west_sales.id, "West portal", "svc-w", "pw-west")

    manager_id = make_user("mgr@example.com", Role.manager)
    registry.assign_manager(manager_id, east.id)

    return {
        "east": east,
        "west": west,
        "east_sales": east_sales,
        "west_sales": west_sales,
        "east_cred": east_cred,
        "west_cred": west_cred,
        "admin": users.get_identity(make_user("root@example.com", Role.admin)),
        "manager": users.get_identity(manager_id),
        "user_id": make_user("dana@example.com"),
    }


class TestList:
    def test_user_without_memberships_then_ou_member(self, world, registry, catalog, users):
        identity = users.get_identity(world["user_id"])
        with pytest.raises(NoAccessError):
            service.list_credentials(registry, catalog, identity)

        registry.assign_member(world["user_id"], world["west"].id)
        names = [c.name for c in service.list_credentials(registry, catalog, identity)]
        assert names == ["West portal"]

    def test_division_member_sees_whole_ou(self, world, hierarchy, registry, catalog, users):
        east_finance = hierarchy.create_division("Finance", world["east"].id)
        catalog.create(world["east"].id, east_finance.id, "Finance portal", "svc-f", "pw-f")
        registry.assign(world["user_id"], world["east_sales"].id)

        identity = users.get_identity(world["user_id"])
        names = sorted(c.name for c in service.list_credentials(registry, catalog, identity))
        assert names == ["East portal", "Finance portal"]

    def test_manager_sees_managed_ou(self, world, registry, catalog):
        names = [c.name for c in service.list_credentials(registry, catalog, world["manager"])]
        assert names == ["East portal"]

    def test_admin_sees_everything(self, world, registry, catalog):
        assert len(service.list_credentials(registry, catalog, world["admin"])) == 2


class TestCreate:
    def test_user_creates_in_own_division(self, world, registry, catalog, users):
        registry.assign(world["user_id"], world["west_sales"].id)
        identity = users.get_identity(world["user_id"])
        cred = service.create_credential(
            registry,
            catalog,
            identity,
            {
                "ou_id": world["west"].id,
                "division_id": world["west_sales"].id,
                "name": "Wiki",
                "username": "dana",
                "secret": "pw",
            },
        )
        assert cred.division_name == "Sales"

    def test_target_outside_read_scope_is_allowed(self, world, registry, catalog, users):
        """Creation is gated on having access, not on the target location."""
        registry.assign(world["user_id"], world["east_sales"].id)
        identity = users.get_identity(world["user_id"])
        cred = service.create_credential(
            registry,
            catalog,
            identity,
            {
                "ou_id": world["west"].id,
                "division_id": world["west_sales"].id,
                "name": "Drop box",
                "username": "dana",
                "secret": "pw",
            },
        )
        assert cred.ou_name == "West"

    def test_user_without_access_cannot_create(self, world, registry, catalog, users):
        identity = users.get_identity(world["user_id"])
        with pytest.raises(NoAccessError):
            service.create_credential(
                registry,
                catalog,
                identity,
                {
                    "ou_id": world["west"].id,
                    "division_id": world["west_sales"].id,
                    "name": "x",
                    "username": "y",
                    "secret": "z",
                },
            )


class TestUpdate:
    def test_manager_updates_managed_credential(self, world, registry, catalog):
        updated = service.update_credential(
            registry, catalog, world["east_cred"].id, {"username": "svc-e2"}, world["manager"]
        )
        assert updated.username == "svc-e2"
        assert updated.secret == "pw-east"

    def test_manager_denied_outside_scope(self, world, registry, catalog):
        """A manager of East cannot touch a West credential, even with a valid body."""
        with pytest.raises(AuthorizationError):
            service.update_credential(registry, catalog, world["west_cred"].id, {"name": "mine"}, world["manager"])
        assert catalog.get(world["west_cred"].id).name == "West portal"

    def test_manager_cannot_move_out_of_scope(self, world, registry, catalog):
        with pytest.raises(AuthorizationError):
            service.update_credential(
                registry,
                catalog,
                world["east_cred"].id,
                {"ou_id": world["west"].id, "division_id": world["west_sales"].id},
                world["manager"],
            )

    def test_plain_user_in_scope_cannot_update(self, world, registry, catalog, users):
        registry.assign_member(world["user_id"], world["east"].id)
        identity = users.get_identity(world["user_id"])
        with pytest.raises(AuthorizationError):
            service.update_credential(registry, catalog, world["east_cred"].id, {"name": "x"}, identity)

    def test_admin_updates_anywhere(self, world, registry, catalog):
        updated = service.update_credential(
            registry, catalog, world["west_cred"].id, {"secret": "rotated"}, world["admin"]
        )
        assert updated.secret == "rotated"

    def test_unknown_credential(self, world, registry, catalog):
        with pytest.raises(NotFoundError):
            service.update_credential(registry, catalog, 404, {"name": "x"}, world["admin"])
