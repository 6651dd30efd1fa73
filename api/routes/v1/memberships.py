"""
api/routes/v1/memberships.py -- Membership and OU-manager assignment routes.

Routes:
  POST   /memberships/divisions                               -- assign user to division (admin)
  DELETE /memberships/divisions/{division_id}/users/{user_id} -- revoke division membership (admin)
  POST   /memberships/ou-managers                             -- make user OU manager (admin, idempotent)
  DELETE /memberships/ou-managers/{ou_id}/users/{user_id}     -- stop managing; OU membership kept (admin)
  POST   /memberships/ou-members                              -- OU-only membership (admin)
  DELETE /memberships/ou-members/{ou_id}/users/{user_id}      -- revoke OU-only membership (admin)
  GET    /memberships/users/{user_id}                         -- a user's memberships (self, manager, admin)
  GET    /memberships/divisions/{division_id}                 -- members of a division (manager, admin)

A repeated division or OU-member assignment returns 409 duplicate_membership
with severity "warning". A repeated manager assignment returns 200.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import (
    DivisionAssignment,
    DivisionMembershipResponse,
    MembershipResponse,
    OUAssignment,
    OUMembershipResponse,
    membership_to_response,
)
from auth.dependencies import get_current_identity, require_admin, require_roles
from core.models import Identity, Role
from org.membership import MembershipRegistry

router = APIRouter(prefix="/memberships")


# ---------------------------------------------------------------------------
# Division membership
# ---------------------------------------------------------------------------


@router.post("/divisions", response_model=DivisionMembershipResponse, status_code=201)
def assign_division(
    request: Request,
    body: DivisionAssignment,
    identity: Identity = Depends(require_admin),
) -> DivisionMembershipResponse:
    registry: MembershipRegistry = request.app.state.registry
    return membership_to_response(registry.assign(body.user_id, body.division_id))


@router.delete("/divisions/{division_id}/users/{user_id}", status_code=204)
def revoke_division(
    request: Request,
    division_id: int,
    user_id: int,
    identity: Identity = Depends(require_admin),
) -> Response:
    registry: MembershipRegistry = request.app.state.registry
    registry.revoke(user_id, division_id)
    return Response(status_code=204)


@router.get("/divisions/{division_id}", response_model=list[DivisionMembershipResponse])
def division_members(
    request: Request,
    division_id: int,
    identity: Identity = Depends(require_roles(Role.manager, Role.admin)),
) -> list[MembershipResponse]:
    registry: MembershipRegistry = request.app.state.registry
    return [membership_to_response(m) for m in registry.members_of(division_id)]


# ---------------------------------------------------------------------------
# OU managers
# ---------------------------------------------------------------------------


@router.post("/ou-managers")
def assign_manager(
    request: Request,
    body: OUAssignment,
    identity: Identity = Depends(require_admin),
) -> dict:
    """Make a user manager of an OU. Repeating the call is a no-op."""
    registry: MembershipRegistry = request.app.state.registry
    registry.assign_manager(body.user_id, body.ou_id)
    return {"user_id": body.user_id, "ou_id": body.ou_id, "message": "Manager assigned."}


@router.delete("/ou-managers/{ou_id}/users/{user_id}", status_code=204)
def revoke_manager(
    request: Request,
    ou_id: int,
    user_id: int,
    identity: Identity = Depends(require_admin),
) -> Response:
    registry: MembershipRegistry = request.app.state.registry
    registry.revoke_manager(user_id, ou_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# OU-only membership
# ---------------------------------------------------------------------------


@router.post("/ou-members", response_model=OUMembershipResponse, status_code=201)
def assign_member(
    request: Request,
    body: OUAssignment,
    identity: Identity = Depends(require_admin),
) -> OUMembershipResponse:
    registry: MembershipRegistry = request.app.state.registry
    return membership_to_response(registry.assign_member(body.user_id, body.ou_id))


@router.delete("/ou-members/{ou_id}/users/{user_id}", status_code=204)
def revoke_member(
    request: Request,
    ou_id: int,
    user_id: int,
    identity: Identity = Depends(require_admin),
) -> Response:
    registry: MembershipRegistry = request.app.state.registry
    registry.revoke_member(user_id, ou_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Per-user view
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}", response_model=list[MembershipResponse])
def user_memberships(
    request: Request,
    user_id: int,
    identity: Identity = Depends(get_current_identity),
) -> list[MembershipResponse]:
    """A user's memberships. Plain users may only look at their own."""
    if identity.role is Role.user and identity.user_id != user_id:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Access denied."},
        )
    registry: MembershipRegistry = request.app.state.registry
    return [membership_to_response(m) for m in registry.memberships_of(user_id)]
