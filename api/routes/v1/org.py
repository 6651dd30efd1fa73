"""
api/routes/v1/org.py -- OU and Division routes.

Routes:
  GET    /ous                  -- list OUs with manager ids
  POST   /ous                  -- create OU (admin)
  DELETE /ous/{ou_id}          -- delete OU (admin; 409 in_use while referenced)
  GET    /divisions            -- list divisions, optional ?ou_id=
  POST   /divisions            -- create division (admin)
  DELETE /divisions/{division_id}  -- delete division (admin; 409 in_use while referenced)
  GET    /destinations         -- (OU, division) pairs for credential forms

Name clashes come back from the store as DuplicateNameError and are rendered
by the VaultError handler in api/main.py as 409 with severity "warning".
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.models import DestinationRow, DivisionCreate, DivisionResponse, OUCreate, OUResponse
from auth.dependencies import get_current_user, require_admin
from core.models import Identity
from org.hierarchy import HierarchyStore

# Every route requires authentication; writes additionally require admin.
router = APIRouter(dependencies=[Depends(get_current_user)])


# ---------------------------------------------------------------------------
# Organisational Units
# ---------------------------------------------------------------------------


@router.get("/ous", response_model=list[OUResponse])
def list_ous(request: Request) -> list[OUResponse]:
    hierarchy: HierarchyStore = request.app.state.hierarchy
    return [OUResponse.from_ou(ou) for ou in hierarchy.list_ous()]


@router.post("/ous", response_model=OUResponse, status_code=201)
def create_ou(request: Request, body: OUCreate, identity: Identity = Depends(require_admin)) -> OUResponse:
    hierarchy: HierarchyStore = request.app.state.hierarchy
    return OUResponse.from_ou(hierarchy.create_ou(body.name))


@router.delete("/ous/{ou_id}", status_code=204)
def delete_ou(request: Request, ou_id: int, identity: Identity = Depends(require_admin)) -> Response:
    hierarchy: HierarchyStore = request.app.state.hierarchy
    hierarchy.delete_ou(ou_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Divisions
# ---------------------------------------------------------------------------


@router.get("/divisions", response_model=list[DivisionResponse])
def list_divisions(request: Request, ou_id: Optional[int] = None) -> list[DivisionResponse]:
    hierarchy: HierarchyStore = request.app.state.hierarchy
    return [DivisionResponse.from_division(d) for d in hierarchy.list_divisions(ou_id)]


@router.post("/divisions", response_model=DivisionResponse, status_code=201)
def create_division(
    request: Request,
    body: DivisionCreate,
    identity: Identity = Depends(require_admin),
) -> DivisionResponse:
    """Create a division under an existing OU. Names are unique per OU, case-insensitively."""
    hierarchy: HierarchyStore = request.app.state.hierarchy
    return DivisionResponse.from_division(hierarchy.create_division(body.name, body.ou_id))


@router.delete("/divisions/{division_id}", status_code=204)
def delete_division(request: Request, division_id: int, identity: Identity = Depends(require_admin)) -> Response:
    hierarchy: HierarchyStore = request.app.state.hierarchy
    hierarchy.delete_division(division_id)
    return Response(status_code=204)


@router.get("/destinations", response_model=list[DestinationRow])
def list_destinations(request: Request) -> list[DestinationRow]:
    """Every (OU, division) pair, ordered by OU name then division name."""
    hierarchy: HierarchyStore = request.app.state.hierarchy
    return [
        DestinationRow(ou_id=d.ou_id, ou_name=d.ou_name, division_id=d.id, division_name=d.name)
        for d in hierarchy.list_divisions()
    ]
