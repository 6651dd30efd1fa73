"""
api/routes/v1/credentials.py -- Credential listing, creation and update.

Routes:
  GET   /credentials                    -- credentials in the caller's read scope
  POST  /credentials                    -- add a credential (any caller with some access)
  PATCH /credentials/{credential_id}    -- partial update (manager in scope, or admin)

All three go through vault.service, which resolves the caller's scope from
stored memberships. A non-admin with no memberships gets 403 no_access; a
manager outside scope gets 403 forbidden.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import CredentialCreate, CredentialPatch, CredentialResponse
from auth.dependencies import get_current_identity
from core.models import Identity
from vault import service

router = APIRouter()


@router.get("/credentials", response_model=list[CredentialResponse])
def list_credentials(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> list[CredentialResponse]:
    """Return credentials whose division or OU is in the caller's scope."""
    credentials = service.list_credentials(request.app.state.registry, request.app.state.catalog, identity)
    return [CredentialResponse.from_credential(c) for c in credentials]


@limiter.limit("30/minute")
@router.post("/credentials", response_model=CredentialResponse, status_code=201)
def create_credential(
    request: Request,
    body: CredentialCreate,
    identity: Identity = Depends(get_current_identity),
) -> CredentialResponse:
    credential = service.create_credential(
        request.app.state.registry,
        request.app.state.catalog,
        identity,
        body.model_dump(),
    )
    return CredentialResponse.from_credential(credential)


@limiter.limit("30/minute")
@router.patch("/credentials/{credential_id}", response_model=CredentialResponse)
def update_credential(
    request: Request,
    credential_id: int,
    body: CredentialPatch,
    identity: Identity = Depends(get_current_identity),
) -> CredentialResponse:
    """Apply the fields present in the body. An omitted or blank secret keeps the stored one."""
    credential = service.update_credential(
        request.app.state.registry,
        request.app.state.catalog,
        credential_id,
        body.model_dump(exclude_unset=True),
        identity,
    )
    return CredentialResponse.from_credential(credential)
