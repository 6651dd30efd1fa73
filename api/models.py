"""
API request and response models for OrgVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/, org/, vault/
and auth/, which own the internal domain representation. Route handlers map
between the two with the from_* factory classmethods below.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User
from core.models import DivisionMembership, Membership, OUMembership, ReadScope, Role
from org.models import Division, OrganisationalUnit
from vault.models import Credential

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Shape check only; the store lowercases and trims before lookup.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    severity lets clients pick notice styling: "error" blocks the action,
    "warning" is a soft notice such as "already assigned".
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    severity: str = "error"


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=254, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=72)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register. New accounts get the user role."""

    model_config = ConfigDict(str_strip_whitespace=True)

    firstname: str = Field(min_length=1, max_length=100)
    lastname: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=254, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=72)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    email: str
    role: Role


class UserResponse(BaseModel):
    """Account details without the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    firstname: str
    lastname: str
    email: str
    role: Role
    is_active: bool
    managed_ous: list[int] = Field(default_factory=list)
    managed_divisions: list[int] = Field(default_factory=list)
    created_at: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            firstname=user.firstname,
            lastname=user.lastname,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            managed_ous=sorted(user.managed_ous),
            managed_divisions=sorted(user.managed_divisions),
            created_at=user.created_at or "",
        )


class RoleUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{user_id}/role."""

    role: Role


class ScopeResponse(BaseModel):
    """Resolved read scope for GET /api/v1/auth/scope."""

    model_config = ConfigDict(frozen=True)

    unrestricted: bool
    division_ids: list[int]
    ou_ids: list[int]

    @classmethod
    def from_scope(cls, scope: ReadScope) -> "ScopeResponse":
        return cls(
            unrestricted=scope.unrestricted,
            division_ids=sorted(scope.division_ids),
            ou_ids=sorted(scope.ou_ids),
        )


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------


class OUCreate(BaseModel):
    """Request body for POST /api/v1/ous."""

    name: str = Field(max_length=100)


class DivisionCreate(BaseModel):
    """Request body for POST /api/v1/divisions."""

    name: str = Field(max_length=100)
    ou_id: int


class OUResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    managers: list[int]
    created_at: str
    updated_at: str

    @classmethod
    def from_ou(cls, ou: OrganisationalUnit) -> "OUResponse":
        return cls(
            id=ou.id,
            name=ou.name,
            managers=list(ou.managers),
            created_at=ou.created_at,
            updated_at=ou.updated_at,
        )


class DivisionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    ou_id: int
    ou_name: str
    managers: list[int]
    created_at: str
    updated_at: str

    @classmethod
    def from_division(cls, division: Division) -> "DivisionResponse":
        return cls(
            id=division.id,
            name=division.name,
            ou_id=division.ou_id,
            ou_name=division.ou_name,
            managers=list(division.managers),
            created_at=division.created_at,
            updated_at=division.updated_at,
        )


class DestinationRow(BaseModel):
    """One selectable (OU, division) pair for credential forms."""

    model_config = ConfigDict(frozen=True)

    ou_id: int
    ou_name: str
    division_id: int
    division_name: str


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


class DivisionAssignment(BaseModel):
    """Request body for POST /api/v1/memberships/divisions."""

    user_id: int
    division_id: int


class OUAssignment(BaseModel):
    """Request body for POST /api/v1/memberships/ou-managers and /ou-members."""

    user_id: int
    ou_id: int


class OUMembershipResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["ou"] = "ou"
    id: Optional[int]
    user_id: int
    ou_id: int
    ou_name: str
    user_name: str
    user_email: str
    assigned_at: str


class DivisionMembershipResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["division"] = "division"
    id: Optional[int]
    user_id: int
    ou_id: int
    ou_name: str
    division_id: int
    division_name: str
    user_name: str
    user_email: str
    assigned_at: str


MembershipResponse = Union[OUMembershipResponse, DivisionMembershipResponse]


def membership_to_response(membership: Membership) -> MembershipResponse:
    """Map the tagged domain variant onto its transport model."""
    if isinstance(membership, DivisionMembership):
        return DivisionMembershipResponse(
            id=membership.id,
            user_id=membership.user_id,
            ou_id=membership.ou_id,
            ou_name=membership.ou_name,
            division_id=membership.division_id,
            division_name=membership.division_name,
            user_name=membership.user_name,
            user_email=membership.user_email,
            assigned_at=membership.assigned_at,
        )
    if isinstance(membership, OUMembership):
        return OUMembershipResponse(
            id=membership.id,
            user_id=membership.user_id,
            ou_id=membership.ou_id,
            ou_name=membership.ou_name,
            user_name=membership.user_name,
            user_email=membership.user_email,
            assigned_at=membership.assigned_at,
        )
    raise TypeError(f"Unknown membership variant: {type(membership).__name__}")


class UserWithMemberships(UserResponse):
    """One row of GET /api/v1/users."""

    memberships: list[MembershipResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialCreate(BaseModel):
    """Request body for POST /api/v1/credentials.

    Blank strings are passed through; the catalog rejects them with the
    "All fields except notes are required." message.
    """

    ou_id: int
    division_id: int
    name: str = Field(max_length=200)
    username: str = Field(max_length=200)
    secret: str = Field(max_length=1000)
    notes: Optional[str] = Field(default=None, max_length=2000)


class CredentialPatch(BaseModel):
    """Request body for PATCH /api/v1/credentials/{credential_id}.

    Only fields present in the body are applied (model_dump(exclude_unset=True)).
    An omitted or blank secret keeps the stored one.
    """

    model_config = ConfigDict(extra="forbid")

    ou_id: Optional[int] = None
    division_id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=200)
    username: Optional[str] = Field(default=None, max_length=200)
    secret: Optional[str] = Field(default=None, max_length=1000)
    notes: Optional[str] = Field(default=None, max_length=2000)


class CredentialResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    ou_id: int
    ou_name: str
    division_id: int
    division_name: str
    name: str
    username: str
    secret: str
    notes: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_credential(cls, credential: Credential) -> "CredentialResponse":
        return cls(
            id=credential.id,
            ou_id=credential.ou_id,
            ou_name=credential.ou_name,
            division_id=credential.division_id,
            division_name=credential.division_name,
            name=credential.name,
            username=credential.username,
            secret=credential.secret,
            notes=credential.notes,
            created_at=credential.created_at,
            updated_at=credential.updated_at,
        )
