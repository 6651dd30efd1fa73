"""
api/routes/v1/auth.py -- Authentication and user management REST endpoints.

Routes:
  POST /api/v1/auth/register         -- self-service account (role user), if enabled
  POST /api/v1/auth/login            -- email/password login; returns a Bearer JWT
  GET  /api/v1/auth/me               -- current user info (requires auth)
  GET  /api/v1/auth/scope            -- resolved read scope (requires auth)
  GET  /api/v1/users                 -- users with managed OUs and memberships (manager, admin)
  PUT  /api/v1/users/{user_id}/role  -- replace a user's role (admin only)

Security:
  POST /login is rate-limited per IP (Settings.login_rate_limit).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  Self-registration always creates Role.user; roles change only through
  PUT /users/{id}/role.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RoleUpdate,
    ScopeResponse,
    UserResponse,
    UserWithMemberships,
    membership_to_response,
)
from auth.dependencies import get_current_identity, get_current_user, require_roles
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password
from core.access import ensure_admin
from core.config import get_settings
from core.models import Identity, Role
from org.membership import MembershipRegistry

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/register:        public, disabled by SELF_REGISTRATION_ENABLED=false
# - POST /api/v1/auth/login:           public
# - GET  /api/v1/auth/me:              requires auth (get_current_user)
# - GET  /api/v1/auth/scope:           requires auth (get_current_identity)
# - GET  /api/v1/users:                requires manager or admin
# - PUT  /api/v1/users/{id}/role:      requires admin (core.access.ensure_admin)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a user account with the user role.

    Duplicate emails surface as DuplicateNameError (409) from the store.
    """
    if not _settings.self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    user_store: UserStore = request.app.state.user_store
    user_id = user_store.create_user(
        User(
            firstname=body.firstname,
            lastname=body.lastname,
            email=body.email,
            role=Role.user,
            hashed_password=hash_password(body.password),
        )
    )
    return UserResponse.from_user(user_store.get_by_id(user_id))


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a Bearer token.

    Returns the same generic error for an unknown email and a wrong password
    ("bad_credentials") to avoid leaking which emails are registered.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={
                "error": {"code": "bad_credentials", "message": "Invalid email or password.", "severity": "error"}
            },
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(user.id, user.email, user.role.value)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            email=user.email,
            role=user.role,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return account information for the currently authenticated user."""
    return UserResponse.from_user(current_user)


@router.get("/auth/scope", response_model=ScopeResponse)
def scope(request: Request, identity: Identity = Depends(get_current_identity)) -> ScopeResponse:
    """Return the divisions and OUs the caller may read credentials from.

    A non-admin with no memberships gets NoAccessError (403, code no_access).
    """
    registry: MembershipRegistry = request.app.state.registry
    return ScopeResponse.from_scope(registry.read_scope(identity))


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserWithMemberships])
def list_users(
    request: Request,
    identity: Identity = Depends(require_roles(Role.manager, Role.admin)),
) -> list[UserWithMemberships]:
    """List every account with its managed OUs and membership rows."""
    user_store: UserStore = request.app.state.user_store
    registry: MembershipRegistry = request.app.state.registry
    rows = []
    for user in user_store.list_users():
        base = UserResponse.from_user(user).model_dump()
        rows.append(
            UserWithMemberships(
                **base,
                memberships=[membership_to_response(m) for m in registry.memberships_of(user.id)],
            )
        )
    return rows


@router.put("/users/{user_id}/role", response_model=UserResponse)
def change_role(
    request: Request,
    user_id: int,
    body: RoleUpdate,
    identity: Identity = Depends(get_current_identity),
) -> UserResponse:
    """Replace a user's role. Admin only (AuthorizationError otherwise)."""
    ensure_admin(identity, "change user roles")
    user_store: UserStore = request.app.state.user_store
    return UserResponse.from_user(user_store.set_role(user_id, body.role))
