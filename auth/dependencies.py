"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an "Authorization: Bearer <jwt>" header. Every
helper converges on objects loaded fresh from the database:

  get_current_user()      -> User       (HTTP 401 if unauthenticated)
  get_current_identity()  -> Identity   (role + managed OUs/divisions for core.access)
  require_admin()         -> Identity   (HTTP 403 unless admin)
  require_roles(*roles)   -> dependency (HTTP 403 unless role in roles)

Layer rule: no imports from org/ or vault/. This module may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.models import User
from auth.tokens import decode_access_token
from core.models import Identity, Role


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via Bearer token. Returns None on any failure."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = decode_access_token(auth_header[7:])
    if not payload:
        return None
    user = request.app.state.user_store.get_by_id(payload["user_id"])
    if user is None or not user.is_active:
        return None
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def get_current_identity(user: User = Depends(get_current_user)) -> Identity:
    """Build the explicit Identity passed into every access decision."""
    return Identity(
        user_id=user.id,
        role=user.role,
        managed_ous=user.managed_ous,
        managed_divisions=user.managed_divisions,
    )


def require_roles(*roles: Role) -> Callable[..., Identity]:
    """Return a dependency that allows only the given roles.

    Use as a FastAPI dependency:
        @router.get("/users")
        def route(identity: Identity = Depends(require_roles(Role.admin, Role.manager))): ...
    """
    allowed = frozenset(roles)

    def _dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Access denied."},
            )
        return identity

    return _dependency


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    if identity.role is not Role.admin:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return identity
