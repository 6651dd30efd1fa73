"""
core/errors.py -- Typed failures raised by the stores and the access resolver.

Every error carries a stable machine-readable code, the HTTP status the API
layer maps it to, and a severity so a presentation layer can pick notice
styling ("error" = blocking, "warning" = soft "already exists" notice)
without matching on message text.

These are plain exceptions, not HTTPException subclasses: the stores and the
resolver must stay usable outside FastAPI (CLI, tests). api/main.py renders
them into the shared ErrorResponse envelope.

Layer rule: core/ is the kernel. No imports from api/, auth/, org/, or vault/.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for all domain failures."""

    code: str = "vault_error"
    status_code: int = 500
    severity: str = "error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(VaultError):
    """Missing or malformed required field. Caller-correctable."""

    code = "validation_error"
    status_code = 400
    default_message = "Request validation failed."


class DuplicateNameError(VaultError):
    code = "duplicate_name"
    status_code = 409
    severity = "warning"
    default_message = "A record with this name already exists."


class DuplicateMembershipError(VaultError):
    code = "duplicate_membership"
    status_code = 409
    severity = "warning"
    default_message = "User is already assigned here."


class NotFoundError(VaultError):
    code = "not_found"
    status_code = 404
    default_message = "Referenced record not found."


class InUseError(VaultError):
    """Delete refused because other records still reference the target."""

    code = "in_use"
    status_code = 409
    default_message = "Record is still referenced and cannot be deleted."


class NoAccessError(VaultError):
    """Authenticated, but no division or OU is reachable."""

    code = "no_access"
    status_code = 403
    default_message = "You do not have access to any divisions or OUs."


class AuthorizationError(VaultError):
    """Authenticated with a resolved scope, but the role or scope is insufficient."""

    code = "forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action."
