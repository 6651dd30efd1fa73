"""
auth/models.py -- Domain dataclass for user accounts.

Pattern: Data class (pure data container, zero logic beyond a display helper).
Stores and routes do the work.

Layer rule: no imports from api/, org/, or vault/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.models import Role


@dataclass
class User:
    """A person who can log in and be assigned to OUs and divisions.

    email is the login name and is stored trimmed and lowercased, so lookups
    are case-insensitive.

    managed_ous is populated by org.membership.MembershipRegistry.assign_manager().
    managed_divisions is reserved: it is read into the caller's Identity but
    no operation assigns division managers yet.
    """

    firstname: str
    lastname: str
    email: str
    role: Role = Role.user
    id: int | None = None
    hashed_password: str | None = None
    managed_ous: frozenset[int] = field(default_factory=frozenset)
    managed_divisions: frozenset[int] = field(default_factory=frozenset)
    created_at: str | None = None
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.firstname} {self.lastname}".strip()
