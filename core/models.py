from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """One effective role per user. Stored as its string value."""

    user = "user"
    manager = "manager"
    admin = "admin"


def normalize_name(name: str) -> str:
    """Canonical form used by the OU and Division uniqueness constraints."""
    return name.strip().lower()


# ---------------------------------------------------------------------------
# Membership -- tagged variant
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OUMembership:
    """Member of an OU without a specific division (division_id is NULL in storage)."""

    user_id: int
    ou_id: int
    id: Optional[int] = None
    assigned_at: str = ""
    ou_name: str = ""
    user_name: str = ""
    user_email: str = ""


@dataclass(frozen=True)
class DivisionMembership:
    """Member of one Division.

    ou_id is the division's owning OU, copied at write time so scope queries
    don't need a join. It is never taken from the caller.
    """

    user_id: int
    ou_id: int
    division_id: int
    id: Optional[int] = None
    assigned_at: str = ""
    ou_name: str = ""
    division_name: str = ""
    user_name: str = ""
    user_email: str = ""


Membership = Union[OUMembership, DivisionMembership]


# ---------------------------------------------------------------------------
# Identity and scope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Identity:
    """Verified caller, passed explicitly into every access decision."""

    user_id: int
    role: Role
    managed_ous: frozenset[int] = field(default_factory=frozenset)
    managed_divisions: frozenset[int] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.admin


@dataclass(frozen=True)
class ReadScope:
    """Division and OU ids a caller may read credentials from.

    A credential is covered when its division OR its OU is in scope.
    unrestricted=True is the admin sentinel; the id sets are ignored then.
    """

    division_ids: frozenset[int] = field(default_factory=frozenset)
    ou_ids: frozenset[int] = field(default_factory=frozenset)
    unrestricted: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.unrestricted and not self.division_ids and not self.ou_ids

    def covers(self, ou_id: int, division_id: int) -> bool:
        if self.unrestricted:
            return True
        return division_id in self.division_ids or ou_id in self.ou_ids


UNRESTRICTED = ReadScope(unrestricted=True)
