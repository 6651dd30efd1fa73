"""
org/models.py -- Domain dataclasses for the organisational hierarchy.

These are pure data containers with zero logic. Uniqueness and delete rules
live in org/hierarchy.py; membership variants live in core/models.py because
the access resolver consumes them.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class OrganisationalUnit:
    """Top-level grouping. Owns zero or more divisions by back-reference.

    managers is derived on read from the managed_ous table; it is not a
    separately stored list.
    """

    name: str
    normalized_name: str = ""
    id: Optional[int] = None
    managers: list[int] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Division:
    """Sub-grouping of exactly one OU. ou_id is fixed at creation.

    ou_name is a read-side join for display, not stored on the row.
    """

    name: str
    ou_id: int
    normalized_name: str = ""
    id: Optional[int] = None
    ou_name: str = ""
    managers: list[int] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
