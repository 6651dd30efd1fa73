"""
vault/models.py -- Domain dataclass for shared credentials.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Credential:
    """A shared login owned by one division (and, through it, one OU).

    secret is stored as entered; encryption at rest is out of scope for
    this service. ou_name and division_name are read-side joins.

    id is None before the record is written to the database.
    """

    ou_id: int
    division_id: int
    name: str
    username: str
    secret: str
    notes: Optional[str] = None
    id: Optional[int] = None
    ou_name: str = ""
    division_name: str = ""
    created_at: str = ""
    updated_at: str = ""
