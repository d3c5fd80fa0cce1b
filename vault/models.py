"""
vault/models.py -- Domain dataclass for stored secrets.

Pure data container with zero logic. Persistence lives in vault/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Secret:
    """A secret submitted by one user.

    text is opaque: it is stored and displayed, never interpreted.
    owner_id is the User.id of the submitter and is never reassigned.
    id is None before the record is written to the database.
    """

    owner_id: str
    text: str
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
