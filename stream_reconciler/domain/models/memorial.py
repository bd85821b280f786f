"""Memorial ownership and the actors allowed to administer it."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .stream import DocumentModel


class ActorRole(str, Enum):
    """Account role of the caller."""
    ADMIN = "admin"
    OWNER = "owner"
    FUNERAL_DIRECTOR = "funeral_director"
    FAMILY_MEMBER = "family_member"
    VIEWER = "viewer"


class Actor(BaseModel):
    """Authenticated caller performing an administrative action."""

    uid: str
    role: ActorRole


class Memorial(DocumentModel):
    """The parts of a memorial the stream core depends on."""

    id: str
    name: Optional[str] = None
    created_by: Optional[str] = None
    funeral_director_id: Optional[str] = None

    def can_administer(self, actor: Actor) -> bool:
        """Admins, the owner and the assigned funeral director may manage streams."""
        if actor.role == ActorRole.ADMIN:
            return True
        return actor.uid in {self.created_by, self.funeral_director_id} - {None}
