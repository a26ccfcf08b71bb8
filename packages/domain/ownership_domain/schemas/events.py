"""Change events delivered to repository subscribers.

Every successful mutation emits exactly one ChangeEvent after it has been
stored and audited. Subscribers (typically UI collaborators) use them as a
signal to re-query derived views; events carry a copy of the new state for
convenience but are not a replication protocol.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import Field

from .base import DomainModel


class ChangeEventType(str, Enum):
    ENTITY_CREATED = "ENTITY_CREATED"
    ENTITY_UPDATED = "ENTITY_UPDATED"
    ENTITY_DELETED = "ENTITY_DELETED"
    OWNERSHIP_CREATED = "OWNERSHIP_CREATED"
    OWNERSHIP_UPDATED = "OWNERSHIP_UPDATED"
    OWNERSHIP_DELETED = "OWNERSHIP_DELETED"
    SHARE_CLASS_CREATED = "SHARE_CLASS_CREATED"
    SHARE_CLASS_UPDATED = "SHARE_CLASS_UPDATED"
    SHARE_CLASS_DELETED = "SHARE_CLASS_DELETED"
    TRANSACTION_COMMITTED = "TRANSACTION_COMMITTED"
    TRANSACTION_ROLLED_BACK = "TRANSACTION_ROLLED_BACK"


class ChangeEvent(DomainModel):
    """Notification of one successful mutation.

    Addressing:
        - Entity events: entity_id is the entity
        - Ownership events: entity_id is the owned entity (whose cap table changed),
          related_entity_ids = [owner, owned]
        - Share class events: entity_id is the share class, related_entity_ids = [issuer]
        - Transaction events: entity_id is the transaction id
    """

    type: ChangeEventType
    entity_id: str
    timestamp: datetime
    user_id: str
    data: Optional[Dict[str, Any]] = None
    related_entity_ids: List[str] = Field(default_factory=list)
