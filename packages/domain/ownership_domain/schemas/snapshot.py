"""Full store snapshot used for backups and transaction rollback."""

from datetime import datetime
from typing import List
from pydantic import Field

from .base import DomainModel
from .audit import AuditEntry
from .entities import Entity
from .ownership import OwnershipEdge
from .share_classes import ShareClass


class StoreSnapshot(DomainModel):
    """Complete in-memory state at one instant.

    Lists preserve insertion order, so restoring a snapshot also restores the
    order in which records were created (used for deterministic views).
    """

    timestamp: datetime
    entities: List[Entity] = Field(default_factory=list)
    share_classes: List[ShareClass] = Field(default_factory=list)
    ownerships: List[OwnershipEdge] = Field(default_factory=list)
    audit_log: List[AuditEntry] = Field(default_factory=list)
    audit_sequence: int = Field(default=0, ge=0, description="Next audit sequence number")
