"""Audit trail models.

Audit entries are immutable records of one create/update/delete mutation.
They capture both the state before and after the change so that the state of
any record can be reconstructed at any point in time.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import ConfigDict, Field

from .base import DomainModel, UserId


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditEntityType(str, Enum):
    ENTITY = "ENTITY"
    OWNERSHIP = "OWNERSHIP"
    SHARE_CLASS = "SHARE_CLASS"


class AuditEntry(DomainModel):
    """One immutable audit record.

    State capture:
        - CREATE: previous_state is None, new_state is the created record
        - UPDATE: both states are set
        - DELETE: previous_state is the deleted record, new_state is None

    ``sequence`` is a strictly increasing counter assigned by the audit log;
    it orders entries that share a timestamp.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    sequence: int = Field(ge=0)
    timestamp: datetime
    user_id: UserId
    action: AuditAction
    entity_type: AuditEntityType
    entity_id: str = Field(description="Id of the changed record")

    related_entity_ids: List[str] = Field(
        default_factory=list,
        description="Other entities affected (e.g., owner and owned of an edge)"
    )

    previous_state: Optional[Dict[str, Any]] = None
    new_state: Optional[Dict[str, Any]] = None
    change_reason: Optional[str] = None

    validations_passed: List[str] = Field(
        default_factory=list,
        description="Rule codes that were checked and passed before the mutation"
    )

    def touches(self, entity_id: str) -> bool:
        """True if the entry concerns ``entity_id`` directly or as a related entity."""
        return self.entity_id == entity_id or entity_id in self.related_entity_ids


class AuditDateRange(DomainModel):
    from_date: Optional[datetime] = Field(default=None, serialization_alias="from")
    to_date: Optional[datetime] = Field(default=None, serialization_alias="to")


class AuditReport(DomainModel):
    """Compliance export of the audit trail over a date range."""

    report_generated: datetime = Field(serialization_alias="reportGenerated")
    date_range: AuditDateRange = Field(serialization_alias="dateRange")
    total_entries: int = Field(serialization_alias="totalEntries")
    entries: List[AuditEntry] = Field(default_factory=list)
