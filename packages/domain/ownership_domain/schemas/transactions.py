"""Transaction records.

A DataTransaction groups the mutations performed between ``begin`` and
``commit``/``rollback``. The operations list is the ordered change log of the
transaction; the state to return to on rollback is held by the manager.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import Field

from .base import DomainModel, UserId
from .audit import AuditAction, AuditEntityType


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


class TransactionOperation(DomainModel):
    type: AuditAction
    entity_type: AuditEntityType
    entity_id: str
    previous_state: Optional[Dict[str, Any]] = None
    new_state: Optional[Dict[str, Any]] = None
    order: int = Field(ge=0, description="Execution order within the transaction")


class DataTransaction(DomainModel):
    id: str
    user_id: UserId
    started_at: datetime
    operations: List[TransactionOperation] = Field(default_factory=list)
    status: TransactionStatus = TransactionStatus.PENDING
    completed_at: Optional[datetime] = None
    rollback_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == TransactionStatus.PENDING
