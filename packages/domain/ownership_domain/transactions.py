"""Snapshot-based transactions.

``begin`` captures a StoreSnapshot; every mutation inside the transaction is
still validated and applied immediately, and is recorded as an operation.
Change events are held until ``commit`` releases them. ``rollback`` hands the
snapshot back to the repository, which restores the records from it and drops
held events. The audit trail is never rewound.

At most one transaction is active at a time.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import StoreError
from .schemas.audit import AuditAction, AuditEntityType
from .schemas.base import new_id
from .schemas.events import ChangeEvent
from .schemas.snapshot import StoreSnapshot
from .schemas.transactions import DataTransaction, TransactionOperation, TransactionStatus
from .stores.base import Clock

logger = logging.getLogger(__name__)


@dataclass
class _OpenTransaction:
    record: DataTransaction
    snapshot: StoreSnapshot
    held_events: List[ChangeEvent] = field(default_factory=list)


class TransactionManager:
    """Tracks transaction records, their rollback snapshots and held events.

    Example:
        tx = manager.begin("alice", snapshot)
        manager.record(AuditAction.CREATE, AuditEntityType.ENTITY, entity.id, None, entity_state)
        manager.hold(event)
        tx, events = manager.commit(tx.id)
    """

    def __init__(self, clock: Clock):
        self._clock = clock
        self._transactions: Dict[str, DataTransaction] = {}
        self._open: Optional[_OpenTransaction] = None

    @property
    def active(self) -> Optional[DataTransaction]:
        return self._open.record if self._open else None

    def begin(self, user_id: str, snapshot: StoreSnapshot) -> DataTransaction:
        """Open a transaction.

        Raises:
            StoreError: TRANSACTION_ALREADY_ACTIVE if one is already open
        """
        if self._open is not None:
            raise StoreError(
                f"Transaction {self._open.record.id} is already active",
                "TRANSACTION_ALREADY_ACTIVE",
                entity_id=self._open.record.id,
            )

        record = DataTransaction(id=new_id("tx"), user_id=user_id, started_at=self._clock())
        self._transactions[record.id] = record
        self._open = _OpenTransaction(record=record, snapshot=snapshot)
        logger.info("Transaction %s started by %s", record.id, user_id)
        return record

    def record(
        self,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id: str,
        previous_state: Optional[dict],
        new_state: Optional[dict],
    ) -> None:
        """Append an operation to the active transaction (no-op when none is open)."""
        if self._open is None:
            return
        operations = self._open.record.operations
        operations.append(TransactionOperation(
            type=action,
            entity_type=entity_type,
            entity_id=entity_id,
            previous_state=previous_state,
            new_state=new_state,
            order=len(operations),
        ))

    def hold(self, event: ChangeEvent) -> bool:
        """Hold an event until commit.

        Returns:
            True if held, False if no transaction is open (deliver now)
        """
        if self._open is None:
            return False
        self._open.held_events.append(event)
        return True

    def commit(self, transaction_id: str) -> Tuple[DataTransaction, List[ChangeEvent]]:
        """Close the transaction and release its held events in order.

        Raises:
            StoreError: TRANSACTION_NOT_FOUND or TRANSACTION_NOT_ACTIVE
        """
        open_tx = self._require_open(transaction_id)
        record = open_tx.record
        record.status = TransactionStatus.COMMITTED
        record.completed_at = self._clock()
        self._open = None
        logger.info("Transaction %s committed with %d operation(s)", record.id, len(record.operations))
        return record, open_tx.held_events

    def rollback(self, transaction_id: str, reason: str) -> Tuple[DataTransaction, StoreSnapshot]:
        """Close the transaction and return the snapshot to restore.

        Held events are discarded.

        Raises:
            StoreError: TRANSACTION_NOT_FOUND or TRANSACTION_NOT_ACTIVE
        """
        open_tx = self._require_open(transaction_id)
        record = open_tx.record
        record.status = TransactionStatus.ROLLED_BACK
        record.completed_at = self._clock()
        record.rollback_reason = reason
        self._open = None
        logger.info(
            "Transaction %s rolled back (%s); discarded %d held event(s)",
            record.id,
            reason,
            len(open_tx.held_events),
        )
        return record, open_tx.snapshot

    def get(self, transaction_id: str) -> DataTransaction:
        record = self._transactions.get(transaction_id)
        if record is None:
            raise StoreError(f"Transaction {transaction_id} not found", "TRANSACTION_NOT_FOUND", entity_id=transaction_id)
        return record

    def get_active_transactions(self) -> List[DataTransaction]:
        return [self._open.record] if self._open else []

    def _require_open(self, transaction_id: str) -> _OpenTransaction:
        record = self.get(transaction_id)
        if self._open is None or self._open.record.id != record.id:
            raise StoreError(
                f"Transaction {transaction_id} is not active ({record.status})",
                "TRANSACTION_NOT_ACTIVE",
                entity_id=transaction_id,
            )
        return self._open
