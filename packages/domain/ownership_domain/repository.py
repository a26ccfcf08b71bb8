"""OwnershipRepository - the single public surface of the engine.

Every mutating call follows the same order:
    1. build the candidate record and validate it (nothing is touched yet)
    2. on failure raise a typed error carrying the ValidationResult
    3. on success store it, append an audit entry, record the transaction
       operation and emit one change event

Reads never validate, audit or emit.

Example:
    repo = OwnershipRepository(StoreCFG.production())
    holdco = repo.create_entity({"name": "Holdco", "type": "Corporation", "jurisdiction": "DE"}, "alice")
    opco = repo.create_entity({"name": "OpCo", "type": "LLC", "jurisdiction": "DE"}, "alice")
    units = repo.create_share_class(
        {"entity_id": opco.id, "name": "Units", "type": "Common Stock", "total_authorized_shares": 1000},
        "alice",
    )
    repo.create_ownership(
        {"owner_entity_id": holdco.id, "owned_entity_id": opco.id, "share_class_id": units.id, "shares": 600},
        "alice",
    )
    repo.get_cap_table_view(opco.id).ownership_summary[0].percentage  # 100.0
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

import pandas as pd

from .audit import AuditLog, snapshot_state
from .backup import BackupManager, BlobStore, InMemoryBlobStore
from .blocks import BlockExecutor, CapTableBlock, HierarchyBlock
from .errors import (
    CircularOwnershipError,
    ReferentialIntegrityError,
    StoreError,
    ValidationError,
)
from .rules import BusinessRuleEngine
from .schemas.audit import AuditAction, AuditEntityType, AuditEntry
from .schemas.base import as_utc, utc_now
from .schemas.config import StoreCFG
from .schemas.entities import Entity
from .schemas.events import ChangeEvent, ChangeEventType
from .schemas.ownership import OwnershipEdge
from .schemas.queries import EntitySearchQuery, OwnershipQuery, ShareClassSearchQuery
from .schemas.share_classes import ShareClass
from .schemas.snapshot import StoreSnapshot
from .schemas.transactions import DataTransaction
from .schemas.validation import BusinessRule, BusinessRuleViolation, ValidationResult
from .schemas.views import CapTableView, EntityNode, OwnershipLineage
from .stores import EntityStore, OwnershipGraph, OwnershipProposal, ShareClassStore
from .stores.base import Clock
from .transactions import TransactionManager
from .views import StoreState, ViewEngine

logger = logging.getLogger(__name__)

Listener = Callable[[ChangeEvent], None]

_INVERSE_ACTIONS = {
    AuditAction.CREATE: AuditAction.DELETE,
    AuditAction.UPDATE: AuditAction.UPDATE,
    AuditAction.DELETE: AuditAction.CREATE,
}

DateLike = Union[date, datetime]


class OwnershipRepository:
    """Entities, share classes and ownership edges behind one validated API.

    The repository owns all state; construct one per service and pass it
    where it is needed.

    Args:
        config: Store configuration (defaults to ``StoreCFG()``)
        blob_store: Backing store for backups (defaults to in-memory)
        clock: Returns the current datetime; naive values are taken as UTC
    """

    def __init__(
        self,
        config: Optional[StoreCFG] = None,
        blob_store: Optional[BlobStore] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or StoreCFG()
        source_clock = clock or utc_now
        self._clock: Clock = lambda: as_utc(source_clock())

        enforce = self.config.enforce_optimistic_locking
        self.entities = EntityStore(
            self._clock,
            enforce_versions=enforce,
            advisory_checks=self.config.enable_validation,
        )
        self.share_classes = ShareClassStore(self._clock, self.entities.exists, enforce_versions=enforce)
        self.rules = BusinessRuleEngine(
            future_horizon_days=self.config.future_effective_date_horizon_days,
            field_rules_enabled=self.config.enable_validation,
        )
        self.ownerships = OwnershipGraph(
            self._clock,
            self.entities.as_mapping(),
            self.share_classes.as_mapping(),
            self.rules,
            enforce_versions=enforce,
        )
        self.audit_log = AuditLog(self._clock)
        self.state = StoreState(
            entities=self.entities.as_mapping(),
            share_classes=self.share_classes.as_mapping(),
            ownerships=self.ownerships.as_mapping(),
        )
        self.views = ViewEngine(self.state, self._clock)
        self.transactions = TransactionManager(self._clock)
        self.backups = BackupManager(
            blob_store if blob_store is not None else InMemoryBlobStore(),
            self.config.backup_key_prefix,
            self._clock,
        )
        self._listeners: List[Listener] = []

    # =========================================================================
    # Entities
    # =========================================================================

    def create_entity(self, data: Mapping[str, Any], user_id: str, reason: Optional[str] = None) -> Entity:
        """Create an entity.

        Raises:
            ValidationError: INVALID_ENTITY_NAME for a blank name, INVALID_FIELD for bad values
        """
        entity = self.entities.prepare_create(data)
        result = self.entities.validate_fields(entity)
        if not result.is_valid:
            raise ValidationError("Entity creation validation failed", result, entity_id=entity.id)

        self.entities.insert(entity)
        self._after_mutation(
            AuditAction.CREATE, AuditEntityType.ENTITY, entity.id, user_id,
            previous=None, new=entity, related=[], reason=reason,
            validations_passed=result.rules_passed,
            event_type=ChangeEventType.ENTITY_CREATED, event_entity_id=entity.id,
        )
        logger.info("Created entity %s (%s) %s", entity.name, entity.type, entity.id)
        return entity

    def update_entity(
        self,
        entity_id: str,
        patch: Mapping[str, Any],
        user_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Entity:
        """Merge a patch into an entity (version + 1).

        Raises:
            NotFoundError: ENTITY_NOT_FOUND
            ConcurrencyConflictError: If expected_version is stale
            ValidationError: If the result would be invalid
        """
        previous = self.entities.require(entity_id)
        entity = self.entities.prepare_update(entity_id, patch, expected_version)
        result = self.entities.validate_fields(entity)
        if not result.is_valid:
            raise ValidationError("Entity update validation failed", result, entity_id=entity_id)

        self.entities.insert(entity)
        self._after_mutation(
            AuditAction.UPDATE, AuditEntityType.ENTITY, entity_id, user_id,
            previous=previous, new=entity, related=[], reason=reason,
            validations_passed=result.rules_passed,
            event_type=ChangeEventType.ENTITY_UPDATED, event_entity_id=entity_id,
        )
        logger.info("Updated entity %s to version %d", entity_id, entity.version)
        return entity

    def delete_entity(self, entity_id: str, user_id: str, reason: Optional[str] = None) -> None:
        """Delete an entity that no ownership edge references.

        Share classes issued by the entity are deleted with it (each with its
        own audit entry and event); none of them can still be referenced once
        the entity has no incident edges.

        Raises:
            NotFoundError: ENTITY_NOT_FOUND
            ReferentialIntegrityError: ENTITY_OWNS_OTHERS and/or ENTITY_OWNED_BY_OTHERS,
                with the blocking edge ids in ``related_ids``
        """
        entity = self.entities.require(entity_id)
        result = self.validate_entity_deletion(entity_id)
        if not result.is_valid:
            blocking = [edge.id for edge in self.ownerships.by_entity(entity_id)]
            raise ReferentialIntegrityError(
                f"Entity {entity.name} cannot be deleted: {result.summary()}",
                entity_id,
                blocking,
                result,
            )

        for share_class in self.share_classes.by_entity(entity_id):
            self._remove_share_class(share_class, user_id, reason, ValidationResult.ok())

        self.entities.delete(entity_id)
        self._after_mutation(
            AuditAction.DELETE, AuditEntityType.ENTITY, entity_id, user_id,
            previous=entity, new=None, related=[], reason=reason,
            validations_passed=result.rules_passed,
            event_type=ChangeEventType.ENTITY_DELETED, event_entity_id=entity_id,
        )
        logger.info("Deleted entity %s %s", entity.name, entity_id)

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self.entities.get(entity_id)

    def get_all_entities(self) -> List[Entity]:
        return self.entities.get_all()

    def search_entities(self, query: Optional[EntitySearchQuery] = None) -> List[Entity]:
        """Search entities; ownership filters are resolved against the graph."""
        query = query or EntitySearchQuery()
        matches = self.entities.search(query)

        if query.has_ownerships is not None:
            owners = {edge.owner_entity_id for edge in self.ownerships.get_all()}
            matches = [e for e in matches if (e.id in owners) == query.has_ownerships]
        if query.is_owned is not None:
            owned = {edge.owned_entity_id for edge in self.ownerships.get_all()}
            matches = [e for e in matches if (e.id in owned) == query.is_owned]

        return matches

    # =========================================================================
    # Share Classes
    # =========================================================================

    def create_share_class(self, data: Mapping[str, Any], user_id: str, reason: Optional[str] = None) -> ShareClass:
        """Create a share class issued by an existing entity.

        Raises:
            ValidationError: ISSUER_ENTITY_EXISTS, INVALID_SHARE_CLASS_NAME or INVALID_FIELD
        """
        share_class = self.share_classes.prepare_create(data)
        result = self.share_classes.validate_fields(share_class, is_new=True)
        if not result.is_valid:
            raise ValidationError("Share class creation validation failed", result, entity_id=share_class.id)

        self.share_classes.insert(share_class)
        self._after_mutation(
            AuditAction.CREATE, AuditEntityType.SHARE_CLASS, share_class.id, user_id,
            previous=None, new=share_class, related=[share_class.entity_id], reason=reason,
            validations_passed=result.rules_passed,
            event_type=ChangeEventType.SHARE_CLASS_CREATED, event_entity_id=share_class.id,
        )
        logger.info("Created share class %s for entity %s", share_class.name, share_class.entity_id)
        return share_class

    def update_share_class(
        self,
        share_class_id: str,
        patch: Mapping[str, Any],
        user_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> ShareClass:
        """Update a share class; the issuer is immutable.

        Raises:
            NotFoundError: SHARE_CLASS_NOT_FOUND
            ConcurrencyConflictError: If expected_version is stale
            ValidationError: IMMUTABLE_FIELD, or NO_OVER_ALLOCATION when the new
                ceiling is below the shares already issued
        """
        previous = self.share_classes.require(share_class_id)
        share_class = self.share_classes.prepare_update(share_class_id, patch, expected_version)
        result = self.share_classes.validate_fields(share_class, is_new=False)
        result.merge(self.rules.validate_share_class_ceiling(share_class, self.ownerships.context()))
        if not result.is_valid:
            raise ValidationError("Share class update validation failed", result, entity_id=share_class_id)

        self.share_classes.insert(share_class)
        self._after_mutation(
            AuditAction.UPDATE, AuditEntityType.SHARE_CLASS, share_class_id, user_id,
            previous=previous, new=share_class, related=[share_class.entity_id], reason=reason,
            validations_passed=result.rules_passed,
            event_type=ChangeEventType.SHARE_CLASS_UPDATED, event_entity_id=share_class_id,
        )
        logger.info("Updated share class %s to version %d", share_class_id, share_class.version)
        return share_class

    def delete_share_class(self, share_class_id: str, user_id: str, reason: Optional[str] = None) -> None:
        """Delete a share class no ownership edge references.

        Raises:
            NotFoundError: SHARE_CLASS_NOT_FOUND
            ReferentialIntegrityError: SHARE_CLASS_IN_USE, with the referencing edge ids
        """
        share_class = self.share_classes.require(share_class_id)
        result = self.validate_share_class_deletion(share_class_id)
        if not result.is_valid:
            blocking = [edge.id for edge in self.ownerships.by_share_class(share_class_id)]
            raise ReferentialIntegrityError(
                f"Share class {share_class.name} cannot be deleted: {result.summary()}",
                share_class_id,
                blocking,
                result,
            )
        self._remove_share_class(share_class, user_id, reason, result)

    def _remove_share_class(
        self, share_class: ShareClass, user_id: str, reason: Optional[str], result: ValidationResult
    ) -> None:
        self.share_classes.delete(share_class.id)
        self._after_mutation(
            AuditAction.DELETE, AuditEntityType.SHARE_CLASS, share_class.id, user_id,
            previous=share_class, new=None, related=[share_class.entity_id], reason=reason,
            validations_passed=result.rules_passed,
            event_type=ChangeEventType.SHARE_CLASS_DELETED, event_entity_id=share_class.id,
        )
        logger.info("Deleted share class %s %s", share_class.name, share_class.id)

    def get_share_class(self, share_class_id: str) -> Optional[ShareClass]:
        return self.share_classes.get(share_class_id)

    def get_share_classes_by_entity(self, entity_id: str) -> List[ShareClass]:
        return self.share_classes.by_entity(entity_id)

    def get_all_share_classes(self) -> List[ShareClass]:
        return self.share_classes.get_all()

    def search_share_classes(self, query: Optional[ShareClassSearchQuery] = None) -> List[ShareClass]:
        return self.share_classes.search(query or ShareClassSearchQuery())

    def create_default_share_classes(
        self,
        entity_id: str,
        user_id: str,
        authorized_shares: Union[int, Decimal] = 10_000_000,
    ) -> List[ShareClass]:
        """Create the template share classes for the entity's type.

        Each template takes its fraction of ``authorized_shares`` (e.g., a
        corporation gets 80% common and 20% Series A preferred).

        Raises:
            NotFoundError: ENTITY_NOT_FOUND
        """
        entity = self.entities.require(entity_id)
        total = Decimal(authorized_shares)
        created = []
        for template in entity.profile.default_share_classes:
            created.append(self.create_share_class(
                {
                    "entity_id": entity_id,
                    "name": template.name,
                    "type": template.share_class_type,
                    "total_authorized_shares": total * template.authorized_fraction,
                    "voting_rights": template.voting_rights,
                    "liquidation_preference": template.liquidation_preference,
                },
                user_id,
                reason=f"Default share classes for {entity.type}",
            ))
        return created

    # =========================================================================
    # Ownerships
    # =========================================================================

    def create_ownership(self, data: Mapping[str, Any], user_id: str, reason: Optional[str] = None) -> OwnershipEdge:
        """Create an ownership edge after all business rules pass.

        Raises:
            CircularOwnershipError: NO_CIRCULAR_OWNERSHIP (including self-ownership)
            ValidationError: Any other failing rule (NO_OVER_ALLOCATION,
                POSITIVE_SHARES_ONLY, SHARE_CLASS_EXISTS, ...)
        """
        proposal = self.ownerships.prepare_create(data, user_id, reason)
        self._raise_for_ownership(proposal, "Ownership creation validation failed")

        edge = self.ownerships.insert(proposal.edge)
        self._after_mutation(
            AuditAction.CREATE, AuditEntityType.OWNERSHIP, edge.id, user_id,
            previous=None, new=edge, related=[edge.owner_entity_id, edge.owned_entity_id], reason=reason,
            validations_passed=proposal.result.rules_passed,
            event_type=ChangeEventType.OWNERSHIP_CREATED, event_entity_id=edge.owned_entity_id,
        )
        logger.info(
            "Created ownership %s: %s holds %s shares of %s",
            edge.id, edge.owner_entity_id, edge.shares, edge.owned_entity_id,
        )
        return edge

    def update_ownership(
        self,
        ownership_id: str,
        patch: Mapping[str, Any],
        user_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> OwnershipEdge:
        """Replace an ownership edge after all business rules pass for the new version.

        Raises:
            NotFoundError: OWNERSHIP_NOT_FOUND
            ConcurrencyConflictError: If expected_version is stale
            CircularOwnershipError / ValidationError: As for create_ownership
        """
        proposal = self.ownerships.prepare_update(ownership_id, patch, user_id, reason, expected_version)
        self._raise_for_ownership(proposal, "Ownership update validation failed", ownership_id)

        edge = self.ownerships.insert(proposal.edge)
        related = list(dict.fromkeys([
            proposal.previous.owner_entity_id,
            proposal.previous.owned_entity_id,
            edge.owner_entity_id,
            edge.owned_entity_id,
        ]))
        self._after_mutation(
            AuditAction.UPDATE, AuditEntityType.OWNERSHIP, ownership_id, user_id,
            previous=proposal.previous, new=edge, related=related, reason=reason,
            validations_passed=proposal.result.rules_passed,
            event_type=ChangeEventType.OWNERSHIP_UPDATED, event_entity_id=edge.owned_entity_id,
        )
        logger.info("Updated ownership %s to version %d", ownership_id, edge.version)
        return edge

    def delete_ownership(self, ownership_id: str, user_id: str, reason: Optional[str] = None) -> None:
        """Remove an ownership edge.

        Raises:
            NotFoundError: OWNERSHIP_NOT_FOUND
        """
        proposal = self.ownerships.prepare_delete(ownership_id)
        edge = self.ownerships.remove(ownership_id)
        self._after_mutation(
            AuditAction.DELETE, AuditEntityType.OWNERSHIP, ownership_id, user_id,
            previous=edge, new=None, related=[edge.owner_entity_id, edge.owned_entity_id], reason=reason,
            validations_passed=proposal.result.rules_passed,
            event_type=ChangeEventType.OWNERSHIP_DELETED, event_entity_id=edge.owned_entity_id,
        )
        logger.info("Deleted ownership %s", ownership_id)

    def _raise_for_ownership(
        self, proposal: OwnershipProposal, message: str, ownership_id: Optional[str] = None
    ) -> None:
        if proposal.is_valid:
            return
        result = proposal.result
        logger.debug("%s: %s", message, result.summary())
        if proposal.edge is not None and result.has_error(BusinessRule.NO_CIRCULAR_OWNERSHIP.value):
            raise CircularOwnershipError(proposal.edge.owner_entity_id, proposal.edge.owned_entity_id, result)
        raise ValidationError(message, result, entity_id=ownership_id)

    def get_ownership(self, ownership_id: str) -> Optional[OwnershipEdge]:
        return self.ownerships.get(ownership_id)

    def get_ownerships_by_entity(self, entity_id: str) -> List[OwnershipEdge]:
        """Edges where the entity is either owner or owned."""
        return self.ownerships.by_entity(entity_id)

    def get_all_ownerships(self) -> List[OwnershipEdge]:
        return self.ownerships.get_all()

    def query_ownerships(self, query: Optional[OwnershipQuery] = None) -> List[OwnershipEdge]:
        return self.ownerships.query(query or OwnershipQuery())

    # =========================================================================
    # Validation (no side effects)
    # =========================================================================

    def validate_entity_deletion(self, entity_id: str) -> ValidationResult:
        return self.rules.validate_entity_deletion(entity_id, self.ownerships.context())

    def validate_share_class_deletion(self, share_class_id: str) -> ValidationResult:
        return self.rules.validate_share_class_deletion(share_class_id, self.ownerships.context())

    def validate_ownership_change(
        self,
        data: Mapping[str, Any],
        ownership_id: Optional[str] = None,
        user_id: str = "system",
    ) -> ValidationResult:
        """Dry-run a create (or, with ``ownership_id``, an update) of an edge."""
        if ownership_id is not None:
            return self.ownerships.prepare_update(ownership_id, data, user_id).result
        return self.ownerships.prepare_create(data, user_id).result

    def validate_circular_ownership(self, owner_entity_id: str, owned_entity_id: str) -> ValidationResult:
        return self.rules.validate_circular_ownership(owner_entity_id, owned_entity_id, self.ownerships.context())

    def check_business_rules(self, entity_id: Optional[str] = None) -> List[BusinessRuleViolation]:
        """Re-check stored edges (all, or those incident to one entity)."""
        return self.rules.find_violations(self.ownerships.context(), entity_id)

    def validate_data_integrity(self) -> ValidationResult:
        """Scan references, allocation ceilings and acyclicity of the stored state."""
        return self.rules.scan_integrity(self.ownerships.context())

    # =========================================================================
    # Views
    # =========================================================================

    def get_cap_table_view(self, entity_id: str) -> CapTableView:
        return self.views.cap_table_view(entity_id)

    def get_ownership_hierarchy(self) -> List[EntityNode]:
        return self.views.ownership_hierarchy()

    def get_entity_ownership_chain(self, entity_id: str, via_owner_id: Optional[str] = None) -> List[EntityNode]:
        return self.views.entity_ownership_chain(entity_id, via_owner_id)

    def get_entity_lineage(self, entity_id: str) -> OwnershipLineage:
        return self.views.entity_lineage(entity_id)

    def cap_table_frames(self, entity_id: str) -> Dict[str, pd.DataFrame]:
        """Cap table of one entity as DataFrames (see CapTableBlock)."""
        executor = BlockExecutor([CapTableBlock()])
        context = executor.run(cap_table_view=self.get_cap_table_view(entity_id))
        return dict(executor.outputs(context))

    def hierarchy_frames(self) -> Dict[str, pd.DataFrame]:
        """Edge list and entity levels as DataFrames (see HierarchyBlock)."""
        executor = BlockExecutor([HierarchyBlock()])
        context = executor.run(store_state=self.state)
        return dict(executor.outputs(context))

    # =========================================================================
    # Audit
    # =========================================================================

    def get_audit_trail(
        self,
        entity_id: Optional[str] = None,
        from_date: Optional[DateLike] = None,
        to_date: Optional[DateLike] = None,
    ) -> List[AuditEntry]:
        return self.audit_log.query(entity_id, from_date, to_date)

    def get_change_history(self, entity_id: str, entity_type: AuditEntityType) -> List[AuditEntry]:
        return self.audit_log.change_history(entity_id, entity_type)

    def export_audit_report(
        self, from_date: Optional[DateLike] = None, to_date: Optional[DateLike] = None
    ) -> bytes:
        return self.audit_log.export_report(from_date, to_date)

    def prune_audit_log(self, now: Optional[datetime] = None) -> int:
        """Apply ``max_audit_retention_days``; returns the number of entries removed."""
        return self.audit_log.prune(self.config.max_audit_retention_days, now)

    # =========================================================================
    # Transactions
    # =========================================================================

    def begin_transaction(self, user_id: str) -> DataTransaction:
        """Open a transaction; state at this point is what rollback returns to.

        Raises:
            StoreError: TRANSACTIONS_DISABLED or TRANSACTION_ALREADY_ACTIVE
        """
        if not self.config.enable_transactions:
            raise StoreError("Transactions are disabled by configuration", "TRANSACTIONS_DISABLED")
        return self.transactions.begin(user_id, self._snapshot())

    def commit_transaction(self, transaction_id: str) -> DataTransaction:
        """Commit and deliver the held change events, then TRANSACTION_COMMITTED."""
        record, held = self.transactions.commit(transaction_id)
        for event in held:
            self._deliver(event)
        self._deliver(ChangeEvent(
            type=ChangeEventType.TRANSACTION_COMMITTED,
            entity_id=record.id,
            timestamp=self._clock(),
            user_id=record.user_id,
            data={"operations": len(record.operations)},
        ))
        return record

    def rollback_transaction(self, transaction_id: str, reason: str = "") -> DataTransaction:
        """Restore the records captured by begin_transaction and drop held events.

        The audit trail is not rewound: each entry written inside the
        transaction gets a compensating entry, newest first, so the trail
        still replays to the current state.
        """
        record, snapshot = self.transactions.rollback(transaction_id, reason)
        self._load(snapshot, include_audit=False)
        self._compensate(record, snapshot.audit_sequence, reason)
        self._deliver(ChangeEvent(
            type=ChangeEventType.TRANSACTION_ROLLED_BACK,
            entity_id=record.id,
            timestamp=self._clock(),
            user_id=record.user_id,
            data={"reason": reason},
        ))
        return record

    def get_active_transactions(self) -> List[DataTransaction]:
        return self.transactions.get_active_transactions()

    @contextmanager
    def transaction(self, user_id: str) -> Iterator[DataTransaction]:
        """Commit on normal exit, roll back and re-raise on any exception.

        Example:
            with repo.transaction("alice"):
                a = repo.create_entity({...}, "alice")
                repo.create_ownership({...}, "alice")
        """
        tx = self.begin_transaction(user_id)
        try:
            yield tx
        except Exception as exc:
            self.rollback_transaction(tx.id, reason=f"{type(exc).__name__}: {exc}")
            raise
        self.commit_transaction(tx.id)

    # =========================================================================
    # Backup / Restore
    # =========================================================================

    def create_backup(self) -> str:
        return self.backups.create_backup(self._snapshot())

    def restore_from_backup(self, backup_id: str) -> ValidationResult:
        """Replace all in-memory state with a backup.

        No events are emitted and no audit entries are appended. Integrity
        problems in the restored state are logged, not refused.

        Returns:
            Integrity scan of the restored state

        Raises:
            StoreError: BACKUP_NOT_FOUND, BACKUP_CORRUPT, or TRANSACTION_ALREADY_ACTIVE while a
                transaction is open
        """
        active = self.transactions.active
        if active is not None:
            raise StoreError(
                f"Cannot restore while transaction {active.id} is active",
                "TRANSACTION_ALREADY_ACTIVE",
                entity_id=active.id,
            )

        snapshot = self.backups.restore(backup_id)
        self._load(snapshot)

        result = self.validate_data_integrity()
        for issue in result.errors:
            logger.warning("Restored backup %s: %s: %s", backup_id, issue.code, issue.message)
        logger.info(
            "Restored backup %s (%d entities, %d ownerships)",
            backup_id, len(self.entities), len(self.ownerships),
        )
        return result

    def _snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            timestamp=self._clock(),
            entities=self.entities.dump(),
            share_classes=self.share_classes.dump(),
            ownerships=self.ownerships.dump(),
            audit_log=self.audit_log.entries(),
            audit_sequence=self.audit_log.sequence,
        )

    def _load(self, snapshot: StoreSnapshot, include_audit: bool = True) -> None:
        self.entities.load(snapshot.entities)
        self.share_classes.load(snapshot.share_classes)
        self.ownerships.load(snapshot.ownerships)
        if include_audit:
            self.audit_log.restore(snapshot.audit_log, snapshot.audit_sequence)

    def _compensate(self, record: DataTransaction, since_sequence: int, reason: str) -> None:
        note = f"Rollback of transaction {record.id}" + (f": {reason}" if reason else "")
        for entry in reversed(self.audit_log.since(since_sequence)):
            self.audit_log.append(
                _INVERSE_ACTIONS[AuditAction(entry.action)],
                AuditEntityType(entry.entity_type),
                entry.entity_id,
                record.user_id,
                previous_state=entry.new_state,
                new_state=entry.previous_state,
                related_entity_ids=entry.related_entity_ids,
                change_reason=note,
            )

    # =========================================================================
    # Change Events
    # =========================================================================

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _after_mutation(
        self,
        action: AuditAction,
        audit_type: AuditEntityType,
        record_id: str,
        user_id: str,
        previous: Any,
        new: Any,
        related: List[str],
        reason: Optional[str],
        validations_passed: List[str],
        event_type: ChangeEventType,
        event_entity_id: str,
    ) -> None:
        previous_state = snapshot_state(previous)
        new_state = snapshot_state(new)

        if self.config.enable_audit_logging:
            self.audit_log.append(
                action,
                audit_type,
                record_id,
                user_id,
                previous_state=previous_state,
                new_state=new_state,
                related_entity_ids=related,
                change_reason=reason,
                validations_passed=validations_passed,
            )

        self.transactions.record(action, audit_type, record_id, previous_state, new_state)

        event = ChangeEvent(
            type=event_type,
            entity_id=event_entity_id,
            timestamp=self._clock(),
            user_id=user_id,
            data=new_state if new_state is not None else previous_state,
            related_entity_ids=related,
        )
        if not self.transactions.hold(event):
            self._deliver(event)

    def _deliver(self, event: ChangeEvent) -> None:
        """Call listeners in registration order; a failing listener never stops the rest."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Change listener %r failed on %s", listener, event.type)
