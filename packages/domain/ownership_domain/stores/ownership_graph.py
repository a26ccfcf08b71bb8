"""Ownership graph - the edge map and its gatekeeping proposals.

Every ownership mutation goes through a proposal first. Proposals build the
candidate edge and ask the business rule engine about it, without touching
the edge map; the repository commits with ``insert``/``remove`` only when the
proposal's result is valid.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from ..errors import ValidationError
from ..rules import BusinessRuleEngine, ValidationContext
from ..schemas.base import new_id
from ..schemas.entities import Entity
from ..schemas.ownership import OwnershipEdge
from ..schemas.queries import OwnershipQuery
from ..schemas.share_classes import ShareClass
from ..schemas.validation import MISSING_REQUIRED_FIELDS, ValidationResult
from .base import Clock, RecordStore, build_record, check_patch_fields

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("owner_entity_id", "owned_entity_id", "share_class_id", "shares")

# Set from the acting user, never from the payload.
ACTOR_FIELDS = ("created_by", "updated_by", "change_reason")


@dataclass
class OwnershipProposal:
    """Outcome of proposing an ownership mutation.

    Attributes:
        result: Validation outcome; commit only if ``result.is_valid``
        edge: Candidate edge to store (None for deletions or malformed input)
        previous: Current version of the edge for updates and deletions
    """

    result: ValidationResult
    edge: Optional[OwnershipEdge] = None
    previous: Optional[OwnershipEdge] = None

    @property
    def is_valid(self) -> bool:
        return self.result.is_valid


class OwnershipGraph(RecordStore[OwnershipEdge]):
    """Owns ownership edges and validates every change against the rule engine.

    Example:
        graph = OwnershipGraph(clock, entities.as_mapping(), share_classes.as_mapping(), engine)
        proposal = graph.prepare_create(
            {"owner_entity_id": holdco.id, "owned_entity_id": opco.id,
             "share_class_id": common.id, "shares": 600},
            user_id="alice",
        )
        if proposal.is_valid:
            graph.insert(proposal.edge)
    """

    not_found_code = "OWNERSHIP_NOT_FOUND"
    label = "Ownership"

    def __init__(
        self,
        clock: Clock,
        entities: Mapping[str, Entity],
        share_classes: Mapping[str, ShareClass],
        rules: BusinessRuleEngine,
        enforce_versions: bool = True,
    ):
        """Initialize OwnershipGraph.

        Args:
            clock: Returns the current (aware) datetime for timestamps
            entities: Live read-only view of the entity store
            share_classes: Live read-only view of the share class store
            rules: Business rule engine consulted by every proposal
            enforce_versions: Reject updates whose expected_version is stale
        """
        super().__init__(clock)
        self._entities = entities
        self._share_classes = share_classes
        self.rules = rules
        self.enforce_versions = enforce_versions

    def today(self) -> date:
        return self._clock().date()

    def context(self, replaces: Optional[str] = None) -> ValidationContext:
        """Validation context over the current state."""
        return ValidationContext(
            entities=self._entities,
            share_classes=self._share_classes,
            ownerships=self.as_mapping(),
            today=self.today(),
            replaces=replaces,
        )

    # ------------------------------------------------------------------ #
    # Proposals (no side effects)
    # ------------------------------------------------------------------ #

    def prepare_create(
        self,
        data: Mapping[str, Any],
        user_id: str,
        reason: Optional[str] = None,
    ) -> OwnershipProposal:
        """Build and validate a new edge.

        Missing required fields and malformed values are reported in the
        result rather than raised.
        """
        missing = [name for name in REQUIRED_FIELDS if data.get(name) is None]
        if missing:
            result = ValidationResult.failure(
                MISSING_REQUIRED_FIELDS,
                f"Missing required ownership fields: {', '.join(missing)}",
                field="ownership",
            )
            return OwnershipProposal(result=result)

        try:
            fields = check_patch_fields(OwnershipEdge, data, "<new ownership>")
            now = self._clock()
            payload: Dict[str, Any] = {
                "effective_date": now.date(),
                **{k: v for k, v in fields.items() if k not in ACTOR_FIELDS},
                "id": new_id("ownership"),
                "version": 1,
                "created_by": user_id,
                "created_at": now,
                "updated_by": user_id,
                "updated_at": now,
                "change_reason": reason,
            }
            edge = build_record(OwnershipEdge, payload)
        except ValidationError as exc:
            return OwnershipProposal(result=exc.validation_result)

        result = self.rules.validate_ownership(edge, self.context())
        return OwnershipProposal(result=result, edge=edge)

    def prepare_update(
        self,
        ownership_id: str,
        patch: Mapping[str, Any],
        user_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> OwnershipProposal:
        """Build and validate the replacement for an existing edge.

        The edge's current shares are excluded from the allocation total and
        its current direction from the cycle search, so only the replacement
        is judged.

        Raises:
            NotFoundError: OWNERSHIP_NOT_FOUND if the id is unknown
            ConcurrencyConflictError: If expected_version is stale
        """
        current = self.require(ownership_id)
        self._check_version(current, expected_version, self.enforce_versions)

        try:
            changes = check_patch_fields(OwnershipEdge, patch, ownership_id, immutable=("created_by",), current=current)
            changes = {k: v for k, v in changes.items() if k not in ACTOR_FIELDS}
            payload = self._stamp_update(current, changes)
            payload["updated_by"] = user_id
            payload["change_reason"] = reason
            edge = build_record(OwnershipEdge, payload, ownership_id)
        except ValidationError as exc:
            return OwnershipProposal(result=exc.validation_result, previous=current)

        result = self.rules.validate_ownership(edge, self.context(replaces=ownership_id))
        return OwnershipProposal(result=result, edge=edge, previous=current)

    def prepare_delete(self, ownership_id: str) -> OwnershipProposal:
        """Removing an edge can never break an invariant; only existence is checked."""
        current = self.require(ownership_id)
        return OwnershipProposal(result=ValidationResult.ok(), previous=current)

    def propose_create(self, data: Mapping[str, Any], user_id: str = "system") -> ValidationResult:
        return self.prepare_create(data, user_id).result

    def propose_update(self, ownership_id: str, patch: Mapping[str, Any], user_id: str = "system") -> ValidationResult:
        return self.prepare_update(ownership_id, patch, user_id).result

    def propose_delete(self, ownership_id: str) -> ValidationResult:
        return self.prepare_delete(ownership_id).result

    # ------------------------------------------------------------------ #
    # Raw mutations (callers validate first)
    # ------------------------------------------------------------------ #

    def insert(self, edge: OwnershipEdge) -> OwnershipEdge:
        """Store a new or replacement edge."""
        return self._store(edge)

    def remove(self, ownership_id: str) -> OwnershipEdge:
        return self.delete(ownership_id)

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    def incoming(self, entity_id: str) -> List[OwnershipEdge]:
        """Edges where the entity is owned (its cap table)."""
        return [e for e in self._records.values() if e.owned_entity_id == entity_id]

    def outgoing(self, entity_id: str) -> List[OwnershipEdge]:
        """Edges where the entity is the owner (its holdings)."""
        return [e for e in self._records.values() if e.owner_entity_id == entity_id]

    def by_entity(self, entity_id: str) -> List[OwnershipEdge]:
        """Edges incident to the entity in either direction."""
        return [
            e for e in self._records.values()
            if entity_id in (e.owner_entity_id, e.owned_entity_id)
        ]

    def by_share_class(self, share_class_id: str) -> List[OwnershipEdge]:
        return [e for e in self._records.values() if e.share_class_id == share_class_id]

    def issued_shares(self, share_class_id: str) -> Decimal:
        return sum((e.shares for e in self.by_share_class(share_class_id)), Decimal("0"))

    def query(self, query: OwnershipQuery, today: Optional[date] = None) -> List[OwnershipEdge]:
        """Filter edges; all filters combine with AND."""
        today = today or self.today()
        matches = self.get_all()

        if query.owner_entity_id:
            matches = [e for e in matches if e.owner_entity_id == query.owner_entity_id]
        if query.owned_entity_id:
            matches = [e for e in matches if e.owned_entity_id == query.owned_entity_id]
        if query.share_class_id:
            matches = [e for e in matches if e.share_class_id == query.share_class_id]
        if query.min_shares is not None:
            matches = [e for e in matches if e.shares >= query.min_shares]
        if query.max_shares is not None:
            matches = [e for e in matches if e.shares <= query.max_shares]
        if query.effective_after is not None:
            matches = [e for e in matches if e.effective_date >= query.effective_after]
        if query.effective_before is not None:
            matches = [e for e in matches if e.effective_date <= query.effective_before]
        if not query.include_expired:
            matches = [e for e in matches if not e.is_expired(today)]

        return matches
