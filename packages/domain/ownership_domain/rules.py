"""Business rule engine for ownership mutations.

The engine is stateless: every check receives a ValidationContext holding
read-only views of the current records and returns a ValidationResult. It
never raises for a rule violation and never mutates anything; the repository
decides what to do with the result.

Rule groups:
- Integrity (always enforced): referential existence, issuer match,
  positive shares, acyclicity, allocation ceilings, deletion safety
- Field sanity (skipped when validation is disabled): expiry after
  effective date
- Advisory (warnings only): far-future effective dates
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .schemas.entities import Entity
from .schemas.ownership import OwnershipEdge
from .schemas.share_classes import ShareClass
from .schemas.validation import (
    BusinessRule,
    BusinessRuleViolation,
    ENTITY_OWNED_BY_OTHERS,
    ENTITY_OWNS_OTHERS,
    INVALID_OWNED_REFERENCE,
    INVALID_OWNER_REFERENCE,
    INVALID_SHARE_CLASS_REFERENCE,
    SHARE_CLASS_IN_USE,
    ValidationResult,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Validation Context
# =============================================================================

@dataclass
class ValidationContext:
    """Read-only state a rule needs to evaluate a proposal.

    Attributes:
        entities: Entity id -> Entity
        share_classes: Share class id -> ShareClass
        ownerships: Ownership id -> OwnershipEdge (current edges)
        today: Reference date for date-based rules
        replaces: Id of the edge being updated; its current version is
            ignored so the proposal is checked as its replacement
    """

    entities: Mapping[str, Entity]
    share_classes: Mapping[str, ShareClass]
    ownerships: Mapping[str, OwnershipEdge]
    today: date
    replaces: Optional[str] = None

    def other_edges(self) -> List[OwnershipEdge]:
        """Current edges minus the one being replaced."""
        return [edge for edge in self.ownerships.values() if edge.id != self.replaces]


# =============================================================================
# Graph Helpers
# =============================================================================

def build_adjacency(edges: Iterable[OwnershipEdge]) -> Dict[str, List[str]]:
    """owner id -> owned ids, one entry per edge, in edge order."""
    adjacency: Dict[str, List[str]] = defaultdict(list)
    for edge in edges:
        adjacency[edge.owner_entity_id].append(edge.owned_entity_id)
    return adjacency


def find_cycle(adjacency: Mapping[str, List[str]], start_nodes: Iterable[str]) -> Optional[List[str]]:
    """Depth-first search with a recursion stack.

    A node met again while it is still on the current path closes a cycle.
    Iterative so deep ownership chains cannot hit the recursion limit.

    Args:
        adjacency: owner id -> owned ids
        start_nodes: Nodes to start searching from

    Returns:
        The cycle as a node path (first node repeated at the end), or None

    Example:
        find_cycle({"a": ["b"], "b": ["a"]}, ["a"]) -> ["a", "b", "a"]
        find_cycle({"a": ["a"]}, ["a"]) -> ["a", "a"]
    """
    visited: Set[str] = set()

    for start in start_nodes:
        if start in visited:
            continue

        visited.add(start)
        path: List[str] = [start]
        on_path: Set[str] = {start}
        pending = [iter(adjacency.get(start, ()))]

        while pending:
            advanced = False
            for nxt in pending[-1]:
                if nxt in on_path:
                    return path[path.index(nxt):] + [nxt]
                if nxt not in visited:
                    visited.add(nxt)
                    path.append(nxt)
                    on_path.add(nxt)
                    pending.append(iter(adjacency.get(nxt, ())))
                    advanced = True
                    break
            if not advanced:
                pending.pop()
                on_path.discard(path.pop())

    return None


def issued_shares(edges: Iterable[OwnershipEdge], share_class_id: str) -> Decimal:
    """Sum of shares over the edges referencing a share class."""
    return sum(
        (edge.shares for edge in edges if edge.share_class_id == share_class_id),
        Decimal("0"),
    )


# =============================================================================
# Business Rule Engine
# =============================================================================

OwnershipRule = Callable[[OwnershipEdge, ValidationContext, ValidationResult], None]


class BusinessRuleEngine:
    """Evaluates ownership business rules in a fixed order.

    Example:
        engine = BusinessRuleEngine()
        ctx = ValidationContext(entities, share_classes, ownerships, today=date.today())
        result = engine.validate_ownership(candidate_edge, ctx)
        if not result.is_valid:
            print(result.error_codes)  # e.g., ["NO_OVER_ALLOCATION"]
    """

    def __init__(self, future_horizon_days: int = 365, field_rules_enabled: bool = True):
        """Initialize BusinessRuleEngine.

        Args:
            future_horizon_days: Effective dates further out than this produce a warning
            field_rules_enabled: Run field-sanity and advisory rules. Integrity
                rules run regardless.
        """
        self.future_horizon_days = future_horizon_days
        self.field_rules_enabled = field_rules_enabled

        self._integrity_rules: List[Tuple[BusinessRule, OwnershipRule]] = [
            (BusinessRule.OWNER_ENTITY_EXISTS, self._check_owner_exists),
            (BusinessRule.OWNED_ENTITY_EXISTS, self._check_owned_exists),
            (BusinessRule.SHARE_CLASS_EXISTS, self._check_share_class_exists),
            (BusinessRule.SHARE_CLASS_ISSUED_BY_OWNED_ENTITY, self._check_share_class_issuer),
            (BusinessRule.POSITIVE_SHARES_ONLY, self._check_positive_shares),
            (BusinessRule.NO_CIRCULAR_OWNERSHIP, self._check_no_cycle),
            (BusinessRule.NO_OVER_ALLOCATION, self._check_allocation),
        ]
        self._field_rules: List[Tuple[BusinessRule, OwnershipRule]] = [
            (BusinessRule.VALID_DATE_RANGE, self._check_date_range),
            (BusinessRule.FUTURE_EFFECTIVE_DATE_ALLOWED, self._check_future_date),
        ]

    @property
    def active_rules(self) -> List[BusinessRule]:
        rules = self._integrity_rules + (self._field_rules if self.field_rules_enabled else [])
        return [rule for rule, _ in rules]

    # ------------------------------------------------------------------ #
    # Ownership proposals
    # ------------------------------------------------------------------ #

    def validate_ownership(self, edge: OwnershipEdge, ctx: ValidationContext) -> ValidationResult:
        """Run every active rule against a proposed (new or replacement) edge."""
        result = ValidationResult()
        rules = self._integrity_rules + (self._field_rules if self.field_rules_enabled else [])

        for rule, check in rules:
            result.rules_checked.append(rule.value)
            check(edge, ctx, result)

        logger.debug(
            "Ownership %s -> %s validated: %s",
            edge.owner_entity_id,
            edge.owned_entity_id,
            result.summary(),
        )
        return result

    def _check_owner_exists(self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult) -> None:
        if edge.owner_entity_id not in ctx.entities:
            result.add_error(
                BusinessRule.OWNER_ENTITY_EXISTS.value,
                f"Owner entity {edge.owner_entity_id} does not exist",
                field="owner_entity_id",
                related_entity_id=edge.owner_entity_id,
            )

    def _check_owned_exists(self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult) -> None:
        if edge.owned_entity_id not in ctx.entities:
            result.add_error(
                BusinessRule.OWNED_ENTITY_EXISTS.value,
                f"Owned entity {edge.owned_entity_id} does not exist",
                field="owned_entity_id",
                related_entity_id=edge.owned_entity_id,
            )

    def _check_share_class_exists(
        self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult
    ) -> None:
        if edge.share_class_id not in ctx.share_classes:
            result.add_error(
                BusinessRule.SHARE_CLASS_EXISTS.value,
                f"Share class {edge.share_class_id} does not exist",
                field="share_class_id",
            )

    def _check_share_class_issuer(
        self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult
    ) -> None:
        share_class = ctx.share_classes.get(edge.share_class_id)
        if share_class is not None and share_class.entity_id != edge.owned_entity_id:
            result.add_error(
                BusinessRule.SHARE_CLASS_ISSUED_BY_OWNED_ENTITY.value,
                f"Share class '{share_class.name}' is issued by {share_class.entity_id}, "
                f"not by the owned entity {edge.owned_entity_id}",
                field="share_class_id",
                related_entity_id=share_class.entity_id,
            )

    def _check_no_cycle(self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult) -> None:
        self._detect_cycle(edge.owner_entity_id, edge.owned_entity_id, ctx, result)

    def _detect_cycle(
        self, owner_entity_id: str, owned_entity_id: str, ctx: ValidationContext, result: ValidationResult
    ) -> None:
        if owner_entity_id == owned_entity_id:
            result.add_error(
                BusinessRule.NO_CIRCULAR_OWNERSHIP.value,
                "An entity cannot own itself",
                field="owned_entity_id",
                related_entity_id=owner_entity_id,
            )
            return

        adjacency = build_adjacency(ctx.other_edges())
        adjacency[owner_entity_id].append(owned_entity_id)

        # Any cycle through the new edge passes through its owner.
        cycle = find_cycle(adjacency, [owner_entity_id])
        if cycle is not None:
            result.add_error(
                BusinessRule.NO_CIRCULAR_OWNERSHIP.value,
                f"Ownership would create a cycle: {' -> '.join(cycle)}",
                field="owned_entity_id",
                related_entity_id=owned_entity_id,
            )

    def validate_circular_ownership(
        self, owner_entity_id: str, owned_entity_id: str, ctx: ValidationContext
    ) -> ValidationResult:
        """Check only acyclicity for a hypothetical owner -> owned edge."""
        result = ValidationResult(rules_checked=[BusinessRule.NO_CIRCULAR_OWNERSHIP.value])
        self._detect_cycle(owner_entity_id, owned_entity_id, ctx, result)
        return result

    def _check_allocation(self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult) -> None:
        share_class = ctx.share_classes.get(edge.share_class_id)
        if share_class is None:
            return

        already_issued = issued_shares(
            (e for e in ctx.other_edges() if e.owned_entity_id == edge.owned_entity_id),
            edge.share_class_id,
        )
        requested = already_issued + edge.shares
        if requested > share_class.total_authorized_shares:
            available = share_class.total_authorized_shares - already_issued
            result.add_error(
                BusinessRule.NO_OVER_ALLOCATION.value,
                f"Allocating {edge.shares} shares of '{share_class.name}' would exceed the "
                f"authorized {share_class.total_authorized_shares} ({available} available)",
                field="shares",
                related_entity_id=edge.owned_entity_id,
            )

    def _check_positive_shares(
        self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult
    ) -> None:
        if edge.shares <= 0:
            result.add_error(
                BusinessRule.POSITIVE_SHARES_ONLY.value,
                "Share count must be positive",
                field="shares",
            )

    def _check_date_range(self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult) -> None:
        if edge.expiry_date is not None and edge.expiry_date <= edge.effective_date:
            result.add_error(
                BusinessRule.VALID_DATE_RANGE.value,
                "Expiry date must be after the effective date",
                field="expiry_date",
            )

    def _check_future_date(self, edge: OwnershipEdge, ctx: ValidationContext, result: ValidationResult) -> None:
        horizon = ctx.today + timedelta(days=self.future_horizon_days)
        if edge.effective_date > horizon:
            result.add_warning(
                BusinessRule.FUTURE_EFFECTIVE_DATE_ALLOWED.value,
                f"Effective date {edge.effective_date} is more than "
                f"{self.future_horizon_days} days in the future",
                field="effective_date",
            )

    # ------------------------------------------------------------------ #
    # Share class ceilings and deletion safety
    # ------------------------------------------------------------------ #

    def validate_share_class_ceiling(self, share_class: ShareClass, ctx: ValidationContext) -> ValidationResult:
        """Check that a (possibly reduced) ceiling still covers the shares already issued."""
        result = ValidationResult(rules_checked=[BusinessRule.NO_OVER_ALLOCATION.value])
        issued = issued_shares(ctx.ownerships.values(), share_class.id)
        if issued > share_class.total_authorized_shares:
            result.add_error(
                BusinessRule.NO_OVER_ALLOCATION.value,
                f"Cannot set authorized shares of '{share_class.name}' to "
                f"{share_class.total_authorized_shares}: {issued} shares are already issued",
                field="total_authorized_shares",
                related_entity_id=share_class.entity_id,
            )
        return result

    def validate_entity_deletion(self, entity_id: str, ctx: ValidationContext) -> ValidationResult:
        """An entity may not be deleted while any edge has it as owner or owned party.

        Both blocking directions are reported when both apply.
        """
        result = ValidationResult(rules_checked=[ENTITY_OWNS_OTHERS, ENTITY_OWNED_BY_OTHERS])
        edges = list(ctx.ownerships.values())

        owns = [e for e in edges if e.owner_entity_id == entity_id]
        if owns:
            result.add_error(
                ENTITY_OWNS_OTHERS,
                f"Cannot delete entity - it holds {len(owns)} ownership position(s) in other entities",
                field="entity",
                related_entity_id=entity_id,
            )

        owned_by = [e for e in edges if e.owned_entity_id == entity_id]
        if owned_by:
            result.add_error(
                ENTITY_OWNED_BY_OTHERS,
                f"Cannot delete entity - it is owned through {len(owned_by)} ownership position(s)",
                field="entity",
                related_entity_id=entity_id,
            )

        return result

    def validate_share_class_deletion(self, share_class_id: str, ctx: ValidationContext) -> ValidationResult:
        """A share class may not be deleted while any edge references it."""
        result = ValidationResult(rules_checked=[SHARE_CLASS_IN_USE])
        referencing = [e for e in ctx.ownerships.values() if e.share_class_id == share_class_id]
        if referencing:
            result.add_error(
                SHARE_CLASS_IN_USE,
                f"Cannot delete share class - it is referenced by {len(referencing)} ownership record(s)",
                field="share_class",
            )
        return result

    # ------------------------------------------------------------------ #
    # Whole-state scans
    # ------------------------------------------------------------------ #

    def scan_integrity(self, ctx: ValidationContext) -> ValidationResult:
        """Re-check stored state: references, allocation ceilings and acyclicity.

        Used after a restore, where state was not built through validated
        mutations.
        """
        result = ValidationResult(
            rules_checked=[
                INVALID_OWNER_REFERENCE,
                INVALID_OWNED_REFERENCE,
                INVALID_SHARE_CLASS_REFERENCE,
                BusinessRule.NO_OVER_ALLOCATION.value,
                BusinessRule.NO_CIRCULAR_OWNERSHIP.value,
            ]
        )
        edges = list(ctx.ownerships.values())

        for edge in edges:
            if edge.owner_entity_id not in ctx.entities:
                result.add_error(
                    INVALID_OWNER_REFERENCE,
                    f"Ownership {edge.id} references missing owner {edge.owner_entity_id}",
                    field="owner_entity_id",
                    related_entity_id=edge.owner_entity_id,
                )
            if edge.owned_entity_id not in ctx.entities:
                result.add_error(
                    INVALID_OWNED_REFERENCE,
                    f"Ownership {edge.id} references missing owned entity {edge.owned_entity_id}",
                    field="owned_entity_id",
                    related_entity_id=edge.owned_entity_id,
                )
            if edge.share_class_id not in ctx.share_classes:
                result.add_error(
                    INVALID_SHARE_CLASS_REFERENCE,
                    f"Ownership {edge.id} references missing share class {edge.share_class_id}",
                    field="share_class_id",
                )

        for share_class in ctx.share_classes.values():
            ceiling = self.validate_share_class_ceiling(share_class, ctx)
            result.errors.extend(ceiling.errors)

        adjacency = build_adjacency(edges)
        cycle = find_cycle(adjacency, list(adjacency))
        if cycle is not None:
            result.add_error(
                BusinessRule.NO_CIRCULAR_OWNERSHIP.value,
                f"Ownership graph contains a cycle: {' -> '.join(cycle)}",
            )

        result.is_valid = not result.errors
        return result

    def find_violations(self, ctx: ValidationContext, entity_id: Optional[str] = None) -> List[BusinessRuleViolation]:
        """Re-run the ownership rules against stored edges.

        Each edge is checked as if it were proposed as a replacement for
        itself, so a healthy store reports nothing.

        Args:
            ctx: Current state
            entity_id: Restrict to edges incident to this entity

        Returns:
            One violation per failing rule per edge
        """
        violations: List[BusinessRuleViolation] = []

        for edge in list(ctx.ownerships.values()):
            if entity_id is not None and entity_id not in (edge.owner_entity_id, edge.owned_entity_id):
                continue

            edge_ctx = ValidationContext(
                entities=ctx.entities,
                share_classes=ctx.share_classes,
                ownerships=ctx.ownerships,
                today=ctx.today,
                replaces=edge.id,
            )
            result = self.validate_ownership(edge, edge_ctx)
            affected = [edge.owner_entity_id, edge.owned_entity_id]

            violations.extend(
                BusinessRuleViolation.from_issues(
                    result.errors,
                    affected_entities=affected,
                    suggested_action=f"Review or remove ownership {edge.id}",
                )
            )
            for warning in result.warnings:
                violations.append(
                    BusinessRuleViolation(
                        rule=warning.code,
                        severity="WARNING",
                        message=warning.message,
                        affected_entities=affected,
                        suggested_action=f"Confirm the dates of ownership {edge.id}",
                    )
                )

        return violations
