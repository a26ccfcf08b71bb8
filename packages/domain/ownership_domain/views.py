"""Computed views over the current store state.

Views are recomputed on every call from live read-only mappings and are never
cached, so a view requested after a mutation always reflects it. Nothing here
can mutate the stores.

Views:
- cap_table_view: who owns how much of one entity
- ownership_hierarchy: forest from the root entities downwards
- entity_ownership_chain: one root-to-entity chain
- entity_lineage: every ancestor of an entity as a DAG
"""

from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Set

from .errors import NotFoundError
from .schemas.entities import Entity
from .schemas.ownership import OwnershipEdge
from .schemas.share_classes import ShareClass
from .schemas.views import (
    CapTableView,
    EntityNode,
    LineageEdge,
    OwnershipLineage,
    OwnershipSummaryRow,
    ShareClassSummary,
)
from .stores.base import Clock

UNKNOWN = "Unknown"


@dataclass
class StoreState:
    """Read-only views of the three record maps."""

    entities: Mapping[str, Entity]
    share_classes: Mapping[str, ShareClass]
    ownerships: Mapping[str, OwnershipEdge]

    def incoming(self, entity_id: str) -> List[OwnershipEdge]:
        return [e for e in self.ownerships.values() if e.owned_entity_id == entity_id]

    def outgoing(self, entity_id: str) -> List[OwnershipEdge]:
        return [e for e in self.ownerships.values() if e.owner_entity_id == entity_id]


def _percentage(part: Decimal, whole: Decimal) -> float:
    if whole <= 0:
        return 0.0
    return float(part / whole * 100)


def _unique(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class ViewEngine:
    """Derives cap tables and hierarchies from a StoreState.

    Example:
        views = ViewEngine(state, clock=utc_now)
        cap_table = views.cap_table_view(opco.id)
        for row in cap_table.ownership_summary:
            print(row.owner_name, row.percentage)
    """

    def __init__(self, state: StoreState, clock: Clock):
        self.state = state
        self._clock = clock

    def _require_entity(self, entity_id: str) -> Entity:
        entity = self.state.entities.get(entity_id)
        if entity is None:
            raise NotFoundError("ENTITY_NOT_FOUND", entity_id, "Entity")
        return entity

    # =========================================================================
    # Cap Table
    # =========================================================================

    def cap_table_view(self, entity_id: str) -> CapTableView:
        """Build the cap table of one entity from its incoming edges.

        Args:
            entity_id: Entity whose shareholders are listed

        Returns:
            CapTableView with holder rows sorted by shares (largest first) and
            one summary per share class the entity issues

        Raises:
            NotFoundError: ENTITY_NOT_FOUND if the entity does not exist
        """
        entity = self._require_entity(entity_id)
        incoming = self.state.incoming(entity_id)
        total_shares = sum((edge.shares for edge in incoming), Decimal("0"))

        rows: List[OwnershipSummaryRow] = []
        for edge in incoming:
            owner = self.state.entities.get(edge.owner_entity_id)
            share_class = self.state.share_classes.get(edge.share_class_id)
            authorized = share_class.total_authorized_shares if share_class else Decimal("0")

            rows.append(OwnershipSummaryRow(
                ownership_id=edge.id,
                owner_entity_id=edge.owner_entity_id,
                owner_name=owner.name if owner else UNKNOWN,
                owner_type=owner.type if owner else UNKNOWN,
                shares=edge.shares,
                percentage=_percentage(edge.shares, total_shares),
                fully_diluted_percentage=_percentage(edge.shares, authorized),
                share_class_id=edge.share_class_id,
                share_class_name=share_class.name if share_class else UNKNOWN,
                effective_date=edge.effective_date,
                expiry_date=edge.expiry_date,
            ))
        rows.sort(key=lambda row: row.shares, reverse=True)

        summaries: List[ShareClassSummary] = []
        for share_class in self.state.share_classes.values():
            if share_class.entity_id != entity_id:
                continue
            issued = sum(
                (edge.shares for edge in incoming if edge.share_class_id == share_class.id),
                Decimal("0"),
            )
            summaries.append(ShareClassSummary(
                id=share_class.id,
                name=share_class.name,
                type=share_class.type,
                authorized_shares=share_class.total_authorized_shares,
                issued_shares=issued,
                available_shares=share_class.total_authorized_shares - issued,
                voting_rights=share_class.voting_rights,
                liquidation_preference=share_class.liquidation_preference,
                dividend_rate=share_class.dividend_rate,
            ))

        authorized_total = sum((s.authorized_shares for s in summaries), Decimal("0"))
        issued_total = sum((s.issued_shares for s in summaries), Decimal("0"))

        return CapTableView(
            entity_id=entity.id,
            entity_name=entity.name,
            entity_type=entity.type,
            total_shares=total_shares,
            authorized_shares=authorized_total,
            available_shares=authorized_total - issued_total,
            has_data=total_shares > 0,
            ownership_summary=rows,
            share_classes=summaries,
            calculated_at=self._clock(),
        )

    # =========================================================================
    # Hierarchy
    # =========================================================================

    def _node(self, entity: Entity, level: int) -> EntityNode:
        incoming = self.state.incoming(entity.id)
        outgoing = self.state.outgoing(entity.id)
        child_ids = _unique([e.owned_entity_id for e in outgoing])
        return EntityNode(
            entity_id=entity.id,
            entity_name=entity.name,
            entity_type=entity.type,
            level=level,
            parent_owners=_unique([e.owner_entity_id for e in incoming]),
            child_entities=child_ids,
            total_owned_entities=len(child_ids),
            owned_shares=sum((e.shares for e in outgoing), Decimal("0")),
        )

    def ownership_hierarchy(self) -> List[EntityNode]:
        """Expand every root entity (no incoming edges) into its owned subtree.

        An entity with several owners appears once under each owner.
        """
        owned_ids = {edge.owned_entity_id for edge in self.state.ownerships.values()}
        roots = [e for e in self.state.entities.values() if e.id not in owned_ids]
        return [self._subtree(root, 0, set()) for root in roots]

    def _subtree(self, entity: Entity, level: int, path: Set[str]) -> EntityNode:
        node = self._node(entity, level)
        below = path | {entity.id}
        for child_id in node.child_entities:
            child = self.state.entities.get(child_id)
            # A restored backup may hold a cycle; never expand a node twice on one path.
            if child is None or child_id in below:
                continue
            node.children.append(self._subtree(child, level + 1, below))
        return node

    def entity_ownership_chain(self, entity_id: str, via_owner_id: Optional[str] = None) -> List[EntityNode]:
        """Walk upward from an entity to a root and return the chain root-first.

        At each step the chain follows the owner holding the most shares of
        the current entity (ties go to the earliest edge). When
        ``via_owner_id`` is given, the first step goes through that owner.
        ``parent_owners`` on each node shows where other owners were skipped.

        Raises:
            NotFoundError: ENTITY_NOT_FOUND for an unknown entity, or
                OWNERSHIP_NOT_FOUND when via_owner_id does not own the entity
        """
        entity = self._require_entity(entity_id)

        if via_owner_id is not None:
            if not any(e.owner_entity_id == via_owner_id for e in self.state.incoming(entity_id)):
                raise NotFoundError("OWNERSHIP_NOT_FOUND", f"{via_owner_id} -> {entity_id}", "Ownership")

        chain: List[Entity] = [entity]
        seen: Set[str] = {entity.id}
        next_id = via_owner_id if via_owner_id is not None else self._dominant_owner(entity.id)

        while next_id is not None and next_id not in seen:
            owner = self.state.entities.get(next_id)
            if owner is None:
                break
            chain.append(owner)
            seen.add(owner.id)
            next_id = self._dominant_owner(owner.id)

        chain.reverse()
        return [self._node(e, level) for level, e in enumerate(chain)]

    def _dominant_owner(self, entity_id: str) -> Optional[str]:
        holdings: Dict[str, Decimal] = {}
        for edge in self.state.incoming(entity_id):
            holdings[edge.owner_entity_id] = holdings.get(edge.owner_entity_id, Decimal("0")) + edge.shares
        if not holdings:
            return None
        return max(holdings, key=lambda owner_id: holdings[owner_id])

    def entity_lineage(self, entity_id: str) -> OwnershipLineage:
        """Collect every ancestor of an entity with all connecting edges.

        Breadth-first upwards, so each ancestor's level is the length of its
        shortest path to the entity.
        """
        entity = self._require_entity(entity_id)

        levels: Dict[str, int] = {entity.id: 0}
        order: List[Entity] = [entity]
        edges: List[LineageEdge] = []
        queue = deque([entity.id])

        while queue:
            current = queue.popleft()
            incoming = self.state.incoming(current)
            total = sum((e.shares for e in incoming), Decimal("0"))

            for edge in incoming:
                edges.append(LineageEdge(
                    ownership_id=edge.id,
                    owner_entity_id=edge.owner_entity_id,
                    owned_entity_id=edge.owned_entity_id,
                    share_class_id=edge.share_class_id,
                    shares=edge.shares,
                    percentage=_percentage(edge.shares, total),
                ))
                owner = self.state.entities.get(edge.owner_entity_id)
                if owner is not None and owner.id not in levels:
                    levels[owner.id] = levels[current] + 1
                    order.append(owner)
                    queue.append(owner.id)

        nodes = [self._node(e, levels[e.id]) for e in order]
        return OwnershipLineage(
            entity_id=entity.id,
            nodes=nodes,
            edges=edges,
            root_entity_ids=[node.entity_id for node in nodes if not node.parent_owners],
        )
