"""Ownership structure block.

Flattens the whole ownership graph into two DataFrames:
- ownership_edges: one row per edge with names resolved
- entity_levels: one row per entity with its depth below the roots
"""

from collections import deque
from decimal import Decimal
from typing import Dict, List

import pandas as pd

from .base import Block, BlockContext
from ..views import StoreState

EDGE_COLUMNS = [
    "ownership_id",
    "owner_entity_id",
    "owner_name",
    "owned_entity_id",
    "owned_name",
    "share_class_id",
    "share_class_name",
    "shares",
    "percentage",
    "effective_date",
    "expiry_date",
]

LEVEL_COLUMNS = [
    "entity_id",
    "entity_name",
    "entity_type",
    "level",
    "owners_count",
    "owned_count",
    "is_root",
]


class HierarchyBlock(Block):
    """Converts a StoreState into edge and level DataFrames.

    Inputs (from context):
        - store_state: StoreState of the repository

    Outputs (to context):
        - ownership_edges: DataFrame with EDGE_COLUMNS; ``percentage`` is the
          edge's share of all shares issued by the owned entity
        - entity_levels: DataFrame with LEVEL_COLUMNS; ``level`` is the length
          of the longest ownership path from a root (roots are 0). Entities
          caught in a cycle, which only a corrupt restore can produce, get -1.
    """

    def __init__(self, state_key: str = "store_state"):
        self.state_key = state_key

    def inputs(self) -> List[str]:
        return [self.state_key]

    def outputs(self) -> List[str]:
        return ["ownership_edges", "entity_levels"]

    def execute(self, context: BlockContext) -> None:
        state: StoreState = context.get(self.state_key)
        context.set("ownership_edges", self._compute_edges(state))
        context.set("entity_levels", self._compute_levels(state))

    def _compute_edges(self, state: StoreState) -> pd.DataFrame:
        issued: Dict[str, Decimal] = {}
        for edge in state.ownerships.values():
            issued[edge.owned_entity_id] = issued.get(edge.owned_entity_id, Decimal("0")) + edge.shares

        rows = []
        for edge in state.ownerships.values():
            owner = state.entities.get(edge.owner_entity_id)
            owned = state.entities.get(edge.owned_entity_id)
            share_class = state.share_classes.get(edge.share_class_id)
            total = issued[edge.owned_entity_id]
            rows.append({
                "ownership_id": edge.id,
                "owner_entity_id": edge.owner_entity_id,
                "owner_name": owner.name if owner else None,
                "owned_entity_id": edge.owned_entity_id,
                "owned_name": owned.name if owned else None,
                "share_class_id": edge.share_class_id,
                "share_class_name": share_class.name if share_class else None,
                "shares": float(edge.shares),
                "percentage": float(edge.shares / total * 100) if total > 0 else 0.0,
                "effective_date": edge.effective_date,
                "expiry_date": edge.expiry_date,
            })
        return pd.DataFrame(rows, columns=EDGE_COLUMNS)

    def _compute_levels(self, state: StoreState) -> pd.DataFrame:
        entity_ids = list(state.entities)
        owners: Dict[str, set] = {entity_id: set() for entity_id in entity_ids}
        owned: Dict[str, set] = {entity_id: set() for entity_id in entity_ids}

        for edge in state.ownerships.values():
            if edge.owner_entity_id in owners and edge.owned_entity_id in owners:
                owners[edge.owned_entity_id].add(edge.owner_entity_id)
                owned[edge.owner_entity_id].add(edge.owned_entity_id)

        # Longest-path levels in topological order.
        waiting = {entity_id: len(owners[entity_id]) for entity_id in entity_ids}
        levels = {entity_id: 0 for entity_id in entity_ids}
        ready = deque(entity_id for entity_id in entity_ids if waiting[entity_id] == 0)
        placed = set()

        while ready:
            current = ready.popleft()
            placed.add(current)
            for child in owned[current]:
                levels[child] = max(levels[child], levels[current] + 1)
                waiting[child] -= 1
                if waiting[child] == 0:
                    ready.append(child)

        rows = []
        for entity_id in entity_ids:
            entity = state.entities[entity_id]
            rows.append({
                "entity_id": entity_id,
                "entity_name": entity.name,
                "entity_type": entity.type,
                "level": levels[entity_id] if entity_id in placed else -1,
                "owners_count": len(owners[entity_id]),
                "owned_count": len(owned[entity_id]),
                "is_root": not owners[entity_id],
            })
        return pd.DataFrame(rows, columns=LEVEL_COLUMNS)
