"""Computed view models.

Views are derived on demand from the current store state and never stored.
Recomputing a view after any mutation always reflects that mutation.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import Field

from .base import DomainModel


# =============================================================================
# Cap Table View
# =============================================================================

class OwnershipSummaryRow(DomainModel):
    """One holder line of a cap table (one ownership edge)."""

    ownership_id: str
    owner_entity_id: str
    owner_name: str
    owner_type: str
    shares: Decimal

    percentage: float = Field(
        description="shares / total issued shares of the entity * 100"
    )
    fully_diluted_percentage: float = Field(
        description="shares / authorized shares of the class * 100"
    )

    share_class_id: str
    share_class_name: str
    effective_date: date
    expiry_date: Optional[date] = None


class ShareClassSummary(DomainModel):
    """Issued vs. authorized shares for one class of the entity."""

    id: str
    name: str
    type: str
    authorized_shares: Decimal
    issued_shares: Decimal
    available_shares: Decimal
    voting_rights: bool
    liquidation_preference: Optional[Decimal] = None
    dividend_rate: Optional[Decimal] = None


class CapTableView(DomainModel):
    """Who owns how much of one entity.

    ``total_shares`` is the sum of shares over all incoming edges. When it is
    zero ``has_data`` is False and every percentage is 0.0.

    Invariant:
        sum(row.percentage for row in ownership_summary) == 100 (within float
        epsilon) whenever has_data is True.
    """

    entity_id: str
    entity_name: str
    entity_type: str

    total_shares: Decimal
    authorized_shares: Decimal = Field(description="Sum of ceilings over the entity's share classes")
    available_shares: Decimal = Field(description="authorized_shares - shares issued in those classes")
    has_data: bool

    ownership_summary: List[OwnershipSummaryRow] = Field(default_factory=list)
    share_classes: List[ShareClassSummary] = Field(default_factory=list)

    calculated_at: datetime


# =============================================================================
# Hierarchy Views
# =============================================================================

class EntityNode(DomainModel):
    """A node of an ownership hierarchy, chain or lineage.

    In ``ownership_hierarchy`` an entity with several owners appears once under
    each owner's subtree; ``parent_owners`` always lists every owner so callers
    can tell when that happened.
    """

    entity_id: str
    entity_name: str
    entity_type: str
    level: int = Field(ge=0, description="Depth in the rendered structure (0 = top)")
    parent_owners: List[str] = Field(default_factory=list, description="Ids of all owners")
    child_entities: List[str] = Field(default_factory=list, description="Ids of all owned entities")
    children: List["EntityNode"] = Field(default_factory=list)
    total_owned_entities: int = 0
    owned_shares: Decimal = Field(default=Decimal("0"), description="Shares this entity holds in others")


class LineageEdge(DomainModel):
    """An ownership edge inside a lineage, with its share of the owned entity."""

    ownership_id: str
    owner_entity_id: str
    owned_entity_id: str
    share_class_id: str
    shares: Decimal
    percentage: float


class OwnershipLineage(DomainModel):
    """Full multi-parent ancestry of one entity.

    ``nodes[0]`` is the entity itself at level 0; every ancestor appears once,
    at the length of the shortest upward path to it.
    """

    entity_id: str
    nodes: List[EntityNode] = Field(default_factory=list)
    edges: List[LineageEdge] = Field(default_factory=list)
    root_entity_ids: List[str] = Field(default_factory=list)


EntityNode.model_rebuild()
