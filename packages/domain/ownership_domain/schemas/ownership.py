"""Ownership edges - the single source of truth for who owns what.

An OwnershipEdge is a directed, share-weighted relationship from an owner
entity to an owned entity, typed by a share class issued by the owned entity.
Percentages are never stored; they are derived from shares by the view layer.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import Field

from .base import RecordModel, EntityId, OwnershipId, ShareClassId, UserId, Version


class OwnershipEdge(RecordModel):
    """A holding of ``shares`` of ``share_class_id`` by one entity in another.

    Direction:
        owner_entity_id --(shares)--> owned_entity_id

    Invariants (enforced by the business rule engine before storage):
        - owner != owned and the graph stays acyclic
        - the share class exists and belongs to the owned entity
        - shares > 0 and the class ceiling is never exceeded

    Example:
        Holdco holds 600 common shares of OpCo:
            owner_entity_id="entity-holdco"
            owned_entity_id="entity-opco"
            share_class_id="shareclass-opco-common"
            shares=600
    """

    id: OwnershipId
    owner_entity_id: EntityId = Field(description="Entity holding the shares")
    owned_entity_id: EntityId = Field(description="Entity whose shares are held")

    # Not constrained here: non-positive counts are reported as a business
    # rule violation with a machine-readable code, not a schema error.
    shares: Decimal = Field(description="Number of shares held")

    share_class_id: ShareClassId = Field(description="Share class issued by the owned entity")

    effective_date: date = Field(description="Date the holding became effective")
    expiry_date: Optional[date] = Field(
        default=None,
        description="Optional end date for time-bound ownership"
    )

    created_by: UserId
    created_at: datetime
    updated_by: UserId
    updated_at: datetime
    version: Version = 1

    change_reason: Optional[str] = Field(default=None, description="Why this change was made")

    def is_active(self, on: date) -> bool:
        """Check whether the holding is in force on a given date.

        Args:
            on: Date to test

        Returns:
            True if effective on or before ``on`` and not yet expired
        """
        if self.effective_date > on:
            return False
        return self.expiry_date is None or self.expiry_date > on

    def is_expired(self, on: date) -> bool:
        return self.expiry_date is not None and self.expiry_date <= on
