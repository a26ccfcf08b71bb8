"""Share class models.

A share class is an equity instrument issued by exactly one entity. Its
``total_authorized_shares`` is a hard ceiling: the sum of shares over all
ownership edges typed by the class may never exceed it.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import Field

from .base import RecordModel, EntityId, ShareClassId, ShareCount, Version


# =============================================================================
# Share Class Type
# =============================================================================

class ShareClassType(str, Enum):
    """Instrument categories supported by the engine."""

    COMMON_STOCK = "Common Stock"
    PREFERRED_SERIES_A = "Preferred Series A"
    PREFERRED_SERIES_B = "Preferred Series B"
    STOCK_OPTIONS = "Stock Options"
    CONVERTIBLE_NOTES = "Convertible Notes"


# =============================================================================
# Share Class
# =============================================================================

class ShareClass(RecordModel):
    """An equity instrument issued by one entity with a fixed authorized ceiling.

    Ownership:
        - ``entity_id`` is the issuer and never changes after creation
        - Cannot be deleted while any ownership edge references it

    Economic rights:
        - ``liquidation_preference``: preference multiple (1.0 = 1x)
        - ``dividend_rate``: annual rate as decimal (0.08 = 8%)

    Example:
        ShareClass(
            id="shareclass-01",
            entity_id="entity-opco",
            name="Common Stock",
            type="Common Stock",
            total_authorized_shares=Decimal("1000"),
            ...
        )
    """

    id: ShareClassId
    entity_id: EntityId = Field(description="Issuing entity (immutable after creation)")
    name: str = Field(description="Human-readable name (e.g., 'Series A Preferred')")
    type: ShareClassType = Field(description="Instrument category")

    total_authorized_shares: ShareCount = Field(
        description="Hard ceiling on shares issued across all ownership edges"
    )

    voting_rights: bool = Field(default=True)

    liquidation_preference: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Liquidation preference multiple (1.0 = 1x)"
    )

    dividend_rate: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Annual dividend rate as decimal (0.08 = 8%)"
    )

    version: Version = 1
    created_at: datetime
    updated_at: datetime
