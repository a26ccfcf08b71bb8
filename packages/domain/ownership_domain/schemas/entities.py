"""Legal entity models.

An Entity is a legal person or organization that can own, or be owned by,
other entities. Entity kinds form a closed set; everything that varies by
kind (display icon, colour, default share classes) lives in one lookup table
instead of being re-derived from type strings at each call site.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from pydantic import Field

from .base import RecordModel, EntityId, Version
from .share_classes import ShareClassType


# =============================================================================
# Entity Type
# =============================================================================

class EntityType(str, Enum):
    """The five kinds of legal person modelled by the engine."""

    CORPORATION = "Corporation"
    LLC = "LLC"
    PARTNERSHIP = "Partnership"
    TRUST = "Trust"
    INDIVIDUAL = "Individual"


@dataclass(frozen=True)
class ShareClassTemplate:
    """Default share class created for a newly modelled entity."""

    name: str
    share_class_type: ShareClassType
    voting_rights: bool = True
    authorized_fraction: Decimal = Decimal("1")
    liquidation_preference: Optional[Decimal] = None


@dataclass(frozen=True)
class EntityTypeProfile:
    """Presentation and template data for one entity kind."""

    label: str
    icon: str
    color: str
    requires_jurisdiction: bool
    default_share_classes: Tuple[ShareClassTemplate, ...] = ()


ENTITY_TYPE_PROFILES: Dict[EntityType, EntityTypeProfile] = {
    EntityType.CORPORATION: EntityTypeProfile(
        label="Corporation",
        icon="building",
        color="#2563EB",
        requires_jurisdiction=True,
        default_share_classes=(
            ShareClassTemplate(
                name="Common Stock",
                share_class_type=ShareClassType.COMMON_STOCK,
                authorized_fraction=Decimal("0.8"),
            ),
            ShareClassTemplate(
                name="Series A Preferred",
                share_class_type=ShareClassType.PREFERRED_SERIES_A,
                authorized_fraction=Decimal("0.2"),
                liquidation_preference=Decimal("1.0"),
            ),
        ),
    ),
    EntityType.LLC: EntityTypeProfile(
        label="LLC",
        icon="briefcase",
        color="#059669",
        requires_jurisdiction=True,
        default_share_classes=(
            ShareClassTemplate(
                name="Membership Units",
                share_class_type=ShareClassType.COMMON_STOCK,
            ),
        ),
    ),
    EntityType.PARTNERSHIP: EntityTypeProfile(
        label="Partnership",
        icon="handshake",
        color="#7C3AED",
        requires_jurisdiction=True,
        default_share_classes=(
            ShareClassTemplate(
                name="Partnership Interests",
                share_class_type=ShareClassType.COMMON_STOCK,
            ),
        ),
    ),
    EntityType.TRUST: EntityTypeProfile(
        label="Trust",
        icon="shield",
        color="#D97706",
        requires_jurisdiction=True,
        default_share_classes=(
            ShareClassTemplate(
                name="Beneficial Interests",
                share_class_type=ShareClassType.COMMON_STOCK,
                voting_rights=False,
            ),
        ),
    ),
    EntityType.INDIVIDUAL: EntityTypeProfile(
        label="Individual",
        icon="user",
        color="#6B7280",
        requires_jurisdiction=False,
    ),
}


def entity_type_profile(entity_type: str) -> EntityTypeProfile:
    """Look up the profile for an entity type (enum member or its value)."""
    return ENTITY_TYPE_PROFILES[EntityType(entity_type)]


# =============================================================================
# Entity
# =============================================================================

class Entity(RecordModel):
    """A legal person or organization participating in ownership relationships.

    Lifecycle:
        - Created via repository ``create_entity`` (version = 1)
        - Every ``update_entity`` produces a new instance with version + 1
        - Deleted only when no ownership edge references it

    Examples:
        Holding company:
            name="Holdco Ltd", type="Corporation", jurisdiction="Delaware"

        Natural person (no jurisdiction needed):
            name="Alice Founder", type="Individual"
    """

    id: EntityId
    name: str = Field(description="Legal name")
    type: EntityType = Field(description="Kind of legal person")

    jurisdiction: Optional[str] = Field(
        default=None,
        description="Jurisdiction of incorporation (optional for individuals)"
    )
    registration_number: Optional[str] = Field(default=None)
    incorporation_date: Optional[date] = Field(default=None)
    address: Optional[str] = Field(default=None)

    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Open string-keyed map for caller-defined attributes"
    )

    version: Version = 1
    created_at: datetime
    updated_at: datetime

    @property
    def profile(self) -> EntityTypeProfile:
        return entity_type_profile(self.type)

    @property
    def requires_jurisdiction(self) -> bool:
        return self.profile.requires_jurisdiction
