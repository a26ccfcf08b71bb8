"""Query filters for entity and share class search and ownership lookup.

All filters are optional and combine with AND. An empty query matches
everything.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import Field

from .base import DomainModel
from .entities import EntityType
from .share_classes import ShareClassType


class EntitySearchQuery(DomainModel):
    name: Optional[str] = Field(default=None, description="Case-insensitive substring of the name")
    type: Optional[EntityType] = Field(default=None, description="Exact entity type")
    jurisdiction: Optional[str] = Field(default=None, description="Case-insensitive substring")
    has_ownerships: Optional[bool] = Field(default=None, description="Entity owns at least one other")
    is_owned: Optional[bool] = Field(default=None, description="Entity is owned by at least one other")
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None


class ShareClassSearchQuery(DomainModel):
    entity_id: Optional[str] = Field(default=None, description="Issuing entity")
    name: Optional[str] = Field(default=None, description="Case-insensitive substring of the name")
    type: Optional[ShareClassType] = Field(default=None, description="Exact share class type")
    voting_rights: Optional[bool] = None


class OwnershipQuery(DomainModel):
    owner_entity_id: Optional[str] = None
    owned_entity_id: Optional[str] = None
    share_class_id: Optional[str] = None
    min_shares: Optional[Decimal] = None
    max_shares: Optional[Decimal] = None
    effective_after: Optional[date] = None
    effective_before: Optional[date] = None
    include_expired: bool = Field(
        default=True,
        description="When False, edges whose expiry date is on or before today are excluded"
    )
