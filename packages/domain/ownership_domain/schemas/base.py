"""Base classes and type system for ownership domain models.

This module provides the foundational types, id helpers and base classes
used throughout the ownership schema system.
"""

from decimal import Decimal
from datetime import date, datetime, time, timezone
from typing import Annotated, Union
from uuid import uuid4
from pydantic import BaseModel, Field, ConfigDict

# =============================================================================
# Base Models
# =============================================================================

class DomainModel(BaseModel):
    """Base class for all domain models.

    Provides common configuration for all Pydantic models in the domain layer:
    - Validation on assignment for runtime safety
    - Support for Decimal and date types
    - Enum value serialization
    """

    model_config = ConfigDict(
        frozen=False,
        validate_assignment=True,  # Validate on field assignment
        use_enum_values=True,  # Use enum values in JSON
        arbitrary_types_allowed=True,  # Allow Decimal, date, etc.
    )


class RecordModel(DomainModel):
    """Base class for stored records (entities, share classes, ownership edges).

    Records are immutable: every update builds a new instance with a bumped
    version, so a record handed out by a store can never drift from the
    store's own copy.
    """

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Type Aliases - Numeric
# =============================================================================

ShareCount = Annotated[
    Decimal,
    Field(ge=0, description="Number of shares (non-negative)")
]

Version = Annotated[
    int,
    Field(ge=1, description="Monotonic record version, incremented on every update")
]


# =============================================================================
# ID Conventions
# =============================================================================

EntityId = Annotated[
    str,
    Field(min_length=1, description="Opaque entity identifier (e.g., 'entity-3f2a9c...')")
]

ShareClassId = Annotated[
    str,
    Field(min_length=1, description="Opaque share class identifier (e.g., 'shareclass-91bc...')")
]

OwnershipId = Annotated[
    str,
    Field(min_length=1, description="Opaque ownership edge identifier (e.g., 'ownership-07de...')")
]

UserId = Annotated[
    str,
    Field(min_length=1, description="Actor performing a change (user name, service account)")
]


def new_id(prefix: str) -> str:
    """Generate an opaque identifier with a readable prefix.

    Example:
        new_id("entity") -> "entity-5c1b0f6e9a2d4e7c8b3f1a0d2e4c6b8a"
    """
    return f"{prefix}-{uuid4().hex}"


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: Union[date, datetime], end_of_day: bool = False) -> datetime:
    """Normalize a date or datetime to an aware UTC datetime.

    Naive datetimes are taken to be UTC. A bare date becomes the start of that
    day, or its last microsecond when ``end_of_day`` is set (inclusive upper
    bounds in range queries).
    """
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.max if end_of_day else time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# ID Examples and Conventions
# =============================================================================
#
# Entity IDs:
#   - "entity-5c1b0f6e9a2d4e7c8b3f1a0d2e4c6b8a"
#   - Always assigned by the store; ids in create payloads are ignored.
#
# Share Class IDs:
#   - "shareclass-0d9e..." - issued by exactly one entity
#
# Ownership IDs:
#   - "ownership-7a41..." - one directed owner -> owned edge
#
# Audit / Backup / Transaction IDs:
#   - "audit-...", "backup-<timestamp>-...", "tx-..."
#
# =============================================================================
