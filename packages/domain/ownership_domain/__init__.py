"""Ownership integrity and computed-view engine.

An in-memory store of legal entities, the share classes they issue and the
ownership edges between them. Every mutation is validated against the
ownership invariants (no cycles, no over-allocation, no dangling references),
audited, and announced to subscribers; cap tables and hierarchies are derived
on demand.

Usage:
    from ownership_domain import OwnershipRepository, StoreCFG

    repo = OwnershipRepository(StoreCFG.production())
"""

from .errors import (
    OwnershipDomainError,
    ValidationError,
    CircularOwnershipError,
    NotFoundError,
    ReferentialIntegrityError,
    ConcurrencyConflictError,
    StoreError,
)
from .schemas.config import StoreCFG
from .repository import OwnershipRepository

__version__ = "0.1.0"

__all__ = [
    "OwnershipRepository",
    "StoreCFG",
    "OwnershipDomainError",
    "ValidationError",
    "CircularOwnershipError",
    "NotFoundError",
    "ReferentialIntegrityError",
    "ConcurrencyConflictError",
    "StoreError",
]
