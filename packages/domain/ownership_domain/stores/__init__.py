"""In-memory record stores.

- EntityStore: canonical Entity records
- ShareClassStore: ShareClass records scoped to an issuing entity
- OwnershipGraph: ownership edges, gated by the business rule engine

Stores hold immutable records keyed by id. They perform field-level checks
only; cross-store safety (deletion of referenced records, audit, events) is
orchestrated by the repository.
"""

from .base import Clock, RecordStore
from .entity_store import EntityStore
from .share_class_store import ShareClassStore
from .ownership_graph import OwnershipGraph, OwnershipProposal

__all__ = [
    "Clock",
    "RecordStore",
    "EntityStore",
    "ShareClassStore",
    "OwnershipGraph",
    "OwnershipProposal",
]
