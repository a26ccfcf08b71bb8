"""Ownership domain schemas.

This package contains all Pydantic models for the ownership engine:
- Base types and conventions
- Entities, entity types and their presentation profiles
- Share classes
- Ownership edges
- Validation results and business rule codes
- Audit entries and compliance reports
- Change events
- Computed views (cap table, hierarchy, lineage)
- Transactions, queries, configuration and snapshots

Usage:
    from ownership_domain.schemas import (
        Entity, EntityType, ShareClass, OwnershipEdge,
        ValidationResult, AuditEntry, CapTableView, StoreCFG
    )
"""

# Base types
from .base import (
    DomainModel,
    RecordModel,
    ShareCount,
    Version,
    EntityId,
    ShareClassId,
    OwnershipId,
    UserId,
    new_id,
    utc_now,
    as_utc,
)

# Share classes
from .share_classes import (
    ShareClass,
    ShareClassType,
)

# Entities
from .entities import (
    Entity,
    EntityType,
    EntityTypeProfile,
    ShareClassTemplate,
    ENTITY_TYPE_PROFILES,
    entity_type_profile,
)

# Ownership
from .ownership import OwnershipEdge

# Validation
from .validation import (
    BusinessRule,
    BusinessRuleViolation,
    ValidationIssue,
    ValidationResult,
)

# Audit
from .audit import (
    AuditAction,
    AuditEntityType,
    AuditEntry,
    AuditDateRange,
    AuditReport,
)

# Events
from .events import (
    ChangeEvent,
    ChangeEventType,
)

# Views
from .views import (
    CapTableView,
    OwnershipSummaryRow,
    ShareClassSummary,
    EntityNode,
    LineageEdge,
    OwnershipLineage,
)

# Transactions
from .transactions import (
    DataTransaction,
    TransactionOperation,
    TransactionStatus,
)

# Queries
from .queries import (
    EntitySearchQuery,
    OwnershipQuery,
    ShareClassSearchQuery,
)

# Configuration and snapshots
from .config import StoreCFG
from .snapshot import StoreSnapshot

__all__ = [
    # Base types
    "DomainModel",
    "RecordModel",
    "ShareCount",
    "Version",
    "EntityId",
    "ShareClassId",
    "OwnershipId",
    "UserId",
    "new_id",
    "utc_now",
    "as_utc",
    # Share classes
    "ShareClass",
    "ShareClassType",
    # Entities
    "Entity",
    "EntityType",
    "EntityTypeProfile",
    "ShareClassTemplate",
    "ENTITY_TYPE_PROFILES",
    "entity_type_profile",
    # Ownership
    "OwnershipEdge",
    # Validation
    "BusinessRule",
    "BusinessRuleViolation",
    "ValidationIssue",
    "ValidationResult",
    # Audit
    "AuditAction",
    "AuditEntityType",
    "AuditEntry",
    "AuditDateRange",
    "AuditReport",
    # Events
    "ChangeEvent",
    "ChangeEventType",
    # Views
    "CapTableView",
    "OwnershipSummaryRow",
    "ShareClassSummary",
    "EntityNode",
    "LineageEdge",
    "OwnershipLineage",
    # Transactions
    "DataTransaction",
    "TransactionOperation",
    "TransactionStatus",
    # Queries
    "EntitySearchQuery",
    "OwnershipQuery",
    "ShareClassSearchQuery",
    # Configuration and snapshots
    "StoreCFG",
    "StoreSnapshot",
]
