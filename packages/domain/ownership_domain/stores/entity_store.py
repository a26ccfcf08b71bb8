"""Entity store - canonical Entity records and their lifecycle.

The store validates entity fields (a blank name is never accepted) and keeps
versions monotonic, but it does not know about ownership edges: deletion
safety is checked by the repository before ``delete`` is called.
"""

import logging
from typing import Any, List, Mapping, Optional

from ..errors import ValidationError
from ..schemas.base import as_utc, new_id
from ..schemas.entities import Entity, EntityType
from ..schemas.queries import EntitySearchQuery
from ..schemas.validation import INVALID_ENTITY_NAME, MISSING_JURISDICTION, ValidationResult
from .base import Clock, RecordStore, build_record, check_patch_fields

logger = logging.getLogger(__name__)


class EntityStore(RecordStore[Entity]):
    """Owns Entity records.

    Two-phase API (used by the repository so it can validate, audit and
    notify around the actual write):
        candidate = store.prepare_create(data)
        result = store.validate_fields(candidate)
        store.insert(candidate)

    One-shot API (prepare + validate + insert):
        store.create(data)
        store.update(entity_id, patch)

    Example:
        store = EntityStore(clock=utc_now)
        holdco = store.create({"name": "Holdco", "type": "Corporation", "jurisdiction": "Delaware"})
        holdco = store.update(holdco.id, {"address": "1 Main St"})
        assert holdco.version == 2
    """

    not_found_code = "ENTITY_NOT_FOUND"
    label = "Entity"

    def __init__(self, clock: Clock, enforce_versions: bool = True, advisory_checks: bool = True):
        """Initialize EntityStore.

        Args:
            clock: Returns the current (aware) datetime for timestamps
            enforce_versions: Reject updates whose expected_version is stale
            advisory_checks: Emit advisory warnings (e.g., missing jurisdiction)
        """
        super().__init__(clock)
        self.enforce_versions = enforce_versions
        self.advisory_checks = advisory_checks

    # ------------------------------------------------------------------ #
    # Preparation and validation (no side effects)
    # ------------------------------------------------------------------ #

    def prepare_create(self, data: Mapping[str, Any]) -> Entity:
        """Build a new entity (fresh id, version 1, timestamps) without storing it."""
        fields = check_patch_fields(Entity, data, "<new entity>")
        now = self._clock()
        payload = {
            "metadata": {},
            **fields,
            "id": new_id("entity"),
            "version": 1,
            "created_at": now,
            "updated_at": now,
        }
        return build_record(Entity, payload)

    def prepare_update(
        self,
        entity_id: str,
        patch: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Entity:
        """Build the updated entity (merged patch, version + 1) without storing it.

        Raises:
            NotFoundError: ENTITY_NOT_FOUND if the id is unknown
            ConcurrencyConflictError: If expected_version is stale
            ValidationError: If the patch names unknown fields or has invalid values
        """
        current = self.require(entity_id)
        self._check_version(current, expected_version, self.enforce_versions)
        changes = check_patch_fields(Entity, patch, entity_id, current=current)
        return build_record(Entity, self._stamp_update(current, changes), entity_id)

    def validate_fields(self, entity: Entity) -> ValidationResult:
        """Field-level checks that run before every create and update."""
        result = ValidationResult(rules_checked=[INVALID_ENTITY_NAME])

        if not entity.name or not entity.name.strip():
            result.add_error(INVALID_ENTITY_NAME, "Entity name is required", field="name")

        if self.advisory_checks:
            result.rules_checked.append(MISSING_JURISDICTION)
            if entity.requires_jurisdiction and not entity.jurisdiction:
                result.add_warning(
                    MISSING_JURISDICTION,
                    f"{entity.type} '{entity.name}' has no jurisdiction",
                    field="jurisdiction",
                )

        return result

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def insert(self, entity: Entity) -> Entity:
        """Store a prepared entity (new or updated)."""
        return self._store(entity)

    def create(self, data: Mapping[str, Any]) -> Entity:
        """Create and store an entity.

        Raises:
            ValidationError: If the name is blank or a field is invalid
        """
        entity = self.prepare_create(data)
        self._raise_if_invalid(entity, "Entity creation validation failed")
        return self.insert(entity)

    def update(self, entity_id: str, patch: Mapping[str, Any], expected_version: Optional[int] = None) -> Entity:
        """Merge a patch into an entity and store the new version."""
        entity = self.prepare_update(entity_id, patch, expected_version)
        self._raise_if_invalid(entity, "Entity update validation failed")
        return self.insert(entity)

    def _raise_if_invalid(self, entity: Entity, message: str) -> None:
        result = self.validate_fields(entity)
        if not result.is_valid:
            raise ValidationError(message, result, entity_id=entity.id)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def search(self, query: EntitySearchQuery) -> List[Entity]:
        """Filter entities by name, type, jurisdiction and creation time.

        Ownership-based filters (has_ownerships, is_owned) need the ownership
        graph and are applied by the repository.
        """
        matches = self.get_all()

        if query.name:
            needle = query.name.lower()
            matches = [e for e in matches if needle in e.name.lower()]

        if query.type:
            wanted = EntityType(query.type)
            matches = [e for e in matches if e.type == wanted]

        if query.jurisdiction:
            needle = query.jurisdiction.lower()
            matches = [e for e in matches if e.jurisdiction and needle in e.jurisdiction.lower()]

        if query.created_after:
            after = as_utc(query.created_after)
            matches = [e for e in matches if e.created_at >= after]

        if query.created_before:
            before = as_utc(query.created_before)
            matches = [e for e in matches if e.created_at <= before]

        return matches
