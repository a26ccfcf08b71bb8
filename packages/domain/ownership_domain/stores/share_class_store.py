"""Share class store - ShareClass records scoped to an issuing entity."""

import logging
from typing import Any, Callable, List, Mapping, Optional

from ..errors import ValidationError
from ..schemas.base import new_id
from ..schemas.queries import ShareClassSearchQuery
from ..schemas.share_classes import ShareClass, ShareClassType
from ..schemas.validation import INVALID_SHARE_CLASS_NAME, ISSUER_ENTITY_EXISTS, ValidationResult
from .base import Clock, RecordStore, build_record, check_patch_fields

logger = logging.getLogger(__name__)


class ShareClassStore(RecordStore[ShareClass]):
    """Owns ShareClass records.

    The issuer (``entity_id``) must exist when the class is created and can
    never change afterwards. Whether a new ``total_authorized_shares`` still
    covers the shares already issued is an ownership-graph question and is
    checked by the repository through the business rule engine.
    """

    not_found_code = "SHARE_CLASS_NOT_FOUND"
    label = "Share class"

    def __init__(self, clock: Clock, entity_exists: Callable[[str], bool], enforce_versions: bool = True):
        """Initialize ShareClassStore.

        Args:
            clock: Returns the current (aware) datetime for timestamps
            entity_exists: Predicate used to check the issuer on creation
            enforce_versions: Reject updates whose expected_version is stale
        """
        super().__init__(clock)
        self._entity_exists = entity_exists
        self.enforce_versions = enforce_versions

    def prepare_create(self, data: Mapping[str, Any]) -> ShareClass:
        fields = check_patch_fields(ShareClass, data, "<new share class>")
        now = self._clock()
        payload = {
            **fields,
            "id": new_id("shareclass"),
            "version": 1,
            "created_at": now,
            "updated_at": now,
        }
        return build_record(ShareClass, payload)

    def prepare_update(
        self,
        share_class_id: str,
        patch: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> ShareClass:
        current = self.require(share_class_id)
        self._check_version(current, expected_version, self.enforce_versions)
        changes = check_patch_fields(
            ShareClass, patch, share_class_id, immutable=("entity_id",), current=current
        )
        return build_record(ShareClass, self._stamp_update(current, changes), share_class_id)

    def validate_fields(self, share_class: ShareClass, is_new: bool) -> ValidationResult:
        """Check the name and, for new classes, that the issuer exists."""
        result = ValidationResult(rules_checked=[INVALID_SHARE_CLASS_NAME])

        if not share_class.name or not share_class.name.strip():
            result.add_error(INVALID_SHARE_CLASS_NAME, "Share class name is required", field="name")

        if is_new:
            result.rules_checked.append(ISSUER_ENTITY_EXISTS)
            if not self._entity_exists(share_class.entity_id):
                result.add_error(
                    ISSUER_ENTITY_EXISTS,
                    f"Issuing entity {share_class.entity_id} does not exist",
                    field="entity_id",
                    related_entity_id=share_class.entity_id,
                )

        return result

    def insert(self, share_class: ShareClass) -> ShareClass:
        return self._store(share_class)

    def create(self, data: Mapping[str, Any]) -> ShareClass:
        """Create and store a share class.

        Raises:
            ValidationError: If the issuer does not exist or a field is invalid
        """
        share_class = self.prepare_create(data)
        result = self.validate_fields(share_class, is_new=True)
        if not result.is_valid:
            raise ValidationError("Share class creation validation failed", result, entity_id=share_class.id)
        return self.insert(share_class)

    def update(
        self,
        share_class_id: str,
        patch: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> ShareClass:
        share_class = self.prepare_update(share_class_id, patch, expected_version)
        result = self.validate_fields(share_class, is_new=False)
        if not result.is_valid:
            raise ValidationError("Share class update validation failed", result, entity_id=share_class_id)
        return self.insert(share_class)

    def by_entity(self, entity_id: str) -> List[ShareClass]:
        return [sc for sc in self._records.values() if sc.entity_id == entity_id]

    def search(self, query: ShareClassSearchQuery) -> List[ShareClass]:
        """Filter share classes by issuer, name, type and voting rights."""
        matches = self.get_all()

        if query.entity_id:
            matches = [sc for sc in matches if sc.entity_id == query.entity_id]

        if query.name:
            needle = query.name.lower()
            matches = [sc for sc in matches if needle in sc.name.lower()]

        if query.type:
            wanted = ShareClassType(query.type)
            matches = [sc for sc in matches if sc.type == wanted]

        if query.voting_rights is not None:
            matches = [sc for sc in matches if sc.voting_rights == query.voting_rights]

        return matches
