"""Shared plumbing for the record stores.

Each store owns one dict of immutable records keyed by id. Insertion order is
preserved (dicts are ordered), which keeps listings and derived views
deterministic across runs and across backup/restore.
"""

from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, Set, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from ..errors import ConcurrencyConflictError, NotFoundError, ValidationError
from ..schemas.base import RecordModel
from ..schemas.validation import INVALID_FIELD, IMMUTABLE_FIELD, ValidationResult

RecordT = TypeVar("RecordT", bound=RecordModel)

Clock = Callable[[], datetime]

# Fields that are managed by the store and ignored in caller patches.
MANAGED_FIELDS = frozenset({"id", "version", "created_at", "updated_at"})


def build_record(model: Type[RecordT], payload: Mapping[str, Any], record_id: Optional[str] = None) -> RecordT:
    """Validate a payload into a record, translating schema errors into domain errors.

    Args:
        model: Record class to build
        payload: Field values
        record_id: Id reported on failure

    Returns:
        Validated record instance

    Raises:
        ValidationError: With one INVALID_FIELD issue per schema error
    """
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as exc:
        result = ValidationResult()
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"]) or None
            result.add_error(INVALID_FIELD, error["msg"], field=location)
        raise ValidationError(f"Invalid {model.__name__} data", result, entity_id=record_id) from exc


def check_patch_fields(
    model: Type[RecordModel],
    patch: Mapping[str, Any],
    record_id: str,
    immutable: Iterable[str] = (),
    current: Optional[RecordModel] = None,
) -> Dict[str, Any]:
    """Reject unknown or immutable fields in an update patch.

    Store-managed fields (id, version, timestamps) are silently dropped.
    Immutable fields may only be "patched" to their current value.

    Returns:
        The patch without managed fields
    """
    result = ValidationResult()
    cleaned: Dict[str, Any] = {}
    immutable_fields: Set[str] = set(immutable)

    for key, value in patch.items():
        if key in MANAGED_FIELDS:
            continue
        if key not in model.model_fields:
            result.add_error(INVALID_FIELD, f"Unknown field '{key}'", field=key)
            continue
        if key in immutable_fields and current is not None and getattr(current, key) != value:
            result.add_error(IMMUTABLE_FIELD, f"Field '{key}' cannot be changed after creation", field=key)
            continue
        cleaned[key] = value

    if not result.is_valid:
        raise ValidationError(f"Invalid update for {record_id}", result, entity_id=record_id)
    return cleaned


class RecordStore(Generic[RecordT]):
    """Ordered id -> record map with the read operations every store shares."""

    not_found_code = "RECORD_NOT_FOUND"
    label = "Record"

    def __init__(self, clock: Clock):
        self._clock = clock
        self._records: Dict[str, RecordT] = {}

    def get(self, record_id: str) -> Optional[RecordT]:
        return self._records.get(record_id)

    def require(self, record_id: str) -> RecordT:
        """Get a record or raise NotFoundError."""
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(self.not_found_code, record_id, self.label)
        return record

    def get_all(self) -> List[RecordT]:
        return list(self._records.values())

    def exists(self, record_id: str) -> bool:
        return record_id in self._records

    def delete(self, record_id: str) -> RecordT:
        """Remove a record unconditionally and return it.

        Deletion safety is the caller's responsibility (see the repository).
        """
        record = self.require(record_id)
        del self._records[record_id]
        return record

    def as_mapping(self) -> Mapping[str, RecordT]:
        """Live read-only view of the records (for validation and views)."""
        return MappingProxyType(self._records)

    def dump(self) -> List[RecordT]:
        return list(self._records.values())

    def load(self, records: Iterable[RecordT]) -> None:
        """Replace the whole content (restore path; no validation)."""
        self._records.clear()
        self._records.update((record.id, record) for record in records)

    def _check_version(self, current: RecordT, expected_version: Optional[int], enforce: bool) -> None:
        if enforce and expected_version is not None and expected_version != current.version:
            raise ConcurrencyConflictError(current.id, expected_version, current.version)

    def _store(self, record: RecordT) -> RecordT:
        self._records[record.id] = record
        return record

    def _stamp_update(self, current: RecordT, changes: Mapping[str, Any]) -> Dict[str, Any]:
        payload = current.model_dump()
        payload.update(changes)
        payload["id"] = current.id
        payload["created_at"] = current.created_at
        payload["updated_at"] = self._clock()
        payload["version"] = current.version + 1
        return payload

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

