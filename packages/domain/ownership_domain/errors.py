"""Domain-level exceptions.

All failures surfaced by the engine are subclasses of OwnershipDomainError and
carry a machine-readable ``code`` plus a human-readable message, so callers
can catch them uniformly. Every rule violation is raised before any mutation
takes place.
"""

from typing import List, Optional

from .schemas.validation import ValidationResult


class OwnershipDomainError(Exception):
    """Base class for all engine errors."""

    def __init__(
        self,
        message: str,
        code: str,
        entity_id: Optional[str] = None,
        validation_result: Optional[ValidationResult] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.entity_id = entity_id
        self.validation_result = validation_result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(OwnershipDomainError):
    """Input failed a business rule or field check. Nothing was mutated."""

    def __init__(self, message: str, validation_result: ValidationResult, entity_id: Optional[str] = None):
        super().__init__(
            f"{message}: {validation_result.summary()}",
            "VALIDATION_FAILED",
            entity_id=entity_id,
            validation_result=validation_result,
        )

    @property
    def error_codes(self) -> List[str]:
        return self.validation_result.error_codes


class CircularOwnershipError(ValidationError):
    """The proposed edge would close a cycle (including self-ownership)."""

    def __init__(self, owner_entity_id: str, owned_entity_id: str, validation_result: ValidationResult):
        super().__init__(
            f"Circular ownership detected: {owner_entity_id} -> {owned_entity_id}",
            validation_result,
            entity_id=owner_entity_id,
        )
        self.code = "CIRCULAR_OWNERSHIP"
        self.owner_entity_id = owner_entity_id
        self.owned_entity_id = owned_entity_id


class NotFoundError(OwnershipDomainError):
    """A referenced record does not exist.

    Codes: ENTITY_NOT_FOUND, OWNERSHIP_NOT_FOUND, SHARE_CLASS_NOT_FOUND.
    """

    def __init__(self, code: str, record_id: str, label: str):
        super().__init__(f"{label} {record_id} not found", code, entity_id=record_id)


class ReferentialIntegrityError(OwnershipDomainError):
    """A record cannot be deleted while other records still reference it."""

    def __init__(
        self,
        message: str,
        entity_id: str,
        related_ids: List[str],
        validation_result: ValidationResult,
    ):
        super().__init__(
            message,
            "REFERENTIAL_INTEGRITY_VIOLATION",
            entity_id=entity_id,
            validation_result=validation_result,
        )
        self.related_ids = list(related_ids)

    @property
    def error_codes(self) -> List[str]:
        return self.validation_result.error_codes


class ConcurrencyConflictError(OwnershipDomainError):
    """The caller's expected version no longer matches the stored record."""

    def __init__(self, record_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Version conflict on {record_id}: expected {expected_version}, found {actual_version}",
            "CONFLICT",
            entity_id=record_id,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class StoreError(OwnershipDomainError):
    """Misuse of the backup or transaction subsystem.

    Codes: BACKUP_NOT_FOUND, BACKUP_CORRUPT, TRANSACTION_NOT_FOUND, TRANSACTION_NOT_ACTIVE,
    TRANSACTION_ALREADY_ACTIVE, TRANSACTIONS_DISABLED.
    """
