"""Validation results and business rule vocabulary.

Every gatekeeping check in the engine returns a ValidationResult rather than
raising, so callers can inspect errors and warnings before deciding to commit.
The repository turns a failing result into a typed exception.
"""

from enum import Enum
from typing import Iterable, List, Literal, Optional
from pydantic import Field

from .base import DomainModel


# =============================================================================
# Business Rules
# =============================================================================

class BusinessRule(str, Enum):
    """Machine-readable codes for ownership business rules."""

    # Integrity rules (always enforced)
    NO_CIRCULAR_OWNERSHIP = "NO_CIRCULAR_OWNERSHIP"
    NO_OVER_ALLOCATION = "NO_OVER_ALLOCATION"
    OWNER_ENTITY_EXISTS = "OWNER_ENTITY_EXISTS"
    OWNED_ENTITY_EXISTS = "OWNED_ENTITY_EXISTS"
    SHARE_CLASS_EXISTS = "SHARE_CLASS_EXISTS"
    SHARE_CLASS_ISSUED_BY_OWNED_ENTITY = "SHARE_CLASS_ISSUED_BY_OWNED_ENTITY"

    # Field sanity rules
    POSITIVE_SHARES_ONLY = "POSITIVE_SHARES_ONLY"
    VALID_DATE_RANGE = "VALID_DATE_RANGE"

    # Advisory rules (warnings only)
    FUTURE_EFFECTIVE_DATE_ALLOWED = "FUTURE_EFFECTIVE_DATE_ALLOWED"


# Non-rule validation codes used across stores and the repository.
MISSING_REQUIRED_FIELDS = "MISSING_REQUIRED_FIELDS"
INVALID_FIELD = "INVALID_FIELD"
IMMUTABLE_FIELD = "IMMUTABLE_FIELD"
INVALID_ENTITY_NAME = "INVALID_ENTITY_NAME"
INVALID_SHARE_CLASS_NAME = "INVALID_SHARE_CLASS_NAME"
MISSING_JURISDICTION = "MISSING_JURISDICTION"
ISSUER_ENTITY_EXISTS = "ISSUER_ENTITY_EXISTS"
ENTITY_OWNS_OTHERS = "ENTITY_OWNS_OTHERS"
ENTITY_OWNED_BY_OTHERS = "ENTITY_OWNED_BY_OTHERS"
SHARE_CLASS_IN_USE = "SHARE_CLASS_IN_USE"
INVALID_OWNER_REFERENCE = "INVALID_OWNER_REFERENCE"
INVALID_OWNED_REFERENCE = "INVALID_OWNED_REFERENCE"
INVALID_SHARE_CLASS_REFERENCE = "INVALID_SHARE_CLASS_REFERENCE"


# =============================================================================
# Validation Result
# =============================================================================

class ValidationIssue(DomainModel):
    """One error or warning produced by a check."""

    code: str = Field(description="Machine-readable code (e.g., 'NO_OVER_ALLOCATION')")
    message: str = Field(description="Human-readable explanation")
    field: Optional[str] = Field(default=None, description="Field or record kind at fault")
    related_entity_id: Optional[str] = Field(default=None)


class ValidationResult(DomainModel):
    """Outcome of a validation pass.

    ``is_valid`` is False iff at least one error was recorded. Warnings never
    affect validity.

    Example:
        result = ValidationResult.ok()
        result.add_error("POSITIVE_SHARES_ONLY", "Share count must be positive", field="shares")
        assert not result.is_valid
        assert result.error_codes == ["POSITIVE_SHARES_ONLY"]
    """

    is_valid: bool = True
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    rules_checked: List[str] = Field(
        default_factory=list,
        description="Codes of the rules that were evaluated to produce this result"
    )

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls()

    @classmethod
    def failure(
        cls,
        code: str,
        message: str,
        field: Optional[str] = None,
        related_entity_id: Optional[str] = None,
    ) -> "ValidationResult":
        result = cls()
        result.add_error(code, message, field=field, related_entity_id=related_entity_id)
        return result

    def add_error(
        self,
        code: str,
        message: str,
        field: Optional[str] = None,
        related_entity_id: Optional[str] = None,
    ) -> None:
        self.errors.append(
            ValidationIssue(code=code, message=message, field=field, related_entity_id=related_entity_id)
        )
        self.is_valid = False

    def add_warning(self, code: str, message: str, field: Optional[str] = None) -> None:
        self.warnings.append(ValidationIssue(code=code, message=message, field=field))

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        """Fold another result into this one (in place) and return self."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.rules_checked.extend(r for r in other.rules_checked if r not in self.rules_checked)
        self.is_valid = not self.errors
        return self

    @property
    def error_codes(self) -> List[str]:
        return [issue.code for issue in self.errors]

    @property
    def warning_codes(self) -> List[str]:
        return [issue.code for issue in self.warnings]

    @property
    def rules_passed(self) -> List[str]:
        """Rules that ran without producing an error."""
        failed = set(self.error_codes)
        return [rule for rule in self.rules_checked if rule not in failed]

    def has_error(self, code: str) -> bool:
        return code in self.error_codes

    def summary(self) -> str:
        """One-line description of all errors, for exception messages and logs."""
        if self.is_valid:
            return "valid"
        return "; ".join(f"{issue.code}: {issue.message}" for issue in self.errors)


# =============================================================================
# Business Rule Violation
# =============================================================================

class BusinessRuleViolation(DomainModel):
    """A rule violation found when re-checking already-stored state."""

    rule: str
    severity: Literal["ERROR", "WARNING"] = "ERROR"
    message: str
    affected_entities: List[str] = Field(default_factory=list)
    suggested_action: str = ""

    @classmethod
    def from_issues(
        cls,
        issues: Iterable[ValidationIssue],
        affected_entities: List[str],
        suggested_action: str,
    ) -> List["BusinessRuleViolation"]:
        return [
            cls(
                rule=issue.code,
                message=issue.message,
                affected_entities=affected_entities,
                suggested_action=suggested_action,
            )
            for issue in issues
        ]
