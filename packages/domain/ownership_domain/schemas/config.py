"""Store configuration.

The StoreCFG is constructor-injected into the repository; there is no
module-level store or configuration singleton. Presets mirror the three
deployment environments.
"""

from pydantic import Field

from .base import DomainModel


class StoreCFG(DomainModel):
    """Configuration for an OwnershipRepository.

    Integrity rules (acyclicity, allocation ceilings, referential integrity,
    deletion safety) are always enforced and cannot be switched off here.

    Examples:
        # Production: 7-year audit retention for legal compliance
        StoreCFG.production()

        # Local development: short retention
        StoreCFG.development()

        # Custom
        StoreCFG(enable_transactions=False, max_audit_retention_days=90)
    """

    enable_audit_logging: bool = Field(
        default=True,
        description="Append an audit entry for every successful mutation"
    )

    enable_validation: bool = Field(
        default=True,
        description=(
            "Run field-sanity and advisory rules (date ranges, "
            "future effective dates, missing jurisdiction). Integrity rules always run."
        )
    )

    enable_transactions: bool = Field(
        default=True,
        description="Allow begin_transaction / transaction()"
    )

    enforce_optimistic_locking: bool = Field(
        default=True,
        description="Reject updates whose expected_version differs from the stored version"
    )

    max_audit_retention_days: int = Field(
        default=2555,
        ge=1,
        description="Audit entries older than this are removed by prune_audit_log"
    )

    future_effective_date_horizon_days: int = Field(
        default=365,
        ge=0,
        description="Effective dates further out than this produce a warning"
    )

    backup_key_prefix: str = Field(
        default="enterprise-backup-",
        description="Key prefix for backups inside the blob store"
    )

    @classmethod
    def production(cls) -> "StoreCFG":
        return cls(max_audit_retention_days=2555)

    @classmethod
    def development(cls) -> "StoreCFG":
        return cls(max_audit_retention_days=30)

    @classmethod
    def testing(cls) -> "StoreCFG":
        return cls(max_audit_retention_days=1)
