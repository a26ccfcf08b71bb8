"""Smoke tests for schema validation.

These tests verify that:
1. All schemas can be imported
2. Basic instantiation works
3. Field validation catches obvious errors
4. Entity type profiles and validation results behave as documented
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timedelta, timezone

from pydantic import ValidationError

from ownership_domain.schemas import (
    # Base
    as_utc,
    new_id,
    # Records
    Entity,
    EntityType,
    ENTITY_TYPE_PROFILES,
    entity_type_profile,
    ShareClass,
    ShareClassType,
    OwnershipEdge,
    # Validation
    BusinessRule,
    BusinessRuleViolation,
    ValidationResult,
    # Audit / views / config
    AuditEntry,
    AuditReport,
    AuditDateRange,
    CapTableView,
    EntityNode,
    StoreCFG,
    StoreSnapshot,
    DataTransaction,
    TransactionStatus,
    OwnershipQuery,
)

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_edge(**overrides) -> OwnershipEdge:
    fields = dict(
        id="ownership-1",
        owner_entity_id="entity-a",
        owned_entity_id="entity-b",
        share_class_id="shareclass-b",
        shares=Decimal("100"),
        effective_date=date(2024, 1, 1),
        created_by="alice",
        created_at=NOW,
        updated_by="alice",
        updated_at=NOW,
    )
    fields.update(overrides)
    return OwnershipEdge(**fields)


class TestBasicInstantiation:
    """Test that basic schema instantiation works."""

    def test_entity_defaults(self):
        """Test creating an entity with only required fields."""
        entity = Entity(id="entity-1", name="Holdco", type="Corporation", created_at=NOW, updated_at=NOW)
        assert entity.version == 1
        assert entity.metadata == {}
        assert entity.type == "Corporation"
        assert entity.requires_jurisdiction

    def test_individual_needs_no_jurisdiction(self):
        entity = Entity(id="entity-2", name="Alice", type=EntityType.INDIVIDUAL, created_at=NOW, updated_at=NOW)
        assert not entity.requires_jurisdiction
        assert entity.profile.default_share_classes == ()

    def test_share_class(self):
        """Test creating a share class with economic rights."""
        share_class = ShareClass(
            id="shareclass-1",
            entity_id="entity-1",
            name="Series A Preferred",
            type=ShareClassType.PREFERRED_SERIES_A,
            total_authorized_shares=Decimal("2000000"),
            liquidation_preference=Decimal("1.0"),
            dividend_rate=Decimal("0.08"),
            created_at=NOW,
            updated_at=NOW,
        )
        assert share_class.type == "Preferred Series A"
        assert share_class.voting_rights is True

    def test_ownership_edge_activity(self):
        """Test active/expired checks on a time-bound edge."""
        edge = make_edge(expiry_date=date(2024, 6, 30))
        assert not edge.is_active(date(2023, 12, 31))
        assert edge.is_active(date(2024, 3, 1))
        assert not edge.is_active(date(2024, 6, 30))
        assert edge.is_expired(date(2024, 6, 30))
        assert not edge.is_expired(date(2024, 6, 29))

    def test_new_id_prefix(self):
        first, second = new_id("entity"), new_id("entity")
        assert first.startswith("entity-")
        assert first != second


class TestFieldValidation:
    """Test that field validation catches obvious errors."""

    def test_unknown_entity_type(self):
        with pytest.raises(ValidationError):
            Entity(id="entity-1", name="X", type="Cooperative", created_at=NOW, updated_at=NOW)

    def test_negative_authorized_shares(self):
        with pytest.raises(ValidationError):
            ShareClass(
                id="shareclass-1",
                entity_id="entity-1",
                name="Common",
                type="Common Stock",
                total_authorized_shares=Decimal("-1"),
                created_at=NOW,
                updated_at=NOW,
            )

    def test_records_are_frozen(self):
        """Records are immutable; updates build new instances."""
        edge = make_edge()
        with pytest.raises(ValidationError):
            edge.shares = Decimal("5")

    def test_edge_accepts_non_positive_shares(self):
        """Non-positive shares are a business rule matter, not a schema error."""
        assert make_edge(shares=Decimal("0")).shares == 0

    def test_config_rejects_zero_retention(self):
        with pytest.raises(ValidationError):
            StoreCFG(max_audit_retention_days=0)


class TestEntityTypeProfiles:
    """Per-type data comes from one lookup table."""

    def test_every_type_has_profile(self):
        assert set(ENTITY_TYPE_PROFILES) == set(EntityType)

    def test_corporation_default_share_classes(self):
        templates = entity_type_profile("Corporation").default_share_classes
        assert [t.name for t in templates] == ["Common Stock", "Series A Preferred"]
        assert sum(t.authorized_fraction for t in templates) == Decimal("1")
        assert templates[1].liquidation_preference == Decimal("1.0")

    def test_trust_interests_are_non_voting(self):
        (template,) = entity_type_profile(EntityType.TRUST).default_share_classes
        assert template.voting_rights is False


class TestValidationResult:

    def test_ok_is_valid(self):
        result = ValidationResult.ok()
        assert result.is_valid
        assert result.summary() == "valid"

    def test_errors_make_invalid_warnings_do_not(self):
        result = ValidationResult(rules_checked=["A", "B"])
        result.add_warning("FUTURE_EFFECTIVE_DATE_ALLOWED", "far out")
        assert result.is_valid

        result.add_error("A", "broken")
        assert not result.is_valid
        assert result.error_codes == ["A"]
        assert result.warning_codes == ["FUTURE_EFFECTIVE_DATE_ALLOWED"]
        assert result.rules_passed == ["B"]
        assert result.summary() == "A: broken"

    def test_merge(self):
        left = ValidationResult(rules_checked=["A"])
        right = ValidationResult.failure("B", "bad")
        right.rules_checked.append("B")

        merged = left.merge(right)

        assert merged is left
        assert not merged.is_valid
        assert merged.rules_checked == ["A", "B"]
        assert merged.has_error("B")

    def test_violations_from_issues(self):
        result = ValidationResult.failure(BusinessRule.NO_OVER_ALLOCATION.value, "too many")
        (violation,) = BusinessRuleViolation.from_issues(result.errors, ["entity-a"], "Reduce shares")
        assert violation.rule == "NO_OVER_ALLOCATION"
        assert violation.severity == "ERROR"
        assert violation.affected_entities == ["entity-a"]


class TestSupportingModels:

    def test_as_utc(self):
        assert as_utc(date(2024, 1, 15)) == datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert as_utc(datetime(2024, 1, 15, 8, 0)).tzinfo == timezone.utc
        end = as_utc(date(2024, 1, 15), end_of_day=True)
        assert end.date() == date(2024, 1, 15)
        assert end.hour == 23

        eastern = timezone(timedelta(hours=-5))
        assert as_utc(datetime(2024, 1, 15, 7, 0, tzinfo=eastern)).hour == 12

    def test_audit_report_serializes_with_aliases(self):
        entry = AuditEntry(
            id="audit-1",
            sequence=0,
            timestamp=NOW,
            user_id="alice",
            action="CREATE",
            entity_type="ENTITY",
            entity_id="entity-1",
        )
        report = AuditReport(
            report_generated=NOW,
            date_range=AuditDateRange(from_date=NOW),
            total_entries=1,
            entries=[entry],
        )
        dumped = report.model_dump(by_alias=True)
        assert set(dumped) == {"reportGenerated", "dateRange", "totalEntries", "entries"}
        assert set(dumped["dateRange"]) == {"from", "to"}

    def test_entity_node_nesting(self):
        child = EntityNode(entity_id="b", entity_name="B", entity_type="LLC", level=1)
        root = EntityNode(entity_id="a", entity_name="A", entity_type="Corporation", level=0, children=[child])
        assert root.children[0].entity_id == "b"
        assert root.owned_shares == Decimal("0")

    def test_empty_cap_table_view(self):
        view = CapTableView(
            entity_id="entity-1",
            entity_name="OpCo",
            entity_type="LLC",
            total_shares=Decimal("0"),
            authorized_shares=Decimal("0"),
            available_shares=Decimal("0"),
            has_data=False,
            calculated_at=NOW,
        )
        assert view.ownership_summary == []

    def test_config_presets(self):
        assert StoreCFG.production().max_audit_retention_days == 2555
        assert StoreCFG.development().max_audit_retention_days == 30
        assert StoreCFG.testing().max_audit_retention_days == 1
        assert StoreCFG().enable_validation is True

    def test_transaction_defaults(self):
        tx = DataTransaction(id="tx-1", user_id="alice", started_at=NOW)
        assert tx.is_active
        tx.status = TransactionStatus.COMMITTED
        assert not tx.is_active

    def test_snapshot_json_round_trip(self):
        snapshot = StoreSnapshot(timestamp=NOW, ownerships=[make_edge()], audit_sequence=3)
        restored = StoreSnapshot.model_validate_json(snapshot.model_dump_json())
        assert restored.ownerships[0] == snapshot.ownerships[0]
        assert restored.audit_sequence == 3

    def test_ownership_query_defaults(self):
        assert OwnershipQuery().include_expired is True
