"""Tests for the record stores.

Tests cover:
- Entity creation, versioned updates and search
- Share class issuer checks, immutable fields and search
- Ownership proposals (create/update/delete) and edge lookups
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timedelta, timezone

from ownership_domain.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from ownership_domain.rules import BusinessRuleEngine
from ownership_domain.schemas import EntitySearchQuery, OwnershipQuery, ShareClassSearchQuery
from ownership_domain.stores import EntityStore, OwnershipGraph, ShareClassStore


class FakeClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start=datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


# =============================================================================
# Test Data Builders
# =============================================================================

def build_stores(clock=None, enforce_versions=True):
    clock = clock or FakeClock()
    entities = EntityStore(clock, enforce_versions=enforce_versions)
    share_classes = ShareClassStore(clock, entities.exists, enforce_versions=enforce_versions)
    graph = OwnershipGraph(
        clock,
        entities.as_mapping(),
        share_classes.as_mapping(),
        BusinessRuleEngine(),
        enforce_versions=enforce_versions,
    )
    return entities, share_classes, graph


def company(entities, share_classes, name, authorized=1000):
    entity = entities.create({"name": name, "type": "LLC", "jurisdiction": "Delaware"})
    units = share_classes.create({
        "entity_id": entity.id,
        "name": "Units",
        "type": "Common Stock",
        "total_authorized_shares": authorized,
    })
    return entity, units


def edge_data(owner, owned, units, shares, **extra):
    return {
        "owner_entity_id": owner.id,
        "owned_entity_id": owned.id,
        "share_class_id": units.id,
        "shares": shares,
        **extra,
    }


# =============================================================================
# Entity Store
# =============================================================================

class TestEntityStore:

    def test_create_assigns_id_version_and_timestamps(self):
        clock = FakeClock()
        entities, _, _ = build_stores(clock)

        entity = entities.create({"id": "caller-chosen", "name": "Holdco", "type": "Corporation", "jurisdiction": "DE"})

        assert entity.id.startswith("entity-")
        assert entity.id != "caller-chosen"
        assert entity.version == 1
        assert entity.created_at == entity.updated_at == clock.now
        assert entities.get(entity.id) == entity

    def test_blank_name_rejected(self):
        entities, _, _ = build_stores()
        with pytest.raises(ValidationError, match="INVALID_ENTITY_NAME") as exc_info:
            entities.create({"name": "   ", "type": "LLC"})
        assert exc_info.value.error_codes == ["INVALID_ENTITY_NAME"]
        assert len(entities) == 0

    def test_unknown_field_rejected(self):
        entities, _, _ = build_stores()
        with pytest.raises(ValidationError, match="INVALID_FIELD"):
            entities.create({"name": "Holdco", "type": "LLC", "colour": "blue"})

    def test_invalid_type_rejected(self):
        entities, _, _ = build_stores()
        with pytest.raises(ValidationError) as exc_info:
            entities.create({"name": "Holdco", "type": "Cooperative"})
        assert exc_info.value.error_codes == ["INVALID_FIELD"]
        assert exc_info.value.validation_result.errors[0].field == "type"

    def test_missing_jurisdiction_is_a_warning(self):
        entities, _, _ = build_stores()
        candidate = entities.prepare_create({"name": "Holdco", "type": "Corporation"})

        result = entities.validate_fields(candidate)

        assert result.is_valid
        assert result.warning_codes == ["MISSING_JURISDICTION"]
        assert entities.validate_fields(
            entities.prepare_create({"name": "Alice", "type": "Individual"})
        ).warnings == []

    def test_update_bumps_version_and_keeps_created_at(self):
        clock = FakeClock()
        entities, _, _ = build_stores(clock)
        entity = entities.create({"name": "Holdco", "type": "LLC"})
        clock.advance(hours=1)

        updated = entities.update(entity.id, {"address": "1 Main St", "version": 99})

        assert updated.version == 2
        assert updated.address == "1 Main St"
        assert updated.created_at == entity.created_at
        assert updated.updated_at == clock.now
        assert entity.version == 1  # the old instance is untouched

    def test_stale_version_conflicts(self):
        entities, _, _ = build_stores()
        entity = entities.create({"name": "Holdco", "type": "LLC"})
        entities.update(entity.id, {"address": "x"}, expected_version=1)

        with pytest.raises(ConcurrencyConflictError, match="expected 1, found 2") as exc_info:
            entities.update(entity.id, {"address": "y"}, expected_version=1)
        assert exc_info.value.code == "CONFLICT"

    def test_stale_version_ignored_when_not_enforced(self):
        entities, _, _ = build_stores(enforce_versions=False)
        entity = entities.create({"name": "Holdco", "type": "LLC"})
        entities.update(entity.id, {"address": "x"})
        assert entities.update(entity.id, {"address": "y"}, expected_version=1).version == 3

    def test_update_missing(self):
        entities, _, _ = build_stores()
        with pytest.raises(NotFoundError, match="Entity entity-x not found") as exc_info:
            entities.update("entity-x", {"address": "y"})
        assert exc_info.value.code == "ENTITY_NOT_FOUND"

    def test_search(self):
        clock = FakeClock()
        entities, _, _ = build_stores(clock)
        holdco = entities.create({"name": "Acme Holdings", "type": "Corporation", "jurisdiction": "Delaware"})
        clock.advance(days=2)
        opco = entities.create({"name": "Acme Operating", "type": "LLC", "jurisdiction": "Nevada"})
        alice = entities.create({"name": "Alice", "type": "Individual"})

        assert entities.search(EntitySearchQuery(name="acme")) == [holdco, opco]
        assert entities.search(EntitySearchQuery(type="LLC")) == [opco]
        assert entities.search(EntitySearchQuery(jurisdiction="DELA")) == [holdco]
        assert entities.search(EntitySearchQuery(created_after=clock.now - timedelta(days=1))) == [opco, alice]
        assert entities.search(EntitySearchQuery(created_before=clock.now - timedelta(days=1))) == [holdco]
        assert entities.search(EntitySearchQuery()) == [holdco, opco, alice]


# =============================================================================
# Share Class Store
# =============================================================================

class TestShareClassStore:

    def test_issuer_must_exist(self):
        _, share_classes, _ = build_stores()
        with pytest.raises(ValidationError, match="ISSUER_ENTITY_EXISTS"):
            share_classes.create({
                "entity_id": "entity-ghost",
                "name": "Common",
                "type": "Common Stock",
                "total_authorized_shares": 100,
            })

    def test_issuer_is_immutable(self):
        entities, share_classes, _ = build_stores()
        _, units = company(entities, share_classes, "OpCo")
        other = entities.create({"name": "Other", "type": "LLC"})

        with pytest.raises(ValidationError, match="IMMUTABLE_FIELD"):
            share_classes.update(units.id, {"entity_id": other.id})

        # Re-sending the current value is fine.
        assert share_classes.update(units.id, {"entity_id": units.entity_id, "name": "Class A Units"}).version == 2

    def test_blank_name(self):
        entities, share_classes, _ = build_stores()
        _, units = company(entities, share_classes, "OpCo")
        with pytest.raises(ValidationError, match="INVALID_SHARE_CLASS_NAME"):
            share_classes.update(units.id, {"name": ""})

    def test_by_entity(self):
        entities, share_classes, _ = build_stores()
        opco, units = company(entities, share_classes, "OpCo")
        company(entities, share_classes, "Other")

        assert share_classes.by_entity(opco.id) == [units]
        assert units.id.startswith("shareclass-")

    def test_search(self):
        entities, share_classes, _ = build_stores()
        opco, units = company(entities, share_classes, "OpCo")
        other, other_units = company(entities, share_classes, "Other")
        preferred = share_classes.create({
            "entity_id": opco.id,
            "name": "Series A Preferred",
            "type": "Preferred Series A",
            "total_authorized_shares": 500,
            "voting_rights": False,
        })

        assert share_classes.search(ShareClassSearchQuery(entity_id=opco.id)) == [units, preferred]
        assert share_classes.search(ShareClassSearchQuery(name="UNITS")) == [units, other_units]
        assert share_classes.search(ShareClassSearchQuery(type="Preferred Series A")) == [preferred]
        assert share_classes.search(ShareClassSearchQuery(voting_rights=True, name="units", entity_id=other.id)) == [other_units]
        assert share_classes.search(ShareClassSearchQuery()) == [units, other_units, preferred]


# =============================================================================
# Ownership Graph
# =============================================================================

class TestOwnershipGraph:

    def test_prepare_create_defaults(self):
        clock = FakeClock()
        entities, share_classes, graph = build_stores(clock)
        holdco, _ = company(entities, share_classes, "Holdco")
        opco, units = company(entities, share_classes, "OpCo")

        proposal = graph.prepare_create(
            edge_data(holdco, opco, units, 600, created_by="mallory"), "alice", reason="Initial"
        )

        assert proposal.is_valid
        assert proposal.edge.effective_date == clock.now.date()
        assert proposal.edge.created_by == proposal.edge.updated_by == "alice"
        assert proposal.edge.change_reason == "Initial"
        assert len(graph) == 0  # proposals never store

    def test_prepare_create_missing_fields(self):
        _, _, graph = build_stores()
        proposal = graph.prepare_create({"owner_entity_id": "a", "shares": None}, "alice")

        assert not proposal.is_valid
        assert proposal.edge is None
        assert proposal.result.error_codes == ["MISSING_REQUIRED_FIELDS"]
        assert "owned_entity_id, share_class_id, shares" in proposal.result.errors[0].message

    def test_prepare_create_malformed_value(self):
        entities, share_classes, graph = build_stores()
        holdco, _ = company(entities, share_classes, "Holdco")
        opco, units = company(entities, share_classes, "OpCo")

        result = graph.propose_create(edge_data(holdco, opco, units, "lots"))

        assert result.error_codes == ["INVALID_FIELD"]

    def test_prepare_update_validates_replacement(self):
        entities, share_classes, graph = build_stores()
        holdco, _ = company(entities, share_classes, "Holdco")
        fund, _ = company(entities, share_classes, "Fund")
        opco, units = company(entities, share_classes, "OpCo")
        first = graph.insert(graph.prepare_create(edge_data(holdco, opco, units, 600), "alice").edge)
        graph.insert(graph.prepare_create(edge_data(fund, opco, units, 300), "alice").edge)

        assert graph.propose_update(first.id, {"shares": 700}).is_valid
        assert graph.propose_update(first.id, {"shares": 701}).error_codes == ["NO_OVER_ALLOCATION"]

        proposal = graph.prepare_update(first.id, {"shares": 650}, "bob", reason="Top-up")
        assert proposal.previous == first
        assert proposal.edge.version == 2
        assert proposal.edge.created_by == "alice"
        assert proposal.edge.updated_by == "bob"

    def test_prepare_update_created_by_is_immutable(self):
        entities, share_classes, graph = build_stores()
        holdco, _ = company(entities, share_classes, "Holdco")
        opco, units = company(entities, share_classes, "OpCo")
        edge = graph.insert(graph.prepare_create(edge_data(holdco, opco, units, 10), "alice").edge)

        assert graph.propose_update(edge.id, {"created_by": "bob"}).error_codes == ["IMMUTABLE_FIELD"]

    def test_prepare_update_stale_version(self):
        entities, share_classes, graph = build_stores()
        holdco, _ = company(entities, share_classes, "Holdco")
        opco, units = company(entities, share_classes, "OpCo")
        edge = graph.insert(graph.prepare_create(edge_data(holdco, opco, units, 10), "alice").edge)

        with pytest.raises(ConcurrencyConflictError):
            graph.prepare_update(edge.id, {"shares": 20}, "bob", expected_version=5)

    def test_propose_delete(self):
        _, _, graph = build_stores()
        with pytest.raises(NotFoundError) as exc_info:
            graph.propose_delete("ownership-missing")
        assert exc_info.value.code == "OWNERSHIP_NOT_FOUND"

    def test_lookups_and_query(self):
        clock = FakeClock()
        entities, share_classes, graph = build_stores(clock)
        holdco, holdco_units = company(entities, share_classes, "Holdco")
        fund, _ = company(entities, share_classes, "Fund")
        opco, units = company(entities, share_classes, "OpCo")

        upper = graph.insert(graph.prepare_create(edge_data(fund, holdco, holdco_units, 50), "alice").edge)
        big = graph.insert(graph.prepare_create(edge_data(holdco, opco, units, 600), "alice").edge)
        expiring = graph.insert(graph.prepare_create(
            edge_data(fund, opco, units, 100, effective_date=date(2023, 1, 1), expiry_date=date(2024, 1, 1)),
            "alice",
        ).edge)

        assert graph.incoming(opco.id) == [big, expiring]
        assert graph.outgoing(fund.id) == [upper, expiring]
        assert graph.by_entity(holdco.id) == [upper, big]
        assert graph.issued_shares(units.id) == Decimal("700")

        assert graph.query(OwnershipQuery(owned_entity_id=opco.id, min_shares=Decimal("200"))) == [big]
        assert graph.query(OwnershipQuery(effective_before=date(2023, 6, 1))) == [expiring]
        assert graph.query(OwnershipQuery(include_expired=False)) == [upper, big]
        assert graph.query(OwnershipQuery(max_shares=Decimal("100"), owner_entity_id=fund.id)) == [upper, expiring]
