"""Tests for the audit log.

Tests cover:
- Entry construction and state capture
- Filtering and newest-first ordering
- JSON compliance report
- Retention pruning and restore
- Audit failures never propagate
"""

import json
import logging

import pytest
from pydantic import ValidationError
from datetime import date, datetime, timedelta, timezone

from ownership_domain.audit import AuditLog, snapshot_state
from ownership_domain.schemas import AuditAction, AuditEntityType, Entity

START = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:

    def __init__(self, start=START):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def build_log():
    clock = FakeClock()
    return AuditLog(clock), clock


def sample_entity(version=1) -> Entity:
    return Entity(id="entity-1", name="Holdco", type="LLC", version=version, created_at=START, updated_at=START)


# =============================================================================
# Appending
# =============================================================================

def test_append_captures_state_as_json():
    log, clock = build_log()

    entry = log.append(
        AuditAction.CREATE,
        AuditEntityType.ENTITY,
        "entity-1",
        "alice",
        new_state=sample_entity(),
        change_reason="Onboarding",
        validations_passed=["INVALID_ENTITY_NAME"],
    )

    assert entry.sequence == 0
    assert entry.timestamp == clock.now
    assert entry.previous_state is None
    assert entry.new_state["name"] == "Holdco"
    assert entry.new_state["created_at"] == "2024-01-15T12:00:00Z"
    assert entry.validations_passed == ["INVALID_ENTITY_NAME"]
    assert len(log) == 1


def test_snapshot_state_copies_dicts():
    original = {"a": 1}
    copied = snapshot_state(original)
    copied["a"] = 2
    assert original == {"a": 1}
    assert snapshot_state(None) is None


def test_append_failure_is_logged_not_raised(caplog):
    """A blank user id fails AuditEntry validation; the caller must not see it."""
    log, _ = build_log()

    with caplog.at_level(logging.ERROR, logger="ownership_domain.audit"):
        entry = log.append(AuditAction.DELETE, AuditEntityType.ENTITY, "entity-1", "")

    assert entry is None
    assert len(log) == 0
    assert log.sequence == 0
    assert "Audit write failed" in caplog.text


# =============================================================================
# Queries
# =============================================================================

def test_query_newest_first_with_sequence_tiebreak():
    log, clock = build_log()
    first = log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "entity-1", "alice")
    second = log.append(AuditAction.UPDATE, AuditEntityType.ENTITY, "entity-1", "alice")
    clock.advance(minutes=5)
    third = log.append(AuditAction.UPDATE, AuditEntityType.ENTITY, "entity-1", "bob")

    assert [e.id for e in log.query()] == [third.id, second.id, first.id]


def test_query_matches_related_entities():
    log, _ = build_log()
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "entity-1", "alice")
    edge_entry = log.append(
        AuditAction.CREATE,
        AuditEntityType.OWNERSHIP,
        "ownership-1",
        "alice",
        related_entity_ids=["entity-1", "entity-2"],
    )

    assert [e.id for e in log.query(entity_id="entity-2")] == [edge_entry.id]
    assert len(log.query(entity_id="entity-1")) == 2


def test_query_date_bounds_are_inclusive():
    log, clock = build_log()
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "e-14", "alice")
    clock.advance(days=1)
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "e-15", "alice")
    clock.advance(days=1)
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "e-16", "alice")

    # A bare to_date covers its whole day.
    window = log.query(from_date=date(2024, 1, 16), to_date=date(2024, 1, 16))
    assert [e.entity_id for e in window] == ["e-15"]

    assert [e.entity_id for e in log.query(to_date=date(2024, 1, 16))] == ["e-15", "e-14"]
    assert [e.entity_id for e in log.query(from_date=START + timedelta(days=2))] == ["e-16"]


def test_change_history_filters_by_record_kind():
    log, _ = build_log()
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "x-1", "alice")
    log.append(AuditAction.CREATE, AuditEntityType.SHARE_CLASS, "x-1", "alice")

    (entry,) = log.change_history("x-1", AuditEntityType.SHARE_CLASS)
    assert entry.entity_type == "SHARE_CLASS"


# =============================================================================
# Report, Retention and Restore
# =============================================================================

def test_export_report():
    log, clock = build_log()
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "entity-1", "alice", new_state=sample_entity())
    clock.advance(days=3)
    log.append(AuditAction.UPDATE, AuditEntityType.ENTITY, "entity-1", "alice")

    report = json.loads(log.export_report(from_date=date(2024, 1, 15), to_date=date(2024, 1, 15)))

    assert report["totalEntries"] == 1
    assert report["dateRange"]["from"].startswith("2024-01-15T00:00:00")
    assert report["dateRange"]["to"].startswith("2024-01-15T23:59:59")
    assert report["reportGenerated"].startswith("2024-01-18T12:00:00")
    assert report["entries"][0]["action"] == "CREATE"
    assert report["entries"][0]["new_state"]["name"] == "Holdco"


def test_export_report_without_range():
    log, _ = build_log()
    report = json.loads(log.export_report())
    assert report["totalEntries"] == 0
    assert report["dateRange"] == {"from": None, "to": None}


def test_prune_removes_entries_past_retention():
    log, clock = build_log()
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "old", "alice")
    clock.advance(days=10)
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "new", "alice")

    assert log.prune(retention_days=5) == 1
    assert [e.entity_id for e in log.entries()] == ["new"]
    assert log.prune(retention_days=5) == 0


def test_prune_with_explicit_now():
    log, _ = build_log()
    log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "entity-1", "alice")
    assert log.prune(retention_days=1, now=START + timedelta(days=1)) == 0
    assert log.prune(retention_days=1, now=START + timedelta(days=1, seconds=1)) == 1


def test_restore_keeps_sequence_monotonic():
    log, _ = build_log()
    first = log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "entity-1", "alice")
    log.append(AuditAction.UPDATE, AuditEntityType.ENTITY, "entity-1", "alice")

    log.restore([first])
    assert log.sequence == 1
    assert log.append(AuditAction.DELETE, AuditEntityType.ENTITY, "entity-1", "alice").sequence == 1

    log.restore([], sequence=7)
    assert log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "entity-2", "alice").sequence == 7


def test_entries_are_immutable():
    log, _ = build_log()
    entry = log.append(AuditAction.CREATE, AuditEntityType.ENTITY, "entity-1", "alice")
    with pytest.raises(ValidationError):
        entry.user_id = "mallory"
