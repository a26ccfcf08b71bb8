"""Append-only audit log.

Audit writes must never block a business operation: ``append`` catches any
failure, logs it with the traceback and returns None. Entries are never
modified; the only removal path is the retention ``prune``.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from .schemas.audit import AuditAction, AuditDateRange, AuditEntityType, AuditEntry, AuditReport
from .schemas.base import as_utc, new_id
from .stores.base import Clock

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]
StateLike = Union[BaseModel, Dict[str, Any], None]


def snapshot_state(value: StateLike) -> Optional[Dict[str, Any]]:
    """JSON-ready copy of a record for previous/new state capture."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return dict(value)


class AuditLog:
    """In-memory audit trail ordered by (timestamp, sequence).

    Example:
        log = AuditLog(clock=utc_now)
        log.append(AuditAction.CREATE, AuditEntityType.ENTITY, entity.id, "alice", new_state=entity)
        log.query(entity_id=entity.id)  # newest first
    """

    def __init__(self, clock: Clock):
        self._clock = clock
        self._entries: List[AuditEntry] = []
        self._sequence = 0

    def append(
        self,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id: str,
        user_id: str,
        previous_state: StateLike = None,
        new_state: StateLike = None,
        related_entity_ids: Optional[List[str]] = None,
        change_reason: Optional[str] = None,
        validations_passed: Optional[List[str]] = None,
    ) -> Optional[AuditEntry]:
        """Record one mutation.

        Returns:
            The stored entry, or None if the write failed (the failure is logged)
        """
        try:
            entry = AuditEntry(
                id=new_id("audit"),
                sequence=self._sequence,
                timestamp=self._clock(),
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                related_entity_ids=list(related_entity_ids or []),
                previous_state=snapshot_state(previous_state),
                new_state=snapshot_state(new_state),
                change_reason=change_reason,
                validations_passed=list(validations_passed or []),
            )
        except Exception:
            logger.exception("Audit write failed for %s %s %s", action, entity_type, entity_id)
            return None

        self._entries.append(entry)
        self._sequence += 1
        logger.debug("Audit %s %s %s by %s", entry.action, entry.entity_type, entity_id, user_id)
        return entry

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def query(
        self,
        entity_id: Optional[str] = None,
        from_date: Optional[DateLike] = None,
        to_date: Optional[DateLike] = None,
    ) -> List[AuditEntry]:
        """Entries matching all given filters, newest first.

        ``entity_id`` matches the changed record or any related entity. Date
        bounds are inclusive; a bare ``to_date`` covers that whole day.
        """
        matches: Iterable[AuditEntry] = self._entries

        if entity_id is not None:
            matches = [e for e in matches if e.touches(entity_id)]
        if from_date is not None:
            start = as_utc(from_date)
            matches = [e for e in matches if e.timestamp >= start]
        if to_date is not None:
            end = as_utc(to_date, end_of_day=True)
            matches = [e for e in matches if e.timestamp <= end]

        return self._newest_first(matches)

    def change_history(self, entity_id: str, entity_type: AuditEntityType) -> List[AuditEntry]:
        """Entries for one record of one kind, newest first."""
        wanted = AuditEntityType(entity_type)
        return self._newest_first(
            e for e in self._entries if e.entity_id == entity_id and e.entity_type == wanted
        )

    def export_report(self, from_date: Optional[DateLike] = None, to_date: Optional[DateLike] = None) -> bytes:
        """Serialize matching entries as a JSON compliance report.

        Returns:
            UTF-8 JSON with keys reportGenerated, dateRange{from,to}, totalEntries, entries
        """
        entries = self.query(from_date=from_date, to_date=to_date)
        report = AuditReport(
            report_generated=self._clock(),
            date_range=AuditDateRange(
                from_date=as_utc(from_date) if from_date is not None else None,
                to_date=as_utc(to_date, end_of_day=True) if to_date is not None else None,
            ),
            total_entries=len(entries),
            entries=entries,
        )
        return report.model_dump_json(by_alias=True, indent=2).encode("utf-8")

    # ------------------------------------------------------------------ #
    # Retention and restore
    # ------------------------------------------------------------------ #

    def prune(self, retention_days: int, now: Optional[datetime] = None) -> int:
        """Drop entries older than the retention horizon.

        Returns:
            Number of entries removed
        """
        cutoff = as_utc(now or self._clock()) - timedelta(days=retention_days)
        kept = [e for e in self._entries if e.timestamp >= cutoff]
        removed = len(self._entries) - len(kept)
        self._entries = kept
        if removed:
            logger.info("Pruned %d audit entries older than %s", removed, cutoff.isoformat())
        return removed

    def entries(self) -> List[AuditEntry]:
        """All entries in append order."""
        return list(self._entries)

    def since(self, sequence: int) -> List[AuditEntry]:
        """Entries numbered ``sequence`` or later, in append order."""
        return [e for e in self._entries if e.sequence >= sequence]

    @property
    def sequence(self) -> int:
        """Sequence number the next entry will get."""
        return self._sequence

    def restore(self, entries: Iterable[AuditEntry], sequence: Optional[int] = None) -> None:
        """Replace the trail (backup restore only)."""
        self._entries = list(entries)
        if sequence is None:
            sequence = max((e.sequence for e in self._entries), default=-1) + 1
        self._sequence = sequence

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _newest_first(entries: Iterable[AuditEntry]) -> List[AuditEntry]:
        return sorted(entries, key=lambda e: (e.timestamp, e.sequence), reverse=True)
