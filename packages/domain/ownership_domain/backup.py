"""Backup and restore through an opaque key-value blob store."""

import logging
from typing import Dict, List, Optional, Protocol
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from .errors import StoreError
from .schemas.snapshot import StoreSnapshot
from .stores.base import Clock

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Minimal key-value backing store for backups."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, blob: bytes) -> None:
        ...


class InMemoryBlobStore:
    """Dict-backed BlobStore, the default for a repository."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._blobs.get(key)

    def set(self, key: str, blob: bytes) -> None:
        self._blobs[key] = blob

    def keys(self) -> List[str]:
        return list(self._blobs)


class BackupManager:
    """Writes and reads StoreSnapshots as JSON blobs.

    Blobs are stored under ``key_prefix + backup_id``; the format is whatever
    ``StoreSnapshot`` serializes to and is only guaranteed to round-trip
    through this engine.
    """

    def __init__(self, blob_store: BlobStore, key_prefix: str, clock: Clock):
        self.blob_store = blob_store
        self.key_prefix = key_prefix
        self._clock = clock

    def create_backup(self, snapshot: StoreSnapshot) -> str:
        """Serialize a snapshot and return its backup id."""
        backup_id = f"backup-{self._clock().strftime('%Y%m%dT%H%M%S')}-{uuid4().hex[:8]}"
        blob = snapshot.model_dump_json().encode("utf-8")
        self.blob_store.set(self.key_prefix + backup_id, blob)
        logger.info(
            "Created backup %s (%d entities, %d share classes, %d ownerships, %d audit entries)",
            backup_id,
            len(snapshot.entities),
            len(snapshot.share_classes),
            len(snapshot.ownerships),
            len(snapshot.audit_log),
        )
        return backup_id

    def restore(self, backup_id: str) -> StoreSnapshot:
        """Load a snapshot.

        Raises:
            StoreError: BACKUP_NOT_FOUND if nothing is stored under the id,
                BACKUP_CORRUPT if the stored blob is not a valid snapshot
        """
        blob = self.blob_store.get(self.key_prefix + backup_id)
        if blob is None:
            raise StoreError(f"Backup {backup_id} not found", "BACKUP_NOT_FOUND", entity_id=backup_id)
        try:
            return StoreSnapshot.model_validate_json(blob)
        except PydanticValidationError as exc:
            raise StoreError(f"Backup {backup_id} is unreadable", "BACKUP_CORRUPT", entity_id=backup_id) from exc
