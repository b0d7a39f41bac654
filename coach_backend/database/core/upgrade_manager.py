"""
Snapshot / Rehydrate across Restarts and Upgrades
=================================================

`snapshot()` serializes every entity-store entry to one JSON document:

.. code-block:: json

    {
      "schema_version": 1,
      "created_at": "2026-01-01T00:00:00+00:00",
      "entry_count": 2,
      "checksum": "<sha256 hex of the canonical entries>",
      "entries": [{"key": "conversation:alice:…", "value": "<base64>"}, ...]
    }

The file is written to a temporary sibling and moved into place with
`os.replace`, so a crash mid-write never leaves a truncated snapshot behind.

`rehydrate()` only ever fills an *empty* store, e.g. a fresh database after
an upgrade. A store that already holds entries is at least as new as any
snapshot taken from it (snapshots are written at shutdown, writes keep
landing in the database afterwards), so the snapshot is left unapplied and a
crash between two clean shutdowns loses nothing.

Into an empty store, `rehydrate()` blocks the store, validates the *whole*
document (parseable, supported version, entry count, checksum, base64
payloads, unique keys) and only then writes the entries in a single
transaction. Any defect raises `SnapshotCorrupt` and the store stays blocked,
so no repository operation ever observes a partial image. A missing snapshot
file means there is nothing to restore.
"""

import base64
import binascii
import hashlib
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from coach_backend.database.config.config import settings
from coach_backend.database.core.errors import SnapshotCorrupt
from coach_backend.database.daos.entity_store import EntityStore, entity_store
from coach_backend.database.helpers.transactionManagement import transactional

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1


class SnapshotEntry(BaseModel):
    key: str
    value: str


class SnapshotDocument(BaseModel):
    schema_version: int
    created_at: datetime
    entry_count: int
    checksum: str
    entries: List[SnapshotEntry]


def entries_checksum(entries: List[SnapshotEntry]) -> str:
    """sha256 over the canonical JSON form of the entries, in order."""
    canonical = json.dumps(
        [[entry.key, entry.value] for entry in entries],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class UpgradeManager:
    """
    Writes and restores entity-store snapshots.

    Args:
        store (EntityStore | None): Store to snapshot; the shared instance by default.
        path (str | Path | None): Snapshot file; `settings.SNAPSHOT_PATH` by default.
    """

    def __init__(self, store: Optional[EntityStore] = None, path=None):
        self.store = store or entity_store
        self.path = Path(path or settings.SNAPSHOT_PATH)

    @transactional
    def snapshot(self, session=None) -> Path:
        """Serialize every store entry and atomically replace the snapshot file."""
        entries = [
            SnapshotEntry(key=key, value=base64.b64encode(value).decode("ascii"))
            for key, value in self.store.scan_prefix(session, "")
        ]
        document = SnapshotDocument(
            schema_version=SNAPSHOT_SCHEMA_VERSION,
            created_at=datetime.now(timezone.utc),
            entry_count=len(entries),
            checksum=entries_checksum(entries),
            entries=entries,
        )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(document.model_dump_json(), encoding="utf-8")
        os.replace(tmp, self.path)

        logger.info("Snapshot of %d entries written to %s", len(entries), self.path)
        return self.path

    def rehydrate(self) -> int:
        """
        Restore the store from the snapshot file.

        Returns:
            int: Number of entries restored (0 when no snapshot exists or the
            store already holds entries).

        Raises:
            SnapshotCorrupt: the snapshot failed validation or could not be
            applied. The store is left blocked.
        """
        if not self.path.exists():
            logger.info("No snapshot at %s; nothing to restore", self.path)
            return 0

        stored = self._entry_count()
        if stored:
            logger.info("Entity store already holds %d entries; snapshot %s not applied", stored, self.path)
            return 0

        self.store.block(SnapshotCorrupt("snapshot rehydration in progress"))
        try:
            entries = self.load(self.path)
        except SnapshotCorrupt as e:
            self.store.block(e)
            raise

        try:
            count = self._apply(entries)
        except SQLAlchemyError as e:
            error = SnapshotCorrupt(f"snapshot could not be applied: {e}")
            self.store.block(error)
            raise error from e

        self.store.unblock()
        logger.info("Rehydrated %d entries from %s", count, self.path)
        return count

    @staticmethod
    def load(path: Path) -> List[Tuple[str, bytes]]:
        """Parse and validate a snapshot file; returns its decoded entries."""
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SnapshotCorrupt(f"snapshot unreadable: {e}") from e

        try:
            document = SnapshotDocument.model_validate_json(raw)
        except ValidationError as e:
            raise SnapshotCorrupt(f"snapshot is not a valid document: {e.error_count()} errors") from e

        if document.schema_version != SNAPSHOT_SCHEMA_VERSION:
            raise SnapshotCorrupt(f"unsupported snapshot schema version {document.schema_version}")
        if document.entry_count != len(document.entries):
            raise SnapshotCorrupt(
                f"snapshot declares {document.entry_count} entries but holds {len(document.entries)}"
            )
        if entries_checksum(document.entries) != document.checksum:
            raise SnapshotCorrupt("snapshot checksum mismatch")

        decoded: List[Tuple[str, bytes]] = []
        seen = set()
        for entry in document.entries:
            if entry.key in seen:
                raise SnapshotCorrupt(f"duplicate key in snapshot: {entry.key}")
            seen.add(entry.key)
            try:
                decoded.append((entry.key, base64.b64decode(entry.value, validate=True)))
            except binascii.Error as e:
                raise SnapshotCorrupt(f"undecodable value for key {entry.key}") from e
        return decoded

    @transactional
    def _entry_count(self, session=None) -> int:
        count, _ = self.store.usage(session)
        return count

    @transactional
    def _apply(self, entries: List[Tuple[str, bytes]], session=None) -> int:
        return self.store.replace_all(session, entries)


upgrade_manager = UpgradeManager()
