"""
Entity Store

Purpose
-------
Durable key/value substrate underneath every repository:
- `put(key, bytes)` / `get(key)` / `delete(key)` — atomic per key
- `scan_prefix(prefix)` — lazy, key-ordered iteration over a key range

Design
------
- Like every DAO, the store requires an active SQLAlchemy `Session` supplied by
  the caller; commits happen at the transaction boundary (`@transactional`).
- Payloads are opaque bytes. Their layout is a contract between the
  repositories and the snapshot format, not something the store inspects.
- Capacity is optional (`STORE_MAX_BYTES`, `STORE_MAX_ENTRIES`). A write that
  would exceed it raises `StorageExhausted` and is never retried here.
- The store can be *blocked* with an error (set by the upgrade manager when a
  snapshot fails to rehydrate). While blocked, every operation raises that
  error so nothing runs against a partial image.

Usage
-----
.. code-block:: python

    from coach_backend.database.daos.entity_store import entity_store

    with SessionFactory() as session:
        entity_store.put(session, "conversation:alice:c1", b"{...}")
        session.commit()
        for key, value in entity_store.scan_prefix(session, "conversation:alice:"):
            ...
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from coach_backend.database.config.config import settings
from coach_backend.database.core.errors import CoachError, StorageExhausted
from coach_backend.database.entities.entity_record import EntityRecord

logger = logging.getLogger(__name__)

SCAN_BATCH_SIZE = 100


class EntityStore:
    """
    Key/value access to the `entity` table.

    Parameters
    ----------
    max_bytes : int | None
        Upper bound on the summed size of all payloads.
    max_entries : int | None
        Upper bound on the number of keys.
    """

    def __init__(self, max_bytes: Optional[int] = None, max_entries: Optional[int] = None):
        self.max_bytes = max_bytes
        self.max_entries = max_entries
        self._blocked_by: Optional[CoachError] = None

    # ------------------------------------------------------------------
    # availability gate
    # ------------------------------------------------------------------
    @property
    def blocked(self) -> bool:
        return self._blocked_by is not None

    def block(self, error: CoachError) -> None:
        """Refuse every further operation with `error` until `unblock()`."""
        logger.error("Entity store blocked: %s", error.detail)
        self._blocked_by = error

    def unblock(self) -> None:
        self._blocked_by = None

    def _ensure_available(self) -> None:
        if self._blocked_by is not None:
            raise self._blocked_by

    # ------------------------------------------------------------------
    # key/value contract
    # ------------------------------------------------------------------
    def put(self, session: Session, key: str, value: bytes) -> None:
        """
        Insert or overwrite the payload stored under `key`.

        Raises
        ------
        StorageExhausted
            If the write would exceed the configured capacity.
        """
        self._ensure_available()
        record = session.get(EntityRecord, key)
        self._check_capacity(session, record, value)

        now = datetime.now(timezone.utc)
        if record is None:
            session.add(EntityRecord(key=key, value=value, updated_on=now))
            # make the row visible to session.get() within this transaction
            session.flush()
        else:
            record.value = value
            record.updated_on = now

    def get(self, session: Session, key: str) -> Optional[bytes]:
        """Return the payload stored under `key`, or None when absent."""
        self._ensure_available()
        record = session.get(EntityRecord, key)
        return None if record is None else record.value

    def delete(self, session: Session, key: str) -> bool:
        """Remove `key`. Returns False when the key was not present."""
        self._ensure_available()
        record = session.get(EntityRecord, key)
        if record is None:
            return False
        session.delete(record)
        session.flush()
        return True

    def scan_prefix(self, session: Session, prefix: str) -> Iterator[Tuple[str, bytes]]:
        """
        Lazily yield `(key, value)` pairs whose key starts with `prefix`,
        in ascending key order.
        """
        self._ensure_available()
        query = (
            session.query(EntityRecord.key, EntityRecord.value)
            .filter(EntityRecord.key.startswith(prefix, autoescape=True))
            .order_by(EntityRecord.key)
            .yield_per(SCAN_BATCH_SIZE)
        )
        for key, value in query:
            yield key, value

    # ------------------------------------------------------------------
    # whole-store access for snapshots
    # ------------------------------------------------------------------
    def replace_all(self, session: Session, entries: Iterable[Tuple[str, bytes]]) -> int:
        """
        Replace the entire store content with `entries`.

        Bypasses the availability gate and the capacity limits: it is how a
        blocked store gets its validated image back.
        """
        session.query(EntityRecord).delete(synchronize_session=False)
        session.expunge_all()
        count = 0
        now = datetime.now(timezone.utc)
        for key, value in entries:
            session.add(EntityRecord(key=key, value=value, updated_on=now))
            count += 1
        session.flush()
        return count

    def usage(self, session: Session) -> Tuple[int, int]:
        """Return `(entry_count, total_bytes)` currently stored."""
        count, total = session.query(
            func.count(EntityRecord.key), func.coalesce(func.sum(func.length(EntityRecord.value)), 0)
        ).one()
        return int(count), int(total)

    def _check_capacity(self, session: Session, record: Optional[EntityRecord], value: bytes) -> None:
        if self.max_bytes is None and self.max_entries is None:
            return

        count, total = self.usage(session)
        if record is not None:
            total -= len(record.value)
        else:
            count += 1
        total += len(value)

        if self.max_entries is not None and count > self.max_entries:
            raise StorageExhausted(f"entity store holds the maximum of {self.max_entries} entries")
        if self.max_bytes is not None and total > self.max_bytes:
            raise StorageExhausted(f"entity store capacity of {self.max_bytes} bytes exhausted")


entity_store = EntityStore(max_bytes=settings.STORE_MAX_BYTES, max_entries=settings.STORE_MAX_ENTRIES)
"""Process-wide store instance shared by every repository."""
