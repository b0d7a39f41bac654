"""
EntityRecord ORM Model
======================

The ``EntityRecord`` ORM model is a single row of the durable key/value
substrate (the ``entity`` table). Every conversation, message and index entry
of the application is stored as one row: an opaque byte payload addressed by
a structured key.

Key features
~~~~~~~~~~~~
- Text primary key (``key``) shaped ``{entity_type}:{scope}:{entity_id}``
- Opaque binary payload (``value``); its layout is owned by the repositories
- Timezone-aware ``updated_on`` timestamp (UTC), refreshed on every write

Integration notes
~~~~~~~~~~~~~~~~~
- Rows are only ever touched through ``EntityStore``
  (``coach_backend.database.daos.entity_store``).
- Keys sort lexically, which is what prefix scans rely on; numeric ids are
  zero-padded by the key helpers in ``coach_backend.database.entities.keys``.
"""

from coach_backend.database.config.connection_engine import declarativeBase
from sqlalchemy import DateTime, LargeBinary, TEXT
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone


class EntityRecord(declarativeBase):
    """
    ORM model for the `entity` table.

    Attributes
    ----------
    key : str
        Primary key. Structured entity key.
    value : bytes
        Serialized entity payload.
    updated_on : datetime
        Timestamp of the last write (timezone-aware, UTC).
    """

    __tablename__ = 'entity'

    key: Mapped[str] = mapped_column(
        TEXT, primary_key=True
    )
    """Primary key. Structured entity key."""

    value: Mapped[bytes] = mapped_column(
        LargeBinary, nullable=False
    )
    """Serialized entity payload (cannot be null)."""

    updated_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    """Timestamp of the last write (UTC)."""

    def __init__(self, key: str, value: bytes, updated_on: datetime | None = None):
        """
        Initialize a new EntityRecord object.

        Parameters
        ----------
        key : str
            Structured entity key.
        value : bytes
            Serialized payload.
        updated_on : datetime | None
            Write timestamp; defaults to the current UTC time.
        """
        self.key = key
        self.value = value
        self.updated_on = updated_on or datetime.now(timezone.utc)

    def __str__(self) -> str:
        return f"Entity: key:{self.key}, size: {len(self.value)}, updated_on: {self.updated_on}"
