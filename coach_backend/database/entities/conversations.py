"""
Conversation Record
===================

The ``Conversation`` record represents one coaching dialogue owned by a single
caller identity. It is persisted as a JSON payload inside an ``EntityRecord``
row keyed ``conversation:{owner}:{id}``.

Key features
~~~~~~~~~~~~
- Immutable ``id`` (uuid4 hex) and ``owner`` (opaque identity)
- Human-readable ``title``, derived from the first user message unless set
- Timezone-aware ``created_at`` / ``updated_at`` (UTC); ``updated_at`` never
  moves backwards
- Bookkeeping for the turn lifecycle: ``last_message_id`` (highest message id
  ever assigned, so ids are never reused) and ``pending_message_id`` (the one
  outstanding assistant message, if any)
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

DEFAULT_TITLE = "New conversation"
TITLE_MAX_LENGTH = 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(BaseModel):
    """
    A conversation belonging to a specific owner.

    Attributes
    ----------
    id : str
        Unique identifier, generated at creation.
    owner : str
        Identity that created the conversation.
    title : str
        Short label of the conversation.
    created_at : datetime
        Creation timestamp (UTC).
    updated_at : datetime
        Timestamp of the latest append or turn resolution (UTC).
    last_message_id : int
        Highest message id assigned so far (0 when empty).
    pending_message_id : int | None
        Id of the assistant message awaiting inference, if any.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    owner: str
    title: str = DEFAULT_TITLE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_message_id: int = 0
    pending_message_id: Optional[int] = None

    def touch(self, now: datetime | None = None) -> None:
        """Advance `updated_at`, keeping it monotonic."""
        now = now or utc_now()
        self.updated_at = max(now, self.updated_at)

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "Conversation":
        return cls.model_validate_json(payload)

    def __str__(self) -> str:
        return f"Conversation: id:{self.id}, owner: {self.owner}, title: {self.title}, updated_at: {self.updated_at}"


def derive_title(text: str) -> str:
    """Build a conversation title from the first user message."""
    title = " ".join(text.split())
    if len(title) > TITLE_MAX_LENGTH:
        title = title[: TITLE_MAX_LENGTH - 3].rstrip() + "..."
    return title or DEFAULT_TITLE
