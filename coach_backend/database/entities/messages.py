"""
Message Record
==============

The ``Message`` record represents a single turn within a conversation. It is
stored as a JSON payload in an ``EntityRecord`` row keyed
``message:{conversation_id}:{zero-padded id}``.

Key features
~~~~~~~~~~~~
- Integer ``id``, strictly increasing within its conversation, never reused
- Closed role set (``Role``) and status set (``MessageStatus``)
- ``error_code`` (``ErrorCode``) attached only to failed assistant messages
- Timezone-aware ``created_at`` timestamp (UTC)
- Optional ``starred`` flag set by the owner

Only assistant messages use ``pending`` and ``failed``; user messages are
resolved on creation. A pending message is resolved or failed exactly once.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Sender of a message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    """Lifecycle status of a message."""
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class ErrorCode(str, Enum):
    """Reason attached to a failed assistant message."""
    INFERENCE_UNAVAILABLE = "InferenceUnavailable"
    INFERENCE_TIMEOUT = "InferenceTimeout"
    INFERENCE_MALFORMED_RESPONSE = "InferenceMalformedResponse"
    TURN_INTERRUPTED = "TurnInterrupted"
    STORAGE_EXHAUSTED = "StorageExhausted"


class Message(BaseModel):
    """
    A single message within a conversation.

    Attributes
    ----------
    id : int
        Position of the message in its conversation (assigned on append).
    conversation_id : str
        Conversation the message belongs to.
    role : Role
        Sender of the message.
    content : str
        Text payload (empty while pending).
    status : MessageStatus
        pending, resolved or failed.
    error_code : ErrorCode | None
        Failure reason, only for failed messages.
    created_at : datetime
        Creation timestamp (UTC).
    starred : bool
        Owner-set highlight flag.
    """

    id: int = 0
    conversation_id: str
    role: Role
    content: str = ""
    status: MessageStatus = MessageStatus.RESOLVED
    error_code: Optional[ErrorCode] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    starred: bool = False

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "Message":
        return cls.model_validate_json(payload)

    def __str__(self) -> str:
        return (
            f"Conversation: id:{self.conversation_id}, "
            f"message: {self.id}, "
            f"role: {self.role.value}, "
            f"status: {self.status.value}"
        )
