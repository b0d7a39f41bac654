"""
User Profile Record
===================

The ``User`` record is the coaching profile registered for one caller
identity: the name the coach addresses and the resume it can draw on. It is
persisted as a JSON payload keyed ``user:_:{identity}``.

Key features
~~~~~~~~~~~~
- One profile per identity; the identity is immutable
- Free-form ``resume`` text, empty until the user provides one
- Timezone-aware ``created_at`` / ``updated_at`` (UTC)
"""

from datetime import datetime

from pydantic import BaseModel, Field

from coach_backend.database.entities.conversations import utc_now

FULLNAME_MAX_LENGTH = 120


class User(BaseModel):
    """
    Profile of a registered caller identity.

    Attributes
    ----------
    identity : str
        Verified caller identity owning the profile.
    fullname : str
        Name the user wants to be addressed by.
    resume : str
        Resume text used as coaching context.
    created_at : datetime
        Registration timestamp (UTC).
    updated_at : datetime
        Timestamp of the latest profile change (UTC).
    """

    identity: str
    fullname: str = Field(..., min_length=1, max_length=FULLNAME_MAX_LENGTH)
    resume: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "User":
        return cls.model_validate_json(payload)

    def __str__(self) -> str:
        return f"User: identity:{self.identity}, fullname: {self.fullname}"
