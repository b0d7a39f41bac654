"""
Pydantic models used for request/response validation and API data contracts.

Each class defines the structure of data expected in API endpoints, ensuring
validation and automatic OpenAPI schema generation.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from coach_backend.database.entities.conversations import Conversation
from coach_backend.database.entities.messages import ErrorCode, Message, MessageStatus, Role
from coach_backend.database.entities.users import FULLNAME_MAX_LENGTH, User


class ConversationCreationDetails(BaseModel):
    """
    Represents details needed to create a new conversation.
    """
    title: Optional[str] = Field(None, description="Optional title; derived from the first message otherwise.", example="Salary negotiation")


class UpdateConversationDetails(BaseModel):
    """
    Represents details required to rename an existing conversation.
    """
    title: str = Field(..., min_length=1, description="New title for the conversation.", example="Interview prep")


class NewTurn(BaseModel):
    """
    A user message submitted for a reply.
    """
    conversation_id: Optional[str] = None
    """Conversation to continue; a new one is created when omitted."""
    text: str = Field(..., min_length=1)
    """The text content of the message."""


class StarDetails(BaseModel):
    """
    Represents a request to star or unstar a message.
    """
    starred: bool = True


class UserRegistrationDetails(BaseModel):
    """
    Represents data required to register the caller's coaching profile.
    """
    fullname: str = Field(..., min_length=1, max_length=FULLNAME_MAX_LENGTH, example="Jane Doe")
    """Name the coach should use."""
    resume: str = ""
    """Resume text the coach can draw on."""


class UpdateUserDetails(BaseModel):
    """
    Represents a partial update of the caller's profile.
    """
    fullname: Optional[str] = Field(None, min_length=1, max_length=FULLNAME_MAX_LENGTH)
    resume: Optional[str] = None


class ConversationDetails(BaseModel):
    """
    Conversation as returned to its owner.
    """
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    pending_message_id: Optional[int] = None

    @classmethod
    def of(cls, conversation: Conversation) -> "ConversationDetails":
        return cls(
            id=conversation.id,
            title=conversation.title,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            pending_message_id=conversation.pending_message_id,
        )


class MessageDetails(BaseModel):
    """
    Message as returned by listing and polling endpoints.
    """
    id: int
    conversation_id: str
    role: Role
    content: str
    status: MessageStatus
    error_code: Optional[ErrorCode] = None
    created_at: datetime
    starred: bool

    @classmethod
    def of(cls, message: Message) -> "MessageDetails":
        return cls(**message.model_dump())


class TurnAccepted(BaseModel):
    """
    Handle of a submitted turn; poll `pending_message_id` for the reply.
    """
    conversation_id: str
    user_message_id: int
    pending_message_id: int


class MessagePageDetails(BaseModel):
    """
    One newest-first page of messages.
    """
    messages: List[MessageDetails]
    next_cursor: Optional[int] = None
    """Pass as `cursor` to fetch the previous (older) page; None on the last page."""


class UserDetails(BaseModel):
    """
    Profile as returned to its owner.
    """
    fullname: str
    resume: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def of(cls, user: User) -> "UserDetails":
        return cls(fullname=user.fullname, resume=user.resume, created_at=user.created_at, updated_at=user.updated_at)
