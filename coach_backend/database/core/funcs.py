"""
Service-layer operations for conversations, turns, messages and user profiles.

Functions touching DAOs directly are wrapped with the `@transactional`
decorator, which manages SQLAlchemy sessions and transactions automatically
and injects the active `session` keyword argument. Turn operations delegate to
the process-wide `ConversationManager`, whose methods are transactional
themselves.

Every function takes the already verified caller `identity` first; ownership
is enforced by the DAOs (`NotFound` / `Forbidden`).
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from sqlalchemy.orm import Session

from coach_backend.database.core.conversation_manager import ConversationManager, TurnHandle
from coach_backend.database.core.errors import Forbidden, NotFound
from coach_backend.database.daos.user_dao import UserDao
from coach_backend.database.daos.user_message_dao import DEFAULT_PAGE_SIZE
from coach_backend.database.entities.conversations import TITLE_MAX_LENGTH, Conversation
from coach_backend.database.entities.messages import Message
from coach_backend.database.entities.users import User
from coach_backend.database.helpers.transactionManagement import transactional

manager = ConversationManager()
"""Process-wide manager; its DAOs share the module-level entity store."""

user_dao = UserDao()


class DeleteResult(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class MessagePage:
    """One newest-first page of messages and the cursor of the next (older) page."""
    messages: List[Message]
    next_cursor: Optional[int]


def create_conversation(identity: str, title: Optional[str] = None) -> Conversation:
    """
    Create an empty conversation owned by `identity`.

    Parameters
    ----------
    identity : str
        Owner of the new conversation.
    title : str | None
        Optional title; the first user message provides one otherwise.

    Returns
    -------
    Conversation
        The stored conversation (its `id` is what later calls refer to).
    """
    return manager.create_conversation(identity, title=_clean_title(title) if title else None)


@transactional
def list_conversations(identity: str, session: Session = None) -> List[Conversation]:
    """
    List the caller's conversations, most recently updated first.

    Returns an empty list for an identity that owns nothing.
    """
    return manager.conversation_dao.fetchConversationsByOwner(session, identity)


@transactional
def get_conversation(identity: str, conversation_id: str, session: Session = None) -> Conversation:
    return manager.conversation_dao.fetchConversationById(session, identity, conversation_id)


@transactional
def rename_conversation(identity: str, conversation_id: str, title: str, session: Session = None) -> Conversation:
    """
    Rename a conversation.

    Raises
    ------
    ValueError
        If `title` is blank.
    NotFound / Forbidden
        If the conversation is unknown or not owned by the caller.
    """
    return manager.conversation_dao.updateConversationByName(
        session, identity, conversation_id, _clean_title(title)
    )


@transactional
def delete_conversation(identity: str, conversation_id: str, session: Session = None) -> DeleteResult:
    """
    Delete a conversation together with all of its messages.

    Returns
    -------
    DeleteResult
        `success`, `not_found` or `forbidden`; ownership failures are reported,
        not raised.
    """
    try:
        manager.conversation_dao.deleteConversation(session, identity, conversation_id)
    except NotFound:
        return DeleteResult.NOT_FOUND
    except Forbidden:
        return DeleteResult.FORBIDDEN
    return DeleteResult.SUCCESS


def submit_user_turn(identity: str, conversation_id: Optional[str], text: str) -> TurnHandle:
    """
    Record a user message and a pending assistant reply.

    Creates a conversation when `conversation_id` is None. Returns immediately;
    the caller schedules `complete_turn` and clients poll the pending message.
    """
    return manager.submit_user_turn(identity, conversation_id, text)


async def complete_turn(conversation_id: str, message_id: int) -> Optional[Message]:
    """Run inference for a submitted turn and store its outcome."""
    return await manager.complete_turn(conversation_id, message_id)


def poll_turn(identity: str, conversation_id: str, message_id: int) -> Message:
    """Current state of a message: pending, resolved (with content) or failed (with error code)."""
    return manager.poll_turn(identity, conversation_id, message_id)


@transactional
def list_messages(
    identity: str,
    conversation_id: str,
    cursor: Optional[int] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    session: Session = None,
) -> MessagePage:
    """
    Page through a conversation's messages, newest first.

    Pass the returned `next_cursor` to fetch the previous (older) page;
    it is None once the oldest message has been returned.
    """
    messages = manager.message_dao.fetchMessagePage(session, identity, conversation_id, cursor=cursor, limit=limit)
    next_cursor = messages[-1].id if limit > 0 and len(messages) == limit and messages[-1].id > 1 else None
    return MessagePage(messages=messages, next_cursor=next_cursor)


@transactional
def star_message(
    identity: str, conversation_id: str, message_id: int, starred: bool = True, session: Session = None
) -> Message:
    """Set or clear the starred flag on a message."""
    return manager.message_dao.updateMessageStarred(session, identity, conversation_id, message_id, starred)


@transactional
def register_user(identity: str, fullname: str, resume: str = "", session: Session = None) -> User:
    """
    Register the coaching profile of the caller.

    Parameters
    ----------
    identity : str
        Verified caller identity; the profile is keyed by it.
    fullname : str
        Name the coach should use.
    resume : str
        Optional resume text, used as context for coaching replies.

    Raises
    ------
    Conflict
        If the identity already has a profile.
    ValueError
        If `fullname` is blank.
    """
    user = User(identity=identity, fullname=_clean_fullname(fullname), resume=resume)
    return user_dao.registerUser(session, user)


@transactional
def get_user(identity: str, session: Session = None) -> User:
    """Profile of the caller; `NotFound` when it never registered."""
    return user_dao.fetchUser(session, identity)


@transactional
def update_user(
    identity: str, fullname: Optional[str] = None, resume: Optional[str] = None, session: Session = None
) -> User:
    """Change the full name and/or resume of the caller's profile."""
    if fullname is not None:
        fullname = _clean_fullname(fullname)
    return user_dao.updateUser(session, identity, fullname=fullname, resume=resume)


def _clean_title(title: str) -> str:
    title = " ".join(title.split())
    if not title:
        raise ValueError("conversation title must not be empty")
    return title[:TITLE_MAX_LENGTH]


def _clean_fullname(fullname: str) -> str:
    fullname = " ".join(fullname.split())
    if not fullname:
        raise ValueError("full name must not be empty")
    return fullname
