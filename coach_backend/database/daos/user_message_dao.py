"""
User Messages DAO

Purpose
-------
Repository over the entity store for `Message` records. Provides:
- Message append with per-conversation id assignment
- Status transitions of pending assistant messages
- Retrieval by id, by conversation (chronological) and newest-first pages
- Star/unstar updates

Design
------
- Requires an active SQLAlchemy `Session` provided by the caller.
- Every call goes through `ConversationDao.authorize`, so a message is only
  reachable by its conversation's owner (or the system identity).
- `appendMessage` is a read-modify-write: it reads the conversation's
  ``last_message_id``, assigns ``last_message_id + 1`` and writes both records
  in the caller's transaction. Two appends on one conversation never overlap
  because a conversation carries at most one pending turn at a time.
- Ids are never reused: ``last_message_id`` only grows, and messages are
  deleted only together with their conversation.

Entity (stored fields)
----------------------
Message:
- id: int (per conversation, strictly increasing)
- conversation_id: str
- role: "user" | "assistant" | "system"
- content: str
- status: "pending" | "resolved" | "failed"
- error_code: str | None
- created_at: datetime
- starred: bool

Error Handling
--------------
- `NotFound` for unknown conversations or message ids, `Forbidden` for
  identity mismatch, `Conflict` when a non-pending message is resolved again
  or a message is appended while a reply is still pending.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from coach_backend.database.core.errors import Conflict, NotFound, StorageExhausted
from coach_backend.database.daos.conversation_dao import ConversationDao
from coach_backend.database.daos.entity_store import EntityStore
from coach_backend.database.entities import keys
from coach_backend.database.entities.conversations import Conversation
from coach_backend.database.entities.messages import ErrorCode, Message, MessageStatus

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


class UserMessagesDao:
    """
    Data Access Object (DAO) for Message records.

    Parameters
    ----------
    conversation_dao : ConversationDao | None
        DAO used for ownership checks and conversation bookkeeping.
    store : EntityStore | None
        Store to read and write; defaults to the conversation DAO's store.
    """

    def __init__(self, conversation_dao: ConversationDao | None = None, store: EntityStore | None = None):
        self.conversation_dao = conversation_dao or ConversationDao(store=store)
        self.store = store or self.conversation_dao.store

    def _load(self, session: Session, conversation_id: str, message_id: int) -> Message:
        payload = self.store.get(session, keys.message_key(conversation_id, message_id))
        if payload is None:
            raise NotFound(f"message {message_id} not found in conversation {conversation_id}")
        return Message.from_bytes(payload)

    def _save(self, session: Session, message: Message) -> None:
        self.store.put(session, keys.message_key(message.conversation_id, message.id), message.to_bytes())

    def appendMessage(self, session: Session, identity: str, conversation_id: str, message: Message) -> Message:
        """
        Append a message to a conversation, assigning its id.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session.
        identity : str
            Caller identity.
        conversation_id : str
            Target conversation.
        message : Message
            Message to store; `id` and `conversation_id` are overwritten.

        Returns
        -------
        Message
            The stored message with its assigned id.

        Raises
        ------
        Conflict
            If the conversation still has a pending assistant message.
        """
        conversation = self.conversation_dao.authorize(session, identity, conversation_id)
        if conversation.pending_message_id is not None:
            raise Conflict(
                f"conversation {conversation.id} already has pending message {conversation.pending_message_id}"
            )
        message.id = conversation.last_message_id + 1
        message.conversation_id = conversation.id

        conversation.last_message_id = message.id
        if message.status == MessageStatus.PENDING:
            conversation.pending_message_id = message.id
        conversation.touch(message.created_at)

        try:
            self._save(session, message)
            self.conversation_dao.saveConversation(session, conversation)
        except StorageExhausted as e:
            logger.error("Error in UserMessagesDao.appendMessage. Error Message: %s", e.detail)
            raise
        return message

    def updateStatus(
        self,
        session: Session,
        identity: str,
        conversation_id: str,
        message_id: int,
        status: MessageStatus,
        content: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
    ) -> Message:
        """
        Move a pending message to `resolved` (with `content`) or `failed`
        (with `error_code`). Always advances the conversation's `updated_at`.

        Raises
        ------
        Conflict
            If the message is not pending any more.
        ValueError
            If the target status or its payload is invalid.
        """
        if status == MessageStatus.RESOLVED and content is None:
            raise ValueError("a resolved message needs content")
        if status == MessageStatus.FAILED and error_code is None:
            raise ValueError("a failed message needs an error code")
        if status == MessageStatus.PENDING:
            raise ValueError("a message cannot be moved back to pending")

        conversation = self.conversation_dao.authorize(session, identity, conversation_id)
        message = self._load(session, conversation.id, message_id)
        if message.status != MessageStatus.PENDING:
            raise Conflict(f"message {message_id} is already {message.status.value}")

        message.status = status
        if status == MessageStatus.RESOLVED:
            message.content = content
            message.error_code = None
        else:
            message.error_code = error_code
        self._save(session, message)

        if conversation.pending_message_id == message.id:
            conversation.pending_message_id = None
        conversation.touch()
        self.conversation_dao.saveConversation(session, conversation)
        return message

    def fetchMessageById(self, session: Session, identity: str, conversation_id: str, message_id: int) -> Message:
        """Return one message of a conversation owned by `identity`."""
        conversation = self.conversation_dao.authorize(session, identity, conversation_id)
        return self._load(session, conversation.id, message_id)

    def fetchMessagesByConversationId(self, session: Session, identity: str, conversation_id: str) -> List[Message]:
        """
        Fetch all messages in a conversation, ordered by id (ascending).

        Returns
        -------
        list[Message]
            Messages of the conversation, oldest first.
        """
        conversation = self.conversation_dao.authorize(session, identity, conversation_id)
        return self._scan(session, conversation)

    def fetchMessagePage(
        self,
        session: Session,
        identity: str,
        conversation_id: str,
        cursor: Optional[int] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[Message]:
        """
        Fetch up to `limit` messages older than `cursor`, newest first.

        The first page (cursor None) holds the latest messages; passing the
        smallest id of a page as the next cursor scrolls further back.
        """
        conversation = self.conversation_dao.authorize(session, identity, conversation_id)
        if limit <= 0:
            return []
        messages = self._scan(session, conversation)
        if cursor is not None:
            messages = [m for m in messages if m.id < cursor]
        return list(reversed(messages[-limit:]))

    def updateMessageStarred(
        self, session: Session, identity: str, conversation_id: str, message_id: int, starred: bool
    ) -> Message:
        """Set or clear the `starred` flag of a message."""
        conversation = self.conversation_dao.authorize(session, identity, conversation_id)
        message = self._load(session, conversation.id, message_id)
        message.starred = starred
        self._save(session, message)
        return message

    def _scan(self, session: Session, conversation: Conversation) -> List[Message]:
        return [
            Message.from_bytes(value)
            for _, value in self.store.scan_prefix(session, keys.message_prefix(conversation.id))
        ]
