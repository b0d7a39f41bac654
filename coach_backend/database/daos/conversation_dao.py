"""
Conversation DAO

Purpose
-------
Repository over the entity store for `Conversation` records:
- Create conversations
- Fetch one conversation (owner-checked) or all conversations of an owner
- Rename a conversation
- Delete a conversation together with all of its messages

Design
------
- Requires an active SQLAlchemy `Session` supplied by the caller (no session
  creation inside the DAO); transaction boundaries live in the service layer.
- Every operation that targets a conversation first resolves its owner via
  the ``conversation_owner`` index entry and compares it with the presented
  identity. This is the single access-control point of the core:
  unknown id → `NotFound`, other identity → `Forbidden`. The configured
  system identity passes the check for maintenance work.

Key layout
----------
- ``conversation:{owner}:{id}``        → Conversation JSON
- ``conversation_owner:_:{id}``        → owner identity (UTF-8)
- ``message:{id}:{message id}``        → Message JSON (see `UserMessagesDao`)
- ``user:_:{identity}``                → User profile JSON (see `UserDao`)

Usage
-----
.. code-block:: python

    dao = ConversationDao()
    with SessionFactory() as session:
        conversation = dao.createConversation(session, Conversation(owner="alice"))
        session.commit()
        items = dao.fetchConversationsByOwner(session, "alice")
        dao.updateConversationByName(session, "alice", conversation.id, "Salary talk")
        dao.deleteConversation(session, "alice", conversation.id)
        session.commit()

Error Handling
--------------
- `NotFound` / `Forbidden` are raised before anything is read or written.
- `StorageExhausted` from the store is logged and re-raised.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from coach_backend.database.config.config import settings
from coach_backend.database.core.errors import Forbidden, NotFound, StorageExhausted
from coach_backend.database.daos.entity_store import EntityStore, entity_store
from coach_backend.database.entities import keys
from coach_backend.database.entities.conversations import Conversation

logger = logging.getLogger(__name__)


class ConversationDao:
    """
    Data Access Object (DAO) for Conversation records.

    Parameters
    ----------
    store : EntityStore | None
        Store to read and write; defaults to the process-wide store.
    system_identity : str | None
        Identity allowed to access any conversation; defaults to settings.
    """

    def __init__(self, store: EntityStore | None = None, system_identity: str | None = None):
        self.store = store or entity_store
        self.system_identity = system_identity or settings.SYSTEM_IDENTITY

    def ownerOf(self, session: Session, conversation_id: str) -> str | None:
        """Return the owner identity of a conversation, or None if it does not exist."""
        raw = self.store.get(session, keys.conversation_owner_key(conversation_id))
        return None if raw is None else raw.decode("utf-8")

    def authorize(self, session: Session, identity: str, conversation_id: str) -> Conversation:
        """
        Load a conversation on behalf of `identity`.

        Raises
        ------
        NotFound
            If no conversation has this id.
        Forbidden
            If `identity` is neither the owner nor the system identity.
        """
        owner = self.ownerOf(session, conversation_id)
        if owner is None:
            raise NotFound(f"conversation {conversation_id} not found")
        if identity != owner and identity != self.system_identity:
            raise Forbidden(f"conversation {conversation_id} is not owned by the caller")

        payload = self.store.get(session, keys.conversation_key(owner, conversation_id))
        if payload is None:
            raise NotFound(f"conversation {conversation_id} not found")
        return Conversation.from_bytes(payload)

    def createConversation(self, session: Session, conversation: Conversation) -> Conversation:
        """
        Persist a new conversation and its owner index entry.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session.
        conversation : Conversation
            Record to store; `owner` must be the creating identity.

        Returns
        -------
        Conversation
            The stored record.
        """
        try:
            self.store.put(session, keys.conversation_owner_key(conversation.id), conversation.owner.encode("utf-8"))
            self.saveConversation(session, conversation)
            return conversation
        except StorageExhausted as e:
            logger.error("Error in ConversationDao.createConversation. Error: %s", e.detail)
            raise

    def saveConversation(self, session: Session, conversation: Conversation) -> None:
        """Write back a conversation previously obtained through `authorize`."""
        self.store.put(session, keys.conversation_key(conversation.owner, conversation.id), conversation.to_bytes())

    def fetchConversationById(self, session: Session, identity: str, conversation_id: str) -> Conversation:
        """
        Fetch a conversation by id.

        Returns
        -------
        Conversation
            The conversation, if `identity` may see it.

        Raises
        ------
        NotFound, Forbidden
        """
        return self.authorize(session, identity, conversation_id)

    def fetchConversationsByOwner(self, session: Session, identity: str) -> List[Conversation]:
        """
        Fetch all conversations belonging to `identity`, most recently
        updated first. An owner without conversations gets an empty list.
        """
        conversations = [
            Conversation.from_bytes(value)
            for _, value in self.store.scan_prefix(session, keys.conversation_prefix(identity))
        ]
        conversations.sort(key=lambda c: c.id)
        conversations.sort(key=lambda c: c.updated_at, reverse=True)
        return conversations

    def fetchAllConversations(self, session: Session, identity: str) -> List[Conversation]:
        """Fetch every conversation of every owner. Only the system identity may do this."""
        if identity != self.system_identity:
            raise Forbidden("only the system identity may enumerate all conversations")
        return [
            Conversation.from_bytes(value)
            for _, value in self.store.scan_prefix(session, f"{keys.CONVERSATION}:")
        ]

    def updateConversationByName(self, session: Session, identity: str, conversation_id: str, title: str) -> Conversation:
        """
        Rename a conversation.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session.
        identity : str
            Caller identity.
        conversation_id : str
            Conversation to rename.
        title : str
            New title.
        """
        conversation = self.authorize(session, identity, conversation_id)
        conversation.title = title
        conversation.touch()
        self.saveConversation(session, conversation)
        return conversation

    def deleteConversation(self, session: Session, identity: str, conversation_id: str) -> int:
        """
        Delete a conversation and cascade to all of its messages.

        Returns
        -------
        int
            Number of messages deleted with the conversation.
        """
        conversation = self.authorize(session, identity, conversation_id)

        message_keys = [key for key, _ in self.store.scan_prefix(session, keys.message_prefix(conversation.id))]
        for key in message_keys:
            self.store.delete(session, key)

        self.store.delete(session, keys.conversation_key(conversation.owner, conversation.id))
        self.store.delete(session, keys.conversation_owner_key(conversation.id))
        logger.info("Deleted conversation %s with %d messages", conversation.id, len(message_keys))
        return len(message_keys)
