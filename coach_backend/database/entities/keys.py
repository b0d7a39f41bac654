"""
Entity key layout.

Keys are ``{entity_type}:{scope}:{entity_id}``. The scope of a conversation is
its owner identity, the scope of a message is its conversation id, so a prefix
scan enumerates "all conversations of an owner" or "all messages of a
conversation" without a secondary index. Scopes are percent-encoded so an
identity containing ``:`` cannot bleed into another owner's prefix. Index entries
and user profiles live under the fixed scope ``_``.
"""

from urllib.parse import quote

CONVERSATION = "conversation"
MESSAGE = "message"
CONVERSATION_OWNER = "conversation_owner"
"""Index entry mapping a conversation id to its owner identity."""
USER = "user"

INDEX_SCOPE = "_"
MESSAGE_ID_WIDTH = 20


def _scope(value: str) -> str:
    return quote(value, safe="")


def conversation_prefix(owner: str) -> str:
    return f"{CONVERSATION}:{_scope(owner)}:"


def conversation_key(owner: str, conversation_id: str) -> str:
    return conversation_prefix(owner) + conversation_id


def conversation_owner_key(conversation_id: str) -> str:
    return f"{CONVERSATION_OWNER}:{INDEX_SCOPE}:{conversation_id}"


def message_prefix(conversation_id: str) -> str:
    return f"{MESSAGE}:{_scope(conversation_id)}:"


def message_key(conversation_id: str, message_id: int) -> str:
    # zero-padded so lexical key order equals numeric id order
    return message_prefix(conversation_id) + str(message_id).zfill(MESSAGE_ID_WIDTH)


def user_key(identity: str) -> str:
    return f"{USER}:{INDEX_SCOPE}:{_scope(identity)}"
