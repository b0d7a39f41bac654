"""
Entities Package — Stored Records (SQLAlchemy 2.0 + Pydantic v2)
================================================================

The `entities` package defines what the persistence core stores:

- EntityRecord
    The single ORM model of the application (`entity` table): an opaque
    byte payload addressed by a structured text key. This is the durable
    key/value substrate every other record is serialized into.

- keys
    Key layout helpers: ``{entity_type}:{scope}:{entity_id}`` with
    percent-encoded scopes and zero-padded message ids.

- Conversation
    A coaching dialogue owned by one identity.
    * Fields: `id`, `owner`, `title`, `created_at`, `updated_at`
    * Bookkeeping: `last_message_id`, `pending_message_id`

- Message
    A single turn within a conversation.
    * Fields: `id` (per-conversation, increasing), `conversation_id`, `role`
      ("user" | "assistant" | "system"), `content`, `status`
      ("pending" | "resolved" | "failed"), `error_code`, `created_at`, `starred`

Usage
-----
- DAOs serialize records with `to_bytes()` / `from_bytes()` and store them
  through `EntityStore`; nothing else touches the `entity` table.
"""

from coach_backend.database.entities.entity_record import EntityRecord
from coach_backend.database.entities.conversations import Conversation
from coach_backend.database.entities.messages import ErrorCode, Message, MessageStatus, Role
