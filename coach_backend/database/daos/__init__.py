"""
DAOs Package — Repository Layer over the Entity Store
=====================================================

The `daos` package provides the data access layer of the application. It
encapsulates every read and write of persisted records and is the only place
where caller identities are checked against conversation owners.

Conventions
-----------
- Every DAO method takes the active SQLAlchemy `Session` as first argument;
  session lifecycle (open/commit/rollback) is handled by callers
- DAOs raise the core errors (`NotFound`, `Forbidden`, `Conflict`,
  `StorageExhausted`) and let upper layers decide how to surface them

Contents
--------
- EntityStore
    Durable key/value substrate (`entity` table):
    * put / get / delete, atomic per key
    * lazy prefix scans in key order
    * optional capacity limits and an availability gate used by snapshots

- ConversationDao
    Manages conversation records:
    * Creates conversations and their owner index entry
    * Fetches one conversation (owner-checked) or an owner's conversations,
      most recently updated first
    * Renames conversations
    * Deletes conversations, cascading to their messages

- UserMessagesDao
    Manages message records:
    * Appends messages with per-conversation increasing ids
    * Resolves or fails pending assistant messages exactly once
    * Fetches messages chronologically or as newest-first pages
    * Stars/unstars messages
"""
