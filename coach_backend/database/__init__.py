"""
The `database` package is responsible for all persisted state of the coach:
conversations and their messages, stored as records of a durable key/value
entity store that survives restarts and upgrades.

Contents:
    - config:
        Settings and the SQLAlchemy engine/session factory backing the store.

    - entities:
        The `entity` table row plus the pydantic records (Conversation,
        Message) serialized into it, and the key layout.

    - daos:
        The entity store and the repositories (DAOs) that enforce ownership.

    - core:
        Error taxonomy, the conversation turn lifecycle, snapshot upgrades
        and the service operations called by the routers.

    - helpers:
        Transaction management (`@transactional`).
"""
