"""
User DAO

Purpose
-------
Repository over the entity store for `User` profiles. Provides:
- Registration of a profile for a caller identity
- Lookup by identity
- Profile updates (full name, resume)

Design
------
- The DAO expects an active SQLAlchemy `Session` supplied by the caller.
- A profile is only ever read or written on behalf of its own identity; the
  identity *is* the key, so there is no separate ownership check.

Entity (stored fields)
----------------------
User:
- identity: str
- fullname: str
- resume: str
- created_at: datetime
- updated_at: datetime

Error Handling
--------------
- `Conflict` when registering an identity twice, `NotFound` for identities
  without a profile.
- `StorageExhausted` from the store is logged and re-raised.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from coach_backend.database.core.errors import Conflict, NotFound, StorageExhausted
from coach_backend.database.daos.entity_store import EntityStore, entity_store
from coach_backend.database.entities import keys
from coach_backend.database.entities.conversations import utc_now
from coach_backend.database.entities.users import User

logger = logging.getLogger(__name__)


class UserDao:
    """
    Data Access Object (DAO) for User profiles.

    Parameters
    ----------
    store : EntityStore | None
        Store to read and write; defaults to the process-wide store.
    """

    def __init__(self, store: EntityStore | None = None):
        self.store = store or entity_store

    def _save(self, session: Session, user: User) -> None:
        try:
            self.store.put(session, keys.user_key(user.identity), user.to_bytes())
        except StorageExhausted as e:
            logger.error("Error in UserDao._save. Error Message: %s", e.detail)
            raise

    def registerUser(self, session: Session, user: User) -> User:
        """
        Store the profile of an identity that has none yet.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session.
        user : User
            Profile to store.

        Returns
        -------
        User
            The stored profile.

        Raises
        ------
        Conflict
            If the identity is already registered.
        """
        if self.store.get(session, keys.user_key(user.identity)) is not None:
            raise Conflict(f"identity {user.identity} is already registered")
        self._save(session, user)
        logger.info("Registered user profile for %s", user.identity)
        return user

    def findUser(self, session: Session, identity: str) -> Optional[User]:
        """Return the profile of `identity`, or None when it never registered."""
        payload = self.store.get(session, keys.user_key(identity))
        return None if payload is None else User.from_bytes(payload)

    def fetchUser(self, session: Session, identity: str) -> User:
        """
        Return the profile of `identity`.

        Raises
        ------
        NotFound
            If the identity never registered.
        """
        user = self.findUser(session, identity)
        if user is None:
            raise NotFound(f"no user profile for identity {identity}")
        return user

    def updateUser(
        self,
        session: Session,
        identity: str,
        fullname: Optional[str] = None,
        resume: Optional[str] = None,
    ) -> User:
        """Change the full name and/or resume of a registered profile."""
        user = self.fetchUser(session, identity)
        changes = {}
        if fullname is not None:
            changes["fullname"] = fullname
        if resume is not None:
            changes["resume"] = resume
        user = User.model_validate({**user.model_dump(), **changes, "updated_at": utc_now()})
        self._save(session, user)
        return user
