"""
JWT utilities for identifying the caller.

Functions
---------
verify_token(token: str) -> str | None
    Verify a JWT's signature & expiration and return the subject (`sub`) if valid.
bearer_token(authorization: str | None) -> str | None
    Extract the token of an ``Authorization: Bearer <token>`` header.

Tokens are issued by the authentication service in front of this backend;
only verification happens here.

Environment contract (from `settings`)
--------------------------------------
SECRET_KEY : str
    HMAC signing key for JWTs.
ALGORITHM : str
    JWT signing algorithm (e.g., "HS256").
"""

import logging
from typing import Optional

from jose import JWTError, jwt

from coach_backend.database.config.config import settings

logger = logging.getLogger(__name__)


def verify_token(token: str) -> Optional[str]:
    """
    Verify a JWT and return its subject.

    Parameters
    ----------
    token : str
        Encoded JWT string from the client (cookie or Authorization header).

    Returns
    ----------
    str | None
        The `sub` claim (subject) if the token is valid, otherwise None.

    Notes
    ----------
    - Decodes and validates the signature and expiration using SECRET_KEY/ALGORITHM.
    - On any JWTError (invalid signature, expired, malformed), returns None.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload.get("sub")
    except JWTError as e:
        logger.info("Rejected token: %s", e)
        return None


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()
