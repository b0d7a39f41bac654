"""
Entity-Store Transactions
=========================

Every service operation of the coach runs as one SQLAlchemy transaction over
the ``entity`` table: submitting a turn writes the user message, the pending
assistant placeholder and the updated conversation record together, or none
of them.

``@transactional`` opens that transaction and hands its session to the
decorated function as the ``session`` keyword argument. The active session
is kept in a context variable, so a transactional function called from
another one (``funcs.submit_user_turn`` → ``ConversationManager.submit_user_turn``)
joins the outer transaction instead of committing on its own. Only the
outermost call commits or rolls back.

Rollbacks caused by the core's own refusals (``NotFound``, ``Forbidden``,
``Conflict``, ...) are routine and logged at debug level; anything else is
logged as a warning before it propagates.
"""

import contextvars
import logging
from functools import wraps

from coach_backend.database.config.connection_engine import SessionFactory
from coach_backend.database.core.errors import CoachError

logger = logging.getLogger(__name__)

db_session_context = contextvars.ContextVar("db_session_context", default=None)
"""Session of the transaction in progress, if any."""


def transactional(func):
    """
    Run `func` inside the current entity-store transaction, opening one if
    none is active.

    Parameters
    ----------
    func : callable
        Function accepting a `session` keyword argument.

    Returns
    -------
    callable
        The wrapped function. The outermost call flushes and commits on
        success, rolls back and re-raises on error, and always closes its
        session.

    Example
    -------
    >>> @transactional
    ... def rename(identity, conversation_id, title, session=None):
    ...     ConversationDao().updateConversationByName(session, identity, conversation_id, title)
    """
    @wraps(func)
    def wrap_func(*args, **kwargs):
        session = db_session_context.get()
        if session is not None:
            return func(*args, session=session, **kwargs)

        session = SessionFactory()
        token = db_session_context.set(session)

        try:
            result = func(*args, session=session, **kwargs)
            session.flush()
            session.commit()
        except CoachError as e:
            logger.debug("%s rolled back: %s", func.__qualname__, e.code)
            session.rollback()
            raise
        except Exception as e:
            logger.warning("%s rolled back on %s: %s", func.__qualname__, type(e).__name__, e)
            session.rollback()
            raise
        finally:
            session.close()
            db_session_context.reset(token)

        return result

    return wrap_func
