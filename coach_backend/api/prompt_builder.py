"""
Prompt Assembly under a Size Budget
===================================

Purpose
-------
Turns the message history of a conversation into the single text prompt sent
to the inference endpoint:

    <coaching preamble>

    User: ...

    Assistant: ...

Rules
-----
- Only `resolved` messages are conversational content; pending placeholders
  and failed turns are left out.
- History is selected newest-first: starting from the most recent resolved
  message and walking backwards, messages are kept while the budget holds.
  The first message that does not fit ends the walk, so older turns are the
  ones dropped, never newer ones.
- The budget covers the history only; the preamble is always present.
- When the conversation owner registered a profile, a short "about the user"
  block (name and resume) follows the preamble, but only if it fits in what
  the selected history left of the budget. History always wins.
- The same messages and budget always give byte-identical output.

Budget units
------------
- ``characters`` (default): `len()` of the rendered text.
- ``tokens``: tiktoken ``cl100k_base`` token count.
"""

from functools import lru_cache
from typing import Callable, Iterable, List, Optional

import tiktoken
from sqlalchemy.orm import Session

from coach_backend.api.knowledge import SYSTEM_PREAMBLE
from coach_backend.database.config.config import settings
from coach_backend.database.daos.user_dao import UserDao
from coach_backend.database.daos.user_message_dao import UserMessagesDao
from coach_backend.database.entities.messages import Message, MessageStatus, Role
from coach_backend.database.entities.users import User

MESSAGE_SEPARATOR = "\n\n"


@lru_cache(maxsize=1)
def _encoding():
    return tiktoken.get_encoding("cl100k_base")


def num_tokens(text: str) -> int:
    """Count tokens using the `cl100k_base` encoding."""
    return len(_encoding().encode(text))


def role_label(role: Role) -> str:
    if role == Role.USER:
        return "User"
    if role == Role.ASSISTANT:
        return "Assistant"
    if role == Role.SYSTEM:
        return "System"
    raise ValueError(f"unknown role: {role!r}")


def render_message(message: Message) -> str:
    return f"{role_label(message.role)}: {message.content}"


def render_profile(user: User) -> str:
    lines = [f"About the user: {user.fullname}"]
    if user.resume.strip():
        lines.append(f"Resume:\n{user.resume.strip()}")
    return "\n".join(lines)


class PromptBuilder:
    """
    Builds bounded prompts from conversation history.

    Args:
        budget (int | None): Maximum history size; defaults to `settings.PROMPT_BUDGET`.
        unit (str | None): "characters" or "tokens"; defaults to `settings.PROMPT_BUDGET_UNIT`.
        preamble (str): Fixed system preamble.
        counter (Callable[[str], int] | None): Size function overriding `unit`.
        message_dao (UserMessagesDao | None): DAO used by `build`.
        user_dao (UserDao | None): DAO `build` reads the owner profile from.
    """

    def __init__(
        self,
        budget: Optional[int] = None,
        unit: Optional[str] = None,
        preamble: str = SYSTEM_PREAMBLE,
        counter: Optional[Callable[[str], int]] = None,
        message_dao: Optional[UserMessagesDao] = None,
        user_dao: Optional[UserDao] = None,
    ):
        self.budget = settings.PROMPT_BUDGET if budget is None else budget
        self.preamble = preamble
        self.message_dao = message_dao or UserMessagesDao()
        self.user_dao = user_dao or UserDao(store=self.message_dao.store)
        if counter is not None:
            self.counter = counter
        elif (unit or settings.PROMPT_BUDGET_UNIT) == "tokens":
            self.counter = num_tokens
        else:
            self.counter = len

    def select_history(self, messages: Iterable[Message]) -> List[Message]:
        """Return the resolved messages that fit the budget, oldest first."""
        resolved = sorted(
            (m for m in messages if m.status == MessageStatus.RESOLVED),
            key=lambda m: m.id,
        )
        separator_cost = self.counter(MESSAGE_SEPARATOR)

        kept: List[Message] = []
        used = 0
        for message in reversed(resolved):
            cost = self.counter(render_message(message))
            if kept:
                cost += separator_cost
            if used + cost > self.budget:
                break
            kept.append(message)
            used += cost

        kept.reverse()
        return kept

    def history_size(self, history: List[Message]) -> int:
        """Budget consumed by already selected history."""
        if not history:
            return 0
        rendered = sum(self.counter(render_message(m)) for m in history)
        return rendered + (len(history) - 1) * self.counter(MESSAGE_SEPARATOR)

    def assemble(self, messages: Iterable[Message], profile: Optional[User] = None) -> str:
        """Render the preamble, the owner profile when it fits, then the selected history."""
        history = self.select_history(messages)
        parts = [self.preamble]
        if profile is not None:
            block = render_profile(profile)
            cost = self.counter(block) + self.counter(MESSAGE_SEPARATOR)
            if self.history_size(history) + cost <= self.budget:
                parts.append(block)
        parts += [render_message(m) for m in history]
        return MESSAGE_SEPARATOR.join(parts)

    def build(self, session: Session, conversation_id: str) -> str:
        """Read a conversation's messages (as the system identity) and assemble its prompt."""
        conversation_dao = self.message_dao.conversation_dao
        messages = self.message_dao.fetchMessagesByConversationId(
            session, conversation_dao.system_identity, conversation_id
        )
        owner = conversation_dao.ownerOf(session, conversation_id)
        profile = self.user_dao.findUser(session, owner) if owner is not None else None
        return self.assemble(messages, profile=profile)
