"""
Conversation Turn Lifecycle
===========================

A turn moves through

    Idle → UserSubmitted → AssistantPending → {AssistantResolved | AssistantFailed} → Idle

- `submit_user_turn` records the user message and a pending assistant
  placeholder, and returns at once; no inference has happened yet.
- `complete_turn` (scheduled by the transport layer) builds the prompt, awaits
  the inference gateway and resolves the placeholder.
- `resolve_turn` stores the outcome exactly once: content + resolved, or an
  error code + failed.

A conversation holds at most one pending assistant message. Submitting while
one exists raises `Conflict` and writes nothing; that invariant is what keeps
the turns of one conversation serialized under cooperative scheduling.
Failures of the inference step never escape `complete_turn`: they become
failed messages the client discovers by polling, and the conversation stays
usable.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from coach_backend.api.inference_gateway import InferenceGateway
from coach_backend.api.prompt_builder import PromptBuilder
from coach_backend.database.core.errors import (
    CoachError,
    InferenceMalformedResponse,
    InferenceTimeout,
    InferenceUnavailable,
    NotFound,
    StorageExhausted,
)
from coach_backend.database.daos.conversation_dao import ConversationDao
from coach_backend.database.daos.user_message_dao import UserMessagesDao
from coach_backend.database.entities.conversations import DEFAULT_TITLE, Conversation, derive_title
from coach_backend.database.entities.messages import ErrorCode, Message, MessageStatus, Role
from coach_backend.database.helpers.transactionManagement import transactional

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    """States of a conversation turn."""
    IDLE = "Idle"
    USER_SUBMITTED = "UserSubmitted"
    ASSISTANT_PENDING = "AssistantPending"
    ASSISTANT_RESOLVED = "AssistantResolved"
    ASSISTANT_FAILED = "AssistantFailed"

    @classmethod
    def of(cls, message: Message) -> "TurnState":
        """State of the turn an assistant message belongs to."""
        if message.status == MessageStatus.PENDING:
            return cls.ASSISTANT_PENDING
        if message.status == MessageStatus.FAILED:
            return cls.ASSISTANT_FAILED
        return cls.ASSISTANT_RESOLVED


@dataclass(frozen=True)
class TurnHandle:
    """Identifies a submitted turn."""
    conversation_id: str
    user_message_id: int
    pending_message_id: int


@dataclass(frozen=True)
class TurnOutcome:
    """Result of an inference call: reply content or an error code."""
    content: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @classmethod
    def success(cls, content: str) -> "TurnOutcome":
        return cls(content=content)

    @classmethod
    def failure(cls, error_code: ErrorCode) -> "TurnOutcome":
        return cls(error_code=error_code)

    @property
    def ok(self) -> bool:
        return self.error_code is None


def error_code_for(error: Exception) -> ErrorCode:
    if isinstance(error, InferenceTimeout):
        return ErrorCode.INFERENCE_TIMEOUT
    if isinstance(error, InferenceMalformedResponse):
        return ErrorCode.INFERENCE_MALFORMED_RESPONSE
    return ErrorCode.INFERENCE_UNAVAILABLE


class ConversationManager:
    """
    Owns the turn lifecycle of conversations.

    Args:
        conversation_dao (ConversationDao | None)
        message_dao (UserMessagesDao | None)
        prompt_builder (PromptBuilder | None)
        gateway (InferenceGateway | None)
    """

    def __init__(
        self,
        conversation_dao: Optional[ConversationDao] = None,
        message_dao: Optional[UserMessagesDao] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        gateway: Optional[InferenceGateway] = None,
    ):
        self.conversation_dao = conversation_dao or ConversationDao()
        self.message_dao = message_dao or UserMessagesDao(conversation_dao=self.conversation_dao)
        self.prompt_builder = prompt_builder or PromptBuilder(message_dao=self.message_dao)
        self.gateway = gateway or InferenceGateway()

    @property
    def system_identity(self) -> str:
        return self.conversation_dao.system_identity

    @transactional
    def create_conversation(self, identity: str, title: Optional[str] = None, session=None) -> Conversation:
        """Explicit "new conversation" action."""
        conversation = Conversation(owner=identity, title=title or DEFAULT_TITLE)
        return self.conversation_dao.createConversation(session, conversation)

    @transactional
    def submit_user_turn(self, identity: str, conversation_id: Optional[str], text: str, session=None) -> TurnHandle:
        """
        Record a user message and its pending assistant placeholder.

        Creates a conversation owned by `identity` when `conversation_id` is
        None. Does not wait for inference.

        Raises:
            ValueError: `text` is blank.
            NotFound / Forbidden: the conversation is unknown or not the caller's.
            Conflict: the conversation already has a pending turn.
        """
        if not text or not text.strip():
            raise ValueError("message text must not be empty")

        if conversation_id is None:
            conversation = self.conversation_dao.createConversation(
                session, Conversation(owner=identity, title=derive_title(text))
            )
        else:
            conversation = self.conversation_dao.authorize(session, identity, conversation_id)

        # appendMessage raises Conflict while a reply is pending
        user_message = self.message_dao.appendMessage(
            session,
            identity,
            conversation.id,
            Message(conversation_id=conversation.id, role=Role.USER, content=text, status=MessageStatus.RESOLVED),
        )
        pending = self.message_dao.appendMessage(
            session,
            identity,
            conversation.id,
            Message(conversation_id=conversation.id, role=Role.ASSISTANT, status=MessageStatus.PENDING),
        )
        if user_message.id == 1 and conversation.title == DEFAULT_TITLE:
            self.conversation_dao.updateConversationByName(session, identity, conversation.id, derive_title(text))
        logger.info("Turn submitted: conversation=%s pending_message=%d", conversation.id, pending.id)
        return TurnHandle(conversation.id, user_message.id, pending.id)

    @transactional
    def resolve_turn(self, conversation_id: str, message_id: int, outcome: TurnOutcome, session=None) -> Message:
        """
        Store the outcome of a pending turn (exactly once).

        Raises:
            NotFound: the conversation or message no longer exists.
            Conflict: the message was already resolved or failed.
        """
        if outcome.ok:
            return self.message_dao.updateStatus(
                session, self.system_identity, conversation_id, message_id,
                MessageStatus.RESOLVED, content=outcome.content,
            )
        return self.message_dao.updateStatus(
            session, self.system_identity, conversation_id, message_id,
            MessageStatus.FAILED, error_code=outcome.error_code,
        )

    @transactional
    def build_prompt(self, conversation_id: str, session=None) -> str:
        return self.prompt_builder.build(session, conversation_id)

    async def complete_turn(self, conversation_id: str, message_id: int) -> Optional[Message]:
        """
        Run inference for a pending turn and resolve it.

        Returns the resolved/failed message, or None when the conversation
        was deleted while the call was in flight or the outcome could not be
        stored at all.

        Nothing raised while building the prompt or calling the endpoint
        escapes: errors other than the typed inference failures fail the
        turn with `InferenceUnavailable`. A reply that no longer fits the
        store fails the turn with `StorageExhausted`.
        """
        try:
            prompt = self.build_prompt(conversation_id)
            reply = await self.gateway.infer(prompt)
            outcome = TurnOutcome.success(reply)
        except NotFound:
            logger.info("Conversation %s disappeared before inference", conversation_id)
            return None
        except (InferenceUnavailable, InferenceMalformedResponse) as e:
            logger.warning("Turn %s/%d failed: %s", conversation_id, message_id, e.detail)
            outcome = TurnOutcome.failure(error_code_for(e))
        except Exception:
            logger.exception("Turn %s/%d failed unexpectedly", conversation_id, message_id)
            outcome = TurnOutcome.failure(ErrorCode.INFERENCE_UNAVAILABLE)

        return self._store_outcome(conversation_id, message_id, outcome)

    def _store_outcome(self, conversation_id: str, message_id: int, outcome: TurnOutcome) -> Optional[Message]:
        try:
            return self.resolve_turn(conversation_id, message_id, outcome)
        except NotFound:
            logger.info("Conversation %s deleted while turn %d was in flight", conversation_id, message_id)
            return None
        except StorageExhausted as e:
            if not outcome.ok:
                logger.error("Turn %s/%d could not be marked failed: %s", conversation_id, message_id, e.detail)
                return None
            logger.error("Reply to turn %s/%d could not be stored: %s", conversation_id, message_id, e.detail)
        except CoachError as e:
            logger.error("Turn %s/%d could not be resolved: %s", conversation_id, message_id, e.detail)
            return None
        return self._store_outcome(conversation_id, message_id, TurnOutcome.failure(ErrorCode.STORAGE_EXHAUSTED))

    @transactional
    def poll_turn(self, identity: str, conversation_id: str, message_id: int, session=None) -> Message:
        """Return the current state of a message of the caller's conversation."""
        return self.message_dao.fetchMessageById(session, identity, conversation_id, message_id)

    @transactional
    def turn_state(self, identity: str, conversation_id: str, session=None) -> TurnState:
        """AssistantPending while a turn is in flight, Idle otherwise."""
        conversation = self.conversation_dao.authorize(session, identity, conversation_id)
        if conversation.pending_message_id is not None:
            return TurnState.ASSISTANT_PENDING
        return TurnState.IDLE

    @transactional
    def fail_interrupted_turns(self, session=None) -> int:
        """
        Fail every turn still pending, e.g. after a restart killed the
        inference calls that were in flight. Returns the number of turns failed.
        """
        failed = 0
        for conversation in self.conversation_dao.fetchAllConversations(session, self.system_identity):
            if conversation.pending_message_id is None:
                continue
            self.message_dao.updateStatus(
                session, self.system_identity, conversation.id, conversation.pending_message_id,
                MessageStatus.FAILED, error_code=ErrorCode.TURN_INTERRUPTED,
            )
            failed += 1
        if failed:
            logger.warning("Failed %d turns interrupted by a restart", failed)
        return failed
