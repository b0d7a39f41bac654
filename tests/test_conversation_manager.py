import asyncio

import httpx
import openai
import pytest

from coach_backend.database.core.conversation_manager import TurnOutcome, TurnState
from coach_backend.database.core.errors import Conflict, Forbidden, NotFound, SnapshotCorrupt
from coach_backend.database.entities.conversations import DEFAULT_TITLE
from coach_backend.database.entities.messages import ErrorCode, Message, MessageStatus, Role
from coach_backend.database.helpers.transactionManagement import transactional


def connection_error():
    return openai.APIConnectionError(request=httpx.Request("POST", "https://llm.test/v1/chat/completions"))


@transactional
def messages_of(manager, identity, conversation_id, session=None):
    return manager.message_dao.fetchMessagesByConversationId(session, identity, conversation_id)


@transactional
def conversation_of(manager, identity, conversation_id, session=None):
    return manager.conversation_dao.fetchConversationById(session, identity, conversation_id)


@transactional
def delete_conversation(manager, identity, conversation_id, session=None):
    return manager.conversation_dao.deleteConversation(session, identity, conversation_id)


def test_submit_creates_conversation_with_pending_reply(make_manager):
    manager, model = make_manager()

    handle = manager.submit_user_turn("alice", None, "How do I negotiate a raise?")

    messages = messages_of(manager, "alice", handle.conversation_id)
    assert [(m.id, m.role, m.status) for m in messages] == [
        (1, Role.USER, MessageStatus.RESOLVED),
        (2, Role.ASSISTANT, MessageStatus.PENDING),
    ]
    assert (handle.user_message_id, handle.pending_message_id) == (1, 2)
    assert conversation_of(manager, "alice", handle.conversation_id).title == "How do I negotiate a raise?"
    assert manager.turn_state("alice", handle.conversation_id) == TurnState.ASSISTANT_PENDING
    assert model.prompts == []


def test_empty_text_is_rejected(make_manager):
    manager, _ = make_manager()
    with pytest.raises(ValueError):
        manager.submit_user_turn("alice", None, "   ")


def test_second_submit_while_pending_conflicts_and_writes_nothing(make_manager):
    manager, _ = make_manager()
    handle = manager.submit_user_turn("alice", None, "first")
    before = conversation_of(manager, "alice", handle.conversation_id)

    with pytest.raises(Conflict):
        manager.submit_user_turn("alice", handle.conversation_id, "second")

    assert len(messages_of(manager, "alice", handle.conversation_id)) == 2
    assert conversation_of(manager, "alice", handle.conversation_id) == before


def test_submit_to_foreign_or_unknown_conversation(make_manager):
    manager, _ = make_manager()
    handle = manager.submit_user_turn("alice", None, "hello")

    with pytest.raises(Forbidden):
        manager.submit_user_turn("mallory", handle.conversation_id, "hi")
    with pytest.raises(NotFound):
        manager.submit_user_turn("alice", "missing", "hi")


def test_successful_turn(make_manager):
    manager, model = make_manager("Start with market data from Levels.fyi.")
    handle = manager.submit_user_turn("alice", None, "How do I negotiate a raise?")

    message = asyncio.run(manager.complete_turn(handle.conversation_id, handle.pending_message_id))

    assert message.status == MessageStatus.RESOLVED
    assert message.content == "Start with market data from Levels.fyi."
    assert "User: How do I negotiate a raise?" in model.prompts[0]
    assert manager.turn_state("alice", handle.conversation_id) == TurnState.IDLE
    assert manager.poll_turn("alice", handle.conversation_id, handle.pending_message_id) == message


def test_retries_exhausted_fails_turn_and_allows_resubmit(make_manager, recording_sleep):
    manager, model = make_manager(connection_error(), connection_error(), connection_error(), max_retries=2)
    handle = manager.submit_user_turn("alice", None, "Review my resume")

    failed = asyncio.run(manager.complete_turn(handle.conversation_id, handle.pending_message_id))

    assert failed.status == MessageStatus.FAILED
    assert failed.error_code == ErrorCode.INFERENCE_UNAVAILABLE
    assert len(model.prompts) == 3
    assert recording_sleep.delays == [0.1, 0.2]

    retry = manager.submit_user_turn("alice", handle.conversation_id, "Review my resume")
    assert retry.user_message_id == 3
    assert retry.pending_message_id == 4


def test_timeout_fails_turn_with_timeout_code(make_manager):
    manager, _ = make_manager(0.5, max_retries=0, timeout_ms=20)
    handle = manager.submit_user_turn("alice", None, "hello")

    failed = asyncio.run(manager.complete_turn(handle.conversation_id, handle.pending_message_id))

    assert failed.error_code == ErrorCode.INFERENCE_TIMEOUT


def test_malformed_reply_fails_turn(make_manager):
    manager, model = make_manager("   ")
    handle = manager.submit_user_turn("alice", None, "hello")

    failed = asyncio.run(manager.complete_turn(handle.conversation_id, handle.pending_message_id))

    assert failed.error_code == ErrorCode.INFERENCE_MALFORMED_RESPONSE
    assert len(model.prompts) == 1


def test_failed_turns_are_left_out_of_later_prompts(make_manager):
    manager, model = make_manager(connection_error(), "Here is a plan.", max_retries=0)
    first = manager.submit_user_turn("alice", None, "first question")
    asyncio.run(manager.complete_turn(first.conversation_id, first.pending_message_id))

    second = manager.submit_user_turn("alice", first.conversation_id, "second question")
    asyncio.run(manager.complete_turn(second.conversation_id, second.pending_message_id))

    prompt = model.prompts[-1]
    assert prompt.count("User: ") == 2
    assert "Assistant: " not in prompt


def test_resolving_twice_conflicts(make_manager):
    manager, _ = make_manager()
    handle = manager.submit_user_turn("alice", None, "hello")
    manager.resolve_turn(handle.conversation_id, handle.pending_message_id, TurnOutcome.success("hi"))

    with pytest.raises(Conflict):
        manager.resolve_turn(
            handle.conversation_id, handle.pending_message_id, TurnOutcome.failure(ErrorCode.INFERENCE_TIMEOUT)
        )


def test_resolution_advances_updated_at(make_manager):
    manager, _ = make_manager()
    handle = manager.submit_user_turn("alice", None, "hello")
    submitted = conversation_of(manager, "alice", handle.conversation_id).updated_at

    manager.resolve_turn(handle.conversation_id, handle.pending_message_id, TurnOutcome.success("hi"))

    assert conversation_of(manager, "alice", handle.conversation_id).updated_at >= submitted


def test_conversation_deleted_during_inference(make_manager):
    manager, _ = make_manager()
    handle = manager.submit_user_turn("alice", None, "hello")

    async def delete_then_reply(prompt):
        delete_conversation(manager, "alice", handle.conversation_id)
        return "late reply"

    manager.gateway.infer = delete_then_reply

    assert asyncio.run(manager.complete_turn(handle.conversation_id, handle.pending_message_id)) is None


def test_fail_interrupted_turns(make_manager):
    manager, _ = make_manager()
    pending = manager.submit_user_turn("alice", None, "hello")
    done = manager.submit_user_turn("bob", None, "hi")
    manager.resolve_turn(done.conversation_id, done.pending_message_id, TurnOutcome.success("hey"))

    assert manager.fail_interrupted_turns() == 1

    message = manager.poll_turn("alice", pending.conversation_id, pending.pending_message_id)
    assert message.status == MessageStatus.FAILED
    assert message.error_code == ErrorCode.TURN_INTERRUPTED
    assert manager.turn_state("alice", pending.conversation_id) == TurnState.IDLE
    assert manager.fail_interrupted_turns() == 0


def test_explicit_conversation_gets_title_from_first_message(make_manager):
    manager, _ = make_manager()
    conversation = manager.create_conversation("alice")
    assert conversation.title == DEFAULT_TITLE

    manager.submit_user_turn("alice", conversation.id, "Preparing for a system design interview")

    assert conversation_of(manager, "alice", conversation.id).title == "Preparing for a system design interview"


def test_turn_state_of_messages():
    pending = Message(conversation_id="c", role=Role.ASSISTANT, status=MessageStatus.PENDING)
    failed = pending.model_copy(update={"status": MessageStatus.FAILED})
    resolved = pending.model_copy(update={"status": MessageStatus.RESOLVED})

    assert TurnState.of(pending) == TurnState.ASSISTANT_PENDING
    assert TurnState.of(failed) == TurnState.ASSISTANT_FAILED
    assert TurnState.of(resolved) == TurnState.ASSISTANT_RESOLVED


@transactional
def store_usage(store, session=None):
    return store.usage(session)


def test_unexpected_inference_error_fails_turn_and_allows_resubmit(make_manager):
    manager, _ = make_manager(RuntimeError("content filter"), "Second attempt works.")
    handle = manager.submit_user_turn("alice", None, "Rewrite my cover letter")

    failed = asyncio.run(manager.complete_turn(handle.conversation_id, handle.pending_message_id))

    assert failed.status == MessageStatus.FAILED
    assert failed.error_code == ErrorCode.INFERENCE_UNAVAILABLE
    assert manager.turn_state("alice", handle.conversation_id) == TurnState.IDLE

    retry = manager.submit_user_turn("alice", handle.conversation_id, "Rewrite my cover letter")
    message = asyncio.run(manager.complete_turn(retry.conversation_id, retry.pending_message_id))
    assert message.content == "Second attempt works."


def test_reply_that_does_not_fit_the_store_fails_turn(make_manager, store):
    manager, _ = make_manager("x" * 5000)
    handle = manager.submit_user_turn("alice", None, "Summarize my experience")
    _, used = store_usage(store)
    store.max_bytes = used + 100

    failed = asyncio.run(manager.complete_turn(handle.conversation_id, handle.pending_message_id))

    assert failed.status == MessageStatus.FAILED
    assert failed.error_code == ErrorCode.STORAGE_EXHAUSTED
    assert manager.turn_state("alice", handle.conversation_id) == TurnState.IDLE


def test_blocked_store_during_completion_is_logged_not_raised(make_manager, store):
    manager, model = make_manager()
    handle = manager.submit_user_turn("alice", None, "hello")
    store.block(SnapshotCorrupt("rehydration failed"))

    assert asyncio.run(manager.complete_turn(handle.conversation_id, handle.pending_message_id)) is None
    assert model.prompts == []

    store.unblock()
    message = manager.poll_turn("alice", handle.conversation_id, handle.pending_message_id)
    assert message.status == MessageStatus.PENDING
