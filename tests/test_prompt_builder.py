import pytest

from coach_backend.api.prompt_builder import (
    MESSAGE_SEPARATOR,
    PromptBuilder,
    num_tokens,
    render_message,
    render_profile,
    role_label,
)
from coach_backend.database.daos.user_dao import UserDao
from coach_backend.database.entities.conversations import Conversation
from coach_backend.database.entities.messages import ErrorCode, Message, MessageStatus, Role
from coach_backend.database.entities.users import User


def make_history(*texts):
    roles = [Role.USER, Role.ASSISTANT]
    return [
        Message(id=i + 1, conversation_id="c1", role=roles[i % 2], content=text)
        for i, text in enumerate(texts)
    ]


def test_small_history_is_kept_entirely_after_preamble():
    builder = PromptBuilder(budget=1000, unit="characters", preamble="PREAMBLE")

    prompt = builder.assemble(make_history("Hi", "Hello, how can I help?"))

    assert prompt == MESSAGE_SEPARATOR.join(["PREAMBLE", "User: Hi", "Assistant: Hello, how can I help?"])


def test_oldest_messages_are_dropped_first():
    history = make_history("a" * 10, "b" * 10, "c" * 10, "d" * 10)
    last_two = len(render_message(history[2])) + len(render_message(history[3])) + len(MESSAGE_SEPARATOR)
    builder = PromptBuilder(budget=last_two, unit="characters", preamble="P")

    kept = builder.select_history(history)

    assert [m.id for m in kept] == [3, 4]


def test_most_recent_message_wins_when_budget_is_tight():
    history = make_history("short", "x" * 500)
    builder = PromptBuilder(budget=len(render_message(history[1])), unit="characters", preamble="P")

    assert [m.id for m in builder.select_history(history)] == [2]


def test_walk_stops_at_first_message_that_does_not_fit():
    # the large middle message blocks the small older one even though it would fit
    history = make_history("tiny", "y" * 300, "recent")
    builder = PromptBuilder(budget=50, unit="characters", preamble="P")

    assert [m.id for m in builder.select_history(history)] == [3]


def test_only_resolved_messages_are_used():
    history = make_history("question", "ignored")
    history[1].status = MessageStatus.FAILED
    history[1].error_code = ErrorCode.INFERENCE_TIMEOUT
    history.append(Message(id=3, conversation_id="c1", role=Role.ASSISTANT, status=MessageStatus.PENDING))
    builder = PromptBuilder(budget=1000, unit="characters", preamble="P")

    assert builder.assemble(history) == "P" + MESSAGE_SEPARATOR + "User: question"


def test_output_is_deterministic_and_order_independent():
    history = make_history("one", "two", "three")
    builder = PromptBuilder(budget=30, unit="characters", preamble="P")

    assert builder.assemble(history) == builder.assemble(list(reversed(history)))


def test_budget_excludes_preamble():
    builder = PromptBuilder(budget=0, unit="characters", preamble="A long preamble that is always present")

    assert builder.assemble(make_history("hello")) == "A long preamble that is always present"


def test_token_unit_selects_token_counter():
    assert PromptBuilder(budget=1000, unit="tokens", preamble="P").counter is num_tokens
    assert PromptBuilder(budget=1000, unit="characters", preamble="P").counter is len


def test_custom_counter_overrides_unit():
    builder = PromptBuilder(budget=2, unit="tokens", preamble="P", counter=lambda text: 1)

    assert len(builder.select_history(make_history("a", "b", "c"))) == 1


def test_role_labels():
    assert role_label(Role.USER) == "User"
    assert role_label(Role.ASSISTANT) == "Assistant"
    assert role_label(Role.SYSTEM) == "System"
    with pytest.raises(ValueError):
        role_label("moderator")


def test_build_reads_conversation_history(session, conversation_dao, message_dao):
    conversation = conversation_dao.createConversation(session, Conversation(owner="alice"))
    message_dao.appendMessage(
        session, "alice", conversation.id, Message(conversation_id=conversation.id, role=Role.USER, content="Hi")
    )
    builder = PromptBuilder(budget=100, unit="characters", preamble="P", message_dao=message_dao)

    assert builder.build(session, conversation.id) == "P" + MESSAGE_SEPARATOR + "User: Hi"


def test_profile_follows_preamble_when_it_fits():
    profile = User(identity="alice", fullname="Alice", resume="Data analyst")
    builder = PromptBuilder(budget=1000, unit="characters", preamble="P")

    prompt = builder.assemble(make_history("Hi"), profile=profile)

    assert prompt == MESSAGE_SEPARATOR.join(["P", render_profile(profile), "User: Hi"])


def test_history_wins_over_profile():
    profile = User(identity="alice", fullname="Alice", resume="r" * 200)
    history = make_history("Hi")
    builder = PromptBuilder(budget=len(render_message(history[0])) + 10, unit="characters", preamble="P")

    assert builder.assemble(history, profile=profile) == "P" + MESSAGE_SEPARATOR + "User: Hi"


def test_build_includes_owner_profile(session, conversation_dao, message_dao, store):
    UserDao(store=store).registerUser(session, User(identity="alice", fullname="Alice", resume="Nurse, 10 years"))
    conversation = conversation_dao.createConversation(session, Conversation(owner="alice"))
    message_dao.appendMessage(
        session, "alice", conversation.id, Message(conversation_id=conversation.id, role=Role.USER, content="Hi")
    )
    builder = PromptBuilder(budget=1000, unit="characters", preamble="P", message_dao=message_dao)

    prompt = builder.build(session, conversation.id)

    assert "About the user: Alice" in prompt
    assert "Resume:\nNurse, 10 years" in prompt
    assert prompt.endswith("User: Hi")
