import asyncio

import pytest
from langchain_core.messages import AIMessage
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from coach_backend.api.inference_gateway import InferenceGateway
from coach_backend.database.config.connection_engine import SessionFactory, connection_engine, init_schema
from coach_backend.database.core.conversation_manager import ConversationManager
from coach_backend.database.daos.conversation_dao import ConversationDao
from coach_backend.database.daos.entity_store import EntityStore, entity_store
from coach_backend.database.daos.user_message_dao import UserMessagesDao


@pytest.fixture(autouse=True)
def engine():
    """Fresh in-memory database for every test, bound to the shared SessionFactory."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_schema(engine)
    SessionFactory.configure(bind=engine)
    entity_store.unblock()
    yield engine
    entity_store.unblock()
    SessionFactory.configure(bind=connection_engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with SessionFactory() as session:
        yield session
        session.rollback()


@pytest.fixture
def store():
    return EntityStore()


@pytest.fixture
def conversation_dao(store):
    return ConversationDao(store=store, system_identity="system")


@pytest.fixture
def message_dao(conversation_dao):
    return UserMessagesDao(conversation_dao=conversation_dao)


class FakeChatModel:
    """
    Scripted stand-in for a LangChain chat model.

    Each `ainvoke` consumes the next script item: an exception instance is
    raised, a float is slept (seconds, for timeouts), anything else is
    returned as the reply content.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.prompts = []

    async def ainvoke(self, prompt):
        self.prompts.append(prompt)
        item = self.script.pop(0) if self.script else "Happy to help."
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, float):
            await asyncio.sleep(item)
            return AIMessage(content="too late")
        return AIMessage(content=item)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_manager(conversation_dao, message_dao, recording_sleep):
    """Build a manager over the test store whose gateway answers from `script`."""

    def _make(*script, max_retries=2, timeout_ms=1000, backoff_ms=100):
        model = FakeChatModel(*script)
        gateway = InferenceGateway(
            model=model,
            timeout_ms=timeout_ms,
            max_retries=max_retries,
            backoff_ms=backoff_ms,
            sleep=recording_sleep,
        )
        manager = ConversationManager(conversation_dao=conversation_dao, message_dao=message_dao, gateway=gateway)
        return manager, model

    return _make
