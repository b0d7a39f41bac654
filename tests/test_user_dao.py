import pytest

from coach_backend.database.core.errors import Conflict, NotFound
from coach_backend.database.daos.user_dao import UserDao
from coach_backend.database.entities import keys
from coach_backend.database.entities.users import User


@pytest.fixture
def user_dao(store):
    return UserDao(store=store)


def test_register_then_fetch(session, user_dao):
    user_dao.registerUser(session, User(identity="alice", fullname="Alice Martin", resume="Backend engineer, 6 years"))

    user = user_dao.fetchUser(session, "alice")

    assert user.fullname == "Alice Martin"
    assert user.resume == "Backend engineer, 6 years"


def test_registering_twice_conflicts(session, user_dao):
    user_dao.registerUser(session, User(identity="alice", fullname="Alice"))

    with pytest.raises(Conflict):
        user_dao.registerUser(session, User(identity="alice", fullname="Someone else"))

    assert user_dao.fetchUser(session, "alice").fullname == "Alice"


def test_unregistered_identity(session, user_dao):
    assert user_dao.findUser(session, "nobody") is None
    with pytest.raises(NotFound):
        user_dao.fetchUser(session, "nobody")
    with pytest.raises(NotFound):
        user_dao.updateUser(session, "nobody", resume="x")


def test_update_changes_only_given_fields(session, user_dao):
    registered = user_dao.registerUser(session, User(identity="alice", fullname="Alice", resume="old"))

    updated = user_dao.updateUser(session, "alice", resume="Staff engineer")

    assert updated.fullname == "Alice"
    assert updated.resume == "Staff engineer"
    assert updated.updated_at >= registered.updated_at
    assert user_dao.fetchUser(session, "alice") == updated


def test_profile_key_does_not_leak_into_conversation_scans(session, user_dao, store):
    user_dao.registerUser(session, User(identity="bob:ops", fullname="Bob"))

    assert [key for key, _ in store.scan_prefix(session, f"{keys.CONVERSATION}:")] == []
    assert [key for key, _ in store.scan_prefix(session, f"{keys.USER}:")] == [keys.user_key("bob:ops")]
