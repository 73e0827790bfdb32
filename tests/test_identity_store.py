"""Tests for the file-backed identity store."""
import json

import pytest

from chat_relay.auth.identity_store import IdentityStore
from chat_relay.errors import InvalidCredentials, UsernameTaken, ValidationError


@pytest.fixture
def store(tmp_path):
    # low cost factor keeps the tests fast
    return IdentityStore(tmp_path / "users.json", bcrypt_rounds=4)


def test_create_and_verify_user(store):
    created = store.create_user("alice", "s3cret", "alice@example.com")
    assert created.username == "alice"
    assert created.email == "alice@example.com"
    assert "password_hash" not in created.model_dump()

    verified = store.verify_user("alice", "s3cret")
    assert verified.id == created.id


def test_username_must_be_unique(store):
    store.create_user("alice", "one")
    with pytest.raises(UsernameTaken):
        store.create_user("alice", "two")
    assert len(store) == 1


def test_wrong_password_and_unknown_user(store):
    store.create_user("alice", "s3cret")
    with pytest.raises(InvalidCredentials):
        store.verify_user("alice", "wrong")
    with pytest.raises(InvalidCredentials):
        store.verify_user("nobody", "s3cret")


@pytest.mark.parametrize("username,password", [("", "pw"), ("alice", ""), ("", "")])
def test_missing_fields(store, username, password):
    with pytest.raises(ValidationError):
        store.create_user(username, password)
    with pytest.raises(ValidationError):
        store.verify_user(username, password)


def test_users_persist_hashed(tmp_path):
    path = tmp_path / "users.json"
    store = IdentityStore(path, bcrypt_rounds=4)
    created = store.create_user("bob", "hunter2")

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw[0]["username"] == "bob"
    assert raw[0]["password_hash"] != "hunter2"

    reopened = IdentityStore(path, bcrypt_rounds=4)
    assert reopened.verify_user("bob", "hunter2").id == created.id
    assert reopened.get_user(created.id).username == "bob"
    assert reopened.get_user("missing") is None
