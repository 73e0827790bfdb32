"""End-to-end tests of the HTTP and WebSocket surface."""
import pytest
from fastapi.testclient import TestClient

from chat_relay.config import RelayConfig
from chat_relay.standalone import create_app


@pytest.fixture
def config(tmp_path):
    return RelayConfig(
        jwt_secret="http-test-secret",
        delivery_delay=0.05,
        heartbeat_interval=3600,
        data_dir=tmp_path,
    )


@pytest.fixture
def client(config):
    app = create_app(config)
    app.state.hub.identity_store.bcrypt_rounds = 4
    with TestClient(app) as c:
        yield c


def _register(client, username="alice", password="s3cret"):
    response = client.post("/api/register", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["token"]


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_register_and_login(client):
    response = client.post("/api/register", json={"username": "alice", "password": "s3cret", "email": "a@x.io"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["username"] == "alice"
    assert body["user"]["email"] == "a@x.io"
    assert "password_hash" not in body["user"]
    assert body["token"]

    login = client.post("/api/login", json={"username": "alice", "password": "s3cret"})
    assert login.status_code == 200
    assert login.json()["user"]["id"] == body["user"]["id"]


def test_register_errors(client):
    _register(client)
    assert client.post("/api/register", json={"username": "alice", "password": "x"}).status_code == 409
    missing = client.post("/api/register", json={"username": "bob"})
    assert missing.status_code == 400
    assert missing.json() == {"error": "username and password required"}


def test_login_errors(client):
    _register(client)
    wrong = client.post("/api/login", json={"username": "alice", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "invalid credentials"}
    assert client.post("/api/login", json={}).status_code == 400


def test_messages_require_token(client):
    missing = client.get("/api/messages")
    assert missing.status_code == 401
    assert missing.json() == {"error": "Missing token"}

    invalid = client.get("/api/messages", headers=_auth("garbage"))
    assert invalid.status_code == 401
    assert invalid.json() == {"error": "Invalid token"}


def test_post_and_read_messages(client):
    token = _register(client)
    response = client.post("/api/messages", json={"content": "hi", "isAnonymous": False}, headers=_auth(token))
    assert response.status_code == 200
    message = response.json()["message"]
    assert message["sender_name"] == "alice"
    assert message["delivered"] is False
    assert message["user_id"]

    listed = client.get("/api/messages", headers=_auth(token)).json()
    assert [m["id"] for m in listed] == [message["id"]]


def test_post_validation_and_auth(client):
    token = _register(client)
    assert client.post("/api/messages", json={"content": ""}, headers=_auth(token)).status_code == 400
    assert client.post("/api/messages", json={"content": 5}, headers=_auth(token)).status_code == 400
    assert client.post("/api/messages", json={"content": "hi"}).status_code == 401
    assert client.post("/api/messages", json={"content": "hi", "isAnonymous": True},
                       headers=_auth("garbage")).status_code == 401


def test_malformed_bodies_are_rejected_with_400(client):
    null_username = client.post("/api/register", json={"username": None, "password": "x"})
    assert null_username.status_code == 400
    assert null_username.json() == {"error": "username and password required"}

    numeric_username = client.post("/api/login", json={"username": 5, "password": "x"})
    assert numeric_username.status_code == 400
    assert numeric_username.json() == {"error": "invalid request: username"}

    token = _register(client)
    bad_flag = client.post("/api/messages", json={"content": "hi", "isAnonymous": "maybe"}, headers=_auth(token))
    assert bad_flag.status_code == 400
    assert bad_flag.json() == {"error": "invalid request: isAnonymous"}


def test_anonymous_post_without_login(client):
    response = client.post("/api/messages", json={"content": "psst", "isAnonymous": True})
    assert response.status_code == 200
    message = response.json()["message"]
    assert message["sender_name"] == "Anonymous"
    assert message["user_id"] is None


def test_websocket_ping_pong(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_text("{not json")
        assert ws.receive_json()["error_type"] == "InvalidJSON"

        ws.send_bytes(b"\x00\x01")
        assert ws.receive_json()["error_type"] == "InvalidJSON"

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_websocket_receives_message_and_delivery(client):
    token = _register(client)
    with client.websocket_connect(f"/ws?token={token}") as ws:
        posted = client.post("/api/messages", json={"content": "hi", "isAnonymous": False},
                             headers=_auth(token)).json()["message"]

        new_message = ws.receive_json()
        assert new_message["type"] == "new_message"
        assert new_message["message"]["id"] == posted["id"]
        assert new_message["message"]["sender_name"] == "alice"

        delivered = ws.receive_json()
        assert delivered == {"type": "message_delivered", "id": posted["id"]}

    listed = client.get("/api/messages", headers=_auth(token)).json()
    assert listed[-1]["delivered"] is True


def test_stats_counts_authenticated_connections(client):
    token = _register(client)
    assert client.get("/api/stats").json() == {"online_users": 0}

    with client.websocket_connect(f"/ws?token={token}") as ws:
        with client.websocket_connect("/ws") as anon:
            with client.websocket_connect("/ws?token=bogus") as bogus:
                # round trips make sure all three are registered
                for sock in (ws, anon, bogus):
                    sock.send_json({"type": "ping"})
                    assert sock.receive_json() == {"type": "pong"}
                assert client.get("/api/stats").json() == {"online_users": 1}


def test_heartbeat_eviction_lowers_stats(client):
    token = _register(client)
    hub = client.app.state.hub
    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        assert client.get("/api/stats").json() == {"online_users": 1}

        client.portal.call(hub.heartbeat.sweep)
        assert ws.receive_json() == {"type": "ping"}
        assert client.get("/api/stats").json() == {"online_users": 0}

        ws.send_json({"type": "pong"})
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        assert client.get("/api/stats").json() == {"online_users": 1}

        client.portal.call(hub.heartbeat.sweep)
        assert ws.receive_json() == {"type": "ping"}
        client.portal.call(hub.heartbeat.sweep)
        assert len(hub.registry) == 0
        assert client.get("/api/stats").json() == {"online_users": 0}


def test_messages_persist_across_restart(config):
    with TestClient(create_app(config)) as first:
        token = _register(first)
        first.post("/api/messages", json={"content": "remember me"}, headers=_auth(token))

    with TestClient(create_app(config)) as second:
        login = second.post("/api/login", json={"username": "alice", "password": "s3cret"}).json()
        listed = second.get("/api/messages", headers=_auth(login["token"])).json()
        assert [m["content"] for m in listed] == ["remember me"]
