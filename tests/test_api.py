import pytest

from conftest import OWNER, classification
from recollect.core.runner import BackgroundLoop
from recollect_server.api import create_app

HEADERS = {"X-User-Id": OWNER}


@pytest.fixture
def app(services, monkeypatch):
    monkeypatch.delenv("RECOLLECT_API_KEY", raising=False)
    monkeypatch.delenv("RECOLLECT_USER_HEADER", raising=False)
    loop = BackgroundLoop(name="api-test-loop")
    app = create_app(services, loop=loop)
    app.config["TESTING"] = True
    yield app
    loop.stop()


@pytest.fixture
def client(app):
    return app.test_client()


def _new_thread(client, headers=HEADERS):
    response = client.post("/threads", json={}, headers=headers)
    assert response.status_code == 201
    return response.get_json()["thread"]


def test_health_is_public(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ok"
    assert body["database"]["database_type"] == "sqlite"


def test_requests_without_user_header_are_rejected(client):
    response = client.get("/threads")

    assert response.status_code == 401
    assert response.get_json()["status"] == "error"


def test_unknown_route_is_404(client):
    assert client.get("/nowhere").status_code == 404


def test_api_key_is_enforced_when_configured(services, monkeypatch):
    monkeypatch.setenv("RECOLLECT_API_KEY", "letmein")
    app = create_app(services, loop=BackgroundLoop())
    client = app.test_client()

    assert client.get("/threads", headers=HEADERS).status_code == 401
    allowed = client.get("/threads", headers={**HEADERS, "X-API-Key": "letmein"})
    assert allowed.status_code == 200
    assert client.get("/health").status_code == 200


def test_thread_lifecycle(client):
    missing = client.get("/threads/latest", headers=HEADERS)
    assert missing.status_code == 404

    created = _new_thread(client)
    assert created["title"] is None

    latest = client.get("/threads/latest", headers=HEADERS).get_json()["thread"]
    assert latest["id"] == created["id"]
    listed = client.get("/threads", headers=HEADERS).get_json()["threads"]
    assert [t["id"] for t in listed] == [created["id"]]

    other = client.get(f"/threads/{created['id']}", headers={"X-User-Id": "mallory"})
    assert other.status_code == 404

    deleted = client.delete(f"/threads/{created['id']}", headers=HEADERS)
    assert deleted.status_code == 200
    assert client.get(f"/threads/{created['id']}", headers=HEADERS).status_code == 404


def test_post_message_returns_reply_and_memory_outcome(client, classifier):
    classifier.default = classification("preference", summary="Prefers dark mode")
    thread = _new_thread(client)

    response = client.post(
        f"/threads/{thread['id']}/messages",
        json={"content": "I love dark mode", "wait_for_memory": True},
        headers=HEADERS,
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["assistant_message"]["content"] == "Noted!"
    assert body["memory_outcome"]["state"] == "persisted_thread"
    assert body["memory_outcome"]["memory"]["short_summary"] == "Prefers dark mode"

    messages = client.get(f"/threads/{thread['id']}/messages", headers=HEADERS)
    tagged = messages.get_json()["messages"][0]
    assert tagged["metadata"]["memoryScope"] == "thread"
    renamed = client.get(f"/threads/{thread['id']}", headers=HEADERS).get_json()
    assert renamed["thread"]["title"] == "I love dark mode"


def test_thread_title_comes_from_first_message(client):
    rejected = client.post("/threads", json={"title": "Travel"}, headers=HEADERS)
    assert rejected.status_code == 400
    assert client.get("/threads", headers=HEADERS).get_json()["threads"] == []

    thread = _new_thread(client)
    client.post(
        f"/threads/{thread['id']}/messages",
        json={"content": "Plan my trip to Kyoto", "wait_for_memory": True},
        headers=HEADERS,
    )
    client.post(
        f"/threads/{thread['id']}/messages",
        json={"content": "Add a day in Nara", "wait_for_memory": True},
        headers=HEADERS,
    )

    titled = client.get(f"/threads/{thread['id']}", headers=HEADERS).get_json()["thread"]
    assert titled["title"] == "Plan my trip to Kyoto"


def test_post_message_validates_body(client):
    thread = _new_thread(client)

    empty = client.post(
        f"/threads/{thread['id']}/messages", json={"content": "  "}, headers=HEADERS
    )
    bad_flag = client.post(
        f"/threads/{thread['id']}/messages",
        json={"content": "hi", "wait_for_memory": "maybe"},
        headers=HEADERS,
    )

    assert empty.status_code == 400
    assert bad_flag.status_code == 400


def test_memory_routes(client, services):
    thread = _new_thread(client)
    memory = services.memory_store.create(
        OWNER,
        memory_type="preference",
        scope="global",
        content="I love dark mode",
        short_summary="User prefers dark mode",
        thread_id=thread["id"],
    )

    listed = client.get("/memories?scope=global", headers=HEADERS).get_json()
    assert [m["id"] for m in listed["memories"]] == [memory.id]

    patched = client.patch(
        f"/memories/{memory.id}",
        json={"short_summary": "User prefers dark UI"},
        headers=HEADERS,
    )
    assert patched.status_code == 200
    assert patched.get_json()["memory"]["short_summary"] == "User prefers dark UI"

    rejected = client.patch(
        f"/memories/{memory.id}", json={"scope": "thread"}, headers=HEADERS
    )
    assert rejected.status_code == 400

    hidden = client.get(f"/memories/{memory.id}", headers={"X-User-Id": "mallory"})
    assert hidden.status_code == 404

    assert client.delete(f"/memories/{memory.id}", headers=HEADERS).status_code == 200
    assert client.get(f"/memories/{memory.id}", headers=HEADERS).status_code == 404


def test_conflict_routes(client, services):
    thread = _new_thread(client)
    store = services.memory_store
    first = store.create(
        OWNER,
        memory_type="preference",
        scope="global",
        content="I love dark mode",
        short_summary="User prefers dark mode",
        thread_id=thread["id"],
    )
    second = store.create(
        OWNER,
        memory_type="preference",
        scope="global",
        content="I love bright colorful themes",
        short_summary="User prefers bright colorful themes",
        thread_id=thread["id"],
    )
    conflict = services.conflict_ledger.record(
        OWNER, second.id, first.id, "Conflicts with dark mode preference"
    )

    listed = client.get("/conflicts", headers=HEADERS).get_json()["conflicts"]
    assert [c["id"] for c in listed] == [conflict.id]
    for_memory = client.get(f"/memories/{first.id}/conflicts", headers=HEADERS)
    assert for_memory.get_json()["conflicts"][0]["memory_b_id"] == first.id

    resolved = client.post(
        f"/conflicts/{conflict.id}/resolve",
        json={"strategy": "keep_newest"},
        headers=HEADERS,
    )
    assert resolved.status_code == 200
    assert resolved.get_json()["conflict"]["resolved"] is True

    again = client.post(
        f"/conflicts/{conflict.id}/resolve",
        json={"strategy": "keep_oldest"},
        headers=HEADERS,
    )
    assert again.status_code == 400
    assert client.get("/conflicts", headers=HEADERS).get_json()["conflicts"] == []
    missing = client.get("/conflicts/nope", headers=HEADERS)
    assert missing.status_code == 404


def test_thread_delete_cascades_over_http(client, services):
    thread = _new_thread(client)
    services.memory_store.create(
        OWNER,
        memory_type="routine",
        scope="thread",
        content="I stand up every hour here",
        short_summary="Hourly breaks",
        thread_id=thread["id"],
    )

    response = client.delete(f"/threads/{thread['id']}", headers=HEADERS)

    assert response.get_json()["deleted_memories"] == 1
    remaining = client.get("/memories", headers=HEADERS).get_json()["memories"]
    assert remaining == []
