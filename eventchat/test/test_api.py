import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from eventchat.agents.notification_agent.email_sender import SendResult
from eventchat.api.dependencies import get_dialog_engine, get_email_sender
from eventchat.api.main import app
from eventchat.schemas.dialog_schema import IntentExtraction
from eventchat.schemas.event_schema import EventCandidate
from eventchat.test.fakes import FakeExtraction, FakeSearch


class RecordingSender:
    def __init__(self):
        self.sent = []

    async def send(self, recipient, template, data):
        self.sent.append((recipient, template))
        return SendResult(success=True)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def client(mongo_db, monkeypatch, sender):
    # No `with`: the lifespan (real MongoDB, reminder loop) stays off.
    monkeypatch.setattr("eventchat.utils.db.db", mongo_db)
    app.dependency_overrides[get_email_sender] = lambda: sender
    yield TestClient(app)
    app.dependency_overrides.clear()


def signup(client, username="ada"):
    response = client.post("/api/auth/register", json={
        "username": username, "name": username.title(), "email": f"{username}@example.com",
        "password": "s3cret-pass",
    })
    assert response.status_code == 201
    token = client.post("/api/auth/token", data={"username": username, "password": "s3cret-pass"})
    assert token.status_code == 200
    return {"Authorization": f"Bearer {token.json()['access_token']}"}


@pytest.fixture
def headers(client):
    return signup(client)


def use_engine(make_engine, extraction=None, search=None):
    engine = make_engine(extraction or FakeExtraction(), search or FakeSearch())
    app.dependency_overrides[get_dialog_engine] = lambda: engine
    return engine


# --- auth ---

def test_register_login_and_me(client, headers):
    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["username"] == "ada"

    duplicate = client.post("/api/auth/register", json={
        "username": "ada", "name": "Ada", "email": "other@example.com", "password": "x"})
    assert duplicate.status_code == 409

    wrong = client.post("/api/auth/token", data={"username": "ada", "password": "nope"})
    assert wrong.status_code == 401
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_delete_account_removes_user_and_data(client, headers):
    created = client.post("/api/events", json={"title": "Picnic"}, headers=headers)
    assert created.status_code == 201
    response = client.delete("/api/auth/me", headers=headers)
    assert response.status_code == 200
    assert client.get("/api/auth/me", headers=headers).status_code == 401


# --- chat ---

def test_empty_message_is_rejected(client, headers, make_engine):
    use_engine(make_engine)
    response = client.post("/api/chat", json={"message": "   "}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Message is required"


def test_chat_turn_returns_camel_case_and_is_listed_in_history(client, headers, make_engine):
    use_engine(make_engine)
    response = client.post("/api/chat", json={"message": "hello"}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert set(body) >= {"reply", "sessionId", "suggestions", "refreshEvents", "eventData"}
    assert body["suggestions"]

    listed = client.get("/api/chat/history", headers=headers).json()
    assert [c["sessionId"] for c in listed] == [body["sessionId"]]
    assert listed[0]["messageCount"] == 2

    detail = client.get(f"/api/chat/history/{body['sessionId']}", headers=headers).json()
    assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]
    assert client.get("/api/chat/history/unknown", headers=headers).status_code == 404


def test_registration_email_is_sent_after_the_reply(client, headers, make_engine, sender):
    extraction = FakeExtraction(intents={
        "find python events": IntentExtraction(intent="discovery"),
        "register me for 1": IntentExtraction(intent="registration"),
    })
    search = FakeSearch(events=[EventCandidate(title="PyCon India 2025", link="https://in.pycon.org/2025")])
    use_engine(make_engine, extraction, search)

    found = client.post("/api/chat", json={"message": "find python events"}, headers=headers).json()
    assert found["refreshEvents"] is True
    registered = client.post("/api/chat", json={"message": "register me for 1", "sessionId": found["sessionId"]},
                             headers=headers).json()
    assert "You're registered" in registered["reply"]
    assert registered["eventData"]["registrationId"]
    assert sender.sent == [("ada@example.com", "registration")]


def test_manual_history_save_rules(client, headers):
    missing = client.post("/api/chat/history", json={"messages": []}, headers=headers)
    assert missing.status_code == 400
    assert missing.json()["detail"] == "sessionId is required"

    saved = client.post("/api/chat/history", json={
        "sessionId": "s-1", "messages": [{"role": "user", "content": "hi"}]}, headers=headers)
    assert saved.status_code == 200
    assert saved.json()["messages"][0]["content"] == "hi"

    other = signup(client, "bob")
    taken = client.post("/api/chat/history", json={"sessionId": "s-1", "messages": []}, headers=other)
    assert taken.status_code == 403

    assert client.delete("/api/chat/history/s-1", headers=headers).status_code == 200
    assert client.delete("/api/chat/history/s-1", headers=headers).status_code == 404


# --- events ---

def test_create_list_and_filter_events(client, headers):
    created = client.post("/api/events", json={
        "title": "Board Game Night", "startDate": "2030-05-10T18:00:00", "location": "TBD",
        "source": "discovered"}, headers=headers)
    assert created.status_code == 201
    event = created.json()
    assert event["source"] == "user_created"
    assert event["startDate"].startswith("2030-05-10T18:00")
    assert event["location"] is None

    mine = client.get("/api/events", params={"filter": "created"}, headers=headers).json()
    assert [e["title"] for e in mine] == ["Board Game Night"]
    assert mine[0]["isRegistered"] is False
    assert client.get("/api/events", params={"filter": "discovery"}, headers=headers).json() == []

    assert client.get("/api/events", params={"filter": "bogus"}, headers=headers).status_code == 400
    assert client.get("/api/events", params={"sort": "bogus"}, headers=headers).status_code == 400
    assert client.get("/api/events/stats", headers=headers).json()["created"] == 1


def test_remind_later_is_idempotent(client, headers, sender):
    event_id = client.post("/api/events", json={"title": "Picnic"}, headers=headers).json()["id"]

    first = client.post(f"/api/events/{event_id}/remind-later", headers=headers).json()
    assert first["message"] == "We'll remind you in 24 hours"
    second = client.post(f"/api/events/{event_id}/remind-later", headers=headers).json()
    assert second == {"success": True, "message": "Reminder already set"}
    assert sender.sent == [("ada@example.com", "remind_later")]

    assert client.get(f"/api/events/{event_id}", headers=headers).json()["hasReminder"] is True
    later = client.get("/api/events", params={"filter": "remind_later"}, headers=headers).json()
    assert [e["id"] for e in later] == [event_id]


def test_only_the_owner_changes_an_event(client, headers):
    event_id = client.post("/api/events", json={"title": "Picnic"}, headers=headers).json()["id"]
    other = signup(client, "bob")

    assert client.put(f"/api/events/{event_id}", json={"title": "Mine now"}, headers=other).status_code == 403
    assert client.delete(f"/api/events/{event_id}", headers=other).status_code == 403
    assert client.delete(f"/api/events/{ObjectId()}", headers=headers).status_code == 404

    saved = client.post(f"/api/events/{event_id}/save", headers=other)
    assert saved.status_code == 200
    assert saved.json()["source"] == "discovered"

    taken = client.post("/api/events", json={"title": "Big Picnic"}, headers=headers).json()["id"]
    clash = client.put(f"/api/events/{taken}", json={"title": "Picnic"}, headers=headers)
    assert clash.status_code == 409
    client.delete(f"/api/events/{taken}", headers=headers)

    renamed = client.put(f"/api/events/{event_id}", json={"title": "Big Picnic"}, headers=headers)
    assert renamed.json()["title"] == "Big Picnic"
    assert client.delete(f"/api/events/{event_id}", headers=headers).json() == {"deleted": True}
