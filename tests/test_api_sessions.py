"""Tests for the session endpoints."""

from livekit import api

from app.models.session import GENERATED_SESSION_ID


def test_create_session(client):
    response = client.post("/api/sessions/create", json={"creatorIdentity": "alice"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert GENERATED_SESSION_ID.fullmatch(body["sessionId"])
    assert body["creatorIdentity"] == "alice"
    assert body["shareableLink"] == f"http://testserver?sessionId={body['sessionId']}"


def test_create_session_without_body(client):
    response = client.post("/api/sessions/create")

    assert response.status_code == 200
    assert response.json()["creatorIdentity"] is None


def test_first_joiner_becomes_creator(client, settings):
    alice = client.post("/api/sessions/ABCD1234/join", json={"identity": "alice"})
    bob = client.post("/api/sessions/ABCD1234/join", json={"identity": "bob"})

    assert alice.status_code == 200
    assert bob.status_code == 200
    body = bob.json()
    assert body["identity"] == "bob"
    assert body["roomName"] == "ABCD1234"
    assert body["sessionId"] == "ABCD1234"
    assert body["endpointUrl"] == settings.livekit.url

    verifier = api.TokenVerifier(settings.livekit.api_key, settings.livekit.api_secret)
    claims = verifier.verify(body["token"])
    assert claims.identity == "bob"
    assert claims.video.room == "ABCD1234"

    session = client.get("/api/sessions/ABCD1234").json()["session"]
    assert session["creatorIdentity"] == "alice"
    assert session["participantCount"] == 0
    assert session["isRecording"] is False


def test_join_created_session_keeps_creator(client):
    session_id = client.post(
        "/api/sessions/create", json={"creatorIdentity": "alice"}
    ).json()["sessionId"]

    client.post(f"/api/sessions/{session_id}/join", json={"identity": "bob"})

    session = client.get(f"/api/sessions/{session_id}").json()["session"]
    assert session["creatorIdentity"] == "alice"


def test_join_unowned_session_claims_creator(client):
    session_id = client.post("/api/sessions/create").json()["sessionId"]

    client.post(f"/api/sessions/{session_id}/join", json={"identity": "bob"})

    session = client.get(f"/api/sessions/{session_id}").json()["session"]
    assert session["creatorIdentity"] == "bob"


def test_join_without_identity_generates_one(client):
    response = client.post("/api/sessions/team-standup/join", json={})

    assert response.status_code == 200
    assert response.json()["identity"].startswith("user-")


def test_join_with_invalid_session_id(client):
    response = client.post("/api/sessions/ab/join", json={"identity": "alice"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errorType"] == "MalformedPayload"
    assert "Invalid session ID format" in body["error"]


def test_join_rejects_session_id_with_trailing_newline(client):
    response = client.post("/api/sessions/abc%0A/join", json={"identity": "alice"})

    assert response.status_code == 400
    assert response.json()["errorType"] == "MalformedPayload"
    assert client.get("/api/sessions/abc%0A").status_code == 404


def test_get_unknown_session(client):
    response = client.get("/api/sessions/NOPE0000")

    assert response.status_code == 404
    assert response.json()["errorType"] == "NotFound"
