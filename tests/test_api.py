"""API tests for the MoodWise HTTP surface

Tests cover:
- Error bodies are always {"error": ...} with the right status
- Bearer-token protection of wellness endpoints
- Register / login / me / logout with Redis sessions (in-memory double)
- Mood, journal, chat and preferences round trips through the routers
"""

import pytest
from fastapi.testclient import TestClient

from moodwise import auth, wellness
from moodwise.main import app

from .conftest import StubProvider, as_json, failing, make_service


class FakeRedis:
    """Just the commands SessionStore uses."""

    def __init__(self):
        self.values = {}
        self.expiry = {}

    def set(self, key, value, ex=None):
        self.values[key] = value
        self.expiry[key] = ex

    def get(self, key):
        return self.values.get(key)

    def expire(self, key, seconds):
        self.expiry[key] = seconds
        return key in self.values

    def delete(self, key):
        self.values.pop(key, None)
        self.expiry.pop(key, None)


@pytest.fixture
def redis_double():
    return FakeRedis()


@pytest.fixture
def client(storage, service, redis_double):
    app.dependency_overrides[wellness.get_wellness_service] = lambda: service
    app.dependency_overrides[auth.get_storage] = lambda: storage
    app.dependency_overrides[auth.get_session_store] = lambda: auth.SessionStore(redis_double, ttl_seconds=60)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user_client(client):
    """Client whose requests are already authenticated as u1."""
    app.dependency_overrides[auth.get_current_user_id] = lambda: "u1"
    return client


REGISTRATION = {"username": "sam", "email": "Sam@Example.com", "password": "Passw0rdOK", "name": "Sam"}
USERNAME_MESSAGE = "Username must be 3-32 characters of letters, digits, '.', '_' or '-'."


# -------------------------
# Authentication
# -------------------------
def test_protected_endpoint_requires_token(client):
    response = client.get("/api/mood")

    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated."}


def test_unknown_token_is_rejected(client):
    response = client.get("/api/mood", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


def test_register_login_me_logout(client, storage, redis_double):
    registered = client.post("/api/auth/register", json=REGISTRATION)
    assert registered.status_code == 201
    body = registered.json()
    assert body["user"]["email"] == "sam@example.com"
    assert "hashed_password" not in body["user"]
    assert storage.get_document("settings", "sam", "preferences")["hobbies"] == []

    login = client.post("/api/auth/login", json={"email": "sam@example.com", "password": "Passw0rdOK"})
    assert login.status_code == 200
    token = login.json()["token"]
    headers = {"Authorization": f"Bearer {token}"}
    assert redis_double.expiry["session:" + token] == 60

    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "sam"

    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_me_for_missing_account_is_404(user_client):
    response = user_client.get("/api/auth/me")

    assert response.status_code == 404
    assert response.json() == {"error": "User not found."}


def test_register_duplicate_is_conflict(client):
    client.post("/api/auth/register", json=REGISTRATION)

    response = client.post("/api/auth/register", json={**REGISTRATION, "username": "other"})

    assert response.status_code == 409
    assert "already exists" in response.json()["error"]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"email": "not-an-email"}, "Invalid email format."),
        ({"password": "short1A"}, "Password must be at least 8 characters long."),
        ({"password": "alllowercase1"}, "Password must contain at least one uppercase letter."),
        ({"password": "NoDigitsHere"}, "Password must contain at least one number."),
        ({"name": "  "}, "All fields are required."),
        ({"username": "jane/doe"}, USERNAME_MESSAGE),
        ({"username": "..."}, USERNAME_MESSAGE),
        ({"username": "__x__"}, USERNAME_MESSAGE),
        ({"username": "ab"}, USERNAME_MESSAGE),
    ],
)
def test_register_validation(client, overrides, message):
    response = client.post("/api/auth/register", json={**REGISTRATION, **overrides})

    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_login_wrong_password(client):
    client.post("/api/auth/register", json=REGISTRATION)

    response = client.post("/api/auth/login", json={"email": "sam@example.com", "password": "WrongPass1"})

    assert response.status_code == 401
    assert "error" in response.json()


# -------------------------
# Wellness endpoints
# -------------------------
def test_mood_round_trip(user_client):
    created = user_client.post("/api/mood", json={"mood_value": 4, "note_text": "good walk"})
    assert created.status_code == 201
    assert created.json()["mood_value"] == 4

    listed = user_client.get("/api/mood")
    assert [m["note_text"] for m in listed.json()] == ["good walk"]

    series = user_client.get("/api/mood/series", params={"days": 30})
    assert series.status_code == 200
    assert len(series.json()) == 30


def test_invalid_mood_is_400(user_client):
    response = user_client.post("/api/mood", json={"mood_value": 9})

    assert response.status_code == 400
    assert "error" in response.json()


def test_malformed_body_is_400(user_client):
    response = user_client.post("/api/mood", json={"note_text": "no mood"})

    assert response.status_code == 400
    assert "mood_value" in response.json()["error"]


def test_series_window_is_validated(user_client):
    response = user_client.get("/api/mood/series", params={"days": 10})

    assert response.status_code == 400
    assert response.json() == {"error": "days must be 7 or 30."}


def test_journal_entry_is_created_with_sentiment(user_client):
    response = user_client.post("/api/journal", json={"body_text": "I had a wonderful day with friends"})

    assert response.status_code == 201
    assert response.json()["sentiment"] == {"rating": 5, "confidence": 1.0, "dominant_emotion": "joy"}


def test_journal_classification_failure_is_500(client, storage, openrouter):
    app.dependency_overrides[wellness.get_wellness_service] = lambda: make_service(
        storage, [failing("vertex"), openrouter]
    )
    app.dependency_overrides[auth.get_current_user_id] = lambda: "u1"

    response = client.post("/api/journal", json={"body_text": "some words"})

    assert response.status_code == 500
    assert "sentiment analysis failed" in response.json()["error"]


def test_chat_round_trip(user_client):
    response = user_client.post("/api/chat", json={"body_text": "I can't sleep"})

    assert response.status_code == 200
    body = response.json()
    assert body["detected_tone"]["tone_label"] == "anxious"
    assert body["ai_message"]["body_text"] == "Enhanced reply."
    assert body["was_enhanced"] is True

    history = user_client.get("/api/chat")
    assert [m["role_tag"] for m in history.json()] == ["user", "assistant"]


def test_recommendation_failure_is_500(client, storage, vertex):
    app.dependency_overrides[wellness.get_wellness_service] = lambda: make_service(
        storage, [vertex, failing("openrouter"), failing("openai")]
    )
    app.dependency_overrides[auth.get_current_user_id] = lambda: "u1"

    response = client.get("/api/activities", params={"mood": 2})

    assert response.status_code == 500
    assert "activity suggestions failed" in response.json()["error"]


def test_activities_and_journal_prompts(client, storage, vertex):
    provider = StubProvider(
        "openrouter",
        lambda prompt, instruction: (
            as_json({"prompts": ["Name one small win."], "theme": "growth"})
            if "journal prompts" in prompt
            else as_json({"activities": [{"title": "Walk", "description": "Ten minutes outside", "difficulty": "low"}]})
        ),
    )
    app.dependency_overrides[wellness.get_wellness_service] = lambda: make_service(storage, [vertex, provider])
    app.dependency_overrides[auth.get_current_user_id] = lambda: "u1"

    activities = client.get("/api/activities")
    assert activities.status_code == 200
    assert activities.json()[0]["difficulty"] == "Easy"

    prompts = client.get("/api/journal/prompts", params={"mood": 5})
    assert prompts.json() == {"prompts": ["Name one small win."], "theme": "growth"}


def test_preferences_lazy_defaults_and_update(user_client):
    defaults = user_client.get("/api/preferences")
    assert defaults.status_code == 200
    assert defaults.json()["hobbies"] == ["reading", "music", "art"]

    updated = user_client.put(
        "/api/preferences",
        json={"hobbies": ["yoga", "Yoga", "piano"], "notification_flags": {"daily_reminders": False}},
    )
    assert updated.status_code == 200
    body = updated.json()
    assert body["hobbies"] == ["yoga", "piano"]
    assert body["notification_flags"] == {"daily_reminders": False, "mood_tracking": True, "journaling": True}


def test_unknown_route_uses_error_shape(client):
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert "error" in response.json()


def test_health_reports_redis_state(client, monkeypatch):
    monkeypatch.setattr(auth, "get_redis_client", lambda: type("Pong", (), {"ping": lambda self: True})())

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["redis_available"] is True
