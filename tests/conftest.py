"""
Pytest configuration for MoodWise tests

Provides in-memory storage, scripted text providers and a ready-made
WellnessService so no test touches Firestore, Redis or a real model.
"""

import itertools
import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
import pytz

from moodwise.classifier import Classifier
from moodwise.errors import ConflictError, ProviderError
from moodwise.providers import ProviderRegistry, TextProvider
from moodwise.recommendations import Recommender
from moodwise.responder import Responder
from moodwise.service import WellnessService
from moodwise.storage import TIME_FIELDS, Storage

FIXED_NOW = datetime(2024, 3, 14, 12, 0, tzinfo=pytz.utc)


class InMemoryStorage(Storage):
    """Dict-backed Storage with the same ordering contract as FirestoreStorage."""

    def __init__(self):
        self.records: Dict[str, List[Dict[str, Any]]] = {}
        self.documents: Dict[tuple, Dict[str, Any]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def insert(self, kind, record):
        stored = {k: v for k, v in record.items() if k != "id"}
        stored["id"] = f"{kind}-{next(self._ids)}"
        self.records.setdefault(kind, []).append(stored)
        return dict(stored)

    def _newest_first(self, kind, rows):
        field = TIME_FIELDS[kind]
        # ties broken by insertion order, newest insert first
        indexed = list(enumerate(rows))
        indexed.sort(key=lambda pair: (pair[1][field], pair[0]), reverse=True)
        return [dict(row) for _, row in indexed]

    def list_by_user(self, kind, user_id, limit=None):
        rows = [r for r in self.records.get(kind, []) if r["user_id"] == user_id]
        ordered = self._newest_first(kind, rows)
        return ordered[:limit] if limit is not None else ordered

    def list_by_user_in_range(self, kind, user_id, start, end):
        field = TIME_FIELDS[kind]
        rows = [
            r for r in self.records.get(kind, [])
            if r["user_id"] == user_id and start <= r[field] <= end
        ]
        return self._newest_first(kind, rows)

    def get_document(self, kind, user_id, doc_id):
        doc = self.documents.get((kind, user_id, doc_id))
        return dict(doc) if doc is not None else None

    def set_document(self, kind, user_id, doc_id, record):
        self.documents[(kind, user_id, doc_id)] = dict(record)
        return record

    def get_user(self, user_id):
        user = self.users.get(user_id)
        return {**user, "id": user_id} if user else None

    def find_user_by_email(self, email):
        for user_id, user in self.users.items():
            if user.get("email") == email:
                return {**user, "id": user_id}
        return None

    def create_user(self, user_id, record):
        if user_id in self.users:
            raise ConflictError("User already exists with this username.")
        self.users[user_id] = dict(record)
        return {**record, "id": user_id}


Reply = Union[str, Exception, Callable[[str, str], str]]


class StubProvider(TextProvider):
    """
    Scripted provider. `reply` is returned for every call; an Exception
    instance is raised instead, and a callable receives
    (prompt_text, system_instruction) and returns the text.
    """

    def __init__(self, name: str, reply: Reply = ""):
        self.name = name
        self.reply = reply
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, prompt_text, system_instruction, response_schema=None, temperature=None):
        self.calls.append(
            {
                "prompt_text": prompt_text,
                "system_instruction": system_instruction,
                "response_schema": response_schema,
                "temperature": temperature,
            }
        )
        if isinstance(self.reply, Exception):
            raise self.reply
        if callable(self.reply):
            return self.reply(prompt_text, system_instruction)
        return self.reply


def failing(name: str, message: str = "boom") -> StubProvider:
    return StubProvider(name, ProviderError(message, provider=name))


def as_json(payload: Any) -> str:
    return json.dumps(payload)


class TickingClock:
    """Returns FIXED_NOW, then one second later on each call."""

    def __init__(self, start: datetime = FIXED_NOW):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


def tone_and_reply(prompt_text: str, system_instruction: str) -> str:
    """Vertex stand-in answering both tone analysis and chat replies."""
    if "tone analysis" in system_instruction:
        return as_json({"tone": "anxious", "confidence": 0.8, "emotional_state": "distressed"})
    if "sentiment analysis" in system_instruction:
        return as_json({"rating": 4.7, "confidence": 1.3, "dominant_emotion": "joy"})
    if "wellness coach" in system_instruction:
        return as_json({"insights": ["You log your mood consistently.", "Weekends look brighter."]})
    return "That sounds really stressful. I'm here with you."


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def clock():
    return TickingClock()


def make_service(storage: InMemoryStorage, providers: List[TextProvider], clock=None) -> WellnessService:
    registry = ProviderRegistry(providers)
    return WellnessService(
        storage=storage,
        classifier=Classifier(registry, ["vertex"]),
        responder=Responder(registry, ["vertex"], ["openrouter"], "Default reply.", "Default follow-up?"),
        recommender=Recommender(registry, ["openrouter", "openai"], ["openrouter"], ["vertex"]),
        clock=clock or TickingClock(),
        tz=pytz.utc,
    )


@pytest.fixture
def vertex():
    return StubProvider("vertex", tone_and_reply)


@pytest.fixture
def openrouter():
    return StubProvider(
        "openrouter",
        as_json({"content": "Enhanced reply.", "techniques": ["grounding"], "followUp": "What helps you relax?"}),
    )


@pytest.fixture
def service(storage, vertex, openrouter, clock):
    return make_service(storage, [vertex, openrouter], clock)
