"""
service.py - Request-level orchestration for MoodWise

`WellnessService` is the single seam between the HTTP routers and the
pipeline components. Every operation takes an explicit `user_id`; nothing
here keeps state between calls.

Flows:
- mood:        validate -> store; list newest first; 7/30-day chart series
- journal:     classify sentiment once -> store with the entry
- chat:        tone -> store user turn -> reply (last 5 turns) -> enhance -> store reply
- insights:    last 14 moods + 5 journal entries -> summary -> provider insights
- suggestions: stored hobbies (or defaults) + recent mood/chat context
- preferences: created lazily with defaults; updates are partial merges
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import pytz

from . import config
from .aggregator import build_daily_series, summarize_wellness
from .classifier import Classifier
from .errors import ClassificationError, ValidationError
from .models import (
    ActivitySuggestion,
    ChatExchange,
    ChatMessage,
    ContentRecommendation,
    DailySeriesPoint,
    JournalEntry,
    JournalPrompts,
    MoodSample,
    PreferencesUpdate,
    ToneAnalysis,
    UserPreferences,
)
from .providers import ProviderRegistry
from .recommendations import Recommender, validate_mood
from .responder import Responder
from .storage import CHAT_MESSAGES, JOURNAL_ENTRIES, MOOD_ENTRIES, SETTINGS, Storage

_logger = logging.getLogger(__name__)

PREFERENCES_DOC_ID = "preferences"

SERIES_WINDOWS = (7, 30)
MOOD_RANGES = {"week": 7, "month": 30}

CHAT_CONTEXT_MESSAGES = 10
HISTORY_TURNS = 5
INSIGHT_MOOD_SAMPLES = 14
INSIGHT_JOURNAL_ENTRIES = 5
ACTIVITY_MOOD_SAMPLES = 7
PROMPT_EXCERPTS = 3
PROMPT_EXCERPT_CHARS = 100
TOPIC_SOURCE_MESSAGES = 5
TOPIC_MESSAGES = 3
TOPIC_CHARS = 50

DEFAULT_ACTIVITY_HOBBIES = ["reading", "music", "art", "exercise", "cooking"]
DEFAULT_CONTENT_PREFERENCES = ["mindfulness", "creativity", "wellness", "meditation"]

# Used when tone analysis fails so the chat turn can still complete
NEUTRAL_TONE = ToneAnalysis(tone_label="neutral", confidence=0.0, emotional_state="unknown")
ASSISTANT_TONE = ToneAnalysis(tone_label="empathetic", confidence=0.9, emotional_state="supportive")


def _utcnow() -> datetime:
    return datetime.now(pytz.utc)


def _clean_optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field_name} must not be empty.")
    return value.strip()


def _validate_limit(limit: Optional[int]) -> Optional[int]:
    if limit is not None and limit < 1:
        raise ValidationError("limit must be a positive integer.")
    return limit


def _dedupe_hobbies(hobbies: List[str]) -> List[str]:
    """Strip, drop blanks and remove case-insensitive duplicates, keeping first occurrence order."""
    seen = set()
    result = []
    for hobby in hobbies:
        cleaned = str(hobby).strip()
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result


class WellnessService:
    def __init__(
        self,
        storage: Storage,
        classifier: Classifier,
        responder: Responder,
        recommender: Recommender,
        clock: Optional[Callable[[], datetime]] = None,
        tz=None,
    ):
        self.storage = storage
        self.classifier = classifier
        self.responder = responder
        self.recommender = recommender
        self._clock = clock or _utcnow
        self.tz = tz or config.LOCAL_TIMEZONE

    def _now(self) -> datetime:
        return self._clock()

    # -------------------------
    # Record loading helpers
    # -------------------------
    def _recent_moods(self, user_id: str, limit: Optional[int]) -> List[MoodSample]:
        return [MoodSample.model_validate(r) for r in self.storage.list_by_user(MOOD_ENTRIES, user_id, limit)]

    def _recent_journal(self, user_id: str, limit: Optional[int]) -> List[JournalEntry]:
        return [JournalEntry.model_validate(r) for r in self.storage.list_by_user(JOURNAL_ENTRIES, user_id, limit)]

    def _recent_chat(self, user_id: str, limit: Optional[int]) -> List[ChatMessage]:
        """Newest first, as stored."""
        return [ChatMessage.model_validate(r) for r in self.storage.list_by_user(CHAT_MESSAGES, user_id, limit)]

    def _window_start(self, days: int) -> datetime:
        """UTC instant of local midnight at the start of a `days`-long window ending today."""
        local_today = self._now().astimezone(self.tz).date()
        first_day = local_today - timedelta(days=days - 1)
        local_midnight = self.tz.localize(datetime(first_day.year, first_day.month, first_day.day))
        return local_midnight.astimezone(pytz.utc)

    # -------------------------
    # Mood
    # -------------------------
    async def log_mood(self, user_id: str, mood_value: Any, note_text: Optional[str] = None) -> MoodSample:
        sample = MoodSample(
            user_id=user_id,
            mood_value=validate_mood(mood_value),
            note_text=_clean_optional_text(note_text),
            occurred_at=self._now(),
        )
        stored = self.storage.insert(MOOD_ENTRIES, sample.model_dump(exclude={"id"}))
        _logger.info("Logged mood %d for user %s", sample.mood_value, user_id)
        return MoodSample.model_validate(stored)

    async def list_mood(
        self, user_id: str, range_name: Optional[str] = None, limit: Optional[int] = None
    ) -> List[MoodSample]:
        """Newest first. `range_name` ("week" or "month") selects a calendar window instead of a count."""
        if range_name:
            days = MOOD_RANGES.get(range_name)
            if days is None:
                raise ValidationError(f"Unknown range '{range_name}'. Use one of: {', '.join(MOOD_RANGES)}.")
            records = self.storage.list_by_user_in_range(
                MOOD_ENTRIES, user_id, self._window_start(days), self._now()
            )
            samples = [MoodSample.model_validate(r) for r in records]
            return samples[:limit] if _validate_limit(limit) else samples
        return self._recent_moods(user_id, _validate_limit(limit))

    async def mood_series(self, user_id: str, days: int = 7) -> List[DailySeriesPoint]:
        if days not in SERIES_WINDOWS:
            raise ValidationError("days must be 7 or 30.")
        records = self.storage.list_by_user_in_range(MOOD_ENTRIES, user_id, self._window_start(days), self._now())
        samples = [MoodSample.model_validate(r) for r in records]
        today = self._now().astimezone(self.tz).date()
        return build_daily_series(samples, days=days, today=today, tz=self.tz)

    # -------------------------
    # Journal
    # -------------------------
    async def create_journal_entry(self, user_id: str, body_text: str, title_text: Optional[str] = None) -> JournalEntry:
        """Classify once and store; a classification failure stores nothing and propagates."""
        body = _require_text(body_text, "body_text")
        sentiment = await self.classifier.classify_sentiment(body)
        entry = JournalEntry(
            user_id=user_id,
            title_text=_clean_optional_text(title_text),
            body_text=body,
            sentiment=sentiment,
            created_at=self._now(),
        )
        stored = self.storage.insert(JOURNAL_ENTRIES, entry.model_dump(exclude={"id"}))
        _logger.info("Stored journal entry for user %s (rating=%d)", user_id, sentiment.rating)
        return JournalEntry.model_validate(stored)

    async def list_journal_entries(self, user_id: str, limit: Optional[int] = None) -> List[JournalEntry]:
        return self._recent_journal(user_id, _validate_limit(limit))

    async def journal_prompts(self, user_id: str, mood: int = 3) -> JournalPrompts:
        validate_mood(mood)
        excerpts = [e.body_text[:PROMPT_EXCERPT_CHARS] for e in self._recent_journal(user_id, PROMPT_EXCERPTS)]
        return await self.recommender.generate_journal_prompts(mood, excerpts)

    # -------------------------
    # Chat
    # -------------------------
    async def send_chat_message(self, user_id: str, body_text: str) -> ChatExchange:
        body = _require_text(body_text, "body_text")

        try:
            tone: Optional[ToneAnalysis] = await self.classifier.classify_tone(body)
        except ClassificationError as e:
            _logger.warning("Tone analysis failed for user %s, continuing with neutral tone: %s", user_id, e)
            tone = None
        effective_tone = tone or NEUTRAL_TONE

        user_message = ChatMessage(
            user_id=user_id, role_tag="user", body_text=body, tone=tone, occurred_at=self._now()
        )
        stored_user = self.storage.insert(CHAT_MESSAGES, user_message.model_dump(exclude={"id"}))

        # newest first from storage; the reply wants the last few turns in order
        recent = list(reversed(self._recent_chat(user_id, CHAT_CONTEXT_MESSAGES)))
        history = [(m.role_tag, m.body_text) for m in recent][-HISTORY_TURNS:]

        reply = await self.responder.generate_reply(body, effective_tone.tone_label, history)
        context_text = "\n".join(f"{role}: {content}" for role, content in history)
        enhancement = await self.responder.enhance(reply, effective_tone.tone_label, context_text)

        ai_message = ChatMessage(
            user_id=user_id,
            role_tag="assistant",
            body_text=enhancement.content,
            tone=ASSISTANT_TONE,
            occurred_at=self._now(),
        )
        stored_ai = self.storage.insert(CHAT_MESSAGES, ai_message.model_dump(exclude={"id"}))

        return ChatExchange(
            user_message=ChatMessage.model_validate(stored_user),
            ai_message=ChatMessage.model_validate(stored_ai),
            detected_tone=tone,
            techniques=enhancement.techniques,
            follow_up=enhancement.follow_up,
            was_enhanced=enhancement.was_enhanced,
        )

    async def list_chat_messages(self, user_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """Oldest first, so a conversation renders top to bottom."""
        return list(reversed(self._recent_chat(user_id, _validate_limit(limit))))

    # -------------------------
    # Insights and suggestions
    # -------------------------
    async def insights(self, user_id: str) -> Dict[str, Any]:
        moods = self._recent_moods(user_id, INSIGHT_MOOD_SAMPLES)
        journal = self._recent_journal(user_id, INSIGHT_JOURNAL_ENTRIES)
        today = self._now().astimezone(self.tz).date()
        summary = summarize_wellness(moods, journal, today=today, tz=self.tz)
        insights = await self.recommender.generate_insights(summary, moods, journal)
        return {"insights": insights, "summary": summary}

    async def activities(self, user_id: str, mood: int = 3) -> List[ActivitySuggestion]:
        validate_mood(mood)
        hobbies = self._peek_preferences(user_id).hobbies or DEFAULT_ACTIVITY_HOBBIES
        history = self._recent_moods(user_id, ACTIVITY_MOOD_SAMPLES)
        return await self.recommender.generate_activities(hobbies, mood, history)

    async def recommendations(self, user_id: str, mood: int = 3) -> List[ContentRecommendation]:
        validate_mood(mood)
        preferences = self._peek_preferences(user_id).hobbies or DEFAULT_CONTENT_PREFERENCES
        recent = self._recent_chat(user_id, TOPIC_SOURCE_MESSAGES)
        topics = [m.body_text[:TOPIC_CHARS] for m in recent if m.role_tag == "user"][:TOPIC_MESSAGES]
        return await self.recommender.generate_content(mood, preferences, topics)

    # -------------------------
    # Preferences
    # -------------------------
    def _peek_preferences(self, user_id: str) -> UserPreferences:
        """Stored preferences, or unsaved defaults when the user has none yet."""
        record = self.storage.get_document(SETTINGS, user_id, PREFERENCES_DOC_ID)
        if record is None:
            return UserPreferences(user_id=user_id)
        return UserPreferences.model_validate({**record, "user_id": user_id})

    async def get_preferences(self, user_id: str) -> UserPreferences:
        record = self.storage.get_document(SETTINGS, user_id, PREFERENCES_DOC_ID)
        if record is None:
            prefs = UserPreferences(user_id=user_id)
            self.storage.set_document(SETTINGS, user_id, PREFERENCES_DOC_ID, prefs.model_dump())
            _logger.info("Created default preferences for user %s", user_id)
            return prefs
        return UserPreferences.model_validate({**record, "user_id": user_id})

    async def update_preferences(self, user_id: str, update: PreferencesUpdate) -> UserPreferences:
        current = await self.get_preferences(user_id)
        merged = current.model_dump()

        if update.hobbies is not None:
            merged["hobbies"] = _dedupe_hobbies(update.hobbies)
        if update.preferred_tone_label is not None:
            merged["preferred_tone_label"] = _require_text(update.preferred_tone_label, "preferred_tone_label")
        if update.notification_flags is not None:
            flags = update.notification_flags.model_dump(exclude_none=True)
            merged["notification_flags"] = {**merged["notification_flags"], **flags}

        prefs = UserPreferences.model_validate(merged)
        self.storage.set_document(SETTINGS, user_id, PREFERENCES_DOC_ID, prefs.model_dump())
        return prefs


# -------------------------
# Wiring
# -------------------------
def build_registry() -> ProviderRegistry:
    """Every provider MoodWise knows about, keyed by the names used in the routing env vars."""
    from .gcp_clients import VertexProvider
    from .openrouter import make_openai_provider, make_openrouter_provider

    return ProviderRegistry([VertexProvider(), make_openrouter_provider(), make_openai_provider()])


def build_service(storage: Storage, registry: ProviderRegistry) -> WellnessService:
    return WellnessService(
        storage=storage,
        classifier=Classifier(registry),
        responder=Responder(registry),
        recommender=Recommender(registry),
    )


def build_service_from_env() -> WellnessService:
    from .gcp_clients import get_firestore_client
    from .storage import FirestoreStorage

    return build_service(FirestoreStorage(get_firestore_client()), build_registry())
