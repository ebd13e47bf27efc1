"""
models.py - Record shapes and request bodies for MoodWise.

Persisted records (mood samples, journal entries, chat messages, preferences)
use these models' field names verbatim. Provider output is validated against
the suggestion/recommendation models before it is trusted.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# -------------------------
# Analysis results
# -------------------------
class Sentiment(BaseModel):
    rating: int = Field(ge=1, le=5)
    confidence: float = Field(ge=0.0, le=1.0)
    dominant_emotion: str


class ToneAnalysis(BaseModel):
    tone_label: str
    confidence: float = Field(ge=0.0, le=1.0)
    emotional_state: str


# -------------------------
# Stored entities
# -------------------------
class MoodSample(BaseModel):
    id: Optional[str] = None
    user_id: str
    mood_value: int = Field(ge=1, le=5)
    note_text: Optional[str] = None
    occurred_at: datetime


class JournalEntry(BaseModel):
    id: Optional[str] = None
    user_id: str
    title_text: Optional[str] = None
    body_text: str
    sentiment: Optional[Sentiment] = None
    created_at: datetime


class ChatMessage(BaseModel):
    id: Optional[str] = None
    user_id: str
    role_tag: Literal["user", "assistant"]
    body_text: str
    tone: Optional[ToneAnalysis] = None
    occurred_at: datetime


class NotificationFlags(BaseModel):
    daily_reminders: bool = True
    mood_tracking: bool = True
    journaling: bool = True


class UserPreferences(BaseModel):
    user_id: str
    hobbies: List[str] = Field(default_factory=lambda: ["reading", "music", "art"])
    preferred_tone_label: str = "empathetic"
    notification_flags: NotificationFlags = Field(default_factory=NotificationFlags)


class DailySeriesPoint(BaseModel):
    """Derived chart point; computed on demand, never stored."""

    day_label: str
    date: str
    average_mood: Optional[float] = None
    sample_count: int = 0


# -------------------------
# Generated content
# -------------------------
class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


_EASY_WORDS = ("easy", "beginner", "low", "simple", "gentle")
_HARD_WORDS = ("hard", "difficult", "challenging", "advanced", "high", "intense")


def normalize_difficulty(value) -> Difficulty:
    """Map free-text difficulty from a provider onto Easy/Medium/Hard (Medium when unclear)."""
    if isinstance(value, Difficulty):
        return value
    text = str(value or "").strip().lower()
    if text.startswith(_EASY_WORDS):
        return Difficulty.EASY
    if text.startswith(_HARD_WORDS):
        return Difficulty.HARD
    return Difficulty.MEDIUM


class ActivitySuggestion(BaseModel):
    title: str = Field(min_length=1)
    description: str
    hobby_reference: str = ""
    duration: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM
    mood_target: str = ""

    @field_validator("difficulty", mode="before")
    @classmethod
    def _normalize_difficulty(cls, value):
        return normalize_difficulty(value)


ContentType = Literal["article", "meditation", "podcast", "music", "video"]


class ContentRecommendation(BaseModel):
    title: str = Field(min_length=1)
    description: str
    content_type: ContentType
    url: Optional[str] = None
    mood_match: str = ""
    benefits: List[str] = Field(default_factory=list)

    @field_validator("content_type", mode="before")
    @classmethod
    def _lower_content_type(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class EnhancedReply(BaseModel):
    content: str
    techniques: List[str] = Field(default_factory=list)
    follow_up: str
    was_enhanced: bool = False


class JournalPrompts(BaseModel):
    prompts: List[str]
    theme: str


class ChatExchange(BaseModel):
    """Result of one chat turn: the stored user/assistant pair plus enhancement details."""

    user_message: ChatMessage
    ai_message: ChatMessage
    detected_tone: Optional[ToneAnalysis] = None
    techniques: List[str] = Field(default_factory=list)
    follow_up: str
    was_enhanced: bool = False


# -------------------------
# Request bodies
# -------------------------
class MoodCreate(BaseModel):
    mood_value: int
    note_text: Optional[str] = None


class JournalCreate(BaseModel):
    body_text: str
    title_text: Optional[str] = None


class ChatCreate(BaseModel):
    body_text: str


class NotificationFlagsUpdate(BaseModel):
    daily_reminders: Optional[bool] = None
    mood_tracking: Optional[bool] = None
    journaling: Optional[bool] = None


class PreferencesUpdate(BaseModel):
    hobbies: Optional[List[str]] = None
    preferred_tone_label: Optional[str] = None
    notification_flags: Optional[NotificationFlagsUpdate] = None


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    name: str


class LoginRequest(BaseModel):
    email: str
    password: str

