"""
classifier.py - Sentiment and tone classification

Wraps the primary text-generation provider to turn raw text into bounded,
structured judgments:

- classify_sentiment(text) -> Sentiment   (journal entries)
- classify_tone(text)      -> ToneAnalysis (chat messages)

The provider is asked for a fixed JSON shape (a response schema is declared).
Output is then validated and bounded here: ratings are rounded half-up and
clamped to [1, 5], confidences clamped to [0, 1]. Anything missing or
unparsable raises ClassificationError; there is no default substitution,
because a wrong sentiment value is worse than an explicit failure.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from . import config
from .errors import ClassificationError, ValidationError
from .models import Sentiment, ToneAnalysis
from .providers import FallbackChain, FallbackPolicy, ProviderRegistry, TextProvider
from .utils import clamp_confidence, clamp_rating, parse_json_response

_logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 3000

SENTIMENT_SCHEMA = {
    "type": "object",
    "properties": {
        "rating": {"type": "number"},
        "confidence": {"type": "number"},
        "dominant_emotion": {"type": "string"},
    },
    "required": ["rating", "confidence", "dominant_emotion"],
}

TONE_SCHEMA = {
    "type": "object",
    "properties": {
        "tone": {"type": "string"},
        "confidence": {"type": "number"},
        "emotional_state": {"type": "string"},
    },
    "required": ["tone", "confidence", "emotional_state"],
}

SENTIMENT_INSTRUCTION = (
    "You are a sentiment analysis expert specializing in mental health applications.\n"
    "Analyze the sentiment of the text and provide:\n"
    "1. A rating from 1 to 5 (1=very negative, 2=negative, 3=neutral, 4=positive, 5=very positive)\n"
    "2. A confidence score between 0 and 1\n"
    "3. The dominant emotion (e.g., joy, sadness, anxiety, anger, fear, surprise, neutral)\n\n"
    'Respond with JSON in this exact format: {"rating": number, "confidence": number, "dominant_emotion": string}'
)

TONE_INSTRUCTION = (
    "You are a tone analysis expert for mental health conversations.\n"
    "Analyze the tone and emotional state of the text and provide:\n"
    "1. The primary tone (e.g., anxious, calm, excited, sad, angry, hopeful, frustrated, content)\n"
    "2. A confidence score between 0 and 1\n"
    "3. The overall emotional state (e.g., distressed, peaceful, energetic, melancholic, irritated, optimistic)\n\n"
    'Respond with JSON in this exact format: {"tone": string, "confidence": number, "emotional_state": string}'
)


def _prepare_text(text: Optional[str]) -> str:
    if text is None or not str(text).strip():
        raise ValidationError("Text to analyze must not be empty.")
    text = str(text).strip()
    if len(text) > MAX_INPUT_CHARS:
        _logger.warning("Input text for analysis is %d chars long, truncating to %d.", len(text), MAX_INPUT_CHARS)
        text = text[:MAX_INPUT_CHARS]
    return text


def _require_text_field(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"missing or empty '{key}'")
    return value.strip()


def parse_sentiment(raw: str) -> Sentiment:
    """Parse and bound raw provider output into a Sentiment (ValueError on bad shape)."""
    data = parse_json_response(raw)
    if not isinstance(data, dict):
        raise ValueError("sentiment output is not a JSON object")
    if "rating" not in data or "confidence" not in data:
        raise ValueError("sentiment output is missing rating/confidence")
    return Sentiment(
        rating=clamp_rating(data["rating"]),
        confidence=clamp_confidence(data["confidence"]),
        dominant_emotion=_require_text_field(data, "dominant_emotion"),
    )


def parse_tone(raw: str) -> ToneAnalysis:
    """Parse and bound raw provider output into a ToneAnalysis (ValueError on bad shape)."""
    data = parse_json_response(raw)
    if not isinstance(data, dict):
        raise ValueError("tone output is not a JSON object")
    if "confidence" not in data:
        raise ValueError("tone output is missing confidence")
    return ToneAnalysis(
        tone_label=_require_text_field(data, "tone"),
        confidence=clamp_confidence(data["confidence"]),
        emotional_state=_require_text_field(data, "emotional_state"),
    )


class Classifier:
    def __init__(self, registry: ProviderRegistry, provider_names: Optional[Iterable[str]] = None):
        names = list(provider_names or config.CLASSIFIER_PROVIDERS)
        self._sentiment_chain = FallbackChain(
            registry, names, FallbackPolicy.PROPAGATE, label="sentiment analysis", error_cls=ClassificationError
        )
        self._tone_chain = FallbackChain(
            registry, names, FallbackPolicy.PROPAGATE, label="tone analysis", error_cls=ClassificationError
        )

    async def classify_sentiment(self, text: str) -> Sentiment:
        """Rate the emotional valence of `text`. Raises ValidationError or ClassificationError."""
        prepared = _prepare_text(text)

        async def attempt(provider: TextProvider) -> Sentiment:
            raw = await provider.generate(prepared, SENTIMENT_INSTRUCTION, response_schema=SENTIMENT_SCHEMA, temperature=0.2)
            return parse_sentiment(raw)

        outcome = await self._sentiment_chain.run(attempt)
        return outcome.value

    async def classify_tone(self, text: str) -> ToneAnalysis:
        """Label the conversational tone of `text`. Raises ValidationError or ClassificationError."""
        prepared = _prepare_text(text)

        async def attempt(provider: TextProvider) -> ToneAnalysis:
            raw = await provider.generate(prepared, TONE_INSTRUCTION, response_schema=TONE_SCHEMA, temperature=0.2)
            return parse_tone(raw)

        outcome = await self._tone_chain.run(attempt)
        return outcome.value
