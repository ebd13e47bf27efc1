"""
recommendations.py - Activity, content, journal-prompt and insight generation

Two kinds of generation with different failure policies:

- Activities and content recommendations try the primary provider, then exactly
  one secondary provider. If both fail the caller gets a RecommendationError;
  there is deliberately no default list, so a user never sees made-up
  suggestions presented as personalised ones.
- Journal prompts and mood insights have safe, generic defaults and fall back
  to them when generation fails.

Provider output is validated before use. For list responses:
  * the payload must be a JSON object with the expected array key (a bare JSON
    array is accepted as the list itself);
  * a missing, null or empty array is a valid "zero suggestions" result;
  * a non-list value under the key, or any item failing its schema, is
    malformed and counts as a provider failure.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel

from . import config
from .errors import RecommendationError, ValidationError
from .models import ActivitySuggestion, ContentRecommendation, JournalEntry, JournalPrompts, MoodSample
from .providers import FallbackChain, FallbackPolicy, ProviderRegistry, TextProvider
from .utils import describe_mood, parse_json_response

_logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

MAX_HISTORY_SAMPLES = 5

DEFAULT_JOURNAL_PROMPTS = [
    "What am I grateful for today?",
    "How can I show myself compassion?",
    "What emotions am I experiencing right now?",
]
DEFAULT_JOURNAL_THEME = "self-reflection"
DEFAULT_INSIGHTS = ["Your mood tracking shows great self-awareness. Keep up the good work!"]

# Provider field names -> model field names
ACTIVITY_FIELD_ALIASES = {"hobby": "hobby_reference", "moodTarget": "mood_target"}
CONTENT_FIELD_ALIASES = {"type": "content_type", "moodMatch": "mood_match"}

ACTIVITY_SCHEMA = {
    "type": "object",
    "properties": {
        "activities": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "hobby": {"type": "string"},
                    "duration": {"type": "string"},
                    "difficulty": {"type": "string"},
                    "mood_target": {"type": "string"},
                },
                "required": ["title", "description"],
            },
        }
    },
    "required": ["activities"],
}

CONTENT_SCHEMA = {
    "type": "object",
    "properties": {
        "recommendations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "type": {"type": "string", "enum": ["article", "meditation", "podcast", "music", "video"]},
                    "url": {"type": "string"},
                    "mood_match": {"type": "string"},
                    "benefits": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["title", "description", "type"],
            },
        }
    },
    "required": ["recommendations"],
}

PROMPTS_SCHEMA = {
    "type": "object",
    "properties": {
        "prompts": {"type": "array", "items": {"type": "string"}},
        "theme": {"type": "string"},
    },
    "required": ["prompts", "theme"],
}

INSIGHTS_SCHEMA = {
    "type": "object",
    "properties": {"insights": {"type": "array", "items": {"type": "string"}}},
    "required": ["insights"],
}


def validate_mood(mood: Any) -> int:
    if isinstance(mood, bool) or not isinstance(mood, int) or not 1 <= mood <= 5:
        raise ValidationError("Mood must be an integer between 1 and 5.")
    return mood


def _format_day(moment: datetime) -> str:
    return moment.strftime("%a %b %d %Y")


def parse_item_list(raw: str, key: str, model: Type[T], aliases: Dict[str, str]) -> List[T]:
    """
    Validate a list-shaped provider response.

    Raises ValueError (or a pydantic ValidationError) when the payload is
    malformed; returns [] when the array is absent or empty.
    """
    data = parse_json_response(raw)
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get(key)
        if items is None:
            return []
        if not isinstance(items, list):
            raise ValueError(f"'{key}' is not a list")
    else:
        raise ValueError("response is neither a JSON object nor an array")

    parsed = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"'{key}' item is not an object")
        renamed = {aliases.get(k, k): v for k, v in item.items()}
        parsed.append(model.model_validate(renamed))
    return parsed


class Recommender:
    def __init__(
        self,
        registry: ProviderRegistry,
        recommendation_providers: Optional[Iterable[str]] = None,
        prompt_providers: Optional[Iterable[str]] = None,
        insight_providers: Optional[Iterable[str]] = None,
    ):
        names = list(recommendation_providers or config.RECOMMENDATION_PROVIDERS)
        # exactly one primary and one secondary
        self._recommendation_names = names[:2]
        self._activity_chain = FallbackChain(
            registry, self._recommendation_names, FallbackPolicy.PROPAGATE,
            label="activity suggestions", error_cls=RecommendationError,
        )
        self._content_chain = FallbackChain(
            registry, self._recommendation_names, FallbackPolicy.PROPAGATE,
            label="content recommendations", error_cls=RecommendationError,
        )
        self._prompt_chain = FallbackChain(
            registry, prompt_providers or config.PROMPT_PROVIDERS, FallbackPolicy.SWALLOW,
            label="journal prompts",
            default_factory=lambda: JournalPrompts(prompts=list(DEFAULT_JOURNAL_PROMPTS), theme=DEFAULT_JOURNAL_THEME),
        )
        self._insight_chain = FallbackChain(
            registry, insight_providers or config.INSIGHT_PROVIDERS, FallbackPolicy.SWALLOW,
            label="mood insights", default_factory=lambda: list(DEFAULT_INSIGHTS),
        )

    # -------------------------
    # Activities / content (propagate on failure)
    # -------------------------
    async def generate_activities(
        self, hobbies: Sequence[str], current_mood: int, mood_history_sample: Sequence[MoodSample]
    ) -> List[ActivitySuggestion]:
        """
        Suggest therapeutic activities built on the user's hobbies.
        Raises ValidationError for a bad mood and RecommendationError when both providers fail.
        """
        mood_description = describe_mood(validate_mood(current_mood))
        history = ", ".join(
            f"{describe_mood(s.mood_value)} on {_format_day(s.occurred_at)}"
            for s in list(mood_history_sample)[:MAX_HISTORY_SAMPLES]
        ) or "no recent entries"
        prompt = (
            f"Based on the user's hobbies ({', '.join(hobbies)}) and current mood ({mood_description}), "
            "generate 3 personalized therapeutic activity suggestions.\n\n"
            f"User's mood history shows: {history}\n\n"
            "Each activity should:\n"
            "- Be based on one of their hobbies\n"
            "- Be therapeutic and mood-enhancing\n"
            "- Include specific, actionable instructions\n"
            "- Be achievable in 15-45 minutes\n"
            "- Match their current emotional state\n\n"
            "Respond with JSON:\n"
            '{"activities": [{"title": "Activity name", "description": "Detailed instructions for the activity", '
            '"hobby": "Which hobby this relates to", "duration": "Estimated time needed", '
            '"difficulty": "Easy/Medium/Hard", "mood_target": "What mood benefit this provides"}]}'
        )
        instruction = (
            "You are a therapeutic activity specialist who creates personalized wellness activities "
            "based on hobbies and mood states. Always respond with valid JSON."
        )

        async def attempt(provider: TextProvider) -> List[ActivitySuggestion]:
            raw = await provider.generate(prompt, instruction, response_schema=ACTIVITY_SCHEMA, temperature=0.7)
            return parse_item_list(raw, "activities", ActivitySuggestion, ACTIVITY_FIELD_ALIASES)

        outcome = await self._activity_chain.run(attempt)
        _logger.info("Generated %d activity suggestions via %s", len(outcome.value), outcome.provider)
        return outcome.value

    async def generate_content(
        self, current_mood: int, preferences: Sequence[str], recent_topics: Sequence[str]
    ) -> List[ContentRecommendation]:
        """
        Recommend articles, meditations, podcasts, music or videos for the current mood.
        Raises ValidationError for a bad mood and RecommendationError when both providers fail.
        """
        mood_description = describe_mood(validate_mood(current_mood))
        prompt = (
            f"Generate 4 personalized content recommendations for someone feeling {mood_description}.\n\n"
            f"User preferences: {', '.join(preferences)}\n"
            f"Recent interests: {', '.join(recent_topics) or 'none'}\n\n"
            "Include a variety of content types: articles, meditations, podcasts, and music.\n"
            "Each recommendation should be therapeutic and mood-appropriate.\n\n"
            "Respond with JSON:\n"
            '{"recommendations": [{"title": "Content title", "description": "Brief description", '
            '"type": "article|meditation|podcast|music|video", "url": "Optional URL if applicable", '
            '"mood_match": "Why this fits their current mood", "benefits": ["benefit1", "benefit2"]}]}'
        )
        instruction = (
            "You are a therapeutic content curator specializing in mental wellness recommendations. "
            "Always respond with valid JSON."
        )

        async def attempt(provider: TextProvider) -> List[ContentRecommendation]:
            raw = await provider.generate(prompt, instruction, response_schema=CONTENT_SCHEMA, temperature=0.6)
            return parse_item_list(raw, "recommendations", ContentRecommendation, CONTENT_FIELD_ALIASES)

        outcome = await self._content_chain.run(attempt)
        _logger.info("Generated %d content recommendations via %s", len(outcome.value), outcome.provider)
        return outcome.value

    # -------------------------
    # Journal prompts / insights (defaults on failure)
    # -------------------------
    async def generate_journal_prompts(self, mood_level: int, recent_excerpts: Sequence[str]) -> JournalPrompts:
        mood_description = describe_mood(validate_mood(mood_level))
        prompt = (
            f"Based on the user's current mood ({mood_description}) and their recent journal themes, "
            "generate 3 thoughtful journal prompts that would be therapeutically beneficial.\n\n"
            f"Recent journal excerpts: {'; '.join(list(recent_excerpts)[:3]) or 'none'}\n\n"
            "Generate prompts that:\n"
            "- Are appropriate for their current emotional state\n"
            "- Encourage healthy reflection and processing\n"
            "- Build on themes from recent entries\n"
            "- Promote self-compassion and growth\n\n"
            'Respond with JSON: {"prompts": ["prompt1", "prompt2", "prompt3"], '
            '"theme": "Overall therapeutic theme (e.g., \'self-compassion\', \'gratitude\')"}'
        )
        instruction = "You are a therapeutic journaling specialist who creates prompts for emotional wellness and self-reflection."

        async def attempt(provider: TextProvider) -> JournalPrompts:
            raw = await provider.generate(prompt, instruction, response_schema=PROMPTS_SCHEMA, temperature=0.8)
            data = parse_json_response(raw)
            if not isinstance(data, dict):
                raise ValueError("journal prompts output is not a JSON object")
            prompts = [str(p).strip() for p in (data.get("prompts") or []) if str(p).strip()]
            if not prompts:
                raise ValueError("journal prompts output has no prompts")
            theme = str(data.get("theme") or "").strip() or DEFAULT_JOURNAL_THEME
            return JournalPrompts(prompts=prompts, theme=theme)

        outcome = await self._prompt_chain.run(attempt)
        return outcome.value

    async def generate_insights(
        self,
        summary: Dict[str, Any],
        mood_samples: Sequence[MoodSample],
        journal_entries: Sequence[JournalEntry],
    ) -> List[str]:
        """
        Produce 2-3 short, supportive observations about recent mood and journaling.
        Falls back to a generic encouragement when generation fails.
        """
        mood_lines = ", ".join(
            f"{s.mood_value} on {_format_day(s.occurred_at)}" + (f" ({s.note_text})" if s.note_text else "")
            for s in mood_samples
        ) or "none"
        journal_lines = "\n".join(
            f"{_format_day(e.created_at)}: {e.body_text[:200]}..." for e in list(journal_entries)[:3]
        ) or "none"
        prompt = (
            f"Mood Data (1-5 scale): {mood_lines}\n\n"
            f"Recent Journal Entries:\n{journal_lines}\n\n"
            f"Summary:\n{json.dumps(summary, indent=2, default=str)}"
        )
        instruction = (
            "You are an AI wellness coach analyzing mood patterns and journal entries.\n"
            "Generate 2-3 personalized insights based on the user's mood and journal data.\n\n"
            "Each insight should be:\n"
            "- Supportive and encouraging\n"
            "- Based on actual patterns in the data\n"
            "- Actionable when appropriate\n"
            "- 1-2 sentences long\n\n"
            'Respond with JSON: {"insights": ["insight1", "insight2"]}'
        )

        async def attempt(provider: TextProvider) -> List[str]:
            raw = await provider.generate(prompt, instruction, response_schema=INSIGHTS_SCHEMA, temperature=0.6)
            data = parse_json_response(raw)
            items = data.get("insights") if isinstance(data, dict) else data
            if not isinstance(items, list):
                raise ValueError("insights output is not a list")
            insights = [str(i).strip() for i in items if isinstance(i, str) and i.strip()]
            if not insights:
                raise ValueError("insights output is empty")
            return insights

        outcome = await self._insight_chain.run(attempt)
        return outcome.value
