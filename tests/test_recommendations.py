"""Unit tests for recommendation generation

Tests cover:
- Primary -> secondary fallback for activities and content
- RecommendationError when both providers fail (no default list)
- List shape rules (missing key, bare array, malformed items)
- Difficulty and content type normalisation
- Journal prompt and insight defaults
"""

import asyncio
from datetime import datetime

import pytest
import pytz

from moodwise.errors import RecommendationError, ValidationError
from moodwise.models import ActivitySuggestion, Difficulty, MoodSample, normalize_difficulty
from moodwise.providers import ProviderRegistry
from moodwise.recommendations import (
    ACTIVITY_FIELD_ALIASES,
    DEFAULT_INSIGHTS,
    DEFAULT_JOURNAL_PROMPTS,
    DEFAULT_JOURNAL_THEME,
    Recommender,
    parse_item_list,
)

from .conftest import StubProvider, as_json, failing

ACTIVITY = {
    "title": "Sketch your surroundings",
    "description": "Spend 20 minutes drawing what you see.",
    "hobby": "art",
    "duration": "20 minutes",
    "difficulty": "easy",
    "mood_target": "calm",
}

CONTENT = {
    "title": "Box breathing",
    "description": "A four-count breathing exercise.",
    "type": "Meditation",
    "moodMatch": "Eases tension",
    "benefits": ["calm"],
}


def make_recommender(*providers):
    return Recommender(ProviderRegistry(providers), ["openrouter", "openai"], ["openrouter"], ["vertex"])


def history():
    return [
        MoodSample(user_id="u1", mood_value=v, occurred_at=datetime(2024, 3, d, tzinfo=pytz.utc))
        for d, v in [(14, 2), (13, 3), (12, 4), (11, 2), (10, 1), (9, 5), (8, 5)]
    ]


def test_both_providers_failing_raises():
    recommender = make_recommender(failing("openrouter"), failing("openai"))

    with pytest.raises(RecommendationError):
        asyncio.run(recommender.generate_activities(["art"], 3, []))


def test_secondary_is_used_when_primary_throws():
    secondary = StubProvider("openai", as_json({"activities": [ACTIVITY]}))
    recommender = make_recommender(failing("openrouter"), secondary)

    activities = asyncio.run(recommender.generate_activities(["art"], 2, history()))

    assert [a.title for a in activities] == ["Sketch your surroundings"]
    assert activities[0].hobby_reference == "art"
    assert activities[0].difficulty is Difficulty.EASY


def test_secondary_is_not_called_when_primary_succeeds():
    secondary = StubProvider("openai", as_json({"activities": []}))
    recommender = make_recommender(StubProvider("openrouter", as_json({"activities": [ACTIVITY]})), secondary)

    asyncio.run(recommender.generate_activities(["art"], 4, []))

    assert secondary.calls == []


def test_malformed_primary_output_falls_back():
    bad = as_json({"activities": [{"description": "no title"}]})
    secondary = StubProvider("openai", as_json({"activities": [ACTIVITY]}))

    activities = asyncio.run(make_recommender(StubProvider("openrouter", bad), secondary).generate_activities(["art"], 3, []))

    assert len(activities) == 1
    assert len(secondary.calls) == 1


def test_only_two_providers_are_tried():
    third = StubProvider("extra", as_json({"activities": [ACTIVITY]}))
    recommender = Recommender(
        ProviderRegistry([failing("openrouter"), failing("openai"), third]),
        ["openrouter", "openai", "extra"],
    )

    with pytest.raises(RecommendationError):
        asyncio.run(recommender.generate_activities(["art"], 3, []))
    assert third.calls == []


def test_missing_key_means_no_suggestions():
    recommender = make_recommender(StubProvider("openrouter", as_json({"note": "nothing today"})))

    assert asyncio.run(recommender.generate_activities(["art"], 3, [])) == []


def test_only_recent_history_is_used_in_prompt():
    provider = StubProvider("openrouter", as_json({"activities": []}))

    asyncio.run(make_recommender(provider).generate_activities(["art"], 3, history()))

    prompt = provider.calls[0]["prompt_text"]
    assert "Sun Mar 10 2024" in prompt
    assert "Sat Mar 09 2024" not in prompt


@pytest.mark.parametrize("mood", [0, 6, "3", True, None])
def test_invalid_mood_is_rejected(mood):
    provider = StubProvider("openrouter", as_json({"activities": []}))

    with pytest.raises(ValidationError):
        asyncio.run(make_recommender(provider).generate_activities(["art"], mood, []))
    assert provider.calls == []


def test_content_types_are_lowercased_and_aliases_applied():
    recommender = make_recommender(StubProvider("openrouter", as_json({"recommendations": [CONTENT]})))

    items = asyncio.run(recommender.generate_content(2, ["mindfulness"], ["work stress"]))

    assert items[0].content_type == "meditation"
    assert items[0].mood_match == "Eases tension"
    assert items[0].url is None


def test_unknown_content_type_is_malformed():
    bad = as_json({"recommendations": [{**CONTENT, "type": "book"}]})
    recommender = make_recommender(StubProvider("openrouter", bad), failing("openai"))

    with pytest.raises(RecommendationError):
        asyncio.run(recommender.generate_content(3, ["wellness"], []))


def test_bare_array_is_taken_as_the_list():
    items = parse_item_list(as_json([ACTIVITY]), "activities", ActivitySuggestion, ACTIVITY_FIELD_ALIASES)

    assert len(items) == 1


@pytest.mark.parametrize("raw", [as_json({"activities": None}), as_json({"activities": []})])
def test_null_or_empty_list_is_zero_items(raw):
    assert parse_item_list(raw, "activities", ActivitySuggestion, ACTIVITY_FIELD_ALIASES) == []


def test_non_list_value_is_malformed():
    with pytest.raises(ValueError):
        parse_item_list(as_json({"activities": "walk"}), "activities", ActivitySuggestion, ACTIVITY_FIELD_ALIASES)


def test_trailing_prose_after_json_is_ignored():
    raw = '{"activities": []}\n\nHope these help you feel better!'
    recommender = make_recommender(StubProvider("openrouter", raw), failing("openai"))

    assert asyncio.run(recommender.generate_activities(["art"], 3, [])) == []


def test_bare_array_followed_by_prose_is_taken_as_the_list():
    raw = as_json([ACTIVITY]) + "\nEnjoy!"

    assert len(parse_item_list(raw, "activities", ActivitySuggestion, ACTIVITY_FIELD_ALIASES)) == 1


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Easy", Difficulty.EASY),
        ("beginner-friendly", Difficulty.EASY),
        ("Challenging", Difficulty.HARD),
        ("moderate", Difficulty.MEDIUM),
        ("", Difficulty.MEDIUM),
        (None, Difficulty.MEDIUM),
        (Difficulty.HARD, Difficulty.HARD),
    ],
)
def test_difficulty_normalization(raw, expected):
    assert normalize_difficulty(raw) is expected


def test_journal_prompts_from_provider():
    raw = as_json({"prompts": ["What went well?", "Who helped you?"], "theme": "gratitude"})
    provider = StubProvider("openrouter", raw)

    prompts = asyncio.run(make_recommender(provider).generate_journal_prompts(4, ["Today was busy"]))

    assert prompts.prompts == ["What went well?", "Who helped you?"]
    assert prompts.theme == "gratitude"
    assert "Today was busy" in provider.calls[0]["prompt_text"]


@pytest.mark.parametrize("provider", [failing("openrouter"), StubProvider("openrouter", as_json({"theme": "x"}))])
def test_journal_prompts_default_on_failure(provider):
    prompts = asyncio.run(make_recommender(provider).generate_journal_prompts(3, []))

    assert prompts.prompts == DEFAULT_JOURNAL_PROMPTS
    assert prompts.theme == DEFAULT_JOURNAL_THEME


def test_insights_from_provider():
    provider = StubProvider("vertex", as_json({"insights": ["You are consistent.", "Mornings are hard."]}))

    insights = asyncio.run(make_recommender(provider).generate_insights({"sample_count": 2}, history()[:2], []))

    assert insights == ["You are consistent.", "Mornings are hard."]


def test_insights_default_on_failure():
    insights = asyncio.run(make_recommender(failing("vertex")).generate_insights({}, [], []))

    assert insights == DEFAULT_INSIGHTS
