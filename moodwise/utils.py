"""
utils.py - Small parsing and bounding helpers shared across MoodWise.

1. JSON extraction from raw LLM output (models often wrap JSON in prose or
   markdown fences, or use single quotes / trailing commas).
2. Clamping helpers that enforce the rating/confidence invariants.
3. Human-readable mood descriptions used when building prompts.
"""

import json
import math
import re
from typing import Any, Optional

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

MOOD_DESCRIPTIONS = {
    1: "very sad/distressed",
    2: "sad/down",
    3: "neutral/okay",
    4: "good/positive",
    5: "great/very happy",
}


def _extract_json_text(raw: Optional[str]) -> Optional[str]:
    """
    Extract the outermost JSON-looking substring from raw model output.
    Leading and trailing prose is dropped. Objects are preferred over arrays
    unless the text itself opens with an array.
    """
    if not raw:
        return None
    text = _FENCE_RE.sub("", raw.strip())
    patterns = [r"\{.*\}", r"\[.*\]"]
    if text.startswith("["):
        patterns.reverse()
    for pattern in patterns:
        m = re.search(pattern, text, re.DOTALL)
        if m:
            return m.group(0)
    return None


def parse_json_response(raw: Optional[str]) -> Any:
    """
    Parse model output into a JSON value.

    Tries a strict parse first, then repairs common formatting issues in order:
    - trailing commas before a closing bracket
    - single quotes instead of double quotes (only if the first repair was not enough)

    Raises ValueError when nothing parseable is found.
    """
    jtext = _extract_json_text(raw)
    if not jtext:
        raise ValueError("no JSON found in model output")
    try:
        return json.loads(jtext)
    except json.JSONDecodeError:
        pass
    fixed = re.sub(r",\s*([}\]])", r"\1", jtext)
    try:
        return json.loads(fixed)
    except json.JSONDecodeError:
        fixed = fixed.replace("'", '"')
    try:
        return json.loads(fixed)
    except json.JSONDecodeError as e:
        raise ValueError(f"unparsable JSON in model output: {e}") from e


def _as_finite_number(value: Any) -> float:
    # bool is an int subclass but never a valid rating
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"expected a number, got {value!r}") from e
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    return number


def clamp_rating(value: Any, low: int = 1, high: int = 5) -> int:
    """Round half-up, then clamp into [low, high]. Raises ValueError for non-numbers."""
    number = _as_finite_number(value)
    return max(low, min(high, int(math.floor(number + 0.5))))


def clamp_confidence(value: Any) -> float:
    """Clamp into [0.0, 1.0]. Raises ValueError for non-numbers."""
    number = _as_finite_number(value)
    return max(0.0, min(1.0, number))


def describe_mood(mood: int) -> str:
    return MOOD_DESCRIPTIONS.get(mood, "neutral")
