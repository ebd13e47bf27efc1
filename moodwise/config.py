"""
config.py - Environment configuration for MoodWise

All runtime settings come from environment variables. A `.env` file is loaded
on import (if one can be found) without overriding variables that are already
set, so deployment environments always win over local files.

Groups:
1. Google Cloud / Vertex AI (primary text-generation provider + Firestore)
2. OpenAI-compatible chat-completions providers (OpenRouter, OpenAI)
3. Provider routing per capability (comma-separated provider names)
4. Fallback texts used when generation fails
5. Sessions, timezone and logging
"""

import os
import logging
from typing import List

from dotenv import load_dotenv, find_dotenv
import pytz

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())

# --- Load environment variables on import ---
try:
    _env_path = find_dotenv(usecwd=True)
    if _env_path:
        load_dotenv(_env_path, override=False)
        _logger.debug("Loaded .env from %s", _env_path)
except OSError as e:
    _logger.warning("Error loading .env: %s", e)


def _env_list(name: str, default: str) -> List[str]:
    """Parse a comma-separated env var into a list of non-empty names."""
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


# --- Google Cloud ---
GCP_PROJECT: str = os.environ.get("GCP_PROJECT", "")
GCP_LOCATION: str = os.environ.get("GCP_LOCATION", "us-central1")
VERTEX_MODEL_NAME: str = os.environ.get("VERTEX_MODEL_NAME", "gemini-2.5-flash")

# --- OpenAI-compatible providers ---
OPENROUTER_API_KEY: str = os.environ.get("OPENROUTER_API_KEY", "").strip()
OPENROUTER_BASE_URL: str = os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
OPENROUTER_MODEL: str = os.environ.get("OPENROUTER_MODEL", "anthropic/claude-3.5-sonnet")
OPENROUTER_APP_NAME: str = os.environ.get("OPENROUTER_APP_NAME", "MoodWise")
OPENROUTER_SITE_URL: str = os.environ.get("OPENROUTER_SITE_URL", "")

OPENAI_API_KEY: str = os.environ.get("OPENAI_API_KEY", "").strip()
OPENAI_BASE_URL: str = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
OPENAI_MODEL: str = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")

# Upper bound for a single outbound generation call
PROVIDER_TIMEOUT_SECONDS: float = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", "30"))

# --- Provider routing (ordered; first entry is tried first) ---
CLASSIFIER_PROVIDERS: List[str] = _env_list("CLASSIFIER_PROVIDERS", "vertex")
REPLY_PROVIDERS: List[str] = _env_list("REPLY_PROVIDERS", "vertex")
ENHANCER_PROVIDERS: List[str] = _env_list("ENHANCER_PROVIDERS", "openrouter")
RECOMMENDATION_PROVIDERS: List[str] = _env_list("RECOMMENDATION_PROVIDERS", "openrouter,openai")
INSIGHT_PROVIDERS: List[str] = _env_list("INSIGHT_PROVIDERS", "vertex")
PROMPT_PROVIDERS: List[str] = _env_list("PROMPT_PROVIDERS", "openrouter")

# --- Fallback texts ---
DEFAULT_CHAT_REPLY: str = os.environ.get(
    "DEFAULT_CHAT_REPLY",
    "I'm here to listen and support you. Could you tell me more about how you're feeling?",
)
DEFAULT_FOLLOW_UP: str = os.environ.get("DEFAULT_FOLLOW_UP", "How are you feeling about this?")

# --- Sessions / time / logging ---
REDIS_URL: str = os.environ.get("REDIS_URL", "redis://localhost:6379")
SESSION_TIMEOUT_MINUTES: int = int(os.environ.get("SESSION_TIMEOUT_MINUTES", "1440"))
LOCAL_TIMEZONE = pytz.timezone(os.environ.get("LOCAL_TIMEZONE", "UTC"))
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

_logger.debug(
    "GCP_PROJECT=%s, GCP_LOCATION=%s, VERTEX_MODEL_NAME=%s, openrouter_key_set=%s, openai_key_set=%s",
    GCP_PROJECT,
    GCP_LOCATION,
    VERTEX_MODEL_NAME,
    bool(OPENROUTER_API_KEY),
    bool(OPENAI_API_KEY),
)
