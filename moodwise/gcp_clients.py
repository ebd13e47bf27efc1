"""
gcp_clients.py - Google Cloud + Vertex AI helpers

This module provides:
1. `VertexProvider` - the primary text-generation provider (Gemini on Vertex AI),
   used for sentiment/tone classification, chat replies and mood insights.
2. `get_firestore_client()` - the Firestore client behind `FirestoreStorage`.

Behavior notes:
- Vertex AI is initialized lazily on the first generation call and only once.
- Structured calls pass a JSON response schema so Gemini returns a fixed shape.
- Responses blocked by safety filters or without candidates are failures.
- Every call is bounded by PROVIDER_TIMEOUT_SECONDS; there are no retries.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from google.cloud import firestore

from . import config
from .errors import ProviderError
from .providers import TextProvider

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())

# Flag to track Vertex initialization
_vertex_initialized = False


def init_vertex() -> bool:
    """
    Initialize Vertex AI for text generation.
    - Safe to call multiple times.
    - Returns True once initialized, False if initialization failed.
    """
    global _vertex_initialized
    if _vertex_initialized:
        return True

    try:
        import vertexai

        _logger.info("Initializing Vertex AI: project=%s, location=%s", config.GCP_PROJECT, config.GCP_LOCATION)
        vertexai.init(project=config.GCP_PROJECT or None, location=config.GCP_LOCATION)
        _vertex_initialized = True
        _logger.info("Vertex AI initialized successfully")
    except Exception as e:
        _logger.exception("Vertex AI initialization failed: %s", e)
        _vertex_initialized = False
    return _vertex_initialized


class VertexProvider(TextProvider):
    """Gemini via the Vertex AI SDK."""

    def __init__(
        self,
        name: str = "vertex",
        model_name: Optional[str] = None,
        timeout: Optional[float] = None,
        default_temperature: float = 0.7,
    ):
        self.name = name
        self.model_name = model_name or config.VERTEX_MODEL_NAME
        self.timeout = timeout or config.PROVIDER_TIMEOUT_SECONDS
        self.default_temperature = default_temperature

    async def generate(
        self,
        prompt_text: str,
        system_instruction: str,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
    ) -> str:
        if not self.model_name:
            raise ProviderError("no Vertex model configured", provider=self.name)
        if not init_vertex():
            raise ProviderError("Vertex AI not initialized", provider=self.name)

        from vertexai.generative_models import GenerationConfig, GenerativeModel

        model = GenerativeModel(self.model_name, system_instruction=system_instruction)
        config_kwargs = {
            "temperature": self.default_temperature if temperature is None else temperature,
        }
        if response_schema:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_schema"] = response_schema
        generation_config = GenerationConfig(**config_kwargs)

        try:
            response = await asyncio.wait_for(
                model.generate_content_async(prompt_text, generation_config=generation_config),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Vertex AI call timed out after {self.timeout}s", provider=self.name) from e
        except Exception as e:
            raise ProviderError(f"Vertex AI generation failed: {e}", provider=self.name) from e

        # Explicitly check for safety blocks
        if not response.candidates:
            _logger.warning("Vertex AI response was blocked. Prompt Feedback: %s", response.prompt_feedback)
            raise ProviderError("Vertex AI response was blocked", provider=self.name)

        try:
            text = response.candidates[0].content.parts[0].text
        except (IndexError, AttributeError, ValueError) as e:
            raise ProviderError(f"Vertex AI response had no text part: {e}", provider=self.name) from e

        if not text or not text.strip():
            raise ProviderError("Vertex AI returned empty content", provider=self.name)
        return text


@lru_cache(maxsize=1)
def get_firestore_client() -> firestore.Client:
    """
    Initialize (once) and return a Firestore client.
    Raises on failure; callers decide how to surface it.
    """
    _logger.debug("Initializing Firestore client for project: %s", config.GCP_PROJECT)
    return firestore.Client(project=config.GCP_PROJECT or None)
