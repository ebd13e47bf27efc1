"""
responder.py - Companion reply generation and enhancement

Two steps of the chat pipeline live here:

1. generate_reply: the primary provider writes a conversational reply
   conditioned on the user's detected tone and the last few turns. If the
   provider fails or returns nothing usable, a configurable empathetic default
   is returned instead; chat must never fail because of generation.

2. enhance: a refinement provider rewrites that reply to be more personal and
   suggests techniques plus a follow-up question. On ANY failure the base reply
   passes through unchanged with `was_enhanced=False`.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from . import config
from .models import EnhancedReply
from .providers import FallbackChain, FallbackPolicy, ProviderRegistry, TextProvider
from .errors import ProviderError
from .utils import parse_json_response

_logger = logging.getLogger(__name__)

MAX_HISTORY_TURNS = 5

ENHANCE_SCHEMA = {
    "type": "object",
    "properties": {
        "content": {"type": "string"},
        "techniques": {"type": "array", "items": {"type": "string"}},
        "followUp": {"type": "string"},
    },
    "required": ["content"],
}


def _recent_history(history: Sequence[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Last MAX_HISTORY_TURNS (role, content) pairs, oldest first, as a new list."""
    return [(role, content) for role, content in list(history)[-MAX_HISTORY_TURNS:]]


def _build_reply_instruction(detected_tone: str, history: Sequence[Tuple[str, str]], message: str) -> str:
    context = "\n".join(f"{role}: {content}" for role, content in history) or "None"
    return (
        "You are MoodWise, an empathetic AI companion specialized in mental health and wellness support.\n"
        f"The user's current tone is: {detected_tone}\n\n"
        "Guidelines:\n"
        "- Adapt your response tone to match the user's emotional state appropriately\n"
        "- Be supportive, understanding, and non-judgmental\n"
        "- Provide helpful suggestions when appropriate but don't be prescriptive\n"
        "- If the user seems distressed, prioritize emotional support over problem-solving\n"
        "- Keep responses conversational and warm\n"
        "- If you detect serious mental health concerns, gently suggest professional help\n\n"
        f"Conversation context:\n{context}\n\n"
        f"Current message: {message}\n\n"
        "Respond naturally and empathetically:"
    )


def _build_enhance_instruction(detected_tone: str, context_text: str) -> str:
    return (
        "You are a mental health AI assistant specializing in therapeutic communication. "
        f"The user's tone is: {detected_tone}\n\n"
        "Take the base response and enhance it by:\n"
        "- Making it more empathetic and personally relevant\n"
        "- Adjusting the tone to better match the user's emotional state\n"
        "- Adding gentle therapeutic techniques when appropriate\n"
        "- Keeping it conversational and supportive\n"
        "- Including 1-2 therapeutic techniques used\n"
        "- Suggesting a thoughtful follow-up question or prompt\n\n"
        f"Context: {context_text}\n\n"
        "Respond with JSON:\n"
        '{"content": "Enhanced response text", "techniques": ["technique1", "technique2"], '
        '"followUp": "Thoughtful follow-up question"}'
    )


def parse_enhancement(raw: str, default_follow_up: str) -> EnhancedReply:
    """Validate refinement output; ValueError when `content` is missing or the shape is wrong."""
    data = parse_json_response(raw)
    if not isinstance(data, dict):
        raise ValueError("enhancement output is not a JSON object")
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ValueError("enhancement output has no content")
    techniques = data.get("techniques") or []
    if not isinstance(techniques, list):
        raise ValueError("enhancement 'techniques' is not a list")
    follow_up = data.get("followUp") or data.get("follow_up")
    if not isinstance(follow_up, str) or not follow_up.strip():
        follow_up = default_follow_up
    return EnhancedReply(
        content=content.strip(),
        techniques=[str(t) for t in techniques if str(t).strip()],
        follow_up=follow_up.strip(),
        was_enhanced=True,
    )


class Responder:
    def __init__(
        self,
        registry: ProviderRegistry,
        reply_providers: Optional[Iterable[str]] = None,
        enhancer_providers: Optional[Iterable[str]] = None,
        default_reply: Optional[str] = None,
        default_follow_up: Optional[str] = None,
    ):
        self.default_reply = default_reply or config.DEFAULT_CHAT_REPLY
        self.default_follow_up = default_follow_up or config.DEFAULT_FOLLOW_UP
        self._reply_chain = FallbackChain(
            registry,
            reply_providers or config.REPLY_PROVIDERS,
            FallbackPolicy.SWALLOW,
            label="chat reply",
            default_factory=lambda: self.default_reply,
        )
        self._enhance_providers = list(enhancer_providers or config.ENHANCER_PROVIDERS)
        self._registry = registry

    async def generate_reply(self, message: str, detected_tone: str, history: Sequence[Tuple[str, str]]) -> str:
        """
        Write a reply to `message`.

        `history` holds (role, content) pairs oldest first; only the last five
        are used as context. The input sequence is never modified.
        """
        recent = _recent_history(history)
        instruction = _build_reply_instruction(detected_tone, recent, message)

        async def attempt(provider: TextProvider) -> str:
            text = await provider.generate(message, instruction, temperature=0.7)
            if not text or not text.strip():
                raise ProviderError("empty reply", provider=provider.name)
            return text.strip()

        outcome = await self._reply_chain.run(attempt)
        return outcome.value

    async def enhance(self, base_reply: str, detected_tone: str, context_text: str) -> EnhancedReply:
        """Refine `base_reply`; never raises, falls back to a passthrough reply."""
        passthrough = EnhancedReply(
            content=base_reply, techniques=[], follow_up=self.default_follow_up, was_enhanced=False
        )
        chain = FallbackChain(
            self._registry,
            self._enhance_providers,
            FallbackPolicy.SWALLOW,
            label="reply enhancement",
            default_factory=lambda: passthrough,
        )
        instruction = _build_enhance_instruction(detected_tone, context_text)
        prompt = f'Enhance this response: "{base_reply}"'

        async def attempt(provider: TextProvider) -> EnhancedReply:
            raw = await provider.generate(prompt, instruction, response_schema=ENHANCE_SCHEMA, temperature=0.7)
            return parse_enhancement(raw, self.default_follow_up)

        outcome = await chain.run(attempt)
        return outcome.value
