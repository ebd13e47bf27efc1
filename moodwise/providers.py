"""
providers.py - Text-generation capability interface and provider fallback

Every external model is wrapped as a named `TextProvider`. Components never talk
to an SDK directly; they receive a `ProviderRegistry` and describe, per
capability, an ordered list of provider names plus a fallback policy:

- SWALLOW:   if every attempt fails, return a default value (chat replies,
             enhancement, journal prompts, insights).
- PROPAGATE: if every attempt fails, raise the capability's error type
             (classification, recommendations).

Each attempt is recorded as an `AttemptResult`, so callers and logs can tell
which provider produced a value and why the others did not.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

from .errors import MoodWiseError, ProviderError

_logger = logging.getLogger(__name__)


class TextProvider:
    """
    A text-generation capability reachable by name.

    Subclasses implement `generate` and must raise ProviderError for any
    failure (transport, timeout, non-2xx, blocked or empty output).
    """

    name = "provider"

    async def generate(
        self,
        prompt_text: str,
        system_instruction: str,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
    ) -> str:
        raise NotImplementedError


class ProviderRegistry:
    """Name -> provider lookup. Unknown names resolve to None, never raise."""

    def __init__(self, providers: Iterable[TextProvider] = ()):
        self._providers: Dict[str, TextProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: TextProvider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str) -> Optional[TextProvider]:
        return self._providers.get(name)


class FallbackPolicy(str, Enum):
    SWALLOW = "swallow"
    PROPAGATE = "propagate"


@dataclass
class AttemptResult:
    provider: str
    ok: bool
    value: Any = None
    error: Optional[Exception] = None


@dataclass
class ChainOutcome:
    value: Any
    attempts: List[AttemptResult] = field(default_factory=list)

    @property
    def provider(self) -> Optional[str]:
        for attempt in self.attempts:
            if attempt.ok:
                return attempt.provider
        return None


class FallbackChain:
    """
    Ordered provider attempts for one capability.

    `call` receives a provider and returns the parsed, validated value; any
    exception it raises (ProviderError, ValueError from parsing, pydantic
    validation errors, ...) counts as a failed attempt and moves on to the next
    provider. No attempt is retried.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        provider_names: Iterable[str],
        policy: FallbackPolicy,
        label: str,
        error_cls: Type[MoodWiseError] = ProviderError,
        default_factory: Optional[Callable[[], Any]] = None,
    ):
        self.registry = registry
        self.provider_names = list(provider_names)
        self.policy = policy
        self.label = label
        self.error_cls = error_cls
        self.default_factory = default_factory
        if policy is FallbackPolicy.SWALLOW and default_factory is None:
            raise ValueError(f"{label}: SWALLOW policy needs a default_factory")

    async def run(self, call: Callable[[TextProvider], Awaitable[Any]]) -> ChainOutcome:
        attempts: List[AttemptResult] = []
        for name in self.provider_names:
            provider = self.registry.get(name)
            if provider is None:
                err = ProviderError(f"provider '{name}' is not configured", provider=name)
                _logger.warning("%s: skipping provider '%s': not configured", self.label, name)
                attempts.append(AttemptResult(provider=name, ok=False, error=err))
                continue
            try:
                value = await call(provider)
            except Exception as e:
                _logger.warning("%s: provider '%s' failed: %s", self.label, name, e)
                attempts.append(AttemptResult(provider=name, ok=False, error=e))
                continue
            attempts.append(AttemptResult(provider=name, ok=True, value=value))
            if len(attempts) > 1:
                _logger.info("%s: served by fallback provider '%s'", self.label, name)
            return ChainOutcome(value=value, attempts=attempts)

        if self.policy is FallbackPolicy.SWALLOW:
            _logger.warning("%s: all providers failed, using default", self.label)
            return ChainOutcome(value=self.default_factory(), attempts=attempts)

        summary = "; ".join(f"{a.provider}: {a.error}" for a in attempts) or "no providers configured"
        last_error = attempts[-1].error if attempts else None
        raise self.error_cls(f"{self.label} failed ({summary})") from last_error
