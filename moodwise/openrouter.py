"""
openrouter.py - OpenAI-compatible chat-completions provider

Used for the refinement/recommendation providers. The same class talks to
OpenRouter and to OpenAI directly; only the base URL, key, model and headers
differ. Requests go through `httpx.AsyncClient` with a bounded timeout.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from . import config
from .errors import ProviderError
from .providers import TextProvider

_logger = logging.getLogger(__name__)


class ChatCompletionsProvider(TextProvider):
    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str,
        model: str,
        timeout: Optional[float] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        default_temperature: float = 0.7,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout or config.PROVIDER_TIMEOUT_SECONDS
        self.extra_headers = dict(extra_headers or {})
        self.default_temperature = default_temperature
        self._transport = transport

    async def generate(
        self,
        prompt_text: str,
        system_instruction: str,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
    ) -> str:
        if not self.api_key:
            raise ProviderError(f"{self.name}: API key not configured", provider=self.name)

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt_text},
            ],
            "temperature": self.default_temperature if temperature is None else temperature,
        }
        if response_schema is not None:
            payload["response_format"] = {"type": "json_object"}

        headers = {"Authorization": f"Bearer {self.api_key}", **self.extra_headers}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.name}: HTTP {e.response.status_code} from chat completions", provider=self.name
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name}: request failed: {e}", provider=self.name) from e
        except ValueError as e:
            raise ProviderError(f"{self.name}: response body is not JSON", provider=self.name) from e

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.name}: unexpected response shape", provider=self.name) from e

        if not content or not str(content).strip():
            raise ProviderError(f"{self.name}: empty content", provider=self.name)
        return content


def make_openrouter_provider(transport: Optional[httpx.AsyncBaseTransport] = None) -> ChatCompletionsProvider:
    headers = {"X-Title": config.OPENROUTER_APP_NAME}
    if config.OPENROUTER_SITE_URL:
        headers["HTTP-Referer"] = config.OPENROUTER_SITE_URL
    return ChatCompletionsProvider(
        name="openrouter",
        base_url=config.OPENROUTER_BASE_URL,
        api_key=config.OPENROUTER_API_KEY,
        model=config.OPENROUTER_MODEL,
        extra_headers=headers,
        transport=transport,
    )


def make_openai_provider(transport: Optional[httpx.AsyncBaseTransport] = None) -> ChatCompletionsProvider:
    return ChatCompletionsProvider(
        name="openai",
        base_url=config.OPENAI_BASE_URL,
        api_key=config.OPENAI_API_KEY,
        model=config.OPENAI_MODEL,
        transport=transport,
    )
