"""OpenAI-compatible generation backend used by every wizard step."""

from __future__ import annotations

import logging
from typing import Protocol

from openai import APIError, AsyncOpenAI

from .config import LLMSettings, get_llm_settings
from .errors import BackendError
from .logging_utils import preview
from .prompts import PromptSpec

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "AI provider API key is not configured."


class GenerationBackend(Protocol):
    """Text in, text out. Raises :class:`BackendError` when a call fails."""

    async def generate(self, spec: PromptSpec) -> str:
        ...


ClientKey = tuple[str, str | None]
_client_cache: tuple[ClientKey, AsyncOpenAI] | None = None


def _get_client(settings: LLMSettings) -> AsyncOpenAI | None:
    """Return a cached async client when an API key is configured."""

    global _client_cache
    api_key = settings.get_api_key()
    if not api_key:
        return None
    key: ClientKey = (api_key, settings.get_base_url())
    if _client_cache and _client_cache[0] == key:
        return _client_cache[1]
    client = AsyncOpenAI(api_key=api_key, base_url=key[1]) if key[1] else AsyncOpenAI(api_key=api_key)
    _client_cache = (key, client)
    return client


class OpenAIBackend:
    """Call OpenAI, or Gemini through its OpenAI-compatible endpoint."""

    def __init__(self, settings: LLMSettings | None = None) -> None:
        self._settings = settings

    @property
    def settings(self) -> LLMSettings:
        return self._settings or get_llm_settings()

    async def generate(self, spec: PromptSpec) -> str:
        settings = self.settings
        client = _get_client(settings)
        if client is None:
            raise BackendError(MISSING_KEY_MESSAGE)

        model = settings.get_model()
        request = {
            "model": model,
            "messages": [
                {"role": "system", "content": spec.system_prompt.strip()},
                {"role": "user", "content": spec.user_prompt.strip()},
            ],
            "temperature": spec.temperature,
            "max_tokens": spec.max_tokens,
        }
        if spec.json_mode:
            request["response_format"] = {"type": "json_object"}

        logger.debug("Requesting %s from %s: %s", model, settings.primary_provider, preview(spec.user_prompt))
        try:
            response = await client.chat.completions.create(**request)
        except APIError as exc:
            logger.warning("Generation call to %s failed: %s", settings.primary_provider, exc)
            raise BackendError(f"Generation call failed: {exc}") from exc

        message = response.choices[0].message.content if response.choices else None
        if not message:
            raise BackendError("Generation backend returned no content.")
        return message


def build_backend(settings: LLMSettings | None = None) -> OpenAIBackend:
    return OpenAIBackend(settings)
