"""Configuration helpers for the StrategyBuilder backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Mapping

from dotenv import load_dotenv

OTHER_PROVIDER_PREFIX = "STRATEGY_LLM_"
OTHER_PROVIDER_KEY_SUFFIX = "_API_KEY"
OTHER_PROVIDER_URL_SUFFIX = "_BASE_URL"

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-1.5-flash",
}
DEFAULT_HORIZON_YEAR = "2030"
DEFAULT_MIN_CASE_CHARS = 100

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

load_dotenv(override=False)


@dataclass(frozen=True)
class ProviderEndpoint:
    """Credentials for an additional OpenAI-compatible provider."""

    api_key: str
    base_url: str | None = None


@dataclass(frozen=True)
class LLMSettings:
    """Settings container for the generation backend.

    OpenAI is the primary provider; if its key is missing the configuration
    falls back to Gemini and then to any other OpenAI-compatible vendor
    declared through ``STRATEGY_LLM_<NAME>_API_KEY``.
    """

    openai_api_key: str | None = None
    gemini_api_key: str | None = None
    model_override: str | None = None
    additional_providers: Dict[str, ProviderEndpoint] = field(default_factory=dict)

    @property
    def primary_provider(self) -> str | None:
        """Return the preferred provider based on available credentials."""

        if self.openai_api_key:
            return "openai"
        if self.gemini_api_key:
            return "gemini"
        for provider, endpoint in self.additional_providers.items():
            if endpoint.api_key:
                return provider
        return None

    def get_api_key(self, provider: str | None = None) -> str | None:
        """Return the API key for the requested provider.

        When *provider* is omitted the primary provider's key is returned.
        """

        resolved_provider = provider or self.primary_provider
        if resolved_provider == "openai":
            return self.openai_api_key
        if resolved_provider == "gemini":
            return self.gemini_api_key
        if resolved_provider is None:
            return None
        endpoint = self.additional_providers.get(resolved_provider)
        return endpoint.api_key if endpoint else None

    def get_base_url(self, provider: str | None = None) -> str | None:
        """Return the OpenAI-compatible base URL, ``None`` for OpenAI itself."""

        resolved_provider = provider or self.primary_provider
        if resolved_provider == "gemini":
            return GEMINI_OPENAI_BASE_URL
        if resolved_provider in (None, "openai"):
            return None
        endpoint = self.additional_providers.get(resolved_provider)
        return endpoint.base_url if endpoint else None

    def get_model(self, provider: str | None = None) -> str:
        """Return the model name to request from *provider*."""

        if self.model_override:
            return self.model_override
        resolved_provider = provider or self.primary_provider
        return DEFAULT_MODELS.get(resolved_provider or "openai", DEFAULT_MODELS["openai"])

    @property
    def has_any_keys(self) -> bool:
        """True when at least one provider API key is configured."""

        return self.primary_provider is not None


@dataclass(frozen=True)
class WizardSettings:
    """Non-credential knobs for the wizard flow."""

    horizon_year: str = DEFAULT_HORIZON_YEAR
    min_case_chars: int = DEFAULT_MIN_CASE_CHARS
    log_level: str = "INFO"
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))


def _extract_additional_providers(environ: Mapping[str, str]) -> Dict[str, ProviderEndpoint]:
    """Collect providers having the ``STRATEGY_LLM_*_API_KEY`` pattern."""

    discovered: Dict[str, ProviderEndpoint] = {}
    for env_key, value in environ.items():
        if not env_key.startswith(OTHER_PROVIDER_PREFIX) or not env_key.endswith(OTHER_PROVIDER_KEY_SUFFIX):
            continue

        name = env_key[len(OTHER_PROVIDER_PREFIX) : -len(OTHER_PROVIDER_KEY_SUFFIX)]
        provider = name.lower()
        if provider in {"openai", "gemini"}:
            # Handled explicitly above.
            continue
        if value:
            base_url = environ.get(f"{OTHER_PROVIDER_PREFIX}{name}{OTHER_PROVIDER_URL_SUFFIX}")
            discovered[provider] = ProviderEndpoint(api_key=value, base_url=base_url or None)
    return discovered


def _parse_origins(raw: str | None) -> List[str]:
    if not raw:
        return list(DEFAULT_ALLOWED_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _parse_int(raw: str | None, default: int) -> int:
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@lru_cache(maxsize=1)
def get_llm_settings() -> LLMSettings:
    """Read environment variables and return cached LLM settings."""

    environ = os.environ
    return LLMSettings(
        openai_api_key=environ.get("OPENAI_API_KEY") or None,
        gemini_api_key=environ.get("GEMINI_API_KEY") or environ.get("GOOGLE_API_KEY") or None,
        model_override=environ.get("STRATEGY_LLM_MODEL") or None,
        additional_providers=_extract_additional_providers(environ),
    )


@lru_cache(maxsize=1)
def get_wizard_settings() -> WizardSettings:
    """Read wizard tuning values from the environment."""

    environ = os.environ
    return WizardSettings(
        horizon_year=environ.get("STRATEGY_HORIZON_YEAR") or DEFAULT_HORIZON_YEAR,
        min_case_chars=_parse_int(environ.get("STRATEGY_MIN_CASE_CHARS"), DEFAULT_MIN_CASE_CHARS),
        log_level=(environ.get("STRATEGY_LOG_LEVEL") or "INFO").upper(),
        allowed_origins=_parse_origins(environ.get("STRATEGY_ALLOWED_ORIGINS")),
    )
