import asyncio

import pytest

from strategy_flow.config import GEMINI_OPENAI_BASE_URL, get_llm_settings, get_wizard_settings
from strategy_flow.errors import BackendError
from strategy_flow.llm import MISSING_KEY_MESSAGE, OpenAIBackend
from strategy_flow.prompts import summary_prompt

PROVIDER_VARS = ("OPENAI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY", "STRATEGY_LLM_MODEL")


@pytest.fixture
def no_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in PROVIDER_VARS:
        monkeypatch.delenv(name, raising=False)


def test_primary_provider_prefers_openai(monkeypatch: pytest.MonkeyPatch, no_keys: None) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "test-openai")
    monkeypatch.setenv("GEMINI_API_KEY", "test-gemini")

    settings = get_llm_settings()

    assert settings.primary_provider == "openai"
    assert settings.get_api_key() == "test-openai"
    assert settings.get_base_url() is None
    assert settings.get_model() == "gpt-4o-mini"


def test_gemini_uses_openai_compatible_endpoint(monkeypatch: pytest.MonkeyPatch, no_keys: None) -> None:
    monkeypatch.setenv("GOOGLE_API_KEY", "test-google")

    settings = get_llm_settings()

    assert settings.primary_provider == "gemini"
    assert settings.get_api_key() == "test-google"
    assert settings.get_base_url() == GEMINI_OPENAI_BASE_URL
    assert settings.get_model() == "gemini-1.5-flash"


def test_primary_provider_falls_back_to_custom(monkeypatch: pytest.MonkeyPatch, no_keys: None) -> None:
    monkeypatch.setenv("STRATEGY_LLM_GROQ_API_KEY", "groq-key")
    monkeypatch.setenv("STRATEGY_LLM_GROQ_BASE_URL", "https://api.groq.com/openai/v1")
    monkeypatch.setenv("STRATEGY_LLM_MODEL", "llama-3.1-70b")

    settings = get_llm_settings()

    assert settings.primary_provider == "groq"
    assert settings.get_api_key() == "groq-key"
    assert settings.get_base_url() == "https://api.groq.com/openai/v1"
    assert settings.get_model() == "llama-3.1-70b"


def test_no_keys_configured(no_keys: None, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = get_llm_settings()

    assert settings.primary_provider is None
    assert not settings.has_any_keys


def test_backend_without_key_raises_backend_error(no_keys: None) -> None:
    backend = OpenAIBackend(get_llm_settings())

    with pytest.raises(BackendError, match=MISSING_KEY_MESSAGE):
        asyncio.run(backend.generate(summary_prompt("Expand into adjacent markets")))


def test_wizard_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("STRATEGY_HORIZON_YEAR", "STRATEGY_MIN_CASE_CHARS", "STRATEGY_LOG_LEVEL", "STRATEGY_ALLOWED_ORIGINS"):
        monkeypatch.delenv(name, raising=False)

    settings = get_wizard_settings()

    assert settings.horizon_year == "2030"
    assert settings.min_case_chars == 100
    assert settings.log_level == "INFO"
    assert "http://localhost:5173" in settings.allowed_origins


def test_wizard_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRATEGY_HORIZON_YEAR", "2027")
    monkeypatch.setenv("STRATEGY_MIN_CASE_CHARS", "not-a-number")
    monkeypatch.setenv("STRATEGY_LOG_LEVEL", "debug")
    monkeypatch.setenv("STRATEGY_ALLOWED_ORIGINS", "https://app.example.com, https://admin.example.com")

    settings = get_wizard_settings()

    assert settings.horizon_year == "2027"
    assert settings.min_case_chars == 100
    assert settings.log_level == "DEBUG"
    assert settings.allowed_origins == ["https://app.example.com", "https://admin.example.com"]
