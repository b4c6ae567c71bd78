"""Application factory for the StrategyBuilder FastAPI backend."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_llm_settings, get_wizard_settings
from .llm import GenerationBackend, build_backend
from .logging_utils import configure_logging
from .memory import SessionMemory
from .routers import wizard


def create_app(backend: GenerationBackend | None = None, memory: SessionMemory | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    ``backend`` replaces the OpenAI-compatible client, which is how tests
    script model replies.
    """
    wizard_settings = get_wizard_settings()
    logger = configure_logging(wizard_settings.log_level)

    app = FastAPI(
        title="StrategyBuilder Backend",
        version="0.1.0",
        description="AI-assisted strategic planning wizard: STEEP, scenarios, competitors and strategy.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=wizard_settings.allowed_origins,
        allow_origin_regex=r"http://localhost:\d+$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    llm_settings = get_llm_settings()
    if backend is None and not llm_settings.has_any_keys:
        logger.warning("No AI provider API key configured; generation steps will fail until one is set.")
    app.state.llm_settings = llm_settings
    app.state.backend = backend or build_backend(llm_settings)
    app.state.memory = memory or SessionMemory()
    app.include_router(wizard.router)
    return app


app = create_app()
