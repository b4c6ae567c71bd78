"""Wizard step runners: everything except the staged scenario run."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .config import get_wizard_settings
from .errors import BackendError, GenerationError, WizardValidationError
from .formatting import (
    format_competitors_markdown,
    format_dots_markdown,
    format_horizons_markdown,
    format_metrics_markdown,
    format_steep_markdown,
)
from .llm import GenerationBackend
from .logging_utils import preview
from .memory import SessionMemory, WizardSession
from .parsing import (
    ParseFailure,
    decode_steep_groups,
    parse_competitor_moves,
    parse_competitor_names,
    parse_dots_strategy,
    parse_json_payload,
    parse_success_metrics,
    parse_three_horizons,
)
from .prompts import (
    QUADRANTS,
    SUMMARY_MAX_WORDS,
    PromptSpec,
    classify_industry,
    company_name,
    competitor_identification_prompt,
    competitor_moves_prompt,
    dots_strategy_prompt,
    industry_extraction_prompt,
    steep_analysis_prompt,
    success_metrics_prompt,
    summary_prompt,
    three_horizons_prompt,
)
from .schemas import (
    CompetitorAnalysis,
    CompetitorEntry,
    CompetitorMove,
    CompetitorMoves,
    CompetitorNames,
    DotsStrategy,
    QuadrantCompetitors,
    ScenarioMatrixResult,
    StepDefinition,
    SteepFactorGroup,
    SuccessMetrics,
    ThreeHorizons,
    WizardStep,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PDF_CONTENT_TYPE = "application/pdf"
SUMMARY_FALLBACK = "AI strategy implementation"


# ---------------------------------------------------------------------------
# Step registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StepInfo:
    """Runtime definition used by the registry below."""

    slug: WizardStep
    label: str
    description: str


STEP_REGISTRY: Dict[WizardStep, StepInfo] = {
    WizardStep.STEEP: StepInfo(
        slug=WizardStep.STEEP,
        label="STEEP Analysis",
        description="Scan Social, Technological, Economic, Environmental and Political factors.",
    ),
    WizardStep.SCENARIOS: StepInfo(
        slug=WizardStep.SCENARIOS,
        label="Scenario Matrix",
        description="Cross two key uncertainties into a 2x2 matrix of future scenarios.",
    ),
    WizardStep.COMPETITORS: StepInfo(
        slug=WizardStep.COMPETITORS,
        label="Competitor Mapping",
        description="Predict how incumbents, insurgents and adjacents move in each scenario.",
    ),
    WizardStep.STRATEGIC_OPTIONS: StepInfo(
        slug=WizardStep.STRATEGIC_OPTIONS,
        label="Strategic Options",
        description="Frame Drivers, Opportunities, Threats and the Strategic response.",
    ),
    WizardStep.IMPLEMENTATION: StepInfo(
        slug=WizardStep.IMPLEMENTATION,
        label="Implementation Plan",
        description="Sequence initiatives across the Three Horizons.",
    ),
    WizardStep.SUCCESS_METRICS: StepInfo(
        slug=WizardStep.SUCCESS_METRICS,
        label="Success Metrics",
        description="Define measurable KPIs for each horizon.",
    ),
}


def list_step_definitions() -> List[StepDefinition]:
    """Return UI-friendly descriptors for all steps."""

    return [
        StepDefinition(id=info.slug, label=info.label, description=info.description)
        for info in sorted(STEP_REGISTRY.values(), key=lambda item: item.slug.order)
    ]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


async def _attempt(
    backend: GenerationBackend,
    spec: PromptSpec,
    parser: Callable[[Any], T | ParseFailure],
    what: str,
) -> Optional[T]:
    """Call the backend once and decode the reply; ``None`` on any failure."""

    try:
        raw = await backend.generate(spec)
    except BackendError as exc:
        logger.warning("%s request failed: %s", what, exc)
        return None
    parsed = parser(raw)
    if isinstance(parsed, ParseFailure):
        logger.warning("%s reply unparseable (%s): %s", what, parsed.reason, preview(raw))
        return None
    return parsed


def save_groups(memory: SessionMemory, session: WizardSession, groups: List[SteepFactorGroup]) -> None:
    """Write STEEP groups back to the session cache and refresh the export."""

    session.steep_groups = groups
    session.markdown[WizardStep.STEEP] = format_steep_markdown(groups)


# ---------------------------------------------------------------------------
# Document gate and industry
# ---------------------------------------------------------------------------


def accept_case_text(
    memory: SessionMemory,
    case_text: str,
    content_type: Optional[str] = None,
) -> WizardSession:
    """Validate extracted case text and open a session for it."""

    if content_type is not None and content_type != PDF_CONTENT_TYPE:
        raise WizardValidationError("Invalid file type", "Please upload a PDF file.")
    min_chars = get_wizard_settings().min_case_chars
    if len(case_text.strip()) < min_chars:
        raise WizardValidationError("Insufficient content", "The PDF doesn't contain enough text for analysis.")

    session = memory.create(case_text)
    logger.info("Opened session %s with %d characters of case text", session.session_id, len(case_text))
    return session


def _parse_industry(raw: Any) -> str | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    industry = str(payload.get("industry") or "").strip().strip("'\"")
    if len(industry) < 3 or len(industry) > 50:
        return ParseFailure("industry name out of range", str(raw))
    return industry


async def resolve_industry(backend: GenerationBackend, session: WizardSession) -> str:
    """Ask the backend for the case's industry; keyword match on failure."""

    if session.industry:
        return session.industry
    industry = await _attempt(backend, industry_extraction_prompt(session.case_text), _parse_industry, "Industry")
    session.industry = industry or classify_industry(session.case_text)
    return session.industry


# ---------------------------------------------------------------------------
# Step 1: STEEP
# ---------------------------------------------------------------------------


async def generate_steep(
    backend: GenerationBackend,
    memory: SessionMemory,
    session: WizardSession,
) -> List[SteepFactorGroup]:
    groups = await _attempt(backend, steep_analysis_prompt(session.case_text), decode_steep_groups, "STEEP")
    if groups is None:
        raise GenerationError(
            "Error processing analysis",
            "Could not parse 3-point STEEP analysis from AI response.",
        )
    save_groups(memory, session, groups)
    return groups


# ---------------------------------------------------------------------------
# Step 3: competitors
# ---------------------------------------------------------------------------

_COMPETITOR_TYPES = (("incumbents", "Incumbent"), ("insurgents", "Insurgent"), ("adjacents", "Adjacent"))
_FALLBACK_ACTIONS = {
    "incumbents": "Maintain market position",
    "insurgents": "Disrupt traditional models",
    "adjacents": "Consider market entry",
}
_LEGAL_SUFFIX = re.compile(r"\s+(inc|corp|ltd|llc|corporation|company)\.?$", re.IGNORECASE)


def company_logo_url(name: str) -> str:
    cleaned = _LEGAL_SUFFIX.sub("", name.lower())
    cleaned = re.sub(r"[^a-z0-9]", "", cleaned)
    return f"https://logo.clearbit.com/{cleaned}.com"


def company_initials(name: str) -> str:
    return "".join(word[0].upper() for word in name.split() if word)[:2]


def _fallback_moves(names: CompetitorNames) -> CompetitorMoves:
    return CompetitorMoves(
        **{
            key: [CompetitorMove(name=name, action=_FALLBACK_ACTIONS[key]) for name in getattr(names, key)]
            for key, _ in _COMPETITOR_TYPES
        }
    )


async def generate_competitors(
    backend: GenerationBackend,
    memory: SessionMemory,
    session: WizardSession,
) -> CompetitorAnalysis:
    scenarios = memory.load_step(session, WizardStep.SCENARIOS, ScenarioMatrixResult)
    if scenarios is None:
        raise WizardValidationError("Missing Step 2 Data", "Please complete Step 2 scenario matrix first.")

    company = company_name(session.case_text)
    names = await _attempt(
        backend,
        competitor_identification_prompt(company, session.case_text),
        parse_competitor_names,
        "Competitor identification",
    )
    if names is None:
        raise GenerationError("Analysis Error", "Could not parse competitor identification response.")

    async def quadrant_moves(index: int) -> CompetitorMoves:
        spec = competitor_moves_prompt(
            company,
            QUADRANTS[index],
            scenarios.axes,
            scenarios.axis_contexts,
            names.incumbents,
            names.insurgents,
            names.adjacents,
        )
        moves = await _attempt(backend, spec, parse_competitor_moves, f"Competitor moves ({QUADRANTS[index].key})")
        return moves or _fallback_moves(names)

    all_moves = await asyncio.gather(*(quadrant_moves(index) for index in range(len(QUADRANTS))))

    quadrants = []
    for moves in all_moves:
        entries = [
            CompetitorEntry(type=label, name=move.name, action=move.action, logo_url=company_logo_url(move.name))
            for key, label in _COMPETITOR_TYPES
            for move in getattr(moves, key)
        ]
        quadrants.append(QuadrantCompetitors(competitors=entries))

    analysis = CompetitorAnalysis(
        company_name=company,
        competitors=quadrants,
        axes=scenarios.axes,
        axis_contexts=scenarios.axis_contexts,
    )
    memory.store_step(session, WizardStep.COMPETITORS, analysis, format_competitors_markdown(analysis))
    return analysis


# ---------------------------------------------------------------------------
# Steps 4-6
# ---------------------------------------------------------------------------


def _cached_dump(memory: SessionMemory, session: WizardSession, step: WizardStep, model_type: type) -> Any:
    cached = memory.load_step(session, step, model_type)
    return cached.model_dump(mode="json") if cached else None


def _generation_failed(what: str) -> GenerationError:
    return GenerationError("Generation Failed", f"Failed to generate the {what}. Please try again.")


async def generate_dots(
    backend: GenerationBackend,
    memory: SessionMemory,
    session: WizardSession,
) -> DotsStrategy:
    steep = [group.model_dump(mode="json") for group in session.steep_groups]
    spec = dots_strategy_prompt(
        session.case_text,
        steep,
        _cached_dump(memory, session, WizardStep.SCENARIOS, ScenarioMatrixResult),
        _cached_dump(memory, session, WizardStep.COMPETITORS, CompetitorAnalysis),
    )
    dots = await _attempt(backend, spec, parse_dots_strategy, "DOTS")
    if dots is None:
        raise _generation_failed("DOTS Strategy")
    memory.store_step(session, WizardStep.STRATEGIC_OPTIONS, dots, format_dots_markdown(dots))
    return dots


async def generate_horizons(
    backend: GenerationBackend,
    memory: SessionMemory,
    session: WizardSession,
) -> ThreeHorizons:
    spec = three_horizons_prompt(
        session.case_text,
        _cached_dump(memory, session, WizardStep.SCENARIOS, ScenarioMatrixResult),
        _cached_dump(memory, session, WizardStep.STRATEGIC_OPTIONS, DotsStrategy),
    )
    horizons = await _attempt(backend, spec, parse_three_horizons, "Three Horizons")
    if horizons is None:
        raise _generation_failed("Three Horizons Implementation")
    memory.store_step(session, WizardStep.IMPLEMENTATION, horizons, format_horizons_markdown(horizons))
    return horizons


async def generate_success_metrics(
    backend: GenerationBackend,
    memory: SessionMemory,
    session: WizardSession,
) -> SuccessMetrics:
    spec = success_metrics_prompt(
        session.case_text,
        _cached_dump(memory, session, WizardStep.STRATEGIC_OPTIONS, DotsStrategy),
        _cached_dump(memory, session, WizardStep.IMPLEMENTATION, ThreeHorizons),
    )
    metrics = await _attempt(backend, spec, parse_success_metrics, "Success metrics")
    if metrics is None:
        raise _generation_failed("Success Metrics")
    memory.store_step(session, WizardStep.SUCCESS_METRICS, metrics, format_metrics_markdown(metrics))
    return metrics


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def _truncate_words(text: str, limit: int = SUMMARY_MAX_WORDS) -> str:
    return " ".join(text.split()[:limit])


def _parse_summary(raw: Any) -> str | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    summary = str(payload.get("summary") or "").replace('"', "").replace("'", "").strip()
    return summary or ParseFailure("empty summary", str(raw))


async def summarize(backend: GenerationBackend, text: str) -> str:
    """Summarize *text* in at most eight words, truncating on failure."""

    summary = await _attempt(backend, summary_prompt(text), _parse_summary, "Summary")
    if summary is None:
        return _truncate_words(text) or SUMMARY_FALLBACK
    return _truncate_words(summary)
