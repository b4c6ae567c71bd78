"""Prompt builders for every generation call the wizard makes.

All builders are pure: they take case details and prior-step data and return a
:class:`PromptSpec`. Every spec asks for a JSON reply; checking that the reply
actually complies is left to :mod:`strategy_flow.parsing`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from textwrap import dedent
from typing import Any, List, Literal, Optional, Sequence, Tuple

from .schemas import AxisContext, SelectedPoint

DEFAULT_INDUSTRY = "Technology and Innovation"
DEFAULT_CASE_CONTEXT = "See case study background above."
DEFAULT_COMPANY_NAME = "the organization"
INDUSTRY_PROMPT_CHARS = 3000
MAX_PROMPT_CASE_CHARS = 30000
SUMMARY_MAX_WORDS = 8


@dataclass(frozen=True)
class PromptSpec:
    """Container describing how to call the LLM for one request."""

    system_prompt: str
    user_prompt: str
    temperature: float = 0.7
    max_tokens: int = 900
    json_mode: bool = True


# ---------------------------------------------------------------------------
# Case helpers
# ---------------------------------------------------------------------------

INDUSTRY_KEYWORDS: Sequence[Tuple[str, Sequence[str]]] = (
    (
        "Artificial Intelligence and Machine Learning",
        ("ai", "a.i.", "artificial intelligence", "machine learning", "ml", "deep learning",
         "neural network", "generative ai", "llm", "large language model"),
    ),
    (
        "Technology",
        ("technology company", "tech company", "software", "saas", "cloud", "semiconductor",
         "internet", "cybersecurity"),
    ),
    (
        "Automotive",
        ("automotive", "automaker", "car", "cars", "vehicle", "vehicles", "electric vehicle", "ev", "evs"),
    ),
    (
        "Healthcare",
        ("healthcare", "health care", "hospital", "medical", "pharmaceutical", "pharma", "patient",
         "patients", "clinic", "biotech"),
    ),
    (
        "Financial Services",
        ("bank", "banking", "banks", "fintech", "financial services", "insurance", "insurer",
         "payments", "lending", "asset management"),
    ),
    (
        "Retail",
        ("retail", "retailer", "retailers", "store", "stores", "e-commerce", "ecommerce", "grocery",
         "shopping", "consumer goods"),
    ),
    (
        "Energy",
        ("energy", "oil", "gas", "solar", "renewable", "renewables", "utility", "utilities", "wind power",
         "power grid"),
    ),
)


def _keyword_pattern(keywords: Sequence[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)", re.IGNORECASE)


_INDUSTRY_PATTERNS = [(industry, _keyword_pattern(keywords)) for industry, keywords in INDUSTRY_KEYWORDS]


def classify_industry(text: str) -> str:
    """Map free text onto an industry bucket by ordered keyword precedence."""

    for industry, pattern in _INDUSTRY_PATTERNS:
        if pattern.search(text or ""):
            return industry
    return DEFAULT_INDUSTRY


_TITLE_LINE = re.compile(r"^\s*Title:?\s*(.+?)\s*$", re.MULTILINE)
_COMPANY_LINE = re.compile(r"(?:Company|Corporation|Inc|Ltd|Corp|LLC):\s*([^,\n]+)", re.IGNORECASE)


def case_title_and_context(case_text: str) -> Tuple[str, str]:
    """Pull a title and a one-paragraph context out of extracted case text."""

    lines = [line.strip() for line in case_text.splitlines() if line.strip()]
    match = _TITLE_LINE.search(case_text)
    title = match.group(1) if match else (lines[0] if lines else "")
    context = " ".join(lines[1:]) if len(lines) > 1 else ""
    return title, context or DEFAULT_CASE_CONTEXT


def company_name(case_text: str) -> str:
    lines = [line.strip() for line in case_text.splitlines() if line.strip()]
    for line in lines[:5]:
        match = _COMPANY_LINE.search(line)
        if match:
            return match.group(1).strip()
    return DEFAULT_COMPANY_NAME


def _case_excerpt(case_text: str, limit: int = MAX_PROMPT_CASE_CHARS) -> str:
    return case_text if len(case_text) <= limit else case_text[:limit]


def _pretty_json(data: Any, fallback: str) -> str:
    if not data:
        return fallback
    try:
        return json.dumps(data, indent=2)
    except TypeError:
        return json.dumps(json.loads(json.dumps(data, default=str)), indent=2)


# ---------------------------------------------------------------------------
# Quadrants
# ---------------------------------------------------------------------------

Level = Literal["High", "Low"]


@dataclass(frozen=True)
class QuadrantDescriptor:
    """One cell of the 2x2 matrix and the axis levels it represents."""

    key: str
    label: str
    description: str
    y_level: Level
    x_level: Level

    @staticmethod
    def _phrase(level: Level, context: Optional[AxisContext]) -> str:
        if context is None:
            return level
        return context.high if level == "High" else context.low

    def y_phrase(self, context: Optional[AxisContext]) -> str:
        return self._phrase(self.y_level, context)

    def x_phrase(self, context: Optional[AxisContext]) -> str:
        return self._phrase(self.x_level, context)


QUADRANTS: Tuple[QuadrantDescriptor, ...] = (
    QuadrantDescriptor(
        key="yHigh_xHigh",
        label="High Y, High X",
        description="Both axes (Y and X) at their high/extreme/positive setting.",
        y_level="High",
        x_level="High",
    ),
    QuadrantDescriptor(
        key="yHigh_xLow",
        label="High Y, Low X",
        description="Y axis high, X axis low.",
        y_level="High",
        x_level="Low",
    ),
    QuadrantDescriptor(
        key="yLow_xLow",
        label="Low Y, Low X",
        description="Both axes at their low/extreme/negative setting.",
        y_level="Low",
        x_level="Low",
    ),
    QuadrantDescriptor(
        key="yLow_xHigh",
        label="Low Y, High X",
        description="Y axis low, X axis high.",
        y_level="Low",
        x_level="High",
    ),
)


# ---------------------------------------------------------------------------
# Step 1: STEEP and industry
# ---------------------------------------------------------------------------


def steep_analysis_prompt(case_text: str) -> PromptSpec:
    user_prompt = dedent(
        f"""
        You are an expert strategy consultant at BCG. Based on the provided case study, provide an in-depth,
        up-to-date STEEP analysis with 3 points per category (Social, Technological, Economic,
        Environmental, Political).

        - Return a JSON object {{"steepAnalysis": [...]}} whose array holds exactly 5 objects
          (order: Social, Technological, Economic, Environmental, Political)
        - Each object MUST have "factor" (as above) and "points" (array of 3 string analysis points,
          each 2-3 sentences, specific and actionable)
        - JSON only, no markdown, no prose.

        Case Study:
        ---
        {_case_excerpt(case_text)}
        ---
        """
    )
    return PromptSpec(
        system_prompt="You are an expert in external environment scanning and strategic foresight.",
        user_prompt=user_prompt,
        temperature=0.4,
        max_tokens=2048,
    )


def industry_extraction_prompt(case_text: str) -> PromptSpec:
    user_prompt = dedent(
        f"""
        TASK: Analyze the following case study content and identify the primary industry/sector.

        CASE CONTENT:
        {case_text[:INDUSTRY_PROMPT_CHARS]}

        INSTRUCTIONS:
        - Return a specific, clear industry name (e.g., "Beverage Industry", "Healthcare", "Automotive")
        - Be specific but concise (2-4 words maximum)
        - Focus on the main business sector, not sub-categories
        - If multiple industries are mentioned, choose the primary one

        Respond with JSON only: {{"industry": "Industry Name"}}
        """
    )
    return PromptSpec(
        system_prompt="You classify business case studies by industry.",
        user_prompt=user_prompt,
        temperature=0.1,
        max_tokens=50,
    )


# ---------------------------------------------------------------------------
# Step 2: scenario matrix
# ---------------------------------------------------------------------------


def axis_context_prompt(case_title: str, industry: str, horizon_year: str, axis: SelectedPoint) -> PromptSpec:
    user_prompt = dedent(
        f"""
        CASE_TITLE: "{case_title}"
        INDUSTRY_OR_CONTEXT: "{industry}"
        HORIZON_YEAR: {horizon_year}
        UNCERTAINTY ({axis.factor.value}): "{axis.text}"

        Describe the two opposite extremes of how this uncertainty could unfold by {horizon_year}.
        - "low": 2-4 words naming the low/negative/slow end of the axis
        - "high": 2-4 words naming the high/positive/fast end of the axis
        - Plain words, no punctuation at the end, no jargon.

        Return a compact, valid JSON object (no extra prose, no markdown):
        {{"low": "...", "high": "..."}}
        REPLY WITH JSON ONLY.
        """
    )
    return PromptSpec(
        system_prompt="You are a scenario-planning facilitator who names axis extremes crisply.",
        user_prompt=user_prompt,
        temperature=0.2,
        max_tokens=150,
    )


def quadrant_prompt(
    case_title: str,
    industry: str,
    horizon_year: str,
    y_axis: SelectedPoint,
    x_axis: SelectedPoint,
    quadrant: QuadrantDescriptor,
    axis_contexts: Optional[Sequence[AxisContext]] = None,
) -> PromptSpec:
    """Build the prompt for one quadrant.

    ``axis_contexts`` is ``[y_context, x_context]``. When present, the axis
    poles are described with the generated phrases so that all four quadrants
    use the same wording.
    """

    y_context, x_context = (axis_contexts[0], axis_contexts[1]) if axis_contexts else (None, None)
    y_low, y_high = (y_context.low, y_context.high) if y_context else ("Low", "High")
    x_low, x_high = (x_context.low, x_context.high) if x_context else ("Low", "High")

    user_prompt = dedent(
        f"""
        CASE_TITLE: "{case_title}"
        INDUSTRY_OR_CONTEXT: "{industry}"
        HORIZON_YEAR: {horizon_year}
        X_AXIS: "{x_axis.factor.value}: {x_axis.text}" (LOW = "{x_low}", HIGH = "{x_high}")
        Y_AXIS: "{y_axis.factor.value}: {y_axis.text}" (LOW = "{y_low}", HIGH = "{y_high}")

        QUADRANT: {quadrant.label} ({quadrant.description})
        For the quadrant where Y is "{quadrant.y_phrase(y_context)}" and X is "{quadrant.x_phrase(x_context)}", write:
        1. A summary title of at most 8 words
        2. A 1-sentence header that starts with "In this scenario, ..."
        3. Exactly 3 concise bullet points covering market dynamics, product / service implications,
           and operational or partnership impacts.

        STYLE
        - At most 70 words in total for header plus bullets
        - Bullet verbs in present tense ("Accelerates...", "Constrains...")
        - No industry jargon unless present in CASE_TITLE
        - Ready for direct copy-paste into slides.

        Return a compact, valid JSON object (no extra prose, no markdown) in this schema:
        {{
          "summary": "Scenario title",
          "header": "In this scenario, ...",
          "bullets": ["Bullet point 1", "Bullet point 2", "Bullet point 3"]
        }}
        REPLY WITH JSON ONLY.
        """
    )
    return PromptSpec(
        system_prompt="You are a scenario-planning expert who writes slide-ready scenario narratives.",
        user_prompt=user_prompt,
        temperature=0.2,
        max_tokens=500,
    )


# ---------------------------------------------------------------------------
# Step 3: competitors
# ---------------------------------------------------------------------------


def competitor_identification_prompt(company: str, case_text: str) -> PromptSpec:
    user_prompt = dedent(
        f"""
        Based on this case study, identify the main competitors for {company} in 3 categories:

        1. INCUMBENTS: 3 established, dominant players in the same industry/market
        2. INSURGENTS: 3 newer, disruptive companies challenging the status quo
        3. ADJACENTS: 3 companies from related industries that could enter this market

        For each competitor, provide just the company name (no descriptions).

        Case Study:
        ---
        {_case_excerpt(case_text)}
        ---

        Respond in this exact JSON format:
        {{
          "incumbents": ["Company1", "Company2", "Company3"],
          "insurgents": ["Company1", "Company2", "Company3"],
          "adjacents": ["Company1", "Company2", "Company3"]
        }}
        """
    )
    return PromptSpec(
        system_prompt="You are a competitive-intelligence analyst.",
        user_prompt=user_prompt,
        temperature=0.3,
        max_tokens=400,
    )


def competitor_moves_prompt(
    company: str,
    quadrant: QuadrantDescriptor,
    axes: Sequence[SelectedPoint],
    axis_contexts: Sequence[AxisContext],
    incumbents: List[str],
    insurgents: List[str],
    adjacents: List[str],
) -> PromptSpec:
    y_axis, x_axis = axes[0], axes[1]
    y_context = axis_contexts[0] if len(axis_contexts) > 0 else None
    x_context = axis_contexts[1] if len(axis_contexts) > 1 else None

    def _example(names: List[str]) -> str:
        return ",\n            ".join(
            f'{{"name": "{name}", "action": "Strategic move in 15 words or less"}}' for name in names
        )

    user_prompt = dedent(
        f"""
        Given this scenario quadrant where {y_axis.factor.value} is {quadrant.y_level.lower()} ({quadrant.y_phrase(y_context)}) and {x_axis.factor.value} is {quadrant.x_level.lower()} ({quadrant.x_phrase(x_context)}):

        For each of these competitors, predict their most likely strategic move in this quadrant (max 15 words):

        INCUMBENTS: {', '.join(incumbents)}
        INSURGENTS: {', '.join(insurgents)}
        ADJACENTS: {', '.join(adjacents)}

        Case Context: {company}

        Respond in this exact JSON format:
        {{
          "incumbents": [
            {_example(incumbents)}
          ],
          "insurgents": [
            {_example(insurgents)}
          ],
          "adjacents": [
            {_example(adjacents)}
          ]
        }}
        """
    )
    return PromptSpec(
        system_prompt="You are a competitive-strategy analyst who predicts rival moves under uncertainty.",
        user_prompt=user_prompt,
        temperature=0.4,
        max_tokens=900,
    )


# ---------------------------------------------------------------------------
# Steps 4-6: DOTS, Three Horizons, success metrics
# ---------------------------------------------------------------------------


def dots_strategy_prompt(
    case_text: str,
    steep_analysis: Any,
    scenario_matrix: Any,
    competitor_analysis: Any,
) -> PromptSpec:
    user_prompt = dedent(
        f"""
        Based on the following business context, create a comprehensive DOTS Strategy analysis.

        CASE CONTENT:
        {_case_excerpt(case_text)}

        STEEP ANALYSIS:
        {_pretty_json(steep_analysis, "No STEEP analysis provided.")}

        SCENARIO MATRIX:
        {_pretty_json(scenario_matrix, "No scenario matrix provided.")}

        COMPETITOR ANALYSIS:
        {_pretty_json(competitor_analysis, "No competitor analysis provided.")}

        Return JSON with:
        {{
          "drivers": [3-4 key strategic drivers: internal capabilities, market forces, technological shifts, regulatory changes],
          "opportunities": [3-4 major strategic opportunities: market expansion, innovation areas, partnerships],
          "threats": [3-4 significant strategic threats: competitive pressures, disruptions, regulatory risks],
          "strategicResponse": [3-4 high-level strategic themes that address the drivers, capitalize on opportunities, and mitigate threats]
        }}

        Every list item is a single plain-text string. Keep each section focused on strategic-level insights.
        """
    )
    return PromptSpec(
        system_prompt="You are a senior strategy partner who turns analysis into strategic direction.",
        user_prompt=user_prompt,
        temperature=0.7,
        max_tokens=1500,
    )


def three_horizons_prompt(
    case_text: str,
    scenario_matrix: Any,
    dots_strategy: Any,
) -> PromptSpec:
    user_prompt = dedent(
        f"""
        Based on the following business context, create a McKinsey Three Horizons strategic roadmap.

        CASE CONTENT:
        {_case_excerpt(case_text)}

        SCENARIO MATRIX:
        {_pretty_json(scenario_matrix, "No scenario matrix provided.")}

        DOTS STRATEGY:
        {_pretty_json(dots_strategy, "No DOTS strategy provided.")}

        Return JSON with exactly this structure:
        {{
          "horizon1": {{"focus1": string, "focus2": string, "strategy": string}},
          "horizon2": {{"focus1": string, "focus2": string, "strategy": string}},
          "horizon3": {{"focus1": string, "focus2": string, "strategy": string}}
        }}

        - horizon1 (0-2 years): optimize the core business
        - horizon2 (3-4 years): adjacent opportunities
        - horizon3 (5-6 years): breakthrough innovation
        - Each focus is one specific, actionable initiative; each strategy is 2-3 sentences.
        """
    )
    return PromptSpec(
        system_prompt="You are an implementation strategist who sequences initiatives across horizons.",
        user_prompt=user_prompt,
        temperature=0.7,
        max_tokens=1500,
    )


def success_metrics_prompt(
    case_text: str,
    dots_strategy: Any,
    three_horizons: Any,
) -> PromptSpec:
    user_prompt = dedent(
        f"""
        Define the success metrics for the strategy below.

        CASE CONTENT:
        {_case_excerpt(case_text)}

        DOTS STRATEGY:
        {_pretty_json(dots_strategy, "No DOTS strategy provided.")}

        IMPLEMENTATION PLAN (THREE HORIZONS):
        {_pretty_json(three_horizons, "No implementation plan provided.")}

        Return JSON with:
        {{
          "metrics": [
            {{"name": string, "target": string, "horizon": "Horizon 1" | "Horizon 2" | "Horizon 3"}}
          ]
        }}

        Provide 5-8 measurable KPIs with concrete targets, spread across the three horizons.
        """
    )
    return PromptSpec(
        system_prompt="You are a performance-management expert who designs KPI frameworks.",
        user_prompt=user_prompt,
        temperature=0.5,
        max_tokens=900,
    )


def summary_prompt(text: str) -> PromptSpec:
    user_prompt = dedent(
        f"""
        Summarize this text in EXACTLY {SUMMARY_MAX_WORDS} words or less. Count carefully.

        Examples of good summaries:
        - "Focus AI safety research community engagement"
        - "Build reputation through responsible AI development"

        Text to summarize: "{text}"

        Respond with JSON only: {{"summary": "..."}}
        """
    )
    return PromptSpec(
        system_prompt="You write extremely short headline summaries.",
        user_prompt=user_prompt,
        temperature=0.1,
        max_tokens=40,
    )
