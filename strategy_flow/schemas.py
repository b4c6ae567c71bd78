"""Pydantic models and enums for the StrategyBuilder wizard API."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

MAX_POINTS_PER_FACTOR = 5
GENERATED_POINTS_PER_FACTOR = 3


class SteepFactor(str, Enum):
    """The five STEEP categories, declared in display order."""

    SOCIAL = "Social"
    TECHNOLOGICAL = "Technological"
    ECONOMIC = "Economic"
    ENVIRONMENTAL = "Environmental"
    POLITICAL = "Political"


FACTOR_ORDER: List[SteepFactor] = list(SteepFactor)


class WizardStep(str, Enum):
    """Enumerate the wizard steps."""

    STEEP = "steep"
    SCENARIOS = "scenarios"
    COMPETITORS = "competitors"
    STRATEGIC_OPTIONS = "strategic_options"
    IMPLEMENTATION = "implementation"
    SUCCESS_METRICS = "success_metrics"

    @property
    def order(self) -> int:
        """Return a human-friendly order index for the step."""
        step_order = {
            WizardStep.STEEP: 1,
            WizardStep.SCENARIOS: 2,
            WizardStep.COMPETITORS: 3,
            WizardStep.STRATEGIC_OPTIONS: 4,
            WizardStep.IMPLEMENTATION: 5,
            WizardStep.SUCCESS_METRICS: 6,
        }
        return step_order[self]


class RunState(str, Enum):
    """States of one scenario-generation run."""

    IDLE = "idle"
    AXIS_CONTEXT_PENDING = "axis_context_pending"
    QUADRANT_PENDING = "quadrant_pending"
    COMPLETE = "complete"
    PARTIAL_FAILURE = "partial_failure"


class Notice(BaseModel):
    """User-facing message shown after an operation."""

    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


# ---------------------------------------------------------------------------
# STEEP analysis
# ---------------------------------------------------------------------------


class SteepPoint(BaseModel):
    text: str = ""
    is_user_added: bool = False


class SteepFactorGroup(BaseModel):
    """Points generated (or added) for one STEEP factor."""

    factor: SteepFactor
    points: List[SteepPoint] = Field(default_factory=list)
    selected: List[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_points_and_selection(self) -> "SteepFactorGroup":
        if len(self.points) > MAX_POINTS_PER_FACTOR:
            raise ValueError(f"A factor holds at most {MAX_POINTS_PER_FACTOR} points.")
        if len(set(self.selected)) != len(self.selected):
            raise ValueError("Selected indexes must be unique.")
        for index in self.selected:
            if index < 0 or index >= len(self.points):
                raise ValueError(f"Selected index {index} does not reference a point.")
        return self


class SelectedPoint(BaseModel):
    """Snapshot of a selected point, used as a scenario axis."""

    factor: SteepFactor
    point_idx: int = Field(..., ge=0)
    text: str = ""


class AxisContext(BaseModel):
    """Opposite-pole labels describing one axis."""

    low: str
    high: str


# ---------------------------------------------------------------------------
# Scenario matrix
# ---------------------------------------------------------------------------


class MatrixScenario(BaseModel):
    summary: str = ""
    header: str
    bullets: List[str] = Field(default_factory=list)

    @property
    def is_sentinel(self) -> bool:
        return self == FAILED_SCENARIO


FAILED_SCENARIO = MatrixScenario(
    summary="Generation failed",
    header="Scenario could not be generated",
    bullets=[],
)


class ScenarioMatrixResult(BaseModel):
    """Everything the scenario step hands to later steps."""

    run_id: int
    state: RunState
    scenarios: List[MatrixScenario]
    axes: List[SelectedPoint]
    axis_contexts: List[AxisContext]
    industry: str
    horizon_year: str
    superseded: bool = False


# ---------------------------------------------------------------------------
# Later steps
# ---------------------------------------------------------------------------


CompetitorType = Literal["Incumbent", "Insurgent", "Adjacent"]


class CompetitorEntry(BaseModel):
    type: CompetitorType
    name: str
    action: str
    logo_url: Optional[str] = None


class QuadrantCompetitors(BaseModel):
    competitors: List[CompetitorEntry] = Field(default_factory=list)


class CompetitorNames(BaseModel):
    incumbents: List[str]
    insurgents: List[str]
    adjacents: List[str]


class CompetitorMove(BaseModel):
    name: str
    action: str


class CompetitorMoves(BaseModel):
    incumbents: List[CompetitorMove] = Field(default_factory=list)
    insurgents: List[CompetitorMove] = Field(default_factory=list)
    adjacents: List[CompetitorMove] = Field(default_factory=list)


class CompetitorAnalysis(BaseModel):
    company_name: str
    competitors: List[QuadrantCompetitors]
    axes: List[SelectedPoint]
    axis_contexts: List[AxisContext]


class DotsStrategy(BaseModel):
    drivers: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)
    threats: List[str] = Field(default_factory=list)
    strategic_response: List[str] = Field(default_factory=list)


class HorizonPlan(BaseModel):
    focus1: str = ""
    focus2: str = ""
    strategy: str = ""


class ThreeHorizons(BaseModel):
    horizon1: HorizonPlan
    horizon2: HorizonPlan
    horizon3: HorizonPlan


class SuccessMetric(BaseModel):
    name: str
    target: str = ""
    horizon: str = ""


class SuccessMetrics(BaseModel):
    metrics: List[SuccessMetric] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------


class CaseUploadRequest(BaseModel):
    """Extracted case study text posted by the client."""

    case_text: str = Field(..., description="Text extracted from the uploaded PDF.")
    content_type: Optional[str] = Field(
        default=None,
        description="MIME type of the uploaded file, when the client knows it.",
    )


class CaseUploadResponse(BaseModel):
    session_id: str
    industry_hint: str
    characters: int
    notice: Notice


class StepDefinition(BaseModel):
    """Expose metadata that describes a step to the UI."""

    id: WizardStep
    label: str
    description: str


class SteepResponse(BaseModel):
    groups: List[SteepFactorGroup]
    notice: Optional[Notice] = None


class SteepReplaceRequest(BaseModel):
    groups: List[SteepFactorGroup]


class SelectionRequest(BaseModel):
    factor: SteepFactor
    point_idx: int = Field(..., ge=0)
    checked: bool


class SelectionResponse(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    notice: Optional[Notice] = None
    selected_points: List[SelectedPoint]
    groups: List[SteepFactorGroup]


class AddPointRequest(BaseModel):
    factor: SteepFactor
    text: str = Field(..., min_length=1)


class EditPointRequest(BaseModel):
    factor: SteepFactor
    point_idx: int = Field(..., ge=0)
    text: str


class ScenarioRequest(BaseModel):
    axes: Optional[List[SelectedPoint]] = Field(
        default=None,
        description="Explicit [Y, X] axes; the current STEEP selection is used when omitted.",
    )
    horizon_year: Optional[str] = None


class ScenarioResponse(BaseModel):
    result: ScenarioMatrixResult
    notice: Notice


class StepResultResponse(BaseModel):
    step: WizardStep
    structured: Dict[str, Any]
    markdown: str
    notice: Notice


class SummaryRequest(BaseModel):
    text: str = Field(..., min_length=1)


class SummaryResponse(BaseModel):
    summary: str


class SessionResponse(BaseModel):
    """Aggregate the step results for a session."""

    session_id: str
    industry: Optional[str]
    steps: Dict[str, Dict[str, Any]]
    combined_markdown: str
