"""Staged generation of the 2x2 scenario matrix.

A run moves through ``idle -> axis_context_pending -> quadrant_pending ->
complete | partial_failure``. Both axis contexts must resolve before any
quadrant prompt is built, because every quadrant prompt quotes them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from .config import get_wizard_settings
from .errors import BackendError, IncompleteMatrixError
from .formatting import format_scenarios_markdown
from .llm import GenerationBackend
from .logging_utils import preview
from .memory import SessionMemory, WizardSession
from .parsing import ParseFailure, parse_axis_context, parse_matrix_scenario
from .prompts import (
    QUADRANTS,
    QuadrantDescriptor,
    axis_context_prompt,
    case_title_and_context,
    classify_industry,
    quadrant_prompt,
)
from .schemas import (
    FAILED_SCENARIO,
    AxisContext,
    MatrixScenario,
    Notice,
    RunState,
    ScenarioMatrixResult,
    SelectedPoint,
    SteepFactor,
    WizardStep,
)
from .selection import resolve_axes

logger = logging.getLogger(__name__)

DEFAULT_AXIS_CONTEXTS: Dict[SteepFactor, AxisContext] = {
    SteepFactor.SOCIAL: AxisContext(low="Traditional behaviours persist", high="Rapid social change"),
    SteepFactor.TECHNOLOGICAL: AxisContext(low="Slow technology adoption", high="Rapid technological disruption"),
    SteepFactor.ECONOMIC: AxisContext(low="Economic downturn", high="Strong economic growth"),
    SteepFactor.ENVIRONMENTAL: AxisContext(low="Limited climate action", high="Aggressive sustainability push"),
    SteepFactor.POLITICAL: AxisContext(low="Deregulated environment", high="Heavy regulatory intervention"),
}
NEUTRAL_AXIS_CONTEXT = AxisContext(low="Low", high="High")


def default_axis_context(factor: SteepFactor) -> AxisContext:
    return DEFAULT_AXIS_CONTEXTS.get(factor, NEUTRAL_AXIS_CONTEXT)


def scenario_notice(result: ScenarioMatrixResult) -> Notice:
    failed = sum(1 for scenario in result.scenarios if scenario.is_sentinel)
    if result.superseded:
        return Notice(
            title="Scenario run replaced",
            description="A newer scenario generation started; these results were not saved.",
        )
    if failed:
        return Notice(
            title="Scenario Matrix Ready",
            description=f"{failed} of {len(QUADRANTS)} quadrants could not be generated. Generate again to retry.",
        )
    return Notice(
        title="Scenario Matrix Ready",
        description="Generated 2x2 scenario matrix using your selected uncertainties.",
    )


class ScenarioOrchestrator:
    """Run one scenario-generation pass for a wizard session."""

    def __init__(self, backend: GenerationBackend, memory: SessionMemory) -> None:
        self.backend = backend
        self.memory = memory
        self.state = RunState.IDLE

    async def _axis_context(
        self,
        case_title: str,
        industry: str,
        horizon_year: str,
        axis: SelectedPoint,
    ) -> AxisContext:
        spec = axis_context_prompt(case_title, industry, horizon_year, axis)
        try:
            raw = await self.backend.generate(spec)
        except BackendError as exc:
            logger.warning("Axis context for %s fell back to defaults: %s", axis.factor.value, exc)
            return default_axis_context(axis.factor)

        context = parse_axis_context(raw)
        if isinstance(context, ParseFailure):
            logger.warning(
                "Axis context for %s unparseable (%s): %s", axis.factor.value, context.reason, preview(raw)
            )
            return default_axis_context(axis.factor)
        return context

    async def _quadrant(
        self,
        case_title: str,
        industry: str,
        horizon_year: str,
        axes: Sequence[SelectedPoint],
        axis_contexts: Sequence[AxisContext],
        quadrant: QuadrantDescriptor,
    ) -> MatrixScenario:
        y_axis, x_axis = axes
        spec = quadrant_prompt(case_title, industry, horizon_year, y_axis, x_axis, quadrant, axis_contexts)
        try:
            raw = await self.backend.generate(spec)
        except BackendError as exc:
            logger.warning("Quadrant %s failed: %s", quadrant.key, exc)
            return FAILED_SCENARIO.model_copy(deep=True)

        scenario = parse_matrix_scenario(raw)
        if isinstance(scenario, ParseFailure):
            logger.warning("Quadrant %s unparseable (%s): %s", quadrant.key, scenario.reason, preview(raw))
            return FAILED_SCENARIO.model_copy(deep=True)
        return scenario

    async def run(
        self,
        session: WizardSession,
        axes: Optional[Sequence[SelectedPoint]] = None,
        horizon_year: Optional[str] = None,
    ) -> ScenarioMatrixResult:
        """Generate, gate and persist the matrix for *session*.

        ``axes`` defaults to the session's current STEEP selection; the first
        entry is the Y axis and the second the X axis.
        """

        requested = list(axes) if axes is not None else session.selection().selected_points()
        resolved_axes = resolve_axes(session.steep_groups, requested)

        run_id = session.start_scenario_run()
        case_title, _ = case_title_and_context(session.case_text)
        industry = session.industry or classify_industry(session.case_text)
        horizon = horizon_year or get_wizard_settings().horizon_year
        logger.info(
            "Scenario run %d for %s: %s x %s",
            run_id,
            session.session_id,
            resolved_axes[0].factor.value,
            resolved_axes[1].factor.value,
        )

        self.state = RunState.AXIS_CONTEXT_PENDING
        contexts = await asyncio.gather(
            *(self._axis_context(case_title, industry, horizon, axis) for axis in resolved_axes),
            return_exceptions=True,
        )
        axis_contexts: List[AxisContext] = []
        for axis, context in zip(resolved_axes, contexts):
            if isinstance(context, AxisContext):
                axis_contexts.append(context)
            else:
                logger.error("Axis context for %s raised unexpectedly", axis.factor.value, exc_info=context)
                axis_contexts.append(default_axis_context(axis.factor))

        self.state = RunState.QUADRANT_PENDING
        outcomes = await asyncio.gather(
            *(
                self._quadrant(case_title, industry, horizon, resolved_axes, axis_contexts, quadrant)
                for quadrant in QUADRANTS
            ),
            return_exceptions=True,
        )
        scenarios: List[MatrixScenario] = []
        for quadrant, outcome in zip(QUADRANTS, outcomes):
            if isinstance(outcome, MatrixScenario):
                scenarios.append(outcome)
            elif isinstance(outcome, Exception):
                logger.error("Quadrant %s raised unexpectedly", quadrant.key, exc_info=outcome)
                scenarios.append(FAILED_SCENARIO.model_copy(deep=True))

        if len(scenarios) != len(QUADRANTS):
            self.state = RunState.IDLE
            raise IncompleteMatrixError(
                "Scenario format error",
                "Could not generate all four quadrants. Please try again.",
            )

        failed = sum(1 for scenario in scenarios if scenario.is_sentinel)
        final_state = RunState.PARTIAL_FAILURE if failed else RunState.COMPLETE
        result = ScenarioMatrixResult(
            run_id=run_id,
            state=final_state,
            scenarios=scenarios,
            axes=resolved_axes,
            axis_contexts=axis_contexts,
            industry=industry,
            horizon_year=horizon,
        )
        self.state = final_state

        if not session.is_current_run(run_id):
            logger.info("Scenario run %d superseded by run %d; result discarded", run_id, session.scenario_run_id)
            return result.model_copy(update={"superseded": True})

        self.memory.store_step(session, WizardStep.SCENARIOS, result, format_scenarios_markdown(result))
        logger.info("Scenario run %d finished as %s (%d failed quadrants)", run_id, final_state.value, failed)
        return result
