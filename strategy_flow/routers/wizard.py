"""Wizard endpoints for the StrategyBuilder FastAPI backend."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import BaseModel

from ..errors import WizardError
from ..llm import GenerationBackend
from ..memory import SessionMemory, WizardSession
from ..parsing import ParseFailure, parse_json_payload
from ..prompts import classify_industry
from ..scenarios import ScenarioOrchestrator, scenario_notice
from ..selection import AxisSelection, check_groups, resolve_axes
from ..schemas import (
    AddPointRequest,
    CaseUploadRequest,
    CaseUploadResponse,
    EditPointRequest,
    Notice,
    ScenarioRequest,
    ScenarioResponse,
    SelectionRequest,
    SelectionResponse,
    SessionResponse,
    StepDefinition,
    StepResultResponse,
    SteepFactor,
    SteepReplaceRequest,
    SteepResponse,
    SummaryRequest,
    SummaryResponse,
    WizardStep,
)
from ..wizard import (
    accept_case_text,
    generate_competitors,
    generate_dots,
    generate_horizons,
    generate_steep,
    generate_success_metrics,
    list_step_definitions,
    resolve_industry,
    save_groups,
    summarize,
)

router = APIRouter(prefix="/wizard", tags=["wizard"])


def _http_error(exc: WizardError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.notice.model_dump())


def _backend(request: Request) -> GenerationBackend:
    return request.app.state.backend


def _memory(request: Request) -> SessionMemory:
    return request.app.state.memory


def _session(request: Request, session_id: str) -> WizardSession:
    try:
        return _memory(request).get(session_id)
    except WizardError as exc:
        raise _http_error(exc) from exc


async def _run_step(
    request: Request,
    session_id: str,
    step: WizardStep,
    runner: Callable[[GenerationBackend, SessionMemory, WizardSession], Awaitable[BaseModel]],
    notice: Notice,
) -> StepResultResponse:
    session = _session(request, session_id)
    try:
        result = await runner(_backend(request), _memory(request), session)
    except WizardError as exc:
        raise _http_error(exc) from exc
    return StepResultResponse(
        step=step,
        structured=result.model_dump(mode="json"),
        markdown=session.markdown.get(step, ""),
        notice=notice,
    )


def _edit_groups(
    request: Request,
    session_id: str,
    edit: Callable[[AxisSelection], None],
) -> SteepResponse:
    memory = _memory(request)
    session = _session(request, session_id)
    selection = session.selection()
    try:
        edit(selection)
    except WizardError as exc:
        raise _http_error(exc) from exc
    save_groups(memory, session, selection.groups)
    return SteepResponse(groups=selection.groups)


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}


@router.get("/steps", response_model=list[StepDefinition])
async def list_steps() -> list[StepDefinition]:
    """Expose step metadata to the UI."""

    return list_step_definitions()


@router.post("/sessions", response_model=CaseUploadResponse, status_code=status.HTTP_201_CREATED)
async def create_session(request: Request, payload: CaseUploadRequest) -> CaseUploadResponse:
    """Accept extracted case text and open a wizard session."""

    try:
        session = accept_case_text(_memory(request), payload.case_text, payload.content_type)
    except WizardError as exc:
        raise _http_error(exc) from exc

    return CaseUploadResponse(
        session_id=session.session_id,
        industry_hint=classify_industry(session.case_text),
        characters=len(session.case_text),
        notice=Notice(
            title="PDF uploaded successfully",
            description=f"Extracted {len(session.case_text)} characters of case study text.",
        ),
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def fetch_session(request: Request, session_id: str) -> SessionResponse:
    """Return all stored step results for the given session."""

    session = _session(request, session_id)
    combined = _memory(request).combined_markdown(session_id) or ""
    steps = {step.value: data for step, data in session.step_cache.items()}

    return SessionResponse(
        session_id=session_id,
        industry=session.industry,
        steps={slug: _decode_cached(raw) for slug, raw in steps.items()},
        combined_markdown=combined,
    )


def _decode_cached(raw: str) -> dict:
    # STEEP groups are cached as a bare array.
    payload = parse_json_payload(raw, expect="any")
    if isinstance(payload, ParseFailure):
        return {}
    return payload if isinstance(payload, dict) else {"groups": payload}


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_session(request: Request, session_id: str) -> Response:
    """Drop a session and everything cached for it."""

    try:
        _memory(request).reset(session_id)
    except WizardError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/steep", response_model=SteepResponse)
async def run_steep(request: Request, session_id: str) -> SteepResponse:
    """Generate the three-point STEEP analysis for the case."""

    session = _session(request, session_id)
    try:
        groups = await generate_steep(_backend(request), _memory(request), session)
    except WizardError as exc:
        raise _http_error(exc) from exc
    return SteepResponse(
        groups=groups,
        notice=Notice(
            title="STEEP Analysis Generated",
            description="3-point analysis for each factor created from your case study.",
        ),
    )


@router.put("/sessions/{session_id}/steep", response_model=SteepResponse)
async def replace_steep(request: Request, session_id: str, payload: SteepReplaceRequest) -> SteepResponse:
    """Replace the STEEP groups with the user's edited copy."""

    session = _session(request, session_id)
    try:
        check_groups(payload.groups)
    except WizardError as exc:
        raise _http_error(exc) from exc
    save_groups(_memory(request), session, payload.groups)
    return SteepResponse(groups=session.steep_groups)


@router.post("/sessions/{session_id}/steep/selection", response_model=SelectionResponse)
async def toggle_selection(request: Request, session_id: str, payload: SelectionRequest) -> SelectionResponse:
    """Check or uncheck a STEEP point as a scenario axis."""

    session = _session(request, session_id)
    selection = session.selection()
    try:
        outcome = selection.toggle(payload.factor, payload.point_idx, payload.checked)
    except WizardError as exc:
        raise _http_error(exc) from exc
    if outcome.accepted:
        save_groups(_memory(request), session, selection.groups)

    return SelectionResponse(
        accepted=outcome.accepted,
        reason=outcome.reason.value if outcome.reason else None,
        notice=outcome.notice,
        selected_points=selection.selected_points(),
        groups=selection.groups,
    )


@router.post("/sessions/{session_id}/steep/points", response_model=SteepResponse)
async def add_point(request: Request, session_id: str, payload: AddPointRequest) -> SteepResponse:
    return _edit_groups(request, session_id, lambda selection: selection.add_point(payload.factor, payload.text))


@router.patch("/sessions/{session_id}/steep/points", response_model=SteepResponse)
async def edit_point(request: Request, session_id: str, payload: EditPointRequest) -> SteepResponse:
    return _edit_groups(
        request,
        session_id,
        lambda selection: selection.edit_point(payload.factor, payload.point_idx, payload.text),
    )


@router.delete("/sessions/{session_id}/steep/points/{factor}/{point_idx}", response_model=SteepResponse)
async def delete_point(request: Request, session_id: str, factor: SteepFactor, point_idx: int) -> SteepResponse:
    return _edit_groups(request, session_id, lambda selection: selection.delete_point(factor, point_idx))


@router.post("/sessions/{session_id}/scenarios", response_model=ScenarioResponse)
async def run_scenarios(request: Request, session_id: str, payload: ScenarioRequest | None = None) -> ScenarioResponse:
    """Generate the 2x2 scenario matrix from the two selected axes."""

    payload = payload or ScenarioRequest()
    session = _session(request, session_id)
    backend = _backend(request)
    orchestrator = ScenarioOrchestrator(backend, _memory(request))
    try:
        requested = payload.axes if payload.axes is not None else session.selection().selected_points()
        axes = resolve_axes(session.steep_groups, requested)
        await resolve_industry(backend, session)
        result = await orchestrator.run(session, axes, payload.horizon_year)
    except WizardError as exc:
        raise _http_error(exc) from exc
    return ScenarioResponse(result=result, notice=scenario_notice(result))


@router.post("/sessions/{session_id}/competitors", response_model=StepResultResponse)
async def run_competitors(request: Request, session_id: str) -> StepResultResponse:
    return await _run_step(
        request,
        session_id,
        WizardStep.COMPETITORS,
        generate_competitors,
        Notice(title="Competitor Analysis Complete", description="Generated competitor moves for every scenario."),
    )


@router.post("/sessions/{session_id}/strategic-options", response_model=StepResultResponse)
async def run_strategic_options(request: Request, session_id: str) -> StepResultResponse:
    return await _run_step(
        request,
        session_id,
        WizardStep.STRATEGIC_OPTIONS,
        generate_dots,
        Notice(title="DOTS Strategy Generated", description="Strategy generated using all previous step data."),
    )


@router.post("/sessions/{session_id}/implementation", response_model=StepResultResponse)
async def run_implementation(request: Request, session_id: str) -> StepResultResponse:
    return await _run_step(
        request,
        session_id,
        WizardStep.IMPLEMENTATION,
        generate_horizons,
        Notice(title="Three Horizons Generated", description="Implementation plan created from your strategy."),
    )


@router.post("/sessions/{session_id}/success-metrics", response_model=StepResultResponse)
async def run_success_metrics(request: Request, session_id: str) -> StepResultResponse:
    return await _run_step(
        request,
        session_id,
        WizardStep.SUCCESS_METRICS,
        generate_success_metrics,
        Notice(title="Success Metrics Generated", description="KPIs defined for each horizon."),
    )


@router.post("/summaries", response_model=SummaryResponse)
async def create_summary(request: Request, payload: SummaryRequest) -> SummaryResponse:
    """Summarize arbitrary text in at most eight words."""

    return SummaryResponse(summary=await summarize(_backend(request), payload.text))
