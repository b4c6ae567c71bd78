import asyncio
import json

import pytest

from strategy_flow.errors import BackendError, IncompleteMatrixError, WizardValidationError
from strategy_flow.memory import SessionMemory
from strategy_flow.parsing import decode_steep_groups
from strategy_flow.scenarios import DEFAULT_AXIS_CONTEXTS, ScenarioOrchestrator, scenario_notice
from strategy_flow.schemas import (
    FAILED_SCENARIO,
    RunState,
    ScenarioMatrixResult,
    SelectedPoint,
    SteepFactor,
    WizardStep,
)

AXIS_MARKER = "names axis extremes"
QUADRANT_MARKER = "scenario-planning expert"

AXES = [
    SelectedPoint(factor=SteepFactor.POLITICAL, point_idx=0, text="EU combustion phase-out"),
    SelectedPoint(factor=SteepFactor.ECONOMIC, point_idx=0, text="Battery prices fall"),
]


def _axis_reply(spec) -> str:
    if "Political" in spec.user_prompt:
        return '```json\n{"low": "Policy rollback", "high": "Strict mandates",}\n```'
    return '{"low": "Costly batteries", "high": "Cheap batteries"}'


def _quadrant_reply(spec) -> str:
    return json.dumps(
        {
            "summary": "Electric leaders pull ahead",
            "header": "In this scenario, demand shifts quickly to EVs.",
            "bullets": ["Accelerates fleet deals", "Constrains margins", "Expands charging partnerships"],
        }
    )


@pytest.fixture
def session(memory: SessionMemory, case_text: str, steep_reply: str):
    session = memory.create(case_text)
    session.steep_groups = decode_steep_groups(steep_reply)
    return session


def _run(backend, memory, session, axes=AXES, **kwargs) -> ScenarioMatrixResult:
    return asyncio.run(ScenarioOrchestrator(backend, memory).run(session, axes, **kwargs))


def test_axis_contexts_resolve_before_any_quadrant(backend, memory, session) -> None:
    backend.script(AXIS_MARKER, _axis_reply).script(QUADRANT_MARKER, _quadrant_reply)

    result = _run(backend, memory, session, horizon_year="2032")

    kinds = ["axis" if AXIS_MARKER in call.system_prompt else "quadrant" for call in backend.calls]
    assert kinds == ["axis", "axis", "quadrant", "quadrant", "quadrant", "quadrant"]
    for call in backend.calls_for(QUADRANT_MARKER):
        assert "Strict mandates" in call.user_prompt
        assert "Cheap batteries" in call.user_prompt
        assert "HORIZON_YEAR: 2032" in call.user_prompt

    assert result.state is RunState.COMPLETE
    assert len(result.scenarios) == 4
    assert result.axis_contexts[0].high == "Strict mandates"
    assert result.industry == "Automotive"
    assert scenario_notice(result).title == "Scenario Matrix Ready"


def test_result_is_persisted_with_markdown(backend, memory, session) -> None:
    backend.script(AXIS_MARKER, _axis_reply).script(QUADRANT_MARKER, _quadrant_reply)

    result = _run(backend, memory, session)

    stored = memory.load_step(session, WizardStep.SCENARIOS, ScenarioMatrixResult)
    assert stored == result
    assert session.markdown[WizardStep.SCENARIOS].startswith("## Scenario Matrix (2030)")


def test_axis_context_failures_fall_back_per_factor(backend, memory, session) -> None:
    def flaky_axis(spec) -> str:
        if "Political" in spec.user_prompt:
            raise BackendError("503 from provider")
        return "not json"

    backend.script(AXIS_MARKER, flaky_axis).script(QUADRANT_MARKER, _quadrant_reply)

    result = _run(backend, memory, session)

    assert result.axis_contexts == [
        DEFAULT_AXIS_CONTEXTS[SteepFactor.POLITICAL],
        DEFAULT_AXIS_CONTEXTS[SteepFactor.ECONOMIC],
    ]
    assert result.state is RunState.COMPLETE


def test_unexpected_axis_error_falls_back_to_defaults(backend, memory, session) -> None:
    def broken_axis(spec) -> str:
        raise RuntimeError("boom")

    backend.script(AXIS_MARKER, broken_axis).script(QUADRANT_MARKER, _quadrant_reply)

    result = _run(backend, memory, session)

    assert result.axis_contexts == [
        DEFAULT_AXIS_CONTEXTS[SteepFactor.POLITICAL],
        DEFAULT_AXIS_CONTEXTS[SteepFactor.ECONOMIC],
    ]
    assert len(result.scenarios) == 4
    assert result.state is RunState.COMPLETE


def test_failed_quadrant_becomes_sentinel(backend, memory, session) -> None:
    replies = iter(["{}", _quadrant_reply(None), _quadrant_reply(None), _quadrant_reply(None)])
    backend.script(AXIS_MARKER, _axis_reply).script(QUADRANT_MARKER, lambda spec: next(replies))

    result = _run(backend, memory, session)

    assert result.state is RunState.PARTIAL_FAILURE
    sentinels = [scenario for scenario in result.scenarios if scenario.is_sentinel]
    assert len(sentinels) == 1
    assert sentinels[0] == FAILED_SCENARIO
    assert sentinels[0].header == "Scenario could not be generated"
    assert "1 of 4" in scenario_notice(result).description
    assert memory.load_step(session, WizardStep.SCENARIOS, ScenarioMatrixResult) is not None


def test_backend_error_on_every_quadrant(backend, memory, session) -> None:
    backend.script(AXIS_MARKER, _axis_reply).script(QUADRANT_MARKER, BackendError("timeout"))

    result = _run(backend, memory, session)

    assert all(scenario.is_sentinel for scenario in result.scenarios)
    assert result.state is RunState.PARTIAL_FAILURE


@pytest.mark.parametrize("axes", [[], AXES[:1]])
def test_guard_requires_two_axes(backend, memory, session, axes) -> None:
    orchestrator = ScenarioOrchestrator(backend, memory)

    with pytest.raises(WizardValidationError) as excinfo:
        asyncio.run(orchestrator.run(session, axes))

    assert excinfo.value.notice.title == "Select 2 axes"
    assert orchestrator.state is RunState.IDLE
    assert backend.calls == []
    assert session.scenario_run_id == 0


def test_default_axes_come_from_session_selection(backend, memory, session, steep_reply) -> None:
    assert session.selection().selected_points() == []
    session.steep_groups = decode_steep_groups(steep_reply)
    selection = session.selection()
    selection.toggle(SteepFactor.SOCIAL, 1, True)
    selection.toggle(SteepFactor.ENVIRONMENTAL, 0, True)
    session.steep_groups = selection.groups
    backend.script(AXIS_MARKER, _axis_reply).script(QUADRANT_MARKER, _quadrant_reply)

    result = asyncio.run(ScenarioOrchestrator(backend, memory).run(session))

    assert [axis.factor for axis in result.axes] == [SteepFactor.SOCIAL, SteepFactor.ENVIRONMENTAL]
    assert result.axes[0].text == "Range anxiety persists"


def test_missing_quadrant_trips_completion_gate(backend, memory, session, monkeypatch) -> None:
    backend.script(AXIS_MARKER, _axis_reply).script(QUADRANT_MARKER, _quadrant_reply)
    orchestrator = ScenarioOrchestrator(backend, memory)
    original = orchestrator._quadrant

    async def dropping_quadrant(*args):
        if args[-1].key == "yLow_xLow":
            raise asyncio.CancelledError()
        return await original(*args)

    monkeypatch.setattr(orchestrator, "_quadrant", dropping_quadrant)

    with pytest.raises(IncompleteMatrixError) as excinfo:
        asyncio.run(orchestrator.run(session, AXES))

    assert excinfo.value.notice.title == "Scenario format error"
    assert excinfo.value.retryable
    assert memory.load_step(session, WizardStep.SCENARIOS, ScenarioMatrixResult) is None


def test_superseded_run_is_not_persisted(backend, memory, session) -> None:
    def axis_then_restart(spec) -> str:
        if "Political" in spec.user_prompt:
            # Another generation starts while this one is still in flight.
            session.start_scenario_run()
        return _axis_reply(spec)

    backend.script(AXIS_MARKER, axis_then_restart).script(QUADRANT_MARKER, _quadrant_reply)

    result = _run(backend, memory, session)

    assert result.superseded
    assert result.run_id == 1
    assert session.scenario_run_id == 2
    assert memory.load_step(session, WizardStep.SCENARIOS, ScenarioMatrixResult) is None
    assert scenario_notice(result).title == "Scenario run replaced"


@pytest.mark.parametrize(
    "axes,title",
    [
        (
            [
                SelectedPoint(factor=SteepFactor.SOCIAL, point_idx=0, text="a"),
                SelectedPoint(factor=SteepFactor.SOCIAL, point_idx=1, text="b"),
            ],
            "Axes must differ",
        ),
        (
            [
                SelectedPoint(factor=SteepFactor.SOCIAL, point_idx=0, text="a"),
                SelectedPoint(factor=SteepFactor.POLITICAL, point_idx=7, text="b"),
            ],
            "Unknown point",
        ),
    ],
)
def test_explicit_axes_are_checked_against_groups(backend, memory, session, axes, title) -> None:
    with pytest.raises(WizardValidationError) as excinfo:
        _run(backend, memory, session, axes=axes)

    assert excinfo.value.notice.title == title
    assert backend.calls == []
    assert session.scenario_run_id == 0


def test_explicit_axes_need_existing_groups(backend, memory, case_text) -> None:
    bare = memory.create(case_text)

    with pytest.raises(WizardValidationError):
        _run(backend, memory, bare)

    assert backend.calls == []


def test_explicit_axes_take_text_from_groups(backend, memory, session) -> None:
    backend.script(AXIS_MARKER, _axis_reply).script(QUADRANT_MARKER, _quadrant_reply)
    axes = [
        SelectedPoint(factor=SteepFactor.POLITICAL, point_idx=1, text="stale"),
        SelectedPoint(factor=SteepFactor.ECONOMIC, point_idx=2, text="stale"),
    ]

    result = _run(backend, memory, session, axes=axes)

    assert [axis.text for axis in result.axes] == ["Tariffs on imported EVs", "Used EV values wobble"]
