import json

import pytest

from strategy_flow.parsing import (
    ParseFailure,
    decode_steep_groups,
    extract_enclosed,
    parse_axis_context,
    parse_competitor_moves,
    parse_competitor_names,
    parse_dots_strategy,
    parse_json_payload,
    parse_matrix_scenario,
    parse_success_metrics,
    parse_three_horizons,
    strip_code_fence,
)
from strategy_flow.schemas import FACTOR_ORDER, AxisContext, SteepFactor


def test_fenced_payload_with_trailing_comma() -> None:
    result = parse_axis_context('```json\n{"low":"X","high":"Y",}\n```')

    assert result == AxisContext(low="X", high="Y")


def test_payload_surrounded_by_prose() -> None:
    raw = 'Sure! Here is the JSON you asked for: {"low": "Slow uptake", "high": "Mass adoption"} Hope it helps.'

    assert parse_axis_context(raw) == AxisContext(low="Slow uptake", high="Mass adoption")


@pytest.mark.parametrize("raw", ["", "   \n\t", None])
def test_empty_response_short_circuits(raw: object) -> None:
    result = parse_json_payload(raw)

    assert isinstance(result, ParseFailure)
    assert result.reason in {"empty response", "no response"}


def test_invalid_json_is_a_failure_value_not_an_exception() -> None:
    result = parse_json_payload("{not json at all")

    assert isinstance(result, ParseFailure)
    assert result.raw == "{not json at all"


def test_empty_object_is_distinct_from_failure() -> None:
    assert parse_json_payload("{}") == {}


def test_strip_code_fence_leaves_plain_text() -> None:
    assert strip_code_fence('{"a": 1}') == '{"a": 1}'
    assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'


def test_extract_enclosed_ignores_braces_inside_strings() -> None:
    text = 'prefix {"note": "a } inside", "n": 1} suffix'

    assert extract_enclosed(text, "{", "}") == '{"note": "a } inside", "n": 1}'


def test_array_expectation_extracts_brackets() -> None:
    assert parse_json_payload('The list: [1, 2, 3,] done', expect="array") == [1, 2, 3]


@pytest.mark.parametrize("key", ["steepAnalysis", "STEEPAnalysis"])
def test_keyed_steep_variants_decode_identically(key: str) -> None:
    raw = json.dumps({key: [{"factor": "Social", "points": ["a", "b", "c"]}]})

    groups = decode_steep_groups(raw)

    assert not isinstance(groups, ParseFailure)
    assert [group.factor for group in groups] == FACTOR_ORDER
    social = groups[0]
    assert [point.text for point in social.points] == ["a", "b", "c"]
    assert social.selected == []


def test_missing_factor_gets_three_empty_points() -> None:
    groups = decode_steep_groups('[{"factor": "Political", "points": ["p1", "p2", "p3", "p4"]}]')

    assert not isinstance(groups, ParseFailure)
    political = groups[-1]
    assert political.factor is SteepFactor.POLITICAL
    assert [point.text for point in political.points] == ["p1", "p2", "p3"]
    for group in groups[:-1]:
        assert [point.text for point in group.points] == ["", "", ""]


def test_direct_array_wins_over_keyed_variants() -> None:
    raw = '[{"factor": "Economic", "points": ["rates"]}]'

    groups = decode_steep_groups(raw)

    assert not isinstance(groups, ParseFailure)
    assert groups[2].points[0].text == "rates"


def test_string_encoded_steep_array() -> None:
    inner = json.dumps([{"factor": "Technological", "points": ["x", "y", "z"]}])
    raw = json.dumps({"steepAnalysis": inner})

    groups = decode_steep_groups(raw)

    assert not isinstance(groups, ParseFailure)
    assert [point.text for point in groups[1].points] == ["x", "y", "z"]


def test_steep_first_element_without_keys_fails() -> None:
    raw = json.dumps({"steepAnalysis": [{"category": "Social", "items": ["a"]}]})

    result = decode_steep_groups(raw)

    assert isinstance(result, ParseFailure)
    assert result.reason == "no STEEP variant matched"


def test_steep_empty_response() -> None:
    assert isinstance(decode_steep_groups(""), ParseFailure)


def test_axis_context_requires_both_poles() -> None:
    assert isinstance(parse_axis_context('{"low": "Slow", "high": ""}'), ParseFailure)


def test_matrix_scenario_requires_header_and_bullets() -> None:
    scenario = parse_matrix_scenario('{"header": "In this scenario, demand surges.", "bullets": ["a", "b", "c"]}')

    assert not isinstance(scenario, ParseFailure)
    assert scenario.summary == ""
    assert scenario.bullets == ["a", "b", "c"]
    assert isinstance(parse_matrix_scenario('{"summary": "Boom", "bullets": []}'), ParseFailure)
    assert isinstance(parse_matrix_scenario('{"header": "In this scenario", "bullets": "a"}'), ParseFailure)


def test_competitor_names_need_all_three_lists() -> None:
    names = parse_competitor_names('{"incumbents": ["A"], "insurgents": ["B"], "adjacents": ["C"]}')

    assert not isinstance(names, ParseFailure)
    assert names.adjacents == ["C"]
    assert isinstance(parse_competitor_names('{"incumbents": ["A"], "insurgents": ["B"]}'), ParseFailure)


def test_competitor_moves_skip_nameless_entries() -> None:
    moves = parse_competitor_moves(
        '{"incumbents": [{"name": "A", "action": "Cut prices"}, {"action": "orphan"}], "insurgents": [], "adjacents": []}'
    )

    assert not isinstance(moves, ParseFailure)
    assert [move.name for move in moves.incumbents] == ["A"]
    assert isinstance(parse_competitor_moves('{"other": []}'), ParseFailure)


def test_dots_strategy_cleans_and_caps_items() -> None:
    raw = json.dumps(
        {
            "drivers": ["**Battery costs** falling", "- Regulation", "3. Demand", "Talent", "Fifth item"],
            "opportunities": ["[Opportunity placeholder]", "Fleet sales"],
            "threats": ["Chinese imports"],
            "strategic_response": ["Double down on software"],
        }
    )

    dots = parse_dots_strategy(raw)

    assert not isinstance(dots, ParseFailure)
    assert dots.drivers == ["Battery costs falling", "Regulation", "Demand", "Talent"]
    assert dots.opportunities == ["Fleet sales"]
    assert dots.strategic_response == ["Double down on software"]


def test_dots_strategy_accepts_camel_case_response() -> None:
    dots = parse_dots_strategy('{"drivers": [], "strategicResponse": ["Partner with utilities"]}')

    assert not isinstance(dots, ParseFailure)
    assert dots.strategic_response == ["Partner with utilities"]


def test_three_horizons_requires_every_horizon() -> None:
    plan = {"focus1": "a", "focus2": "b", "strategy": "c"}

    horizons = parse_three_horizons(json.dumps({"horizon1": plan, "horizon2": plan, "horizon3": plan}))

    assert not isinstance(horizons, ParseFailure)
    assert horizons.horizon3.strategy == "c"
    assert isinstance(parse_three_horizons(json.dumps({"horizon1": plan})), ParseFailure)


def test_success_metrics() -> None:
    metrics = parse_success_metrics(
        '{"metrics": [{"name": "EV share of sales", "target": "40%", "horizon": "Horizon 2"}]}'
    )

    assert not isinstance(metrics, ParseFailure)
    assert metrics.metrics[0].target == "40%"
    assert isinstance(parse_success_metrics('{"kpis": []}'), ParseFailure)
