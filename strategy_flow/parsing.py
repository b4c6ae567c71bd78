"""Tolerant decoding of loosely structured model output.

Model replies arrive as JSON, as JSON wrapped in markdown fences, or as JSON
buried in a sentence of prose. Nothing in this module raises on bad input:
every decoder returns either the normalized model or a :class:`ParseFailure`.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from .logging_utils import preview
from .schemas import (
    FACTOR_ORDER,
    GENERATED_POINTS_PER_FACTOR,
    AxisContext,
    CompetitorMove,
    CompetitorMoves,
    CompetitorNames,
    DotsStrategy,
    HorizonPlan,
    MatrixScenario,
    SteepFactorGroup,
    SteepPoint,
    SuccessMetric,
    SuccessMetrics,
    ThreeHorizons,
)

logger = logging.getLogger(__name__)

Expectation = Literal["object", "array", "any"]

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


@dataclass(frozen=True)
class ParseFailure:
    """Explicit 'could not decode' value, never confused with an empty result."""

    reason: str
    raw: str = ""


# ---------------------------------------------------------------------------
# Text clean-up
# ---------------------------------------------------------------------------


def strip_code_fence(text: str) -> str:
    """Remove a leading ```lang fence and its closing ``` marker."""

    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def extract_enclosed(text: str, opener: str, closer: str) -> Optional[str]:
    """Return the first balanced ``opener ... closer`` span in *text*.

    Brackets inside JSON string literals are ignored.
    """

    start = text.find(opener)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for position in range(start, len(text)):
        char = text[position]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : position + 1]
    return None


def _extract_payload(text: str, expect: Expectation) -> Optional[str]:
    if expect == "object":
        return extract_enclosed(text, "{", "}")
    if expect == "array":
        return extract_enclosed(text, "[", "]")
    brace, bracket = text.find("{"), text.find("[")
    if brace == -1 and bracket == -1:
        return None
    if bracket == -1 or (brace != -1 and brace < bracket):
        return extract_enclosed(text, "{", "}")
    return extract_enclosed(text, "[", "]")


def _matches(value: Any, expect: Expectation) -> bool:
    if expect == "object":
        return isinstance(value, dict)
    if expect == "array":
        return isinstance(value, list)
    return isinstance(value, (dict, list))


def parse_json_payload(raw: Any, expect: Expectation = "object") -> Any:
    """Decode *raw* into a dict or list, or return a :class:`ParseFailure`."""

    if isinstance(raw, (dict, list)):
        if _matches(raw, expect):
            return raw
        return ParseFailure(f"expected {expect}, got {type(raw).__name__}")
    if raw is None:
        return ParseFailure("no response")
    if not isinstance(raw, str):
        return ParseFailure(f"unsupported response type {type(raw).__name__}")
    if not raw.strip():
        return ParseFailure("empty response", raw)

    cleaned = strip_code_fence(raw)
    candidates = [cleaned]
    snippet = _extract_payload(cleaned, expect)
    if snippet and snippet != cleaned:
        candidates.append(snippet)

    reason = "no JSON payload found"
    for candidate in candidates:
        try:
            value = json.loads(strip_trailing_commas(candidate))
        except json.JSONDecodeError as exc:
            reason = f"invalid JSON: {exc.msg}"
            continue
        if _matches(value, expect):
            return value
        reason = f"expected {expect}, got {type(value).__name__}"

    logger.debug("Could not decode payload (%s): %s", reason, preview(raw))
    return ParseFailure(reason, raw)


def _raw_text(raw: Any) -> str:
    return raw if isinstance(raw, str) else ""


def _clean_str(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _str_list(values: Any) -> List[str]:
    if isinstance(values, str):
        values = values.splitlines()
    if not isinstance(values, list):
        return []
    return [text for text in (_clean_str(value) for value in values) if text]


# ---------------------------------------------------------------------------
# STEEP groups: tagged-union decode
# ---------------------------------------------------------------------------

STEEP_KEYS = ("steepAnalysis", "STEEPAnalysis")

VariantDecoder = Callable[[Any], Optional[List[Any]]]


def _direct_array(payload: Any) -> Optional[List[Any]]:
    return payload if isinstance(payload, list) else None


def _keyed_array(key: str) -> VariantDecoder:
    def decoder(payload: Any) -> Optional[List[Any]]:
        if not isinstance(payload, dict):
            return None
        value = payload.get(key)
        return value if isinstance(value, list) else None

    return decoder


def _string_encoded_array(payload: Any) -> Optional[List[Any]]:
    if not isinstance(payload, dict):
        return None
    for key in STEEP_KEYS:
        value = payload.get(key)
        if isinstance(value, str):
            decoded = parse_json_payload(value, expect="array")
            if isinstance(decoded, list):
                return decoded
    return None


STEEP_VARIANTS: Sequence[Tuple[str, VariantDecoder]] = (
    ("array", _direct_array),
    ("steepAnalysis", _keyed_array("steepAnalysis")),
    ("STEEPAnalysis", _keyed_array("STEEPAnalysis")),
    ("string-encoded", _string_encoded_array),
)


def _looks_like_steep(entries: List[Any]) -> bool:
    if not entries:
        return False
    first = entries[0]
    return isinstance(first, dict) and "factor" in first and "points" in first


def _point_text(point: Any) -> str:
    if isinstance(point, dict):
        return _clean_str(point.get("text"))
    return _clean_str(point)


def _normalize_steep(entries: Iterable[Any]) -> List[SteepFactorGroup]:
    by_factor: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        if isinstance(entry, dict):
            name = _clean_str(entry.get("factor")).lower()
            by_factor.setdefault(name, entry)

    groups: List[SteepFactorGroup] = []
    for factor in FACTOR_ORDER:
        found = by_factor.get(factor.value.lower())
        raw_points = found.get("points") if found else None
        if isinstance(raw_points, list):
            points = [SteepPoint(text=_point_text(point)) for point in raw_points]
        else:
            points = [SteepPoint(text="") for _ in range(GENERATED_POINTS_PER_FACTOR)]
        groups.append(
            SteepFactorGroup(factor=factor, points=points[:GENERATED_POINTS_PER_FACTOR], selected=[])
        )
    return groups


def decode_steep_groups(raw: Any) -> List[SteepFactorGroup] | ParseFailure:
    """Decode a STEEP reply into five groups in fixed factor order.

    The variants in :data:`STEEP_VARIANTS` are tried in priority order and the
    first one that yields an array of ``{factor, points}`` objects wins.
    """

    payload = parse_json_payload(raw, expect="any")
    if isinstance(payload, ParseFailure):
        return payload

    for name, decoder in STEEP_VARIANTS:
        entries = decoder(payload)
        if entries is not None and _looks_like_steep(entries):
            logger.debug("STEEP payload decoded via %s variant", name)
            return _normalize_steep(entries)
    return ParseFailure("no STEEP variant matched", _raw_text(raw))


# ---------------------------------------------------------------------------
# Scenario step
# ---------------------------------------------------------------------------


def parse_axis_context(raw: Any) -> AxisContext | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    low, high = _clean_str(payload.get("low")), _clean_str(payload.get("high"))
    if not low or not high:
        return ParseFailure("axis context requires non-empty 'low' and 'high'", _raw_text(raw))
    return AxisContext(low=low, high=high)


def parse_matrix_scenario(raw: Any) -> MatrixScenario | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    header = _clean_str(payload.get("header"))
    bullets = payload.get("bullets")
    if not header or not isinstance(bullets, list):
        return ParseFailure("scenario requires 'header' and a 'bullets' list", _raw_text(raw))
    return MatrixScenario(
        summary=_clean_str(payload.get("summary")),
        header=header,
        bullets=_str_list(bullets),
    )


# ---------------------------------------------------------------------------
# Competitor step
# ---------------------------------------------------------------------------

COMPETITOR_KEYS = ("incumbents", "insurgents", "adjacents")


def parse_competitor_names(raw: Any) -> CompetitorNames | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    if not all(isinstance(payload.get(key), list) for key in COMPETITOR_KEYS):
        return ParseFailure("incomplete competitor data", _raw_text(raw))
    return CompetitorNames(**{key: _str_list(payload[key]) for key in COMPETITOR_KEYS})


def _moves(entries: Any) -> List[CompetitorMove]:
    moves: List[CompetitorMove] = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            continue
        name, action = _clean_str(entry.get("name")), _clean_str(entry.get("action"))
        if name:
            moves.append(CompetitorMove(name=name, action=action))
    return moves


def parse_competitor_moves(raw: Any) -> CompetitorMoves | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    if not any(isinstance(payload.get(key), list) for key in COMPETITOR_KEYS):
        return ParseFailure("no competitor moves found", _raw_text(raw))
    return CompetitorMoves(**{key: _moves(payload.get(key)) for key in COMPETITOR_KEYS})


# ---------------------------------------------------------------------------
# DOTS, Three Horizons, metrics
# ---------------------------------------------------------------------------

MAX_DOTS_ITEMS = 4

_BOLD = re.compile(r"\*\*(.*?)\*\*")
_ITALIC = re.compile(r"\*(.*?)\*")
_BULLET = re.compile(r"^\s*[*\-+•]\s+", re.MULTILINE)
_NUMBERED = re.compile(r"^\s*\d+\.\s+", re.MULTILINE)
_PLACEHOLDER = re.compile(r"^\[.*\]$")


def clean_markdown_text(text: str) -> str:
    """Drop emphasis and list markers while keeping the words."""

    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _BULLET.sub("", text)
    text = _NUMBERED.sub("", text)
    return text.strip()


def _dots_items(values: Any) -> List[str]:
    items = [clean_markdown_text(item) for item in _str_list(values)]
    return [item for item in items if item and not _PLACEHOLDER.match(item)][:MAX_DOTS_ITEMS]


def parse_dots_strategy(raw: Any) -> DotsStrategy | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    response = payload.get("strategicResponse", payload.get("strategic_response"))
    strategy = DotsStrategy(
        drivers=_dots_items(payload.get("drivers")),
        opportunities=_dots_items(payload.get("opportunities")),
        threats=_dots_items(payload.get("threats")),
        strategic_response=_dots_items(response),
    )
    if not any((strategy.drivers, strategy.opportunities, strategy.threats, strategy.strategic_response)):
        return ParseFailure("DOTS reply has no usable sections", _raw_text(raw))
    return strategy


def parse_three_horizons(raw: Any) -> ThreeHorizons | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    plans: Dict[str, HorizonPlan] = {}
    for key in ("horizon1", "horizon2", "horizon3"):
        section = payload.get(key)
        if not isinstance(section, dict):
            return ParseFailure(f"missing '{key}' section", _raw_text(raw))
        plans[key] = HorizonPlan(
            focus1=_clean_str(section.get("focus1")),
            focus2=_clean_str(section.get("focus2")),
            strategy=_clean_str(section.get("strategy")),
        )
    return ThreeHorizons(**plans)


def parse_success_metrics(raw: Any) -> SuccessMetrics | ParseFailure:
    payload = parse_json_payload(raw)
    if isinstance(payload, ParseFailure):
        return payload
    entries = payload.get("metrics")
    if not isinstance(entries, list):
        return ParseFailure("reply has no 'metrics' list", _raw_text(raw))

    metrics: List[SuccessMetric] = []
    for entry in entries:
        if isinstance(entry, str) and entry.strip():
            metrics.append(SuccessMetric(name=entry.strip()))
        elif isinstance(entry, dict):
            metrics.append(
                SuccessMetric(
                    name=_clean_str(entry.get("name")),
                    target=_clean_str(entry.get("target")),
                    horizon=_clean_str(entry.get("horizon")),
                )
            )
    metrics = [metric for metric in metrics if metric.name]
    if not metrics:
        return ParseFailure("no usable metrics", _raw_text(raw))
    return SuccessMetrics(metrics=metrics)
