"""Markdown renderers for each wizard step, joined for the session export."""

from __future__ import annotations

from typing import Iterable, List

from .prompts import QUADRANTS
from .schemas import (
    CompetitorAnalysis,
    DotsStrategy,
    ScenarioMatrixResult,
    SteepFactorGroup,
    SuccessMetrics,
    ThreeHorizons,
)


def _bullet_list(items: Iterable[str]) -> str:
    return "\n".join(f"- {item}" for item in items if item)


def _join(sections: Iterable[str]) -> str:
    return "\n\n".join(section for section in sections if section)


def format_steep_markdown(groups: List[SteepFactorGroup]) -> str:
    sections = []
    for group in groups:
        lines = []
        for index, point in enumerate(group.points):
            if not point.text:
                continue
            marker = " (selected axis)" if index in group.selected else ""
            origin = " *(added)*" if point.is_user_added else ""
            lines.append(f"{point.text}{origin}{marker}")
        if lines:
            sections.append(f"### {group.factor.value}\n\n{_bullet_list(lines)}")
    if not sections:
        return ""
    return _join(["## STEEP Analysis", *sections])


def format_scenarios_markdown(result: ScenarioMatrixResult) -> str:
    if len(result.axes) != 2 or len(result.axis_contexts) != 2:
        return ""
    y_axis, x_axis = result.axes
    y_context, x_context = result.axis_contexts
    axis_lines = [
        f"**Y axis:** {y_axis.factor.value} ({y_axis.text}): {y_context.low} → {y_context.high}",
        f"**X axis:** {x_axis.factor.value} ({x_axis.text}): {x_context.low} → {x_context.high}",
    ]
    quadrant_sections = []
    for descriptor, scenario in zip(QUADRANTS, result.scenarios):
        title = scenario.summary or descriptor.label
        body = _join([scenario.header, _bullet_list(scenario.bullets)])
        quadrant_sections.append(
            f"### {descriptor.y_phrase(y_context)} / {descriptor.x_phrase(x_context)}: {title}\n\n{body}"
        )
    return _join(
        [
            f"## Scenario Matrix ({result.horizon_year})",
            f"*Industry:* {result.industry}",
            "\n".join(axis_lines),
            *quadrant_sections,
        ]
    )


def format_competitors_markdown(analysis: CompetitorAnalysis) -> str:
    sections = []
    for descriptor, quadrant in zip(QUADRANTS, analysis.competitors):
        lines = [f"**{entry.name}** ({entry.type}): {entry.action}" for entry in quadrant.competitors]
        if lines:
            sections.append(f"### {descriptor.label}\n\n{_bullet_list(lines)}")
    if not sections:
        return ""
    return _join([f"## Competitor Analysis for {analysis.company_name}", *sections])


def format_dots_markdown(dots: DotsStrategy) -> str:
    return _join(
        [
            "## DOTS Strategy",
            f"### Drivers\n\n{_bullet_list(dots.drivers)}" if dots.drivers else "",
            f"### Opportunities\n\n{_bullet_list(dots.opportunities)}" if dots.opportunities else "",
            f"### Threats\n\n{_bullet_list(dots.threats)}" if dots.threats else "",
            f"### Strategic Response\n\n{_bullet_list(dots.strategic_response)}" if dots.strategic_response else "",
        ]
    )


HORIZON_TITLES = (
    ("horizon1", "Horizon 1 (0-2 years): Optimize Core Business"),
    ("horizon2", "Horizon 2 (3-4 years): Adjacent Opportunities"),
    ("horizon3", "Horizon 3 (5-6 years): Breakthrough Innovation"),
)


def format_horizons_markdown(horizons: ThreeHorizons) -> str:
    sections = ["## Implementation Plan"]
    for key, title in HORIZON_TITLES:
        plan = getattr(horizons, key)
        sections.append(
            _join(
                [
                    f"### {title}",
                    _bullet_list([plan.focus1, plan.focus2]),
                    f"*Strategy:* {plan.strategy}" if plan.strategy else "",
                ]
            )
        )
    return _join(sections)


def format_metrics_markdown(metrics: SuccessMetrics) -> str:
    lines = []
    for metric in metrics.metrics:
        details = "; ".join(part for part in (metric.target, metric.horizon) if part)
        lines.append(f"**{metric.name}**: {details}" if details else f"**{metric.name}**")
    if not lines:
        return ""
    return _join(["## Success Metrics", _bullet_list(lines)])
