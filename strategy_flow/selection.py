"""Axis selection over the STEEP groups, plus the point-editing operations."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from pydantic import ValidationError

from .errors import WizardValidationError
from .parsing import ParseFailure, parse_json_payload
from .schemas import (
    FACTOR_ORDER,
    MAX_POINTS_PER_FACTOR,
    Notice,
    SelectedPoint,
    SteepFactor,
    SteepFactorGroup,
    SteepPoint,
)

logger = logging.getLogger(__name__)

MAX_SELECTED_TOTAL = 2
MAX_SELECTED_PER_FACTOR = 1


class RejectionReason(str, Enum):
    PER_FACTOR_LIMIT = "per_factor_limit"
    TOTAL_LIMIT = "total_limit"
    UNKNOWN_POINT = "unknown_point"


_REJECTION_NOTICES = {
    RejectionReason.PER_FACTOR_LIMIT: Notice(
        title="One point per factor",
        description="Only one point can be selected from each STEEP factor.",
        variant="destructive",
    ),
    RejectionReason.TOTAL_LIMIT: Notice(
        title="Two axes already selected",
        description="Deselect a point before choosing another; the matrix uses exactly two axes.",
        variant="destructive",
    ),
    RejectionReason.UNKNOWN_POINT: Notice(
        title="Unknown point",
        description="The selected point does not exist for this factor.",
        variant="destructive",
    ),
}


@dataclass(frozen=True)
class SelectionOutcome:
    """Result of a toggle; rejected toggles carry the reason and notice."""

    accepted: bool
    reason: Optional[RejectionReason] = None

    @property
    def notice(self) -> Optional[Notice]:
        if self.reason is None:
            return None
        return _REJECTION_NOTICES[self.reason]


def _point_text(text: str) -> str:
    stripped = text.strip()
    if not stripped:
        raise WizardValidationError("Empty point", "Enter some text for the STEEP point.")
    return stripped


class AxisSelection:
    """Own the STEEP groups and keep the two selection invariants.

    At most one selected point per factor and at most two in total. Rejected
    checks leave every group untouched.
    """

    def __init__(self, groups: Iterable[SteepFactorGroup]) -> None:
        self._groups: List[SteepFactorGroup] = [group.model_copy(deep=True) for group in groups]
        self._selected: List[SelectedPoint] = self._flatten()

    @property
    def groups(self) -> List[SteepFactorGroup]:
        return [group.model_copy(deep=True) for group in self._groups]

    def selected_points(self) -> List[SelectedPoint]:
        return list(self._selected)

    def _index_of(self, factor: SteepFactor) -> int:
        for index, group in enumerate(self._groups):
            if group.factor == factor:
                return index
        raise WizardValidationError("Unknown factor", f"No STEEP group exists for {factor.value}.")

    def _flatten(self) -> List[SelectedPoint]:
        flattened = [
            SelectedPoint(factor=group.factor, point_idx=index, text=group.points[index].text)
            for group in self._groups
            for index in group.selected
        ]
        return flattened[:MAX_SELECTED_TOTAL]

    def _replace(self, position: int, **changes: object) -> None:
        current = self._groups[position]
        # Revalidate so the point/selection invariants hold after every change.
        self._groups[position] = SteepFactorGroup.model_validate({**current.model_dump(), **changes})
        self._selected = self._flatten()

    def toggle(self, factor: SteepFactor, point_idx: int, checked: bool) -> SelectionOutcome:
        position = self._index_of(factor)
        group = self._groups[position]

        if not checked:
            if point_idx in group.selected:
                self._replace(position, selected=[index for index in group.selected if index != point_idx])
            return SelectionOutcome(accepted=True)

        if point_idx < 0 or point_idx >= len(group.points):
            return SelectionOutcome(accepted=False, reason=RejectionReason.UNKNOWN_POINT)
        if point_idx in group.selected:
            return SelectionOutcome(accepted=True)
        if len(group.selected) >= MAX_SELECTED_PER_FACTOR:
            logger.info("Rejected selection of %s #%d: factor already has a point", factor.value, point_idx)
            return SelectionOutcome(accepted=False, reason=RejectionReason.PER_FACTOR_LIMIT)
        if sum(len(item.selected) for item in self._groups) >= MAX_SELECTED_TOTAL:
            logger.info("Rejected selection of %s #%d: two axes already chosen", factor.value, point_idx)
            return SelectionOutcome(accepted=False, reason=RejectionReason.TOTAL_LIMIT)

        self._replace(position, selected=[*group.selected, point_idx])
        return SelectionOutcome(accepted=True)

    def edit_point(self, factor: SteepFactor, point_idx: int, text: str) -> None:
        position = self._index_of(factor)
        group = self._groups[position]
        if point_idx < 0 or point_idx >= len(group.points):
            raise WizardValidationError("Unknown point", f"{factor.value} has no point {point_idx + 1}.")
        points = [point.model_dump() for point in group.points]
        points[point_idx]["text"] = _point_text(text)
        self._replace(position, points=points)

    def add_point(self, factor: SteepFactor, text: str) -> None:
        position = self._index_of(factor)
        group = self._groups[position]
        text = _point_text(text)
        if len(group.points) >= MAX_POINTS_PER_FACTOR:
            raise WizardValidationError(
                "Point limit reached",
                f"{factor.value} already holds {MAX_POINTS_PER_FACTOR} points (3 generated plus 2 of your own).",
            )
        points = [point.model_dump() for point in group.points]
        points.append(SteepPoint(text=text, is_user_added=True).model_dump())
        self._replace(position, points=points)

    def delete_point(self, factor: SteepFactor, point_idx: int) -> None:
        position = self._index_of(factor)
        group = self._groups[position]
        if point_idx < 0 or point_idx >= len(group.points):
            raise WizardValidationError("Unknown point", f"{factor.value} has no point {point_idx + 1}.")
        points = [point.model_dump() for index, point in enumerate(group.points) if index != point_idx]
        selected = [
            index - 1 if index > point_idx else index
            for index in group.selected
            if index != point_idx
        ]
        self._replace(position, points=points, selected=selected)


def dump_groups(groups: Iterable[SteepFactorGroup]) -> str:
    """Serialize groups to the JSON string kept in the step cache."""

    return json.dumps([group.model_dump(mode="json") for group in groups])


def load_groups(text: str) -> List[SteepFactorGroup] | ParseFailure:
    """Inverse of :func:`dump_groups`; order and selections are preserved."""

    payload = parse_json_payload(text, expect="array")
    if isinstance(payload, ParseFailure):
        return payload
    try:
        return [SteepFactorGroup.model_validate(entry) for entry in payload]
    except ValidationError as exc:
        return ParseFailure(f"invalid STEEP group: {exc.error_count()} error(s)", text)


def check_groups(groups: Sequence[SteepFactorGroup]) -> None:
    """Reject a replacement group set that breaks the selection invariants."""

    factors = [group.factor for group in groups]
    if sorted(factors, key=FACTOR_ORDER.index) != FACTOR_ORDER:
        raise WizardValidationError(
            "Invalid STEEP groups",
            "Provide exactly one group for each STEEP factor.",
        )
    for group in groups:
        if len(group.selected) > MAX_SELECTED_PER_FACTOR:
            raise WizardValidationError(
                _REJECTION_NOTICES[RejectionReason.PER_FACTOR_LIMIT].title,
                f"{group.factor.value} has {len(group.selected)} selected points.",
            )
    if sum(len(group.selected) for group in groups) > MAX_SELECTED_TOTAL:
        raise WizardValidationError(
            _REJECTION_NOTICES[RejectionReason.TOTAL_LIMIT].title,
            f"At most {MAX_SELECTED_TOTAL} points can be selected as scenario axes.",
        )


def resolve_axes(groups: Sequence[SteepFactorGroup], axes: Sequence[SelectedPoint]) -> List[SelectedPoint]:
    """Match explicit ``[Y, X]`` axes against *groups*, taking the stored point text.

    Both axes must name existing points and come from different factors.
    """

    if len(axes) != MAX_SELECTED_TOTAL:
        raise WizardValidationError(
            "Select 2 axes",
            "Please select two factors/points for the scenario matrix axes.",
        )
    if axes[0].factor == axes[1].factor:
        raise WizardValidationError(
            "Axes must differ",
            "Pick the two scenario axes from different STEEP factors.",
        )
    by_factor = {group.factor: group for group in groups}
    resolved: List[SelectedPoint] = []
    for axis in axes:
        group = by_factor.get(axis.factor)
        if group is None or not 0 <= axis.point_idx < len(group.points):
            raise WizardValidationError(
                _REJECTION_NOTICES[RejectionReason.UNKNOWN_POINT].title,
                f"{axis.factor.value} has no point {axis.point_idx + 1}.",
            )
        resolved.append(axis.model_copy(update={"text": group.points[axis.point_idx].text}))
    return resolved
