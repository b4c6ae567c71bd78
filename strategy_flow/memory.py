"""In-memory session store that hands step results from one step to the next."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import SessionNotFoundError
from .parsing import ParseFailure
from .schemas import SteepFactorGroup, WizardStep
from .selection import AxisSelection, dump_groups, load_groups

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class WizardSession:
    """Everything one wizard run knows, passed by reference between steps.

    Step results are kept as JSON strings keyed by step, the same hand-off
    format the browser cache used; ``markdown`` holds the rendered export.
    """

    session_id: str
    case_text: str
    industry: Optional[str] = None
    scenario_run_id: int = 0
    step_cache: Dict[WizardStep, str] = field(default_factory=dict)
    markdown: Dict[WizardStep, str] = field(default_factory=dict)

    @property
    def steep_groups(self) -> List[SteepFactorGroup]:
        cached = self.step_cache.get(WizardStep.STEEP)
        if not cached:
            return []
        groups = load_groups(cached)
        if isinstance(groups, ParseFailure):
            logger.warning("Discarding unreadable STEEP cache for %s: %s", self.session_id, groups.reason)
            return []
        return groups

    @steep_groups.setter
    def steep_groups(self, groups: List[SteepFactorGroup]) -> None:
        self.step_cache[WizardStep.STEEP] = dump_groups(groups)

    def selection(self) -> AxisSelection:
        return AxisSelection(self.steep_groups)

    def start_scenario_run(self) -> int:
        self.scenario_run_id += 1
        return self.scenario_run_id

    def is_current_run(self, run_id: int) -> bool:
        return run_id == self.scenario_run_id


class SessionMemory:
    """Persist per-session step outputs so later steps can rebuild context."""

    def __init__(self) -> None:
        self._sessions: Dict[str, WizardSession] = {}

    def create(self, case_text: str) -> WizardSession:
        session = WizardSession(session_id=uuid.uuid4().hex, case_text=case_text)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> WizardSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def reset(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(session_id)

    def store_step(
        self,
        session: WizardSession,
        step: WizardStep,
        result: BaseModel,
        markdown: str = "",
    ) -> None:
        """Persist a step result for the given session."""

        session.step_cache[step] = result.model_dump_json()
        if markdown:
            session.markdown[step] = markdown
        else:
            session.markdown.pop(step, None)

    def load_step(self, session: WizardSession, step: WizardStep, model_type: Type[ModelT]) -> Optional[ModelT]:
        """Return the typed result stored for *step*, or ``None``."""

        cached = session.step_cache.get(step)
        if not cached:
            return None
        try:
            return model_type.model_validate_json(cached)
        except ValidationError:
            logger.warning("Cached %s data for %s does not match %s", step.value, session.session_id, model_type.__name__)
            return None

    def combined_markdown(self, session_id: str) -> str | None:
        """Concatenate step markdown in step order for export."""

        session = self.get(session_id)
        ordered_markdown = [
            session.markdown[step]
            for step in sorted(session.markdown, key=lambda item: item.order)
            if session.markdown[step]
        ]
        if not ordered_markdown:
            return None
        return "\n\n---\n\n".join(ordered_markdown)
