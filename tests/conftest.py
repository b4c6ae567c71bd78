from __future__ import annotations

from typing import Callable, List, Tuple, Union

from fastapi.testclient import TestClient
import pytest

from strategy_flow.app import create_app
from strategy_flow.config import get_llm_settings, get_wizard_settings
from strategy_flow.errors import BackendError
from strategy_flow.memory import SessionMemory
from strategy_flow.prompts import PromptSpec

Reply = Union[str, Exception, Callable[[PromptSpec], str]]

SAMPLE_CASE = (
    "Title: Northwind Mobility Goes Electric\n"
    "Company: Northwind Motors\n"
    "Northwind Motors is a mid-sized automaker weighing a shift to electric vehicles across Europe "
    "while battery costs fall and charging networks expand unevenly across rural regions."
)

STEEP_REPLY = """```json
{"steepAnalysis": [
  {"factor": "Social", "points": ["Urban buyers favour shared mobility", "Range anxiety persists", "Younger drivers delay licences"]},
  {"factor": "Technological", "points": ["Solid-state batteries near launch", "Charging speeds double", "Software-defined vehicles"]},
  {"factor": "Economic", "points": ["Battery prices fall", "Interest rates stay high", "Used EV values wobble"]},
  {"factor": "Environmental", "points": ["Tighter fleet CO2 limits", "Lithium sourcing scrutiny", "Grid decarbonisation"]},
  {"factor": "Political", "points": ["EU combustion phase-out", "Tariffs on imported EVs", "Subsidy uncertainty"]}
]}
```"""


class ScriptedBackend:
    """Replay canned replies chosen by a marker found in the system prompt."""

    def __init__(self) -> None:
        self.rules: List[Tuple[str, Reply]] = []
        self.calls: List[PromptSpec] = []

    def script(self, marker: str, reply: Reply) -> "ScriptedBackend":
        self.rules.insert(0, (marker, reply))
        return self

    def calls_for(self, marker: str) -> List[PromptSpec]:
        return [spec for spec in self.calls if marker in spec.system_prompt]

    async def generate(self, spec: PromptSpec) -> str:
        self.calls.append(spec)
        for marker, reply in self.rules:
            if marker not in spec.system_prompt:
                continue
            if isinstance(reply, Exception):
                raise reply
            if callable(reply):
                return reply(spec)
            return reply
        raise BackendError("No scripted reply")


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure cached settings do not leak between tests."""

    get_llm_settings.cache_clear()
    get_wizard_settings.cache_clear()


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def memory() -> SessionMemory:
    return SessionMemory()


@pytest.fixture
def client(backend: ScriptedBackend, memory: SessionMemory) -> TestClient:
    return TestClient(create_app(backend=backend, memory=memory))


@pytest.fixture
def case_text() -> str:
    return SAMPLE_CASE


@pytest.fixture
def steep_reply() -> str:
    return STEEP_REPLY
