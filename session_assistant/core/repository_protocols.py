"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: implementations do IO; the pure functions that consume
      their results are never async themselves
"""

from typing import Protocol

from session_assistant.core.parse_responses import (
    MachineData, PlanResult, RegionalAnalysis,
)
from session_assistant.core.session_model import Session, Stage


class SessionStore(Protocol):
    """Single-slot durable storage for the serialized Session."""
    async def load(self) -> Session | None: ...
    async def save(self, session: Session) -> None: ...
    async def clear(self) -> None: ...


class PlanGateway(Protocol):
    """Generative-AI operations consumed by the wizard. Any call may fail."""
    async def resolve_jurisdiction(self, lat: float, lon: float) -> str: ...
    async def list_casinos(
        self, jurisdiction: str, preference_hints: str,
    ) -> list[str]: ...
    async def search_casino(self, jurisdiction: str, query: str) -> list[str]: ...
    async def fetch_regional_analysis(self, jurisdiction: str) -> RegionalAnalysis: ...
    async def generate_plan(
        self,
        bankroll: float,
        goal: float,
        jurisdiction: str,
        casino: str,
        free_play: float,
        strategy_hint: str | None = None,
    ) -> PlanResult: ...
    async def refine_plan_stage(
        self, stage: Stage, machine_name: str, current_bankroll: float,
    ) -> str: ...
    async def analyze_image(self, image_bytes: bytes, media_type: str) -> MachineData: ...
    async def identify_machine(self, image_bytes: bytes, media_type: str) -> str: ...
    async def find_machines(self, casino: str) -> list[str]: ...
