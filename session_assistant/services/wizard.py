"""Session Wizard — async orchestrator around the wizard state machine.

Invariants:
    - Single writer: every state change happens under self._lock
    - The lock is never held across a gateway await; results re-acquire it and are
      discarded when the generation token they captured is no longer current
    - Gateway failures never escape: they become state.last_error (user message)
    - Every Session change in the session phase is persisted before the lock is released
    - A transition from the wrong phase raises InvalidTransitionError and changes nothing

Design Decisions:
    - Gateway and store injected (Protocols): tests use fakes, main.py wires the
      Anthropic gateway and the SQL store
    - Read-only analysis helpers (regional, image, machines) need no phase and do not
      touch the generation counter
"""

import asyncio
import logging

from session_assistant.core.comps import suggest_comp_strategy
from session_assistant.core.domain_types import (
    DEFAULT_HOUSE_EDGE_PERCENT, SetupStep, StageDirection, WizardPhase,
)
from session_assistant.core.errors import SessionAssistantError, SessionValidationError
from session_assistant.core.metrics import compute_session_metrics, current_bankroll
from session_assistant.core.parse_responses import MachineData, RegionalAnalysis
from session_assistant.core.repository_protocols import PlanGateway, SessionStore
from session_assistant.core import session_model, wizard_state
from session_assistant.core.session_model import (
    Session,
    Spin,
    create_session,
    enter_active_session,
    validate_setup,
)
from session_assistant.core.session_snapshot import session_to_snapshot
from session_assistant.core.wizard_state import (
    CASINO_LIST_FAILED_MESSAGE,
    WizardState,
    require_phase,
    state_to_view,
    user_message_for,
)

logger = logging.getLogger(__name__)

_ACTIVE = (WizardPhase.SESSION,)
_HOLDING_SESSION = (WizardPhase.PLAN, WizardPhase.SESSION)


class SessionWizard:
    """Drives disclaimer → setup → plan → session for the single local user."""

    def __init__(
        self,
        gateway: PlanGateway,
        store: SessionStore,
        default_jurisdiction: str = "Nevada",
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.default_jurisdiction = default_jurisdiction
        self.state = WizardState()
        self._lock = asyncio.Lock()

    async def start(self) -> WizardState:
        """Load the persisted Session (if any) and resume into it."""
        async with self._lock:
            restored = await self.store.load()
            if restored is not None and not restored.free_play_consumed:
                restored = enter_active_session(restored)
                await self.store.save(restored)
            self.state = wizard_state.initial_state(restored)
            logger.info(
                "Wizard started",
                extra={"phase": self.state.phase.value, "operation": "start"},
            )
            return self.state

    # ─── Setup ──────────────────────────────────────────────────

    async def accept_disclaimer(self) -> None:
        async with self._lock:
            wizard_state.accept_disclaimer(self.state)

    async def locate(self, lat: float | None, lon: float | None) -> None:
        """Resolve the jurisdiction from coordinates, falling back to the default."""
        async with self._lock:
            require_phase(self.state, "locate", (WizardPhase.SETUP,), (SetupStep.LOCATION,))
            if lat is None or lon is None:
                wizard_state.set_jurisdiction(
                    self.state, self.default_jurisdiction,
                    f'Location access denied. Defaulting to "{self.default_jurisdiction}".',
                )
                return
            token = self.state.touch()

        try:
            jurisdiction, notice = await self.gateway.resolve_jurisdiction(lat, lon), None
        except SessionAssistantError as e:
            logger.warning(
                f"Jurisdiction lookup failed: {e.message}",
                extra={"operation": "resolve_jurisdiction", "error_code": e.code},
            )
            jurisdiction = self.default_jurisdiction
            notice = f'Could not determine jurisdiction. Defaulting to "{jurisdiction}".'

        async with self._lock:
            if self._is_stale(token, "resolve_jurisdiction"):
                return
            wizard_state.set_jurisdiction(self.state, jurisdiction, notice)

    async def set_jurisdiction(self, jurisdiction: str) -> None:
        async with self._lock:
            require_phase(
                self.state, "change the jurisdiction",
                (WizardPhase.SETUP,), (SetupStep.LOCATION,),
            )
            if not jurisdiction.strip():
                raise SessionValidationError("jurisdiction is required", "jurisdiction")
            wizard_state.set_jurisdiction(self.state, jurisdiction)

    async def confirm_location(self, preference_hints: str = "") -> None:
        """Fetch the casino list; on failure continue with manual entry."""
        async with self._lock:
            require_phase(
                self.state, "confirm the location",
                (WizardPhase.SETUP,), (SetupStep.LOCATION,),
            )
            if not self.state.jurisdiction.strip():
                raise SessionValidationError("jurisdiction is required", "jurisdiction")
            jurisdiction = self.state.jurisdiction
            token = self.state.touch()

        try:
            casinos, error = await self.gateway.list_casinos(jurisdiction, preference_hints), None
        except SessionAssistantError as e:
            logger.warning(
                f"Casino list failed: {e.message}",
                extra={"operation": "list_casinos", "error_code": e.code},
            )
            casinos, error = [], CASINO_LIST_FAILED_MESSAGE

        async with self._lock:
            if self._is_stale(token, "list_casinos"):
                return
            wizard_state.show_casinos(self.state, casinos, error)

    async def search_casinos(self, query: str) -> None:
        async with self._lock:
            require_phase(
                self.state, "search casinos", (WizardPhase.SETUP,), (SetupStep.CASINO,),
            )
            if not query.strip():
                raise SessionValidationError("query is required", "query")
            jurisdiction = self.state.jurisdiction
            token = self.state.touch()

        try:
            found = await self.gateway.search_casino(jurisdiction, query.strip())
        except SessionAssistantError as e:
            async with self._lock:
                if not self._is_stale(token, "search_casino"):
                    self.state.last_error = user_message_for(e)
            return

        async with self._lock:
            if self._is_stale(token, "search_casino"):
                return
            self.state.last_error = None
            wizard_state.merge_casinos(self.state, found)

    async def select_casino(self, casino: str) -> None:
        async with self._lock:
            require_phase(
                self.state, "select a casino", (WizardPhase.SETUP,), (SetupStep.CASINO,),
            )
            if not casino.strip():
                raise SessionValidationError("casino is required", "casino")
            wizard_state.select_casino(self.state, casino)

    async def generate_plan(
        self,
        bankroll: float,
        goal: float,
        free_play: float = 0.0,
        strategy_hint: str | None = None,
    ) -> None:
        """Validate inputs, ask the gateway for a plan, and enter the plan phase."""
        async with self._lock:
            require_phase(
                self.state, "generate a plan", (WizardPhase.SETUP,), (SetupStep.BANKROLL,),
            )
            jurisdiction, casino = self.state.jurisdiction, self.state.casino
            validate_setup(
                jurisdiction=jurisdiction, casino=casino,
                bankroll=bankroll, goal=goal, free_play=free_play,
            )
            token = wizard_state.start_generating(self.state)

        logger.info(
            "Generating plan",
            extra={"phase": WizardPhase.SETUP.value, "operation": "generate_plan"},
        )
        try:
            result = await self.gateway.generate_plan(
                bankroll, goal, jurisdiction, casino, free_play, strategy_hint,
            )
        except SessionAssistantError as e:
            logger.warning(
                f"Plan generation failed: {e.message}",
                extra={"operation": "generate_plan", "error_code": e.code},
            )
            await self._fail_plan(token, e)
            return
        except Exception as e:
            logger.error(
                f"Unexpected error during plan generation: {e}",
                extra={"operation": "generate_plan"}, exc_info=True,
            )
            await self._fail_plan(token, e)
            return

        async with self._lock:
            if self._is_stale(token, "generate_plan"):
                return
            session = create_session(
                jurisdiction=jurisdiction, casino=casino,
                bankroll=bankroll, goal=goal, free_play=free_play,
                plan=result.plan, likelihood=result.likelihood, analysis=result.analysis,
            )
            wizard_state.plan_ready(self.state, session)

    # ─── Active session ─────────────────────────────────────────

    async def begin_session(self) -> None:
        async with self._lock:
            require_phase(self.state, "begin the session", (WizardPhase.PLAN,))
            session = enter_active_session(self.state.session)
            wizard_state.begin_session(self.state, session)
            await self.store.save(session)

    async def log_spin(self, bet: float, win: float) -> None:
        async with self._lock:
            require_phase(self.state, "log a spin", _ACTIVE)
            session = session_model.log_spin(self.state.session, Spin(bet=bet, win=win))
            await self._commit(session)
            logger.info(
                "Spin logged",
                extra={"operation": "log_spin", "spin_count": len(session.spins)},
            )

    async def advance_stage(self, direction: StageDirection) -> None:
        async with self._lock:
            require_phase(self.state, "move between stages", _ACTIVE)
            session = session_model.advance_stage(self.state.session, direction)
            if session is not self.state.session:
                await self._commit(session)

    async def refine_stage(self, stage_index: int, machine_name: str) -> None:
        """Ask the gateway to adapt one stage's bet strategy to the machine in play."""
        async with self._lock:
            require_phase(self.state, "refine a stage", _ACTIVE)
            session = self.state.session
            if not 0 <= stage_index < len(session.plan):
                raise SessionValidationError(
                    f"Stage index {stage_index} is out of range", "stage_index",
                )
            if not machine_name.strip():
                raise SessionValidationError("machine_name is required", "machine_name")
            stage = session.plan[stage_index]
            bankroll = current_bankroll(session)
            token = self.state.touch()

        try:
            strategy = await self.gateway.refine_plan_stage(
                stage, machine_name.strip(), bankroll,
            )
        except SessionAssistantError as e:
            async with self._lock:
                if not self._is_stale(token, "refine_plan_stage"):
                    self.state.last_error = user_message_for(e)
            return

        async with self._lock:
            if self._is_stale(token, "refine_plan_stage"):
                return
            updated = session_model.refine_stage(self.state.session, stage_index, strategy)
            await self._commit(updated)
            logger.info(
                "Stage refined",
                extra={"operation": "refine_plan_stage", "stage_index": stage_index},
            )

    async def end_session(self) -> None:
        await self._finish("end the session")

    async def record_win(self) -> None:
        await self._finish("record a win")

    async def _finish(self, action: str) -> None:
        async with self._lock:
            require_phase(self.state, action, _HOLDING_SESSION)
            await self.store.clear()
            wizard_state.terminate(self.state)
            logger.info(
                "Session closed",
                extra={"phase": self.state.phase.value, "operation": action},
            )

    async def _commit(self, session: Session) -> None:
        wizard_state.replace_session(self.state, session)
        await self.store.save(session)

    def _is_stale(self, token: int, operation: str) -> bool:
        if self.state.is_current(token):
            return False
        logger.info(
            "Discarding stale gateway response",
            extra={"phase": self.state.phase.value, "operation": operation},
        )
        return True

    async def _fail_plan(self, token: int, error: Exception) -> None:
        async with self._lock:
            if not self._is_stale(token, "generate_plan"):
                wizard_state.plan_failed(self.state, user_message_for(error))

    # ─── Read-only views ────────────────────────────────────────

    def metrics(self, house_edge_percent: float = DEFAULT_HOUSE_EDGE_PERCENT) -> dict:
        require_phase(self.state, "read metrics", _HOLDING_SESSION)
        return compute_session_metrics(self.state.session, house_edge_percent)

    def comps(self, tier: str, points_to_next: int) -> str:
        return suggest_comp_strategy(tier, points_to_next)

    def view(self) -> dict:
        """Wizard view plus session snapshot and metrics when a session exists."""
        data = state_to_view(self.state)
        session = self.state.session
        data["session"] = session_to_snapshot(session) if session else None
        data["metrics"] = compute_session_metrics(session) if session else None
        return data

    # ─── Analysis helpers ───────────────────────────────────────

    async def regional_analysis(self) -> RegionalAnalysis | None:
        jurisdiction = self.state.jurisdiction or self.default_jurisdiction
        try:
            result = await self.gateway.fetch_regional_analysis(jurisdiction)
        except SessionAssistantError as e:
            self.state.last_error = user_message_for(e)
            return None
        self.state.last_error = None
        return result

    async def analyze_image(self, image_bytes: bytes, media_type: str) -> MachineData | None:
        try:
            result = await self.gateway.analyze_image(image_bytes, media_type)
        except SessionAssistantError as e:
            self.state.last_error = user_message_for(e)
            return None
        self.state.last_error = None
        return result

    async def identify_machine(self, image_bytes: bytes, media_type: str) -> str | None:
        try:
            result = await self.gateway.identify_machine(image_bytes, media_type)
        except SessionAssistantError as e:
            self.state.last_error = user_message_for(e)
            return None
        self.state.last_error = None
        return result

    async def find_machines(self) -> list[str]:
        casino = self.state.session.casino if self.state.session else self.state.casino
        if not casino:
            return []
        return await self.gateway.find_machines(casino)
