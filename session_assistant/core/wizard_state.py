"""Wizard State — in-memory state machine for disclaimer → setup → plan → session.

Invariants:
    - Phases advance linearly; the only way back from session/plan is terminate()
    - setup sub-steps: location → casino → bankroll → generating (→ bankroll on failure)
    - A transition from the wrong phase raises InvalidTransitionError and changes nothing
    - generation increments on every transition; async results carrying an older
      generation are stale and must be discarded by the caller
    - session is None outside the plan/session phases

Design Decisions:
    - Dataclass with pure mutation helpers (no IO): the async orchestrator in
      services/wizard.py owns the gateway/store calls around these steps
    - Error → user message mapping lives here so every caller shows the same text
"""

from dataclasses import dataclass, field

from session_assistant.core.domain_types import SetupStep, WizardPhase
from session_assistant.core.errors import (
    AnthropicAPIError, InvalidTransitionError, SessionAssistantError,
)
from session_assistant.core.session_model import Session

RATE_LIMIT_MESSAGE = (
    "The AI service is receiving too many requests. "
    "Please wait a moment and try again."
)
GENERIC_GATEWAY_MESSAGE = "The AI service could not complete the request. Please try again."
CASINO_LIST_FAILED_MESSAGE = "Could not fetch casinos. Please proceed with manual entry."


@dataclass
class WizardState:
    """Per-process wizard state — pure dataclass, no IO."""

    phase: WizardPhase = WizardPhase.DISCLAIMER
    setup_step: SetupStep = SetupStep.LOCATION

    # Setup inputs collected so far
    jurisdiction: str = ""
    location_notice: str | None = None
    casinos: list[str] = field(default_factory=list)
    casino: str = ""

    # Last user-facing error (retained until the next successful step)
    last_error: str | None = None

    session: Session | None = None
    generation: int = 0

    def touch(self) -> int:
        """Mark a transition; returns the new generation token."""
        self.generation += 1
        return self.generation

    def is_current(self, token: int) -> bool:
        return self.generation == token


def initial_state(restored: Session | None) -> WizardState:
    """Resume straight into the active session when one was persisted."""
    if restored is not None:
        return WizardState(
            phase=WizardPhase.SESSION,
            jurisdiction=restored.jurisdiction,
            casino=restored.casino,
            session=restored,
        )
    return WizardState()


def require_phase(
    state: WizardState,
    action: str,
    phases: tuple[WizardPhase, ...],
    steps: tuple[SetupStep, ...] | None = None,
) -> None:
    """Raise InvalidTransitionError unless the state allows `action`."""
    if state.phase not in phases:
        raise InvalidTransitionError(action, state.phase.value)
    if steps is not None and state.setup_step not in steps:
        raise InvalidTransitionError(
            action, f"{state.phase.value}:{state.setup_step.value}",
        )


def accept_disclaimer(state: WizardState) -> None:
    require_phase(state, "accept the disclaimer", (WizardPhase.DISCLAIMER,))
    state.phase = WizardPhase.SETUP
    state.setup_step = SetupStep.LOCATION
    state.touch()


def set_jurisdiction(state: WizardState, jurisdiction: str, notice: str | None = None) -> None:
    state.jurisdiction = jurisdiction.strip()
    state.location_notice = notice
    state.touch()


def show_casinos(state: WizardState, casinos: list[str], error: str | None = None) -> None:
    state.casinos = list(casinos)
    state.casino = casinos[0] if casinos else ""
    state.last_error = error
    state.setup_step = SetupStep.CASINO
    state.touch()


def merge_casinos(state: WizardState, found: list[str]) -> None:
    seen = {c.casefold() for c in state.casinos}
    for name in found:
        if name.casefold() not in seen:
            state.casinos.append(name)
            seen.add(name.casefold())
    state.touch()


def select_casino(state: WizardState, casino: str) -> None:
    state.casino = casino.strip()
    state.last_error = None
    state.setup_step = SetupStep.BANKROLL
    state.touch()


def start_generating(state: WizardState) -> int:
    state.setup_step = SetupStep.GENERATING
    state.last_error = None
    return state.touch()


def plan_ready(state: WizardState, session: Session) -> None:
    state.session = session
    state.phase = WizardPhase.PLAN
    state.setup_step = SetupStep.BANKROLL
    state.last_error = None
    state.touch()


def plan_failed(state: WizardState, message: str) -> None:
    state.setup_step = SetupStep.BANKROLL
    state.last_error = message
    state.touch()


def begin_session(state: WizardState, session: Session) -> None:
    state.session = session
    state.phase = WizardPhase.SESSION
    state.touch()


def replace_session(state: WizardState, session: Session) -> None:
    state.session = session
    state.last_error = None
    state.touch()


def terminate(state: WizardState) -> None:
    """Drop the session and restart setup; the jurisdiction is kept as a default."""
    state.session = None
    state.phase = WizardPhase.SETUP
    state.setup_step = SetupStep.LOCATION
    state.casinos = []
    state.casino = ""
    state.last_error = None
    state.touch()


def user_message_for(error: Exception) -> str:
    """Map a caught failure to the text shown to the user."""
    if isinstance(error, AnthropicAPIError) and error.is_rate_limited:
        return RATE_LIMIT_MESSAGE
    if isinstance(error, AnthropicAPIError):
        return GENERIC_GATEWAY_MESSAGE
    if isinstance(error, SessionAssistantError):
        return error.user_message
    return GENERIC_GATEWAY_MESSAGE


def state_to_view(state: WizardState) -> dict:
    """Read-only snapshot of the wizard for the presentation layer (session excluded)."""
    return {
        "phase": state.phase.value,
        "setupStep": state.setup_step.value,
        "jurisdiction": state.jurisdiction,
        "locationNotice": state.location_notice,
        "casinos": list(state.casinos),
        "casino": state.casino,
        "lastError": state.last_error,
    }
