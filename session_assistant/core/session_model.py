"""Session Model — immutable betting session, its plan stages and the spin ledger.

Invariants:
    - bankroll > 0, goal > bankroll, free_play >= 0, jurisdiction and casino non-empty
    - 0 <= current_stage_index < len(plan); moves by ±1 per action, clamped
    - spins is append-only, newest first; existing entries are never reordered or dropped
    - Every spin in the ledger has bet > 0 and win >= 0
    - Free play is folded into bankroll at most once (enter_active_session)

Design Decisions:
    - Frozen dataclasses + dataclasses.replace: every operation returns a new Session,
      callers follow a read-then-replace discipline and never observe a half-applied update
    - plan/spins stored as tuples so a Session value cannot be mutated through a shared reference
    - Validation raises SessionValidationError; the wizard validates first, the model re-checks
"""

import math
from dataclasses import dataclass, field, replace

from session_assistant.core.domain_types import StageDirection
from session_assistant.core.errors import SessionValidationError


@dataclass(frozen=True)
class Stage:
    """One directive unit of a multi-stage betting plan."""
    stage: int
    game_name: str
    bet_strategy: str
    reasoning: str
    objective: str
    stop_loss: float
    win_goal: float
    time_limit_minutes: int
    contingency_plan: str
    is_refined: bool = False


@dataclass(frozen=True)
class Spin:
    """One logged wager and its payout."""
    bet: float
    win: float

    @property
    def net(self) -> float:
        return self.win - self.bet

    @property
    def is_loss_disguised_as_win(self) -> bool:
        return 0 < self.win < self.bet


@dataclass(frozen=True)
class Session:
    """The single active betting session."""
    jurisdiction: str
    casino: str
    bankroll: float
    goal: float
    free_play: float
    plan: tuple[Stage, ...]
    likelihood: float = 0.0
    analysis: str = ""
    spins: tuple[Spin, ...] = field(default_factory=tuple)
    current_stage_index: int = 0
    free_play_consumed: bool = False

    @property
    def current_stage(self) -> Stage:
        return self.plan[self.current_stage_index]


# ─── Validation helpers ─────────────────────────────────────────

def _require_number(value: float, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SessionValidationError(f"{field_name} must be a number", field_name)
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        raise SessionValidationError(f"{field_name} must be finite", field_name)
    return number


def _require_text(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise SessionValidationError(f"{field_name} is required", field_name)
    return value


def validate_setup(
    *, jurisdiction: str, casino: str, bankroll: float, goal: float, free_play: float,
) -> None:
    """Check the setup invariants shared by plan generation and session creation."""
    _require_text(jurisdiction, "jurisdiction")
    _require_text(casino, "casino")
    bankroll = _require_number(bankroll, "bankroll")
    goal = _require_number(goal, "goal")
    free_play = _require_number(free_play, "free_play")
    if bankroll <= 0:
        raise SessionValidationError("Bankroll must be greater than zero", "bankroll")
    if goal <= bankroll:
        raise SessionValidationError("Goal must be greater than the bankroll", "goal")
    if free_play < 0:
        raise SessionValidationError("Free play cannot be negative", "free_play")


def validate_spin(spin: Spin) -> None:
    bet = _require_number(spin.bet, "bet")
    win = _require_number(spin.win, "win")
    if bet <= 0:
        raise SessionValidationError("Bet must be greater than zero", "bet")
    if win < 0:
        raise SessionValidationError("Win cannot be negative", "win")


# ─── Lifecycle operations ───────────────────────────────────────

def create_session(
    *,
    jurisdiction: str,
    casino: str,
    bankroll: float,
    goal: float,
    free_play: float,
    plan: list[Stage] | tuple[Stage, ...],
    likelihood: float = 0.0,
    analysis: str = "",
) -> Session:
    """Build a fresh Session with an empty ledger positioned on the first stage."""
    validate_setup(
        jurisdiction=jurisdiction, casino=casino,
        bankroll=bankroll, goal=goal, free_play=free_play,
    )
    if not plan:
        raise SessionValidationError("A session requires at least one stage", "plan")
    return Session(
        jurisdiction=jurisdiction,
        casino=casino,
        bankroll=float(bankroll),
        goal=float(goal),
        free_play=float(free_play),
        plan=tuple(plan),
        likelihood=likelihood,
        analysis=analysis,
    )


def consume_free_play(session: Session) -> Session:
    """Fold free play into the bankroll when no spins are logged yet. Idempotent."""
    if session.spins or session.free_play <= 0:
        return session
    return replace(
        session,
        bankroll=session.bankroll + session.free_play,
        free_play=0.0,
    )


def enter_active_session(session: Session) -> Session:
    """Phase-transition action into the active session; applies free play once."""
    if session.free_play_consumed:
        return session
    return replace(consume_free_play(session), free_play_consumed=True)


def log_spin(session: Session, spin: Spin) -> Session:
    """Prepend a validated spin to the ledger."""
    validate_spin(spin)
    logged = Spin(bet=float(spin.bet), win=float(spin.win))
    return replace(session, spins=(logged,) + session.spins)


def advance_stage(session: Session, direction: StageDirection) -> Session:
    """Move the stage pointer by one, clamped to the plan bounds."""
    step = 1 if direction == StageDirection.NEXT else -1
    last = len(session.plan) - 1
    index = max(0, min(last, session.current_stage_index + step))
    if index == session.current_stage_index:
        return session
    return replace(session, current_stage_index=index)


def refine_stage(session: Session, stage_index: int, new_bet_strategy: str) -> Session:
    """Overwrite one stage's bet strategy and mark it refined."""
    if not 0 <= stage_index < len(session.plan):
        raise SessionValidationError(
            f"Stage index {stage_index} is out of range", "stage_index",
        )
    _require_text(new_bet_strategy, "bet_strategy")
    plan = list(session.plan)
    plan[stage_index] = replace(
        plan[stage_index], bet_strategy=new_bet_strategy, is_refined=True,
    )
    return replace(session, plan=tuple(plan))
