"""Session Snapshot — JSON-safe serialization / deserialization for Session.

Invariants:
    - session_to_snapshot produces a JSON-safe dict with camelCase keys
    - session_from_snapshot either returns a Session satisfying the ledger and stage invariants
      or raises SessionValidationError (never a partially trusted Session)
    - goal > bankroll is not re-checked on load: activated free play may exceed it
    - Spin order is preserved exactly (newest first)

Design Decisions:
    - Keys mirror the blob the browser app stored, so older saves keep loading
    - Deprecated stage keys (machineType, denomination, spinCount) are ignored on load
    - A missing casino key (older saves) loads as LEGACY_CASINO_NAME; a blank one is rejected
    - Missing freePlayConsumed is inferred from the ledger: a session with spins has
      already passed through the active-session transition
"""

import math
from typing import Any

from session_assistant.core.errors import SessionValidationError
from session_assistant.core.session_model import (
    Session, Spin, Stage, validate_spin,
)

# Saves written before the casino was persisted
LEGACY_CASINO_NAME = "Unspecified casino"


def stage_to_dict(stage: Stage) -> dict:
    return {
        "stage": stage.stage,
        "gameName": stage.game_name,
        "betStrategy": stage.bet_strategy,
        "reasoning": stage.reasoning,
        "objective": stage.objective,
        "stopLoss": stage.stop_loss,
        "winGoal": stage.win_goal,
        "timeLimitMinutes": stage.time_limit_minutes,
        "contingencyPlan": stage.contingency_plan,
        "isRefined": stage.is_refined,
    }


def session_to_snapshot(session: Session) -> dict:
    """Serialize Session to a JSON-safe dict. Pure, no IO."""
    return {
        "jurisdiction": session.jurisdiction,
        "casino": session.casino,
        "bankroll": session.bankroll,
        "goal": session.goal,
        "freePlay": session.free_play,
        "plan": [stage_to_dict(s) for s in session.plan],
        "likelihood": session.likelihood,
        "analysis": session.analysis,
        "spins": [{"bet": s.bet, "win": s.win} for s in session.spins],
        "currentStageIndex": session.current_stage_index,
        "freePlayConsumed": session.free_play_consumed,
    }


def _stage_from_dict(data: Any, position: int) -> Stage:
    if not isinstance(data, dict):
        raise SessionValidationError(f"Stage {position} is not an object", "plan")
    try:
        stage = Stage(
            stage=int(data.get("stage", position + 1)),
            game_name=str(data["gameName"]),
            bet_strategy=str(data["betStrategy"]),
            reasoning=str(data.get("reasoning", "")),
            objective=str(data.get("objective", "")),
            stop_loss=float(data["stopLoss"]),
            win_goal=float(data["winGoal"]),
            time_limit_minutes=int(data.get("timeLimitMinutes", 0)),
            contingency_plan=str(data.get("contingencyPlan", "")),
            is_refined=bool(data.get("isRefined", False)),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise SessionValidationError(f"Stage {position} is malformed: {e}", "plan")
    triggers = (stage.stop_loss, stage.win_goal)
    if not all(math.isfinite(t) and t > 0 for t in triggers):
        raise SessionValidationError(
            f"Stage {position} has non-positive or non-finite triggers", "plan",
        )
    return stage


def _spin_from_dict(data: Any) -> Spin:
    if not isinstance(data, dict):
        raise SessionValidationError("Spin entry is not an object", "spins")
    spin = Spin(bet=data.get("bet"), win=data.get("win"))
    validate_spin(spin)
    return Spin(bet=float(spin.bet), win=float(spin.win))


def session_from_snapshot(data: Any) -> Session:
    """Reconstruct a Session from a snapshot dict. Pure, no IO."""
    if not isinstance(data, dict):
        raise SessionValidationError("Snapshot is not an object", "snapshot")

    raw_plan = data.get("plan")
    raw_spins = data.get("spins", [])
    if not isinstance(raw_plan, list) or not isinstance(raw_spins, list):
        raise SessionValidationError("Snapshot plan/spins must be lists", "snapshot")

    plan = [_stage_from_dict(s, i) for i, s in enumerate(raw_plan)]
    if not plan:
        raise SessionValidationError("Snapshot has an empty plan", "plan")
    spins = tuple(_spin_from_dict(s) for s in raw_spins)

    jurisdiction = data.get("jurisdiction")
    casino = data.get("casino", LEGACY_CASINO_NAME)
    for name, value in (("jurisdiction", jurisdiction), ("casino", casino)):
        if not isinstance(value, str) or not value.strip():
            raise SessionValidationError(f"{name} is required", name)

    # goal > bankroll only holds before activation; free play may push bankroll past it
    bankroll = _require_amount(data.get("bankroll"), "bankroll", allow_zero=False)
    goal = _require_amount(data.get("goal"), "goal", allow_zero=False)
    free_play = _require_amount(data.get("freePlay", 0), "free_play", allow_zero=True)

    index = data.get("currentStageIndex", 0)
    if isinstance(index, bool) or not isinstance(index, int):
        raise SessionValidationError("currentStageIndex must be an integer", "snapshot")
    if not 0 <= index < len(plan):
        raise SessionValidationError(
            f"currentStageIndex {index} outside plan of {len(plan)} stages",
            "current_stage_index",
        )

    consumed = data.get("freePlayConsumed")
    if not isinstance(consumed, bool):
        consumed = bool(spins)

    return Session(
        jurisdiction=jurisdiction,
        casino=casino,
        bankroll=bankroll,
        goal=goal,
        free_play=free_play,
        plan=tuple(plan),
        likelihood=_likelihood(data.get("likelihood")),
        analysis=str(data.get("analysis") or ""),
        spins=spins,
        current_stage_index=index,
        free_play_consumed=consumed,
    )


def _require_amount(value: Any, field_name: str, *, allow_zero: bool) -> float:
    number = _as_float(value, math.nan)
    if not math.isfinite(number):
        raise SessionValidationError(f"{field_name} must be a finite number", field_name)
    if number < 0 or (number == 0 and not allow_zero):
        raise SessionValidationError(f"{field_name} is out of range", field_name)
    return number


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    try:
        return float(value)
    except OverflowError:
        return default


def _likelihood(value: Any) -> float:
    number = _as_float(value, 0.0)
    return max(0.0, min(100.0, number)) if math.isfinite(number) else 0.0
