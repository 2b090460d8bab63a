"""Financial Metrics — pure running totals derived from the spin ledger.

Invariants:
    - Every metric is a deterministic function of its inputs (no caching, no hidden state)
    - current_bankroll == session.bankroll + total_net(session.spins) exactly
    - goal_progress_percent is clamped to [0, 100]
    - No rounding here; two-decimal currency display happens at the presentation boundary

Design Decisions:
    - Plain functions, not Session methods: the model enforces invariants, metrics are read-side
"""

from collections.abc import Iterable

from session_assistant.core.domain_types import DEFAULT_HOUSE_EDGE_PERCENT
from session_assistant.core.errors import SessionValidationError
from session_assistant.core.session_model import Session, Spin


def total_net(spins: Iterable[Spin]) -> float:
    return sum((s.win - s.bet for s in spins), 0.0)


def current_bankroll(session: Session) -> float:
    return session.bankroll + total_net(session.spins)


def total_coin_in(spins: Iterable[Spin]) -> float:
    return sum((s.bet for s in spins), 0.0)


def ldw_count(spins: Iterable[Spin]) -> int:
    """Count losses disguised as wins: 0 < win < bet."""
    return sum(1 for s in spins if 0 < s.win < s.bet)


def goal_progress_percent(session: Session) -> float:
    percent = current_bankroll(session) / session.goal * 100
    return max(0.0, min(100.0, percent))


def theoretical_loss(coin_in: float, house_edge_percent: float) -> float:
    """THEO: expected casino revenue for a wagering volume at a given house edge."""
    return coin_in * house_edge_percent / 100


def compute_session_metrics(
    session: Session, house_edge_percent: float = DEFAULT_HOUSE_EDGE_PERCENT,
) -> dict:
    """Bundle every metric for the active session view. Pure, no IO."""
    if not 0 <= house_edge_percent <= 100:
        raise SessionValidationError(
            "House edge must be between 0 and 100 percent", "house_edge_percent",
        )
    bankroll_now = current_bankroll(session)
    coin_in = total_coin_in(session.spins)
    stage = session.current_stage
    return {
        "totalNet": total_net(session.spins),
        "currentBankroll": bankroll_now,
        "totalCoinIn": coin_in,
        "ldwCount": ldw_count(session.spins),
        "spinCount": len(session.spins),
        "goalProgressPercent": goal_progress_percent(session),
        "houseEdgePercent": house_edge_percent,
        "theoreticalLoss": theoretical_loss(coin_in, house_edge_percent),
        "currentStage": stage.stage,
        "totalStages": len(session.plan),
        "stopLossHit": bankroll_now <= stage.stop_loss,
        "winGoalHit": bankroll_now >= stage.win_goal,
    }
