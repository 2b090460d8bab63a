"""Domain Types — enums and constants shared across the codebase.

Invariants:
    - All wizard states encoded as Enums — no raw string matching
    - str Enums serialize to JSON without custom encoders
"""

from enum import Enum


# ─── Constants ───────────────────────────────────────────────────

DEFAULT_HOUSE_EDGE_PERCENT = 8.0
MAX_CASINO_RESULTS = 25
DEFAULT_TIME_LIMIT_MINUTES = 30
STOP_LOSS_FALLBACK_RATIO = 0.9


# ─── Enums ───────────────────────────────────────────────────────

class WizardPhase(str, Enum):
    """Top-level application phases. Linear except for termination."""
    DISCLAIMER = "disclaimer"
    SETUP = "setup"
    PLAN = "plan"
    SESSION = "session"


class SetupStep(str, Enum):
    """Sub-steps of the setup phase."""
    LOCATION = "location"
    CASINO = "casino"
    BANKROLL = "bankroll"
    GENERATING = "generating"


class StageDirection(str, Enum):
    """User-driven stage navigation (±1, clamped)."""
    NEXT = "next"
    PREV = "prev"


class BettingStrategy(str, Enum):
    """Optional strategy hint passed to plan generation."""
    FLAT = "Flat"
    PROGRESSIVE = "Progressive"
    MARTINGALE = "Martingale"
    PAROLI = "Paroli"
