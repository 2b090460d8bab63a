"""Response Parsing — the single parse-and-validate boundary for AI gateway output.

Invariants:
    - One parse function per gateway operation
    - Each returns a fully typed value or raises ResponseFormatError — never partial data
    - Every Stage field is defaulted when missing or wrongly typed
    - stopLoss / winGoal in a parsed Stage are always > 0

Design Decisions:
    - extract_json has 3 fallback levels (fenced block, whole text, first {...}/[...] span)
    - bool is rejected wherever a number is expected (bool is an int subclass in Python)
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from session_assistant.core.domain_types import (
    DEFAULT_TIME_LIMIT_MINUTES, MAX_CASINO_RESULTS, STOP_LOSS_FALLBACK_RATIO,
)
from session_assistant.core.errors import ResponseFormatError
from session_assistant.core.session_model import Stage

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")
_ARRAY_SPAN = re.compile(r"\[[\s\S]*\]")


# ─── Typed results ──────────────────────────────────────────────

@dataclass(frozen=True)
class PlanResult:
    plan: tuple[Stage, ...]
    likelihood: float
    analysis: str


@dataclass(frozen=True)
class GroundingSource:
    uri: str
    title: str


@dataclass(frozen=True)
class RegionalAnalysis:
    analysis_text: str
    sources: tuple[GroundingSource, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MachineData:
    game_name: str | None = None
    vendor: str | None = None
    denomination: float | None = None
    max_bet: float | None = None

    def to_dict(self) -> dict:
        return {
            "gameName": self.game_name,
            "vendor": self.vendor,
            "denomination": self.denomination,
            "maxBet": self.max_bet,
        }


# ─── JSON extraction ────────────────────────────────────────────

def extract_json(text: str, operation: str) -> Any:
    """Extract a JSON value from model text.

    Fallback levels:
    1. ```json fenced block
    2. The whole text
    3. First {...} or [...] span
    """
    text = (text or "").strip()

    match = _FENCED_BLOCK.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for pattern in (_OBJECT_SPAN, _ARRAY_SPAN):
        match = pattern.search(text)
        if match:
            try:
                return json.loads(match.group())
            except json.JSONDecodeError:
                continue

    logger.warning(
        "Model returned non-JSON response",
        extra={"operation": operation},
    )
    raise ResponseFormatError(
        "Failed to parse a valid JSON object from the AI's response.", operation,
    )


# ─── Field coercion helpers ─────────────────────────────────────

def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints beyond float range
        return False


def _text_or(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _positive_or(value: Any, default: float) -> float:
    if _is_number(value) and value > 0:
        return float(value)
    return default


def _clean_names(items: Any, operation: str, limit: int | None = None) -> list[str]:
    if not isinstance(items, list):
        raise ResponseFormatError("Expected a JSON array of names.", operation)
    names: list[str] = []
    seen: set[str] = set()
    for item in items:
        if not isinstance(item, str) or not item.strip():
            continue
        name = item.strip()
        if name.casefold() in seen:
            continue
        seen.add(name.casefold())
        names.append(name)
    return names[:limit] if limit else names


# ─── Per-operation parsers ──────────────────────────────────────

def parse_stage(raw: Any, index: int, bankroll: float, goal: float) -> Stage:
    """Coerce one model-produced stage object, defaulting every bad field."""
    step = raw if isinstance(raw, dict) else {}
    stage_no = step.get("stage")
    minutes = step.get("timeLimitMinutes")
    return Stage(
        stage=int(stage_no) if _is_number(stage_no) else index + 1,
        game_name=_text_or(step.get("gameName"), "Unnamed Game"),
        bet_strategy=_text_or(step.get("betStrategy"), "Not specified"),
        reasoning=_text_or(step.get("reasoning"), "Standard protocol."),
        objective=_text_or(step.get("objective"), "Play according to strategy"),
        stop_loss=_positive_or(step.get("stopLoss"), bankroll * STOP_LOSS_FALLBACK_RATIO),
        win_goal=_positive_or(step.get("winGoal"), goal),
        time_limit_minutes=(
            int(minutes) if _is_number(minutes) and minutes > 0
            else DEFAULT_TIME_LIMIT_MINUTES
        ),
        contingency_plan=_text_or(
            step.get("contingencyPlan"), "Re-evaluate or proceed to next stage.",
        ),
    )


def parse_plan_response(text: str, bankroll: float, goal: float) -> PlanResult:
    operation = "generate_plan"
    result = extract_json(text, operation)
    if not (
        isinstance(result, dict)
        and _is_number(result.get("likelihood"))
        and isinstance(result.get("analysis"), str)
        and isinstance(result.get("plan"), list)
    ):
        raise ResponseFormatError("AI returned an invalid plan format.", operation)
    if not result["plan"]:
        raise ResponseFormatError("AI returned an empty plan.", operation)

    plan = tuple(
        parse_stage(step, i, bankroll, goal) for i, step in enumerate(result["plan"])
    )
    likelihood = max(0.0, min(100.0, float(result["likelihood"])))
    return PlanResult(plan=plan, likelihood=likelihood, analysis=result["analysis"].strip())


def parse_casino_list(text: str, sort: bool = True) -> list[str]:
    names = _clean_names(extract_json(text, "list_casinos"), "list_casinos")
    if sort:
        names.sort(key=str.casefold)
    return names[:MAX_CASINO_RESULTS]


def parse_name_list(text: str, operation: str) -> list[str]:
    return _clean_names(extract_json(text, operation), operation)


def parse_refinement(text: str) -> str:
    operation = "refine_plan_stage"
    result = extract_json(text, operation)
    if not isinstance(result, dict):
        raise ResponseFormatError("AI returned an invalid refinement format.", operation)
    strategy = result.get("refinedBetStrategy")
    if not isinstance(strategy, str) or not strategy.strip():
        raise ResponseFormatError("AI returned an invalid refinement format.", operation)
    return strategy.strip()


def parse_machine_data(text: str) -> MachineData:
    operation = "analyze_image"
    result = extract_json(text, operation)
    if not isinstance(result, dict):
        raise ResponseFormatError("AI returned an invalid machine description.", operation)
    return MachineData(
        game_name=_text_or(result.get("gameName"), "") or None,
        vendor=_text_or(result.get("vendor"), "") or None,
        denomination=_positive_or(result.get("denomination"), 0.0) or None,
        max_bet=_positive_or(result.get("maxBet"), 0.0) or None,
    )


def parse_plain_text(text: str, operation: str) -> str:
    """Single-line answers (jurisdiction, machine title) — first non-empty line, unquoted."""
    for line in (text or "").splitlines():
        line = line.strip().strip('"').strip()
        if line:
            return line
    raise ResponseFormatError("AI returned an empty answer.", operation)


def parse_sources(blocks: list[dict]) -> tuple[GroundingSource, ...]:
    """Collect unique web citations from serialized web_search_tool_result blocks."""
    sources: list[GroundingSource] = []
    seen: set[str] = set()
    for block in blocks:
        if block.get("type") != "web_search_tool_result":
            continue
        content = block.get("content")
        if not isinstance(content, list):
            continue
        for item in content:
            if not isinstance(item, dict):
                continue
            uri = item.get("url")
            if not isinstance(uri, str) or not uri or uri in seen:
                continue
            seen.add(uri)
            title = item.get("title")
            sources.append(GroundingSource(
                uri=uri, title=title if isinstance(title, str) and title else uri,
            ))
    return tuple(sources)


def parse_free_text(text: str, operation: str) -> str:
    """Multi-paragraph prose answers (regional analysis)."""
    cleaned = (text or "").strip()
    if not cleaned:
        raise ResponseFormatError("AI returned an empty answer.", operation)
    return cleaned
