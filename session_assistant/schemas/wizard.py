"""Wizard Schemas — Pydantic request models for the HTTP boundary.

Invariants:
    - Text inputs are stripped; required text cannot be empty or whitespace
    - Money amounts are finite; bankroll and bet strictly positive
    - goal > bankroll is checked by the session model, not duplicated here

Design Decisions:
    - Field constraints over custom validators where Pydantic expresses them natively
"""

from pydantic import BaseModel, Field, field_validator

from session_assistant.core.domain_types import BettingStrategy, StageDirection


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("value cannot be empty or whitespace")
    return v


class LocationRequest(BaseModel):
    """Coordinates from the browser; both omitted when access was denied."""
    lat: float | None = Field(None, ge=-90, le=90)
    lon: float | None = Field(None, ge=-180, le=180)


class JurisdictionUpdate(BaseModel):
    jurisdiction: str = Field(max_length=120)

    @field_validator("jurisdiction")
    @classmethod
    def strip_jurisdiction(cls, v: str) -> str:
        return _strip_required(v)


class CasinoListRequest(BaseModel):
    preference_hints: str = Field("", max_length=500)


class CasinoSearch(BaseModel):
    query: str = Field(max_length=200)

    @field_validator("query")
    @classmethod
    def strip_query(cls, v: str) -> str:
        return _strip_required(v)


class CasinoSelect(BaseModel):
    casino: str = Field(max_length=200)

    @field_validator("casino")
    @classmethod
    def strip_casino(cls, v: str) -> str:
        return _strip_required(v)


class PlanRequest(BaseModel):
    bankroll: float = Field(gt=0, allow_inf_nan=False)
    goal: float = Field(gt=0, allow_inf_nan=False)
    free_play: float = Field(0.0, ge=0, allow_inf_nan=False)
    strategy_hint: BettingStrategy | None = None


class SpinCreate(BaseModel):
    bet: float = Field(gt=0, allow_inf_nan=False)
    win: float = Field(ge=0, allow_inf_nan=False)


class StageMove(BaseModel):
    direction: StageDirection


class RefineRequest(BaseModel):
    machine_name: str = Field(max_length=200)

    @field_validator("machine_name")
    @classmethod
    def strip_machine_name(cls, v: str) -> str:
        return _strip_required(v)


class CompsRequest(BaseModel):
    tier: str = Field("", max_length=60)
    points_to_next: int = 0
