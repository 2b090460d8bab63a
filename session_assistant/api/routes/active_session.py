"""Active Session Routes — spin ledger, stage navigation, refinement and closing.

Invariants:
    - Only valid in the session phase (plan phase too for end/win and metrics)
    - Every change is persisted by the wizard before the response is sent
"""

from fastapi import APIRouter, Depends, Query

from session_assistant.api.dependencies import get_wizard
from session_assistant.core.domain_types import DEFAULT_HOUSE_EDGE_PERCENT
from session_assistant.schemas.wizard import (
    CompsRequest, RefineRequest, SpinCreate, StageMove,
)
from session_assistant.services.wizard import SessionWizard

router = APIRouter(prefix="/api/v1/session", tags=["session"])


@router.post("/spins")
async def log_spin(body: SpinCreate, wizard: SessionWizard = Depends(get_wizard)):
    await wizard.log_spin(body.bet, body.win)
    return wizard.view()


@router.post("/stage")
async def advance_stage(body: StageMove, wizard: SessionWizard = Depends(get_wizard)):
    await wizard.advance_stage(body.direction)
    return wizard.view()


@router.post("/stages/{stage_index}/refine")
async def refine_stage(
    stage_index: int, body: RefineRequest, wizard: SessionWizard = Depends(get_wizard),
):
    await wizard.refine_stage(stage_index, body.machine_name)
    return wizard.view()


@router.get("/metrics")
async def get_metrics(
    house_edge: float = Query(DEFAULT_HOUSE_EDGE_PERCENT, ge=0, le=100),
    wizard: SessionWizard = Depends(get_wizard),
):
    return wizard.metrics(house_edge)


@router.post("/comps")
async def suggest_comps(body: CompsRequest, wizard: SessionWizard = Depends(get_wizard)):
    return {"strategy": wizard.comps(body.tier, body.points_to_next)}


@router.post("/end")
async def end_session(wizard: SessionWizard = Depends(get_wizard)):
    await wizard.end_session()
    return wizard.view()


@router.post("/win")
async def record_win(wizard: SessionWizard = Depends(get_wizard)):
    await wizard.record_win()
    return wizard.view()
