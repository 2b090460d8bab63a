"""Wizard Routes — disclaimer and setup steps up to the generated plan.

Invariants:
    - Every mutating route returns the full wizard view after the transition
    - Gateway failures surface in the view's lastError, never as HTTP errors
    - Wrong-phase calls are 409 (InvalidTransitionError via the global handler)
"""

from fastapi import APIRouter, Depends

from session_assistant.api.dependencies import get_wizard
from session_assistant.schemas.wizard import (
    CasinoListRequest, CasinoSearch, CasinoSelect, JurisdictionUpdate,
    LocationRequest, PlanRequest,
)
from session_assistant.services.wizard import SessionWizard

router = APIRouter(prefix="/api/v1/wizard", tags=["wizard"])


@router.get("")
async def get_wizard_view(wizard: SessionWizard = Depends(get_wizard)):
    """Current phase, setup inputs, last error, session snapshot and metrics."""
    return wizard.view()


@router.post("/disclaimer")
async def accept_disclaimer(wizard: SessionWizard = Depends(get_wizard)):
    await wizard.accept_disclaimer()
    return wizard.view()


@router.post("/location")
async def locate(body: LocationRequest, wizard: SessionWizard = Depends(get_wizard)):
    await wizard.locate(body.lat, body.lon)
    return wizard.view()


@router.put("/jurisdiction")
async def set_jurisdiction(
    body: JurisdictionUpdate, wizard: SessionWizard = Depends(get_wizard),
):
    await wizard.set_jurisdiction(body.jurisdiction)
    return wizard.view()


@router.post("/casinos")
async def confirm_location(
    body: CasinoListRequest, wizard: SessionWizard = Depends(get_wizard),
):
    await wizard.confirm_location(body.preference_hints)
    return wizard.view()


@router.post("/casinos/search")
async def search_casinos(body: CasinoSearch, wizard: SessionWizard = Depends(get_wizard)):
    await wizard.search_casinos(body.query)
    return wizard.view()


@router.put("/casino")
async def select_casino(body: CasinoSelect, wizard: SessionWizard = Depends(get_wizard)):
    await wizard.select_casino(body.casino)
    return wizard.view()


@router.post("/plan")
async def generate_plan(body: PlanRequest, wizard: SessionWizard = Depends(get_wizard)):
    await wizard.generate_plan(
        body.bankroll, body.goal, body.free_play,
        body.strategy_hint.value if body.strategy_hint else None,
    )
    return wizard.view()


@router.post("/begin")
async def begin_session(wizard: SessionWizard = Depends(get_wizard)):
    await wizard.begin_session()
    return wizard.view()
