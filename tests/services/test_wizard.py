"""Session Wizard — orchestration tests with a fake gateway and a real SQLite store.

Invariants:
    - Startup resumes a persisted session straight into the session phase
    - Gateway failures land in last_error; the wizard never advances past a failed step
    - Wrong-phase calls raise InvalidTransitionError and change nothing
    - Stale gateway responses are discarded
    - Every session-phase change is persisted
"""

import asyncio
import json

import pytest

from session_assistant.core.domain_types import SetupStep, StageDirection, WizardPhase
from session_assistant.core.errors import (
    AnthropicAPIError, InvalidTransitionError, ResponseFormatError, SessionValidationError,
)
from session_assistant.core.session_model import create_session
from session_assistant.core.wizard_state import (
    CASINO_LIST_FAILED_MESSAGE, GENERIC_GATEWAY_MESSAGE, RATE_LIMIT_MESSAGE,
)
from session_assistant.models.stored_session import StoredSession
from session_assistant.services.plan_gateway import AnthropicPlanGateway
from session_assistant.services.wizard import SessionWizard

from tests.services.conftest import (
    drive_to_plan, drive_to_session, machine_result, make_stage, plan_result,
    regional_result,
)
from tests.services.mock_anthropic import MockAnthropicClient, text_response


# -- Startup -------------------------------------------------------------------

async def test_fresh_start_shows_disclaimer(wizard):
    assert wizard.state.phase == WizardPhase.DISCLAIMER
    assert wizard.view()["session"] is None


async def test_start_resumes_persisted_session(gateway, store):
    session = create_session(
        jurisdiction="Nevada", casino="Aria", bankroll=100, goal=300,
        free_play=50, plan=[make_stage(1)],
    )
    await store.save(session)

    wizard = SessionWizard(gateway, store)
    await wizard.start()

    assert wizard.state.phase == WizardPhase.SESSION
    assert wizard.state.session.bankroll == 150
    assert wizard.state.session.free_play_consumed is True
    assert (await store.load()).bankroll == 150

    # A second restart must not apply the free play again
    again = SessionWizard(gateway, store)
    await again.start()
    assert again.state.session.bankroll == 150


async def test_start_with_overflowing_stored_stage_starts_fresh(gateway, store, db):
    payload = json.dumps({
        "jurisdiction": "Nevada", "casino": "Aria", "bankroll": 100, "goal": 300,
        "plan": [{"stage": 1e400, "gameName": "Buffalo", "betStrategy": "$1",
                  "stopLoss": 90, "winGoal": 300}],
        "spins": [],
    })
    async with db.session() as s:
        s.add(StoredSession(key=store.key, payload=payload))
        await s.commit()

    wizard = SessionWizard(gateway, store)
    await wizard.start()

    assert wizard.state.phase == WizardPhase.DISCLAIMER
    assert await store.load() is None


# -- Setup ---------------------------------------------------------------------

async def test_full_setup_flow(wizard, gateway):
    await drive_to_plan(wizard, gateway)

    assert wizard.state.phase == WizardPhase.PLAN
    session = wizard.state.session
    assert session.casino == "Bellagio"
    assert session.jurisdiction == "Nevada"
    assert session.likelihood == 15.0
    assert len(session.plan) == 2
    op, args = gateway.calls[-1]
    assert op == "generate_plan"
    assert args == (500, 1000, "Nevada", "Bellagio", 0.0, None)


async def test_locate_resolves_jurisdiction(wizard, gateway):
    gateway.queue("resolve_jurisdiction", "New Jersey")
    await wizard.accept_disclaimer()
    await wizard.locate(39.36, -74.43)
    assert wizard.state.jurisdiction == "New Jersey"
    assert wizard.state.location_notice is None


async def test_locate_without_coordinates_defaults(wizard, gateway):
    await wizard.accept_disclaimer()
    await wizard.locate(None, None)
    assert wizard.state.jurisdiction == "Nevada"
    assert "Location access denied" in wizard.state.location_notice
    assert gateway.calls == []


async def test_locate_failure_defaults(wizard, gateway):
    gateway.queue("resolve_jurisdiction", AnthropicAPIError("down", "connection_error"))
    await wizard.accept_disclaimer()
    await wizard.locate(1.0, 2.0)
    assert wizard.state.jurisdiction == "Nevada"
    assert "Could not determine jurisdiction" in wizard.state.location_notice


async def test_casino_list_failure_allows_manual_entry(wizard, gateway):
    gateway.queue("list_casinos", ResponseFormatError("bad", "list_casinos"))
    await wizard.accept_disclaimer()
    await wizard.set_jurisdiction("Nevada")
    await wizard.confirm_location("")

    assert wizard.state.setup_step == SetupStep.CASINO
    assert wizard.state.casinos == []
    assert wizard.state.last_error == CASINO_LIST_FAILED_MESSAGE

    await wizard.select_casino("Golden Nugget")
    assert wizard.state.setup_step == SetupStep.BANKROLL
    assert wizard.state.last_error is None


async def test_search_casinos_merges_results(wizard, gateway):
    gateway.queue("list_casinos", ["Aria"])
    gateway.queue("search_casino", ["aria", "Red Rock"])
    await wizard.accept_disclaimer()
    await wizard.set_jurisdiction("Nevada")
    await wizard.confirm_location("")
    await wizard.search_casinos("red")
    assert wizard.state.casinos == ["Aria", "Red Rock"]


async def test_confirm_location_requires_jurisdiction(wizard):
    await wizard.accept_disclaimer()
    with pytest.raises(SessionValidationError):
        await wizard.confirm_location("")


async def test_generate_plan_validation_does_not_transition(wizard, gateway):
    gateway.queue("list_casinos", ["Aria"])
    await wizard.accept_disclaimer()
    await wizard.set_jurisdiction("Nevada")
    await wizard.confirm_location("")
    await wizard.select_casino("Aria")
    generation = wizard.state.generation

    with pytest.raises(SessionValidationError):
        await wizard.generate_plan(500, 500, 0)

    assert wizard.state.setup_step == SetupStep.BANKROLL
    assert wizard.state.generation == generation
    assert [op for op, _ in gateway.calls] == ["list_casinos"]


@pytest.mark.parametrize("error,message", [
    (AnthropicAPIError("429", "rate_limit"), RATE_LIMIT_MESSAGE),
    (AnthropicAPIError("500", "connection_error"), GENERIC_GATEWAY_MESSAGE),
    (ResponseFormatError("AI returned an invalid plan format.", "generate_plan"),
     "AI returned an invalid plan format."),
])
async def test_generate_plan_failure_returns_to_bankroll(wizard, gateway, error, message):
    gateway.queue("list_casinos", ["Aria"])
    gateway.queue("generate_plan", error)
    await wizard.accept_disclaimer()
    await wizard.set_jurisdiction("Nevada")
    await wizard.confirm_location("")
    await wizard.select_casino("Aria")
    await wizard.generate_plan(500, 1000, 0)

    assert wizard.state.phase == WizardPhase.SETUP
    assert wizard.state.setup_step == SetupStep.BANKROLL
    assert wizard.state.last_error == message
    assert wizard.state.session is None


async def _to_bankroll_step(wizard, gateway):
    gateway.queue("list_casinos", ["Aria"])
    await wizard.accept_disclaimer()
    await wizard.set_jurisdiction("Nevada")
    await wizard.confirm_location("")
    await wizard.select_casino("Aria")


async def test_unexpected_plan_error_stays_retryable(wizard, gateway):
    await _to_bankroll_step(wizard, gateway)
    gateway.queue("generate_plan", RuntimeError("boom"), plan_result())

    await wizard.generate_plan(500, 1000, 0)
    assert wizard.state.setup_step == SetupStep.BANKROLL
    assert wizard.state.last_error == GENERIC_GATEWAY_MESSAGE

    await wizard.generate_plan(500, 1000, 0)
    assert wizard.state.phase == WizardPhase.PLAN
    assert wizard.state.last_error is None


async def test_non_finite_model_numbers_still_produce_plan(store):
    plan_text = (
        '{"likelihood": 20, "analysis": "x", "plan": '
        '[{"stage": NaN, "gameName": "Buffalo", "timeLimitMinutes": 1e999}]}'
    )
    client = MockAnthropicClient([
        text_response('["Aria"]'), text_response(plan_text),
    ])
    wizard = SessionWizard(
        AnthropicPlanGateway(client, plan_model="plan-model", fast_model="fast-model"),
        store,
    )
    await wizard.start()
    await wizard.accept_disclaimer()
    await wizard.set_jurisdiction("Nevada")
    await wizard.confirm_location("")
    await wizard.select_casino("Aria")
    await wizard.generate_plan(500, 1000, 0)

    assert wizard.state.phase == WizardPhase.PLAN
    stage = wizard.state.session.plan[0]
    assert stage.stage == 1
    assert stage.time_limit_minutes == 30


async def test_plan_phase_is_not_persisted(wizard, gateway, store):
    await drive_to_plan(wizard, gateway)
    assert await store.load() is None


# -- Phase guards --------------------------------------------------------------

async def test_wrong_phase_actions_rejected(wizard):
    with pytest.raises(InvalidTransitionError):
        await wizard.log_spin(5, 0)
    with pytest.raises(InvalidTransitionError):
        await wizard.begin_session()
    with pytest.raises(InvalidTransitionError):
        await wizard.select_casino("Aria")
    with pytest.raises(InvalidTransitionError):
        await wizard.end_session()
    assert wizard.state.phase == WizardPhase.DISCLAIMER


async def test_generate_plan_rejected_before_casino(wizard):
    await wizard.accept_disclaimer()
    with pytest.raises(InvalidTransitionError):
        await wizard.generate_plan(500, 1000, 0)


# -- Active session ------------------------------------------------------------

async def test_begin_session_applies_free_play_and_persists(wizard, gateway, store):
    await drive_to_session(wizard, gateway, free_play=40)

    assert wizard.state.phase == WizardPhase.SESSION
    session = wizard.state.session
    assert session.bankroll == 540
    assert session.free_play == 0
    assert await store.load() == session


async def test_spins_and_stages_are_persisted(wizard, gateway, store):
    await drive_to_session(wizard, gateway)
    await wizard.log_spin(10, 0)
    await wizard.log_spin(5, 3)
    await wizard.advance_stage(StageDirection.NEXT)

    stored = await store.load()
    assert stored == wizard.state.session
    assert stored.current_stage_index == 1
    metrics = wizard.metrics()
    assert metrics["totalNet"] == -12
    assert metrics["currentBankroll"] == 488
    assert metrics["ldwCount"] == 1
    assert metrics["totalCoinIn"] == 15


async def test_invalid_spin_leaves_ledger_unchanged(wizard, gateway):
    await drive_to_session(wizard, gateway)
    await wizard.log_spin(2, 0)
    with pytest.raises(SessionValidationError):
        await wizard.log_spin(0, 5)
    assert len(wizard.state.session.spins) == 1


async def test_refine_stage_uses_current_bankroll(wizard, gateway, store):
    await drive_to_session(wizard, gateway)
    await wizard.log_spin(20, 5)
    gateway.queue("refine_plan_stage", "$0.60 per spin")

    await wizard.refine_stage(1, "Lightning Link")

    op, (stage, machine, bankroll) = gateway.calls[-1]
    assert op == "refine_plan_stage"
    assert stage.stage == 2
    assert machine == "Lightning Link"
    assert bankroll == 485
    refined = wizard.state.session.plan[1]
    assert refined.bet_strategy == "$0.60 per spin"
    assert refined.is_refined
    assert (await store.load()).plan[1].is_refined


async def test_refine_stage_failure_keeps_plan(wizard, gateway):
    await drive_to_session(wizard, gateway)
    gateway.queue("refine_plan_stage", AnthropicAPIError("429", "rate_limit"))
    before = wizard.state.session
    await wizard.refine_stage(0, "Buffalo")
    assert wizard.state.session == before
    assert wizard.state.last_error == RATE_LIMIT_MESSAGE


async def test_refine_stage_rejects_bad_index(wizard, gateway):
    await drive_to_session(wizard, gateway)
    with pytest.raises(SessionValidationError):
        await wizard.refine_stage(5, "Buffalo")


@pytest.mark.parametrize("finish", ["end_session", "record_win"])
async def test_finishing_clears_storage(wizard, gateway, store, finish):
    await drive_to_session(wizard, gateway)
    await getattr(wizard, finish)()

    assert await store.load() is None
    assert wizard.state.phase == WizardPhase.SETUP
    assert wizard.state.setup_step == SetupStep.LOCATION
    assert wizard.state.session is None
    assert wizard.state.jurisdiction == "Nevada"


async def test_end_session_allowed_from_plan(wizard, gateway):
    await drive_to_plan(wizard, gateway)
    await wizard.end_session()
    assert wizard.state.phase == WizardPhase.SETUP


# -- Stale responses -----------------------------------------------------------

async def test_stale_jurisdiction_lookup_discarded(wizard, gateway):
    await wizard.accept_disclaimer()
    gateway.queue("resolve_jurisdiction", "Mississippi")
    gate = gateway.hold("resolve_jurisdiction")

    task = asyncio.create_task(wizard.locate(30.4, -88.9))
    await asyncio.sleep(0)
    await wizard.set_jurisdiction("Pennsylvania")
    gate.set()
    await task

    assert wizard.state.jurisdiction == "Pennsylvania"


async def test_stale_refinement_discarded_after_session_ends(wizard, gateway):
    await drive_to_session(wizard, gateway)
    gateway.queue("refine_plan_stage", "$5 per spin")
    gate = gateway.hold("refine_plan_stage")

    task = asyncio.create_task(wizard.refine_stage(0, "Buffalo"))
    await asyncio.sleep(0)
    await wizard.end_session()
    gate.set()
    await task

    assert wizard.state.session is None
    assert wizard.state.phase == WizardPhase.SETUP


# -- Read-only helpers ---------------------------------------------------------

async def test_view_includes_session_and_metrics(wizard, gateway):
    await drive_to_session(wizard, gateway)
    view = wizard.view()
    assert view["phase"] == "session"
    assert view["session"]["casino"] == "Bellagio"
    assert view["metrics"]["currentBankroll"] == 500


async def test_metrics_custom_house_edge(wizard, gateway):
    await drive_to_session(wizard, gateway)
    await wizard.log_spin(100, 0)
    assert wizard.metrics(house_edge_percent=5)["theoreticalLoss"] == pytest.approx(5)


async def test_metrics_require_session(wizard):
    with pytest.raises(InvalidTransitionError):
        wizard.metrics()


async def test_analysis_helpers(wizard, gateway):
    gateway.queue("fetch_regional_analysis", regional_result())
    gateway.queue("analyze_image", machine_result())
    gateway.queue("identify_machine", "Dragon Link")
    assert (await wizard.regional_analysis()).sources[0].title == "Gaming Control Board"
    assert gateway.calls[0] == ("fetch_regional_analysis", ("Nevada",))
    assert (await wizard.analyze_image(b"img", "image/png")).vendor == "Aristocrat"
    assert await wizard.identify_machine(b"img", "image/png") == "Dragon Link"


async def test_analysis_failure_sets_last_error(wizard, gateway):
    gateway.queue("fetch_regional_analysis", AnthropicAPIError("429", "rate_limit"))
    assert await wizard.regional_analysis() is None
    assert wizard.state.last_error == RATE_LIMIT_MESSAGE


@pytest.mark.parametrize("operation,call", [
    ("fetch_regional_analysis", lambda w: w.regional_analysis()),
    ("analyze_image", lambda w: w.analyze_image(b"img", "image/png")),
    ("identify_machine", lambda w: w.identify_machine(b"img", "image/png")),
])
async def test_analysis_success_clears_last_error(wizard, gateway, operation, call):
    answers = {
        "fetch_regional_analysis": regional_result(),
        "analyze_image": machine_result(),
        "identify_machine": "Dragon Link",
    }
    gateway.queue(operation, AnthropicAPIError("429", "rate_limit"), answers[operation])
    assert await call(wizard) is None
    assert wizard.view()["lastError"] == RATE_LIMIT_MESSAGE

    assert await call(wizard) is not None
    assert wizard.view()["lastError"] is None


async def test_find_machines_uses_session_casino(wizard, gateway):
    assert await wizard.find_machines() == []
    await drive_to_session(wizard, gateway)
    gateway.queue("find_machines", ["Buffalo"])
    assert await wizard.find_machines() == ["Buffalo"]
    assert gateway.calls[-1] == ("find_machines", ("Bellagio",))


def test_comps_passthrough():
    wizard = SessionWizard(gateway=None, store=None)
    assert "very close" in wizard.comps("Gold", 50)
