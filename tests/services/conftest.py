"""Service test fixtures — async DB, session store, fake gateway and test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - FakeGateway records every call and answers from per-operation queues
    - The client fixture overrides get_wizard; the app lifespan is never run

Design Decisions:
    - SQLite in-memory with StaticPool: one connection shared by every session,
      so the schema created in the fixture is visible to the store
    - Fake gateway over MockAnthropicClient for wizard/route tests: those tests
      exercise orchestration, gateway parsing has its own tests
"""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from session_assistant.api.dependencies import get_wizard
from session_assistant.core.parse_responses import (
    GroundingSource, MachineData, PlanResult, RegionalAnalysis,
)
from session_assistant.core.session_model import Stage
from session_assistant.db.base import Base
from session_assistant.infrastructure import database as db_module
from session_assistant.infrastructure.database import DatabaseSessionManager
from session_assistant.infrastructure.session_store import SqlSessionStore
from session_assistant.main import app
from session_assistant.services.wizard import SessionWizard


def make_stage(n: int, stop_loss: float = 400.0, win_goal: float = 700.0) -> Stage:
    return Stage(
        stage=n,
        game_name=f"Buffalo Gold {n}",
        bet_strategy="$1.20 per spin",
        reasoning="Steady hit frequency.",
        objective="Protect the bankroll",
        stop_loss=stop_loss,
        win_goal=win_goal,
        time_limit_minutes=30,
        contingency_plan="Take a break.",
    )


class FakeGateway:
    """PlanGateway test double. Queue a value or an Exception per operation."""

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.results: dict[str, list] = {}
        self.gates: dict[str, asyncio.Event] = {}

    def queue(self, operation: str, *results) -> None:
        self.results.setdefault(operation, []).extend(results)

    def hold(self, operation: str) -> asyncio.Event:
        """Block the next call to `operation` until the returned event is set."""
        self.gates[operation] = asyncio.Event()
        return self.gates[operation]

    async def _answer(self, operation: str, *args):
        self.calls.append((operation, args))
        gate = self.gates.pop(operation, None)
        if gate is not None:
            await gate.wait()
        result = self.results[operation].pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def resolve_jurisdiction(self, lat, lon):
        return await self._answer("resolve_jurisdiction", lat, lon)

    async def list_casinos(self, jurisdiction, preference_hints):
        return await self._answer("list_casinos", jurisdiction, preference_hints)

    async def search_casino(self, jurisdiction, query):
        return await self._answer("search_casino", jurisdiction, query)

    async def fetch_regional_analysis(self, jurisdiction):
        return await self._answer("fetch_regional_analysis", jurisdiction)

    async def generate_plan(
        self, bankroll, goal, jurisdiction, casino, free_play, strategy_hint=None,
    ):
        return await self._answer(
            "generate_plan", bankroll, goal, jurisdiction, casino, free_play, strategy_hint,
        )

    async def refine_plan_stage(self, stage, machine_name, current_bankroll):
        return await self._answer("refine_plan_stage", stage, machine_name, current_bankroll)

    async def analyze_image(self, image_bytes, media_type):
        return await self._answer("analyze_image", image_bytes, media_type)

    async def identify_machine(self, image_bytes, media_type):
        return await self._answer("identify_machine", image_bytes, media_type)

    async def find_machines(self, casino):
        return await self._answer("find_machines", casino)


def plan_result(stages: int = 2) -> PlanResult:
    return PlanResult(
        plan=tuple(make_stage(i + 1) for i in range(stages)),
        likelihood=15.0,
        analysis="A long shot; protect the bankroll first.",
    )


def regional_result() -> RegionalAnalysis:
    return RegionalAnalysis(
        analysis_text="Nevada slots return about 92% on average.",
        sources=(GroundingSource("https://gaming.nv.gov", "Gaming Control Board"),),
    )


def machine_result() -> MachineData:
    return MachineData(game_name="Dragon Link", vendor="Aristocrat", denomination=0.01)


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(test_engine):
    return DatabaseSessionManager.from_engine(test_engine)


@pytest.fixture
async def store(db):
    return SqlSessionStore(db)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
async def wizard(gateway, store):
    wizard = SessionWizard(gateway, store)
    await wizard.start()
    return wizard


async def drive_to_plan(wizard: SessionWizard, gateway: FakeGateway, free_play=0.0):
    """Walk a fresh wizard from the disclaimer to the plan phase."""
    gateway.queue("list_casinos", ["Aria", "Bellagio"])
    gateway.queue("generate_plan", plan_result())
    await wizard.accept_disclaimer()
    await wizard.set_jurisdiction("Nevada")
    await wizard.confirm_location("")
    await wizard.select_casino("Bellagio")
    await wizard.generate_plan(500, 1000, free_play)


async def drive_to_session(wizard: SessionWizard, gateway: FakeGateway, free_play=0.0):
    await drive_to_plan(wizard, gateway, free_play)
    await wizard.begin_session()


@pytest.fixture
async def client(wizard, db):
    """FastAPI test client bound to the test wizard."""
    app.dependency_overrides[get_wizard] = lambda: wizard
    original_manager = db_module.db_manager
    db_module.db_manager = db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
