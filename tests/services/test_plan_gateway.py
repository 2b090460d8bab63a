"""Plan Gateway Tests — mock Anthropic responses, verify prompts, parsing and errors.

Invariants:
    - Each operation returns a typed value parsed from the model text
    - Web-search operations send the web_search tool and the beta flag
    - pause_turn is continued with the assistant content echoed back
    - find_machines never raises
    - create_gateway rejects missing or placeholder API keys

Design Decisions:
    - Mock at the create_message boundary (no real API calls)
"""

import json

import pytest

from session_assistant.config import API_KEY_PLACEHOLDER, Settings
from session_assistant.core.errors import (
    AnthropicAPIError, ConfigurationError, ResponseFormatError, SessionValidationError,
)
from session_assistant.infrastructure.anthropic_client import ResilientAnthropicClient
from session_assistant.services.plan_gateway import AnthropicPlanGateway, create_gateway

from tests.services.conftest import make_stage
from tests.services.mock_anthropic import (
    MockAnthropicClient, text_response, web_search_response,
)


def _gateway(*responses):
    client = MockAnthropicClient(list(responses))
    return AnthropicPlanGateway(client, plan_model="plan-model", fast_model="fast-model"), client


_PLAN_JSON = json.dumps({
    "likelihood": 20,
    "analysis": "Conservative two-stage approach.",
    "plan": [
        {"stage": 1, "gameName": "Free Play: Buffalo", "betStrategy": "Deposit $20",
         "stopLoss": 480, "winGoal": 560, "timeLimitMinutes": 20},
        {"stage": 2, "gameName": "Dragon Link", "betStrategy": "$2.50 per spin"},
    ],
})


# -- Setup lookups -------------------------------------------------------------

async def test_resolve_jurisdiction_uses_fast_model_without_tools():
    gateway, client = _gateway(text_response('"Nevada"'))
    assert await gateway.resolve_jurisdiction(36.1, -115.1) == "Nevada"
    call = client.calls[0]
    assert call["model"] == "fast-model"
    assert call["tools"] is None
    assert call["betas"] is None
    assert "36.1" in call["messages"][0]["content"]


async def test_list_casinos_enables_web_search():
    gateway, client = _gateway(text_response('["Wynn", "Aria", "bellagio"]'))
    casinos = await gateway.list_casinos("Nevada", "high limit")
    assert casinos == ["Aria", "bellagio", "Wynn"]
    call = client.calls[0]
    assert call["tools"][0]["type"] == "web_search_20250305"
    assert call["betas"] == [ResilientAnthropicClient.WEB_SEARCH_BETA]
    assert "high limit" in call["messages"][0]["content"]


async def test_search_casino_parses_names():
    gateway, _ = _gateway(text_response('```json\n["Red Rock Casino"]\n```'))
    assert await gateway.search_casino("Nevada", "red rock") == ["Red Rock Casino"]


async def test_regional_analysis_continues_pause_turn_and_collects_sources():
    gateway, client = _gateway(
        web_search_response("nevada rtp", [("https://gaming.nv.gov", "NGCB")]),
        text_response("Nevada averages about 92%.\n\nLocals casinos pay more."),
    )
    result = await gateway.fetch_regional_analysis("Nevada")

    assert result.analysis_text == "Nevada averages about 92%.\n\nLocals casinos pay more."
    assert [s.uri for s in result.sources] == ["https://gaming.nv.gov"]
    assert len(client.calls) == 2
    second = client.calls[1]["messages"]
    assert second[-1]["role"] == "assistant"
    assert second[-1]["content"][1]["type"] == "web_search_tool_result"


async def test_pause_turn_limited_to_three_requests():
    gateway, client = _gateway(
        web_search_response("a"), web_search_response("b"),
        web_search_response("c", text="Partial answer."),
    )
    with pytest.raises(ResponseFormatError):
        await gateway.search_casino("Nevada", "x")
    assert len(client.calls) == 3


# -- Plan ----------------------------------------------------------------------

async def test_generate_plan_uses_plan_model_and_system_prompt():
    gateway, client = _gateway(text_response(_PLAN_JSON))
    result = await gateway.generate_plan(500, 1000, "Nevada", "Aria", 50, "Paroli")

    assert result.likelihood == 20
    assert len(result.plan) == 2
    assert result.plan[1].stop_loss == pytest.approx(450)
    assert result.plan[1].win_goal == 1000
    call = client.calls[0]
    assert call["model"] == "plan-model"
    assert "<rules>" in call["system"]
    content = call["messages"][0]["content"]
    assert "$50.00 in Free Play" in content
    assert "Paroli" in content


async def test_generate_plan_validates_before_calling():
    gateway, client = _gateway()
    with pytest.raises(SessionValidationError):
        await gateway.generate_plan(500, 400, "Nevada", "Aria", 0)
    assert client.calls == []


async def test_generate_plan_format_error():
    gateway, _ = _gateway(text_response("I cannot help with that."))
    with pytest.raises(ResponseFormatError):
        await gateway.generate_plan(500, 1000, "Nevada", "Aria", 0)


async def test_api_errors_propagate():
    gateway, _ = _gateway(AnthropicAPIError("slow down", "rate_limit"))
    with pytest.raises(AnthropicAPIError) as exc:
        await gateway.list_casinos("Nevada", "")
    assert exc.value.is_rate_limited


async def test_refine_plan_stage_sends_bankroll_and_machine():
    gateway, client = _gateway(text_response('{"refinedBetStrategy": "$0.88 per spin"}'))
    strategy = await gateway.refine_plan_stage(make_stage(2), "Lightning Link", 412.5)
    assert strategy == "$0.88 per spin"
    content = client.calls[0]["messages"][0]["content"]
    assert "Bankroll $412.50" in content
    assert "Lightning Link" in content
    assert "Stage 2" in content


# -- Machines ------------------------------------------------------------------

async def test_analyze_image_sends_base64_image_block():
    gateway, client = _gateway(text_response('{"gameName": "Dancing Drums", "maxBet": 8.8}'))
    data = await gateway.analyze_image(b"\x89PNG", "image/png")
    assert data.game_name == "Dancing Drums"
    assert data.max_bet == 8.8
    image, prompt = client.calls[0]["messages"][0]["content"]
    assert image["source"] == {"type": "base64", "media_type": "image/png", "data": "iVBORw=="}
    assert prompt["type"] == "text"


async def test_identify_machine_returns_title():
    gateway, _ = _gateway(text_response("Buffalo Gold Revolution\n"))
    assert await gateway.identify_machine(b"jpeg", "image/jpeg") == "Buffalo Gold Revolution"


async def test_find_machines_returns_names():
    gateway, _ = _gateway(text_response('["Buffalo", "Lightning Link"]'))
    assert await gateway.find_machines("Aria") == ["Buffalo", "Lightning Link"]


@pytest.mark.parametrize("response", [
    text_response("no list today"),
    AnthropicAPIError("down", "connection_error"),
])
async def test_find_machines_failure_returns_empty(response):
    gateway, _ = _gateway(response)
    assert await gateway.find_machines("Aria") == []


# -- create_gateway ------------------------------------------------------------

@pytest.mark.parametrize("key", ["", "   ", API_KEY_PLACEHOLDER])
def test_create_gateway_requires_api_key(key):
    with pytest.raises(ConfigurationError) as exc:
        create_gateway(Settings(anthropic_api_key=key))
    assert exc.value.setting == "anthropic_api_key"


def test_create_gateway_wires_settings():
    gateway = create_gateway(Settings(
        anthropic_api_key="sk-ant-test", plan_model="p", fast_model="f",
        anthropic_max_retries=5,
    ))
    assert gateway.plan_model == "p"
    assert gateway.fast_model == "f"
    assert gateway.client.max_retries == 5
