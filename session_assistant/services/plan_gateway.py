"""Plan Gateway — Anthropic-backed implementation of the PlanGateway protocol.

Invariants:
    - Every model response passes through a core/parse_responses.py function before
      it is returned; callers never receive raw model text or dicts
    - Transport failures surface as AnthropicAPIError, parse failures as ResponseFormatError
    - generate_plan re-checks the setup invariants before spending a model call
    - find_machines is best-effort: any failure returns []

Design Decisions:
    - Client constructed once at startup and injected (create_gateway); a missing key
      is a ConfigurationError at startup, not a first-call exception
    - Web search is the server-side web_search tool; pause_turn continues up to 3 times
    - Fast model for lookups, plan model for plan generation
"""

import base64
import logging

from session_assistant.config import API_KEY_PLACEHOLDER, Settings
from session_assistant.core.errors import ConfigurationError, ErrorContext
from session_assistant.core.parse_responses import (
    MachineData,
    PlanResult,
    RegionalAnalysis,
    parse_casino_list,
    parse_free_text,
    parse_machine_data,
    parse_name_list,
    parse_plain_text,
    parse_plan_response,
    parse_refinement,
    parse_sources,
)
from session_assistant.core.session_model import Stage, validate_setup
from session_assistant.infrastructure.anthropic_client import ResilientAnthropicClient
from session_assistant.services import prompts

logger = logging.getLogger(__name__)


class AnthropicPlanGateway:
    """Builds prompts, calls the model, and validates every response."""

    _MAX_PAUSE_TURNS = 3

    def __init__(
        self,
        client: ResilientAnthropicClient,
        plan_model: str,
        fast_model: str,
        plan_max_tokens: int = 8000,
        fast_max_tokens: int = 2000,
        web_search_max_uses: int = 5,
    ) -> None:
        self.client = client
        self.plan_model = plan_model
        self.fast_model = fast_model
        self.plan_max_tokens = plan_max_tokens
        self.fast_max_tokens = fast_max_tokens
        self._web_search_tool = {
            "type": "web_search_20250305",
            "name": "web_search",
            "max_uses": web_search_max_uses,
        }

    # ─── Setup lookups ──────────────────────────────────────────

    async def resolve_jurisdiction(self, lat: float, lon: float) -> str:
        text, _ = await self._ask(
            prompts.build_jurisdiction_prompt(lat, lon), operation="resolve_jurisdiction",
        )
        return parse_plain_text(text, "resolve_jurisdiction")

    async def list_casinos(self, jurisdiction: str, preference_hints: str) -> list[str]:
        text, _ = await self._ask(
            prompts.build_casino_list_prompt(jurisdiction, preference_hints),
            operation="list_casinos", web_search=True,
        )
        return parse_casino_list(text)

    async def search_casino(self, jurisdiction: str, query: str) -> list[str]:
        text, _ = await self._ask(
            prompts.build_casino_search_prompt(jurisdiction, query),
            operation="search_casino", web_search=True,
        )
        return parse_name_list(text, "search_casino")

    async def fetch_regional_analysis(self, jurisdiction: str) -> RegionalAnalysis:
        text, blocks = await self._ask(
            prompts.build_regional_analysis_prompt(jurisdiction),
            operation="fetch_regional_analysis", web_search=True,
        )
        return RegionalAnalysis(
            analysis_text=parse_free_text(text, "fetch_regional_analysis"),
            sources=parse_sources(blocks),
        )

    # ─── Plan ───────────────────────────────────────────────────

    async def generate_plan(
        self,
        bankroll: float,
        goal: float,
        jurisdiction: str,
        casino: str,
        free_play: float,
        strategy_hint: str | None = None,
    ) -> PlanResult:
        validate_setup(
            jurisdiction=jurisdiction, casino=casino,
            bankroll=bankroll, goal=goal, free_play=free_play,
        )
        text, _ = await self._ask(
            prompts.build_plan_prompt(
                bankroll, goal, jurisdiction, casino, free_play, strategy_hint,
            ),
            operation="generate_plan",
            web_search=True,
            system=prompts.PLAN_SYSTEM_PROMPT,
            model=self.plan_model,
            max_tokens=self.plan_max_tokens,
        )
        return parse_plan_response(text, bankroll, goal)

    async def refine_plan_stage(
        self, stage: Stage, machine_name: str, current_bankroll: float,
    ) -> str:
        text, _ = await self._ask(
            prompts.build_refine_prompt(stage, machine_name, current_bankroll),
            operation="refine_plan_stage", web_search=True,
        )
        return parse_refinement(text)

    # ─── Machines ───────────────────────────────────────────────

    async def analyze_image(self, image_bytes: bytes, media_type: str) -> MachineData:
        text, _ = await self._ask(
            _image_content(image_bytes, media_type, prompts.PAYTABLE_PROMPT),
            operation="analyze_image",
        )
        return parse_machine_data(text)

    async def identify_machine(self, image_bytes: bytes, media_type: str) -> str:
        text, _ = await self._ask(
            _image_content(image_bytes, media_type, prompts.MACHINE_NAME_PROMPT),
            operation="identify_machine",
        )
        return parse_plain_text(text, "identify_machine")

    async def find_machines(self, casino: str) -> list[str]:
        try:
            text, _ = await self._ask(
                prompts.build_machines_prompt(casino),
                operation="find_machines", web_search=True,
            )
            return parse_name_list(text, "find_machines")
        except Exception as e:
            logger.warning(
                f"Machine lookup failed: {e}", extra={"operation": "find_machines"},
            )
            return []

    # ─── Transport ──────────────────────────────────────────────

    async def _ask(
        self,
        content: str | list,
        *,
        operation: str,
        web_search: bool = False,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> tuple[str, list[dict]]:
        """Run one request (continuing pause_turn); returns (text, serialized blocks)."""
        messages: list[dict] = [{"role": "user", "content": content}]
        context = ErrorContext(operation=operation)
        blocks: list[dict] = []
        texts: list[str] = []

        for _ in range(self._MAX_PAUSE_TURNS):
            response = await self.client.create_message(
                model=model or self.fast_model,
                max_tokens=max_tokens or self.fast_max_tokens,
                system=system,
                messages=messages,
                tools=[self._web_search_tool] if web_search else None,
                betas=[ResilientAnthropicClient.WEB_SEARCH_BETA] if web_search else None,
                context=context,
            )
            serialized = [b.model_dump(exclude_none=True) for b in response.content]
            blocks.extend(serialized)
            texts.extend(
                b.text for b in response.content if getattr(b, "type", None) == "text"
            )
            if response.stop_reason != "pause_turn":
                break
            messages.append({"role": "assistant", "content": serialized})

        return "".join(texts), blocks


def _image_content(image_bytes: bytes, media_type: str, prompt: str) -> list[dict]:
    return [
        {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": media_type,
                "data": base64.b64encode(image_bytes).decode("ascii"),
            },
        },
        {"type": "text", "text": prompt},
    ]


def create_gateway(settings: Settings) -> AnthropicPlanGateway:
    """Build the gateway from settings; fails fast when credentials are missing."""
    key = settings.anthropic_api_key.strip()
    if not key or key == API_KEY_PLACEHOLDER:
        raise ConfigurationError(
            "ANTHROPIC_API_KEY environment variable not set", "anthropic_api_key",
        )
    client = ResilientAnthropicClient(
        api_key=key,
        max_retries=settings.anthropic_max_retries,
        base_delay_ms=settings.anthropic_base_delay_ms,
        max_delay_ms=settings.anthropic_max_delay_ms,
        timeout_seconds=settings.anthropic_timeout_seconds,
    )
    return AnthropicPlanGateway(
        client,
        plan_model=settings.plan_model,
        fast_model=settings.fast_model,
        plan_max_tokens=settings.plan_max_tokens,
        fast_max_tokens=settings.fast_max_tokens,
        web_search_max_uses=settings.web_search_max_uses,
    )
