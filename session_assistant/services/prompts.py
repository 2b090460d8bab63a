"""Prompt Templates — text sent to the model for each gateway operation.

Invariants:
    - Every prompt that expects JSON states the exact output schema
    - Money amounts are formatted with two decimals
    - Prompts never ask the model to overstate odds: likelihood is an honest estimate

Design Decisions:
    - Plain functions returning str: trivially testable, no template engine
    - Static system prompt for plan generation, dynamic user message per request
"""

from session_assistant.core.session_model import Stage

PLAN_SYSTEM_PROMPT = """<role>
You are a slot-session planning assistant. You turn a player's bankroll, goal and
location into a disciplined, staged session plan. You never promise outcomes:
slot results are random and the house keeps an edge on every spin.
</role>

<rules>
1. SEARCH FIRST for machine titles. Recommend only real, currently popular slot
   titles known to be on the floor at the named casino or in its region.
2. STAGES. Produce 2-4 stages. Each stage is a self-contained block of play with
   its own budget, bet size, exit triggers and time limit.
3. TRIGGERS ARE BANKROLL LEVELS. stopLoss and winGoal are absolute total-bankroll
   values (e.g. 450.00), never deltas. Both must be greater than zero.
4. HONEST LIKELIHOOD. likelihood is your estimate (0-100) of reaching the goal.
   Do not inflate it.
5. JSON ONLY. Return a single raw JSON object, no markdown, no preamble.
</rules>

<output_format>
{
  "likelihood": <number 0-100>,
  "analysis": "short briefing on the overall approach and its risks",
  "plan": [
    {
      "stage": 1,
      "gameName": "specific slot title and cabinet",
      "betStrategy": "exact amount to allocate and exact bet per spin",
      "reasoning": "one sentence",
      "objective": "what this stage is trying to achieve",
      "stopLoss": <bankroll level to stop at>,
      "winGoal": <bankroll level to advance at>,
      "timeLimitMinutes": <integer>,
      "contingencyPlan": "what to do when the time limit is reached"
    }
  ]
}
</output_format>"""


def build_jurisdiction_prompt(lat: float, lon: float) -> str:
    return (
        f"Based on the coordinates latitude: {lat} and longitude: {lon}, identify "
        "the US state or major gaming jurisdiction (e.g. \"Nevada\", \"New Jersey\", "
        "\"Mississippi\", \"California\"). Return only the name of the jurisdiction."
    )


def build_casino_list_prompt(jurisdiction: str, preference_hints: str) -> str:
    parts = [
        f'Search the web for a list of up to 25 casinos in the "{jurisdiction}" '
        "gaming jurisdiction. Include major resorts, local casino hotels and tribal "
        "casinos.",
    ]
    if preference_hints.strip():
        parts.append(
            f"Prioritize locations known for slot machines with features like "
            f"'{preference_hints.strip()}'."
        )
    parts.append(
        "Return ONLY a JSON array of strings with the casino names, sorted "
        'alphabetically. Example: ["Casino Name 1", "Another Casino Resort"]'
    )
    return "\n".join(parts)


def build_casino_search_prompt(jurisdiction: str, query: str) -> str:
    return (
        f'Search the web for casinos in "{jurisdiction}" that match the search '
        f'query "{query}". Return ONLY a JSON array of strings with the casino names.'
    )


def build_regional_analysis_prompt(jurisdiction: str) -> str:
    return (
        "Provide a brief analysis of the typical slot machine payback percentages "
        f"(RTP) in the {jurisdiction} gaming jurisdiction, using the latest "
        "information from web searches. Include any publicly available data or "
        "regulations from its gaming commission."
    )


def _free_play_instruction(free_play: float) -> str:
    if free_play <= 0:
        return ""
    return (
        f"\nThe player also has ${free_play:.2f} in Free Play. Stage 1 MUST be "
        "dedicated to it: Free Play usually requires a small cash deposit (e.g. $20) "
        "to activate. Stage 1's betStrategy must say how much cash to deposit, the "
        "bet per spin, and to play until the Free Play is exhausted, converting it "
        "into a cash buffer."
    )


def build_plan_prompt(
    bankroll: float,
    goal: float,
    jurisdiction: str,
    casino: str,
    free_play: float,
    strategy_hint: str | None = None,
) -> str:
    """Dynamic user message for plan generation."""
    lines = [
        f'The player is at "{casino}" in the "{jurisdiction}" jurisdiction with a '
        f"cash bankroll of ${bankroll:.2f} and a target bankroll of ${goal:.2f}.",
    ]
    free_play_text = _free_play_instruction(free_play)
    if free_play_text:
        lines.append(free_play_text)
    if strategy_hint:
        lines.append(f"\nThe player prefers a {strategy_hint} betting progression.")
    lines.append(
        "\nReturn the JSON object described in your instructions: "
        '"likelihood", "analysis" and "plan".'
    )
    return "\n".join(lines)


def build_refine_prompt(stage: Stage, machine_name: str, current_bankroll: float) -> str:
    return (
        "The player is executing a session plan and has checked in at a machine.\n\n"
        f"Current status: Stage {stage.stage}, Bankroll ${current_bankroll:.2f}, "
        f"Stop-Loss ${stage.stop_loss:.2f}, Win-Goal ${stage.win_goal:.2f}.\n"
        f'Original target: "{stage.game_name}"\n'
        f'Player is now playing: "{machine_name}"\n\n'
        f'1. Search the web for the characteristics of "{machine_name}" '
        "(volatility, bonus features, bet structure).\n"
        "2. Refine the bet strategy for this machine. Objective, stop-loss and "
        "win-goal stay the same.\n"
        'Return ONLY a JSON object with one key: "refinedBetStrategy".'
    )


def build_machines_prompt(casino: str) -> str:
    return (
        "Search the web for 5-10 popular, real slot machine titles available at "
        f'"{casino}". Prefer the casino\'s official website or recent player reports. '
        'Return ONLY a JSON array of strings with the game names.'
    )


PAYTABLE_PROMPT = (
    "Analyze this image of a slot machine's paytable or screen. Extract the game's "
    "title, its manufacturer/vendor (if visible), the primary denomination (as a "
    "number) and the maximum bet amount (as a number). Return ONLY a JSON object "
    'with keys "gameName", "vendor", "denomination", "maxBet"; omit unknown keys.'
)

MACHINE_NAME_PROMPT = (
    "Analyze this image of a slot machine. Identify the main game title displayed "
    "on the screen or cabinet. Return ONLY the game title as a single line."
)
