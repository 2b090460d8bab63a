"""Comps Strategy — loyalty-tier advice from the player's tier and points to next tier.

Invariants:
    - Pure: same (tier, points) always yields the same advice
    - Missing tier or non-positive points never raises; it returns a prompt for input
"""

CLOSE_POINTS_THRESHOLD = 100
NEAR_POINTS_THRESHOLD = 500
COIN_IN_PER_POINT = 1.5


def suggest_comp_strategy(tier: str, points_to_next: int) -> str:
    if not tier or not tier.strip() or points_to_next <= 0:
        return (
            "Please enter your current tier and points needed to generate a strategy."
        )
    if points_to_next < CLOSE_POINTS_THRESHOLD:
        return (
            f"You're very close! With only {points_to_next} points needed for the "
            "next tier, a short, focused session on a $1 machine could get you there. "
            "This will significantly boost your comp value for future trips."
        )
    if points_to_next < NEAR_POINTS_THRESHOLD:
        target = points_to_next * COIN_IN_PER_POINT
        return (
            "You're within striking distance. To reach the next tier, plan for a "
            f"session with a target coin-in of around ${target:.0f}. This balances "
            "chasing the tier with responsible play."
        )
    return (
        "The next tier is a longer-term goal. Focus on maximizing THEO for this "
        "trip to get the best offers based on your current play level. Ensure you "
        "always use your player's card."
    )
