# scoring.py
#
# Fantasy points from match scouts, and the price revaluation applied to a
# player when a round closes.

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional

# Points per scout event.
SCOUT_WEIGHTS: Dict[str, float] = {
    "goals": 8,
    "assists": 5,
    "shots_on_target": 3,
    "saves": 7,
    "clean_sheet": 5,
    "own_goals": -3,
    "red_cards": -3,
    "fouls": -0.3,
}

# A player must score this fraction of his price to gain value.
VALORIZATION_FACTOR = 0.58
# Below this fraction of the valorization threshold he loses value.
DEVALUATION_FRACTION = 0.5
PRICE_STEP_UP = 1.10
PRICE_STEP_DOWN = 0.90


def calculate_points(scouts: Mapping[str, Optional[float]]) -> float:
    """
    Linear scoring over SCOUT_WEIGHTS. Missing or None fields count as zero;
    unknown keys are ignored.

    >>> calculate_points({"goals": 2, "assists": 1, "fouls": 3})
    20.1
    """
    points = 0.0
    for field, weight in SCOUT_WEIGHTS.items():
        points += float(scouts.get(field) or 0) * weight
    return round(points, 2)


def min_points_for_valorization(price: float) -> float:
    return round(price * VALORIZATION_FACTOR, 2)


def calculate_new_price(current_price: float, points: float) -> float:
    """
    +10% when points reach the valorization threshold, -10% when they fall
    below half of it, otherwise unchanged.
    """
    min_points = min_points_for_valorization(current_price)
    if points >= min_points:
        return round(current_price * PRICE_STEP_UP, 2)
    if points < min_points * DEVALUATION_FRACTION:
        return round(current_price * PRICE_STEP_DOWN, 2)
    return current_price


def lineup_points(entries: Iterable[Mapping], scout_points: Mapping[str, float]) -> float:
    """
    Total for one fantasy team: the sum of its starters' scout points.
    `entries` are team_players rows; players without a scout score zero.
    """
    total = 0.0
    for entry in entries:
        if not entry.get("is_starter"):
            continue
        total += scout_points.get(str(entry["player_id"]), 0.0)
    return round(total, 2)
