from typing import Dict, Optional

from .constants import DEFAULT_RATING

RATING_WEIGHTS = {
    "customer": 0.4,
    "speed": 0.2,
    "warranty": 0.2,
    "internal": 0.2,
}

COMPONENTS = tuple(RATING_WEIGHTS)

COMMISSION_RATES = {
    "elite": 0.10,
    "pro": 0.09,
}
DEFAULT_COMMISSION_RATE = 0.08


def calculate_overall_rating(rating: Dict[str, float]) -> float:
    overall = sum(float(rating[key]) * weight for key, weight in RATING_WEIGHTS.items())
    return round(overall, 1)


def create_rating(partial: Optional[Dict[str, float]] = None) -> Dict[str, float]:
    partial = partial or {}
    rating = {
        key: float(partial[key]) if partial.get(key) is not None else DEFAULT_RATING
        for key in COMPONENTS
    }
    rating["overall"] = calculate_overall_rating(rating)
    return rating


def update_rating(current: Dict[str, float], updates: Dict[str, float]) -> Dict[str, float]:
    merged = {}
    for key in COMPONENTS:
        if updates.get(key) is not None:
            merged[key] = float(updates[key])
        else:
            merged[key] = float(current.get(key, DEFAULT_RATING))
    merged["overall"] = calculate_overall_rating(merged)
    return merged


def validate_rating_values(values: Dict[str, float]) -> Optional[str]:
    """Return the first component outside 1-5, or None."""
    for key, value in values.items():
        if key not in COMPONENTS:
            return key
        try:
            number = float(value)
        except (TypeError, ValueError):
            return key
        if number < 1 or number > 5:
            return key
    return None


def get_rating_tier(overall: float) -> str:
    if overall >= 4.5:
        return "elite"
    if overall >= 3.5:
        return "pro"
    if overall >= 2.5:
        return "standard"
    if overall >= 1.5:
        return "needs_improvement"
    return "probation"


def get_commission_rate(tier: str) -> float:
    return COMMISSION_RATES.get(tier, DEFAULT_COMMISSION_RATE)
