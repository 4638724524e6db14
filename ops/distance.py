import math

from .utils import round_half_up
from typing import Optional, Dict, Any

EARTH_RADIUS_MILES = 3959


def calculate_distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in miles, rounded to one decimal place."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    r_lat1 = math.radians(lat1)
    r_lat2 = math.radians(lat2)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(r_lat1) * math.cos(r_lat2) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_MILES * c, 1)


def calculate_address_distance(
    address1: Optional[Dict[str, Any]],
    address2: Optional[Dict[str, Any]],
) -> Optional[float]:
    """Distance between two addresses, or None when either lacks coordinates."""
    if not address1 or not address2:
        return None
    # 0.0 counts as missing, matching how the dashboard stores "not geocoded"
    if not address1.get("lat") or not address1.get("lng"):
        return None
    if not address2.get("lat") or not address2.get("lng"):
        return None
    return calculate_distance_miles(
        address1["lat"], address1["lng"], address2["lat"], address2["lng"]
    )


def get_distance_score(distance: float, service_radius: float) -> int:
    """
    0-100 score: 100 at the job site, 50 at the service radius, 0 at twice
    the radius or beyond.
    """
    if distance <= 0:
        return 100
    if distance >= service_radius * 2:
        return 0
    score = 100 - (distance / (service_radius * 2)) * 100
    return max(0, min(100, round_half_up(score)))


def is_within_service_radius(distance: float, service_radius: float) -> bool:
    return distance <= service_radius


def format_distance(distance: float) -> str:
    if distance < 1:
        return "< 1 mi"
    return f"{distance:.1f} mi"


def get_distance_category(distance: float) -> str:
    if distance <= 5:
        return "Very Close"
    if distance <= 15:
        return "Close"
    if distance <= 30:
        return "Moderate"
    return "Far"
