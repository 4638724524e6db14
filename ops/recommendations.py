"""
Contractor recommendations for a job slot.

Each active contractor gets a 0-100 score from three weighted parts:
availability for the requested block, distance to the job relative to the
contractor's service radius, and overall rating.
"""
import logging
from typing import Optional, Dict, Any, List

from .constants import DEFAULT_RATING, DEFAULT_SERVICE_RADIUS_MILES, RECOMMENDATION_WEIGHTS
from .contractors import contractor_repository
from .distance import calculate_address_distance, get_distance_score, is_within_service_radius
from .utils import round_half_up

logger = logging.getLogger("ops")

AVAILABILITY_SCORES = {
    "available": 100,
    "busy": 50,
}


def calculate_availability_score(status: str) -> int:
    return AVAILABILITY_SCORES.get(status, 0)


def calculate_rating_score(rating: float) -> float:
    return min(100, max(0, rating * 20))


def score_contractors(
    contractors: List[Dict[str, Any]],
    availability: Dict[str, str],
    job_location: Dict[str, Any],
    filters: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Score and rank already-fetched contractors.

    availability maps contractor id -> block status; contractors missing
    from it count as available. Contractors whose distance to the job
    cannot be computed are left out.
    """
    filters = filters or {}
    only_available = filters.get("only_available")
    max_distance = filters.get("max_distance")
    min_rating = filters.get("min_rating")

    recommendations = []
    for contractor in contractors:
        status = availability.get(contractor["id"]) or "available"
        if only_available and status != "available":
            continue

        distance = calculate_address_distance(contractor.get("address"), job_location)
        if distance is None:
            continue

        service_radius = contractor.get("serviceRadius") or DEFAULT_SERVICE_RADIUS_MILES
        if max_distance and distance > max_distance:
            continue

        rating = (contractor.get("rating") or {}).get("overall") or DEFAULT_RATING
        if min_rating and rating < min_rating:
            continue

        availability_score = calculate_availability_score(status)
        distance_score = get_distance_score(distance, service_radius)
        rating_score = calculate_rating_score(rating)

        combined = (
            availability_score * RECOMMENDATION_WEIGHTS["availability"]
            + distance_score * RECOMMENDATION_WEIGHTS["distance"]
            + rating_score * RECOMMENDATION_WEIGHTS["rating"]
        )

        recommendations.append({
            "contractorId": contractor["id"],
            "contractor": contractor,
            "score": round_half_up(combined),
            "distance": distance,
            "rating": rating,
            "availabilityStatus": status,
            "isWithinServiceRadius": is_within_service_radius(distance, service_radius),
            "breakdown": {
                "availabilityScore": round_half_up(availability_score * RECOMMENDATION_WEIGHTS["availability"]),
                "distanceScore": round_half_up(distance_score * RECOMMENDATION_WEIGHTS["distance"]),
                "ratingScore": round_half_up(rating_score * RECOMMENDATION_WEIGHTS["rating"]),
            },
        })

    recommendations.sort(key=lambda r: r["score"], reverse=True)
    return recommendations


def get_contractor_recommendations(
    job_date,
    time_block: str,
    job_location: Dict[str, Any],
    filters: Optional[Dict[str, Any]] = None,
    repository=None,
) -> List[Dict[str, Any]]:
    repository = repository or contractor_repository
    filters = filters or {}

    contractors = repository.list(filters=[("status", "==", "active")])

    trade_filter = filters.get("trade_filter")
    if trade_filter:
        contractors = [
            c for c in contractors
            if any(trade in trade_filter for trade in c.get("trades") or [])
        ]

    if not contractors:
        return []

    availability = repository.get_block_statuses([c["id"] for c in contractors], job_date, time_block)
    recommendations = score_contractors(contractors, availability, job_location, filters)
    logger.info(
        f"[RECOMMENDATIONS] {len(recommendations)} of {len(contractors)} contractors scored "
        f"for {job_date} {time_block}"
    )
    return recommendations


def get_top_contractor_recommendations(
    job_date,
    time_block: str,
    job_location: Dict[str, Any],
    limit: int = 5,
    filters: Optional[Dict[str, Any]] = None,
    repository=None,
) -> List[Dict[str, Any]]:
    return get_contractor_recommendations(job_date, time_block, job_location, filters, repository)[:limit]


def get_available_contractors(
    job_date,
    time_block: str,
    job_location: Optional[Dict[str, Any]] = None,
    required_trades: Optional[List[str]] = None,
    repository=None,
) -> List[Dict[str, Any]]:
    recommendations = get_contractor_recommendations(
        job_date,
        time_block,
        job_location or {"street": "", "city": "", "state": "", "zip": ""},
        {"only_available": True, "trade_filter": required_trades},
        repository,
    )
    return [r["contractor"] for r in recommendations]
