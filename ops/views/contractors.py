import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt

from ..auth import is_admin, require_auth
from ..constants import ADMIN_ROLES, AVAILABILITY_STATUSES, CONTRACTOR_STATUSES, INTERNAL_ROLES, TIME_BLOCKS, TRADES
from ..contractors import contractor_repository, get_day_status
from ..geocoding import ensure_coordinates
from ..http import (
    firestore_unavailable,
    json_body,
    not_found,
    query_bool,
    query_filters,
    query_float,
    query_int,
    require_choice,
    require_fields,
)
from ..ratings import get_commission_rate, get_rating_tier
from ..recommendations import get_top_contractor_recommendations
from ..utils import run_async

logger = logging.getLogger("ops")


def _with_tier(contractor):
    overall = (contractor.get("rating") or {}).get("overall") or 0
    tier = get_rating_tier(overall)
    return {**contractor, "tier": tier, "commissionRate": get_commission_rate(tier)}


def _validate_profile(data):
    if data.get("status"):
        error = require_choice(data["status"], CONTRACTOR_STATUSES, "invalid_status")
        if error:
            return error
    trades = data.get("trades")
    if trades is not None and not isinstance(trades, list):
        return JsonResponse({"error": "invalid_trades"}, status=400)
    for trade in trades or []:
        error = require_choice(trade, TRADES, "invalid_trade")
        if error:
            return error
    return None


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def contractor_list(request):
    if request.method == "GET":
        if not contractor_repository.is_available():
            return firestore_unavailable()
        filters = query_filters(request, "status", "trade", "search")
        items = [_with_tier(c) for c in contractor_repository.list_contractors(filters)]
        return JsonResponse({"contractors": items, "count": len(items)})

    if request.method != "POST":
        return HttpResponseNotAllowed(["GET", "POST"])

    if not is_admin(request.auth.role):
        return JsonResponse({"error": "forbidden"}, status=403)

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "businessName", "address")
    if error:
        return error
    error = _validate_profile(data)
    if error:
        return error

    if not contractor_repository.is_available():
        return firestore_unavailable()

    created = contractor_repository.create_contractor(data)
    if created is None:
        return JsonResponse({"error": "failed_to_create_contractor"}, status=500)

    logger.info(f"[CONTRACTORS/CREATE] {created['id']} {created.get('businessName')}")
    return JsonResponse({"contractor": _with_tier(created)}, status=201)


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def contractor_detail(request, contractor_id: str):
    if request.method not in ("GET", "PATCH"):
        return HttpResponseNotAllowed(["GET", "PATCH"])

    if not contractor_repository.is_available():
        return firestore_unavailable()

    contractor = contractor_repository.get(contractor_id)
    if contractor is None:
        return not_found("contractor")

    if request.method == "GET":
        return JsonResponse({"contractor": _with_tier(contractor)})

    owns_record = contractor.get("userId") == request.auth.uid
    if not (is_admin(request.auth.role) or owns_record):
        return JsonResponse({"error": "forbidden"}, status=403)

    data, error = json_body(request)
    if error:
        return error

    # Contractors may edit their profile but not their standing
    if not is_admin(request.auth.role):
        for key in ("status", "rating", "userId"):
            data.pop(key, None)
    error = _validate_profile(data)
    if error:
        return error

    updated = contractor_repository.update_contractor(contractor_id, data)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_contractor"}, status=500)
    return JsonResponse({"contractor": _with_tier(updated)})


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def contractor_availability(request, contractor_id: str):
    """GET ?date=YYYY-MM-DD, PUT {date, blocks, notes}, DELETE ?date=YYYY-MM-DD."""
    if request.method not in ("GET", "PUT", "DELETE"):
        return HttpResponseNotAllowed(["GET", "PUT", "DELETE"])

    if not contractor_repository.is_available():
        return firestore_unavailable()

    contractor = contractor_repository.get(contractor_id)
    if contractor is None:
        return not_found("contractor")

    if request.method == "PUT":
        data, error = json_body(request)
        if error:
            return error
        day = parse_date(data.get("date") or "")
    else:
        data = {}
        day = parse_date(request.GET.get("date", ""))
    if day is None:
        return JsonResponse({"error": "invalid_date", "format": "YYYY-MM-DD"}, status=400)

    if request.method == "GET":
        availability = contractor_repository.get_availability(contractor_id, day)
        blocks = availability["blocks"] if availability else {block: "available" for block in TIME_BLOCKS}
        return JsonResponse({
            "contractorId": contractor_id,
            "date": day.isoformat(),
            "blocks": blocks,
            "status": get_day_status(blocks),
            "notes": (availability or {}).get("notes"),
        })

    if not (is_admin(request.auth.role) or contractor.get("userId") == request.auth.uid):
        return JsonResponse({"error": "forbidden"}, status=403)

    if request.method == "DELETE":
        if not contractor_repository.clear_availability(contractor_id, day):
            return JsonResponse({"error": "failed_to_clear_availability"}, status=500)
        return JsonResponse({"success": True})

    blocks = data.get("blocks") or {}
    if not isinstance(blocks, dict):
        return JsonResponse({"error": "invalid_blocks"}, status=400)
    for block, status in blocks.items():
        error = require_choice(block, TIME_BLOCKS, "invalid_block") or require_choice(
            status, AVAILABILITY_STATUSES, "invalid_availability_status"
        )
        if error:
            return error

    record = contractor_repository.set_availability(contractor_id, day, blocks, data.get("notes"))
    if record is None:
        return JsonResponse({"error": "failed_to_set_availability"}, status=500)
    return JsonResponse({"availability": record})


@csrf_exempt
@require_auth(*ADMIN_ROLES, "pm")
def contractor_recommendations(request):
    """
    Ranked contractors for a job slot.

    Query: date, block, and either lat/lng or street/city/state/zip.
    Optional: trade (comma separated), onlyAvailable, maxDistance,
    minRating, limit.
    """
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    day = parse_date(request.GET.get("date", ""))
    if day is None:
        return JsonResponse({"error": "invalid_date", "format": "YYYY-MM-DD"}, status=400)

    block = request.GET.get("block", "am")
    error = require_choice(block, TIME_BLOCKS, "invalid_block")
    if error:
        return error

    location = {key: request.GET.get(key, "") for key in ("street", "city", "state", "zip")}
    lat, lng = query_float(request, "lat"), query_float(request, "lng")
    if lat is not None and lng is not None:
        location.update({"lat": lat, "lng": lng})
    else:
        location = run_async(ensure_coordinates(location))
    if location.get("lat") is None or location.get("lng") is None:
        return JsonResponse({"error": "location_not_found"}, status=400)

    if not contractor_repository.is_available():
        return firestore_unavailable()

    trades = [t for t in request.GET.get("trade", "").split(",") if t]
    filters = {
        "only_available": query_bool(request, "onlyAvailable"),
        "max_distance": query_float(request, "maxDistance"),
        "min_rating": query_float(request, "minRating"),
        "trade_filter": trades or None,
    }
    limit = query_int(request, "limit", 5, maximum=50)

    recommendations = get_top_contractor_recommendations(
        day, block, location, limit=limit, filters=filters, repository=contractor_repository
    )
    return JsonResponse({
        "date": day.isoformat(),
        "block": block,
        "recommendations": recommendations,
        "count": len(recommendations),
    })
