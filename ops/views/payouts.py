from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..auth import require_auth
from ..constants import ADMIN_ROLES, PAYOUT_STATUSES
from ..http import firestore_unavailable, json_body, not_found, query_filters, require_choice, require_fields
from ..payouts import get_payout_summary, payout_repository


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def payout_list(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    if not payout_repository.is_available():
        return firestore_unavailable()

    filters = query_filters(request, "status", "type", "toEntity", "jobId", "contractorId", "startDate", "endDate")
    items = payout_repository.list_payouts(filters)
    return JsonResponse({"payouts": items, "count": len(items), "summary": get_payout_summary(items)})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def payout_summary(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    if not payout_repository.is_available():
        return firestore_unavailable()
    return JsonResponse(payout_repository.summary())


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def payout_status(request, payout_id: str):
    """Body: {"status": "completed", "reference": "ACH-123"} or {"status": "failed", "reason": "..."}."""
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "status")
    if error:
        return error
    status = data["status"]
    error = require_choice(status, PAYOUT_STATUSES, "invalid_status")
    if error:
        return error
    if status == "failed":
        error = require_fields(data, "reason")
        if error:
            return error

    if not payout_repository.is_available():
        return firestore_unavailable()
    if payout_repository.get(payout_id) is None:
        return not_found("payout")

    if status == "completed":
        updated = payout_repository.mark_completed(payout_id, request.auth.uid, data.get("reference"))
    elif status == "failed":
        updated = payout_repository.mark_failed(payout_id, data["reason"])
    else:
        updated = payout_repository.update_payout_status(payout_id, status, processed_by=request.auth.uid)

    if updated is None:
        return JsonResponse({"error": "failed_to_update_payout"}, status=500)
    return JsonResponse({"payout": updated})
