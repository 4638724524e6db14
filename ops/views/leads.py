import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..auth import is_admin, require_auth
from ..constants import ADMIN_ROLES, JOB_TYPES, LEAD_QUALITIES, LEAD_SOURCES
from ..http import firestore_unavailable, json_body, not_found, query_filters, require_choice, require_fields
from ..leads import get_lead_counts_by_status, lead_repository

logger = logging.getLogger("ops")

LEAD_ROLES = ADMIN_ROLES + ("sales_rep",)
ASSIGNEE_TYPES = ("internal", "subscriber")


def _load_lead(request, lead_id):
    if not lead_repository.is_available():
        return None, firestore_unavailable()
    lead = lead_repository.get(lead_id)
    if lead is None:
        return None, not_found("lead")
    if not is_admin(request.auth.role) and lead.get("assignedTo") != request.auth.uid:
        return None, not_found("lead")
    return lead, None


@csrf_exempt
@require_auth(*LEAD_ROLES)
def lead_list(request):
    if request.method == "GET":
        if not lead_repository.is_available():
            return firestore_unavailable()
        filters = query_filters(
            request, "status", "source", "quality", "assignedTo", "assignedType", "campaignId", "market", "search"
        )
        if not is_admin(request.auth.role):
            filters["assignedTo"] = request.auth.uid
        items = lead_repository.list_leads(filters)
        return JsonResponse({
            "leads": items,
            "count": len(items),
            "byStatus": get_lead_counts_by_status(items),
        })

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST", "GET"])

    if not is_admin(request.auth.role):
        return JsonResponse({"error": "forbidden"}, status=403)

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "customer", "source")
    if error:
        return error
    error = require_choice(data["source"], LEAD_SOURCES, "invalid_source")
    if error:
        return error
    if data.get("quality"):
        error = require_choice(data["quality"], LEAD_QUALITIES, "invalid_quality")
        if error:
            return error

    if not lead_repository.is_available():
        return firestore_unavailable()

    created = lead_repository.create_lead(data)
    if created is None:
        return JsonResponse({"error": "failed_to_create_lead"}, status=500)
    return JsonResponse({"lead": created}, status=201)


@csrf_exempt
@require_auth(*LEAD_ROLES)
def lead_detail(request, lead_id: str):
    if request.method not in ("GET", "PATCH"):
        return HttpResponseNotAllowed(["GET", "PATCH"])

    lead, error = _load_lead(request, lead_id)
    if error:
        return error

    if request.method == "GET":
        return JsonResponse({"lead": lead})

    data, error = json_body(request)
    if error:
        return error
    if not is_admin(request.auth.role):
        # Reps work their leads but cannot hand them off
        for key in ("assignedTo", "assignedType", "source", "campaignId"):
            data.pop(key, None)

    updated = lead_repository.update_lead(lead_id, data)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_lead"}, status=500)
    return JsonResponse({"lead": updated})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def lead_assign(request, lead_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "assignedTo")
    if error:
        return error
    assigned_type = data.get("assignedType") or "internal"
    error = require_choice(assigned_type, ASSIGNEE_TYPES, "invalid_assigned_type")
    if error:
        return error

    _, error = _load_lead(request, lead_id)
    if error:
        return error

    lead = lead_repository.assign_lead(lead_id, data["assignedTo"], assigned_type)
    if lead is None:
        return JsonResponse({"error": "failed_to_assign_lead"}, status=500)
    return JsonResponse({"lead": lead})


@csrf_exempt
@require_auth(*LEAD_ROLES)
def lead_return(request, lead_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "reason")
    if error:
        return error

    _, error = _load_lead(request, lead_id)
    if error:
        return error

    lead = lead_repository.return_lead(lead_id, data["reason"])
    if lead is None:
        return JsonResponse({"error": "failed_to_return_lead"}, status=500)
    logger.info(f"[LEADS/RETURN] {lead_id} by {request.auth.uid}: {data['reason']}")
    return JsonResponse({"lead": lead})


@csrf_exempt
@require_auth(*LEAD_ROLES)
def lead_convert(request, lead_id: str):
    """Convert a lead into a KR job; body {"jobType": "kitchen"}."""
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    job_type = data.get("jobType") or "other"
    error = require_choice(job_type, JOB_TYPES, "invalid_job_type")
    if error:
        return error

    lead, error = _load_lead(request, lead_id)
    if error:
        return error
    if lead.get("status") == "converted":
        return JsonResponse({"error": "lead_already_converted", "jobId": lead.get("linkedJobId")}, status=409)

    job = lead_repository.convert_lead_to_job(lead_id, job_type)
    if job is None:
        return JsonResponse({"error": "failed_to_convert_lead"}, status=500)
    return JsonResponse({"job": job}, status=201)
