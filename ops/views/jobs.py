import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..auth import require_auth
from ..constants import ADMIN_ROLES, INTERNAL_ROLES, JOB_STATUS_ORDER, JOB_TYPES
from ..contractors import contractor_repository
from ..http import firestore_unavailable, json_body, not_found, query_filters, require_choice, require_fields
from ..jobs import get_available_transitions, get_next_status, get_previous_status, job_repository

logger = logging.getLogger("ops")

EDIT_ROLES = ADMIN_ROLES + ("pm", "sales_rep")


def _scoped_filters(request, filters):
    """Sales reps and PMs only see their own jobs."""
    role, uid = request.auth.role, request.auth.uid
    if role == "sales_rep":
        filters["salesRepId"] = uid
    elif role == "pm":
        filters["pmId"] = uid
    return filters


def _can_view(request, job) -> bool:
    role, uid = request.auth.role, request.auth.uid
    if role in ADMIN_ROLES:
        return True
    if role == "sales_rep":
        return job.get("salesRepId") == uid
    if role == "pm":
        return job.get("pmId") == uid
    if role == "contractor":
        contractor = contractor_repository.get_by_user_id(uid)
        return bool(contractor) and contractor["id"] in (job.get("crewIds") or [])
    return False


def _load_job(request, job_id):
    if not job_repository.is_available():
        return None, firestore_unavailable()
    job = job_repository.get(job_id)
    if job is None or not _can_view(request, job):
        return None, not_found("job")
    return job, None


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def job_list(request):
    if request.method == "GET":
        if not job_repository.is_available():
            return firestore_unavailable()

        if request.auth.role == "contractor":
            contractor = contractor_repository.get_by_user_id(request.auth.uid)
            items = job_repository.get_by_crew_member(contractor["id"]) if contractor else []
        else:
            filters = query_filters(request, "status", "type", "salesRepId", "pmId", "crewId", "search")
            items = job_repository.list_jobs(_scoped_filters(request, filters))
        return JsonResponse({"jobs": items, "count": len(items)})

    if request.method != "POST":
        return HttpResponseNotAllowed(["GET", "POST"])

    if request.auth.role not in EDIT_ROLES:
        return JsonResponse({"error": "forbidden"}, status=403)

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "customer")
    if error:
        return error
    error = require_choice(data.get("type", "other"), JOB_TYPES, "invalid_job_type")
    if error:
        return error
    # New jobs always enter the pipeline at the start
    data["status"] = "lead"
    if request.auth.role == "sales_rep":
        data["salesRepId"] = request.auth.uid

    if not job_repository.is_available():
        return firestore_unavailable()

    created = job_repository.create_job(data)
    if created is None:
        return JsonResponse({"error": "failed_to_create_job"}, status=500)

    logger.info(f"[JOBS/CREATE] {created.get('jobNumber')} by {request.auth.uid}")
    return JsonResponse({"job": created}, status=201)


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def job_detail(request, job_id: str):
    if request.method not in ("GET", "PATCH"):
        return HttpResponseNotAllowed(["GET", "PATCH"])

    job, error = _load_job(request, job_id)
    if error:
        return error

    if request.method == "GET":
        return JsonResponse({"job": job})

    if request.auth.role not in EDIT_ROLES:
        return JsonResponse({"error": "forbidden"}, status=403)

    data, error = json_body(request)
    if error:
        return error
    # Status only moves through /transition
    data.pop("status", None)
    data.pop("jobNumber", None)

    updated = job_repository.update_job(job_id, data)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_job"}, status=500)
    return JsonResponse({"job": updated})


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def job_transition(request, job_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "newStatus")
    if error:
        return error
    error = require_choice(data["newStatus"], JOB_STATUS_ORDER, "invalid_status")
    if error:
        return error

    job, error = _load_job(request, job_id)
    if error:
        return error

    result = job_repository.transition_job_status(
        job_id,
        job.get("status"),
        data["newStatus"],
        request.auth.uid,
        request.auth.role,
        note=data.get("note"),
    )
    if not result.success:
        status = 403 if "permission" in (result.error or "") else 400
        if result.error == "Failed to update status":
            status = 500
        return JsonResponse({"error": result.error}, status=status)

    body = {"success": True, "job": result.job}
    if result.payouts is not None:
        body["payouts"] = result.payouts
    return JsonResponse(body)


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def job_transitions(request, job_id: str):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    job, error = _load_job(request, job_id)
    if error:
        return error

    status = job.get("status")
    return JsonResponse({
        "status": status,
        "next": get_next_status(status),
        "previous": get_previous_status(status),
        "available": get_available_transitions(status, request.auth.role),
    })


@csrf_exempt
@require_auth(*ADMIN_ROLES, "pm")
def job_crew(request, job_id: str):
    if request.method != "PUT":
        return HttpResponseNotAllowed(["PUT"])

    data, error = json_body(request)
    if error:
        return error
    crew_ids = data.get("crewIds")
    if not isinstance(crew_ids, list):
        return JsonResponse({"error": "missing_fields", "required": ["crewIds"]}, status=400)

    job, error = _load_job(request, job_id)
    if error:
        return error

    updated = job_repository.set_crew(job_id, crew_ids)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_job"}, status=500)
    return JsonResponse({"job": updated})


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def job_communications(request, job_id: str):
    if request.method not in ("GET", "POST"):
        return HttpResponseNotAllowed(["GET", "POST"])

    job, error = _load_job(request, job_id)
    if error:
        return error

    if request.method == "GET":
        return JsonResponse({"communications": job_repository.get_communications(job_id)})

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "content")
    if error:
        return error

    comm_id = job_repository.add_communication(job_id, {
        "type": data.get("type") or "note",
        "userId": request.auth.uid,
        "content": data["content"],
        "attachments": data.get("attachments") or [],
    })
    if comm_id is None:
        return JsonResponse({"error": "failed_to_add_communication"}, status=500)
    return JsonResponse({"id": comm_id}, status=201)
