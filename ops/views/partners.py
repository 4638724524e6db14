"""
Partner portal: partner companies, their labor requests and service tickets.

Owners/admins manage everything. Partner users only ever see records
carrying their own partnerId.
"""
import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt

from ..auth import is_admin, require_auth
from ..constants import (
    ADMIN_ROLES,
    ISSUE_TYPES,
    LABOR_REQUEST_STATUSES,
    PARTNER_STATUSES,
    PARTNER_TICKET_STATUS_ORDER,
    URGENCIES,
    WORK_TYPES,
)
from ..http import firestore_unavailable, json_body, not_found, query_filters, require_choice, require_fields
from ..partners import (
    get_next_labor_request_status,
    get_next_partner_ticket_status,
    labor_request_repository,
    partner_repository,
    partner_ticket_repository,
)

logger = logging.getLogger("ops")

PORTAL_ROLES = ADMIN_ROLES + ("partner",)


def _owns(request, record) -> bool:
    return is_admin(request.auth.role) or (
        bool(request.auth.partner_id) and record.get("partnerId") == request.auth.partner_id
    )


def _load(repository, request, record_id, what):
    if not repository.is_available():
        return None, firestore_unavailable()
    record = repository.get(record_id)
    if record is None or not _owns(request, record):
        return None, not_found(what)
    return record, None


def _submission(request, data):
    """Stamp partner identity on a new request or ticket."""
    if is_admin(request.auth.role):
        partner_id = data.get("partnerId")
    else:
        partner_id = request.auth.partner_id
    if not partner_id:
        return None, JsonResponse({"error": "missing_fields", "required": ["partnerId"]}, status=400)

    partner = partner_repository.get(partner_id)
    if partner is None:
        return None, not_found("partner")
    if partner.get("status") != "active":
        return None, JsonResponse({"error": "partner_not_active"}, status=403)

    return {
        **data,
        "partnerId": partner_id,
        "partnerCompany": partner.get("companyName", ""),
        "submittedBy": request.auth.uid,
    }, None


# =============================================================================
# Partners
# =============================================================================

@csrf_exempt
@require_auth(*ADMIN_ROLES)
def partner_list(request):
    if request.method == "GET":
        if not partner_repository.is_available():
            return firestore_unavailable()
        items = partner_repository.list_partners(query_filters(request, "status", "search"))
        return JsonResponse({"partners": items, "count": len(items)})

    if request.method != "POST":
        return HttpResponseNotAllowed(["GET", "POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "companyName", "contactName", "contactEmail")
    if error:
        return error

    if not partner_repository.is_available():
        return firestore_unavailable()
    created = partner_repository.create_partner(data)
    if created is None:
        return JsonResponse({"error": "failed_to_create_partner"}, status=500)
    return JsonResponse({"partner": created}, status=201)


@csrf_exempt
@require_auth(*PORTAL_ROLES)
def partner_detail(request, partner_id: str):
    if request.method not in ("GET", "PATCH"):
        return HttpResponseNotAllowed(["GET", "PATCH"])

    if not partner_repository.is_available():
        return firestore_unavailable()
    partner = partner_repository.get(partner_id)
    if partner is None or not (is_admin(request.auth.role) or request.auth.partner_id == partner_id):
        return not_found("partner")

    if request.method == "GET":
        return JsonResponse({"partner": partner})

    if not is_admin(request.auth.role):
        return JsonResponse({"error": "forbidden"}, status=403)

    data, error = json_body(request)
    if error:
        return error
    for key in ("status", "approvedAt", "approvedBy"):
        data.pop(key, None)
    updated = partner_repository.update_partner(partner_id, data)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_partner"}, status=500)
    return JsonResponse({"partner": updated})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def partner_approve(request, partner_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])
    if not partner_repository.is_available():
        return firestore_unavailable()
    if partner_repository.get(partner_id) is None:
        return not_found("partner")

    updated = partner_repository.approve_partner(partner_id, request.auth.uid)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_partner"}, status=500)
    logger.info(f"[PARTNERS/APPROVE] {partner_id} by {request.auth.uid}")
    return JsonResponse({"partner": updated})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def partner_status(request, partner_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_choice(data.get("status"), PARTNER_STATUSES, "invalid_status")
    if error:
        return error

    if not partner_repository.is_available():
        return firestore_unavailable()
    if partner_repository.get(partner_id) is None:
        return not_found("partner")

    updated = partner_repository.update_partner_status(partner_id, data["status"])
    if updated is None:
        return JsonResponse({"error": "failed_to_update_partner"}, status=500)
    return JsonResponse({"partner": updated})


# =============================================================================
# Labor requests
# =============================================================================

@csrf_exempt
@require_auth(*PORTAL_ROLES)
def labor_requests(request):
    if request.method == "GET":
        if not labor_request_repository.is_available():
            return firestore_unavailable()
        filters = query_filters(request, "partnerId", "status", "workType", "search")
        if not is_admin(request.auth.role):
            filters["partnerId"] = request.auth.partner_id or ""
        items = labor_request_repository.list_requests(filters)
        return JsonResponse({"laborRequests": items, "count": len(items)})

    if request.method != "POST":
        return HttpResponseNotAllowed(["GET", "POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "workType", "crewSize", "startDate", "location", "description")
    if error:
        return error
    error = require_choice(data["workType"], WORK_TYPES, "invalid_work_type")
    if error:
        return error

    if not labor_request_repository.is_available():
        return firestore_unavailable()

    record, error = _submission(request, data)
    if error:
        return error
    created = labor_request_repository.create_request(record)
    if created is None:
        return JsonResponse({"error": "failed_to_create_labor_request"}, status=500)
    return JsonResponse({"laborRequest": created}, status=201)


@csrf_exempt
@require_auth(*PORTAL_ROLES)
def labor_request_detail(request, request_id: str):
    if request.method not in ("GET", "PATCH"):
        return HttpResponseNotAllowed(["GET", "PATCH"])

    labor_request, error = _load(labor_request_repository, request, request_id, "labor_request")
    if error:
        return error

    if request.method == "GET":
        return JsonResponse({
            "laborRequest": labor_request,
            "nextStatus": get_next_labor_request_status(labor_request.get("status")),
        })

    if not is_admin(request.auth.role) and labor_request.get("status") != "new":
        return JsonResponse({"error": "labor_request_locked"}, status=409)

    data, error = json_body(request)
    if error:
        return error
    for key in ("partnerId", "partnerCompany", "submittedBy", "assignedContractorIds"):
        data.pop(key, None)

    updated = labor_request_repository.update_request(request_id, data)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_labor_request"}, status=500)
    return JsonResponse({"laborRequest": updated})


@csrf_exempt
@require_auth(*PORTAL_ROLES)
def labor_request_status(request, request_id: str):
    """Admins move a request along; partners may only cancel their own."""
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    status = data.get("status")
    error = require_choice(status, LABOR_REQUEST_STATUSES, "invalid_status")
    if error:
        return error
    if not is_admin(request.auth.role) and status != "cancelled":
        return JsonResponse({"error": "forbidden"}, status=403)

    labor_request, error = _load(labor_request_repository, request, request_id, "labor_request")
    if error:
        return error
    if labor_request.get("status") in ("complete", "cancelled"):
        return JsonResponse({"error": "labor_request_closed"}, status=409)

    updated = labor_request_repository.update_status(request_id, status, request.auth.uid, data.get("notes"))
    if updated is None:
        return JsonResponse({"error": "failed_to_update_labor_request"}, status=500)
    return JsonResponse({"laborRequest": updated})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def labor_request_assign(request, request_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    contractor_ids = data.get("contractorIds")
    if not isinstance(contractor_ids, list) or not contractor_ids:
        return JsonResponse({"error": "missing_fields", "required": ["contractorIds"]}, status=400)

    _, error = _load(labor_request_repository, request, request_id, "labor_request")
    if error:
        return error

    updated = labor_request_repository.assign_contractors(request_id, contractor_ids, request.auth.uid)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_labor_request"}, status=500)
    return JsonResponse({"laborRequest": updated})


# =============================================================================
# Partner service tickets
# =============================================================================

@csrf_exempt
@require_auth(*PORTAL_ROLES)
def partner_tickets(request):
    if request.method == "GET":
        if not partner_ticket_repository.is_available():
            return firestore_unavailable()
        filters = query_filters(request, "partnerId", "status", "urgency", "assignedTechId", "search")
        if not is_admin(request.auth.role):
            filters["partnerId"] = request.auth.partner_id or ""
        items = partner_ticket_repository.list_tickets(filters)
        return JsonResponse({"tickets": items, "count": len(items)})

    if request.method != "POST":
        return HttpResponseNotAllowed(["GET", "POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "customerName", "customerPhone", "serviceAddress", "issueType", "issueDescription")
    if error:
        return error
    error = require_choice(data["issueType"], ISSUE_TYPES, "invalid_issue_type") or require_choice(
        data.get("urgency", "medium"), URGENCIES, "invalid_urgency"
    )
    if error:
        return error
    data.setdefault("urgency", "medium")

    if not partner_ticket_repository.is_available():
        return firestore_unavailable()

    record, error = _submission(request, data)
    if error:
        return error
    created = partner_ticket_repository.create_ticket(record)
    if created is None:
        return JsonResponse({"error": "failed_to_create_ticket"}, status=500)
    return JsonResponse({"ticket": created}, status=201)


@csrf_exempt
@require_auth(*PORTAL_ROLES)
def partner_ticket_detail(request, ticket_id: str):
    if request.method not in ("GET", "PATCH"):
        return HttpResponseNotAllowed(["GET", "PATCH"])

    ticket, error = _load(partner_ticket_repository, request, ticket_id, "ticket")
    if error:
        return error

    if request.method == "GET":
        return JsonResponse({
            "ticket": ticket,
            "nextStatus": get_next_partner_ticket_status(ticket.get("status")),
        })

    if not is_admin(request.auth.role) and ticket.get("status") != "new":
        return JsonResponse({"error": "ticket_locked"}, status=409)

    data, error = json_body(request)
    if error:
        return error
    for key in ("partnerId", "partnerCompany", "submittedBy", "assignedTechId", "resolution", "resolvedAt"):
        data.pop(key, None)

    updated = partner_ticket_repository.update_ticket(ticket_id, data)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_ticket"}, status=500)
    return JsonResponse({"ticket": updated})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def partner_ticket_status(request, ticket_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_choice(data.get("status"), PARTNER_TICKET_STATUS_ORDER, "invalid_status")
    if error:
        return error

    _, error = _load(partner_ticket_repository, request, ticket_id, "ticket")
    if error:
        return error

    updated = partner_ticket_repository.update_status(ticket_id, data["status"], request.auth.uid, data.get("notes"))
    if updated is None:
        return JsonResponse({"error": "failed_to_update_ticket"}, status=500)
    return JsonResponse({"ticket": updated})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def partner_ticket_assign(request, ticket_id: str):
    """Body: {"techId": "...", "scheduledDate": "YYYY-MM-DD" (optional)}."""
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "techId")
    if error:
        return error

    scheduled = None
    if data.get("scheduledDate"):
        scheduled = parse_date(data["scheduledDate"])
        if scheduled is None:
            return JsonResponse({"error": "invalid_date", "format": "YYYY-MM-DD"}, status=400)

    _, error = _load(partner_ticket_repository, request, ticket_id, "ticket")
    if error:
        return error

    updated = partner_ticket_repository.assign_tech(ticket_id, data["techId"], request.auth.uid, scheduled)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_ticket"}, status=500)
    return JsonResponse({"ticket": updated})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def partner_ticket_resolve(request, ticket_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "resolution")
    if error:
        return error

    _, error = _load(partner_ticket_repository, request, ticket_id, "ticket")
    if error:
        return error

    updated = partner_ticket_repository.resolve(ticket_id, data["resolution"], request.auth.uid)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_ticket"}, status=500)
    return JsonResponse({"ticket": updated})
