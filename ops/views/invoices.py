import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..auth import require_auth
from ..constants import ADMIN_ROLES, INVOICE_ENTITIES
from ..http import bearer_token, firestore_unavailable, json_body, not_found, query_bool, query_filters, require_choice
from ..invoices import (
    get_days_until_due,
    get_invoice_stats,
    get_invoice_type,
    group_invoices_by_status,
    invoice_repository,
    sort_invoices_by_priority,
)

logger = logging.getLogger("ops")


def _present(invoice):
    return {
        **invoice,
        "invoiceType": get_invoice_type(invoice),
        "daysUntilDue": get_days_until_due(invoice),
    }


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def invoice_list(request):
    if request.method == "GET":
        if not invoice_repository.is_available():
            return firestore_unavailable()

        filters = query_filters(request, "status", "fromEntity", "toEntity", "search")
        filters["overdue"] = query_bool(request, "overdue")
        items = invoice_repository.list_invoices(filters)
        if request.GET.get("sort") == "priority":
            items = sort_invoices_by_priority(items)

        body = {"invoices": [_present(inv) for inv in items], "count": len(items)}
        if query_bool(request, "grouped"):
            body["grouped"] = {
                status: [inv["id"] for inv in group]
                for status, group in group_invoices_by_status(items).items()
            }
        return JsonResponse(body)

    if request.method != "POST":
        return HttpResponseNotAllowed(["GET", "POST"])

    data, error = json_body(request)
    if error:
        return error

    for side in ("from", "to"):
        entity = (data.get(side) or {}).get("entity")
        error = require_choice(entity, INVOICE_ENTITIES, f"invalid_{side}_entity")
        if error:
            return error
    if not isinstance(data.get("lineItems"), list) or not data["lineItems"]:
        return JsonResponse({"error": "missing_fields", "required": ["lineItems"]}, status=400)

    if not invoice_repository.is_available():
        return firestore_unavailable()

    created = invoice_repository.create_invoice(data)
    if created is None:
        return JsonResponse({"error": "failed_to_create_invoice"}, status=500)

    logger.info(f"[INVOICES/CREATE] {created.get('invoiceNumber')} total={created.get('total')}")
    return JsonResponse({"invoice": _present(created)}, status=201)


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def invoice_stats(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    if not invoice_repository.is_available():
        return firestore_unavailable()
    return JsonResponse(get_invoice_stats(invoice_repository.list_invoices()))


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def invoice_detail(request, invoice_id: str):
    if request.method not in ("GET", "PATCH"):
        return HttpResponseNotAllowed(["GET", "PATCH"])

    if not invoice_repository.is_available():
        return firestore_unavailable()

    invoice = invoice_repository.get(invoice_id)
    if invoice is None:
        return not_found("invoice")

    if request.method == "GET":
        return JsonResponse({"invoice": _present(invoice)})

    if invoice.get("status") == "paid":
        return JsonResponse({"error": "invoice_already_paid"}, status=409)

    data, error = json_body(request)
    if error:
        return error
    for key in ("status", "invoiceNumber", "sentAt", "paidAt"):
        data.pop(key, None)

    updated = invoice_repository.update_invoice(invoice_id, data)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_invoice"}, status=500)
    return JsonResponse({"invoice": _present(updated)})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def invoice_send(request, invoice_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    if not invoice_repository.is_available():
        return firestore_unavailable()

    result = invoice_repository.mark_sent(invoice_id, id_token=bearer_token(request))
    if not result.success:
        return JsonResponse({"error": result.error}, status=result.status)
    return JsonResponse({"invoice": _present(result.invoice), "emailed": result.emailed})


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def invoice_pay(request, invoice_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    if not invoice_repository.is_available():
        return firestore_unavailable()

    invoice = invoice_repository.get(invoice_id)
    if invoice is None:
        return not_found("invoice")
    if invoice.get("status") == "paid":
        return JsonResponse({"error": "invoice_already_paid"}, status=409)

    updated = invoice_repository.mark_paid(invoice_id)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_invoice"}, status=500)
    logger.info(f"[INVOICES/PAY] {updated.get('invoiceNumber')} marked paid by {request.auth.uid}")
    return JsonResponse({"invoice": _present(updated)})
