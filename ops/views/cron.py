"""
Scheduler entry points (Cloud Scheduler hits these once a day). Requests
must carry the shared CRON_SECRET in the X-Cron-Secret header.
"""
import hmac
from functools import wraps

from django.conf import settings
from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..constants import CRON_SECRET_HEADER
from ..http import firestore_unavailable
from ..invoices import invoice_repository
from ..scheduled import daily_expiration_check


def require_cron_secret(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if request.method != "POST":
            return HttpResponseNotAllowed(["POST"])
        expected = settings.CRON_SECRET
        if not expected:
            return JsonResponse({"error": "cron_not_configured"}, status=503)
        provided = request.META.get(CRON_SECRET_HEADER, "")
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            return JsonResponse({"error": "unauthorized"}, status=401)
        return view(request, *args, **kwargs)
    return wrapper


@csrf_exempt
@require_cron_secret
def daily(request):
    if not invoice_repository.is_available():
        return firestore_unavailable()
    return JsonResponse({"success": True, "summary": daily_expiration_check()})


@csrf_exempt
@require_cron_secret
def overdue_invoices(request):
    if not invoice_repository.is_available():
        return firestore_unavailable()
    flipped = invoice_repository.sweep_overdue()
    return JsonResponse({
        "success": True,
        "count": len(flipped),
        "invoiceNumbers": [inv.get("invoiceNumber") for inv in flipped],
    })
