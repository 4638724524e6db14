from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from ..auth import require_auth
from ..constants import ADMIN_ROLES, CAMPAIGNS_COLLECTION
from ..contractors import contractor_repository
from ..dashboard import build_dashboard
from ..firebase_service import FirestoreRepository
from ..invoices import invoice_repository
from ..jobs import job_repository
from ..leads import lead_repository
from ..pnl import build_pnl_report, find_date_range_preset, get_date_range_presets
from ..http import firestore_unavailable
from ..utils import normalize_datetime

campaign_repository = FirestoreRepository(CAMPAIGNS_COLLECTION)


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def pnl(request):
    """
    P&L across KD, KTS and KR. Period is either ?preset=this_month (see
    get_date_range_presets) or ?start=YYYY-MM-DD&end=YYYY-MM-DD; no period
    means all time.
    """
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    now = timezone.now()
    start = end = None
    preset_label = request.GET.get("preset")
    if preset_label:
        preset = find_date_range_preset(preset_label, now)
        if preset is None:
            return JsonResponse({
                "error": "invalid_preset",
                "valid": [p["label"] for p in get_date_range_presets(now)],
            }, status=400)
        start, end = preset["start"], preset["end"]
    else:
        for key in ("start", "end"):
            raw = request.GET.get(key)
            if raw and normalize_datetime(raw) is None:
                return JsonResponse({"error": f"invalid_{key}"}, status=400)
        start = normalize_datetime(request.GET.get("start"))
        end = normalize_datetime(request.GET.get("end"))
        if end is not None and len(request.GET["end"]) == 10:
            # A bare date includes the whole day
            end = end.replace(hour=23, minute=59, second=59, microsecond=999999)

    if not invoice_repository.is_available():
        return firestore_unavailable()

    report = build_pnl_report(invoice_repository.list(), job_repository.list(), start, end, now)
    report["period"] = {"start": start, "end": end, "preset": preset_label}
    return JsonResponse(report)


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def dashboard(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    if not job_repository.is_available():
        return firestore_unavailable()

    return JsonResponse(build_dashboard(
        job_repository.list(),
        lead_repository.list(),
        contractor_repository.list(),
        invoice_repository.list(),
        campaign_count=len(campaign_repository.list()),
    ))
