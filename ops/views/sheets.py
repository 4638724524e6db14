import logging

from django.http import HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..auth import require_auth
from ..constants import ADMIN_ROLES
from ..functions_client import trigger_pnl_rebuild
from ..http import bearer_token

logger = logging.getLogger("ops")


@csrf_exempt
@require_auth(*ADMIN_ROLES)
def sync_expenses(request):
    """Ask the Sheets function to rebuild the P&L tab from Firestore."""
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    logger.info(f"[SHEETS/SYNC] Requested by {request.auth.uid}")
    return trigger_pnl_rebuild(id_token=bearer_token(request)).to_response()
