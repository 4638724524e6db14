"""
Client for the project's Firebase Cloud Functions (invoice email, Sheets P&L rebuild).
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

import requests
from django.conf import settings
from django.http import JsonResponse

from .constants import FUNCTIONS_TIMEOUT_SECONDS

logger = logging.getLogger("ops")

SEND_INVOICE_EMAIL = "sendInvoiceEmail"
TRIGGER_PNL_REBUILD = "triggerPnLRebuild"


@dataclass
class FunctionResult:
    """Outcome of a Cloud Function call"""
    ok: bool
    status: int
    body: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_response(self) -> JsonResponse:
        if self.ok:
            return JsonResponse(self.body, status=200)
        return JsonResponse({"error": self.error, **self.body}, status=self.status)


def call_function(name: str, payload: Optional[Dict[str, Any]] = None, id_token: Optional[str] = None) -> FunctionResult:
    """
    POST to {FIREBASE_FUNCTIONS_URL}/{name} using the callable-function
    envelope ({"data": payload}). The caller's ID token is forwarded so
    callables that check context.auth accept the request.
    """
    base_url = settings.FIREBASE_FUNCTIONS_URL
    if not base_url:
        return FunctionResult(ok=False, status=500, error="functions_not_configured")

    url = f"{base_url.rstrip('/')}/{name}"
    headers = {"Content-Type": "application/json"}
    if id_token:
        headers["Authorization"] = f"Bearer {id_token}"

    try:
        response = requests.post(
            url,
            json={"data": payload or {}},
            headers=headers,
            timeout=FUNCTIONS_TIMEOUT_SECONDS,
        )
    except requests.exceptions.ConnectionError:
        logger.error(f"[FUNCTIONS] {name} unavailable")
        return FunctionResult(ok=False, status=503, error="functions_unavailable")
    except requests.exceptions.Timeout:
        logger.error(f"[FUNCTIONS] {name} timed out")
        return FunctionResult(ok=False, status=504, error="functions_timeout")

    try:
        body = response.json()
    except ValueError:
        body = {"raw": response.text}
    if not isinstance(body, dict):
        body = {"result": body}

    if response.ok:
        logger.info(f"[FUNCTIONS] {name} -> {response.status_code}")
        return FunctionResult(ok=True, status=response.status_code, body=body)

    logger.error(f"[FUNCTIONS] {name} failed: {response.status_code} {body}")
    return FunctionResult(ok=False, status=502, body=body, error="function_failed")


def send_invoice_email(invoice_id: str, recipient_email: Optional[str] = None, id_token: Optional[str] = None) -> FunctionResult:
    payload = {"invoiceId": invoice_id}
    if recipient_email:
        payload["recipientEmail"] = recipient_email
    return call_function(SEND_INVOICE_EMAIL, payload, id_token)


def trigger_pnl_rebuild(id_token: Optional[str] = None) -> FunctionResult:
    return call_function(TRIGGER_PNL_REBUILD, id_token=id_token)
