"""
The signed-in user's own notifications: preferences, device tokens,
history and a test push. Every route acts on request.auth.uid.
"""
import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..auth import require_auth
from ..http import firestore_unavailable, json_body, not_found, query_int, require_fields
from ..notification_service import build_notification, notification_service
from ..notifications import PREFERENCE_CATEGORIES, get_default_preferences

logger = logging.getLogger("ops")


@csrf_exempt
@require_auth()
def notification_history(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    if not notification_service.is_available():
        return firestore_unavailable()

    limit = query_int(request, "limit", 50, maximum=200)
    items = notification_service.get_history(request.auth.uid, limit)
    return JsonResponse({"notifications": items, "count": len(items)})


@csrf_exempt
@require_auth()
def notification_unread_count(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    if not notification_service.is_available():
        return firestore_unavailable()
    return JsonResponse({"unread": notification_service.unread_count(request.auth.uid)})


@csrf_exempt
@require_auth()
def notification_read(request, notification_id: str):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])
    if not notification_service.is_available():
        return firestore_unavailable()

    updated = notification_service.mark_read(notification_id, user_id=request.auth.uid)
    if updated is None:
        return not_found("notification")
    return JsonResponse({"notification": updated})


@csrf_exempt
@require_auth()
def notification_read_all(request):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])
    if not notification_service.is_available():
        return firestore_unavailable()
    return JsonResponse({"marked": notification_service.mark_all_read(request.auth.uid)})


@csrf_exempt
@require_auth()
def notification_preferences(request):
    """GET current preferences (role defaults when none stored), PATCH a partial update."""
    if request.method not in ("GET", "PATCH"):
        return HttpResponseNotAllowed(["GET", "PATCH"])
    if not notification_service.is_available():
        return firestore_unavailable()

    uid = request.auth.uid
    if request.method == "GET":
        preferences = notification_service.get_preferences(uid)
        return JsonResponse({
            "preferences": preferences or get_default_preferences(request.auth.role),
            "stored": preferences is not None,
        })

    data, error = json_body(request)
    if error:
        return error

    if notification_service.get_preferences(uid) is None:
        notification_service.initialize_preferences(uid, request.auth.role)

    if "category" in data and "setting" in data:
        if data["category"] not in PREFERENCE_CATEGORIES:
            return JsonResponse({"error": "invalid_category", "valid": PREFERENCE_CATEGORIES}, status=400)
        ok = notification_service.toggle_setting(uid, data["category"], data["setting"], data.get("value", False))
    elif set(data) == {"pushEnabled"}:
        ok = notification_service.toggle_push(uid, data["pushEnabled"])
    elif set(data) == {"quietHours"} and isinstance(data["quietHours"], dict):
        ok = notification_service.update_quiet_hours(uid, data["quietHours"])
    else:
        ok = notification_service.update_preferences(uid, data) is not None

    if not ok:
        return JsonResponse({"error": "failed_to_update_preferences"}, status=500)
    return JsonResponse({"preferences": notification_service.get_preferences(uid)})


@csrf_exempt
@require_auth()
def notification_preferences_reset(request):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])
    if not notification_service.is_available():
        return firestore_unavailable()

    preferences = notification_service.initialize_preferences(request.auth.uid, request.auth.role)
    if preferences is None:
        return JsonResponse({"error": "failed_to_update_preferences"}, status=500)
    return JsonResponse({"preferences": preferences})


@csrf_exempt
@require_auth()
def notification_tokens(request):
    """POST {token, device, browser} registers a device; DELETE {token} removes it."""
    if request.method not in ("GET", "POST", "DELETE"):
        return HttpResponseNotAllowed(["GET", "POST", "DELETE"])
    if not notification_service.is_available():
        return firestore_unavailable()

    uid = request.auth.uid
    if request.method == "GET":
        tokens = notification_service.get_fcm_tokens(uid)
        return JsonResponse({"tokens": [{k: v for k, v in t.items() if k != "token"} for t in tokens]})

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "token")
    if error:
        return error

    if request.method == "DELETE":
        if not notification_service.remove_fcm_token(uid, data["token"]):
            return not_found("token")
        return JsonResponse({"success": True})

    ok = notification_service.save_fcm_token(
        uid, data["token"], data.get("device") or "desktop", data.get("browser") or "unknown"
    )

    if not ok:
        return JsonResponse({"error": "failed_to_update_tokens"}, status=500)
    return JsonResponse({"success": True})


@csrf_exempt
@require_auth()
def notification_test(request):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])
    if not notification_service.is_available():
        return firestore_unavailable()

    notification = build_notification("system_alert", {
        "title": "Test Notification",
        "body": "Push notifications are working on this device.",
        "actionUrl": "/settings/notifications",
    })
    # Urgent so quiet hours do not swallow the test
    notification["priority"] = "urgent"

    sent = notification_service.send_push_notification(request.auth.uid, notification)
    logger.info(f"[NOTIFICATIONS/TEST] {request.auth.uid} sent={sent}")
    return JsonResponse({"sent": sent})
