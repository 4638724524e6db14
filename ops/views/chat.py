import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..auth import require_auth
from ..chat import ChatError, chat as chat_reply
from ..chat_context import get_chat_context_for_user
from ..constants import INTERNAL_ROLES
from ..http import json_body

logger = logging.getLogger("ops")


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def chat_message(request):
    """
    Body: {"messages": [{"role": "user", "content": "..."}], "context": {...}}.
    Without a context the caller's role-scoped business summary is built.
    """
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error

    context = data.get("context")
    if not isinstance(context, dict):
        context = get_chat_context_for_user(request.auth.uid, request.auth.name, request.auth.role)

    try:
        reply = chat_reply(data.get("messages"), context)
    except ChatError as e:
        return JsonResponse({"error": e.code}, status=e.status)

    logger.info(f"[CHAT] Reply for {request.auth.uid} ({request.auth.role})")
    return JsonResponse({"message": reply.message, "model": reply.model})


@csrf_exempt
@require_auth(*INTERNAL_ROLES)
def chat_context(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    return JsonResponse({
        "context": get_chat_context_for_user(request.auth.uid, request.auth.name, request.auth.role)
    })
