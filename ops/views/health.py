from django.conf import settings
from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..firebase_service import users_repository
from ..push_service import fcm_service


@csrf_exempt
def health_check(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    firestore_ok = users_repository.is_available()

    return JsonResponse({
        "status": "ok",
        "firestore": "connected" if firestore_ok else "not_configured",
        "push": "configured" if fcm_service.is_configured() else "not_configured",
        "chat": "configured" if settings.ANTHROPIC_API_KEY else "not_configured",
        "functions": "configured" if settings.FIREBASE_FUNCTIONS_URL else "not_configured",
    })
