import json
from typing import Tuple

from django.http import JsonResponse


def json_body(request) -> Tuple[dict, JsonResponse]:
    try:
        body = request.body.decode("utf-8") if request.body else "{}"
        data = json.loads(body)
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data, None
    except (json.JSONDecodeError, ValueError) as exc:
        return None, JsonResponse({"error": f"invalid_json: {exc}"}, status=400)


def require_fields(data: dict, *fields):
    missing = [field for field in fields if data.get(field) in (None, "", [])]
    if missing:
        return JsonResponse({"error": "missing_fields", "required": list(fields), "missing": missing}, status=400)
    return None


def require_choice(value, choices, error_code: str):
    if value not in choices:
        return JsonResponse({"error": error_code, "valid": list(choices)}, status=400)
    return None


def firestore_unavailable() -> JsonResponse:
    return JsonResponse({
        "error": "firestore_unavailable",
        "message": "Firebase Firestore is not configured",
    }, status=503)


def not_found(what: str) -> JsonResponse:
    return JsonResponse({"error": f"{what}_not_found"}, status=404)


def query_filters(request, *keys) -> dict:
    """Pick non-empty query-string parameters."""
    return {key: request.GET[key] for key in keys if request.GET.get(key)}


def query_int(request, key: str, default: int, maximum: int = None) -> int:
    try:
        value = int(request.GET.get(key, default))
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    if maximum is not None:
        return min(value, maximum)
    return value


def bearer_token(request):
    header = request.META.get("HTTP_AUTHORIZATION", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip()
    return None


def query_bool(request, key: str) -> bool:
    return request.GET.get(key, "").lower() in ("1", "true", "yes")


def query_float(request, key: str):
    try:
        return float(request.GET[key])
    except (KeyError, TypeError, ValueError):
        return None
