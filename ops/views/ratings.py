from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..http import firestore_unavailable, json_body, not_found, require_fields
from ..rating_requests import RatingRequestError, is_expired, rating_request_repository

PUBLIC_FIELDS = ("jobNumber", "contractorName", "customerName", "status", "expiresAt")


@csrf_exempt
def rating(request, token: str):
    """
    Public customer rating page backend; the token is the credential.
    GET shows what is being rated, POST {"rating": 1-5, "comment": "..."} submits.
    """
    if request.method not in ("GET", "POST"):
        return HttpResponseNotAllowed(["GET", "POST"])
    if not rating_request_repository.is_available():
        return firestore_unavailable()

    if request.method == "GET":
        rating_request = rating_request_repository.get_by_token(token)
        if rating_request is None:
            return not_found("rating_request")
        body = {key: rating_request.get(key) for key in PUBLIC_FIELDS}
        body["expired"] = is_expired(rating_request)
        return JsonResponse({"ratingRequest": body})

    data, error = json_body(request)
    if error:
        return error
    error = require_fields(data, "rating")
    if error:
        return error

    try:
        result = rating_request_repository.submit_rating(token, data["rating"], data.get("comment"))
    except RatingRequestError as e:
        return JsonResponse({"error": e.code}, status=e.status)

    return JsonResponse({"success": True, "rating": result.request.get("rating")})
