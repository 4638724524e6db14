"""
Request authentication with Firebase ID tokens.

The dashboard and partner portal send `Authorization: Bearer <idToken>`.
The user's role comes from users/{uid}.role, not from token claims, so a
role change takes effect on the next request.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional, Iterable

from django.http import JsonResponse

from .constants import ADMIN_ROLES, INTERNAL_ROLES
from .firebase_service import get_auth, users_repository

logger = logging.getLogger("ops")


@dataclass
class AuthResult:
    """Result of verifying a request's Firebase ID token"""
    authenticated: bool
    uid: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    partner_id: Optional[str] = None
    error: Optional[str] = None


def verify_firebase_auth(request) -> AuthResult:
    auth_header = request.META.get("HTTP_AUTHORIZATION", "")
    if not auth_header.startswith("Bearer "):
        return AuthResult(authenticated=False, error="Missing or invalid Authorization header")

    token = auth_header[len("Bearer "):].strip()
    auth = get_auth()
    if auth is None:
        return AuthResult(authenticated=False, error="Firebase auth not configured")

    try:
        decoded = auth.verify_id_token(token)
    except Exception as e:
        logger.warning(f"[AUTH] Token verification failed: {e}")
        return AuthResult(authenticated=False, error="Invalid authentication token")

    uid = decoded.get("uid")
    user = users_repository.get(uid) or {}
    return AuthResult(
        authenticated=True,
        uid=uid,
        email=decoded.get("email"),
        name=user.get("displayName") or decoded.get("name") or "",
        role=user.get("role") or "pending",
        partner_id=user.get("partnerId"),
    )


def has_role(role: Optional[str], allowed_roles: Iterable[str]) -> bool:
    return bool(role) and role in allowed_roles


def is_admin(role: Optional[str]) -> bool:
    return has_role(role, ADMIN_ROLES)


def is_internal(role: Optional[str]) -> bool:
    return has_role(role, INTERNAL_ROLES)


def require_auth(*roles):
    """
    View decorator. Rejects unauthenticated requests with 401 and, when
    roles are given, users outside them with 403. The AuthResult is
    attached as request.auth.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            result = verify_firebase_auth(request)
            if not result.authenticated:
                return JsonResponse({"error": "unauthorized", "details": result.error}, status=401)
            if roles and not has_role(result.role, roles):
                logger.warning(f"[AUTH] Forbidden: uid={result.uid} role={result.role} needs {roles}")
                return JsonResponse({"error": "forbidden", "role": result.role}, status=403)
            request.auth = result
            return view(request, *args, **kwargs)
        return wrapper
    return decorator
