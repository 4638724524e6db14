from types import SimpleNamespace

import pytest
from django.http import JsonResponse
from django.test import RequestFactory

from ops.auth import has_role, is_admin, is_internal, require_auth, verify_firebase_auth


@pytest.fixture
def rf():
    return RequestFactory()


@require_auth("owner", "admin")
def admin_view(request):
    return JsonResponse({"uid": request.auth.uid, "role": request.auth.role})


@require_auth()
def any_user_view(request):
    return JsonResponse({"uid": request.auth.uid})


def fake_auth(decoded=None, error=None):
    def verify_id_token(token):
        if error:
            raise error
        return decoded
    return SimpleNamespace(verify_id_token=verify_id_token)


def test_missing_header(rf):
    result = verify_firebase_auth(rf.get("/"))
    assert not result.authenticated
    assert result.error == "Missing or invalid Authorization header"


def test_auth_not_configured(rf, monkeypatch):
    monkeypatch.setattr("ops.auth.get_auth", lambda: None)
    result = verify_firebase_auth(rf.get("/", HTTP_AUTHORIZATION="Bearer abc"))
    assert result.error == "Firebase auth not configured"


def test_invalid_token(rf, monkeypatch):
    monkeypatch.setattr("ops.auth.get_auth", lambda: fake_auth(error=ValueError("expired")))
    result = verify_firebase_auth(rf.get("/", HTTP_AUTHORIZATION="Bearer abc"))
    assert not result.authenticated
    assert result.error == "Invalid authentication token"


def test_role_comes_from_user_document(rf, monkeypatch, firestore):
    firestore.seed("users", "u1", {"role": "partner", "partnerId": "p1", "displayName": "Pat"})
    monkeypatch.setattr("ops.auth.get_auth", lambda: fake_auth({"uid": "u1", "email": "pat@example.com", "role": "owner"}))

    result = verify_firebase_auth(rf.get("/", HTTP_AUTHORIZATION="Bearer abc"))

    assert result.authenticated
    assert (result.uid, result.role, result.partner_id, result.name) == ("u1", "partner", "p1", "Pat")


def test_unknown_user_is_pending(rf, monkeypatch, firestore):
    monkeypatch.setattr("ops.auth.get_auth", lambda: fake_auth({"uid": "new", "name": "Newbie"}))
    result = verify_firebase_auth(rf.get("/", HTTP_AUTHORIZATION="Bearer abc"))
    assert result.role == "pending"
    assert result.name == "Newbie"


class TestRequireAuth:
    def test_unauthenticated(self, rf):
        response = admin_view(rf.get("/"))
        assert response.status_code == 401

    def test_wrong_role(self, rf, login):
        login("contractor")
        response = admin_view(rf.get("/"))
        assert response.status_code == 403

    def test_allowed(self, rf, login):
        login("admin", uid="boss")
        response = admin_view(rf.get("/"))
        assert response.status_code == 200

    def test_no_roles_means_any_signed_in_user(self, rf, login):
        login("partner")
        assert any_user_view(rf.get("/")).status_code == 200


def test_role_helpers():
    assert is_admin("owner")
    assert not is_admin("pm")
    assert is_internal("contractor")
    assert not is_internal("partner")
    assert not has_role(None, ["owner"])
