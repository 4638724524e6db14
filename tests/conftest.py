import pytest

from ops.auth import AuthResult
from ops.notification_service import notification_service

from .fakes import FakeFirestore, FakePush, RecordingNotifications


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def push():
    return FakePush()


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
def firestore(db, monkeypatch):
    """Point every module-level repository at the in-memory client."""
    monkeypatch.setattr("ops.firebase_service.get_firestore", lambda: db)
    return db


@pytest.fixture
def app_push(push, monkeypatch):
    """Replace FCM behind the shared notification service."""
    monkeypatch.setattr(notification_service, "push", push)
    return push


@pytest.fixture
def login(monkeypatch):
    """login(role, uid=..., partner_id=...) makes every request authenticate as that user."""
    def _login(role="admin", uid="user-1", partner_id=None, name="Test User"):
        result = AuthResult(
            authenticated=True,
            uid=uid,
            email=f"{uid}@example.com",
            name=name,
            role=role,
            partner_id=partner_id,
        )
        monkeypatch.setattr("ops.auth.verify_firebase_auth", lambda request: result)
        return result
    return _login
