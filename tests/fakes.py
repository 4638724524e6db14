"""
In-memory stand-ins for the Firestore client and the FCM transport.

FakeFirestore covers the subset of google-cloud-firestore the repositories
use: slash-separated collection paths, document refs with subcollections,
add(), where() with the common operators (dotted field paths included),
order_by(), limit(), stream() and write batches.
"""
import copy
import itertools
from datetime import datetime, timezone as dt_timezone

from ops.firebase_service import apply_updates
from ops.push_service import PushResult

_MISSING = object()


def _field(data, dotted):
    value = data
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _matches(value, op, expected):
    if value is _MISSING:
        return False
    if op == "==":
        return value == expected
    if op == "!=":
        return value != expected
    if op == "in":
        return value in expected
    if op == "not-in":
        return value not in expected
    if op == "array_contains":
        return isinstance(value, list) and expected in value
    if op == "array_contains_any":
        return isinstance(value, list) and any(item in value for item in expected)
    if value is None:
        return False
    try:
        if op == "<":
            return value < expected
        if op == "<=":
            return value <= expected
        if op == ">":
            return value > expected
        if op == ">=":
            return value >= expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator: {op}")


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db, collection_path, doc_id):
        self._db = db
        self._collection_path = collection_path
        self.id = doc_id

    @property
    def path(self):
        return f"{self._collection_path}/{self.id}"

    def _docs(self):
        return self._db.store.setdefault(self._collection_path, {})

    def get(self):
        return FakeSnapshot(self, self._docs().get(self.id))

    def set(self, data, merge=False):
        if merge and self.id in self._docs():
            self._docs()[self.id] = apply_updates(self._docs()[self.id], copy.deepcopy(data))
        else:
            self._docs()[self.id] = copy.deepcopy(data)

    def update(self, updates):
        if self.id not in self._docs():
            raise KeyError(f"No document to update: {self.path}")
        self._docs()[self.id] = apply_updates(copy.deepcopy(self._docs()[self.id]), copy.deepcopy(updates))

    def delete(self):
        self._docs().pop(self.id, None)

    def collection(self, name):
        return FakeCollection(self._db, f"{self.path}/{name}")


class FakeQuery:
    def __init__(self, collection, filters=(), order=None, limit_count=None):
        self._collection = collection
        self._filters = list(filters)
        self._order = order
        self._limit = limit_count

    def where(self, field, op, value):
        return FakeQuery(self._collection, self._filters + [(field, op, value)], self._order, self._limit)

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(self._collection, self._filters, (field, direction), self._limit)

    def limit(self, count):
        return FakeQuery(self._collection, self._filters, self._order, count)

    def stream(self):
        docs = self._collection._db.store.get(self._collection.path, {})
        rows = [
            (doc_id, data) for doc_id, data in docs.items()
            if all(_matches(_field(data, f), op, v) for f, op, v in self._filters)
        ]
        if self._order:
            field, direction = self._order
            # Firestore leaves out documents that lack the ordered field
            rows = [row for row in rows if _field(row[1], field) not in (_MISSING, None)]
            rows.sort(key=lambda row: _field(row[1], field), reverse=direction == "DESCENDING")
        if self._limit:
            rows = rows[:self._limit]
        return iter([
            FakeSnapshot(FakeDocumentRef(self._collection._db, self._collection.path, doc_id), copy.deepcopy(data))
            for doc_id, data in rows
        ])

    def get(self):
        return list(self.stream())


class FakeCollection(FakeQuery):
    def __init__(self, db, path):
        self._db = db
        self.path = path
        super().__init__(self)

    def document(self, doc_id=None):
        return FakeDocumentRef(self._db, self.path, doc_id or self._db.next_id())

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return datetime.now(dt_timezone.utc), ref


class FakeBatch:
    def __init__(self):
        self._ops = []

    def set(self, ref, data):
        self._ops.append(lambda: ref.set(data))

    def update(self, ref, data):
        self._ops.append(lambda: ref.update(data))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        for op in self._ops:
            op()
        self._ops = []


class FakeFirestore:
    def __init__(self):
        self.store = {}
        self._ids = itertools.count(1)

    def next_id(self):
        return f"doc{next(self._ids)}"

    def collection(self, path):
        return FakeCollection(self, path)

    def batch(self):
        return FakeBatch()

    # Test helpers

    def seed(self, collection, doc_id, data):
        self.store.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        return doc_id

    def docs(self, collection):
        return self.store.get(collection, {})

    def doc(self, collection, doc_id):
        return self.store.get(collection, {}).get(doc_id)


class FakePush:
    """Records multicasts; tokens listed in `unregistered` come back as dead."""

    def __init__(self, unregistered=(), error_code=None):
        self.sent = []
        self.unregistered = set(unregistered)
        self.error_code = error_code

    def is_configured(self):
        return self.error_code != "not_configured"

    def send_multicast(self, tokens, data, link=None):
        self.sent.append({"tokens": list(tokens), "data": dict(data), "link": link})
        if self.error_code:
            return PushResult(success=False, failure_count=len(tokens), error="failed", error_code=self.error_code)
        dead = [t for t in tokens if t in self.unregistered]
        ok = len(tokens) - len(dead)
        return PushResult(success=ok > 0, success_count=ok, failure_count=len(dead), unregistered_tokens=dead)


class RecordingNotifications:
    """Drop-in for NotificationService when a test only cares what was sent."""

    def __init__(self):
        self.user_calls = []
        self.admin_calls = []
        self.push_calls = []
        self.preferences = {}

    def notify_user(self, user_id, notification_type, data, now=None):
        self.user_calls.append((user_id, notification_type, data))
        return True

    def notify_admins_of(self, notification_type, data, now=None):
        self.admin_calls.append((notification_type, data))
        return 1

    def notify_admins(self, notification, check_preference=None, now=None):
        self.admin_calls.append((notification["type"], notification))
        return 1

    def send_push_notification(self, user_id, notification, now=None):
        self.push_calls.append((user_id, notification))
        return True

    def get_preferences(self, user_id):
        return self.preferences.get(user_id)
