"""
Firebase service - Firestore integration for the KeyHub operations data.

Every business document (jobs, leads, contractors, invoices, payouts,
partners, labor requests, partner tickets, notifications) lives in its own
top-level Firestore collection. FirestoreRepository wraps one collection
with the small set of reads and writes the rest of the app needs.
"""
import os
import json
import logging
from typing import Optional, Dict, Any, List, Tuple

from django.utils import timezone

from .constants import USERS_COLLECTION

logger = logging.getLogger("ops")

# Firebase Admin initialization
_firebase_app = None
_firestore_client = None
_firebase_init_attempted = False

DESCENDING = "DESCENDING"
ASCENDING = "ASCENDING"


def _service_account_credentials(credentials):
    """Credentials from FIREBASE_SERVICE_ACCOUNT (JSON) or FIREBASE_SERVICE_ACCOUNT_PATH."""
    service_account_json = os.environ.get("FIREBASE_SERVICE_ACCOUNT")
    if service_account_json:
        try:
            return credentials.Certificate(json.loads(service_account_json))
        except json.JSONDecodeError as e:
            logger.error(f"[FIREBASE] Invalid FIREBASE_SERVICE_ACCOUNT JSON: {e}")
            return None

    service_account_path = os.environ.get("FIREBASE_SERVICE_ACCOUNT_PATH")
    if service_account_path and os.path.exists(service_account_path):
        return credentials.Certificate(service_account_path)
    return None


def get_firebase_app():
    """The Firebase Admin app, initialized on first use; None when it cannot be."""
    global _firebase_app, _firebase_init_attempted

    if _firebase_app is not None or _firebase_init_attempted:
        return _firebase_app
    _firebase_init_attempted = True

    import firebase_admin
    from firebase_admin import credentials

    if os.environ.get("FIREBASE_USE_EMULATOR", "false").lower() == "true":
        os.environ.setdefault("FIRESTORE_EMULATOR_HOST", "localhost:8080")
        cred = None
        options = {"projectId": os.environ.get("FIREBASE_PROJECT_ID") or "demo-project"}
    else:
        cred = _service_account_credentials(credentials)
        options = None
        if cred is None:
            logger.warning("[FIREBASE] No service account configured; Firestore is unavailable")
            return None

    try:
        _firebase_app = firebase_admin.initialize_app(cred, options)
    except ValueError:
        # Default app already exists in this process
        _firebase_app = firebase_admin.get_app()
    except Exception as e:
        logger.error(f"[FIREBASE] Init failed: {e}")
        return None

    target = os.environ.get("FIRESTORE_EMULATOR_HOST") if cred is None else "production"
    logger.info(f"[FIREBASE] Admin app ready ({target})")
    return _firebase_app


def get_firestore():
    """Shared Firestore client, or None while Firebase is not configured."""
    global _firestore_client

    if _firestore_client is None and get_firebase_app() is not None:
        from firebase_admin import firestore
        try:
            _firestore_client = firestore.client()
        except Exception as e:
            logger.error(f"[FIREBASE] Firestore client unavailable: {e}")
    return _firestore_client


def get_auth():
    """Get the firebase_admin.auth module once the app is initialized."""
    if get_firebase_app() is None:
        return None
    from firebase_admin import auth
    return auth


def snapshot_to_dict(doc) -> Dict[str, Any]:
    data = doc.to_dict() or {}
    data["id"] = doc.id
    return data


def _set_path(data: Dict[str, Any], dotted_key: str, value: Any) -> None:
    parts = dotted_key.split(".")
    target = data
    for part in parts[:-1]:
        nested = target.get(part)
        if not isinstance(nested, dict):
            nested = {}
            target[part] = nested
        target = nested
    target[parts[-1]] = value


def apply_updates(data: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a Firestore-style update (dotted keys address nested fields) to a plain dict."""
    result = dict(data)
    for key, value in updates.items():
        _set_path(result, key, value)
    return result


class FirestoreRepository:
    """Read/write helpers bound to a single Firestore collection."""

    collection_name: str = ""

    def __init__(self, collection_name: Optional[str] = None, db=None):
        if collection_name:
            self.collection_name = collection_name
        self._db = db

    @property
    def db(self):
        """Lazy Firestore client; an injected client wins over the global one."""
        if self._db is not None:
            return self._db
        return get_firestore()

    def is_available(self) -> bool:
        """Check if Firestore is available"""
        return self.db is not None

    def collection(self):
        return self.db.collection(self.collection_name)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        if not self.db or not doc_id:
            return None

        try:
            doc = self.collection().document(doc_id).get()
            if doc.exists:
                return snapshot_to_dict(doc)
            return None
        except Exception as e:
            logger.error(f"Error getting {self.collection_name}/{doc_id}: {e}")
            return None

    def list(
        self,
        filters: Optional[List[Tuple[str, str, Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query the collection.

        filters is a list of (field, op, value) tuples passed straight to
        Firestore's where(), e.g. ("status", "==", "active").
        """
        if not self.db:
            logger.warning("Firestore not available")
            return []

        try:
            query = self.collection()
            for field, op, value in filters or []:
                query = query.where(field, op, value)
            if order_by:
                query = query.order_by(order_by, direction=DESCENDING if descending else ASCENDING)
            if limit:
                query = query.limit(limit)
            return [snapshot_to_dict(doc) for doc in query.stream()]
        except Exception as e:
            logger.error(f"Error querying {self.collection_name}: {e}")
            return []

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, data: Dict[str, Any], doc_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if not self.db:
            logger.warning("Firestore not available")
            return None

        try:
            now = timezone.now()
            record = {**data, "createdAt": now, "updatedAt": now}
            doc_ref = self.collection().document(doc_id) if doc_id else self.collection().document()
            doc_ref.set(record)
            record["id"] = doc_ref.id
            logger.info(f"Created {self.collection_name}/{doc_ref.id}")
            return record
        except Exception as e:
            logger.error(f"Error creating {self.collection_name} document: {e}")
            return None

    def update(self, doc_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update fields (dotted paths allowed) and return the updated document."""
        if not self.db:
            return None

        try:
            doc_ref = self.collection().document(doc_id)
            doc = doc_ref.get()
            if not doc.exists:
                logger.warning(f"{self.collection_name} document not found: {doc_id}")
                return None

            doc_ref.update({**data, "updatedAt": timezone.now()})
            return snapshot_to_dict(doc_ref.get())
        except Exception as e:
            logger.error(f"Error updating {self.collection_name}/{doc_id}: {e}")
            return None

    def delete(self, doc_id: str) -> bool:
        if not self.db:
            return False

        try:
            self.collection().document(doc_id).delete()
            logger.info(f"Deleted {self.collection_name}/{doc_id}")
            return True
        except Exception as e:
            logger.error(f"Error deleting {self.collection_name}/{doc_id}: {e}")
            return False

    def append_status(
        self,
        doc_id: str,
        status: str,
        changed_by: str,
        notes: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Set status and append a statusHistory entry in one update."""
        current = self.get(doc_id)
        if current is None:
            return None

        change = {
            "status": status,
            "changedAt": timezone.now(),
            "changedBy": changed_by,
            "notes": notes or None,
        }
        history = list(current.get("statusHistory") or [])
        history.append(change)

        updates = {"status": status, "statusHistory": history}
        updates.update(extra or {})
        return self.update(doc_id, updates)

    def next_sequence_number(self, prefix: str, field: str) -> str:
        """
        Next PREFIX-YYYY-NNNN identifier: one past the highest number with
        this prefix and year already stored in `field`.
        """
        year = timezone.now().year
        pattern = f"{prefix}-{year}-"
        max_number = 0
        for doc in self.list(order_by="createdAt"):
            value = doc.get(field) or ""
            if not value.startswith(pattern):
                continue
            try:
                number = int(value.split("-")[2])
            except (IndexError, ValueError):
                continue
            max_number = max(max_number, number)
        return f"{pattern}{max_number + 1:04d}"


users_repository = FirestoreRepository(USERS_COLLECTION)
