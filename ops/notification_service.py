"""
Notification persistence and delivery.

Preferences and FCM tokens live on the user document
(users/{uid}.notificationPreferences / .fcmTokens); every delivered or
pending notification gets a record in the notifications collection.
"""
import logging
from typing import Optional, Dict, Any, List, Callable

from django.utils import timezone

from .constants import (
    ADMIN_ROLES,
    NOTIFICATIONS_COLLECTION,
    NOTIFICATION_HISTORY_LIMIT,
)
from .firebase_service import FirestoreRepository, users_repository
from .notifications import (
    NOTIFICATION_CATEGORIES,
    NOTIFICATION_PRIORITIES,
    deep_merge,
    get_default_preferences,
    get_notification_template,
    is_in_quiet_hours,
    is_notification_enabled,
    should_deliver,
)
from .push_service import fcm_service

logger = logging.getLogger("ops")

UNREAD_STATUSES = ["sent", "delivered"]


def build_notification(notification_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Notification payload (type, category, priority, title, body, data) from the template."""
    template = get_notification_template(notification_type, data)
    payload = {k: str(v) for k, v in (data or {}).items() if v is not None}
    payload["actionUrl"] = template["actionUrl"]
    return {
        "type": notification_type,
        "category": NOTIFICATION_CATEGORIES[notification_type],
        "priority": NOTIFICATION_PRIORITIES[notification_type],
        "title": template["title"],
        "body": template["body"],
        "data": payload,
    }


def _related_entity(data: Dict[str, Any]) -> Optional[Dict[str, str]]:
    if data.get("entityType") and data.get("entityId"):
        return {"type": data["entityType"], "id": data["entityId"]}
    return None


class NotificationService(FirestoreRepository):
    collection_name = NOTIFICATIONS_COLLECTION

    def __init__(self, db=None, push=None):
        super().__init__(db=db)
        self.users = FirestoreRepository(users_repository.collection_name, db=db)
        self.push = push or fcm_service

    # =========================================================================
    # Preferences
    # =========================================================================

    def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        user = self.users.get(user_id)
        if user is None:
            return None
        return user.get("notificationPreferences")

    def initialize_preferences(self, user_id: str, role: str) -> Optional[Dict[str, Any]]:
        preferences = get_default_preferences(role)
        if self.users.update(user_id, {"notificationPreferences": preferences}) is None:
            return None
        return preferences

    def update_preferences(self, user_id: str, partial: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        user = self.users.get(user_id)
        if user is None:
            return None
        merged = deep_merge(user.get("notificationPreferences") or {}, partial)
        if self.users.update(user_id, {"notificationPreferences": merged}) is None:
            return None
        return merged

    def toggle_setting(self, user_id: str, category: str, setting: str, value: bool) -> bool:
        updated = self.users.update(user_id, {f"notificationPreferences.{category}.{setting}": bool(value)})
        return updated is not None

    def toggle_push(self, user_id: str, enabled: bool) -> bool:
        updated = self.users.update(user_id, {"notificationPreferences.pushEnabled": bool(enabled)})
        return updated is not None

    def update_quiet_hours(self, user_id: str, quiet_hours: Dict[str, Any]) -> bool:
        updates = {
            f"notificationPreferences.quietHours.{key}": quiet_hours[key]
            for key in ("enabled", "start", "end")
            if quiet_hours.get(key) is not None
        }
        if not updates:
            return False
        return self.users.update(user_id, updates) is not None

    # =========================================================================
    # FCM tokens
    # =========================================================================

    def get_fcm_tokens(self, user_id: str) -> List[Dict[str, Any]]:
        user = self.users.get(user_id)
        if user is None:
            return []
        return list(user.get("fcmTokens") or [])

    def save_fcm_token(self, user_id: str, token: str, device: str = "desktop", browser: str = "unknown") -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False

        now = timezone.now()
        tokens = list(user.get("fcmTokens") or [])
        for entry in tokens:
            if entry.get("token") == token:
                entry["lastUsedAt"] = now
                break
        else:
            tokens.append({
                "token": token,
                "device": device,
                "browser": browser,
                "createdAt": now,
                "lastUsedAt": now,
            })
        return self.users.update(user_id, {"fcmTokens": tokens}) is not None

    def remove_fcm_token(self, user_id: str, token: str) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        tokens = user.get("fcmTokens") or []
        remaining = [entry for entry in tokens if entry.get("token") != token]
        if len(remaining) == len(tokens):
            return False
        return self.users.update(user_id, {"fcmTokens": remaining}) is not None

    # =========================================================================
    # History
    # =========================================================================

    def get_history(self, user_id: str, limit: int = NOTIFICATION_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        return self.list(
            filters=[("userId", "==", user_id)],
            order_by="createdAt",
            limit=limit,
        )

    def mark_read(self, notification_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        record = self.get(notification_id)
        if record is None:
            return None
        if user_id and record.get("userId") != user_id:
            logger.warning(f"[NOTIFICATIONS] {user_id} tried to read {notification_id}")
            return None
        return self.update(notification_id, {"status": "read", "readAt": timezone.now()})

    def mark_all_read(self, user_id: str) -> int:
        if not self.db:
            return 0

        try:
            query = (
                self.collection()
                .where("userId", "==", user_id)
                .where("status", "in", UNREAD_STATUSES)
            )
            docs = list(query.stream())
            if not docs:
                return 0

            now = timezone.now()
            batch = self.db.batch()
            for doc in docs:
                batch.update(doc.reference, {"status": "read", "readAt": now})
            batch.commit()
            logger.info(f"[NOTIFICATIONS] Marked {len(docs)} read for {user_id}")
            return len(docs)
        except Exception as e:
            logger.error(f"Error marking notifications read for {user_id}: {e}")
            return 0

    def unread_count(self, user_id: str) -> int:
        return len(self.list(filters=[
            ("userId", "==", user_id),
            ("status", "in", UNREAD_STATUSES),
        ]))

    # =========================================================================
    # Creation and delivery
    # =========================================================================

    def create_notification(self, user_id: str, notification_type: str, data: Dict[str, Any], now=None) -> Optional[str]:
        """Store a pending notification from its template; None when the user would not receive it."""
        user = self.users.get(user_id)
        if user is None:
            logger.warning(f"[NOTIFICATIONS] User not found: {user_id}")
            return None

        preferences = user.get("notificationPreferences")
        if not should_deliver(preferences, notification_type, now):
            logger.info(f"[NOTIFICATIONS] {notification_type} suppressed for {user_id}")
            return None

        template = get_notification_template(notification_type, data)
        record = {
            "userId": user_id,
            "type": notification_type,
            "category": NOTIFICATION_CATEGORIES[notification_type],
            "priority": NOTIFICATION_PRIORITIES[notification_type],
            "title": template["title"],
            "body": template["body"],
            "actionUrl": template["actionUrl"],
            "status": "pending",
            "channels": {"push": {"sent": False}, "email": {"sent": False}},
        }
        related = _related_entity(data or {})
        if related:
            record["relatedEntity"] = related

        created = self.create(record)
        return created["id"] if created else None

    def send_push_notification(self, user_id: str, notification: Dict[str, Any], now=None) -> bool:
        """
        Deliver a notification to every registered device of a user.

        The record is logged before sending and updated with the FCM result;
        tokens FCM reports as unregistered are removed from the user.
        """
        user = self.users.get(user_id)
        if user is None:
            logger.info(f"[PUSH] User {user_id} not found")
            return False

        preferences = user.get("notificationPreferences") or {}
        if not preferences.get("pushEnabled"):
            logger.info(f"[PUSH] Push disabled for user {user_id}")
            return False

        if notification["priority"] != "urgent" and is_in_quiet_hours(preferences.get("quietHours"), now):
            logger.info(f"[PUSH] Quiet hours for user {user_id}, skipping {notification['type']}")
            return False

        tokens = [entry["token"] for entry in user.get("fcmTokens") or [] if entry.get("token")]
        if not tokens:
            logger.info(f"[PUSH] No FCM tokens for user {user_id}")
            return False

        data = notification.get("data") or {}
        record = {
            "userId": user_id,
            "type": notification["type"],
            "category": notification["category"],
            "priority": notification["priority"],
            "title": notification["title"],
            "body": notification["body"],
            "status": "pending",
            "channels": {"push": {"sent": False}, "email": {"sent": False}},
        }
        if data.get("actionUrl"):
            record["actionUrl"] = data["actionUrl"]
        related = _related_entity(data)
        if related:
            record["relatedEntity"] = related

        created = self.create(record)
        if created is None:
            return False

        payload = {
            "type": notification["type"],
            "priority": notification["priority"],
            "title": notification["title"],
            "body": notification["body"],
            "notificationId": created["id"],
            **data,
        }
        result = self.push.send_multicast(tokens, payload, link=data.get("actionUrl"))

        if result.error_code in ("not_configured", "exception"):
            self.update(created["id"], {
                "status": "failed",
                "channels.push.sent": False,
                "channels.push.error": result.error,
            })
            return False

        self.update(created["id"], {
            "status": "sent",
            "sentAt": timezone.now(),
            "channels.push.sent": True,
            "channels.push.successCount": result.success_count,
            "channels.push.failureCount": result.failure_count,
        })
        logger.info(
            f"[PUSH] {notification['type']} to {user_id}: "
            f"{result.success_count} success, {result.failure_count} failed"
        )

        if result.unregistered_tokens:
            remaining = [
                entry for entry in user.get("fcmTokens") or []
                if entry.get("token") not in result.unregistered_tokens
            ]
            self.users.update(user_id, {"fcmTokens": remaining})
            logger.info(f"[PUSH] Removed {len(result.unregistered_tokens)} invalid tokens for {user_id}")

        return result.success

    def notify_user(self, user_id: Optional[str], notification_type: str, data: Dict[str, Any], now=None) -> bool:
        """Template a notification and push it if the user's preferences allow the type."""
        if not user_id:
            return False
        preferences = self.get_preferences(user_id)
        if preferences and not is_notification_enabled(preferences, notification_type):
            logger.info(f"[PUSH] {notification_type} disabled for {user_id}")
            return False
        return self.send_push_notification(user_id, build_notification(notification_type, data), now)

    def notify_admins(
        self,
        notification: Dict[str, Any],
        check_preference: Optional[Callable[[Dict[str, Any]], bool]] = None,
        now=None,
    ) -> int:
        """Push to every active owner/admin; returns how many deliveries succeeded."""
        admins = self.users.list(filters=[
            ("role", "in", list(ADMIN_ROLES)),
            ("status", "==", "active"),
        ])
        sent = 0
        for admin in admins:
            preferences = admin.get("notificationPreferences")
            if check_preference and preferences and not check_preference(preferences):
                continue
            if self.send_push_notification(admin["id"], notification, now):
                sent += 1
        return sent

    def notify_admins_of(self, notification_type: str, data: Dict[str, Any], now=None) -> int:
        """notify_admins with the type's own preference as the gate."""
        return self.notify_admins(
            build_notification(notification_type, data),
            check_preference=lambda prefs: is_notification_enabled(prefs, notification_type),
            now=now,
        )


notification_service = NotificationService()
