"""
Push notification transport: Firebase Cloud Messaging via the Admin SDK.

The dashboard registers web-push tokens per user; every send is a multicast
to all of a user's tokens.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from .constants import UNREGISTERED_TOKEN_ERROR

logger = logging.getLogger("ops")

DEFAULT_LINK = "/overview"


@dataclass
class PushResult:
    """Result of a push notification attempt"""
    success: bool
    success_count: int = 0
    failure_count: int = 0
    unregistered_tokens: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None


class FCMService:
    """
    Firebase Cloud Messaging service.
    Uses Firebase Admin SDK for sending messages.
    """

    def __init__(self):
        self._messaging = None

    def _get_messaging(self):
        """Get Firebase messaging module (lazy initialization)"""
        if self._messaging is not None:
            return self._messaging

        try:
            from firebase_admin import messaging
            from .firebase_service import get_firebase_app

            app = get_firebase_app()
            if app is not None:
                self._messaging = messaging
                logger.info("[FCM] Firebase messaging initialized")
            else:
                logger.warning("[FCM] Firebase app not initialized")

        except ImportError as e:
            logger.error(f"[FCM] Firebase Admin SDK not installed: {e}")
        except Exception as e:
            logger.error(f"[FCM] Initialization error: {e}")

        return self._messaging

    def is_configured(self) -> bool:
        """Check if FCM is properly configured"""
        return self._get_messaging() is not None

    def send_multicast(
        self,
        tokens: List[str],
        data: Dict[str, Any],
        link: Optional[str] = None,
    ) -> PushResult:
        """
        Send one data message to every token.

        Args:
            tokens: FCM registration tokens
            data: Data payload (values are coerced to strings)
            link: Page the web client opens when the notification is clicked

        Returns:
            PushResult with per-token counts and the tokens FCM reported as
            no longer registered
        """
        if not tokens:
            return PushResult(success=False, error="No tokens", error_code="missing_token")

        messaging = self._get_messaging()
        if messaging is None:
            return PushResult(
                success=False,
                failure_count=len(tokens),
                error="FCM not configured",
                error_code="not_configured",
            )

        # FCM data values must be strings
        string_data = {k: str(v) for k, v in data.items() if v is not None}

        try:
            message = messaging.MulticastMessage(
                tokens=list(tokens),
                data=string_data,
                webpush=messaging.WebpushConfig(
                    fcm_options=messaging.WebpushFCMOptions(link=link or DEFAULT_LINK),
                ),
            )
            response = messaging.send_each_for_multicast(message)
        except Exception as e:
            logger.error(f"[FCM] Send error: {e}")
            return PushResult(
                success=False,
                failure_count=len(tokens),
                error=str(e),
                error_code="exception",
            )

        unregistered = []
        for token, resp in zip(tokens, response.responses):
            if resp.success:
                continue
            code = getattr(resp.exception, "code", "") or ""
            if isinstance(resp.exception, messaging.UnregisteredError) or UNREGISTERED_TOKEN_ERROR in str(code):
                unregistered.append(token)

        logger.info(
            f"[FCM] Multicast sent: {response.success_count} success, "
            f"{response.failure_count} failed, {len(unregistered)} unregistered"
        )
        return PushResult(
            success=response.success_count > 0,
            success_count=response.success_count,
            failure_count=response.failure_count,
            unregistered_tokens=unregistered,
        )


# Singleton instance
fcm_service = FCMService()
