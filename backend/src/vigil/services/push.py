"""Push notification delivery through Firebase Cloud Messaging."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from firebase_admin import messaging

from vigil.config import settings

logger = logging.getLogger(__name__)

DAILY_QUOTE_TITLE = "Your Daily Spiritual Message"
DAILY_QUOTE_CHANNEL_ID = "daily_quotes"


class PushError(Exception):
    """A push send failed; the device record should be kept."""


class TokenNotRegistered(PushError):
    """The provider permanently rejected the token; the device should be removed."""


@dataclass
class PushNotification:
    """Provider-neutral push payload."""

    token: str
    title: str
    body: str
    badge: int
    data: dict[str, str] = field(default_factory=dict)


def build_daily_quote_notification(
    token: str,
    quote: str,
    quote_id: str | None,
    badge_count: int,
    now: datetime,
) -> PushNotification:
    """Build the daily quote push carrying the post-increment badge count."""
    return PushNotification(
        token=token,
        title=DAILY_QUOTE_TITLE,
        body=quote,
        badge=badge_count,
        data={
            "type": "daily_quote",
            "quote": quote,
            "source": "scheduled",
            "timestamp": now.isoformat(),
            "quoteId": quote_id or "",
            "badgeCount": str(badge_count),
        },
    )


def to_fcm_message(notification: PushNotification) -> messaging.Message:
    """Translate to an FCM message with high-priority APNs and Android sections."""
    return messaging.Message(
        token=notification.token,
        notification=messaging.Notification(
            title=notification.title,
            body=notification.body,
        ),
        data=notification.data,
        apns=messaging.APNSConfig(
            headers={
                "apns-priority": "10",
                "apns-push-type": "alert",
            },
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    badge=notification.badge,
                    sound="default",
                    content_available=True,
                    mutable_content=True,
                ),
            ),
        ),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                sound="default",
                channel_id=DAILY_QUOTE_CHANNEL_ID,
                priority="high",
                default_sound=True,
                visibility="public",
            ),
        ),
    )


class PushSender(ABC):
    """Delivers a push notification and returns the provider message ID."""

    @abstractmethod
    async def send(self, notification: PushNotification) -> str:
        """Send one notification.

        Raises:
            TokenNotRegistered: the token is permanently invalid.
            PushError: any other delivery failure.
        """


class FcmPushSender(PushSender):
    """Firebase Cloud Messaging sender."""

    def __init__(self, app=None, timeout: float | None = None):
        self._app = app
        self.timeout = timeout if timeout is not None else settings.push_timeout_seconds

    def _get_app(self):
        if self._app is None:
            from vigil.firebase import get_firebase_app

            self._app = get_firebase_app()
        return self._app

    async def send(self, notification: PushNotification) -> str:
        message = to_fcm_message(notification)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(messaging.send, message, app=self._get_app()),
                timeout=self.timeout,
            )
        except messaging.UnregisteredError as e:
            raise TokenNotRegistered(str(e)) from e
        except asyncio.TimeoutError as e:
            raise PushError(f"Push send timed out after {self.timeout}s") from e
        except Exception as e:
            raise PushError(f"{type(e).__name__}: {e}") from e


# Singleton sender instance
_sender: PushSender | None = None


def get_push_sender() -> PushSender:
    """Get the singleton push sender."""
    global _sender
    if _sender is None:
        _sender = FcmPushSender()
    return _sender
