"""Tests for push payload construction and the FCM sender."""

from datetime import datetime, timezone

import pytest
from firebase_admin import messaging
from vigil.services.push import (
    DAILY_QUOTE_TITLE,
    FcmPushSender,
    PushError,
    TokenNotRegistered,
    build_daily_quote_notification,
    to_fcm_message,
)

NOW = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)


def make_notification(quote_id: str | None = "q-1"):
    return build_daily_quote_notification(
        token="token-abc", quote="Be still.", quote_id=quote_id, badge_count=3, now=NOW
    )


class TestBuildNotification:
    """Test the provider-neutral payload."""

    def test_fields(self):
        notification = make_notification()
        assert notification.title == DAILY_QUOTE_TITLE
        assert notification.body == "Be still."
        assert notification.badge == 3
        assert notification.data == {
            "type": "daily_quote",
            "quote": "Be still.",
            "source": "scheduled",
            "timestamp": NOW.isoformat(),
            "quoteId": "q-1",
            "badgeCount": "3",
        }

    def test_missing_quote_id(self):
        assert make_notification(quote_id=None).data["quoteId"] == ""


class TestToFcmMessage:
    """Test translation to an FCM message."""

    def test_apns_section(self):
        message = to_fcm_message(make_notification())
        assert message.token == "token-abc"
        assert message.apns.headers == {"apns-priority": "10", "apns-push-type": "alert"}
        aps = message.apns.payload.aps
        assert aps.badge == 3
        assert aps.sound == "default"
        assert aps.content_available is True
        assert aps.mutable_content is True

    def test_android_section(self):
        message = to_fcm_message(make_notification())
        assert message.android.priority == "high"
        assert message.android.notification.channel_id == "daily_quotes"
        assert message.android.notification.sound == "default"

    def test_data_values_are_strings(self):
        message = to_fcm_message(make_notification())
        assert all(isinstance(v, str) for v in message.data.values())


class TestFcmPushSender:
    """Test FCM error mapping."""

    @pytest.mark.asyncio
    async def test_success_returns_message_id(self, monkeypatch):
        monkeypatch.setattr(messaging, "send", lambda message, app=None: "projects/p/messages/1")
        sender = FcmPushSender(app=object(), timeout=5)

        assert await sender.send(make_notification()) == "projects/p/messages/1"

    @pytest.mark.asyncio
    async def test_unregistered_token(self, monkeypatch):
        def reject(message, app=None):
            raise messaging.UnregisteredError("Requested entity was not found.")

        monkeypatch.setattr(messaging, "send", reject)
        sender = FcmPushSender(app=object(), timeout=5)

        with pytest.raises(TokenNotRegistered):
            await sender.send(make_notification())

    @pytest.mark.asyncio
    async def test_other_errors(self, monkeypatch):
        def fail(message, app=None):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(messaging, "send", fail)
        sender = FcmPushSender(app=object(), timeout=5)

        with pytest.raises(PushError) as exc_info:
            await sender.send(make_notification())
        assert not isinstance(exc_info.value, TokenNotRegistered)
