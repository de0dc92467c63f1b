"""In-process store for local development and tests."""

import asyncio
import copy
from datetime import date, datetime, timezone
from typing import Any

from vigil_models import (
    Conversation,
    CustomerRecord,
    DailyQuote,
    Device,
    DeviceRegistration,
    QuoteChannel,
    UserProfile,
)
from vigil.db.base import DeviceNotFound, Store, sent_on_day

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class MemoryStore(Store):
    """Dictionary-backed store. Every mutation runs under one asyncio lock."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self.users: dict[str, UserProfile] = {}
        self.customers: dict[str, CustomerRecord] = {}
        self.conversations: dict[tuple[str, str], Conversation] = {}
        self.devices: dict[tuple[str, str], Device] = {}
        self.quotes: dict[str, list[DailyQuote]] = {}

    # ============= Users =============

    async def list_user_ids(self) -> list[str]:
        return list(self.users)

    async def get_user(self, user_id: str) -> UserProfile | None:
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def ensure_user(self, user_id: str, email: str | None = None) -> None:
        async with self._lock:
            user = self.users.setdefault(user_id, UserProfile(id=user_id))
            if email and not user.email:
                user.email = email

    async def increment_message_count(self, user_id: str, now: datetime) -> None:
        async with self._lock:
            user = self.users.setdefault(user_id, UserProfile(id=user_id))
            user.message_count += 1
            user.last_active = now

    async def get_customer(self, user_id: str) -> CustomerRecord | None:
        customer = self.customers.get(user_id)
        return customer.model_copy(deep=True) if customer else None

    # ============= Conversations =============

    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation | None:
        conversation = self.conversations.get((user_id, conversation_id))
        return conversation.model_copy(deep=True) if conversation else None

    async def save_conversation_messages(
        self,
        user_id: str,
        conversation_id: str,
        messages: list[dict[str, Any]],
        now: datetime,
    ) -> None:
        async with self._lock:
            self.conversations[(user_id, conversation_id)] = Conversation.from_document(
                conversation_id, user_id, copy.deepcopy(messages), now
            )

    async def list_conversations(self, user_id: str, limit: int) -> list[Conversation]:
        owned = [c for (uid, _), c in self.conversations.items() if uid == user_id]
        owned.sort(key=lambda c: c.last_updated or _EPOCH, reverse=True)
        return [c.model_copy(deep=True) for c in owned[:limit]]

    # ============= Devices =============

    async def list_enabled_devices(self, user_id: str) -> list[Device]:
        return [
            d.model_copy()
            for (uid, _), d in self.devices.items()
            if uid == user_id and d.notifications_enabled
        ]

    async def get_device(self, user_id: str, token: str) -> Device | None:
        device = self.devices.get((user_id, token))
        return device.model_copy() if device else None

    async def upsert_device(
        self, user_id: str, registration: DeviceRegistration, now: datetime
    ) -> Device:
        async with self._lock:
            self.users.setdefault(user_id, UserProfile(id=user_id))
            key = (user_id, registration.token)
            existing = self.devices.get(key)
            device = Device(
                token=registration.token,
                user_id=user_id,
                platform=registration.platform,
                device_id=registration.device_id,
                device_model=registration.device_model,
                notifications_enabled=registration.notifications_enabled,
                time_zone=registration.time_zone,
                time_zone_offset=registration.time_zone_offset,
                badge_count=0,
                last_notified=existing.last_notified if existing else None,
                last_updated=now,
            )
            self.devices[key] = device
            return device.model_copy()

    async def delete_device(self, user_id: str, token: str) -> None:
        async with self._lock:
            self.devices.pop((user_id, token), None)

    async def delete_sibling_devices(
        self, user_id: str, platform: str, device_id: str, keep_token: str
    ) -> int:
        async with self._lock:
            stale = [
                key
                for key, d in self.devices.items()
                if key[0] == user_id
                and d.platform == platform
                and d.device_id == device_id
                and d.token != keep_token
            ]
            for key in stale:
                del self.devices[key]
            return len(stale)

    async def increment_badge_count(self, user_id: str, token: str, now: datetime) -> None:
        async with self._lock:
            device = self.devices.get((user_id, token))
            if device is None:
                raise DeviceNotFound(f"users/{user_id}/devices/{token}")
            device.badge_count += 1
            device.last_notified = now
            device.last_updated = now

    async def set_badge_count(self, user_id: str, token: str, count: int, now: datetime) -> None:
        async with self._lock:
            device = self.devices.get((user_id, token))
            if device is None:
                raise DeviceNotFound(f"users/{user_id}/devices/{token}")
            device.badge_count = count
            device.last_updated = now

    # ============= Daily quotes =============

    async def latest_daily_quote(
        self, user_id: str, sent_via: QuoteChannel
    ) -> DailyQuote | None:
        matching = [q for q in self.quotes.get(user_id, []) if q.sent_via == sent_via]
        if not matching:
            return None
        return max(matching, key=lambda q: q.timestamp).model_copy()

    async def add_daily_quote(self, quote: DailyQuote) -> DailyQuote:
        async with self._lock:
            self.quotes.setdefault(quote.user_id, []).append(quote.model_copy())
        return quote

    async def add_daily_quote_if_not_sent(
        self, quote: DailyQuote, local_day: date
    ) -> DailyQuote | None:
        async with self._lock:
            history = self.quotes.setdefault(quote.user_id, [])
            matching = [q for q in history if q.sent_via == quote.sent_via]
            latest = max(matching, key=lambda q: q.timestamp) if matching else None
            if sent_on_day(latest, local_day):
                return None
            history.append(quote.model_copy())
        return quote

    async def list_daily_quotes(self, user_id: str, limit: int) -> list[DailyQuote]:
        history = sorted(self.quotes.get(user_id, []), key=lambda q: q.timestamp, reverse=True)
        return [q.model_copy() for q in history[:limit]]

    async def set_quote_favorite(
        self, user_id: str, quote_id: str, is_favorite: bool
    ) -> DailyQuote | None:
        async with self._lock:
            for quote in self.quotes.get(user_id, []):
                if quote.id == quote_id:
                    quote.is_favorite = is_favorite
                    return quote.model_copy()
        return None
