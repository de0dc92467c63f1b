"""Abstract store used by the chat and notification services."""

from abc import ABC, abstractmethod
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


class DeviceNotFound(LookupError):
    """Raised when a device record required by an update does not exist."""


def sent_on_day(quote: DailyQuote | None, day: date) -> bool:
    """True if ``quote`` was stored on ``day``, comparing its UTC calendar date.

    ``day`` is the user's local date while the stored timestamp is read in
    UTC, so for users far from UTC the day boundary is off by their offset.
    """
    if quote is None:
        return False
    stamp = quote.timestamp
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp.astimezone(timezone.utc).date() == day


class Store(ABC):
    """Key-addressable store with atomic counters and merge writes."""

    async def connect(self) -> None:
        """Open any underlying resources."""

    async def disconnect(self) -> None:
        """Release any underlying resources."""

    async def ensure_tables_exist(self) -> None:
        """Create schema if the backend needs one."""

    # ============= Users =============

    @abstractmethod
    async def list_user_ids(self) -> list[str]:
        """Enumerate every user in default store order."""

    @abstractmethod
    async def get_user(self, user_id: str) -> UserProfile | None: ...

    @abstractmethod
    async def ensure_user(self, user_id: str, email: str | None = None) -> None:
        """Create the user record if absent; never overwrites counters."""

    @abstractmethod
    async def increment_message_count(self, user_id: str, now: datetime) -> None:
        """Atomically add one to the message counter and set last-active."""

    @abstractmethod
    async def get_customer(self, user_id: str) -> CustomerRecord | None: ...

    # ============= Conversations =============

    @abstractmethod
    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation | None: ...

    @abstractmethod
    async def save_conversation_messages(
        self,
        user_id: str,
        conversation_id: str,
        messages: list[dict[str, Any]],
        now: datetime,
    ) -> None:
        """Merge-write the message documents and last-updated timestamp.

        ``messages`` replaces the stored sequence as-is, including entries
        the reader could not parse.
        """

    @abstractmethod
    async def list_conversations(self, user_id: str, limit: int) -> list[Conversation]:
        """Most recent conversations first, by last-updated."""

    # ============= Devices =============

    @abstractmethod
    async def list_enabled_devices(self, user_id: str) -> list[Device]: ...

    @abstractmethod
    async def get_device(self, user_id: str, token: str) -> Device | None: ...

    @abstractmethod
    async def upsert_device(
        self, user_id: str, registration: DeviceRegistration, now: datetime
    ) -> Device:
        """Create or refresh a device record, resetting its badge to zero."""

    @abstractmethod
    async def delete_device(self, user_id: str, token: str) -> None: ...

    @abstractmethod
    async def delete_sibling_devices(
        self, user_id: str, platform: str, device_id: str, keep_token: str
    ) -> int:
        """Delete stale tokens registered by the same hardware."""

    @abstractmethod
    async def increment_badge_count(self, user_id: str, token: str, now: datetime) -> None:
        """Atomically add one to the badge; raises DeviceNotFound."""

    @abstractmethod
    async def set_badge_count(self, user_id: str, token: str, count: int, now: datetime) -> None:
        """Overwrite the badge; raises DeviceNotFound."""

    # ============= Daily quotes =============

    @abstractmethod
    async def latest_daily_quote(
        self, user_id: str, sent_via: QuoteChannel
    ) -> DailyQuote | None: ...

    @abstractmethod
    async def add_daily_quote(self, quote: DailyQuote) -> DailyQuote: ...

    @abstractmethod
    async def add_daily_quote_if_not_sent(
        self, quote: DailyQuote, local_day: date
    ) -> DailyQuote | None:
        """Append ``quote`` unless one on the same channel was sent on ``local_day``.

        The check and the write happen atomically per user. Returns None when
        another writer already recorded a quote for that day.
        """

    @abstractmethod
    async def list_daily_quotes(self, user_id: str, limit: int) -> list[DailyQuote]: ...

    @abstractmethod
    async def set_quote_favorite(
        self, user_id: str, quote_id: str, is_favorite: bool
    ) -> DailyQuote | None: ...
