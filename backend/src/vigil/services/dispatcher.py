"""Daily quote notification dispatcher.

Runs once per UTC hour. For every user with notification-enabled devices it
decides whether the user's local hour falls in a send window, makes sure the
user has not already received a quote today, generates a (personalized when
possible) quote, records it, bumps each device's badge and pushes the quote.

Failures are isolated per user and per device. Only failing to enumerate
users aborts a run.

Deployment invariant: a run finishes well within an hour. With
``strict_dedup`` the quote record is written through a per-user conditional
write, so overlapping runs still send at most one quote per user per day.
Without it, dedup is a plain read followed by a write.
"""

import logging
import random
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Sequence

from vigil_models import Conversation, DailyQuote, Device, QuoteChannel
from vigil.config import settings
from vigil.db import Store, sent_on_day
from vigil.services.push import (
    PushSender,
    TokenNotRegistered,
    build_daily_quote_notification,
)
from vigil.services.quotes import QuoteGenerator

logger = logging.getLogger(__name__)

# Local-hour send windows, inclusive
PRIMARY_WINDOW = (7, 9)
SECONDARY_WINDOW = (18, 20)

# Used only if quote generation itself raises
DEFAULT_QUOTE = "May your day be filled with peace and spiritual connection."

PERSONALIZATION_CONVERSATIONS = 3
PERSONALIZATION_MESSAGES = 5


def resolve_offset(devices: Sequence[Device]) -> int | None:
    """UTC offset of the first device that reports one, in iteration order."""
    for device in devices:
        if device.time_zone_offset is not None:
            return device.time_zone_offset
    return None


def local_hour(utc_hour: int, offset: int) -> int:
    return (utc_hour + offset + 24) % 24


def in_send_window(hour: int) -> bool:
    return any(start <= hour <= end for start, end in (PRIMARY_WINDOW, SECONDARY_WINDOW))


def local_date(now: datetime, offset: int) -> date:
    """Calendar date at ``now`` shifted by a whole-hour UTC offset."""
    return (now.astimezone(timezone.utc) + timedelta(hours=offset)).date()


def collect_user_messages(
    conversations: Sequence[Conversation], limit: int = PERSONALIZATION_MESSAGES
) -> list[str]:
    """First ``limit`` user-authored messages, conversation recency then message order."""
    collected: list[str] = []
    for conversation in conversations:
        collected.extend(conversation.user_messages())
    return collected[:limit]


class UserOutcome(str, Enum):
    """What happened to one user in a run."""

    NO_DEVICES = "no_devices"
    OUTSIDE_WINDOW = "outside_window"
    RANDOMIZED = "randomized"
    ALREADY_SENT = "already_sent"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class UserDispatchResult:
    """Per-user outcome and device tallies."""

    user_id: str
    outcome: UserOutcome
    local_hour: int | None = None
    devices: int = 0
    successes: int = 0
    failures: int = 0
    tokens_removed: int = 0
    quote_id: str | None = None


@dataclass
class DispatchStats:
    """Aggregate counters for one run."""

    users_total: int = 0
    users_notified: int = 0
    devices_processed: int = 0
    success_count: int = 0
    failure_count: int = 0
    tokens_removed: int = 0
    skipped_no_devices: int = 0
    skipped_timezone: int = 0
    skipped_randomized: int = 0
    skipped_already_sent: int = 0
    user_errors: int = 0

    def record(self, result: UserDispatchResult) -> None:
        if result.outcome == UserOutcome.NO_DEVICES:
            self.skipped_no_devices += 1
        elif result.outcome == UserOutcome.OUTSIDE_WINDOW:
            self.skipped_timezone += 1
        elif result.outcome == UserOutcome.RANDOMIZED:
            self.skipped_randomized += 1
        elif result.outcome == UserOutcome.ALREADY_SENT:
            self.skipped_already_sent += 1
        elif result.outcome == UserOutcome.FAILED:
            self.user_errors += 1
        elif result.outcome == UserOutcome.SENT:
            self.users_notified += 1

        self.devices_processed += result.devices
        self.success_count += result.successes
        self.failure_count += result.failures
        self.tokens_removed += result.tokens_removed

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class QuoteDispatcher:
    """Sends at most one daily quote notification per user per local day."""

    def __init__(
        self,
        store: Store,
        quotes: QuoteGenerator,
        push: PushSender,
        skip_probability: float | None = None,
        strict_dedup: bool | None = None,
        rng: Callable[[], float] = random.random,
    ):
        self.store = store
        self.quotes = quotes
        self.push = push
        self.skip_probability = (
            skip_probability if skip_probability is not None else settings.dispatch_skip_probability
        )
        self.strict_dedup = strict_dedup if strict_dedup is not None else settings.dispatch_strict_dedup
        self.rng = rng

    async def list_users(self) -> list[str]:
        """Enumerate users. Errors propagate and abort the run."""
        try:
            return await self.store.list_user_ids()
        except Exception as e:
            logger.error(f"Error querying users: {e}")
            raise

    async def run(self, now: datetime | None = None) -> DispatchStats:
        """Run one dispatch pass over every user."""
        now = now or datetime.now(timezone.utc)
        logger.info(f"Starting daily quote run at {now.isoformat()} (UTC hour {now.astimezone(timezone.utc).hour})")

        user_ids = await self.list_users()
        stats = DispatchStats(users_total=len(user_ids))
        if not user_ids:
            logger.info("No users found, ending run")
            return stats

        logger.info(f"Found {len(user_ids)} users")
        for user_id in user_ids:
            stats.record(await self.dispatch_user_safely(user_id, now))

        logger.info(f"Completed daily quote run: {stats.as_dict()}")
        return stats

    async def dispatch_user_safely(self, user_id: str, now: datetime) -> UserDispatchResult:
        """dispatch_user, with any error logged and reported as FAILED."""
        try:
            return await self.dispatch_user(user_id, now)
        except Exception as e:
            logger.exception(f"Error processing user {user_id}: {e}")
            return UserDispatchResult(user_id=user_id, outcome=UserOutcome.FAILED)

    async def dispatch_user(self, user_id: str, now: datetime) -> UserDispatchResult:
        devices = await self.store.list_enabled_devices(user_id)
        if not devices:
            logger.debug(f"Skipping user {user_id} - no devices with notifications enabled")
            return UserDispatchResult(user_id=user_id, outcome=UserOutcome.NO_DEVICES)

        offset = resolve_offset(devices)
        if offset is None:
            logger.debug(f"No timezone info for user {user_id}, using UTC")
            offset = 0
        hour = local_hour(now.astimezone(timezone.utc).hour, offset)

        if not in_send_window(hour):
            logger.debug(f"Skipping user {user_id} - outside notification windows (local hour {hour})")
            return UserDispatchResult(user_id=user_id, outcome=UserOutcome.OUTSIDE_WINDOW, local_hour=hour)

        # Spreads sends across the hours of a window
        if self.rng() < self.skip_probability:
            logger.debug(f"Skipping user {user_id} - randomized, will retry next hour")
            return UserDispatchResult(user_id=user_id, outcome=UserOutcome.RANDOMIZED, local_hour=hour)

        today = local_date(now, offset)
        latest = await self.store.latest_daily_quote(user_id, QuoteChannel.NOTIFICATION)
        if sent_on_day(latest, today):
            logger.info(f"Skipping user {user_id} - already sent a quote at {latest.timestamp.isoformat()}")
            return UserDispatchResult(user_id=user_id, outcome=UserOutcome.ALREADY_SENT, local_hour=hour)

        logger.info(f"Sending daily quote to user {user_id} (local hour {hour}, {len(devices)} devices)")
        messages = await self._recent_user_messages(user_id)
        quote = await self._generate_quote(user_id, messages)

        quote_id: str | None = None
        entry = DailyQuote(
            user_id=user_id,
            quote=quote,
            timestamp=now,
            sent_via=QuoteChannel.NOTIFICATION,
        )
        try:
            recorded = await self._record_quote(entry, today)
        except Exception as e:
            logger.error(f"Error saving quote to history for {user_id}, sending anyway: {e}")
        else:
            if recorded is None:
                logger.info(f"Skipping user {user_id} - a concurrent run already sent today's quote")
                return UserDispatchResult(user_id=user_id, outcome=UserOutcome.ALREADY_SENT, local_hour=hour)
            quote_id = recorded.id

        result = UserDispatchResult(
            user_id=user_id,
            outcome=UserOutcome.SENT,
            local_hour=hour,
            devices=len(devices),
            quote_id=quote_id,
        )
        for device in devices:
            await self._send_to_device(device, quote, quote_id, now, result)

        logger.info(
            f"Completed user {user_id}: {result.successes} sent, {result.failures} failed"
        )
        return result

    async def _recent_user_messages(self, user_id: str) -> list[str]:
        try:
            conversations = await self.store.list_conversations(user_id, PERSONALIZATION_CONVERSATIONS)
        except Exception as e:
            logger.error(f"Error fetching chat history for {user_id}, using generic quote: {e}")
            return []
        messages = collect_user_messages(conversations)
        logger.debug(f"Found {len(messages)} messages for personalization for user {user_id}")
        return messages

    async def _generate_quote(self, user_id: str, messages: list[str]) -> str:
        try:
            return await self.quotes.generate_quote(messages)
        except Exception as e:
            logger.error(f"Error generating quote for {user_id}, using default: {e}")
            return DEFAULT_QUOTE

    async def _record_quote(self, entry: DailyQuote, today: date) -> DailyQuote | None:
        if self.strict_dedup:
            return await self.store.add_daily_quote_if_not_sent(entry, today)
        return await self.store.add_daily_quote(entry)

    async def _send_to_device(
        self,
        device: Device,
        quote: str,
        quote_id: str | None,
        now: datetime,
        result: UserDispatchResult,
    ) -> None:
        try:
            await self.store.increment_badge_count(device.user_id, device.token, now)
            badge_count = await self._read_badge_count(device)
            notification = build_daily_quote_notification(
                token=device.token,
                quote=quote,
                quote_id=quote_id,
                badge_count=badge_count,
                now=now,
            )
            message_id = await self.push.send(notification)
        except TokenNotRegistered as e:
            logger.warning(f"Token {device.token_prefix}... no longer registered, removing: {e}")
            result.failures += 1
            await self._remove_device(device, result)
        except Exception as e:
            logger.error(f"Failed to send to device {device.token_prefix}...: {e}")
            result.failures += 1
        else:
            logger.info(f"Sent to device {device.token_prefix}..., message_id={message_id}")
            result.successes += 1

    async def _read_badge_count(self, device: Device) -> int:
        try:
            updated = await self.store.get_device(device.user_id, device.token)
        except Exception as e:
            logger.error(f"Error reading badge count for {device.token_prefix}...: {e}")
            return 1
        if updated is None:
            logger.warning(f"Device {device.token_prefix}... vanished after badge increment")
            return 1
        return updated.badge_count or 1

    async def _remove_device(self, device: Device, result: UserDispatchResult) -> None:
        try:
            await self.store.delete_device(device.user_id, device.token)
        except Exception as e:
            logger.error(f"Error deleting invalid token {device.token_prefix}...: {e}")
            return
        result.tokens_removed += 1
