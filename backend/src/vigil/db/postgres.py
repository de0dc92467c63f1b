"""PostgreSQL store for users, conversations, devices and quote history."""

import json
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

import asyncpg

from vigil_models import (
    Conversation,
    CustomerRecord,
    DailyQuote,
    Device,
    DeviceRegistration,
    QuoteChannel,
    UserProfile,
)
from vigil.config import settings
from vigil.db.base import DeviceNotFound, Store


SCHEMA_SQL = """
-- Users (lifecycle owned by the identity provider)
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT,
    message_count INTEGER NOT NULL DEFAULT 0 CHECK (message_count >= 0),
    is_premium BOOLEAN NOT NULL DEFAULT FALSE,
    subscription_tier TEXT,
    last_active TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Billing mirror, written by the subscription provider's sync
CREATE TABLE IF NOT EXISTS customers (
    user_id TEXT PRIMARY KEY,
    subscriptions JSONB NOT NULL DEFAULT '{}',
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Conversations keep their messages inline as an ordered JSON array
CREATE TABLE IF NOT EXISTS conversations (
    user_id TEXT NOT NULL,
    id TEXT NOT NULL,
    messages JSONB NOT NULL DEFAULT '[]',
    last_updated TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, id)
);
CREATE INDEX IF NOT EXISTS idx_conversations_user_updated
    ON conversations(user_id, last_updated DESC);

-- Push devices, keyed by token within a user
CREATE TABLE IF NOT EXISTS devices (
    user_id TEXT NOT NULL,
    token TEXT NOT NULL,
    platform TEXT,
    device_id TEXT,
    device_model TEXT,
    notifications_enabled BOOLEAN NOT NULL DEFAULT TRUE,
    time_zone TEXT,
    time_zone_offset INTEGER,
    badge_count INTEGER NOT NULL DEFAULT 0 CHECK (badge_count >= 0),
    last_notified TIMESTAMPTZ,
    last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, token)
);

-- Daily quote history (append-only apart from the favourite flag)
CREATE TABLE IF NOT EXISTS daily_quotes (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    quote TEXT NOT NULL,
    sent_via TEXT NOT NULL,
    is_favorite BOOLEAN NOT NULL DEFAULT FALSE,
    timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_daily_quotes_user_channel
    ON daily_quotes(user_id, sent_via, timestamp DESC);
"""


def _json(value):
    return value if not isinstance(value, str) else json.loads(value)


class Database(Store):
    """PostgreSQL-backed store."""

    def __init__(self):
        self._pool: asyncpg.Pool | None = None

    async def connect(self):
        """Create connection pool."""
        if not settings.database_url:
            return
        self._pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=2,
            max_size=10,
        )

    async def disconnect(self):
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self):
        """Get a connection from the pool."""
        if not self._pool:
            raise RuntimeError("Database not connected")
        async with self._pool.acquire() as conn:
            yield conn

    async def ensure_tables_exist(self):
        """Create tables if they don't exist."""
        if not self._pool:
            return
        async with self.connection() as conn:
            await conn.execute(SCHEMA_SQL)

    # ============= User Operations =============

    async def list_user_ids(self) -> list[str]:
        async with self.connection() as conn:
            rows = await conn.fetch("SELECT id FROM users")
        return [row["id"] for row in rows]

    async def get_user(self, user_id: str) -> UserProfile | None:
        async with self.connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        if not row:
            return None
        return UserProfile(
            id=row["id"],
            email=row["email"],
            message_count=row["message_count"],
            is_premium=row["is_premium"],
            subscription_tier=row["subscription_tier"],
            last_active=row["last_active"],
        )

    async def ensure_user(self, user_id: str, email: str | None = None) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO users (id, email) VALUES ($1, $2)
                ON CONFLICT (id) DO UPDATE
                SET email = COALESCE(users.email, EXCLUDED.email)
                """,
                user_id,
                email,
            )

    async def increment_message_count(self, user_id: str, now: datetime) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO users (id, message_count, last_active) VALUES ($1, 1, $2)
                ON CONFLICT (id) DO UPDATE
                SET message_count = users.message_count + 1,
                    last_active = EXCLUDED.last_active
                """,
                user_id,
                now,
            )

    async def get_customer(self, user_id: str) -> CustomerRecord | None:
        async with self.connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM customers WHERE user_id = $1", user_id
            )
        if not row:
            return None
        return CustomerRecord(
            user_id=row["user_id"],
            subscriptions=_json(row["subscriptions"]) or {},
        )

    # ============= Conversation Operations =============

    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation | None:
        async with self.connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM conversations WHERE user_id = $1 AND id = $2",
                user_id,
                conversation_id,
            )
        if not row:
            return None
        return self._row_to_conversation(row)

    async def save_conversation_messages(
        self,
        user_id: str,
        conversation_id: str,
        messages: list[dict[str, Any]],
        now: datetime,
    ) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO conversations (user_id, id, messages, last_updated)
                VALUES ($1, $2, $3::jsonb, $4)
                ON CONFLICT (user_id, id) DO UPDATE
                SET messages = EXCLUDED.messages,
                    last_updated = EXCLUDED.last_updated
                """,
                user_id,
                conversation_id,
                json.dumps(messages),
                now,
            )

    async def list_conversations(self, user_id: str, limit: int) -> list[Conversation]:
        async with self.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM conversations
                WHERE user_id = $1
                ORDER BY last_updated DESC NULLS LAST
                LIMIT $2
                """,
                user_id,
                limit,
            )
        return [self._row_to_conversation(row) for row in rows]

    def _row_to_conversation(self, row: asyncpg.Record) -> Conversation:
        return Conversation.from_document(
            conversation_id=row["id"],
            user_id=row["user_id"],
            messages=_json(row["messages"]),
            last_updated=row["last_updated"],
        )

    # ============= Device Operations =============

    async def list_enabled_devices(self, user_id: str) -> list[Device]:
        async with self.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM devices
                WHERE user_id = $1 AND notifications_enabled
                ORDER BY created_at
                """,
                user_id,
            )
        return [self._row_to_device(row) for row in rows]

    async def get_device(self, user_id: str, token: str) -> Device | None:
        async with self.connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM devices WHERE user_id = $1 AND token = $2",
                user_id,
                token,
            )
        if not row:
            return None
        return self._row_to_device(row)

    async def upsert_device(
        self, user_id: str, registration: DeviceRegistration, now: datetime
    ) -> Device:
        async with self.connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO users (id) VALUES ($1) ON CONFLICT (id) DO NOTHING",
                    user_id,
                )
                row = await conn.fetchrow(
                    """
                    INSERT INTO devices
                    (user_id, token, platform, device_id, device_model,
                     notifications_enabled, time_zone, time_zone_offset,
                     badge_count, last_updated)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, 0, $9)
                    ON CONFLICT (user_id, token) DO UPDATE
                    SET platform = EXCLUDED.platform,
                        device_id = EXCLUDED.device_id,
                        device_model = EXCLUDED.device_model,
                        notifications_enabled = EXCLUDED.notifications_enabled,
                        time_zone = EXCLUDED.time_zone,
                        time_zone_offset = EXCLUDED.time_zone_offset,
                        badge_count = 0,
                        last_updated = EXCLUDED.last_updated
                    RETURNING *
                    """,
                    user_id,
                    registration.token,
                    registration.platform,
                    registration.device_id,
                    registration.device_model,
                    registration.notifications_enabled,
                    registration.time_zone,
                    registration.time_zone_offset,
                    now,
                )
        return self._row_to_device(row)

    async def delete_device(self, user_id: str, token: str) -> None:
        async with self.connection() as conn:
            await conn.execute(
                "DELETE FROM devices WHERE user_id = $1 AND token = $2",
                user_id,
                token,
            )

    async def delete_sibling_devices(
        self, user_id: str, platform: str, device_id: str, keep_token: str
    ) -> int:
        async with self.connection() as conn:
            rows = await conn.fetch(
                """
                DELETE FROM devices
                WHERE user_id = $1 AND platform = $2 AND device_id = $3 AND token <> $4
                RETURNING token
                """,
                user_id,
                platform,
                device_id,
                keep_token,
            )
        return len(rows)

    async def increment_badge_count(self, user_id: str, token: str, now: datetime) -> None:
        async with self.connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE devices
                SET badge_count = badge_count + 1,
                    last_notified = $3,
                    last_updated = $3
                WHERE user_id = $1 AND token = $2
                RETURNING badge_count
                """,
                user_id,
                token,
                now,
            )
        if row is None:
            raise DeviceNotFound(f"users/{user_id}/devices/{token}")

    async def set_badge_count(self, user_id: str, token: str, count: int, now: datetime) -> None:
        async with self.connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE devices SET badge_count = $3, last_updated = $4
                WHERE user_id = $1 AND token = $2
                RETURNING token
                """,
                user_id,
                token,
                count,
                now,
            )
        if row is None:
            raise DeviceNotFound(f"users/{user_id}/devices/{token}")

    def _row_to_device(self, row: asyncpg.Record) -> Device:
        return Device(
            token=row["token"],
            user_id=row["user_id"],
            platform=row["platform"],
            device_id=row["device_id"],
            device_model=row["device_model"],
            notifications_enabled=row["notifications_enabled"],
            time_zone=row["time_zone"],
            time_zone_offset=row["time_zone_offset"],
            badge_count=row["badge_count"],
            last_notified=row["last_notified"],
            last_updated=row["last_updated"],
        )

    # ============= Daily Quote Operations =============

    async def latest_daily_quote(
        self, user_id: str, sent_via: QuoteChannel
    ) -> DailyQuote | None:
        async with self.connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM daily_quotes
                WHERE user_id = $1 AND sent_via = $2
                ORDER BY timestamp DESC
                LIMIT 1
                """,
                user_id,
                sent_via.value,
            )
        if not row:
            return None
        return self._row_to_quote(row)

    async def add_daily_quote(self, quote: DailyQuote) -> DailyQuote:
        async with self.connection() as conn:
            await self._insert_quote(conn, quote)
        return quote

    async def add_daily_quote_if_not_sent(
        self, quote: DailyQuote, local_day: date
    ) -> DailyQuote | None:
        async with self.connection() as conn:
            async with conn.transaction():
                # Serializes concurrent dispatchers for the same user
                await conn.execute(
                    "SELECT pg_advisory_xact_lock(hashtext($1))", quote.user_id
                )
                already_sent = await conn.fetchval(
                    """
                    SELECT (timestamp AT TIME ZONE 'UTC')::date = $3
                    FROM daily_quotes
                    WHERE user_id = $1 AND sent_via = $2
                    ORDER BY timestamp DESC
                    LIMIT 1
                    """,
                    quote.user_id,
                    quote.sent_via.value,
                    local_day,
                )
                if already_sent:
                    return None
                await self._insert_quote(conn, quote)
        return quote

    async def _insert_quote(self, conn: asyncpg.Connection, quote: DailyQuote) -> None:
        await conn.execute(
            """
            INSERT INTO daily_quotes (id, user_id, quote, sent_via, is_favorite, timestamp)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            quote.id,
            quote.user_id,
            quote.quote,
            quote.sent_via.value,
            quote.is_favorite,
            quote.timestamp,
        )

    async def list_daily_quotes(self, user_id: str, limit: int) -> list[DailyQuote]:
        async with self.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM daily_quotes
                WHERE user_id = $1
                ORDER BY timestamp DESC
                LIMIT $2
                """,
                user_id,
                limit,
            )
        return [self._row_to_quote(row) for row in rows]

    async def set_quote_favorite(
        self, user_id: str, quote_id: str, is_favorite: bool
    ) -> DailyQuote | None:
        async with self.connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE daily_quotes SET is_favorite = $3
                WHERE user_id = $1 AND id = $2
                RETURNING *
                """,
                user_id,
                quote_id,
                is_favorite,
            )
        if not row:
            return None
        return self._row_to_quote(row)

    def _row_to_quote(self, row: asyncpg.Record) -> DailyQuote:
        return DailyQuote(
            id=row["id"],
            user_id=row["user_id"],
            quote=row["quote"],
            sent_via=QuoteChannel(row["sent_via"]),
            is_favorite=row["is_favorite"],
            timestamp=row["timestamp"],
        )
