"""Shared fixtures: an in-memory store and recording fakes for external services."""

import os

# Keep the global settings off Postgres and Firebase for the whole test session
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("AUTH_MODE", "header")

from datetime import datetime, timezone

import pytest
from vigil.db.memory import MemoryStore
from vigil.services.completion import CompletionClient
from vigil.services.push import PushError, PushNotification, PushSender, TokenNotRegistered
from vigil_models import DeviceRegistration


class FakeCompletion(CompletionClient):
    """Completion client that records prompts and returns a canned reply."""

    def __init__(self, reply: str = "Peace be with you.", error: Exception | None = None):
        super().__init__(timeout=5)
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def _generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


class FakePushSender(PushSender):
    """Push sender that records notifications and rejects chosen tokens."""

    def __init__(self, unregistered: set[str] | None = None, failing: set[str] | None = None):
        self.unregistered = unregistered or set()
        self.failing = failing or set()
        self.sent: list[PushNotification] = []

    async def send(self, notification: PushNotification) -> str:
        if notification.token in self.unregistered:
            raise TokenNotRegistered("Requested entity was not found.")
        if notification.token in self.failing:
            raise PushError("Internal error encountered.")
        self.sent.append(notification)
        return f"projects/test/messages/{len(self.sent)}"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def push() -> FakePushSender:
    return FakePushSender()


@pytest.fixture
def add_device(store: MemoryStore):
    """Register a device directly through the store."""

    async def _add(
        user_id: str,
        token: str,
        offset: int | None = 0,
        enabled: bool = True,
    ):
        return await store.upsert_device(
            user_id,
            DeviceRegistration(
                token=token,
                notifications_enabled=enabled,
                time_zone_offset=offset,
            ),
            datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    return _add
