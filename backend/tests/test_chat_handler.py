"""Tests for the chat handler."""

from datetime import datetime, timezone

import pytest
from conftest import FakeCompletion
from vigil.db.memory import MemoryStore
from vigil.errors import Internal, InvalidArgument, RateLimited, UpstreamUnavailable
from vigil.services.chat_handler import LIMIT_EXCEEDED_MESSAGE, ChatService
from vigil.services.completion import CompletionError
from vigil.services.entitlements import EntitlementService
from vigil_models import ChatMessage, CustomerRecord, Role, UserProfile


def make_service(store, completion, limit: int = 30) -> ChatService:
    return ChatService(
        store=store,
        completion=completion,
        entitlements=EntitlementService(
            store,
            product_id="premium.monthly",
            entitlement_id="Monthly Premium",
            message_limit=limit,
        ),
        history_limit=50,
    )


class TestProcessMessage:
    """Test message processing."""

    @pytest.mark.asyncio
    async def test_new_conversation(self, store, completion):
        """A message without a conversation ID starts a new one."""
        result = await make_service(store, completion).process_message("u1", "Hello")

        assert result.reply == "Peace be with you."
        assert result.conversation_id
        assert result.fully_persisted

        conversation = await store.get_conversation("u1", result.conversation_id)
        assert [(m.role, m.content) for m in conversation.messages] == [
            (Role.USER, "Hello"),
            (Role.ASSISTANT, "Peace be with you."),
        ]
        assert (await store.get_user("u1")).message_count == 1

    @pytest.mark.asyncio
    async def test_continues_conversation(self, store, completion):
        """Messages append to an existing conversation in order."""
        service = make_service(store, completion)
        first = await service.process_message("u1", "First")
        second = await service.process_message("u1", "Second", first.conversation_id)

        assert second.conversation_id == first.conversation_id
        conversation = await store.get_conversation("u1", first.conversation_id)
        assert [m.content for m in conversation.messages] == [
            "First",
            "Peace be with you.",
            "Second",
            "Peace be with you.",
        ]
        assert (await store.get_user("u1")).message_count == 2

    @pytest.mark.asyncio
    async def test_unparseable_stored_messages_survive(self, store, completion):
        """Stored entries the reader skips are written back untouched."""
        stored = [
            {"role": "user", "content": "first", "timestamp": "2024-01-01T10:00:00+00:00"},
            {"role": "assistant", "content": ""},
            {"role": "model", "content": "legacy reply"},
            {"role": "user", "content": "dated", "timestamp": "not-a-date"},
        ]
        await store.save_conversation_messages(
            "u1", "c1", stored, datetime(2024, 1, 1, tzinfo=timezone.utc)
        )

        await make_service(store, completion).process_message("u1", "hello", "c1")

        documents = store.conversations[("u1", "c1")].documents
        assert len(documents) == len(stored) + 2
        assert documents[: len(stored)] == stored
        assert [(d["role"], d["content"]) for d in documents[len(stored):]] == [
            ("user", "hello"),
            ("assistant", "Peace be with you."),
        ]

        conversation = await store.get_conversation("u1", "c1")
        assert [m.content for m in conversation.messages] == [
            "first",
            "hello",
            "Peace be with you.",
        ]

    @pytest.mark.asyncio
    async def test_completion_receives_raw_message(self, store, completion):
        """Only the new message is sent to the model."""
        await make_service(store, completion).process_message("u1", "What is grace?")

        assert completion.prompts == ["What is grace?"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   ", "\n\t"])
    async def test_empty_message_rejected(self, store, completion, message):
        """Empty or whitespace-only messages are invalid."""
        with pytest.raises(InvalidArgument):
            await make_service(store, completion).process_message("u1", message)

        assert completion.prompts == []

    @pytest.mark.asyncio
    async def test_free_tier_limit(self, store, completion):
        """Free users at the limit are rejected before the model is called."""
        store.users["u1"] = UserProfile(id="u1", message_count=30)

        with pytest.raises(RateLimited) as exc_info:
            await make_service(store, completion).process_message("u1", "Hello")

        assert exc_info.value.message == LIMIT_EXCEEDED_MESSAGE
        assert completion.prompts == []
        assert (await store.get_user("u1")).message_count == 30

    @pytest.mark.asyncio
    async def test_below_limit_allowed(self, store, completion):
        """The last free message is still accepted."""
        store.users["u1"] = UserProfile(id="u1", message_count=29)

        await make_service(store, completion).process_message("u1", "Hello")

        assert (await store.get_user("u1")).message_count == 30

    @pytest.mark.asyncio
    async def test_premium_via_profile_bypasses_limit(self, store, completion):
        """A premium profile flag lifts the message limit."""
        store.users["u1"] = UserProfile(id="u1", message_count=500, subscription_tier="premium")

        result = await make_service(store, completion).process_message("u1", "Hello")

        assert result.reply

    @pytest.mark.asyncio
    async def test_premium_via_billing_mirror_bypasses_limit(self, store, completion):
        """An active billing entitlement lifts the message limit."""
        store.users["u1"] = UserProfile(id="u1", message_count=500)
        store.customers["u1"] = CustomerRecord(
            user_id="u1",
            subscriptions={
                "premium.monthly": {"entitlements": {"Monthly Premium": {"active": True}}}
            },
        )

        result = await make_service(store, completion).process_message("u1", "Hello")

        assert result.reply

    @pytest.mark.asyncio
    async def test_upstream_failure_persists_nothing(self, store):
        """A model failure leaves the conversation and counter untouched."""
        service = make_service(store, FakeCompletion())
        first = await service.process_message("u1", "First")

        service.completion = FakeCompletion(error=RuntimeError("503 from provider"))
        with pytest.raises(UpstreamUnavailable):
            await service.process_message("u1", "Second", first.conversation_id)

        conversation = await store.get_conversation("u1", first.conversation_id)
        assert len(conversation.messages) == 2
        assert (await store.get_user("u1")).message_count == 1

    @pytest.mark.asyncio
    async def test_empty_completion_is_upstream_failure(self, store):
        """Blank model output counts as an upstream failure."""
        with pytest.raises(UpstreamUnavailable):
            await make_service(store, FakeCompletion(reply="  ")).process_message("u1", "Hi")

    @pytest.mark.asyncio
    async def test_conversation_read_failure(self, completion):
        """An unreadable conversation fails the request instead of overwriting it."""

        class BrokenReads(MemoryStore):
            async def get_conversation(self, user_id, conversation_id):
                raise ConnectionError("read failed")

        with pytest.raises(Internal):
            await make_service(BrokenReads(), completion).process_message("u1", "Hi", "c1")

        assert completion.prompts == []

    @pytest.mark.asyncio
    async def test_side_effect_failures_are_reported(self, completion):
        """Persistence failures after the reply do not fail the request."""

        class ReadOnly(MemoryStore):
            async def save_conversation_messages(self, *args, **kwargs):
                raise ConnectionError("write failed")

            async def increment_message_count(self, user_id, now):
                raise ConnectionError("write failed")

        result = await make_service(ReadOnly(), completion).process_message("u1", "Hi")

        assert result.reply == "Peace be with you."
        assert not result.fully_persisted
        assert [e.name for e in result.side_effects if not e.ok] == [
            "save_conversation",
            "increment_message_count",
        ]


class TestGetHistory:
    """Test conversation history."""

    @pytest.mark.asyncio
    async def test_newest_first_and_limited(self, store, completion):
        """History is ordered by last update and capped."""
        for i in range(3):
            await store.save_conversation_messages(
                "u1",
                f"c{i}",
                [ChatMessage(role=Role.USER, content=f"m{i}").to_document()],
                datetime(2024, 1, 1 + i, tzinfo=timezone.utc),
            )
        service = make_service(store, completion)
        service.history_limit = 2

        history = await service.get_history("u1")

        assert [c.id for c in history] == ["c2", "c1"]

    @pytest.mark.asyncio
    async def test_only_own_conversations(self, store, completion):
        """Other users' conversations are never returned."""
        await store.save_conversation_messages(
            "other", "c1", [], datetime(2024, 1, 1, tzinfo=timezone.utc)
        )

        assert await make_service(store, completion).get_history("u1") == []

    @pytest.mark.asyncio
    async def test_store_failure_returns_empty(self, completion):
        """History failures degrade to an empty list."""

        class BrokenList(MemoryStore):
            async def list_conversations(self, user_id, limit):
                raise ConnectionError("read failed")

        assert await make_service(BrokenList(), completion).get_history("u1") == []


class TestCompletionClient:
    """Test the completion client contract."""

    @pytest.mark.asyncio
    async def test_errors_wrapped(self):
        """Provider exceptions surface as CompletionError."""
        with pytest.raises(CompletionError):
            await FakeCompletion(error=ValueError("bad request")).complete("hi")
