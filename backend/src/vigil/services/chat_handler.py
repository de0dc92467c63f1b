"""Synchronous chat handler - processes messages and returns immediate responses."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from vigil_models import ChatMessage, Conversation, Role
from vigil.config import settings
from vigil.db import Store
from vigil.errors import Internal, InvalidArgument, RateLimited, UpstreamUnavailable
from vigil.services.completion import CompletionClient, CompletionError
from vigil.services.entitlements import EntitlementService

logger = logging.getLogger(__name__)

LIMIT_EXCEEDED_MESSAGE = (
    "Message limit exceeded. Please upgrade to premium for unlimited messages."
)
UPSTREAM_FAILED_MESSAGE = "Failed to generate AI response. Please try again later."


@dataclass
class SideEffect:
    """Outcome of a best-effort write that never fails the primary operation."""

    name: str
    ok: bool
    error: str | None = None


@dataclass
class ChatResult:
    """Result of processing a chat message."""

    reply: str
    conversation_id: str
    side_effects: list[SideEffect] = field(default_factory=list)

    @property
    def fully_persisted(self) -> bool:
        return all(effect.ok for effect in self.side_effects)


class ChatService:
    """Processes chat messages and reads conversation history."""

    def __init__(
        self,
        store: Store,
        completion: CompletionClient,
        entitlements: EntitlementService | None = None,
        history_limit: int | None = None,
    ):
        self.store = store
        self.completion = completion
        self.entitlements = entitlements or EntitlementService(store)
        self.history_limit = history_limit or settings.history_limit

    async def process_message(
        self,
        user_id: str,
        message: str,
        conversation_id: str | None = None,
    ) -> ChatResult:
        """Process a user message and return the assistant's reply.

        The user message is only persisted together with a successful reply.
        Saving the conversation and bumping the message counter are
        best-effort once the reply exists; their outcomes are reported in
        ``ChatResult.side_effects``.

        Raises:
            InvalidArgument: empty message.
            RateLimited: free-tier user over the message limit.
            UpstreamUnavailable: the completion service failed.
            Internal: the existing conversation could not be read.
        """
        if not message or not message.strip():
            raise InvalidArgument("Message is required")

        is_premium = await self.entitlements.is_premium(user_id)
        logger.info(f"User {user_id} subscription: {'premium' if is_premium else 'free'}")
        if not is_premium and not await self.entitlements.within_limit(user_id):
            logger.info(f"Free tier user {user_id} has exceeded the message limit")
            raise RateLimited(LIMIT_EXCEEDED_MESSAGE)

        conversation_id = conversation_id or str(uuid.uuid4())
        conversation = await self._load_conversation(user_id, conversation_id)
        # Unparseable stored entries are carried through untouched
        documents = conversation.stored_documents()
        logger.info(
            f"Processing message for {user_id}: length={len(message)}, "
            f"conversation={conversation_id}, prior_messages={len(documents)}"
        )

        documents.append(ChatMessage(role=Role.USER, content=message).to_document())

        try:
            reply = await self.completion.complete(message)
        except CompletionError as e:
            logger.error(f"Completion failed for {user_id}: {e}")
            raise UpstreamUnavailable(UPSTREAM_FAILED_MESSAGE) from e

        documents.append(ChatMessage(role=Role.ASSISTANT, content=reply).to_document())
        now = datetime.now(timezone.utc)

        result = ChatResult(reply=reply, conversation_id=conversation_id)
        result.side_effects.append(
            await self._best_effort(
                "save_conversation",
                self.store.save_conversation_messages(user_id, conversation_id, documents, now),
            )
        )
        result.side_effects.append(
            await self._best_effort(
                "increment_message_count",
                self.store.increment_message_count(user_id, now),
            )
        )
        return result

    async def _load_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        try:
            conversation = await self.store.get_conversation(user_id, conversation_id)
        except Exception as e:
            logger.error(f"Failed to load conversation {conversation_id} for {user_id}: {e}")
            raise Internal("Failed to process message") from e
        return conversation or Conversation.empty(user_id, conversation_id)

    async def _best_effort(self, name: str, operation) -> SideEffect:
        try:
            await operation
        except Exception as e:
            logger.error(f"Best-effort {name} failed: {e}")
            return SideEffect(name=name, ok=False, error=str(e))
        return SideEffect(name=name, ok=True)

    async def get_history(self, user_id: str) -> list[Conversation]:
        """Most recent conversations, newest first. Store failures yield []."""
        try:
            conversations = await self.store.list_conversations(user_id, self.history_limit)
        except Exception as e:
            logger.error(f"Error fetching chat history for {user_id}: {e}")
            return []

        logger.info(f"Chat history for {user_id}: {len(conversations)} conversations")
        return conversations
