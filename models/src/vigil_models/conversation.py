"""Conversation and message models."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single message inside a conversation record."""

    role: Role = Field(..., description="Message author")
    content: str = Field(..., description="Message text")
    timestamp: datetime = Field(default_factory=_utcnow, description="Creation timestamp")

    def to_document(self) -> dict[str, Any]:
        """Serialize for storage as a JSON document."""
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


class Conversation(BaseModel):
    """A conversation thread owned by one user."""

    id: str = Field(..., description="Conversation ID")
    user_id: str = Field(..., description="Owning user ID")
    messages: list[ChatMessage] = Field(default_factory=list, description="Ordered messages")
    last_updated: datetime | None = Field(None, description="Last write timestamp")
    documents: list[Any] | None = Field(
        None, exclude=True, description="Stored message entries exactly as read"
    )

    @classmethod
    def empty(cls, user_id: str, conversation_id: str) -> "Conversation":
        return cls(id=conversation_id, user_id=user_id)

    @classmethod
    def from_document(
        cls,
        conversation_id: str,
        user_id: str,
        messages: Any,
        last_updated: datetime | None = None,
    ) -> "Conversation":
        """Build a conversation from a loosely typed stored document.

        Entries that are not mappings, lack a known role, or carry no text are
        left out of ``messages``. A missing timestamp defaults to
        ``last_updated`` (or now). The raw entries are kept in ``documents`` so
        a write-back never loses what could not be parsed.
        """
        parsed: list[ChatMessage] = []
        if isinstance(messages, list):
            for entry in messages:
                if not isinstance(entry, dict) or not entry.get("content"):
                    continue
                data = dict(entry)
                if not data.get("timestamp"):
                    data["timestamp"] = last_updated or _utcnow()
                try:
                    parsed.append(ChatMessage.model_validate(data))
                except ValidationError:
                    logger.warning(f"Skipping malformed message in conversation {conversation_id}")
        return cls(
            id=conversation_id,
            user_id=user_id,
            messages=parsed,
            last_updated=last_updated,
            documents=list(messages) if isinstance(messages, list) else None,
        )

    def stored_documents(self) -> list[Any]:
        """Message entries to write back: the raw stored list when loaded from storage."""
        if self.documents is not None:
            return list(self.documents)
        return [m.to_document() for m in self.messages]

    def user_messages(self) -> list[str]:
        """Text of user-authored messages, in conversation order."""
        return [m.content for m in self.messages if m.role == Role.USER and m.content]
