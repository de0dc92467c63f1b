"""API-specific request and response models.

JSON uses camelCase to match the mobile client.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from vigil_models import ChatMessage, Conversation, DailyQuote, Device


class CamelCaseModel(BaseModel):
    """Base model for camelCase JSON serialization."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ChatRequest(CamelCaseModel):
    """Request model for sending a message."""

    # Defaults to empty so a missing message is reported as invalid-argument
    message: str = Field("", description="User message")
    conversation_id: str | None = Field(None, description="Existing conversation ID")


class ChatResponse(CamelCaseModel):
    """Response model for a processed chat message."""

    role: str = "assistant"
    message: str
    response: str
    conversation_id: str


class ConversationSummary(CamelCaseModel):
    """A conversation as listed in the history panel."""

    id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    last_updated: datetime | None = None

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationSummary":
        return cls(
            id=conversation.id,
            messages=conversation.messages,
            last_updated=conversation.last_updated,
        )


class DeviceResponse(CamelCaseModel):
    """Stored state of a registered device."""

    token: str
    platform: str | None = None
    notifications_enabled: bool
    time_zone: str | None = None
    time_zone_offset: int | None = None
    badge_count: int

    @classmethod
    def from_device(cls, device: Device) -> "DeviceResponse":
        return cls(
            token=device.token,
            platform=device.platform,
            notifications_enabled=device.notifications_enabled,
            time_zone=device.time_zone,
            time_zone_offset=device.time_zone_offset,
            badge_count=device.badge_count,
        )


class BadgeUpdate(CamelCaseModel):
    """Explicit badge value set by the client, usually zero."""

    count: int = Field(0, ge=0)


class DailyQuoteResponse(CamelCaseModel):
    """A daily quote history entry."""

    id: str
    quote: str
    timestamp: datetime
    sent_via: str
    is_favorite: bool

    @classmethod
    def from_quote(cls, quote: DailyQuote) -> "DailyQuoteResponse":
        return cls(
            id=quote.id,
            quote=quote.quote,
            timestamp=quote.timestamp,
            sent_via=quote.sent_via.value,
            is_favorite=quote.is_favorite,
        )


class FavoriteUpdate(CamelCaseModel):
    """Favourite flag toggle."""

    is_favorite: bool


class DispatchRunResponse(CamelCaseModel):
    """Counters from a manually triggered dispatcher run."""

    stats: dict[str, int]
