"""Daily quote history models."""

from datetime import datetime, timezone
from enum import Enum
import uuid

from pydantic import BaseModel, Field


def _uuid() -> str:
    return str(uuid.uuid4())


class QuoteChannel(str, Enum):
    """How a daily quote reached the user."""

    NOTIFICATION = "notification"
    IN_APP = "in_app"


class DailyQuote(BaseModel):
    """An append-only entry in a user's daily quote history."""

    id: str = Field(default_factory=_uuid, description="Entry ID")
    user_id: str = Field(..., description="Owning user ID")
    quote: str = Field(..., description="Quote text")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Creation timestamp"
    )
    sent_via: QuoteChannel = Field(QuoteChannel.NOTIFICATION, description="Delivery channel")
    is_favorite: bool = Field(False, description="Marked as favourite by the user")
