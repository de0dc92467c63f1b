"""Shared Pydantic models for vigil."""

from vigil_models.conversation import ChatMessage, Conversation, Role
from vigil_models.devices import Device, DeviceRegistration
from vigil_models.quotes import DailyQuote, QuoteChannel
from vigil_models.users import CustomerRecord, UserProfile

__all__ = [
    # Chat
    "ChatMessage",
    "Conversation",
    "Role",
    # Notifications
    "Device",
    "DeviceRegistration",
    "DailyQuote",
    "QuoteChannel",
    # Accounts
    "CustomerRecord",
    "UserProfile",
]
