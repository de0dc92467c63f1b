"""User profile and billing-mirror models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """Server-side user record. Lifecycle is owned by the auth provider."""

    id: str = Field(..., description="User ID from the identity provider")
    email: str | None = Field(None, description="Email, if known")
    message_count: int = Field(0, ge=0, description="Messages sent, monotonically increasing")
    is_premium: bool = Field(False, description="Premium flag mirrored onto the profile")
    subscription_tier: str | None = Field(None, description="free, premium, ...")
    last_active: datetime | None = Field(None, description="Last chat activity")

    @property
    def has_premium_flag(self) -> bool:
        return self.is_premium or self.subscription_tier == "premium"


class CustomerRecord(BaseModel):
    """Subscription state mirrored from the external billing provider."""

    user_id: str = Field(..., description="User ID")
    subscriptions: dict[str, Any] = Field(
        default_factory=dict, description="Raw per-product subscription payloads"
    )

    def has_active_entitlement(self, product_id: str, entitlement_id: str) -> bool:
        """True if ``product_id`` carries ``entitlement_id`` marked active."""
        product = self.subscriptions.get(product_id)
        if not isinstance(product, dict):
            return False
        entitlements = product.get("entitlements")
        if not isinstance(entitlements, dict):
            return False
        entitlement = entitlements.get(entitlement_id)
        return isinstance(entitlement, dict) and entitlement.get("active") is True
