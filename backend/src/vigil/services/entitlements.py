"""Subscription entitlement and free-tier message limit checks.

Both checks fail toward the user: a store error never blocks a premium
lookup from falling through to the next source, and never blocks a free
user from messaging.
"""

import logging

from vigil.config import settings
from vigil.db import Store

logger = logging.getLogger(__name__)


class EntitlementService:
    """Read-through view of a user's entitlements."""

    def __init__(
        self,
        store: Store,
        product_id: str | None = None,
        entitlement_id: str | None = None,
        message_limit: int | None = None,
    ):
        self.store = store
        self.product_id = product_id or settings.premium_product_id
        self.entitlement_id = entitlement_id or settings.premium_entitlement_id
        self.message_limit = (
            message_limit if message_limit is not None else settings.free_tier_message_limit
        )

    async def is_premium(self, user_id: str) -> bool:
        """True if the billing mirror or the user profile grants premium."""
        return await self._billing_mirror_active(user_id) or await self._profile_flag_set(user_id)

    async def _billing_mirror_active(self, user_id: str) -> bool:
        try:
            customer = await self.store.get_customer(user_id)
        except Exception as e:
            logger.warning(f"Billing mirror lookup failed for {user_id}: {e}")
            return False

        if customer is None:
            logger.debug(f"No billing mirror record for {user_id}")
            return False
        active = customer.has_active_entitlement(self.product_id, self.entitlement_id)
        if active:
            logger.info(f"User {user_id} has an active entitlement via billing mirror")
        return active

    async def _profile_flag_set(self, user_id: str) -> bool:
        try:
            user = await self.store.get_user(user_id)
        except Exception as e:
            logger.warning(f"User profile lookup failed for {user_id}: {e}")
            return False

        if user is None:
            return False
        if user.has_premium_flag:
            logger.info(f"User {user_id} has premium status via profile")
            return True
        return False

    async def within_limit(self, user_id: str) -> bool:
        """True while a free-tier user is under the message limit."""
        try:
            user = await self.store.get_user(user_id)
        except Exception as e:
            logger.warning(f"Message limit lookup failed for {user_id}, allowing: {e}")
            return True

        if user is None:
            logger.debug(f"No user record for {user_id}, treating as new user")
            return True

        logger.debug(f"User {user_id} message count {user.message_count}/{self.message_limit}")
        return user.message_count < self.message_limit
