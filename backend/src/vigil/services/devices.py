"""Device registration and badge acknowledgement."""

import logging
from datetime import datetime, timezone

from vigil_models import Device, DeviceRegistration
from vigil.db import DeviceNotFound, Store
from vigil.errors import NotFound

logger = logging.getLogger(__name__)


async def register_device(
    store: Store,
    user_id: str,
    registration: DeviceRegistration,
    email: str | None = None,
) -> Device:
    """Save a push token and drop older tokens issued to the same hardware."""
    now = datetime.now(timezone.utc)
    await store.ensure_user(user_id, email)

    if registration.device_id:
        try:
            removed = await store.delete_sibling_devices(
                user_id,
                registration.platform,
                registration.device_id,
                keep_token=registration.token,
            )
            if removed:
                logger.info(f"Removed {removed} stale tokens for user {user_id}")
        except Exception as e:
            logger.error(f"Error removing stale tokens for user {user_id}: {e}")

    device = await store.upsert_device(user_id, registration, now)
    logger.info(
        f"Registered device {device.token_prefix}... for user {user_id} "
        f"(enabled={device.notifications_enabled}, offset={device.time_zone_offset})"
    )
    return device


async def set_badge_count(store: Store, user_id: str, token: str, count: int = 0) -> None:
    """Overwrite a device's badge, typically resetting it to zero after reading."""
    try:
        await store.set_badge_count(user_id, token, count, datetime.now(timezone.utc))
    except DeviceNotFound as e:
        raise NotFound("Device not found") from e
    logger.debug(f"Badge for {token[:10]}... set to {count}")
