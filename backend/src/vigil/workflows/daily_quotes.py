"""Hourly daily-quote dispatch as a DBOS scheduled workflow."""

import logging
from datetime import datetime, timezone

from dbos import DBOS

from vigil.config import settings
from vigil.dependencies import get_dispatcher
from vigil.services.dispatcher import DispatchStats, UserDispatchResult

# Import DBOS config to initialize DBOS before defining workflows
from vigil.workflows.dbos_config import dbos_config  # noqa: F401

logger = logging.getLogger(__name__)


@DBOS.step()
async def list_users_step() -> list[str]:
    """Enumerate users for this run."""
    return await get_dispatcher().list_users()


@DBOS.step()
async def dispatch_user_step(user_id: str, now: datetime) -> UserDispatchResult:
    """Process one user; never raises."""
    return await get_dispatcher().dispatch_user_safely(user_id, now)


@DBOS.scheduled(settings.dispatch_schedule)
@DBOS.workflow()
async def scheduled_daily_quotes(scheduled_time: datetime, actual_time: datetime) -> None:
    """
    Send daily quote notifications for one hourly tick.

    Each user is a separate step, so a recovered workflow resumes after
    the last completed user. The workflow ID is derived from the scheduled
    time, so one tick never runs twice.
    """
    now = scheduled_time.astimezone(timezone.utc)
    logger.info(f"Starting scheduled quotes job for {now.isoformat()} (started {actual_time.isoformat()})")

    try:
        user_ids = await list_users_step()
    except Exception as e:
        logger.error(f"Fatal error in scheduled quotes job: {e}")
        raise

    stats = DispatchStats(users_total=len(user_ids))
    if not user_ids:
        logger.info("No users found. Ending job.")
        return

    for user_id in user_ids:
        stats.record(await dispatch_user_step(user_id, now))

    logger.info(f"Completed scheduled quotes job: {stats.as_dict()}")
