"""SLA Alert Scheduler - Background task to check stage SLAs and queue alert notifications."""

import logging
from typing import Any, Dict

from gentepro.config import get_settings
from gentepro.core.database import async_session_maker
from gentepro.pipeline.repository import SqlAlchemyPipelineRepository
from gentepro.pipeline.services.sla_evaluator import SlaEvaluator
from gentepro.services.job_queue import JobQueue

logger = logging.getLogger(__name__)


async def check_sla_alerts(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """
    Background task to check every active candidate stage assignment against its stage SLAs.

    This task runs on cron (hourly by default) to:
    1. Create, escalate or resolve SLA alerts
    2. Queue one notification job per new or changed alert target

    Returns a summary of the check.
    """
    logger.info("Starting SLA alert check...")

    async with async_session_maker() as session:
        repository = SqlAlchemyPipelineRepository(session)
        results = await SlaEvaluator(repository).evaluate_all(
            commit_every=get_settings().sla_commit_batch_size
        )
        await session.commit()

    # Notifications are queued only once the alerts they belong to are committed
    notification_ids = [str(n) for n in results.pop("notification_ids")]
    results["notifications_queued"] = 0
    for notification_id in notification_ids:
        if await JobQueue.enqueue_sla_notification(notification_id):
            results["notifications_queued"] += 1

    logger.info(f"SLA check complete: {results}")
    return results
