"""ARQ Worker Entry Point.

Run with: arq workers.worker.WorkerSettings

This starts the background worker process that handles:
- SLA alert checks (scheduled)
- SLA alert notifications
- Stage automation executions and their retries
- Re-queueing of overdue automation executions (scheduled)
"""

import logging
from datetime import datetime, timezone

from arq import cron, func

from gentepro.config import get_settings
from gentepro.services.job_queue import close_redis_pool, get_redis_settings
from workers.tasks.automations import requeue_overdue_executions, run_automation_execution
from workers.tasks.notifications import send_sla_notification
from workers.tasks.sla_alerts import check_sla_alerts

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


async def startup(ctx):
    """Worker startup - log start."""
    logger.info("=" * 50)
    logger.info("ARQ Worker Starting")
    logger.info(f"Started at: {datetime.now(timezone.utc).isoformat()}")
    logger.info(f"Redis: {settings.redis_url}")
    logger.info("=" * 50)


async def shutdown(ctx):
    """Worker shutdown - cleanup connections."""
    await close_redis_pool()
    logger.info("ARQ Worker Shutting Down")
    logger.info(f"Stopped at: {datetime.now(timezone.utc).isoformat()}")


class WorkerSettings:
    """ARQ Worker Settings.

    Available tasks:
    - check_sla_alerts: Evaluate stage SLAs and create/escalate/resolve alerts
    - send_sla_notification: Deliver one alert notification (retried with backoff)
    - run_automation_execution: Run one attempt of a scheduled stage automation
    - requeue_overdue_executions: Re-queue automations no worker picked up
    """

    # Redis connection settings
    redis_settings = get_redis_settings()

    # All available task functions
    functions = [
        # SLA Monitoring
        check_sla_alerts,
        func(send_sla_notification, max_tries=settings.notification_max_tries),

        # Stage Automations
        run_automation_execution,
        requeue_overdue_executions,
    ]

    # Scheduled cron jobs
    cron_jobs = [
        # Check SLAs every hour at the configured minute
        cron(check_sla_alerts, hour=None, minute=settings.sla_check_minute),
        # Sweep overdue automations every 10 minutes
        cron(requeue_overdue_executions, minute={0, 10, 20, 30, 40, 50}),
    ]

    # Lifecycle hooks
    on_startup = startup
    on_shutdown = shutdown

    # Worker configuration
    max_jobs = 10  # Max concurrent jobs
    job_timeout = 300  # 5 minutes per job
    keep_result = 3600  # Keep results for 1 hour
    poll_delay = 0.5  # Poll Redis every 0.5 seconds
    queue_read_limit = 30  # Read up to 30 jobs at once


# For running with: python -m workers.worker
if __name__ == "__main__":
    from arq import run_worker

    print("Starting ARQ Worker...")
    print(f"Redis: {settings.redis_url}")
    print("Press Ctrl+C to stop")

    run_worker(WorkerSettings)
