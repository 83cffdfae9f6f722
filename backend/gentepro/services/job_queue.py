"""Job Queue Service - Helper to enqueue background jobs from the API and worker."""

import logging
from datetime import timedelta
from typing import Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from gentepro.config import get_settings
from gentepro.pipeline.models import AutomationExecution
from gentepro.pipeline.services.automation_engine import AutomationScheduler

logger = logging.getLogger(__name__)
settings = get_settings()

# Global connection pool
_redis_pool: Optional[ArqRedis] = None


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from config."""
    return RedisSettings.from_dsn(settings.redis_url)


async def get_redis_pool() -> ArqRedis:
    """Get or create the Redis connection pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = await create_pool(get_redis_settings())
    return _redis_pool


async def close_redis_pool():
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.close()
        _redis_pool = None


class JobQueue:
    """Service for enqueuing background jobs."""

    @staticmethod
    async def enqueue_automation_execution(
        execution_id: str,
        job_id: Optional[str] = None,
        delay: Optional[timedelta] = None,
    ) -> Optional[str]:
        """
        Enqueue one attempt of an automation execution.

        Args:
            execution_id: UUID of the execution
            job_id: Deterministic job id; a job already queued under it is not duplicated
            delay: Optional delay before running

        Returns:
            Job ID if enqueued successfully, None otherwise
        """
        try:
            pool = await get_redis_pool()
            job = await pool.enqueue_job(
                "run_automation_execution",
                execution_id,
                _job_id=job_id,
                _defer_by=delay,
            )
            if job is None:
                logger.info(f"Automation job {job_id} already queued")
                return None
            logger.info(f"Enqueued automation execution job: {job.job_id}")
            return job.job_id
        except Exception as e:
            logger.error(f"Failed to enqueue automation execution {execution_id}: {str(e)}")
            return None

    @staticmethod
    async def enqueue_sla_notification(notification_id: str) -> Optional[str]:
        """Enqueue delivery of one SLA notification."""
        try:
            pool = await get_redis_pool()
            job = await pool.enqueue_job(
                "send_sla_notification",
                notification_id,
                _job_id=f"notificacao-sla:{notification_id}",
            )
            if job is None:
                return None
            logger.info(f"Enqueued SLA notification job: {job.job_id}")
            return job.job_id
        except Exception as e:
            logger.error(f"Failed to enqueue SLA notification: {str(e)}")
            return None

    @staticmethod
    async def enqueue_sla_check() -> Optional[str]:
        """Manually trigger an SLA check (normally runs on cron)."""
        try:
            pool = await get_redis_pool()
            job = await pool.enqueue_job("check_sla_alerts")
            logger.info(f"Enqueued SLA check job: {job.job_id}")
            return job.job_id
        except Exception as e:
            logger.error(f"Failed to enqueue SLA check: {str(e)}")
            return None


class ArqAutomationScheduler(AutomationScheduler):
    """Schedules automation executions as deferred arq jobs."""

    async def schedule(self, execution: AutomationExecution, delay_seconds: float) -> Optional[str]:
        return await JobQueue.enqueue_automation_execution(
            str(execution.id),
            job_id=execution.job_id,
            delay=timedelta(seconds=delay_seconds) if delay_seconds > 0 else None,
        )

