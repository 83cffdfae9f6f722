"""Automation Tasks - Background jobs that run scheduled stage automations."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from uuid import UUID

from gentepro.config import get_settings
from gentepro.core.database import async_session_maker
from gentepro.core.exceptions import NotFoundError, PermanentAutomationFailure
from gentepro.pipeline.enums import ExecutionStatus
from gentepro.pipeline.repository import SqlAlchemyPipelineRepository
from gentepro.pipeline.services.automation_engine import AutomationEngine
from gentepro.services.job_queue import ArqAutomationScheduler

logger = logging.getLogger(__name__)
settings = get_settings()


async def run_automation_execution(ctx: Dict[str, Any], execution_id: str) -> Dict[str, Any]:
    """
    Background task to run one attempt of an automation execution.

    Retries are scheduled as new deferred jobs once the attempt is committed.
    A permanent failure is recorded on the execution and logged, never re-raised.

    Args:
        ctx: ARQ context
        execution_id: UUID of the automation execution

    Returns:
        Dict with the execution status
    """
    logger.info(f"Running automation execution {execution_id}")

    async with async_session_maker() as session:
        engine = AutomationEngine(SqlAlchemyPipelineRepository(session), scheduler=ArqAutomationScheduler())
        try:
            result = await engine.run_execution(UUID(execution_id))
        except NotFoundError as e:
            logger.error(f"Automation execution {execution_id} not found: {e.message}")
            return {"execution_id": execution_id, "status": "missing"}
        except PermanentAutomationFailure as e:
            result = {"execution_id": execution_id, "status": ExecutionStatus.FAILED.value, "error": e.message}
            logger.error(f"Automation execution {execution_id} failed permanently: {e.message}")
        await session.commit()

    await engine.dispatch_pending()
    return result


async def requeue_overdue_executions(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """
    Re-queue pending executions whose run time passed without a worker picking them up.

    Job ids are deterministic per attempt, so executions that are still queued
    are not duplicated.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.execution_requeue_grace_minutes)

    async with async_session_maker() as session:
        repository = SqlAlchemyPipelineRepository(session)
        overdue = await repository.list_overdue_executions(cutoff)
        engine = AutomationEngine(repository, scheduler=ArqAutomationScheduler())
        job_ids = await engine.dispatch(overdue)

    if job_ids:
        logger.info(f"Re-queued {len(job_ids)} overdue automation executions")
    return {"overdue": len(overdue), "requeued": len(job_ids)}
