"""Shared router dependencies and error translation."""

from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gentepro.core.database import get_db
from gentepro.core.exceptions import (
    BusinessRuleError,
    ConflictError,
    GenteProException,
    IntegrationError,
    NotFoundError,
    ValidationError,
)
from gentepro.core.security import TokenData
from gentepro.pipeline.repository import PipelineRepository, SqlAlchemyPipelineRepository
from gentepro.pipeline.services.automation_engine import AutomationEngine
from gentepro.services.job_queue import ArqAutomationScheduler


def get_repository(db: AsyncSession = Depends(get_db)) -> PipelineRepository:
    """Repository bound to the request's session."""
    return SqlAlchemyPipelineRepository(db)


def get_automation_engine(repository: PipelineRepository = Depends(get_repository)) -> AutomationEngine:
    """Automation engine that schedules executions on the arq queue."""
    return AutomationEngine(repository, scheduler=ArqAutomationScheduler())


def to_http_exception(error: GenteProException) -> HTTPException:
    """Translate an application error into an HTTP error."""
    if isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, BusinessRuleError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, IntegrationError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST

    detail = {"message": error.message, **error.details} if error.details else error.message
    return HTTPException(status_code=code, detail=detail)


def ensure_company_access(company_id: UUID, current_user: TokenData) -> None:
    """Company-scoped paths must match the company in the token."""
    if company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access to this company is not allowed",
        )
