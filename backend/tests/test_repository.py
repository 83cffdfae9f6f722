"""SQLAlchemy repository tests. Require PostgreSQL; run with RUN_DB_TESTS=1."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from gentepro.config import get_settings
from gentepro.core.database import Base
from gentepro.pipeline import models  # noqa: F401  registers the tables
from gentepro.pipeline.models import AutomationRule, AutomationExecution, PipelineModel, StageMovement
from gentepro.pipeline.repository import SqlAlchemyPipelineRepository
from tests.fakes import build_pipeline, place_candidate


pytestmark = pytest.mark.db


@pytest.fixture
async def repository():
    engine = create_async_engine(
        get_settings().database_url.replace("postgresql://", "postgresql+asyncpg://"),
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield SqlAlchemyPipelineRepository(session)
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def test_versioned_update_is_compare_and_set(repository, company_id):
    stages = await build_pipeline(repository, company_id, ["Triagem", "Entrevista"])
    assignment = await place_candidate(repository, company_id, stages[0], datetime.now(timezone.utc))

    moved = await repository.update_assignment_versioned(assignment.id, 1, current_stage_id=stages[1].id)
    stale = await repository.update_assignment_versioned(assignment.id, 1, current_stage_id=stages[0].id)

    assert moved.version == 2
    assert moved.current_stage_id == stages[1].id
    assert stale is None


async def test_single_default_model(repository, company_id):
    await build_pipeline(repository, company_id, ["Triagem"])
    second = await repository.add(PipelineModel(company_id=company_id, name="Outro", is_default=True))

    unset = await repository.unset_default_models(company_id, keep_id=second.id)

    assert unset == 1
    assert (await repository.get_default_pipeline_model(company_id)).id == second.id


async def test_savepoint_rolls_back_inner_work(repository, company_id):
    stage = (await build_pipeline(repository, company_id, ["Triagem"]))[0]

    with pytest.raises(RuntimeError):
        async with repository.transaction():
            await repository.add(
                AutomationRule(stage_id=stage.id, name="Regra", type="notificacao", actions=[], order=1)
            )
            raise RuntimeError("boom")

    assert await repository.list_automation_rules(stage.id, active_only=False) == []
    assert await repository.get_stage(stage.id) is not None


async def test_overdue_executions(repository, company_id):
    stage = (await build_pipeline(repository, company_id, ["Triagem"]))[0]
    rule = await repository.add(AutomationRule(stage_id=stage.id, name="Regra", type="notificacao", actions=[]))
    assignment = await place_candidate(repository, company_id, stage, datetime.now(timezone.utc))
    now = datetime.now(timezone.utc)
    for run_at in (now - timedelta(hours=1), now + timedelta(hours=1)):
        await repository.add(
            AutomationExecution(
                id=uuid4(),
                company_id=company_id,
                rule_id=rule.id,
                assignment_id=assignment.id,
                stage_id=stage.id,
                run_at=run_at,
            )
        )

    overdue = await repository.list_overdue_executions(now)

    assert [e.run_at for e in overdue] == [now - timedelta(hours=1)]


async def test_stage_movements_oldest_first(repository, company_id):
    stages = await build_pipeline(repository, company_id, ["Triagem", "Entrevista"])
    assignment = await place_candidate(repository, company_id, stages[0], datetime.now(timezone.utc))
    now = datetime.now(timezone.utc)
    for moved_at, target in ((now, stages[0]), (now - timedelta(days=1), stages[1])):
        await repository.add(
            StageMovement(
                assignment_id=assignment.id,
                from_stage_id=stages[0].id,
                to_stage_id=target.id,
                moved_at=moved_at,
            )
        )

    movements = await repository.list_stage_movements(assignment.id)

    assert [m.to_stage_id for m in movements] == [stages[1].id, stages[0].id]
