"""GentePRO Pipeline Engine FastAPI Application Entry Point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gentepro.config import get_settings
from gentepro.core.database import init_db
from gentepro.pipeline.routers import alerts, assignments, automations, pipeline_models, templates
from gentepro.services.job_queue import close_redis_pool


settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    await init_db()
    yield
    # Shutdown
    await close_redis_pool()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Recruitment pipeline stages, SLA alerts and stage automations",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# API routers
app.include_router(
    pipeline_models.router,
    prefix=settings.api_v1_prefix,
    tags=["Pipeline - Models & Stages"],
)

app.include_router(
    templates.router,
    prefix=settings.api_v1_prefix,
    tags=["Pipeline - Templates"],
)

app.include_router(
    assignments.router,
    prefix=settings.api_v1_prefix,
    tags=["Pipeline - Candidates"],
)

app.include_router(
    alerts.router,
    prefix=settings.api_v1_prefix,
    tags=["Pipeline - SLA Alerts"],
)

app.include_router(
    automations.router,
    prefix=settings.api_v1_prefix,
    tags=["Pipeline - Automations"],
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gentepro.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
