"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for database and service initialization, the health router
and the v1 API router.

Every client the pipeline needs is constructed here, from one Settings
instance, and handed to its consumers explicitly. Nothing below relies on
module-level singletons.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncEngine

from src.meetcoach.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.meetcoach.api.v1 import health
from src.meetcoach.api.v1.router import router as v1_router
from src.meetcoach.config import Environment, Settings, get_settings
from src.meetcoach.core.database import (
    close_db,
    create_engine_from_settings,
    init_db,
    make_session_factory,
)
from src.meetcoach.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.meetcoach.meetings.bot.recall_client import RecallClient
from src.meetcoach.meetings.bot.transcript import TranscriptRetriever
from src.meetcoach.meetings.evaluation.notes import NotesExtractor
from src.meetcoach.meetings.evaluation.scorer import EvaluationScorer
from src.meetcoach.meetings.pipeline.fanout import FanoutEmitters
from src.meetcoach.meetings.pipeline.notifications import NotificationEmitter
from src.meetcoach.meetings.pipeline.orchestrator import EvaluationPipeline
from src.meetcoach.meetings.repository import MeetingRepository, OrganizationRepository
from src.meetcoach.meetings.simulation.client import HttpSimulationClient, LocalSimulationClient
from src.meetcoach.meetings.simulation.generator import SimulationGenerator
from src.meetcoach.services.llm import LLMService


@dataclass
class PipelineServices:
    """Everything the HTTP surface and the CLI need, built once."""

    engine: AsyncEngine
    meeting_repository: MeetingRepository
    organization_repository: OrganizationRepository
    llm_service: LLMService
    simulation_generator: SimulationGenerator
    pipeline: EvaluationPipeline


def build_services(settings: Settings) -> PipelineServices:
    """Construct the engine, repositories, clients and the pipeline."""
    engine = create_engine_from_settings(settings)
    session_factory = make_session_factory(engine)

    meeting_repo = MeetingRepository(session_factory=session_factory)
    org_repo = OrganizationRepository(session_factory=session_factory)
    llm_service = LLMService(settings)

    recall_client = RecallClient(
        api_key=settings.RECALL_AI_API_KEY,
        region=settings.RECALL_AI_REGION,
    )
    generator = SimulationGenerator(llm_service=llm_service, organizations=org_repo)
    if settings.SIMULATION_SERVICE_URL:
        simulation_client = HttpSimulationClient(settings.SIMULATION_SERVICE_URL)
    else:
        simulation_client = LocalSimulationClient(generator)

    pipeline = EvaluationPipeline(
        repository=meeting_repo,
        retriever=TranscriptRetriever(recall_client),
        scorer=EvaluationScorer(
            organizations=org_repo,
            llm_service=llm_service,
            max_transcript_chars=settings.TRANSCRIPT_MAX_CHARS,
        ),
        notes=NotesExtractor(
            organizations=org_repo,
            llm_service=llm_service,
            max_observations=settings.NOTES_MAX_OBSERVATIONS,
            max_transcript_chars=settings.TRANSCRIPT_MAX_CHARS,
        ),
        notifications=NotificationEmitter(meeting_repo),
        fanout=FanoutEmitters(meeting_repo, simulation_client),
        settle_delay=settings.PIPELINE_SETTLE_DELAY_SECONDS,
        retry_delay=settings.PIPELINE_RETRY_DELAY_SECONDS,
    )

    return PipelineServices(
        engine=engine,
        meeting_repository=meeting_repo,
        organization_repository=org_repo,
        llm_service=llm_service,
        simulation_generator=generator,
        pipeline=pipeline,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build services on startup, dispose on shutdown."""
    log = structlog.get_logger(__name__)
    settings: Settings = app.state.settings
    configure_structlog(settings)

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    services = build_services(settings)
    app.state.engine = services.engine
    app.state.meeting_repository = services.meeting_repository
    app.state.simulation_generator = services.simulation_generator
    app.state.pipeline = services.pipeline

    if settings.ENVIRONMENT == Environment.development:
        try:
            await init_db(services.engine)
        except Exception:
            log.warning("startup.init_db_failed", exc_info=True)

    log.info(
        "startup.pipeline_initialized",
        recall_configured=bool(settings.RECALL_AI_API_KEY),
        llm_configured=services.llm_service.router is not None,
        simulation_remote=bool(settings.SIMULATION_SERVICE_URL),
    )

    yield

    await close_db(services.engine)
    log.info("shutdown.complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="MeetCoach API",
        version="0.1.0",
        description="Background evaluation pipeline for recorded sales meetings",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(health.router)
    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
