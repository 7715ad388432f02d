"""REST endpoints for the meeting evaluation pipeline.

Provides the Recall.ai webhook that schedules the pipeline when a bot
finishes, a direct trigger for operators and pollers, read endpoints for
session state and evaluation records, and the practice-scenario generation
endpoint.

Pipeline runs are scheduled as FastAPI background tasks: the HTTP response
is sent first and the run continues in the same process.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.meetcoach.meetings.schemas import (
    BotSession,
    EvaluationRecord,
    SimulationRequest,
)
from src.meetcoach.meetings.simulation.generator import SimulationGenerationError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])

# Bot status codes after which the recording artifacts exist
COMPLETION_CODES = frozenset({"done", "call_ended"})


# ── Response Schemas ─────────────────────────────────────────────────────────


class SessionResponse(BaseModel):
    """Response for session state, serializes datetimes to ISO strings."""

    session_id: str
    user_id: str
    company_id: str
    status: str
    evaluation_id: str | None = None
    error_message: str | None = None
    segment_count: int = 0
    created_at: str | None = None
    updated_at: str | None = None


class EvaluationResponse(BaseModel):
    """Response for an evaluation record."""

    id: str
    meeting_id: str
    user_id: str
    seller_name: str
    overall_score: int
    performance_level: str
    spin_scores: dict[str, float]
    evaluation: dict
    smart_notes: dict | None = None
    transcript: list[dict] = Field(default_factory=list)
    created_at: str | None = None


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_state(request: Request, name: str, label: str) -> Any:
    """Retrieve a service from app.state, 503 if not available."""
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def _session_to_response(s: BotSession) -> SessionResponse:
    return SessionResponse(
        session_id=s.bot_id,
        user_id=s.user_id,
        company_id=s.company_id,
        status=s.status.value,
        evaluation_id=str(s.evaluation_id) if s.evaluation_id else None,
        error_message=s.error_message,
        segment_count=len(s.transcript),
        created_at=s.created_at.isoformat() if s.created_at else None,
        updated_at=s.updated_at.isoformat() if s.updated_at else None,
    )


def _evaluation_to_response(e: EvaluationRecord) -> EvaluationResponse:
    return EvaluationResponse(
        id=str(e.id),
        meeting_id=e.meeting_id,
        user_id=e.user_id,
        seller_name=e.seller_name,
        overall_score=e.overall_score,
        performance_level=e.performance_level.value,
        spin_scores={
            "S": e.spin_s_score,
            "P": e.spin_p_score,
            "I": e.spin_i_score,
            "N": e.spin_n_score,
        },
        evaluation=e.evaluation,
        smart_notes=e.smart_notes,
        transcript=[s.model_dump(mode="json", by_alias=True) for s in e.transcript],
        created_at=e.created_at.isoformat() if e.created_at else None,
    )


def _extract_bot_id(payload: dict) -> str:
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    bot = data.get("bot") if isinstance(data.get("bot"), dict) else {}
    return str(bot.get("id") or data.get("bot_id") or payload.get("bot_id") or "")


def _extract_status_code(payload: dict) -> str:
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    raw = data.get("status", payload.get("status"))
    if isinstance(raw, dict):
        raw = raw.get("code")
    return str(raw or "")


def is_completion_event(payload: dict) -> bool:
    """Whether a webhook payload signals that the recording has finished."""
    event_type = payload.get("event", payload.get("type", ""))
    if event_type == "bot.done":
        return True
    return event_type == "bot.status_change" and _extract_status_code(payload) in COMPLETION_CODES


# ── Webhook ──────────────────────────────────────────────────────────────────


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
) -> dict:
    """Recall.ai webhook receiver.

    Schedules the evaluation pipeline when a bot reports that its call is
    over. Returns 200 OK always so the provider does not redeliver on
    processing errors.
    """
    try:
        payload = await request.json()
    except Exception:
        return {"status": "ok"}
    if not isinstance(payload, dict):
        return {"status": "ok"}

    event_type = payload.get("event", payload.get("type", ""))
    bot_id = _extract_bot_id(payload)

    settings = getattr(request.app.state, "settings", None)
    webhook_token = getattr(settings, "RECALL_AI_WEBHOOK_TOKEN", None)
    if webhook_token:
        request_token = request.headers.get("X-Recall-Token", "")
        if request_token != webhook_token:
            logger.warning(
                "webhook.invalid_token",
                bot_id=bot_id,
                event_type=event_type,
            )
            return {"status": "ok"}

    if not bot_id:
        logger.warning("webhook.missing_bot_id", event_type=event_type)
        return {"status": "ok"}

    if not is_completion_event(payload):
        logger.debug("webhook.event_ignored", bot_id=bot_id, event_type=event_type)
        return {"status": "ok"}

    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        logger.error("webhook.pipeline_unavailable", bot_id=bot_id)
        return {"status": "ok"}

    background_tasks.add_task(pipeline.process, bot_id)
    logger.info("webhook.pipeline_scheduled", bot_id=bot_id, event_type=event_type)
    return {"status": "ok"}


# ── Sessions ─────────────────────────────────────────────────────────────────


@router.post("/sessions/{session_id}/evaluate", status_code=status.HTTP_202_ACCEPTED)
async def trigger_evaluation(
    session_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
) -> dict:
    """Schedule the evaluation pipeline for a session directly."""
    pipeline = _get_state(request, "pipeline", "Evaluation pipeline")
    background_tasks.add_task(pipeline.process, session_id)
    logger.info("pipeline.trigger_accepted", session_id=session_id)
    return {"status": "accepted", "session_id": session_id}


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, request: Request) -> SessionResponse:
    """Get the pipeline state of a session."""
    repo = _get_state(request, "meeting_repository", "Meeting repository")
    session = await repo.get_session(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )
    return _session_to_response(session)


@router.get("/sessions/{session_id}/evaluation", response_model=EvaluationResponse)
async def get_evaluation(session_id: str, request: Request) -> EvaluationResponse:
    """Get the evaluation record produced for a session."""
    repo = _get_state(request, "meeting_repository", "Meeting repository")
    record = await repo.get_evaluation_by_meeting(session_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Evaluation not found for session: {session_id}",
        )
    return _evaluation_to_response(record)


# ── Practice Scenarios ───────────────────────────────────────────────────────


@router.post("/generate-simulation")
async def generate_simulation(body: SimulationRequest, request: Request) -> dict:
    """Generate a practice scenario from an evaluation and its transcript."""
    generator = _get_state(request, "simulation_generator", "Simulation generator")
    try:
        config = await generator.generate(body.evaluation, body.transcript, body.company_id)
    except SimulationGenerationError as exc:
        logger.warning("simulation.generation_rejected", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    except RuntimeError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return {"success": True, "practiceConfig": config}
