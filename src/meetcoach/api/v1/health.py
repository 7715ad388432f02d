"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks. The
readiness check verifies database connectivity and reports whether the LLM
and Recall.ai credentials are configured.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Basic liveness check.

    No external dependencies are checked -- just that the server is running.
    """
    settings = request.app.state.settings
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check database connectivity and provider configuration."""
    checks: dict = {"database": "ok", "litellm": "ok", "recall": "ok"}
    settings = request.app.state.settings

    try:
        engine = request.app.state.engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    if not (settings.ANTHROPIC_API_KEY or settings.OPENAI_API_KEY):
        checks["litellm"] = "no_keys"
    if not settings.RECALL_AI_API_KEY:
        checks["recall"] = "no_key"

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: 200 when the database answers, 503 otherwise.

    Missing provider keys are reported but do not fail readiness; the
    pipeline records its own failures per session.
    """
    checks = await _check_dependencies(request)
    healthy = checks.get("database") == "ok"

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if healthy else "degraded",
            "checks": checks,
        },
    )
