"""Clients for the practice-scenario generation service.

Both clients answer with the generation service's wire shape:
``{"success": bool, "simulationConfig" | "practiceConfig": {...}}`` on
success, ``{"success": False, "error": str}`` otherwise.

- LocalSimulationClient calls SimulationGenerator in-process.
- HttpSimulationClient POSTs to a remote generation endpoint with the same
  retry policy as the Recall.ai client.
"""

from __future__ import annotations

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.meetcoach.meetings.simulation.generator import (
    SimulationGenerationError,
    SimulationGenerator,
)

logger = structlog.get_logger(__name__)

_simulation_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.ConnectError, httpx.TimeoutException)),
)


class LocalSimulationClient:
    """In-process generation via SimulationGenerator."""

    def __init__(self, generator: SimulationGenerator) -> None:
        self._generator = generator

    async def generate(
        self, evaluation: dict, transcript: str, company_id: str | None
    ) -> dict:
        try:
            config = await self._generator.generate(evaluation, transcript, company_id)
        except SimulationGenerationError as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "practiceConfig": config}


class HttpSimulationClient:
    """Remote generation over HTTP.

    Args:
        url: Full URL of the generation endpoint.
        timeout: Request timeout in seconds; generation is slow.
    """

    def __init__(self, url: str, timeout: float = 90.0) -> None:
        self._url = url
        self._timeout = timeout

    @_simulation_retry
    async def generate(
        self, evaluation: dict, transcript: str, company_id: str | None
    ) -> dict:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                self._url,
                json={
                    "evaluation": evaluation,
                    "transcript": transcript,
                    "companyId": company_id,
                },
            )
            response.raise_for_status()
            logger.debug("simulation.remote_generated", url=self._url)
            return response.json()
