"""Fan-out emitters -- side effects of a committed evaluation.

Runs after the session is completed. Each emitter is wrapped by
run_branch and all of them run concurrently, so one emitter's failure is
logged and reported on its own BranchResult without touching the others or
the committed evaluation.

Emitters:
- calendar: mark the calendar entry recorded by this bot as completed
- simulation: generate a follow-up practice scenario and store it pending
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog

from src.meetcoach.meetings.pipeline.branches import BranchResult, run_branch
from src.meetcoach.meetings.repository import MeetingRepository
from src.meetcoach.meetings.schemas import BotSession, EvaluationRecord, SavedSimulation

logger = structlog.get_logger(__name__)

CONFIG_KEYS = ("simulationConfig", "practiceConfig")


class SimulationClient(Protocol):
    async def generate(
        self, evaluation: dict, transcript: str, company_id: str | None
    ) -> dict: ...


def extract_simulation_config(response: Any) -> dict:
    """Pull the scenario config out of a generation-service response.

    Raises:
        ValueError: If the response is unsuccessful or carries no config.
    """
    if not isinstance(response, dict) or not response.get("success"):
        error = response.get("error") if isinstance(response, dict) else None
        raise ValueError(f"Simulation generation unsuccessful: {error or 'no detail'}")
    for key in CONFIG_KEYS:
        config = response.get(key)
        if isinstance(config, dict) and config:
            return config
    raise ValueError("Simulation generation response carried no config")


class FanoutEmitters:
    """Runs the post-completion emitters for one evaluation.

    Args:
        repository: MeetingRepository for calendar and scenario writes.
        simulation_client: Generation service client; None disables the
            practice-scenario emitter.
    """

    def __init__(
        self,
        repository: MeetingRepository,
        simulation_client: SimulationClient | None = None,
    ) -> None:
        self._repository = repository
        self._simulation_client = simulation_client

    async def emit(
        self,
        session: BotSession,
        record: EvaluationRecord,
        transcript_text: str,
    ) -> list[BranchResult]:
        """Run every emitter concurrently; never raises."""
        branches = [
            run_branch("calendar", self.sync_calendar(session, record)),
        ]
        if self._simulation_client is not None:
            branches.append(
                run_branch(
                    "simulation",
                    self.generate_practice_scenario(session, record, transcript_text),
                )
            )
        results = list(await asyncio.gather(*branches))
        logger.info(
            "fanout.completed",
            session_id=session.bot_id,
            evaluation_id=str(record.id),
            results={r.name: r.ok for r in results},
        )
        return results

    async def sync_calendar(self, session: BotSession, record: EvaluationRecord) -> int:
        updated = await self._repository.link_calendar_evaluation(session.bot_id, record.id)
        if updated == 0:
            logger.debug("fanout.calendar_entry_absent", session_id=session.bot_id)
        else:
            logger.info(
                "fanout.calendar_synced",
                session_id=session.bot_id,
                rows=updated,
            )
        return updated

    async def generate_practice_scenario(
        self,
        session: BotSession,
        record: EvaluationRecord,
        transcript_text: str,
    ) -> SavedSimulation:
        response = await self._simulation_client.generate(
            record.evaluation, transcript_text, session.company_id
        )
        config = extract_simulation_config(response)
        justification = config.get("simulation_justification")

        saved = await self._repository.save_simulation(
            SavedSimulation(
                user_id=session.user_id,
                company_id=session.company_id,
                meet_evaluation_id=record.id,
                simulation_config=config,
                simulation_justification=justification if isinstance(justification, str) else None,
            )
        )
        logger.info(
            "fanout.practice_scenario_saved",
            session_id=session.bot_id,
            evaluation_id=str(record.id),
            simulation_id=str(saved.id),
        )
        return saved
