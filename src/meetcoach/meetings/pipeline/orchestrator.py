"""EvaluationPipeline -- turns a finished recording session into an evaluation.

One call to process() is one logical task for one session id:

    load session -> idempotency guard -> processing -> settle delay
    -> retrieve transcript (one delayed retry) -> evaluating
    -> scorer || notes -> reconcile -> insert-or-fetch evaluation
    -> completed -> notification -> fan-out

Fatal outcomes (empty transcript after the retry, scorer failure, any
unexpected error before the session is completed) move the session to
error, store the message and emit a failure notification. The pipeline does
not retry them; a new trigger has to be delivered.

Non-fatal outcomes (notes failure, notification write failure, fan-out
failures) are logged and leave the run's result unchanged.

There are no locks: two runs racing on one session are reconciled by the
idempotency pre-check and the unique meeting_id on evaluation records.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

from src.meetcoach.core.monitoring import track_pipeline_run
from src.meetcoach.meetings.bot.transcript import TranscriptRetriever
from src.meetcoach.meetings.evaluation.notes import NotesExtractor
from src.meetcoach.meetings.evaluation.scorer import EvaluationScorer
from src.meetcoach.meetings.evaluation.scoring import (
    resolve_overall_score,
    resolve_performance_level,
)
from src.meetcoach.meetings.pipeline.branches import BranchResult, run_branch
from src.meetcoach.meetings.pipeline.fanout import FanoutEmitters
from src.meetcoach.meetings.pipeline.notifications import NotificationEmitter
from src.meetcoach.meetings.repository import MeetingRepository
from src.meetcoach.meetings.schemas import (
    BotSession,
    EvaluationRecord,
    MeetEvaluation,
    PerformanceLevel,
    SessionStatus,
    SmartNotes,
    TranscriptSegment,
    flatten_transcript,
)

logger = structlog.get_logger(__name__)

SESSION_NOT_FOUND = "session not found"
EMPTY_TRANSCRIPT = "empty transcript"
SELLER_NOT_IDENTIFIED = "Not identified"


class PipelineError(Exception):
    """A fatal, user-visible pipeline failure."""


@dataclass
class PipelineOutcome:
    """What one pipeline run ended with."""

    session_id: str
    status: SessionStatus
    evaluation_id: uuid.UUID | None = None
    overall_score: int | None = None
    performance_level: PerformanceLevel | None = None
    error: str | None = None
    created: bool = False
    fanout: list[BranchResult] = field(default_factory=list)


def build_evaluation_record(
    session: BotSession,
    segments: list[TranscriptSegment],
    evaluation: MeetEvaluation,
    notes: SmartNotes | None,
) -> EvaluationRecord:
    """Assemble the persisted record from the scorer and notes output."""
    score = resolve_overall_score(evaluation)
    level = resolve_performance_level(evaluation, score)
    seller = evaluation.seller_identification
    spin = evaluation.spin_evaluation

    return EvaluationRecord(
        user_id=session.user_id,
        company_id=session.company_id,
        meeting_id=session.bot_id,
        seller_name=(seller.name if seller and seller.name else SELLER_NOT_IDENTIFIED),
        transcript=segments,
        evaluation=evaluation.model_dump(mode="json"),
        overall_score=score,
        performance_level=level,
        spin_s_score=spin.S.final_score,
        spin_p_score=spin.P.final_score,
        spin_i_score=spin.I.final_score,
        spin_n_score=spin.N.final_score,
        smart_notes=notes.model_dump(mode="json") if notes is not None else None,
    )


class EvaluationPipeline:
    """Per-session evaluation state machine.

    Args:
        repository: MeetingRepository for session and evaluation state.
        retriever: TranscriptRetriever for the recording's transcript.
        scorer: EvaluationScorer (required branch).
        notes: NotesExtractor (optional branch).
        notifications: NotificationEmitter for terminal-state notifications.
        fanout: FanoutEmitters run after completion.
        settle_delay: Seconds to wait before the first transcript fetch.
        retry_delay: Seconds to wait before the single transcript retry.
        sleep: Awaitable delay function (asyncio.sleep).
    """

    def __init__(
        self,
        repository: MeetingRepository,
        retriever: TranscriptRetriever,
        scorer: EvaluationScorer,
        notes: NotesExtractor,
        notifications: NotificationEmitter,
        fanout: FanoutEmitters,
        settle_delay: float = 5.0,
        retry_delay: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._retriever = retriever
        self._scorer = scorer
        self._notes = notes
        self._notifications = notifications
        self._fanout = fanout
        self._settle_delay = settle_delay
        self._retry_delay = retry_delay
        self._sleep = sleep

    async def process(self, session_id: str) -> PipelineOutcome:
        """Run the pipeline for ``session_id``. Never raises."""
        with structlog.contextvars.bound_contextvars(session_id=session_id):
            async with track_pipeline_run() as tracker:
                outcome = await self._run(session_id)
                tracker["status"] = outcome.status.value
            logger.info(
                "pipeline.finished",
                status=outcome.status.value,
                evaluation_id=str(outcome.evaluation_id) if outcome.evaluation_id else None,
                overall_score=outcome.overall_score,
                error=outcome.error,
            )
            return outcome

    async def _run(self, session_id: str) -> PipelineOutcome:
        try:
            session = await self._repository.get_session(session_id)
        except Exception as exc:
            logger.error("pipeline.session_load_failed", exc_info=True)
            return PipelineOutcome(session_id, SessionStatus.ERROR, error=str(exc))

        if session is None:
            logger.warning("pipeline.session_not_found")
            return PipelineOutcome(session_id, SessionStatus.ERROR, error=SESSION_NOT_FOUND)

        try:
            existing = await self._repository.get_evaluation_by_meeting(session_id)
            if existing is not None:
                logger.info(
                    "pipeline.already_evaluated",
                    evaluation_id=str(existing.id),
                )
                await self._repository.update_session(
                    session_id, SessionStatus.COMPLETED, evaluation_id=existing.id
                )
                return PipelineOutcome(
                    session_id,
                    SessionStatus.COMPLETED,
                    evaluation_id=existing.id,
                    overall_score=existing.overall_score,
                    performance_level=existing.performance_level,
                )

            record, created, transcript_text = await self._evaluate(session)
        except Exception as exc:
            return await self._fail(session, exc)

        # Record already committed: no error state and no failure notice past here
        try:
            await self._repository.update_session(
                session_id, SessionStatus.COMPLETED, evaluation_id=record.id
            )
        except Exception as exc:
            logger.error(
                "pipeline.completed_state_write_failed",
                evaluation_id=str(record.id),
                exc_info=True,
            )
            return PipelineOutcome(
                session_id,
                SessionStatus.ERROR,
                evaluation_id=record.id,
                overall_score=record.overall_score,
                performance_level=record.performance_level,
                error=str(exc) or type(exc).__name__,
                created=created,
            )

        await self._notifications.evaluation_ready(session, record)
        fanout = await self._fanout.emit(session, record, transcript_text)

        return PipelineOutcome(
            session_id,
            SessionStatus.COMPLETED,
            evaluation_id=record.id,
            overall_score=record.overall_score,
            performance_level=record.performance_level,
            created=created,
            fanout=fanout,
        )

    async def _evaluate(self, session: BotSession) -> tuple[EvaluationRecord, bool, str]:
        """Steps from processing to the persisted record; raises on any fatal outcome."""
        session_id = session.bot_id

        await self._repository.update_session(session_id, SessionStatus.PROCESSING)
        await self._sleep(self._settle_delay)

        segments = await self._retriever.fetch(session_id)
        if not segments:
            logger.info("pipeline.transcript_empty_retrying", delay=self._retry_delay)
            await self._sleep(self._retry_delay)
            segments = await self._retriever.fetch(session_id)
        if not segments:
            raise PipelineError(EMPTY_TRANSCRIPT)

        await self._repository.update_session(
            session_id, SessionStatus.EVALUATING, transcript=segments
        )
        transcript_text = flatten_transcript(segments)

        scored, noted = await asyncio.gather(
            run_branch("scorer", self._scorer.evaluate(transcript_text, session.company_id)),
            run_branch("notes", self._notes.extract(transcript_text, session.company_id)),
        )

        if not scored.ok:
            raise PipelineError(scored.error or "evaluation failed")
        scorer_result = scored.value
        if not scorer_result.success or scorer_result.evaluation is None:
            raise PipelineError(scorer_result.error or "evaluation failed")

        notes = None
        if noted.ok and noted.value.success:
            notes = noted.value.notes
        else:
            logger.warning(
                "pipeline.notes_unavailable",
                error=noted.error if not noted.ok else noted.value.error,
            )

        record, created = await self._repository.insert_or_get_evaluation(
            build_evaluation_record(session, segments, scorer_result.evaluation, notes)
        )
        if not created:
            logger.info("pipeline.evaluation_race_lost", evaluation_id=str(record.id))
        return record, created, transcript_text

    async def _fail(self, session: BotSession, exc: Exception) -> PipelineOutcome:
        """Move the session to error and tell the user."""
        message = str(exc) or type(exc).__name__
        if isinstance(exc, PipelineError):
            logger.warning("pipeline.failed", error=message)
        else:
            logger.error("pipeline.failed", error=message, exc_info=True)

        try:
            await self._repository.update_session(
                session.bot_id, SessionStatus.ERROR, error_message=message
            )
        except Exception:
            logger.error("pipeline.error_state_write_failed", exc_info=True)

        await self._notifications.evaluation_failed(session, message)
        return PipelineOutcome(session.bot_id, SessionStatus.ERROR, error=message)
