"""Meeting evaluation repositories -- async persistence for the pipeline.

Provides MeetingRepository (sessions, evaluation records, notifications,
calendar links, saved simulations) and OrganizationRepository (read-only
organization configuration) with the session_factory callable pattern.
Handles serialization between Pydantic schemas and SQLAlchemy models.

JSON columns use Pydantic model_dump(mode="json") for save and
model_validate() for load.

The evaluation insert is exposed as insert_or_get_evaluation: the unique
constraint on meeting_id decides the winner when the background pipeline and
another evaluation path race, and the loser reads the winner's row back
instead of failing.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from src.meetcoach.core.database import SessionFactory
from src.meetcoach.meetings.models import (
    BotSessionModel,
    CalendarScheduledBotModel,
    CompanyDataModel,
    MeetEvaluationModel,
    NoteObservationModel,
    NoteTopicModel,
    NotificationModel,
    SalesPlaybookModel,
    SavedSimulationModel,
)
from src.meetcoach.meetings.schemas import (
    BotSession,
    CompanyProfile,
    EvaluationRecord,
    NoteTopic,
    Notification,
    PerformanceLevel,
    SavedSimulation,
    SessionStatus,
    TranscriptSegment,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _segments_to_json(segments: list[TranscriptSegment]) -> list[dict]:
    return [s.model_dump(mode="json", by_alias=True) for s in segments]


def _model_to_session(model: BotSessionModel) -> BotSession:
    """Convert BotSessionModel to BotSession schema."""
    return BotSession(
        bot_id=model.bot_id,
        user_id=model.user_id,
        company_id=model.company_id,
        status=SessionStatus(model.status),
        transcript=[
            TranscriptSegment.model_validate(s) for s in (model.transcript or [])
        ],
        error_message=model.error_message,
        evaluation_id=model.evaluation_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_evaluation(model: MeetEvaluationModel) -> EvaluationRecord:
    """Convert MeetEvaluationModel to EvaluationRecord schema."""
    return EvaluationRecord(
        id=model.id,
        user_id=model.user_id,
        company_id=model.company_id,
        meeting_id=model.meeting_id,
        seller_name=model.seller_name,
        call_objective=model.call_objective,
        funnel_stage=model.funnel_stage,
        transcript=[
            TranscriptSegment.model_validate(s) for s in (model.transcript or [])
        ],
        evaluation=model.evaluation or {},
        overall_score=model.overall_score,
        performance_level=PerformanceLevel(model.performance_level),
        spin_s_score=model.spin_s_score or 0,
        spin_p_score=model.spin_p_score or 0,
        spin_i_score=model.spin_i_score or 0,
        spin_n_score=model.spin_n_score or 0,
        smart_notes=model.smart_notes,
        created_at=model.created_at,
    )


def _evaluation_to_model(record: EvaluationRecord) -> MeetEvaluationModel:
    """Convert EvaluationRecord schema to a new MeetEvaluationModel row."""
    return MeetEvaluationModel(
        id=record.id,
        user_id=record.user_id,
        company_id=record.company_id,
        meeting_id=record.meeting_id,
        seller_name=record.seller_name,
        call_objective=record.call_objective,
        funnel_stage=record.funnel_stage,
        transcript=_segments_to_json(record.transcript),
        evaluation=record.evaluation,
        overall_score=record.overall_score,
        performance_level=record.performance_level.value,
        spin_s_score=record.spin_s_score,
        spin_p_score=record.spin_p_score,
        spin_i_score=record.spin_i_score,
        spin_n_score=record.spin_n_score,
        smart_notes=record.smart_notes,
    )


# ── Meeting Repository ──────────────────────────────────────────────────────


class MeetingRepository:
    """Async persistence for sessions, evaluations and pipeline side effects.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Sessions ─────────────────────────────────────────────────────────

    async def get_session(self, bot_id: str) -> BotSession | None:
        """Get a recording session by its bot id.

        Args:
            bot_id: Recall.ai bot identifier (the session id).

        Returns:
            BotSession if found, None otherwise.
        """
        async for session in self._session_factory():
            stmt = select(BotSessionModel).where(BotSessionModel.bot_id == bot_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_session(model)

    async def update_session(
        self,
        bot_id: str,
        status: SessionStatus,
        *,
        transcript: list[TranscriptSegment] | None = None,
        evaluation_id: uuid.UUID | None = None,
        error_message: str | None = None,
    ) -> BotSession:
        """Move a session to ``status`` and set the given mutable fields.

        Fields passed as None are left untouched.

        Raises:
            ValueError: If the session does not exist.
        """
        async for session in self._session_factory():
            stmt = select(BotSessionModel).where(BotSessionModel.bot_id == bot_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()

            if model is None:
                raise ValueError(f"Bot session not found: bot_id={bot_id}")

            model.status = status.value
            if transcript is not None:
                model.transcript = _segments_to_json(transcript)
            if evaluation_id is not None:
                model.evaluation_id = evaluation_id
            if error_message is not None:
                model.error_message = error_message
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_session(model)

    # ── Evaluations ──────────────────────────────────────────────────────

    async def get_evaluation_by_meeting(
        self, meeting_id: str
    ) -> EvaluationRecord | None:
        """Get the evaluation record for a session, if one exists."""
        async for session in self._session_factory():
            stmt = select(MeetEvaluationModel).where(
                MeetEvaluationModel.meeting_id == meeting_id
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_evaluation(model)

    async def insert_or_get_evaluation(
        self, record: EvaluationRecord
    ) -> tuple[EvaluationRecord, bool]:
        """Insert an evaluation, or return the existing one for its meeting.

        Args:
            record: EvaluationRecord to persist.

        Returns:
            Tuple of (persisted record, created). ``created`` is False when a
            concurrent writer already stored an evaluation for the same
            meeting_id and that record is returned instead.

        Raises:
            IntegrityError: If the insert violated something other than the
                meeting_id uniqueness and no existing record can be read.
        """
        async for session in self._session_factory():
            model = _evaluation_to_model(record)
            session.add(model)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await self.get_evaluation_by_meeting(record.meeting_id)
                if existing is None:
                    raise
                logger.info(
                    "evaluation.duplicate_insert_resolved",
                    meeting_id=record.meeting_id,
                    evaluation_id=str(existing.id),
                )
                return existing, False
            await session.refresh(model)
            return _model_to_evaluation(model), True

    # ── Notifications ────────────────────────────────────────────────────

    async def create_notification(self, notification: Notification) -> Notification:
        """Persist a user notification."""
        async for session in self._session_factory():
            model = NotificationModel(
                id=notification.id,
                user_id=notification.user_id,
                type=notification.type.value,
                title=notification.title,
                message=notification.message,
                data=notification.data,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return notification.model_copy(update={"created_at": model.created_at})

    # ── Calendar ─────────────────────────────────────────────────────────

    async def link_calendar_evaluation(
        self, bot_id: str, evaluation_id: uuid.UUID
    ) -> int:
        """Mark calendar entries recorded by ``bot_id`` as completed.

        Returns:
            Number of calendar rows updated (0 when the meeting was not
            scheduled through the calendar).
        """
        async for session in self._session_factory():
            stmt = (
                update(CalendarScheduledBotModel)
                .where(CalendarScheduledBotModel.bot_id == bot_id)
                .values(
                    bot_status="completed",
                    evaluation_id=evaluation_id,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    # ── Saved Simulations ────────────────────────────────────────────────

    async def save_simulation(self, simulation: SavedSimulation) -> SavedSimulation:
        """Persist a practice scenario linked to an evaluation."""
        async for session in self._session_factory():
            model = SavedSimulationModel(
                id=simulation.id,
                user_id=simulation.user_id,
                company_id=simulation.company_id,
                meet_evaluation_id=simulation.meet_evaluation_id,
                simulation_config=simulation.simulation_config,
                simulation_justification=simulation.simulation_justification,
                status=simulation.status,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return simulation.model_copy(update={"created_at": model.created_at})


# ── Organization Repository ─────────────────────────────────────────────────


class OrganizationRepository:
    """Read-only access to organization configuration.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_profile(self, company_id: str) -> CompanyProfile | None:
        """Get the descriptive profile of an organization."""
        async for session in self._session_factory():
            stmt = select(CompanyDataModel).where(
                CompanyDataModel.company_id == company_id
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return CompanyProfile(
                company_id=model.company_id,
                name=model.name,
                company_type=model.company_type,
                description=model.description,
                products_services=model.products_services,
                product_function=model.product_function,
                differentiators=model.differentiators,
                competitors=model.competitors,
                metrics=model.metrics,
                common_mistakes=model.common_mistakes,
                desired_perception=model.desired_perception,
                pains_solved=model.pains_solved,
            )

    async def get_observations(self, company_id: str, limit: int = 10) -> list[str]:
        """Get custom observation prompts in configured order, capped at ``limit``."""
        async for session in self._session_factory():
            stmt = (
                select(NoteObservationModel.observation_text)
                .where(NoteObservationModel.company_id == company_id)
                .order_by(NoteObservationModel.sort_order)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_topics(self, company_id: str) -> list[NoteTopic]:
        """Get enabled extraction topics in configured order."""
        async for session in self._session_factory():
            stmt = (
                select(NoteTopicModel)
                .where(
                    NoteTopicModel.company_id == company_id,
                    NoteTopicModel.enabled.is_(True),
                )
                .order_by(NoteTopicModel.sort_order)
            )
            result = await session.execute(stmt)
            return [
                NoteTopic(title=m.title, description=m.description)
                for m in result.scalars().all()
            ]

    async def get_active_playbook(self, company_id: str) -> str | None:
        """Get the active sales playbook content, if any."""
        async for session in self._session_factory():
            stmt = (
                select(SalesPlaybookModel.content)
                .where(
                    SalesPlaybookModel.company_id == company_id,
                    SalesPlaybookModel.is_active.is_(True),
                )
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()
