"""Meeting evaluation persistence models.

SQLAlchemy models for the pipeline's persistent store:
- BotSessionModel: One row per recording job (keyed by Recall.ai bot id)
- MeetEvaluationModel: Evaluation record, unique per meeting_id
- NotificationModel: User-facing notifications
- CalendarScheduledBotModel: Pre-scheduled calendar entries linked to a bot
- SavedSimulationModel: Follow-up practice scenarios
- CompanyDataModel, NoteTopicModel, NoteObservationModel, SalesPlaybookModel:
  Organization configuration read by the scorer and notes extractor

The unique constraint on meet_evaluations.meeting_id is what makes
insert-or-fetch safe when two evaluation paths race on the same session.
No foreign key constraints (application-level referential integrity via
repository).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.meetcoach.core.database import Base


class BotSessionModel(Base):
    """Recording session tracked from trigger to terminal state."""

    __tablename__ = "meet_bot_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    bot_id: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default="pending",
        server_default=text("'pending'"),
    )
    transcript: Mapped[list | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    evaluation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class MeetEvaluationModel(Base):
    """Structured evaluation of one session. Append-only."""

    __tablename__ = "meet_evaluations"
    __table_args__ = (
        UniqueConstraint("meeting_id", name="uq_meet_evaluations_meeting_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(200), nullable=False)
    seller_name: Mapped[str] = mapped_column(String(300), nullable=False)
    call_objective: Mapped[str | None] = mapped_column(Text, nullable=True)
    funnel_stage: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transcript: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    evaluation: Mapped[dict] = mapped_column(
        JSON, default=dict, server_default=text("'{}'::json")
    )
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False)
    performance_level: Mapped[str] = mapped_column(String(50), nullable=False)
    spin_s_score: Mapped[float] = mapped_column(Float, default=0)
    spin_p_score: Mapped[float] = mapped_column(Float, default=0)
    spin_i_score: Mapped[float] = mapped_column(Float, default=0)
    spin_n_score: Mapped[float] = mapped_column(Float, default=0)
    smart_notes: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class NotificationModel(Base):
    """Fire-once user notification."""

    __tablename__ = "user_notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict] = mapped_column(
        JSON, default=dict, server_default=text("'{}'::json")
    )
    read: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=text("false"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class CalendarScheduledBotModel(Base):
    """Calendar entry that had a bot scheduled to record it."""

    __tablename__ = "calendar_scheduled_bots"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    event_id: Mapped[str] = mapped_column(String(300), nullable=False)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    bot_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bot_status: Mapped[str] = mapped_column(
        String(50),
        default="scheduled",
        server_default=text("'scheduled'"),
    )
    evaluation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class SavedSimulationModel(Base):
    """Practice scenario generated from a meeting evaluation."""

    __tablename__ = "saved_simulations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    meet_evaluation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    simulation_config: Mapped[dict] = mapped_column(
        JSON, default=dict, server_default=text("'{}'::json")
    )
    simulation_justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default="pending",
        server_default=text("'pending'"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


# ── Organization Configuration ───────────────────────────────────────────────


class CompanyDataModel(Base):
    """Descriptive profile of a seller organization."""

    __tablename__ = "company_data"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    company_type: Mapped[str | None] = mapped_column(String(10), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    products_services: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_function: Mapped[str | None] = mapped_column(Text, nullable=True)
    differentiators: Mapped[str | None] = mapped_column(Text, nullable=True)
    competitors: Mapped[str | None] = mapped_column(Text, nullable=True)
    metrics: Mapped[str | None] = mapped_column(Text, nullable=True)
    common_mistakes: Mapped[str | None] = mapped_column(Text, nullable=True)
    desired_perception: Mapped[str | None] = mapped_column(Text, nullable=True)
    pains_solved: Mapped[str | None] = mapped_column(Text, nullable=True)


class NoteTopicModel(Base):
    """Extraction topic configured by a manager."""

    __tablename__ = "meet_note_topics"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default=text("true"),
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class NoteObservationModel(Base):
    """Free-text observation prompt configured by a manager."""

    __tablename__ = "meet_note_observations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    observation_text: Mapped[str] = mapped_column("text", Text, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class SalesPlaybookModel(Base):
    """Sales playbook content; at most one active per company."""

    __tablename__ = "sales_playbooks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default=text("true"),
    )
