"""Pydantic v2 schemas for the meeting evaluation domain.

Defines the data contracts for recording sessions, transcript segments,
scorer output (SPIN + objections), structured notes, persisted evaluation
records, notifications, saved practice scenarios, and the organization
configuration read by the scorer and notes extractor. Every pipeline
subsystem (retriever, scorer, notes extractor, orchestrator, fan-out)
imports from this module.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class SessionStatus(str, Enum):
    """Lifecycle status of a recording session inside the pipeline."""

    PENDING = "pending"
    PROCESSING = "processing"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    ERROR = "error"


class PerformanceLevel(str, Enum):
    """Performance tier derived from the canonical 0-100 score."""

    POOR = "poor"
    NEEDS_IMPROVEMENT = "needs_improvement"
    GOOD = "good"
    VERY_GOOD = "very_good"
    EXCELLENT = "excellent"
    LEGENDARY = "legendary"


class NotificationType(str, Enum):
    """Fire-once notification kinds emitted by the pipeline."""

    EVALUATION_READY = "meet_evaluation_ready"
    EVALUATION_ERROR = "meet_evaluation_error"


# ── Transcript ───────────────────────────────────────────────────────────────


class TranscriptSegment(BaseModel):
    """A single finalized speech segment of a recording."""

    model_config = ConfigDict(populate_by_name=True)

    speaker: str
    text: str
    timestamp: str
    is_partial: bool = Field(default=False, alias="isPartial")


def flatten_transcript(segments: list[TranscriptSegment]) -> str:
    """Render segments as newline-separated ``speaker: text`` lines."""
    return "\n".join(f"{s.speaker}: {s.text}" for s in segments)


# ── Session ──────────────────────────────────────────────────────────────────


class BotSession(BaseModel):
    """One recording job, keyed by the Recall.ai bot id."""

    bot_id: str
    user_id: str
    company_id: str
    status: SessionStatus = SessionStatus.PENDING
    transcript: list[TranscriptSegment] = Field(default_factory=list)
    error_message: str | None = None
    evaluation_id: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Scorer Output ────────────────────────────────────────────────────────────


class ObjectionAnalysis(BaseModel):
    """Score and critique for one objection raised during the call."""

    model_config = ConfigDict(extra="allow")

    objection_id: str = ""
    objection_type: str = ""
    objection_text: str = ""
    score: float = Field(ge=0, le=10)
    detailed_analysis: str = ""
    critical_errors: list[str] | None = None
    ideal_response: str | None = None


class SpinDimension(BaseModel):
    """One SPIN letter: final score plus sub-indicator scores (0-10)."""

    model_config = ConfigDict(extra="allow")

    final_score: float = Field(ge=0, le=10)
    indicators: dict[str, float] = Field(default_factory=dict)
    technical_feedback: str = ""


class SpinEvaluation(BaseModel):
    """The four SPIN dimensions: Situation, Problem, Implication, Need-payoff."""

    S: SpinDimension
    P: SpinDimension
    I: SpinDimension  # noqa: E741
    N: SpinDimension


class PriorityImprovement(BaseModel):
    """An improvement the seller should work on first."""

    model_config = ConfigDict(extra="allow")

    area: str
    current_gap: str = ""
    action_plan: str = ""
    priority: Literal["critical", "high", "medium"] = "medium"


class SellerIdentification(BaseModel):
    """Which transcript speaker the scorer identified as the seller."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    speaker_label: str | None = None


class MeetEvaluation(BaseModel):
    """Structured performance evaluation returned by the scoring service.

    Extra keys are preserved so the full scorer payload round-trips into the
    evaluation record's JSON column.
    """

    model_config = ConfigDict(extra="allow")

    objections_analysis: list[ObjectionAnalysis] = Field(default_factory=list)
    spin_evaluation: SpinEvaluation
    overall_score: float | None = None
    performance_level: str | None = None
    executive_summary: str = ""
    top_strengths: list[str] = Field(default_factory=list)
    critical_gaps: list[str] = Field(default_factory=list)
    priority_improvements: list[PriorityImprovement] = Field(default_factory=list)
    seller_identification: SellerIdentification | None = None
    playbook_adherence: dict[str, Any] | None = None


# ── Structured Notes ─────────────────────────────────────────────────────────


class NoteItem(BaseModel):
    """One extracted fact about the lead or the deal."""

    label: str
    value: str
    source: Literal["explicit", "inferred"] = "explicit"
    transcript_ref: str | None = None
    sub_items: list[str] = Field(default_factory=list)


class NoteSection(BaseModel):
    """A dynamically named group of extracted facts."""

    id: str = ""
    title: str
    icon: str | None = None
    priority: Literal["high", "medium", "low"] = "medium"
    insight: str = ""
    items: list[NoteItem] = Field(default_factory=list)


class NextStep(BaseModel):
    """A commitment made during the call."""

    description: str
    owner: Literal["seller", "client", "both"] = "seller"
    status: Literal["agreed", "suggested", "pending"] = "pending"
    due: str | None = None


class DealStatus(BaseModel):
    """Deal-health assessment."""

    temperature: Literal["hot", "warm", "cold"] = "warm"
    probability: str = "Undetermined"
    summary: str = ""
    blockers: list[str] = Field(default_factory=list)
    buying_signals: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)


class CustomObservation(BaseModel):
    """Answer to one manager-configured observation prompt."""

    observation: str
    found: bool = False
    details: str = ""


class SmartNotes(BaseModel):
    """Lead/deal notes extracted from the transcript."""

    model_config = ConfigDict(extra="allow")

    lead_name: str | None = None
    lead_company: str | None = None
    lead_role: str | None = None
    confidence_level: Literal["high", "medium", "low"] = "low"
    sections: list[NoteSection]
    next_steps: list[NextStep] = Field(default_factory=list)
    deal_status: DealStatus | None = None
    custom_observations: list[CustomObservation] = Field(default_factory=list)
    generated_at: datetime | None = None


# ── Evaluation Record ────────────────────────────────────────────────────────


class EvaluationRecord(BaseModel):
    """Persisted evaluation; exactly one per session (meeting_id)."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str
    company_id: str
    meeting_id: str
    seller_name: str = "Not identified"
    call_objective: str | None = None
    funnel_stage: str | None = None
    transcript: list[TranscriptSegment] = Field(default_factory=list)
    evaluation: dict[str, Any] = Field(default_factory=dict)
    overall_score: int = 0
    performance_level: PerformanceLevel = PerformanceLevel.NEEDS_IMPROVEMENT
    spin_s_score: float = 0
    spin_p_score: float = 0
    spin_i_score: float = 0
    spin_n_score: float = 0
    smart_notes: dict[str, Any] | None = None
    created_at: datetime | None = None


# ── Notifications & Practice Scenarios ───────────────────────────────────────


class Notification(BaseModel):
    """User-facing notification row."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class SavedSimulation(BaseModel):
    """Follow-up practice scenario generated from an evaluation."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str
    company_id: str
    meet_evaluation_id: uuid.UUID
    simulation_config: dict[str, Any]
    simulation_justification: str | None = None
    status: str = "pending"
    created_at: datetime | None = None


# ── Organization Configuration ───────────────────────────────────────────────


class CompanyProfile(BaseModel):
    """Descriptive profile of the seller's organization."""

    company_id: str
    name: str | None = None
    company_type: str | None = None
    description: str | None = None
    products_services: str | None = None
    product_function: str | None = None
    differentiators: str | None = None
    competitors: str | None = None
    metrics: str | None = None
    common_mistakes: str | None = None
    desired_perception: str | None = None
    pains_solved: str | None = None

    def context_fields(self) -> list[tuple[str, str]]:
        """Return the (label, value) pairs that carry non-blank text."""
        labelled = [
            ("Company name", self.name),
            ("Description", self.description),
            ("Products/Services", self.products_services),
            ("Product function", self.product_function),
            ("Differentiators", self.differentiators),
            ("Competitors", self.competitors),
            ("Data and metrics", self.metrics),
            ("Common mistakes", self.common_mistakes),
            ("Desired perception", self.desired_perception),
            ("Pains solved", self.pains_solved),
        ]
        return [(label, value.strip()) for label, value in labelled if value and value.strip()]


class NoteTopic(BaseModel):
    """Manager-configured extraction topic."""

    title: str
    description: str | None = None


# ── Request Models ───────────────────────────────────────────────────────────


class SimulationRequest(BaseModel):
    """Request body accepted by the practice-scenario generation endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    evaluation: dict[str, Any]
    transcript: str
    company_id: str | None = Field(default=None, alias="companyId")
