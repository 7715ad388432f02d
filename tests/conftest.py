"""Shared fixtures for the meeting evaluation pipeline tests.

Provides:
- InMemoryMeetingRepository / InMemoryOrganizationRepository test doubles
  (same method surface as the SQLAlchemy repositories)
- Sample sessions, transcript segments, scorer evaluations and notes
- A recording sleep double so pipeline delays cost nothing

No database or network is required by any test in this suite.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from src.meetcoach.meetings.schemas import (
    BotSession,
    CompanyProfile,
    EvaluationRecord,
    MeetEvaluation,
    NoteTopic,
    Notification,
    SavedSimulation,
    SessionStatus,
    SmartNotes,
    TranscriptSegment,
)


# ── Constants ────────────────────────────────────────────────────────────────

SESSION_ID = "bot-abc123"
USER_ID = "user-1"
COMPANY_ID = "company-1"


# ── In-Memory Repositories ──────────────────────────────────────────────────


class InMemoryMeetingRepository:
    """In-memory test double for MeetingRepository.

    ``race_winner`` simulates a concurrent writer: when set, the next
    insert_or_get_evaluation behaves as if that record had been committed
    first and returns it with created=False.
    """

    def __init__(self) -> None:
        self.sessions: dict[str, BotSession] = {}
        self.evaluations: dict[str, EvaluationRecord] = {}
        self.notifications: list[Notification] = []
        self.calendar_links: dict[str, uuid.UUID] = {}
        self.calendar_bots: set[str] = set()
        self.simulations: list[SavedSimulation] = []
        self.status_history: dict[str, list[SessionStatus]] = {}
        self.race_winner: EvaluationRecord | None = None
        self.insert_attempts = 0

    def add_session(self, session: BotSession) -> BotSession:
        self.sessions[session.bot_id] = session
        return session

    async def get_session(self, bot_id: str) -> BotSession | None:
        return self.sessions.get(bot_id)

    async def update_session(
        self,
        bot_id: str,
        status: SessionStatus,
        *,
        transcript: list[TranscriptSegment] | None = None,
        evaluation_id: uuid.UUID | None = None,
        error_message: str | None = None,
    ) -> BotSession:
        s = self.sessions.get(bot_id)
        if s is None:
            raise ValueError(f"Bot session not found: bot_id={bot_id}")
        update: dict = {"status": status, "updated_at": datetime.now(timezone.utc)}
        if transcript is not None:
            update["transcript"] = transcript
        if evaluation_id is not None:
            update["evaluation_id"] = evaluation_id
        if error_message is not None:
            update["error_message"] = error_message
        updated = s.model_copy(update=update)
        self.sessions[bot_id] = updated
        self.status_history.setdefault(bot_id, []).append(status)
        return updated

    async def get_evaluation_by_meeting(self, meeting_id: str) -> EvaluationRecord | None:
        return self.evaluations.get(meeting_id)

    async def insert_or_get_evaluation(
        self, record: EvaluationRecord
    ) -> tuple[EvaluationRecord, bool]:
        self.insert_attempts += 1
        if self.race_winner is not None:
            self.evaluations[self.race_winner.meeting_id] = self.race_winner
            self.race_winner = None
        existing = self.evaluations.get(record.meeting_id)
        if existing is not None:
            return existing, False
        stored = record.model_copy(update={"created_at": datetime.now(timezone.utc)})
        self.evaluations[record.meeting_id] = stored
        return stored, True

    async def create_notification(self, notification: Notification) -> Notification:
        self.notifications.append(notification)
        return notification

    async def link_calendar_evaluation(self, bot_id: str, evaluation_id: uuid.UUID) -> int:
        if bot_id not in self.calendar_bots:
            return 0
        self.calendar_links[bot_id] = evaluation_id
        return 1

    async def save_simulation(self, simulation: SavedSimulation) -> SavedSimulation:
        self.simulations.append(simulation)
        return simulation


class InMemoryOrganizationRepository:
    """In-memory test double for OrganizationRepository."""

    def __init__(self) -> None:
        self.profiles: dict[str, CompanyProfile] = {}
        self.observations: dict[str, list[str]] = {}
        self.topics: dict[str, list[NoteTopic]] = {}
        self.playbooks: dict[str, str] = {}

    async def get_profile(self, company_id: str) -> CompanyProfile | None:
        return self.profiles.get(company_id)

    async def get_observations(self, company_id: str, limit: int = 10) -> list[str]:
        return self.observations.get(company_id, [])[:limit]

    async def get_topics(self, company_id: str) -> list[NoteTopic]:
        return self.topics.get(company_id, [])

    async def get_active_playbook(self, company_id: str) -> str | None:
        return self.playbooks.get(company_id)


class RecordingSleep:
    """Awaitable sleep double that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# ── Sample Data Builders ────────────────────────────────────────────────────


def make_evaluation(
    overall_score: float | None = 8.7,
    performance_level: str | None = "excellent",
    spin_score: float = 7.0,
    objection_scores: tuple[float, ...] = (6.0,),
    **extra,
) -> MeetEvaluation:
    dimension = {"final_score": spin_score, "indicators": {}, "technical_feedback": "ok"}
    return MeetEvaluation.model_validate(
        {
            "objections_analysis": [
                {
                    "objection_id": f"obj-{i}",
                    "objection_type": "price",
                    "objection_text": "It is too expensive",
                    "score": score,
                }
                for i, score in enumerate(objection_scores)
            ],
            "spin_evaluation": {"S": dimension, "P": dimension, "I": dimension, "N": dimension},
            "overall_score": overall_score,
            "performance_level": performance_level,
            "executive_summary": "Solid discovery, weak close.",
            "top_strengths": ["Rapport"],
            "critical_gaps": ["Closing"],
            "seller_identification": {"name": "Ana", "speaker_label": "Ana"},
            **extra,
        }
    )


def make_notes() -> SmartNotes:
    return SmartNotes.model_validate(
        {
            "lead_name": "Carlos",
            "confidence_level": "medium",
            "sections": [
                {
                    "id": "budget",
                    "title": "Budget",
                    "insight": "Budget exists for Q3",
                    "items": [{"label": "Range", "value": "10-20k"}],
                }
            ],
            "next_steps": [{"description": "Send proposal", "owner": "seller"}],
        }
    )


def make_segments(count: int = 6) -> list[TranscriptSegment]:
    speakers = ("Ana", "Carlos")
    return [
        TranscriptSegment(
            speaker=speakers[i % 2],
            text=f"This is sentence number {i} of a realistic sales conversation.",
            timestamp=f"{i * 5}s",
        )
        for i in range(count)
    ]


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def meeting_repo() -> InMemoryMeetingRepository:
    return InMemoryMeetingRepository()


@pytest.fixture
def org_repo() -> InMemoryOrganizationRepository:
    repo = InMemoryOrganizationRepository()
    repo.profiles[COMPANY_ID] = CompanyProfile(
        company_id=COMPANY_ID,
        name="Acme",
        company_type="B2B",
        description="Payroll software for mid-size companies",
    )
    return repo


@pytest.fixture
def session(meeting_repo) -> BotSession:
    """A pending session registered in the meeting repository."""
    return meeting_repo.add_session(
        BotSession(bot_id=SESSION_ID, user_id=USER_ID, company_id=COMPANY_ID)
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def evaluation_factory():
    """Builder for scorer evaluations; keyword overrides as in make_evaluation."""
    return make_evaluation


@pytest.fixture
def notes_factory():
    return make_notes


@pytest.fixture
def segments() -> list[TranscriptSegment]:
    return make_segments()
