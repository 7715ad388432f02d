"""Tests for the EvaluationPipeline state machine.

Uses the in-memory repository doubles from conftest with the real
NotificationEmitter and FanoutEmitters; the transcript retriever, scorer and
notes extractor are AsyncMock stand-ins. Delays go through RecordingSleep.

Covers:
- Happy path: status sequence, persisted record, notification, fan-out
- Idempotency guard on an already evaluated session
- Unknown session handling
- Transcript retry bound (exactly two fetches)
- Scorer failure is fatal, notes failure is not
- Lost insert race proceeds with the winner's record
- Scorer and notes in flight together; a failed completed write after the
  insert sends no failure notice
- Fan-out failures never reverse completion
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.meetcoach.meetings.evaluation.notes import NotesResult
from src.meetcoach.meetings.evaluation.scorer import ScorerResult
from src.meetcoach.meetings.pipeline.fanout import FanoutEmitters
from src.meetcoach.meetings.pipeline.notifications import NotificationEmitter
from src.meetcoach.meetings.pipeline.orchestrator import (
    EMPTY_TRANSCRIPT,
    SESSION_NOT_FOUND,
    EvaluationPipeline,
    build_evaluation_record,
)
from src.meetcoach.meetings.schemas import (
    EvaluationRecord,
    NotificationType,
    PerformanceLevel,
    SessionStatus,
)


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def retriever(segments):
    mock = MagicMock()
    mock.fetch = AsyncMock(return_value=segments)
    return mock


@pytest.fixture
def scorer(evaluation_factory):
    mock = MagicMock()
    mock.evaluate = AsyncMock(
        return_value=ScorerResult(success=True, evaluation=evaluation_factory())
    )
    return mock


@pytest.fixture
def notes(notes_factory):
    mock = MagicMock()
    mock.extract = AsyncMock(return_value=NotesResult(success=True, notes=notes_factory()))
    return mock


@pytest.fixture
def simulation_client():
    mock = MagicMock()
    mock.generate = AsyncMock(
        return_value={
            "success": True,
            "practiceConfig": {
                "persona": {"business_type": "B2B"},
                "objections": [{"name": "Price"}],
                "objective": {"name": "Close"},
                "simulation_justification": "Practice the price objection",
            },
        }
    )
    return mock


@pytest.fixture
def pipeline(meeting_repo, retriever, scorer, notes, simulation_client, recording_sleep):
    return EvaluationPipeline(
        repository=meeting_repo,
        retriever=retriever,
        scorer=scorer,
        notes=notes,
        notifications=NotificationEmitter(meeting_repo),
        fanout=FanoutEmitters(meeting_repo, simulation_client),
        settle_delay=5.0,
        retry_delay=10.0,
        sleep=recording_sleep,
    )


# ── Happy Path ──────────────────────────────────────────────────────────────


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_completes_and_persists(self, pipeline, meeting_repo, session, recording_sleep):
        meeting_repo.calendar_bots.add(session.bot_id)

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert outcome.created is True
        assert outcome.overall_score == 87
        assert outcome.performance_level == PerformanceLevel.EXCELLENT
        assert meeting_repo.status_history[session.bot_id] == [
            SessionStatus.PROCESSING,
            SessionStatus.EVALUATING,
            SessionStatus.COMPLETED,
        ]
        assert recording_sleep.calls == [5.0]

        stored = meeting_repo.sessions[session.bot_id]
        assert stored.evaluation_id == outcome.evaluation_id
        assert len(stored.transcript) == 6

        record = meeting_repo.evaluations[session.bot_id]
        assert record.id == outcome.evaluation_id
        assert record.seller_name == "Ana"
        assert record.smart_notes["lead_name"] == "Carlos"

    @pytest.mark.asyncio
    async def test_ready_notification(self, pipeline, meeting_repo, session):
        outcome = await pipeline.process(session.bot_id)

        assert len(meeting_repo.notifications) == 1
        notification = meeting_repo.notifications[0]
        assert notification.type == NotificationType.EVALUATION_READY
        assert notification.user_id == session.user_id
        assert notification.data == {
            "evaluationId": str(outcome.evaluation_id),
            "overallScore": 87,
            "performanceLevel": "excellent",
            "sellerName": "Ana",
            "sessionId": session.bot_id,
        }

    @pytest.mark.asyncio
    async def test_fanout_runs(self, pipeline, meeting_repo, session):
        meeting_repo.calendar_bots.add(session.bot_id)

        outcome = await pipeline.process(session.bot_id)

        assert {r.name: r.ok for r in outcome.fanout} == {"calendar": True, "simulation": True}
        assert meeting_repo.calendar_links[session.bot_id] == outcome.evaluation_id
        assert len(meeting_repo.simulations) == 1
        saved = meeting_repo.simulations[0]
        assert saved.meet_evaluation_id == outcome.evaluation_id
        assert saved.status == "pending"
        assert saved.simulation_justification == "Practice the price objection"

    @pytest.mark.asyncio
    async def test_scorer_and_notes_receive_flattened_transcript(
        self, pipeline, session, scorer, notes
    ):
        await pipeline.process(session.bot_id)

        text, org_id = scorer.evaluate.call_args.args
        assert text.startswith("Ana: This is sentence number 0")
        assert "\nCarlos: This is sentence number 1" in text
        assert org_id == session.company_id
        assert notes.extract.call_args.args == (text, session.company_id)


# ── Guards ──────────────────────────────────────────────────────────────────


class TestGuards:
    @pytest.mark.asyncio
    async def test_unknown_session(self, pipeline, meeting_repo, retriever):
        outcome = await pipeline.process("missing-bot")

        assert outcome.status == SessionStatus.ERROR
        assert outcome.error == SESSION_NOT_FOUND
        assert meeting_repo.notifications == []
        retriever.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_already_evaluated_session_is_not_reprocessed(
        self, pipeline, meeting_repo, session, retriever, scorer, simulation_client
    ):
        existing = EvaluationRecord(
            user_id=session.user_id,
            company_id=session.company_id,
            meeting_id=session.bot_id,
            overall_score=70,
            performance_level=PerformanceLevel.GOOD,
        )
        meeting_repo.evaluations[session.bot_id] = existing

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert outcome.evaluation_id == existing.id
        assert outcome.created is False
        assert meeting_repo.sessions[session.bot_id].evaluation_id == existing.id
        retriever.fetch.assert_not_called()
        scorer.evaluate.assert_not_called()
        simulation_client.generate.assert_not_called()
        assert meeting_repo.notifications == []
        assert meeting_repo.insert_attempts == 0

    @pytest.mark.asyncio
    async def test_second_trigger_after_success_is_a_noop(
        self, pipeline, meeting_repo, session, scorer
    ):
        first = await pipeline.process(session.bot_id)
        second = await pipeline.process(session.bot_id)

        assert second.evaluation_id == first.evaluation_id
        assert scorer.evaluate.await_count == 1
        assert len(meeting_repo.evaluations) == 1
        assert len(meeting_repo.notifications) == 1


# ── Transcript Retrieval ────────────────────────────────────────────────────


class TestTranscriptRetry:
    @pytest.mark.asyncio
    async def test_single_retry_recovers(
        self, pipeline, session, retriever, segments, recording_sleep
    ):
        retriever.fetch.side_effect = [[], segments]

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert retriever.fetch.await_count == 2
        assert recording_sleep.calls == [5.0, 10.0]

    @pytest.mark.asyncio
    async def test_empty_after_retry_is_fatal(
        self, pipeline, meeting_repo, session, retriever, scorer, recording_sleep
    ):
        retriever.fetch.return_value = []

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.ERROR
        assert outcome.error == EMPTY_TRANSCRIPT
        assert retriever.fetch.await_count == 2
        assert recording_sleep.calls == [5.0, 10.0]
        scorer.evaluate.assert_not_called()

        stored = meeting_repo.sessions[session.bot_id]
        assert stored.status == SessionStatus.ERROR
        assert stored.error_message == EMPTY_TRANSCRIPT

        assert len(meeting_repo.notifications) == 1
        notification = meeting_repo.notifications[0]
        assert notification.type == NotificationType.EVALUATION_ERROR
        assert notification.data == {"sessionId": session.bot_id, "error": EMPTY_TRANSCRIPT}


# ── Branch Failures ─────────────────────────────────────────────────────────


class TestBranchFailures:
    @pytest.mark.asyncio
    async def test_scorer_failure_is_fatal(self, pipeline, meeting_repo, session, scorer):
        scorer.evaluate.return_value = ScorerResult(success=False, error="provider down")

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.ERROR
        assert outcome.error == "provider down"
        assert meeting_repo.evaluations == {}
        assert meeting_repo.sessions[session.bot_id].error_message == "provider down"
        assert meeting_repo.notifications[0].type == NotificationType.EVALUATION_ERROR

    @pytest.mark.asyncio
    async def test_scorer_exception_is_fatal(self, pipeline, meeting_repo, session, scorer):
        scorer.evaluate.side_effect = RuntimeError("unexpected")

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.ERROR
        assert outcome.error == "unexpected"
        assert meeting_repo.evaluations == {}

    @pytest.mark.asyncio
    async def test_notes_failure_does_not_block_evaluation(
        self, pipeline, meeting_repo, session, notes
    ):
        notes.extract.return_value = NotesResult(success=False, error="bad json")

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert meeting_repo.evaluations[session.bot_id].smart_notes is None

    @pytest.mark.asyncio
    async def test_notes_exception_does_not_block_evaluation(
        self, pipeline, meeting_repo, session, notes
    ):
        notes.extract.side_effect = TimeoutError()

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert meeting_repo.evaluations[session.bot_id].smart_notes is None

    @pytest.mark.asyncio
    async def test_notification_write_failure_is_not_fatal(
        self, pipeline, meeting_repo, session
    ):
        meeting_repo.create_notification = AsyncMock(side_effect=RuntimeError("db down"))

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert meeting_repo.sessions[session.bot_id].status == SessionStatus.COMPLETED


# ── Concurrency ─────────────────────────────────────────────────────────────


class TestInsertRace:
    @pytest.mark.asyncio
    async def test_lost_race_uses_winner_record(
        self, pipeline, meeting_repo, session, simulation_client
    ):
        winner = EvaluationRecord(
            user_id=session.user_id,
            company_id=session.company_id,
            meeting_id=session.bot_id,
            overall_score=55,
            performance_level=PerformanceLevel.NEEDS_IMPROVEMENT,
        )
        meeting_repo.race_winner = winner

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert outcome.created is False
        assert outcome.evaluation_id == winner.id
        assert outcome.overall_score == 55
        assert len(meeting_repo.evaluations) == 1
        assert meeting_repo.sessions[session.bot_id].evaluation_id == winner.id
        assert meeting_repo.notifications[0].data["evaluationId"] == str(winner.id)
        simulation_client.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_scorer_and_notes_run_concurrently(
        self, pipeline, session, scorer, notes, evaluation_factory, notes_factory
    ):
        scorer_started = asyncio.Event()
        notes_started = asyncio.Event()

        async def evaluate(text, org_id):
            scorer_started.set()
            await asyncio.wait_for(notes_started.wait(), timeout=1.0)
            return ScorerResult(success=True, evaluation=evaluation_factory())

        async def extract(text, org_id):
            notes_started.set()
            await asyncio.wait_for(scorer_started.wait(), timeout=1.0)
            return NotesResult(success=True, notes=notes_factory())

        scorer.evaluate.side_effect = evaluate
        notes.extract.side_effect = extract

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_completed_write_failure_after_insert_sends_no_failure_notice(
        self, pipeline, meeting_repo, session
    ):
        original_update = meeting_repo.update_session

        async def update_session(bot_id, status, **kwargs):
            if status == SessionStatus.COMPLETED:
                raise RuntimeError("connection reset")
            return await original_update(bot_id, status, **kwargs)

        meeting_repo.update_session = update_session

        outcome = await pipeline.process(session.bot_id)

        record = meeting_repo.evaluations[session.bot_id]
        assert outcome.status == SessionStatus.ERROR
        assert outcome.evaluation_id == record.id
        assert outcome.error == "connection reset"
        assert meeting_repo.notifications == []
        assert meeting_repo.sessions[session.bot_id].status == SessionStatus.EVALUATING
        assert meeting_repo.simulations == []


# ── Fan-out Isolation ───────────────────────────────────────────────────────


class TestFanoutIsolation:
    @pytest.mark.asyncio
    async def test_failed_emitter_does_not_reverse_completion(
        self, pipeline, meeting_repo, session, simulation_client
    ):
        meeting_repo.calendar_bots.add(session.bot_id)
        simulation_client.generate.side_effect = RuntimeError("generator down")

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert meeting_repo.sessions[session.bot_id].status == SessionStatus.COMPLETED
        results = {r.name: r for r in outcome.fanout}
        assert results["calendar"].ok is True
        assert results["simulation"].ok is False
        assert results["simulation"].error == "generator down"
        assert meeting_repo.calendar_links[session.bot_id] == outcome.evaluation_id
        assert meeting_repo.simulations == []

    @pytest.mark.asyncio
    async def test_unsuccessful_generation_not_saved(
        self, pipeline, meeting_repo, session, simulation_client
    ):
        simulation_client.generate.return_value = {"success": False, "error": "no persona"}

        outcome = await pipeline.process(session.bot_id)

        assert outcome.status == SessionStatus.COMPLETED
        assert meeting_repo.simulations == []


# ── Record Assembly ─────────────────────────────────────────────────────────


class TestBuildEvaluationRecord:
    def test_derived_score_and_unidentified_seller(
        self, session, segments, evaluation_factory
    ):
        evaluation = evaluation_factory(
            overall_score=None,
            performance_level=None,
            spin_score=7.0,
            objection_scores=(6.0,),
            seller_identification=None,
        )

        record = build_evaluation_record(session, segments, evaluation, None)

        assert record.overall_score == 66
        assert record.performance_level == PerformanceLevel.GOOD
        assert record.seller_name == "Not identified"
        assert record.meeting_id == session.bot_id
        assert record.spin_s_score == 7.0
        assert record.smart_notes is None
        assert record.evaluation["spin_evaluation"]["S"]["final_score"] == 7.0
