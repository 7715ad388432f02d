"""Unit tests for fan-out emitters, notifications and branch capture."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.meetcoach.meetings.pipeline.branches import run_branch
from src.meetcoach.meetings.pipeline.fanout import FanoutEmitters, extract_simulation_config
from src.meetcoach.meetings.pipeline.notifications import NotificationEmitter
from src.meetcoach.meetings.schemas import EvaluationRecord, NotificationType, PerformanceLevel


@pytest.fixture
def record(session):
    return EvaluationRecord(
        user_id=session.user_id,
        company_id=session.company_id,
        meeting_id=session.bot_id,
        seller_name="Ana",
        evaluation={"overall_score": 8.7},
        overall_score=87,
        performance_level=PerformanceLevel.EXCELLENT,
    )


# ── run_branch ──────────────────────────────────────────────────────────────


class TestRunBranch:
    @pytest.mark.asyncio
    async def test_success_captures_value(self):
        async def work():
            return 42

        result = await run_branch("calc", work())
        assert result.ok is True
        assert result.value == 42
        assert result.error is None

    @pytest.mark.asyncio
    async def test_exception_captured(self):
        async def work():
            raise ValueError("nope")

        result = await run_branch("calc", work())
        assert result.ok is False
        assert result.name == "calc"
        assert result.error == "nope"

    @pytest.mark.asyncio
    async def test_empty_message_uses_type_name(self):
        async def work():
            raise TimeoutError()

        result = await run_branch("calc", work())
        assert result.error == "TimeoutError"


# ── extract_simulation_config ───────────────────────────────────────────────


class TestExtractSimulationConfig:
    def test_simulation_config_key(self):
        assert extract_simulation_config(
            {"success": True, "simulationConfig": {"persona": {}}}
        ) == {"persona": {}}

    def test_practice_config_key(self):
        assert extract_simulation_config(
            {"success": True, "practiceConfig": {"objective": {"name": "x"}}}
        ) == {"objective": {"name": "x"}}

    def test_unsuccessful_response(self):
        with pytest.raises(ValueError, match="unsuccessful: no persona"):
            extract_simulation_config({"success": False, "error": "no persona"})

    def test_missing_config(self):
        with pytest.raises(ValueError, match="no config"):
            extract_simulation_config({"success": True, "simulationConfig": {}})

    def test_non_dict_response(self):
        with pytest.raises(ValueError):
            extract_simulation_config(None)


# ── FanoutEmitters ──────────────────────────────────────────────────────────


class TestFanoutEmitters:
    @pytest.mark.asyncio
    async def test_without_simulation_client_only_calendar_runs(
        self, meeting_repo, session, record
    ):
        results = await FanoutEmitters(meeting_repo).emit(session, record, "transcript")

        assert [r.name for r in results] == ["calendar"]
        assert results[0].ok is True
        assert results[0].value == 0

    @pytest.mark.asyncio
    async def test_calendar_failure_does_not_block_simulation(
        self, meeting_repo, session, record
    ):
        meeting_repo.link_calendar_evaluation = AsyncMock(side_effect=RuntimeError("db down"))
        client = MagicMock()
        client.generate = AsyncMock(
            return_value={"success": True, "simulationConfig": {"persona": {"cargo": "CFO"}}}
        )

        results = await FanoutEmitters(meeting_repo, client).emit(session, record, "transcript")

        outcome = {r.name: r.ok for r in results}
        assert outcome == {"calendar": False, "simulation": True}
        assert len(meeting_repo.simulations) == 1
        assert meeting_repo.simulations[0].simulation_justification is None

    @pytest.mark.asyncio
    async def test_generation_request_carries_evaluation_and_company(
        self, meeting_repo, session, record
    ):
        client = MagicMock()
        client.generate = AsyncMock(
            return_value={"success": True, "practiceConfig": {"persona": {}}}
        )

        await FanoutEmitters(meeting_repo, client).generate_practice_scenario(
            session, record, "Ana: hi"
        )

        client.generate.assert_awaited_once_with(
            {"overall_score": 8.7}, "Ana: hi", session.company_id
        )


# ── NotificationEmitter ─────────────────────────────────────────────────────


class TestNotificationEmitter:
    @pytest.mark.asyncio
    async def test_failed_notification_message(self, meeting_repo, session):
        ok = await NotificationEmitter(meeting_repo).evaluation_failed(session, "empty transcript")

        assert ok is True
        notification = meeting_repo.notifications[0]
        assert notification.type == NotificationType.EVALUATION_ERROR
        assert notification.message == "empty transcript"

    @pytest.mark.asyncio
    async def test_ready_notification_message(self, meeting_repo, session, record):
        await NotificationEmitter(meeting_repo).evaluation_ready(session, record)

        notification = meeting_repo.notifications[0]
        assert notification.type.value == "meet_evaluation_ready"
        assert "87/100" in notification.message

    @pytest.mark.asyncio
    async def test_write_failure_returns_false(self, meeting_repo, session, record):
        meeting_repo.create_notification = AsyncMock(side_effect=RuntimeError("db down"))

        ok = await NotificationEmitter(meeting_repo).evaluation_ready(session, record)

        assert ok is False
