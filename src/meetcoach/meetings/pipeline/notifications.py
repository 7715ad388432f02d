"""User notifications emitted at the pipeline's terminal states."""

from __future__ import annotations

import structlog

from src.meetcoach.meetings.repository import MeetingRepository
from src.meetcoach.meetings.schemas import (
    BotSession,
    EvaluationRecord,
    Notification,
    NotificationType,
)

logger = structlog.get_logger(__name__)


class NotificationEmitter:
    """Writes ready/error notifications; a failed write is logged, never raised.

    Args:
        repository: MeetingRepository used to persist notifications.
    """

    def __init__(self, repository: MeetingRepository) -> None:
        self._repository = repository

    async def evaluation_ready(self, session: BotSession, record: EvaluationRecord) -> bool:
        return await self._emit(
            Notification(
                user_id=session.user_id,
                type=NotificationType.EVALUATION_READY,
                title="Meeting evaluation ready",
                message=f"Your meeting has been evaluated. Score: {record.overall_score}/100",
                data={
                    "evaluationId": str(record.id),
                    "overallScore": record.overall_score,
                    "performanceLevel": record.performance_level.value,
                    "sellerName": record.seller_name,
                    "sessionId": session.bot_id,
                },
            )
        )

    async def evaluation_failed(self, session: BotSession, error: str) -> bool:
        return await self._emit(
            Notification(
                user_id=session.user_id,
                type=NotificationType.EVALUATION_ERROR,
                title="Meeting evaluation failed",
                message=error or "An error occurred while processing your meeting.",
                data={"sessionId": session.bot_id, "error": error},
            )
        )

    async def _emit(self, notification: Notification) -> bool:
        try:
            await self._repository.create_notification(notification)
        except Exception:
            logger.warning(
                "notification.write_failed",
                user_id=notification.user_id,
                type=notification.type.value,
                exc_info=True,
            )
            return False
        return True
