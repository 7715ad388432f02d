#!/usr/bin/env python3
"""Run the evaluation pipeline for one recording session, in-process.

Useful when a webhook was missed or a failed session has to be retried by
hand. Uses the same Settings (environment / .env) as the API.

Usage:
    python scripts/trigger_evaluation.py <session_id>
    python scripts/trigger_evaluation.py <session_id> --no-delay

Exit code 0 if the session ends completed, 1 otherwise.
"""

import argparse
import asyncio
import sys

from src.meetcoach.api.middleware.logging import configure_structlog
from src.meetcoach.config import get_settings
from src.meetcoach.core.database import close_db
from src.meetcoach.main import build_services
from src.meetcoach.meetings.schemas import SessionStatus


async def trigger(session_id: str, no_delay: bool) -> bool:
    settings = get_settings()
    if no_delay:
        settings = settings.model_copy(
            update={
                "PIPELINE_SETTLE_DELAY_SECONDS": 0.0,
                "PIPELINE_RETRY_DELAY_SECONDS": 0.0,
            }
        )
    configure_structlog(settings)

    services = build_services(settings)
    try:
        outcome = await services.pipeline.process(session_id)
    finally:
        await close_db(services.engine)

    print()
    print(f"Session:     {outcome.session_id}")
    print(f"Status:      {outcome.status.value}")
    if outcome.evaluation_id:
        print(f"Evaluation:  {outcome.evaluation_id} (created={outcome.created})")
        print(f"Score:       {outcome.overall_score}")
        level = outcome.performance_level.value if outcome.performance_level else "-"
        print(f"Level:       {level}")
    if outcome.error:
        print(f"Error:       {outcome.error}")
    for branch in outcome.fanout:
        state = "ok" if branch.ok else f"FAILED ({branch.error})"
        print(f"Fan-out {branch.name:<12} {state}")
    print()

    return outcome.status == SessionStatus.COMPLETED


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Evaluate a recorded meeting session",
    )
    parser.add_argument("session_id", help="Recall.ai bot id of the session")
    parser.add_argument(
        "--no-delay",
        action="store_true",
        help="Skip the settle and retry delays (artifacts already final)",
    )
    args = parser.parse_args()

    ok = asyncio.run(trigger(args.session_id, args.no_delay))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
