"""Per-branch result capture for concurrent pipeline work.

Every concurrently scheduled unit of work (scorer, notes, each fan-out
emitter) runs through run_branch, which turns an exception into a failed
BranchResult. Sibling branches therefore always report their own outcome
regardless of what happened next to them.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any

import structlog

from src.meetcoach.core.monitoring import record_branch_failure

logger = structlog.get_logger(__name__)


@dataclass
class BranchResult:
    """Outcome of one branch: its value on success, the error otherwise."""

    name: str
    ok: bool
    value: Any = None
    error: str | None = None


async def run_branch(name: str, awaitable: Awaitable[Any]) -> BranchResult:
    """Await ``awaitable`` and capture its outcome as a BranchResult."""
    try:
        value = await awaitable
    except Exception as exc:
        logger.warning("pipeline.branch_failed", branch=name, exc_info=True)
        record_branch_failure(name)
        return BranchResult(name=name, ok=False, error=str(exc) or type(exc).__name__)
    return BranchResult(name=name, ok=True, value=value)
