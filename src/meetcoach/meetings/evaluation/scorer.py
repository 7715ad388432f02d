"""EvaluationScorer -- SPIN-selling evaluation of a call transcript.

Uses the instructor + litellm pattern for structured LLM extraction: the
reply is validated against MeetEvaluation, so a malformed or truncated
response surfaces as a validation error rather than a partial record.

The scorer never raises. Every failure (short transcript, provider error,
validation error) comes back as ScorerResult(success=False, error=...), and
the pipeline decides what a failure means.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.meetcoach.meetings.repository import OrganizationRepository
from src.meetcoach.meetings.schemas import MeetEvaluation

logger = structlog.get_logger(__name__)


# ── Constants ────────────────────────────────────────────────────────────────

MIN_TRANSCRIPT_CHARS = 100
DEFAULT_MAX_TRANSCRIPT_CHARS = 50_000
TRUNCATION_MARKER = "\n\n[... transcript truncated ...]"
MODEL_REASONING = "anthropic/claude-sonnet-4-20250514"


# ── Result ───────────────────────────────────────────────────────────────────


@dataclass
class ScorerResult:
    """Outcome of one scoring call."""

    success: bool
    evaluation: MeetEvaluation | None = None
    error: str | None = None


# ── System Prompts ───────────────────────────────────────────────────────────

SCORER_SYSTEM_PROMPT = (
    "You are a senior sales coach evaluating a recorded sales call with the "
    "SPIN Selling method.\n"
    "1) Identify which speaker is the seller.\n"
    "2) Score each SPIN dimension (S, P, I, N) from 0 to 10, with indicator "
    "sub-scores and technical feedback.\n"
    "3) Analyze every objection the client raised, scoring the seller's "
    "handling from 0 to 10.\n"
    "4) OVERALL_SCORE = ((SPIN average * 10) * 0.6) + ((objection average * "
    "10) * 0.4), using 5.0 as the objection average when there were none.\n"
    "5) Performance level by score: 0-40 poor, 41-60 needs_improvement, "
    "61-75 good, 76-85 very_good, 86-94 excellent, 95-100 legendary.\n"
    "6) Summarize strengths, critical gaps and prioritized improvements.\n\n"
    "Base every judgement on what was actually said. Do not invent dialogue."
)

PLAYBOOK_PROMPT_TEMPLATE = (
    "\n\nThe company uses the sales playbook below. Also evaluate the "
    "seller's adherence to rules of this playbook that the SPIN and "
    "objection analysis does not already cover, and report it under "
    "playbook_adherence.\n\n"
    "PLAYBOOK:\n{playbook}"
)


def truncate_transcript(text: str, max_chars: int) -> str:
    """Cut ``text`` to ``max_chars`` characters, marking the cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


# ── EvaluationScorer ─────────────────────────────────────────────────────────


class EvaluationScorer:
    """Produces a structured MeetEvaluation from a flattened transcript.

    Args:
        organizations: Read access to company profile and playbook.
        llm_service: Optional LLM service (used for model routing if available).
        max_transcript_chars: Truncation limit for the transcript.
    """

    def __init__(
        self,
        organizations: OrganizationRepository,
        llm_service: object | None = None,
        max_transcript_chars: int = DEFAULT_MAX_TRANSCRIPT_CHARS,
    ) -> None:
        self._organizations = organizations
        self._llm_service = llm_service
        self._max_chars = max_transcript_chars

    async def evaluate(self, transcript_text: str, organization_id: str) -> ScorerResult:
        """Score ``transcript_text`` for the seller of ``organization_id``."""
        if not transcript_text or len(transcript_text) < MIN_TRANSCRIPT_CHARS:
            return ScorerResult(success=False, error="Transcript too short for evaluation")

        try:
            profile = await self._organizations.get_profile(organization_id)
            playbook = await self._organizations.get_active_playbook(organization_id)

            system_prompt = SCORER_SYSTEM_PROMPT
            if profile is not None:
                context = [f"Company: {profile.name or 'Unknown'}"]
                if profile.company_type:
                    context.append(f"Company type: {profile.company_type}")
                if profile.description:
                    context.append(f"About: {profile.description}")
                system_prompt += "\n\nSELLER CONTEXT:\n" + "\n".join(context)
            if playbook:
                system_prompt += PLAYBOOK_PROMPT_TEMPLATE.format(playbook=playbook)

            evaluation = await self._extract_evaluation(
                system_prompt,
                truncate_transcript(transcript_text, self._max_chars),
            )
        except Exception as exc:
            logger.warning(
                "scorer.evaluation_failed",
                organization_id=organization_id,
                exc_info=True,
            )
            return ScorerResult(success=False, error=str(exc) or type(exc).__name__)

        if evaluation is None:
            return ScorerResult(success=False, error="Empty evaluation response")

        if not playbook and evaluation.playbook_adherence is not None:
            evaluation = evaluation.model_copy(update={"playbook_adherence": None})

        logger.info(
            "scorer.evaluation_ready",
            organization_id=organization_id,
            overall_score=evaluation.overall_score,
            performance_level=evaluation.performance_level,
            playbook_used=bool(playbook),
        )
        return ScorerResult(success=True, evaluation=evaluation)

    async def _extract_evaluation(
        self, system_prompt: str, transcript_text: str
    ) -> MeetEvaluation | None:
        """Run the structured extraction call.

        Uses instructor.from_litellm(litellm.acompletion) pattern.
        """
        import instructor
        import litellm

        client = instructor.from_litellm(litellm.acompletion)

        return await client.chat.completions.create(
            model=self._resolve_model(),
            response_model=MeetEvaluation,
            messages=[
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": f"Evaluate this sales call transcript:\n\n{transcript_text}",
                },
            ],
            max_tokens=8192,
            temperature=0.3,
        )

    def _resolve_model(self) -> str:
        """Resolve the LLM model, preferring the router's reasoning group."""
        if self._llm_service is not None:
            return self._llm_service.resolve_model("reasoning") or MODEL_REASONING
        return MODEL_REASONING
