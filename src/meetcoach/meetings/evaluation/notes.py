"""NotesExtractor -- lead and deal intelligence notes from a call transcript.

Uses instructor + litellm with SmartNotes as the response model. The prompt
is enriched with the organization's profile, its enabled extraction topics
and the manager's custom observation prompts.

Models often omit observations they found nothing about, so the reply is
back-filled to hold exactly one entry per configured observation, in the
configured order. Like the scorer, the extractor never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from src.meetcoach.meetings.evaluation.scorer import (
    DEFAULT_MAX_TRANSCRIPT_CHARS,
    MIN_TRANSCRIPT_CHARS,
    MODEL_REASONING,
    truncate_transcript,
)
from src.meetcoach.meetings.repository import OrganizationRepository
from src.meetcoach.meetings.schemas import (
    CompanyProfile,
    CustomObservation,
    DealStatus,
    NoteTopic,
    SmartNotes,
)

logger = structlog.get_logger(__name__)

OBSERVATION_MATCH_PREFIX = 30
NOT_MENTIONED = "Not mentioned in the meeting"


@dataclass
class NotesResult:
    """Outcome of one notes extraction call."""

    success: bool
    notes: SmartNotes | None = None
    error: str | None = None


# ── System Prompts ───────────────────────────────────────────────────────────

NOTES_SYSTEM_PROMPT = (
    "You are a sales intelligence analyst. From the call transcript, extract "
    "everything learned about the client and the deal as structured notes.\n"
    "- Group facts into sections with a short contextual insight each, most "
    "strategic first.\n"
    "- Mark each item as explicit (said in the call) or inferred, and quote "
    "the transcript where possible.\n"
    "- List next steps with owner (seller, client, both) and status "
    "(agreed, suggested, pending).\n"
    "- Assess deal temperature: hot (clear buying signals and concrete next "
    "steps), warm (real interest without urgency or with blockers), cold "
    "(vague interest, many objections).\n"
    "Prefer concrete data over generalities. Never invent facts."
)


def _company_section(profile: CompanyProfile | None) -> str:
    if profile is None:
        return ""
    fields = profile.context_fields()
    if not fields:
        return ""
    lines = "\n".join(f"- {label}: {value}" for label, value in fields)
    return (
        "\n\nSELLER COMPANY CONTEXT (use it to tell what matters for this "
        f"sale):\n{lines}"
    )


def _topics_section(topics: list[NoteTopic]) -> str:
    if not topics:
        return ""
    lines = "\n".join(
        f"- {t.title}" + (f": {t.description}" if t.description else "") for t in topics
    )
    return f"\n\nTOPICS TO EXTRACT (one section per topic when discussed):\n{lines}"


def _observations_section(observations: list[str]) -> str:
    if not observations:
        return "\n\nNo custom observations are configured; leave custom_observations empty."
    numbered = "\n".join(f'{i + 1}. "{o}"' for i, o in enumerate(observations))
    return (
        f"\n\nMANAGER OBSERVATIONS: return exactly {len(observations)} entries in "
        "custom_observations, one per observation below and in the same order. "
        "Use found=true with details when it came up, otherwise found=false and "
        f"explain that it was not discussed.\n{numbered}"
    )


def backfill_observations(
    configured: list[str], returned: list[CustomObservation]
) -> list[CustomObservation]:
    """Return exactly one observation per configured prompt, in order.

    A configured prompt is matched to the returned entry at the same index,
    then to any entry containing its first 30 characters, then to any entry
    whose first 30 characters it contains. Unmatched prompts are reported as
    not found.
    """
    completed: list[CustomObservation] = []
    for i, text in enumerate(configured):
        lowered = text.lower()
        match = returned[i] if i < len(returned) else None
        if match is None:
            match = next(
                (
                    r
                    for r in returned
                    if lowered[:OBSERVATION_MATCH_PREFIX] in r.observation.lower()
                ),
                None,
            )
        if match is None:
            match = next(
                (
                    r
                    for r in returned
                    if r.observation
                    and r.observation.lower()[:OBSERVATION_MATCH_PREFIX] in lowered
                ),
                None,
            )
        if match is None:
            match = CustomObservation(observation=text, found=False, details=NOT_MENTIONED)
        completed.append(match)
    return completed


# ── NotesExtractor ───────────────────────────────────────────────────────────


class NotesExtractor:
    """Extracts SmartNotes from a flattened transcript.

    Args:
        organizations: Read access to profile, topics and observations.
        llm_service: Optional LLM service (used for model routing if available).
        max_observations: Cap on custom observations loaded per organization.
        max_transcript_chars: Truncation limit for the transcript.
    """

    def __init__(
        self,
        organizations: OrganizationRepository,
        llm_service: object | None = None,
        max_observations: int = 10,
        max_transcript_chars: int = DEFAULT_MAX_TRANSCRIPT_CHARS,
    ) -> None:
        self._organizations = organizations
        self._llm_service = llm_service
        self._max_observations = max_observations
        self._max_chars = max_transcript_chars

    async def extract(self, transcript_text: str, organization_id: str) -> NotesResult:
        """Extract notes for ``organization_id`` from ``transcript_text``."""
        if not transcript_text or len(transcript_text) < MIN_TRANSCRIPT_CHARS:
            return NotesResult(success=False, error="Transcript too short for notes")

        try:
            profile = await self._organizations.get_profile(organization_id)
            topics = await self._organizations.get_topics(organization_id)
            observations = await self._organizations.get_observations(
                organization_id, limit=self._max_observations
            )

            company_type = (profile.company_type if profile else None) or "B2B"
            user_prompt = (
                f"Extract commercial intelligence notes from this {company_type} "
                "sales call."
                + _company_section(profile)
                + _topics_section(topics)
                + _observations_section(observations)
                + "\n\nTRANSCRIPT:\n"
                + truncate_transcript(transcript_text, self._max_chars)
            )

            notes = await self._extract_notes(user_prompt)
        except Exception as exc:
            logger.warning(
                "notes.extraction_failed",
                organization_id=organization_id,
                exc_info=True,
            )
            return NotesResult(success=False, error=str(exc) or type(exc).__name__)

        if notes is None:
            return NotesResult(success=False, error="Empty notes response")

        updates: dict = {"generated_at": datetime.now(timezone.utc)}
        if notes.deal_status is None:
            updates["deal_status"] = DealStatus()
        if observations:
            updates["custom_observations"] = backfill_observations(
                observations, notes.custom_observations
            )
        notes = notes.model_copy(update=updates)

        logger.info(
            "notes.extraction_ready",
            organization_id=organization_id,
            section_count=len(notes.sections),
            temperature=notes.deal_status.temperature,
            observation_count=len(notes.custom_observations),
        )
        return NotesResult(success=True, notes=notes)

    async def _extract_notes(self, user_prompt: str) -> SmartNotes | None:
        """Run the structured extraction call.

        Uses instructor.from_litellm(litellm.acompletion) pattern.
        """
        import instructor
        import litellm

        client = instructor.from_litellm(litellm.acompletion)

        return await client.chat.completions.create(
            model=self._resolve_model(),
            response_model=SmartNotes,
            messages=[
                {"role": "system", "content": NOTES_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=8000,
            temperature=0.2,
        )

    def _resolve_model(self) -> str:
        """Resolve the LLM model, preferring the router's reasoning group."""
        if self._llm_service is not None:
            return self._llm_service.resolve_model("reasoning") or MODEL_REASONING
        return MODEL_REASONING
