"""SimulationGenerator -- follow-up practice scenarios from a call evaluation.

Builds a role-play configuration that replays the real client of an
evaluated call (persona, objections with rebuttals, objective, coaching
focus) so the seller can practice the same conversation again.

The reply is requested in JSON mode through LLMService and then repaired:
the persona is forced to the organization's business type, an unknown
temperament falls back to "Analitico", and an implausible age falls back to
35. A reply missing persona, objections or objective is rejected.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from src.meetcoach.meetings.repository import OrganizationRepository

logger = structlog.get_logger(__name__)


# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_COMPANY_TYPE = "B2C"
VALID_TEMPERAMENTS = ("Analitico", "Empatico", "Determinado", "Indeciso", "Sociavel")
DEFAULT_TEMPERAMENT = "Analitico"
MIN_AGE, MAX_AGE, DEFAULT_AGE = 18, 60, 35
TRANSCRIPT_EDGE_CHARS = 2_500
REQUIRED_KEYS = ("persona", "objections", "objective")


class SimulationGenerationError(Exception):
    """The LLM reply could not be turned into a usable practice scenario."""


# ── Prompts ──────────────────────────────────────────────────────────────────

SIMULATION_SYSTEM_PROMPT = (
    "You build personalized sales role-play simulations. The seller just left "
    "a real meeting and wants to practice with the SAME client to fix their "
    "mistakes.\n"
    "- Build the persona from what the client actually revealed in the "
    "transcript, enriched only with coherent detail.\n"
    "- Take 2 or more objections straight from the transcript (source "
    '"meeting") and at most 2 aimed at the seller\'s gaps (source '
    '"coaching"); give each 3-4 rebuttals using distinct verbal techniques.\n'
    "- Coaching focus covers the 2-3 weakest SPIN areas with diagnosis, "
    "transcript evidence, business impact, practice goal and example phrases.\n"
    "- Never invent numbers that were not said in the call.\n"
    f"- temperament must be one of: {', '.join(VALID_TEMPERAMENTS)}.\n"
    "Return ONLY valid JSON."
)

PERSONA_FIELDS = {
    "B2B": "cargo, tipo_empresa_faturamento, contexto, busca, dores",
    "B2C": "profissao, perfil_socioeconomico, contexto, busca, dores",
}


def truncate_middle(transcript: str, edge: int = TRANSCRIPT_EDGE_CHARS) -> str:
    """Keep the first and last ``edge`` characters of long transcripts."""
    if len(transcript) <= edge * 2:
        return transcript
    return (
        transcript[:edge]
        + "\n\n[... transcript truncated ...]\n\n"
        + transcript[-edge:]
    )


def _bullets(items: list[Any], empty: str) -> str:
    lines = [f"- {item}" for item in items if item]
    return "\n".join(lines) or f"- {empty}"


def build_user_prompt(
    evaluation: dict,
    transcript: str,
    company_type: str,
    company_context: list[tuple[str, str]],
) -> str:
    """Render the evaluation highlights and transcript into the user prompt."""
    spin = evaluation.get("spin_evaluation") or {}
    spin_lines = []
    for letter, label in (("S", "Situation"), ("P", "Problem"), ("I", "Implication"), ("N", "Need-payoff")):
        dim = spin.get(letter) or {}
        spin_lines.append(
            f"- {letter} ({label}): {dim.get('final_score', 'N/A')}/10 - "
            f"{dim.get('technical_feedback') or 'No feedback'}"
        )

    objections = [
        f"Type: {o.get('objection_type')} | Score: {o.get('score')}/10 | "
        f"Text: \"{o.get('objection_text')}\" | Analysis: {o.get('detailed_analysis')}"
        for o in evaluation.get("objections_analysis") or []
        if isinstance(o, dict)
    ]
    improvements = [
        f"[{i.get('priority')}] {i.get('area')}: gap=\"{i.get('current_gap')}\" "
        f"| plan=\"{i.get('action_plan')}\""
        for i in evaluation.get("priority_improvements") or []
        if isinstance(i, dict)
    ]

    context = ""
    if company_context:
        context = "\nSELLER COMPANY:\n" + "\n".join(
            f"- {label}: {value}" for label, value in company_context
        )

    persona_fields = PERSONA_FIELDS.get(company_type, PERSONA_FIELDS[DEFAULT_COMPANY_TYPE])

    return (
        f"COMPANY TYPE: {company_type}{context}\n\n"
        f"PERSONA FIELDS ({company_type}): business_type, {persona_fields}\n\n"
        "MEETING EVALUATION:\n"
        f"- Overall score: {evaluation.get('overall_score')}\n"
        f"- Level: {evaluation.get('performance_level')}\n"
        f"- Summary: {evaluation.get('executive_summary')}\n\n"
        f"STRENGTHS:\n{_bullets(evaluation.get('top_strengths') or [], 'None identified')}\n\n"
        f"CRITICAL GAPS:\n{_bullets(evaluation.get('critical_gaps') or [], 'None identified')}\n\n"
        "SPIN SCORES:\n" + "\n".join(spin_lines) + "\n\n"
        f"OBJECTIONS RAISED:\n{_bullets(objections, 'No objections identified')}\n\n"
        f"PRIORITY IMPROVEMENTS:\n{_bullets(improvements, 'None')}\n\n"
        f"TRANSCRIPT:\n{truncate_middle(transcript)}\n\n"
        "Return JSON with keys: persona, objections [{name, rebuttals, source}], "
        "age, temperament, objective {name, description}, "
        "simulation_justification, coaching_focus, meeting_context."
    )


def repair_config(config: dict, company_type: str) -> dict:
    """Validate required keys and clamp the fields the role-play engine relies on.

    Raises:
        SimulationGenerationError: If persona, objections or objective is missing.
    """
    missing = [key for key in REQUIRED_KEYS if not config.get(key)]
    if missing:
        raise SimulationGenerationError(
            f"Incomplete simulation config: missing {', '.join(missing)}"
        )

    if isinstance(config["persona"], dict):
        config["persona"]["business_type"] = company_type

    if config.get("temperament") not in VALID_TEMPERAMENTS:
        config["temperament"] = DEFAULT_TEMPERAMENT

    age = config.get("age")
    if not isinstance(age, (int, float)) or isinstance(age, bool) or not MIN_AGE <= age <= MAX_AGE:
        config["age"] = DEFAULT_AGE

    return config


# ── SimulationGenerator ──────────────────────────────────────────────────────


class SimulationGenerator:
    """Generates a practice-scenario configuration from an evaluation.

    Args:
        llm_service: LLMService used for the JSON-mode completion.
        organizations: Read access to the organization profile.
    """

    def __init__(self, llm_service: Any, organizations: OrganizationRepository) -> None:
        self._llm_service = llm_service
        self._organizations = organizations

    async def generate(
        self,
        evaluation: dict,
        transcript: str,
        organization_id: str | None = None,
    ) -> dict:
        """Build and validate a practice scenario.

        Returns:
            The repaired simulation config dict.

        Raises:
            SimulationGenerationError: If the reply is empty, not JSON, or
                incomplete.
        """
        company_type = DEFAULT_COMPANY_TYPE
        company_context: list[tuple[str, str]] = []
        if organization_id:
            profile = await self._organizations.get_profile(organization_id)
            if profile is not None:
                company_type = profile.company_type or DEFAULT_COMPANY_TYPE
                company_context = [
                    (label, value)
                    for label, value in profile.context_fields()
                    if label in ("Company name", "Description", "Products/Services")
                ]

        response = await self._llm_service.completion(
            messages=[
                {"role": "system", "content": SIMULATION_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": build_user_prompt(
                        evaluation, transcript, company_type, company_context
                    ),
                },
            ],
            model="reasoning",
            max_tokens=8000,
            temperature=0.5,
            json_mode=True,
            metadata={"operation": "generate_simulation"},
        )

        content = response.get("content")
        if not content:
            raise SimulationGenerationError("Empty response from LLM")
        try:
            config = json.loads(content)
        except json.JSONDecodeError as exc:
            raise SimulationGenerationError(f"Malformed simulation JSON: {exc}") from exc
        if not isinstance(config, dict):
            raise SimulationGenerationError("Simulation config is not a JSON object")

        config = repair_config(config, company_type)
        logger.info(
            "simulation.generated",
            organization_id=organization_id,
            company_type=company_type,
            objection_count=len(config["objections"]),
        )
        return config
