"""Score normalization and performance tiers.

The scorer may report its overall score on a 0-10 or a 0-100 scale. Scores
at or below 10 are treated as the 0-10 scale and multiplied by 10; anything
above 10 is already canonical. A genuine 0-100 score of 10 or less is
therefore indistinguishable from a 0-10 score and gets scaled.
"""

from __future__ import annotations

from src.meetcoach.meetings.schemas import MeetEvaluation, PerformanceLevel

SPIN_WEIGHT = 0.6
OBJECTION_WEIGHT = 0.4
DEFAULT_OBJECTION_AVERAGE = 5.0

# (upper bound inclusive, tier), ascending
_TIERS: list[tuple[int, PerformanceLevel]] = [
    (40, PerformanceLevel.POOR),
    (60, PerformanceLevel.NEEDS_IMPROVEMENT),
    (75, PerformanceLevel.GOOD),
    (85, PerformanceLevel.VERY_GOOD),
    (94, PerformanceLevel.EXCELLENT),
    (100, PerformanceLevel.LEGENDARY),
]


def normalize_overall_score(raw: float) -> int:
    """Bring a scorer-reported overall score onto the canonical 0-100 scale."""
    value = raw * 10 if raw <= 10 else raw
    return int(round(max(0.0, min(100.0, value))))


def compute_overall_score(evaluation: MeetEvaluation) -> float:
    """Derive the 0-100 aggregate from the SPIN and objection sub-scores."""
    spin = evaluation.spin_evaluation
    spin_average = (
        spin.S.final_score + spin.P.final_score + spin.I.final_score + spin.N.final_score
    ) / 4
    objections = evaluation.objections_analysis
    if objections:
        objection_average = sum(o.score for o in objections) / len(objections)
    else:
        objection_average = DEFAULT_OBJECTION_AVERAGE
    return (spin_average * 10) * SPIN_WEIGHT + (objection_average * 10) * OBJECTION_WEIGHT


def resolve_overall_score(evaluation: MeetEvaluation) -> int:
    """Canonical score for an evaluation: the reported one, else the derived one."""
    if evaluation.overall_score is not None:
        return normalize_overall_score(evaluation.overall_score)
    return int(round(compute_overall_score(evaluation)))


def performance_level_for(score: int) -> PerformanceLevel:
    """Map a canonical 0-100 score to its tier."""
    for upper, level in _TIERS:
        if score <= upper:
            return level
    return PerformanceLevel.LEGENDARY


def resolve_performance_level(evaluation: MeetEvaluation, score: int) -> PerformanceLevel:
    """The scorer's tier when it is a known value, else the tier for ``score``."""
    reported = evaluation.performance_level
    if reported:
        try:
            return PerformanceLevel(reported.strip().lower())
        except ValueError:
            pass
    return performance_level_for(score)
