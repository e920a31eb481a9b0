"""
Confidence scoring for program matches.

Score to status (consumed by the presentation layer):

    score >= 60  -> LikelyEligible
    40 .. 59     -> PossiblyEligible
    score < 40   -> UnlikelyEligible

Score to label: 0-19 Uncertain, 20-39 Low, 40-59 Some, 60-79 High,
80-100 Very high.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .models import EligibilityStatus

MIN_SCORE = 0
MAX_SCORE = 100

LIKELY_THRESHOLD = 60
POSSIBLY_THRESHOLD = 40

PASSING_BASE_SCORE = 95
FAILING_BASE_SCORE = 5
MAX_BOUNDARY_PENALTY = 35
MAX_BORDERLINE_BONUS = 54
UNRESOLVED_VERIFICATION_PENALTY = 5
INCOMPLETE_INPUT_CAP = 45

# Within 10% of a limit counts as close to the boundary
BOUNDARY_MARGIN = Decimal("0.10")


def clamp_score(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, score))


def status_for_score(score: int) -> EligibilityStatus:
    """Map a confidence score onto an eligibility status."""
    if score >= LIKELY_THRESHOLD:
        return EligibilityStatus.LIKELY_ELIGIBLE
    if score >= POSSIBLY_THRESHOLD:
        return EligibilityStatus.POSSIBLY_ELIGIBLE
    return EligibilityStatus.UNLIKELY_ELIGIBLE


def confidence_label(score: int) -> str:
    """Human-readable confidence band."""
    if score >= 80:
        return "Very high"
    if score >= 60:
        return "High"
    if score >= 40:
        return "Some"
    if score >= 20:
        return "Low"
    return "Uncertain"


def relative_margin(value: int, limit: int) -> Optional[Decimal]:
    """Signed distance of a value below a limit, as a fraction of the limit."""
    if limit <= 0:
        return None
    return (Decimal(limit) - Decimal(value)) / Decimal(limit)


def _scaled(maximum: int, closeness: Decimal) -> int:
    # closeness runs from 0 (at the margin edge) to 1 (on the boundary)
    closeness = max(Decimal(0), min(Decimal(1), closeness))
    return int((Decimal(maximum) * closeness).quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass
class ScoreInputs:
    """Facts the scorer needs about one evaluated program."""
    passed: bool
    complete: bool
    income_margin: Optional[Decimal] = None
    asset_margin: Optional[Decimal] = None
    income_only_failure: bool = False
    verification_pending: bool = False


class ConfidenceScorer:
    """Derives a 0-100 confidence score from gate outcome, completeness and boundary distance."""

    def score(self, inputs: ScoreInputs) -> int:
        if inputs.passed:
            score = PASSING_BASE_SCORE - self._boundary_penalty(inputs)
            if inputs.verification_pending:
                score -= UNRESOLVED_VERIFICATION_PENALTY
        else:
            score = FAILING_BASE_SCORE + self._borderline_bonus(inputs)

        if not inputs.complete:
            score = min(score, INCOMPLETE_INPUT_CAP)

        return clamp_score(score)

    def _boundary_penalty(self, inputs: ScoreInputs) -> int:
        penalty = 0
        for margin in (inputs.income_margin, inputs.asset_margin):
            if margin is None:
                continue
            closeness = Decimal(1) - margin / BOUNDARY_MARGIN
            penalty = max(penalty, _scaled(MAX_BOUNDARY_PENALTY, closeness))
        return penalty

    def _borderline_bonus(self, inputs: ScoreInputs) -> int:
        if not inputs.income_only_failure or inputs.income_margin is None:
            return 0
        overshoot = -inputs.income_margin
        if overshoot <= 0:
            return 0
        return _scaled(MAX_BORDERLINE_BONUS, Decimal(1) - overshoot / BOUNDARY_MARGIN)
