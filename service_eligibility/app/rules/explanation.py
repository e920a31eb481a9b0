"""
Plain-language explanations for eligibility results.
"""

from decimal import Decimal
from typing import List, Optional

from .glossary import expand_acronyms
from .models import ProgramMatch


def format_cents(cents: int) -> str:
    """Render cents as a dollar amount, e.g. 167670 -> $1,676.70."""
    return "${:,.2f}".format(Decimal(cents) / 100)


def program_explanation(program_name: str, passed: bool, monthly_income_cents: int,
                        monthly_threshold_cents: Optional[int],
                        disqualifying_factors: List[str]) -> str:
    """Applicant-facing summary for one program; acronyms are spelled out once."""
    return f"For {program_name}: " + expand_acronyms(
        _program_reason(passed, monthly_income_cents, monthly_threshold_cents, disqualifying_factors)
    )


def _program_reason(passed: bool, monthly_income_cents: int, monthly_threshold_cents: Optional[int],
                    disqualifying_factors: List[str]) -> str:
    income = format_cents(monthly_income_cents)
    if passed:
        if monthly_threshold_cents is None:
            return "you meet the program requirements."
        limit = format_cents(monthly_threshold_cents)
        if monthly_income_cents <= monthly_threshold_cents:
            return f"your income of {income} is within the limit of {limit}."
        return (
            f"you meet the program requirements even though your income of {income} "
            f"is above the limit of {limit}."
        )

    if not disqualifying_factors:
        return "you do not meet the program requirements."
    numbered = ", ".join(f"({index}) {factor}" for index, factor in enumerate(disqualifying_factors, start=1))
    return f"you may not qualify because {numbered}."


def overall_explanation(qualifying: List[ProgramMatch], evaluated_count: int) -> str:
    if not qualifying:
        return f"Not eligible for any programs. Evaluated {evaluated_count} programs."

    best = qualifying[0]
    if len(qualifying) == 1:
        return f"Eligible for {best.program_name} (Confidence: {best.confidence_score}%)"
    return (
        f"Eligible for {len(qualifying)} programs. "
        f"Most likely: {best.program_name} (Confidence: {best.confidence_score}%)"
    )
