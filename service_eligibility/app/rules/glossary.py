"""
Plain-language glossary for applicant-facing text.

Explanations and factors are read by applicants, not caseworkers, so every
program acronym is spelled out the first time it appears in a text, e.g.
``138% FPL`` becomes ``138% Federal Poverty Level (FPL)``.
"""

import re
from typing import List, Optional, Set

ACRONYMS = {
    "AGI": "Adjusted Gross Income",
    "AMI": "Area Median Income",
    "CHIP": "Children's Health Insurance Program",
    "DHHS": "Department of Health and Human Services",
    "DHS": "Department of Human Services",
    "FPL": "Federal Poverty Level",
    "MAGI": "Modified Adjusted Gross Income",
    "SOC": "Share of Cost",
    "SSDI": "Social Security Disability Insurance",
    "SSI": "Supplemental Security Income",
    "SSP": "State Supplementary Payment",
    "TANF": "Temporary Assistance for Needy Families",
}

# Longest first so SSDI is never read as SSI
_ACRONYM_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(ACRONYMS, key=len, reverse=True)) + r")\b"
)


def _spelled_out(acronym: str) -> str:
    return f"{ACRONYMS[acronym]} ({acronym})"


def expand_acronyms(text: str, seen: Optional[Set[str]] = None) -> str:
    """Spell out each known acronym at its first appearance.

    ``seen`` carries the acronyms already explained earlier in the same
    passage and is updated in place. Acronyms the text already spells out
    are left alone, so expanding twice changes nothing.
    """
    seen = set() if seen is None else seen
    seen.update(acronym for acronym in ACRONYMS if _spelled_out(acronym) in text)

    def replace(match: "re.Match[str]") -> str:
        acronym = match.group(1)
        if acronym in seen:
            return acronym
        seen.add(acronym)
        return _spelled_out(acronym)

    return _ACRONYM_PATTERN.sub(replace, text)


def unexplained_acronyms(text: str) -> List[str]:
    """Known acronyms used in ``text`` without ever being spelled out."""
    used = {match.group(1) for match in _ACRONYM_PATTERN.finditer(text)}
    return sorted(acronym for acronym in used if _spelled_out(acronym) not in text)
