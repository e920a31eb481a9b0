"""
Pathway identification from applicant characteristics.
"""

from typing import List

from .models import ApplicantInput, EligibilityPathway

AGED_MIN_AGE = 65
ADULT_MIN_AGE = 19


def identify_pathways(applicant: ApplicantInput) -> List[EligibilityPathway]:
    """Return every pathway the applicant could qualify through, sorted by name."""
    pathways = set()
    age = applicant.age

    if applicant.receives_ssi:
        pathways.add(EligibilityPathway.SSI_LINKED)

    if age is not None and age >= AGED_MIN_AGE:
        pathways.add(EligibilityPathway.NON_MAGI_AGED)
    elif applicant.has_disability and not applicant.receives_ssi:
        pathways.add(EligibilityPathway.NON_MAGI_DISABLED)

    if (age is not None and ADULT_MIN_AGE <= age < AGED_MIN_AGE
            and not applicant.has_disability and not applicant.receives_ssi):
        pathways.add(EligibilityPathway.MAGI)

    if applicant.is_pregnant:
        pathways.add(EligibilityPathway.PREGNANCY)

    if not pathways:
        pathways.add(EligibilityPathway.OTHER)

    return sorted(pathways, key=lambda pathway: pathway.value)
