"""
FPL threshold calculator.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, Optional, Tuple, Union

from shared.errors import ReferenceDataMissing, ValidationError
from shared.logging import get_logger
from .models import FederalPovertyLevel

MIN_HOUSEHOLD_SIZE = 1
MAX_HOUSEHOLD_SIZE = 50
MAX_PATHWAY_PERCENTAGE = Decimal(1000)

# Published tables stop at 8 persons and add a fixed amount per extra person
LARGEST_TABULATED_HOUSEHOLD = 8

Percentage = Union[int, float, Decimal, str]


class FPLThresholdCalculator:
    """Computes income thresholds from a fixed set of FPL records."""

    def __init__(self, records: Iterable[FederalPovertyLevel]):
        self.logger = get_logger("eligibility.fpl_calculator")
        self._rows: Dict[Tuple[int, int, Optional[str]], FederalPovertyLevel] = {}
        for record in records:
            self._rows[(record.year, record.household_size, record.state_code)] = record

    @property
    def years(self):
        return sorted({year for year, _, _ in self._rows})

    def base_amount(self, year: int, household_size: int, state_code: Optional[str] = None) -> int:
        """Annual 100% FPL amount in cents for a household."""
        _validate_household_size(household_size)
        state = state_code.upper() if state_code else None

        row = self._lookup(year, household_size, state)
        if row is not None:
            return row.annual_income_cents

        if household_size > LARGEST_TABULATED_HOUSEHOLD:
            largest = self._lookup(year, LARGEST_TABULATED_HOUSEHOLD, state)
            previous = self._lookup(year, LARGEST_TABULATED_HOUSEHOLD - 1, state)
            if largest is not None and previous is not None:
                increment = largest.annual_income_cents - previous.annual_income_cents
                extra_people = household_size - LARGEST_TABULATED_HOUSEHOLD
                return largest.annual_income_cents + extra_people * increment

        self.logger.warning(
            "FPL row missing",
            year=year,
            household_size=household_size,
            state_code=state
        )
        raise ReferenceDataMissing(
            f"No FPL data for {year}, household size {household_size}",
            {"year": year, "household_size": household_size, "state_code": state}
        )

    def threshold_for(self, year: int, household_size: int, state_code: Optional[str],
                      pathway_percentage: Percentage) -> int:
        """Annual income threshold in cents at the given percent of FPL."""
        percentage = _validate_percentage(pathway_percentage)
        base = Decimal(self.base_amount(year, household_size, state_code))
        threshold = (base * percentage / Decimal(100)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return int(threshold)

    def monthly_threshold_for(self, year: int, household_size: int, state_code: Optional[str],
                              pathway_percentage: Percentage) -> int:
        """Monthly income threshold in cents; fractions of a cent are dropped."""
        return self.threshold_for(year, household_size, state_code, pathway_percentage) // 12

    def percent_of_fpl(self, year: int, household_size: int, state_code: Optional[str],
                       monthly_income_cents: int) -> Decimal:
        """Annualized income as an exact percentage of the household's FPL."""
        base = Decimal(self.base_amount(year, household_size, state_code))
        return Decimal(monthly_income_cents) * 12 * 100 / base

    def is_income_eligible(self, year: int, household_size: int, state_code: Optional[str],
                           pathway_percentage: Percentage, monthly_income_cents: int) -> bool:
        """Income at or below the monthly threshold qualifies."""
        return monthly_income_cents <= self.monthly_threshold_for(
            year, household_size, state_code, pathway_percentage
        )

    def _lookup(self, year: int, household_size: int, state: Optional[str]) -> Optional[FederalPovertyLevel]:
        if state is not None:
            row = self._rows.get((year, household_size, state))
            if row is not None:
                return row
        return self._rows.get((year, household_size, None))


def _validate_household_size(household_size: int):
    if not MIN_HOUSEHOLD_SIZE <= household_size <= MAX_HOUSEHOLD_SIZE:
        raise ValidationError(
            f"Household size must be between {MIN_HOUSEHOLD_SIZE} and {MAX_HOUSEHOLD_SIZE}",
            {"household_size": household_size}
        )


def _validate_percentage(pathway_percentage: Percentage) -> Decimal:
    try:
        percentage = Decimal(str(pathway_percentage))
    except InvalidOperation:
        percentage = Decimal("NaN")
    if not percentage.is_finite() or percentage < 0 or percentage > MAX_PATHWAY_PERCENTAGE:
        raise ValidationError(
            "Pathway percentage must be between 0 and 1000",
            {"pathway_percentage": str(pathway_percentage)}
        )
    return percentage
