"""
Unit tests for the FPL threshold calculator.
"""

from decimal import Decimal

import pytest

from shared.errors import ReferenceDataMissing, ValidationError
from service_eligibility.app.fpl.calculator import FPLThresholdCalculator
from service_eligibility.app.fpl.models import FederalPovertyLevel

BASELINE_2026 = [1458000, 1972000, 2486000, 3000000, 3514000, 4028000, 4542000, 5056000]
ALASKA_2026 = [1822500, 2465000, 3107500, 3750000, 4392500, 5035000, 5677500, 6320000]


class TestFPLThresholdCalculator:
    """Test cases for FPLThresholdCalculator."""

    @pytest.fixture
    def records(self):
        """Create 2026 baseline and Alaska rows."""
        rows = [
            FederalPovertyLevel(year=2026, household_size=size, annual_income_cents=amount)
            for size, amount in enumerate(BASELINE_2026, start=1)
        ]
        rows.extend(
            FederalPovertyLevel(year=2026, household_size=size, annual_income_cents=amount, state_code="ak")
            for size, amount in enumerate(ALASKA_2026, start=1)
        )
        return rows

    @pytest.fixture
    def calculator(self, records):
        """Create calculator instance."""
        return FPLThresholdCalculator(records)

    def test_baseline_lookup(self, calculator):
        """Test baseline amounts for tabulated sizes."""
        assert calculator.base_amount(2026, 1) == 1458000
        assert calculator.base_amount(2026, 4, "IL") == 3000000

    def test_state_override(self, calculator):
        """Test a state row wins over the baseline."""
        assert calculator.base_amount(2026, 1, "AK") == 1822500
        assert calculator.base_amount(2026, 1, "ak") == 1822500

    def test_state_without_rows_falls_back_to_baseline(self, calculator):
        """Test states without their own rows use the baseline."""
        assert calculator.base_amount(2026, 2, "TX") == calculator.base_amount(2026, 2)

    def test_large_household_extrapolation(self, calculator):
        """Test sizes above 8 add the per-person increment."""
        increment = BASELINE_2026[7] - BASELINE_2026[6]
        assert calculator.base_amount(2026, 9) == BASELINE_2026[7] + increment
        assert calculator.base_amount(2026, 12) == BASELINE_2026[7] + 4 * increment

    def test_large_household_extrapolation_uses_state_rows(self, calculator):
        """Test extrapolation follows the state table."""
        increment = ALASKA_2026[7] - ALASKA_2026[6]
        assert calculator.base_amount(2026, 10, "AK") == ALASKA_2026[7] + 2 * increment

    def test_missing_year(self, calculator):
        """Test a year without data raises ReferenceDataMissing."""
        with pytest.raises(ReferenceDataMissing) as exc_info:
            calculator.base_amount(2019, 1)
        assert exc_info.value.details["year"] == 2019

    def test_extrapolation_needs_two_rows(self):
        """Test extrapolation without sizes 7 and 8 raises."""
        calculator = FPLThresholdCalculator([
            FederalPovertyLevel(year=2026, household_size=8, annual_income_cents=5056000)
        ])
        with pytest.raises(ReferenceDataMissing):
            calculator.base_amount(2026, 9)

    @pytest.mark.parametrize("size", [0, -1, 51])
    def test_household_size_range(self, calculator, size):
        """Test household size validation."""
        with pytest.raises(ValidationError):
            calculator.base_amount(2026, size)

    @pytest.mark.parametrize("percentage", [-1, 1000.01, "abc", float("nan")])
    def test_percentage_range(self, calculator, percentage):
        """Test pathway percentage validation."""
        with pytest.raises(ValidationError):
            calculator.threshold_for(2026, 1, None, percentage)

    def test_threshold_rounding(self, calculator):
        """Test annual thresholds round half up to the cent."""
        assert calculator.threshold_for(2026, 1, None, 138) == 2012040
        assert calculator.threshold_for(2026, 1, None, Decimal("133.5")) == 1946430
        assert calculator.threshold_for(2026, 3, None, "0") == 0
        assert calculator.threshold_for(2026, 3, None, 1000) == 24860000

    def test_monthly_threshold_truncates(self, calculator):
        """Test monthly thresholds drop fractions of a cent."""
        assert calculator.monthly_threshold_for(2026, 1, "IL", 138) == 167670
        assert calculator.monthly_threshold_for(2026, 2, None, 100) == 164333

    def test_income_eligibility_boundary(self, calculator):
        """Test income exactly at the limit qualifies and one cent over does not."""
        assert calculator.is_income_eligible(2026, 1, "IL", 138, 167670) is True
        assert calculator.is_income_eligible(2026, 1, "IL", 138, 167671) is False

    def test_percent_of_fpl(self, calculator):
        """Test annualized income as a percentage of FPL."""
        assert calculator.percent_of_fpl(2026, 4, None, 250000) == Decimal(100)
        assert calculator.percent_of_fpl(2026, 4, None, 0) == Decimal(0)

    def test_years(self, calculator):
        """Test available years."""
        assert calculator.years == [2026]


class TestFederalPovertyLevel:
    """Test cases for FPL records."""

    def test_from_dict(self):
        """Test building a record from reference data."""
        record = FederalPovertyLevel.from_dict({
            "year": "2026", "household_size": 2, "annual_income_cents": 2465000, "state_code": "hi"
        })
        assert record.state_code == "HI"
        assert record.year == 2026
        assert not record.is_baseline

    def test_baseline_record(self):
        """Test records without a state are the baseline."""
        record = FederalPovertyLevel.from_dict({"year": 2026, "household_size": 1, "annual_income_cents": 1458000})
        assert record.is_baseline
