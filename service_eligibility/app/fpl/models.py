"""
Federal Poverty Level reference data models.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class FederalPovertyLevel:
    """Annual poverty guideline for one household size.

    A record without a state code is the national baseline; a state record
    (e.g. AK, HI) overrides the baseline for the same year and size.
    """
    year: int
    household_size: int
    annual_income_cents: int
    state_code: Optional[str] = None

    def __post_init__(self):
        if self.state_code is not None:
            object.__setattr__(self, "state_code", self.state_code.upper())

    @property
    def is_baseline(self) -> bool:
        return self.state_code is None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FederalPovertyLevel":
        return cls(
            year=int(data["year"]),
            household_size=int(data["household_size"]),
            annual_income_cents=int(data["annual_income_cents"]),
            state_code=data.get("state_code"),
        )


class ThresholdRequest(BaseModel):
    """Request model for an FPL threshold lookup."""
    year: int = Field(..., ge=2000, le=2100, description="Guideline year")
    household_size: int = Field(..., ge=1, le=50, description="Household size")
    state_code: Optional[str] = Field(None, min_length=2, max_length=2, description="Two-letter state code")
    pathway_percentage: float = Field(100, ge=0, le=1000, description="Percent of FPL, e.g. 138")


class ThresholdResponse(BaseModel):
    """Response model for an FPL threshold lookup."""
    year: int
    household_size: int
    state_code: Optional[str]
    pathway_percentage: float
    base_annual_cents: int
    annual_threshold_cents: int
    monthly_threshold_cents: int
