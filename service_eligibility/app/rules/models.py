"""
Program and rule data models for the Eligibility Service.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..expressions.nodes import ExpressionNode
from ..expressions.parser import compile_expression
from ..fpl.calculator import MAX_PATHWAY_PERCENTAGE


class EligibilityPathway(str, Enum):
    """Programmatic category through which an applicant may qualify."""
    MAGI = "MAGI"
    NON_MAGI_AGED = "NonMAGI_Aged"
    NON_MAGI_DISABLED = "NonMAGI_Disabled"
    SSI_LINKED = "SSI_Linked"
    PREGNANCY = "Pregnancy"
    OTHER = "Other"


class EligibilityStatus(str, Enum):
    """Verdict derived from the confidence score."""
    LIKELY_ELIGIBLE = "LikelyEligible"
    POSSIBLY_ELIGIBLE = "PossiblyEligible"
    UNLIKELY_ELIGIBLE = "UnlikelyEligible"


@dataclass(frozen=True)
class MedicaidProgram:
    """State Medicaid program (reference data)."""
    program_id: str
    state_code: str
    program_name: str
    program_code: str
    pathway: EligibilityPathway = EligibilityPathway.OTHER
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MedicaidProgram":
        return cls(
            program_id=data["program_id"],
            state_code=data["state_code"].upper(),
            program_name=data["program_name"],
            program_code=data.get("program_code", data["program_id"]),
            pathway=EligibilityPathway(data.get("pathway", EligibilityPathway.OTHER.value)),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class EligibilityRule:
    """One version of a program's eligibility rule."""
    rule_id: str
    program_id: str
    state_code: str
    version: int
    logic: ExpressionNode
    effective_date: date
    end_date: Optional[date] = None
    fpl_percentage: Optional[Decimal] = None
    description: Optional[str] = None

    def is_active(self, as_of: date) -> bool:
        """Effective date and end date are both inclusive."""
        if self.effective_date > as_of:
            return False
        return self.end_date is None or as_of <= self.end_date

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EligibilityRule":
        end_date = data.get("end_date")
        percentage = data.get("fpl_percentage")
        if percentage is not None:
            try:
                percentage = Decimal(str(percentage))
            except InvalidOperation:
                raise ValueError(f"fpl_percentage {percentage!r} is not a number") from None
            if not percentage.is_finite() or not 0 <= percentage <= MAX_PATHWAY_PERCENTAGE:
                raise ValueError(f"fpl_percentage {percentage} is outside 0-{MAX_PATHWAY_PERCENTAGE}")
        return cls(
            rule_id=data["rule_id"],
            program_id=data["program_id"],
            state_code=data["state_code"].upper(),
            version=int(data["version"]),
            logic=compile_expression(data["logic"]),
            effective_date=date.fromisoformat(data["effective_date"]),
            end_date=date.fromisoformat(end_date) if end_date else None,
            fpl_percentage=percentage,
            description=data.get("description"),
        )


@dataclass
class ProgramMatch:
    """Outcome of evaluating one program for an applicant."""
    program_id: str
    program_name: str
    pathway: EligibilityPathway
    rule_version: int
    passed: bool
    status: EligibilityStatus
    confidence_score: int
    confidence_label: str
    explanation: str
    matching_factors: List[str] = field(default_factory=list)
    disqualifying_factors: List[str] = field(default_factory=list)
    missing_inputs: List[str] = field(default_factory=list)


@dataclass
class EligibilityResult:
    """Aggregate result across every program evaluated for a state."""
    status: EligibilityStatus
    confidence_score: int
    confidence_label: str
    explanation: str
    evaluated_on: date
    matches: List[ProgramMatch] = field(default_factory=list)
    pathways: List[EligibilityPathway] = field(default_factory=list)
    excluded_programs: Dict[str, str] = field(default_factory=dict)


class ApplicantInput(BaseModel):
    """Request model for an eligibility evaluation."""
    state_code: str = Field(..., min_length=2, max_length=2, description="Two-letter state code")
    household_size: int = Field(..., ge=1, le=50, description="People in the household")
    monthly_income_cents: int = Field(..., ge=0, description="Gross monthly household income in cents")
    age: Optional[int] = Field(None, ge=0, le=120, description="Applicant age in years")
    has_disability: bool = Field(False, description="Applicant reports a disability")
    is_pregnant: bool = Field(False, description="Applicant is pregnant")
    receives_ssi: bool = Field(False, description="Applicant receives SSI")
    is_citizen: bool = Field(True, description="Applicant is a citizen or qualified non-citizen")
    assets_cents: Optional[int] = Field(None, ge=0, description="Countable assets in cents")

    @field_validator("state_code")
    @classmethod
    def _normalize_state(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("state_code must be alphabetic")
        return value.upper()


class ProgramMatchResponse(BaseModel):
    """Response model for a single program match."""
    program_id: str
    program_name: str
    pathway: EligibilityPathway
    rule_version: int
    status: EligibilityStatus
    confidence_score: int = Field(..., ge=0, le=100)
    confidence_label: str
    explanation: str
    matching_factors: List[str] = Field(default_factory=list)
    disqualifying_factors: List[str] = Field(default_factory=list)
    missing_inputs: List[str] = Field(default_factory=list)

    @classmethod
    def from_match(cls, match: ProgramMatch) -> "ProgramMatchResponse":
        return cls(
            program_id=match.program_id,
            program_name=match.program_name,
            pathway=match.pathway,
            rule_version=match.rule_version,
            status=match.status,
            confidence_score=match.confidence_score,
            confidence_label=match.confidence_label,
            explanation=match.explanation,
            matching_factors=list(match.matching_factors),
            disqualifying_factors=list(match.disqualifying_factors),
            missing_inputs=list(match.missing_inputs),
        )


class EligibilityResponse(BaseModel):
    """Response model for an eligibility evaluation."""
    status: EligibilityStatus
    confidence_score: int = Field(..., ge=0, le=100)
    confidence_label: str
    explanation: str
    evaluated_on: date
    matches: List[ProgramMatchResponse] = Field(default_factory=list)
    pathways: List[EligibilityPathway] = Field(default_factory=list)
    excluded_programs: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: EligibilityResult) -> "EligibilityResponse":
        return cls(
            status=result.status,
            confidence_score=result.confidence_score,
            confidence_label=result.confidence_label,
            explanation=result.explanation,
            evaluated_on=result.evaluated_on,
            matches=[ProgramMatchResponse.from_match(match) for match in result.matches],
            pathways=list(result.pathways),
            excluded_programs=dict(result.excluded_programs),
        )
