"""
Rule evaluation engine for the Eligibility Service.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from shared.errors import EligibilityException, NoActiveRule, ReferenceDataMissing
from shared.logging import get_logger
from ..expressions.evaluator import ABSENT, evaluate_condition, referenced_keys, resolve_variable
from ..fpl.calculator import FPLThresholdCalculator
from .assets import AssetEvaluator, AssetTestResult
from .explanation import format_cents, overall_explanation, program_explanation
from .glossary import expand_acronyms
from .models import (
    ApplicantInput, EligibilityPathway, EligibilityResult, EligibilityRule,
    EligibilityStatus, MedicaidProgram, ProgramMatch
)
from .pathways import AGED_MIN_AGE, ADULT_MIN_AGE, identify_pathways
from .scoring import (
    POSSIBLY_THRESHOLD, ConfidenceScorer, ScoreInputs, confidence_label,
    relative_margin, status_for_score
)

NON_CITIZEN_FACTOR = "Non-citizen status may limit eligibility (Emergency Medicaid only)"
SSI_FACTOR = "Receiving Supplemental Security Income (SSI) qualifies you automatically"


def select_active_rule(rules: Iterable[EligibilityRule], as_of: date) -> Optional[EligibilityRule]:
    """Pick the highest active version; None when no version covers ``as_of``."""
    active = [rule for rule in rules if rule.is_active(as_of)]
    if not active:
        return None
    return max(active, key=lambda rule: (rule.version, rule.effective_date, rule.rule_id))


class RuleEngine:
    """Evaluates versioned program rules for one applicant.

    The engine is stateless apart from its reference data and can be shared
    across concurrent requests.
    """

    def __init__(self, fpl_calculator: FPLThresholdCalculator,
                 asset_evaluator: Optional[AssetEvaluator] = None,
                 scorer: Optional[ConfidenceScorer] = None):
        self.logger = get_logger("eligibility.rule_engine")
        self.fpl_calculator = fpl_calculator
        self.asset_evaluator = asset_evaluator or AssetEvaluator()
        self.scorer = scorer or ConfidenceScorer()

    def build_context(self, applicant: ApplicantInput, rule: EligibilityRule, year: int) -> Dict[str, Any]:
        """Answer snapshot that rule logic is evaluated against."""
        context: Dict[str, Any] = {
            "state_code": applicant.state_code,
            "household_size": applicant.household_size,
            "monthly_income_cents": applicant.monthly_income_cents,
            "annual_income_cents": applicant.monthly_income_cents * 12,
            "has_disability": applicant.has_disability,
            "is_pregnant": applicant.is_pregnant,
            "receives_ssi": applicant.receives_ssi,
            "is_citizen": applicant.is_citizen,
        }
        if applicant.age is not None:
            context["age"] = applicant.age
        if applicant.assets_cents is not None:
            context["assets_cents"] = applicant.assets_cents

        state = applicant.state_code
        size = applicant.household_size
        context["fpl_annual_cents"] = self.fpl_calculator.base_amount(year, size, state)
        context["household_income_percent_fpl"] = self.fpl_calculator.percent_of_fpl(
            year, size, state, applicant.monthly_income_cents
        )

        if rule.fpl_percentage is not None:
            annual = self.fpl_calculator.threshold_for(year, size, state, rule.fpl_percentage)
            context["income_threshold_annual_cents"] = annual
            context["income_threshold_monthly_cents"] = annual // 12

        return context

    def evaluate(self, applicant: ApplicantInput, program: MedicaidProgram,
                 rule: EligibilityRule, as_of: date) -> ProgramMatch:
        """Evaluate one program's rule and score the outcome."""
        context = self.build_context(applicant, rule, as_of.year)
        assets = self.asset_evaluator.evaluate(program.pathway, applicant.state_code, applicant.assets_cents)
        passed = evaluate_condition(rule.logic, context) and assets.passed

        missing = sorted(
            key for key in referenced_keys(rule.logic)
            if resolve_variable(key, context) is ABSENT
        )
        if assets.undetermined and "assets_cents" not in missing:
            missing.append("assets_cents")

        income = applicant.monthly_income_cents
        threshold = context.get("income_threshold_monthly_cents")
        income_margin = relative_margin(income, threshold) if threshold is not None else None
        asset_margin = None
        if assets.applies and assets.assets_cents is not None:
            asset_margin = relative_margin(assets.assets_cents, assets.limit_cents)

        income_only_failure = (
            not passed
            and threshold is not None
            and income > threshold
            and assets.passed
            and self._passes_at_income(rule, context, threshold)
        )
        verification_pending = (
            passed
            and program.pathway == EligibilityPathway.NON_MAGI_DISABLED
            and applicant.has_disability
            and not applicant.receives_ssi
        )

        score = self.scorer.score(ScoreInputs(
            passed=passed,
            complete=not missing,
            income_margin=income_margin,
            asset_margin=asset_margin,
            income_only_failure=income_only_failure,
            verification_pending=verification_pending,
        ))

        matching, disqualifying = self._collect_factors(applicant, program, rule, passed, threshold, assets)

        match = ProgramMatch(
            program_id=program.program_id,
            program_name=program.program_name,
            pathway=program.pathway,
            rule_version=rule.version,
            passed=passed,
            status=status_for_score(score),
            confidence_score=score,
            confidence_label=confidence_label(score),
            explanation=program_explanation(program.program_name, passed, income, threshold, disqualifying),
            matching_factors=[expand_acronyms(factor) for factor in matching],
            disqualifying_factors=[expand_acronyms(factor) for factor in disqualifying],
            missing_inputs=missing,
        )

        self.logger.debug(
            "Program evaluated",
            program_id=program.program_id,
            rule_version=rule.version,
            passed=passed,
            confidence_score=score
        )
        return match

    def evaluate_all(self, applicant: ApplicantInput, programs: Iterable[MedicaidProgram],
                     rules: Iterable[EligibilityRule], as_of: date) -> EligibilityResult:
        """Evaluate every program with an active rule and rank the matches."""
        rules_by_program: Dict[str, List[EligibilityRule]] = defaultdict(list)
        for rule in rules:
            rules_by_program[rule.program_id].append(rule)

        matches: List[ProgramMatch] = []
        excluded: Dict[str, str] = {}

        state_programs = [p for p in programs if p.state_code == applicant.state_code]
        for program in sorted(state_programs, key=lambda p: p.program_id):
            rule = select_active_rule(rules_by_program.get(program.program_id, []), as_of)
            if rule is None:
                reason = NoActiveRule(program.state_code, program.program_id, as_of.isoformat())
                excluded[program.program_id] = reason.message
                self.logger.info("Program skipped", program_id=program.program_id, reason=reason.code)
                continue
            try:
                matches.append(self.evaluate(applicant, program, rule, as_of))
            except ReferenceDataMissing:
                raise
            except EligibilityException as e:
                # A bad stored rule excludes its own program only
                excluded[program.program_id] = e.message
                self.logger.error(
                    "Program rule failed",
                    program_id=program.program_id,
                    rule_version=rule.version,
                    code=e.code,
                    error=e.message
                )

        return self.aggregate(applicant, matches, excluded, as_of)

    def aggregate(self, applicant: ApplicantInput, matches: List[ProgramMatch],
                  excluded: Dict[str, str], as_of: date) -> EligibilityResult:
        """Sort matches and derive the overall verdict from the strongest one."""
        ranked = sorted(matches, key=lambda match: (-match.confidence_score, match.program_id))
        qualifying = [match for match in ranked if match.confidence_score >= POSSIBLY_THRESHOLD]

        if qualifying:
            status = qualifying[0].status
            score = qualifying[0].confidence_score
        else:
            status = EligibilityStatus.UNLIKELY_ELIGIBLE
            score = ranked[0].confidence_score if ranked else 0

        return EligibilityResult(
            status=status,
            confidence_score=score,
            confidence_label=confidence_label(score),
            explanation=overall_explanation(qualifying, len(ranked)),
            evaluated_on=as_of,
            matches=ranked,
            pathways=identify_pathways(applicant),
            excluded_programs=dict(sorted(excluded.items())),
        )

    def _passes_at_income(self, rule: EligibilityRule, context: Dict[str, Any], monthly_income: int) -> bool:
        """Would the rule pass if income sat exactly on the threshold?"""
        adjusted = dict(context)
        adjusted["monthly_income_cents"] = monthly_income
        adjusted["annual_income_cents"] = monthly_income * 12
        base = context["fpl_annual_cents"]
        if base:
            adjusted["household_income_percent_fpl"] = Decimal(monthly_income) * 12 * 100 / Decimal(base)
        return evaluate_condition(rule.logic, adjusted)

    def _collect_factors(self, applicant: ApplicantInput, program: MedicaidProgram,
                         rule: EligibilityRule, passed: bool, threshold: Optional[int],
                         assets: AssetTestResult) -> Tuple[List[str], List[str]]:
        matching: List[str] = []
        disqualifying: List[str] = []
        income = applicant.monthly_income_cents
        pathway = program.pathway

        if threshold is not None:
            if income == 0:
                matching.append("$0 monthly income meets minimum threshold")
            elif income <= threshold:
                matching.append(f"Monthly income of {format_cents(income)} meets the {format_cents(threshold)} limit")
            else:
                disqualifying.append(
                    f"Monthly income of {format_cents(income)} exceeds the {format_cents(threshold)} limit"
                )

        if applicant.age is not None and passed:
            if applicant.age >= AGED_MIN_AGE and pathway == EligibilityPathway.NON_MAGI_AGED:
                matching.append("Age 65 or older qualifies for the aged pathway")
            elif applicant.age < ADULT_MIN_AGE:
                matching.append("Age under 19 qualifies for the child pathway")

        if applicant.has_disability and pathway == EligibilityPathway.NON_MAGI_DISABLED:
            matching.append("Reported disability matches the disabled pathway")
        if applicant.is_pregnant and pathway == EligibilityPathway.PREGNANCY:
            matching.append("Pregnancy qualifies for pregnancy-related coverage")
        if applicant.receives_ssi and pathway in (EligibilityPathway.SSI_LINKED, EligibilityPathway.NON_MAGI_DISABLED):
            matching.append(SSI_FACTOR)

        if assets.applies and assets.assets_cents is not None:
            limit = format_cents(assets.limit_cents)
            if assets.passed:
                matching.append(f"Assets of {format_cents(assets.assets_cents)} are within the {limit} limit")
            else:
                disqualifying.append(f"Assets of {format_cents(assets.assets_cents)} exceed the {limit} limit")

        if not passed:
            if not applicant.is_citizen:
                disqualifying.append(NON_CITIZEN_FACTOR)
            if not disqualifying:
                disqualifying.append(rule.description or "Program eligibility criteria not met")

        return matching, disqualifying
