"""
Eligibility evaluation service.

Orchestrates the cache-aside read path: rules and FPL tables come from the
caches when present and from the repositories otherwise. Repository reads
are bounded by a timeout and retried with backoff; everything after the
reads is pure evaluation.
"""

import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from shared.config import BaseConfig
from shared.errors import NoActiveRule, NotFoundError, ReferenceDataMissing, ServiceError
from shared.logging import get_logger, set_state_context
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, call_with_retry
from ..cache.memory_cache import Clock, FPLCache, RuleCache, utc_now
from ..conditions.models import Question
from ..conditions.visibility import visible_questions
from ..fpl.calculator import FPLThresholdCalculator
from ..fpl.models import ThresholdRequest, ThresholdResponse
from ..persistence.repositories import EligibilityRuleRepository, FplRepository, QuestionCatalog
from ..rules.assets import AssetEvaluator
from ..rules.engine import RuleEngine, select_active_rule
from ..rules.models import ApplicantInput, EligibilityResult, EligibilityRule, MedicaidProgram, ProgramMatch
from ..rules.scoring import ConfidenceScorer

T = TypeVar("T")


@dataclass(frozen=True)
class ProgramRules:
    """A program together with its rule versions active on the cache day."""
    program: MedicaidProgram
    rules: Tuple[EligibilityRule, ...]


class EligibilityEvaluationService:
    """Evaluates applicants against the programs of their state."""

    def __init__(self, rule_repository: EligibilityRuleRepository,
                 fpl_repository: FplRepository,
                 question_catalog: QuestionCatalog,
                 rule_cache: Optional[RuleCache] = None,
                 fpl_cache: Optional[FPLCache] = None,
                 config: Optional[BaseConfig] = None,
                 metrics: Optional[MetricsCollector] = None,
                 clock: Optional[Clock] = None,
                 asset_evaluator: Optional[AssetEvaluator] = None,
                 scorer: Optional[ConfidenceScorer] = None):
        self.logger = get_logger("eligibility.evaluation")
        self.config = config or BaseConfig()
        self.clock = clock or utc_now
        self.metrics = metrics
        self.rule_repository = rule_repository
        self.fpl_repository = fpl_repository
        self.question_catalog = question_catalog
        self.rule_cache = rule_cache if rule_cache is not None else RuleCache(
            ttl=timedelta(minutes=self.config.rule_cache_ttl_minutes), clock=self.clock, metrics=metrics
        )
        self.fpl_cache = fpl_cache if fpl_cache is not None else FPLCache(clock=self.clock, metrics=metrics)
        self.asset_evaluator = asset_evaluator or AssetEvaluator(
            default_limit_cents=self.config.asset_limit_default_cents
        )
        self.scorer = scorer or ConfidenceScorer()
        self.retry_config = RetryConfig.from_settings(self.config)

    def today(self) -> date:
        return self.clock().date()

    async def evaluate_eligibility(self, applicant: ApplicantInput,
                                   as_of: Optional[date] = None) -> EligibilityResult:
        """Evaluate every program of the applicant's state."""
        as_of = as_of or self.today()
        state = applicant.state_code
        set_state_context(state)
        start_time = time.perf_counter()

        program_rules = await self._load_state_rules(state, as_of)
        calculator = await self._load_calculator(as_of.year)

        engine = RuleEngine(calculator, self.asset_evaluator, self.scorer)
        result = engine.evaluate_all(
            applicant,
            [entry.program for entry in program_rules],
            [rule for entry in program_rules for rule in entry.rules],
            as_of
        )

        duration = time.perf_counter() - start_time
        self._record_evaluation(state, result.status.value, duration, len(result.excluded_programs))
        self.logger.info(
            "Eligibility evaluated",
            state_code=state,
            status=result.status.value,
            confidence_score=result.confidence_score,
            programs_evaluated=len(result.matches),
            programs_excluded=len(result.excluded_programs),
            duration_ms=round(duration * 1000, 2)
        )
        return result

    async def evaluate_for_program(self, applicant: ApplicantInput, program_id: str,
                                   as_of: Optional[date] = None) -> ProgramMatch:
        """Evaluate a single program; unknown programs and missing rules are errors."""
        as_of = as_of or self.today()
        state = applicant.state_code
        set_state_context(state, program_id)
        start_time = time.perf_counter()

        entry = await self._load_program_rules(state, program_id, as_of)
        rule = select_active_rule(entry.rules, as_of)
        if rule is None:
            raise NoActiveRule(state, program_id, as_of.isoformat())

        calculator = await self._load_calculator(as_of.year)
        engine = RuleEngine(calculator, self.asset_evaluator, self.scorer)
        match = engine.evaluate(applicant, entry.program, rule, as_of)

        duration = time.perf_counter() - start_time
        self._record_evaluation(state, match.status.value, duration)
        self.logger.info(
            "Program eligibility evaluated",
            state_code=state,
            program_id=program_id,
            rule_version=rule.version,
            status=match.status.value,
            confidence_score=match.confidence_score
        )
        return match

    async def visible_questions(self, state_code: str, program_code: str,
                                answers: Mapping[str, Any]) -> Tuple[List[Question], List[str]]:
        """Visible questions in display order and the ids of the hidden ones."""
        state = state_code.upper()
        questions = await self._call_repository(
            "get_questions", lambda: self.question_catalog.get_questions(state, program_code)
        )
        rule_ids = sorted({q.conditional_rule_id for q in questions if q.conditional_rule_id})
        rules = await self._call_repository(
            "get_conditional_rules", lambda: self.question_catalog.get_conditional_rules(rule_ids)
        )

        visible = visible_questions(questions, answers, rules)
        shown = {question.question_id for question in visible}
        hidden = [question.question_id for question in questions if question.question_id not in shown]
        return visible, hidden

    async def fpl_threshold(self, request: ThresholdRequest) -> ThresholdResponse:
        """Income thresholds for a household at a percentage of FPL."""
        calculator = await self._load_calculator(request.year)
        state = request.state_code.upper() if request.state_code else None
        annual = calculator.threshold_for(request.year, request.household_size, state, request.pathway_percentage)
        return ThresholdResponse(
            year=request.year,
            household_size=request.household_size,
            state_code=state,
            pathway_percentage=request.pathway_percentage,
            base_annual_cents=calculator.base_amount(request.year, request.household_size, state),
            annual_threshold_cents=annual,
            monthly_threshold_cents=annual // 12,
        )

    def cache_stats(self) -> Dict[str, Any]:
        return {
            "rules": self.rule_cache.stats().to_dict(),
            "fpl": self.fpl_cache.stats().to_dict(),
            "fpl_years": self.fpl_cache.cached_years(),
        }

    def invalidate_cache(self, state_code: Optional[str] = None, program_id: Optional[str] = None,
                         fpl_years: Optional[Iterable[int]] = None) -> Dict[str, int]:
        """Invalidate the named entries; with no arguments both caches are cleared."""
        removed = {"rules": 0, "fpl": 0}

        if state_code is None and program_id is None and fpl_years is None:
            removed["rules"] = len(self.rule_cache.keys())
            removed["fpl"] = len(self.fpl_cache.keys())
            self.rule_cache.invalidate_all()
            self.fpl_cache.invalidate_all()
        else:
            if state_code is not None and program_id is not None:
                removed["rules"] = int(self.rule_cache.invalidate((state_code, program_id)))
            elif state_code is not None:
                removed["rules"] = self.rule_cache.invalidate_state(state_code)
            elif program_id is not None:
                removed["rules"] = self.rule_cache.invalidate_program(program_id)
            if fpl_years is not None:
                removed["fpl"] = self.fpl_cache.invalidate_years(fpl_years)

        self.logger.info(
            "Cache invalidated",
            state_code=state_code,
            program_id=program_id,
            rules_removed=removed["rules"],
            fpl_removed=removed["fpl"]
        )
        return removed

    async def _load_state_rules(self, state: str, as_of: date) -> List[ProgramRules]:
        # Cached entries hold the rules active today; other dates bypass the cache
        use_cache = as_of == self.today()
        if use_cache:
            cached = self.rule_cache.get_by_state(state)
            if cached is not None:
                return cached

        programs = await self._call_repository(
            "get_programs_by_state", lambda: self.rule_repository.get_programs_by_state(state)
        )
        rules = await self._call_repository(
            "get_rules_by_state", lambda: self.rule_repository.get_rules_by_state(state, as_of)
        )

        rules_by_program: Dict[str, List[EligibilityRule]] = defaultdict(list)
        for rule in rules:
            rules_by_program[rule.program_id].append(rule)

        entries = [
            ProgramRules(program=program, rules=tuple(rules_by_program.get(program.program_id, ())))
            for program in sorted(programs, key=lambda p: p.program_id)
        ]
        if use_cache:
            self.rule_cache.set_state(state, {entry.program.program_id: entry for entry in entries})
        return entries

    async def _load_program_rules(self, state: str, program_id: str, as_of: date) -> ProgramRules:
        use_cache = as_of == self.today()
        if use_cache:
            cached = self.rule_cache.get((state, program_id))
            if cached is not None:
                return cached

        program = await self._call_repository(
            "get_program", lambda: self.rule_repository.get_program(program_id)
        )
        if program is None or program.state_code != state:
            raise NotFoundError(
                f"Program '{program_id}' not found in {state}",
                {"program_id": program_id, "state_code": state}
            )

        rule = await self._call_repository(
            "get_active_rule", lambda: self.rule_repository.get_active_rule(state, program_id, as_of)
        )
        entry = ProgramRules(program=program, rules=(rule,) if rule is not None else ())
        if use_cache and rule is not None:
            self.rule_cache.set((state, program_id), entry)
        return entry

    async def _load_calculator(self, year: int) -> FPLThresholdCalculator:
        calculator = self.fpl_cache.get(year)
        if calculator is not None:
            return calculator

        records = await self._call_repository(
            "get_fpl_by_year", lambda: self.fpl_repository.get_fpl_by_year(year)
        )
        if not records:
            raise ReferenceDataMissing(f"No FPL data for {year}", {"year": year})

        calculator = FPLThresholdCalculator(records)
        self.fpl_cache.set(year, calculator)
        self.logger.info("FPL table cached", year=year, records=len(records))
        return calculator

    async def _call_repository(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call_with_retry(
                operation, call, self.retry_config, timeout=self.config.repository_timeout_seconds
            )
        except RetryError as e:
            if self.metrics is not None:
                self.metrics.record_error("repository_failure")
            raise ServiceError(
                f"Repository call '{operation}' failed",
                {"operation": operation, "attempts": e.attempts, "error": str(e.last_exception)}
            ) from e

    def _record_evaluation(self, state: str, status: str, duration: float, excluded: int = 0):
        if self.metrics is not None:
            self.metrics.record_evaluation(state, status, duration, excluded)
