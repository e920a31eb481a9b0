"""
Unit tests for the eligibility evaluation service.
"""

import asyncio
import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest

from shared.config import BaseConfig
from shared.errors import NoActiveRule, NotFoundError, ReferenceDataMissing, ServiceError
from shared.metrics import MetricsCollector
from service_eligibility.app.evaluation.service import EligibilityEvaluationService
from service_eligibility.app.fpl.models import ThresholdRequest
from service_eligibility.app.persistence.repositories import (
    InMemoryFplRepository, InMemoryQuestionCatalog, InMemoryRuleRepository
)
from service_eligibility.app.rules.models import ApplicantInput, EligibilityStatus

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


class MutableClock:
    """Clock the test moves by assignment."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestEligibilityEvaluationService:
    """Test cases for EligibilityEvaluationService."""

    @pytest.fixture
    def rule_repository(self):
        """Create rule repository from the shipped reference data."""
        return InMemoryRuleRepository.from_file()

    @pytest.fixture
    def fpl_repository(self):
        """Create FPL repository from the shipped reference data."""
        return InMemoryFplRepository.from_file()

    @pytest.fixture
    def metrics(self):
        """Create isolated metrics collector."""
        return MetricsCollector("eligibility")

    @pytest.fixture
    def service(self, rule_repository, fpl_repository, metrics):
        """Create service with a fixed clock."""
        return EligibilityEvaluationService(
            rule_repository=rule_repository,
            fpl_repository=fpl_repository,
            question_catalog=InMemoryQuestionCatalog.from_file(),
            config=BaseConfig(repository_retry_attempts=2, repository_retry_base_delay=0),
            metrics=metrics,
            clock=lambda: NOW,
        )

    @pytest.fixture
    def boundary_applicant(self):
        """Create an IL household of one earning exactly 138% FPL."""
        return ApplicantInput(state_code="IL", household_size=1, monthly_income_cents=167670, age=30)

    @pytest.mark.asyncio
    async def test_boundary_income_scenario(self, service, boundary_applicant):
        """Test the 138% boundary across every IL program."""
        result = await service.evaluate_eligibility(boundary_applicant)

        assert result.status == EligibilityStatus.LIKELY_ELIGIBLE
        assert result.confidence_score == 60
        assert result.explanation == "Eligible for MAGI Adult (Confidence: 60%)"
        assert result.matches[0].program_id == "IL_MAGI_ADULT"
        assert result.matches[0].rule_version == 2
        assert len(result.matches) == 6
        assert result.excluded_programs == {}
        assert result.evaluated_on == date(2026, 3, 1)

    @pytest.mark.asyncio
    async def test_one_cent_over_boundary(self, service):
        """Test one cent over 138% drops to PossiblyEligible."""
        applicant = ApplicantInput(state_code="IL", household_size=1, monthly_income_cents=167671, age=30)
        result = await service.evaluate_eligibility(applicant)

        assert result.status == EligibilityStatus.POSSIBLY_ELIGIBLE
        assert result.confidence_score == 59

    @pytest.mark.asyncio
    async def test_results_are_deterministic(self, service, boundary_applicant):
        """Test cached and uncached evaluations agree."""
        first = await service.evaluate_eligibility(boundary_applicant)
        second = await service.evaluate_eligibility(boundary_applicant)
        assert first == second

    @pytest.mark.asyncio
    async def test_cache_aside(self, service, rule_repository, fpl_repository, boundary_applicant):
        """Test repositories are read once and then served from cache."""
        rule_repository.get_rules_by_state = AsyncMock(wraps=rule_repository.get_rules_by_state)
        fpl_repository.get_fpl_by_year = AsyncMock(wraps=fpl_repository.get_fpl_by_year)

        await service.evaluate_eligibility(boundary_applicant)
        await service.evaluate_eligibility(boundary_applicant)

        assert rule_repository.get_rules_by_state.await_count == 1
        assert fpl_repository.get_fpl_by_year.await_count == 1
        assert service.cache_stats()["rules"]["hits"] == 1
        assert service.cache_stats()["fpl_years"] == [2026]

    @pytest.mark.asyncio
    async def test_historical_date_bypasses_rule_cache(self, service, rule_repository):
        """Test evaluations for another date read the repository directly."""
        rule_repository.get_rules_by_state = AsyncMock(wraps=rule_repository.get_rules_by_state)
        applicant = ApplicantInput(state_code="IL", household_size=1, monthly_income_cents=150000, age=30)

        result = await service.evaluate_eligibility(applicant, as_of=date(2025, 6, 1))
        await service.evaluate_eligibility(applicant, as_of=date(2025, 6, 1))

        magi = next(match for match in result.matches if match.program_id == "IL_MAGI_ADULT")
        assert magi.rule_version == 1
        assert rule_repository.get_rules_by_state.await_count == 2
        assert service.rule_cache.keys() == []

    @pytest.mark.asyncio
    async def test_expired_rule_is_excluded(self, service):
        """Test a program whose only rule ended is excluded, not evaluated."""
        applicant = ApplicantInput(state_code="NY", household_size=2, monthly_income_cents=100000, age=40)
        result = await service.evaluate_eligibility(applicant)

        assert "NY_REFUGEE" in result.excluded_programs
        assert all(match.program_id != "NY_REFUGEE" for match in result.matches)

    @pytest.mark.asyncio
    async def test_missing_fpl_year(self, service, boundary_applicant):
        """Test a year without FPL data fails the request."""
        with pytest.raises(ReferenceDataMissing):
            await service.evaluate_eligibility(boundary_applicant, as_of=date(2030, 1, 1))

    @pytest.mark.asyncio
    async def test_evaluate_for_program(self, service, boundary_applicant):
        """Test a single program evaluation."""
        match = await service.evaluate_for_program(boundary_applicant, "IL_MAGI_ADULT")
        assert match.confidence_score == 60
        assert match.status == EligibilityStatus.LIKELY_ELIGIBLE

    @pytest.mark.asyncio
    async def test_evaluate_for_unknown_program(self, service, boundary_applicant):
        """Test unknown programs raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await service.evaluate_for_program(boundary_applicant, "IL_NOPE")

    @pytest.mark.asyncio
    async def test_evaluate_for_program_in_other_state(self, service, boundary_applicant):
        """Test a program outside the applicant's state is not found."""
        with pytest.raises(NotFoundError):
            await service.evaluate_for_program(boundary_applicant, "CA_FAMILY")

    @pytest.mark.asyncio
    async def test_evaluate_for_program_without_active_rule(self, service):
        """Test a program without an active rule raises NoActiveRule."""
        applicant = ApplicantInput(state_code="NY", household_size=1, monthly_income_cents=100000, age=40)
        with pytest.raises(NoActiveRule) as exc_info:
            await service.evaluate_for_program(applicant, "NY_REFUGEE")
        assert exc_info.value.details["as_of"] == "2026-03-01"

    @pytest.mark.asyncio
    async def test_repository_timeout_becomes_service_error(self, service, fpl_repository, boundary_applicant):
        """Test exhausted retries surface as ServiceError."""
        fpl_repository.get_fpl_by_year = AsyncMock(side_effect=asyncio.TimeoutError())

        with pytest.raises(ServiceError) as exc_info:
            await service.evaluate_eligibility(boundary_applicant)

        assert fpl_repository.get_fpl_by_year.await_count == 2
        assert exc_info.value.details["operation"] == "get_fpl_by_year"

    @pytest.mark.asyncio
    async def test_repository_recovers_after_retry(self, service, fpl_repository, boundary_applicant):
        """Test a transient failure is retried."""
        records = await fpl_repository.get_fpl_by_year(2026)
        fpl_repository.get_fpl_by_year = AsyncMock(side_effect=[ConnectionError("reset"), records])

        result = await service.evaluate_eligibility(boundary_applicant)
        assert result.confidence_score == 60

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, service, metrics, boundary_applicant):
        """Test evaluations are counted by state and status."""
        await service.evaluate_eligibility(boundary_applicant)
        value = metrics.registry.get_sample_value(
            "eligibility_evaluations_total", {"state_code": "IL", "status": "LikelyEligible"}
        )
        assert value == 1.0

    @pytest.mark.asyncio
    async def test_visible_questions(self, service):
        """Test visibility across the IL pregnancy questionnaire."""
        visible, hidden = await service.visible_questions(
            "il", "IL_PREGNANCY", {"has_income": "yes", "is_pregnant": "no"}
        )
        assert [q.question_id for q in visible] == [
            "household_size", "has_income", "monthly_income", "income_sources",
            "is_pregnant", "has_disability", "age",
        ]
        assert hidden == ["ssi_award_letter", "due_date", "disability_type"]

    @pytest.mark.asyncio
    async def test_visible_questions_multi_select(self, service):
        """Test IN over a multi-select answer reveals the follow-up."""
        visible, _ = await service.visible_questions(
            "IL", "IL_MAGI_ADULT", {"has_income": "yes", "income_sources": ["wages", "ssi"]}
        )
        assert "ssi_award_letter" in [q.question_id for q in visible]

    @pytest.mark.asyncio
    async def test_fpl_threshold(self, service):
        """Test threshold lookups with and without a state override."""
        il = await service.fpl_threshold(ThresholdRequest(year=2026, household_size=1, state_code="il",
                                                          pathway_percentage=138))
        ak = await service.fpl_threshold(ThresholdRequest(year=2026, household_size=1, state_code="AK"))

        assert il.annual_threshold_cents == 2012040
        assert il.monthly_threshold_cents == 167670
        assert il.state_code == "IL"
        assert ak.base_annual_cents == 1822500

    @pytest.mark.asyncio
    async def test_invalidate_cache(self, service, boundary_applicant):
        """Test selective and full invalidation."""
        await service.evaluate_eligibility(boundary_applicant)

        assert service.invalidate_cache(state_code="IL") == {"rules": 6, "fpl": 0}
        assert service.invalidate_cache(fpl_years=[2026]) == {"rules": 0, "fpl": 1}

        await service.evaluate_eligibility(boundary_applicant)
        assert service.invalidate_cache() == {"rules": 6, "fpl": 1}
        assert service.cache_stats()["rules"]["entry_count"] == 0

    @pytest.mark.asyncio
    async def test_rules_reloaded_after_midnight(self, rule_repository, fpl_repository, metrics):
        """Test rules cached on New Year's Eve are not served on New Year's Day."""
        clock = MutableClock(datetime(2025, 12, 31, 23, 50, tzinfo=timezone.utc))
        service = EligibilityEvaluationService(
            rule_repository=rule_repository,
            fpl_repository=fpl_repository,
            question_catalog=InMemoryQuestionCatalog.from_file(),
            config=BaseConfig(repository_retry_attempts=2, repository_retry_base_delay=0),
            metrics=metrics,
            clock=clock,
        )
        applicant = ApplicantInput(state_code="IL", household_size=1, monthly_income_cents=100000, age=30)

        before = await service.evaluate_eligibility(applicant)
        assert next(m for m in before.matches if m.program_id == "IL_MAGI_ADULT").rule_version == 1

        clock.now = datetime(2026, 1, 1, 0, 10, tzinfo=timezone.utc)
        after = await service.evaluate_eligibility(applicant)

        assert next(m for m in after.matches if m.program_id == "IL_MAGI_ADULT").rule_version == 2
        assert after.excluded_programs == {}
        assert after.evaluated_on == date(2026, 1, 1)

    @pytest.mark.asyncio
    async def test_invalid_stored_rules_exclude_only_their_programs(self, tmp_path, fpl_repository, metrics):
        """Test unparseable stored rules leave the other programs evaluable."""
        path = tmp_path / "programs.json"
        path.write_text(json.dumps({
            "programs": [
                {"program_id": "IL_MAGI_ADULT", "state_code": "IL", "program_name": "MAGI Adult", "pathway": "MAGI"},
                {"program_id": "IL_SSI", "state_code": "IL", "program_name": "SSI-Linked Medicaid",
                 "pathway": "SSI_Linked"},
                {"program_id": "IL_AGED", "state_code": "IL", "program_name": "Aged", "pathway": "NonMAGI_Aged"},
            ],
            "rules": [
                {"rule_id": "IL_MAGI_ADULT-v2", "program_id": "IL_MAGI_ADULT", "state_code": "IL", "version": 2,
                 "effective_date": "2026-01-01", "fpl_percentage": 138,
                 "logic": "age >= 19 AND age <= 64 AND monthly_income_cents <= income_threshold_monthly_cents"},
                {"rule_id": "IL_SSI-v1", "program_id": "IL_SSI", "state_code": "IL", "version": 1,
                 "effective_date": "2025-01-01", "logic": "receives_ssi =="},
                {"rule_id": "IL_AGED-v1", "program_id": "IL_AGED", "state_code": "IL", "version": 1,
                 "effective_date": "2025-01-01", "fpl_percentage": 1500,
                 "logic": "age >= 65 AND monthly_income_cents <= income_threshold_monthly_cents"},
            ],
        }))
        service = EligibilityEvaluationService(
            rule_repository=InMemoryRuleRepository.from_file(path),
            question_catalog=InMemoryQuestionCatalog.from_file(),
            fpl_repository=fpl_repository,
            config=BaseConfig(repository_retry_attempts=2, repository_retry_base_delay=0),
            metrics=metrics,
            clock=lambda: NOW,
        )
        applicant = ApplicantInput(state_code="IL", household_size=1, monthly_income_cents=100000, age=30)

        result = await service.evaluate_eligibility(applicant)

        assert [match.program_id for match in result.matches] == ["IL_MAGI_ADULT"]
        assert result.matches[0].passed
        assert result.excluded_programs == {
            "IL_AGED": "No active rule for program 'IL_AGED' in IL",
            "IL_SSI": "No active rule for program 'IL_SSI' in IL",
        }
