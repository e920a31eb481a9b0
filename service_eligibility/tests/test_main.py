"""
Unit tests for Eligibility main service.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from shared.errors import ServiceError
from service_eligibility.app.evaluation.service import EligibilityEvaluationService
from service_eligibility.app.main import EligibilityService, create_app
from service_eligibility.app.wizard.registry import StepDefinitionRegistry
from service_eligibility.app.persistence.repositories import (
    InMemoryFplRepository, InMemoryQuestionCatalog, InMemoryRuleRepository
)

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


class TestEligibilityService:
    """Test cases for EligibilityService."""

    @pytest.fixture
    def evaluation(self):
        """Create evaluation service over the shipped reference data."""
        return EligibilityEvaluationService(
            rule_repository=InMemoryRuleRepository.from_file(),
            fpl_repository=InMemoryFplRepository.from_file(),
            question_catalog=InMemoryQuestionCatalog.from_file(),
            clock=lambda: NOW,
        )

    @pytest.fixture
    def eligibility_service(self, evaluation):
        """Create EligibilityService instance."""
        return EligibilityService(evaluation=evaluation)

    @pytest.fixture
    def client(self, eligibility_service):
        """Create test client."""
        return TestClient(eligibility_service.app)

    @pytest.fixture
    def applicant(self):
        """Applicant request at exactly 138% FPL in Illinois."""
        return {
            "state_code": "IL",
            "household_size": 1,
            "monthly_income_cents": 167670,
            "age": 30
        }

    def test_create_app(self):
        """Test application factory."""
        app = create_app()
        assert app.title == "Eligibility Service"

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "eligibility"
        assert "rule_engine" in data["capabilities"]

    def test_health_endpoint(self, client):
        """Test health check reports loaded step definitions."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"]["step_definitions"] == "ok"

    def test_health_degraded_without_steps(self, evaluation):
        """Test an empty step registry degrades health."""
        service = EligibilityService(evaluation=evaluation, step_registry=StepDefinitionRegistry([]))
        response = TestClient(service.app).get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["dependencies"]["step_definitions"] == "empty"

    def test_metrics_endpoint(self, client):
        """Test Prometheus metrics endpoint."""
        client.get("/")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_request_id_header(self, client):
        """Test request id is echoed back."""
        response = client.get("/", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_evaluate_eligibility(self, client, applicant):
        """Test full evaluation for a state."""
        response = client.post("/eligibility/evaluate", json=applicant)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "LikelyEligible"
        assert data["confidence_score"] == 60
        assert data["explanation"] == "Eligible for MAGI Adult (Confidence: 60%)"
        assert data["evaluated_on"] == "2026-03-01"
        assert data["matches"][0]["program_id"] == "IL_MAGI_ADULT"

    def test_evaluate_eligibility_as_of(self, client, applicant):
        """Test evaluation on an explicit date uses that date's rules."""
        response = client.post("/eligibility/evaluate", params={"as_of": "2025-06-01"}, json=applicant)
        assert response.status_code == 200
        magi = next(m for m in response.json()["matches"] if m["program_id"] == "IL_MAGI_ADULT")
        assert magi["rule_version"] == 1

    def test_evaluate_eligibility_invalid_input(self, client):
        """Test malformed applicants are rejected with field names."""
        response = client.post("/eligibility/evaluate", json={"state_code": "IL", "household_size": 0})
        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert "household_size" in data["details"]["fields"]
        assert "monthly_income_cents" in data["details"]["fields"]

    def test_evaluate_missing_fpl_year(self, client, applicant):
        """Test a year without FPL data is reported."""
        response = client.post("/eligibility/evaluate", params={"as_of": "2030-01-01"}, json=applicant)
        assert response.status_code == 422
        assert response.json()["code"] == "REFERENCE_DATA_MISSING"

    def test_evaluate_program(self, client, applicant):
        """Test single program evaluation."""
        response = client.post("/eligibility/programs/IL_MAGI_ADULT/evaluate", json=applicant)
        assert response.status_code == 200
        data = response.json()
        assert data["confidence_score"] == 60
        assert data["confidence_label"] == "High"

    def test_evaluate_unknown_program(self, client, applicant):
        """Test unknown program returns 404."""
        response = client.post("/eligibility/programs/IL_NOPE/evaluate", json=applicant)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_evaluate_program_without_active_rule(self, client):
        """Test an expired program returns 404 with a distinct code."""
        applicant = {"state_code": "NY", "household_size": 1, "monthly_income_cents": 100000, "age": 40}
        response = client.post("/eligibility/programs/NY_REFUGEE/evaluate", json=applicant)
        assert response.status_code == 404
        assert response.json()["code"] == "NO_ACTIVE_RULE"

    def test_repository_failure_returns_503(self, client, evaluation, applicant):
        """Test repository outages surface as service errors."""
        evaluation.evaluate_eligibility = AsyncMock(side_effect=ServiceError("Repository call failed"))
        response = client.post("/eligibility/evaluate", json=applicant)
        assert response.status_code == 503
        assert response.json()["code"] == "SERVICE_ERROR"

    def test_unhandled_error_returns_500(self, eligibility_service, evaluation, applicant):
        """Test unexpected errors are masked."""
        evaluation.evaluate_eligibility = AsyncMock(side_effect=RuntimeError("boom"))
        client = TestClient(eligibility_service.app, raise_server_exceptions=False)
        response = client.post("/eligibility/evaluate", json=applicant)
        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"

    def test_fpl_threshold(self, client):
        """Test threshold lookup."""
        response = client.post("/fpl/threshold", json={
            "year": 2026, "household_size": 1, "state_code": "IL", "pathway_percentage": 138
        })
        assert response.status_code == 200
        data = response.json()
        assert data["annual_threshold_cents"] == 2012040
        assert data["monthly_threshold_cents"] == 167670

    def test_visible_questions(self, client):
        """Test conditional questions are hidden until their rule holds."""
        response = client.post("/questions/visible", json={
            "state_code": "IL",
            "program_code": "IL_PREGNANCY",
            "answers": {"has_income": "no", "is_pregnant": "yes"}
        })
        assert response.status_code == 200
        data = response.json()
        ids = [q["question_id"] for q in data["questions"]]
        assert "due_date" in ids
        assert "monthly_income" not in ids
        assert "monthly_income" in data["hidden_question_ids"]

    def test_validate_catalog(self, client):
        """Test a valid catalog returns its evaluation order."""
        response = client.post("/catalog/validate", json={
            "questions": [
                {"question_id": "b", "display_order": 2, "text": "B", "conditional_rule_id": "show-b"},
                {"question_id": "a", "display_order": 1, "text": "A"}
            ],
            "rules": [{"rule_id": "show-b", "expression": "a == 'yes'"}]
        })
        assert response.status_code == 200
        assert response.json() == {"valid": True, "evaluation_order": ["a", "b"]}

    def test_validate_catalog_cycle(self, client):
        """Test circular rules are rejected."""
        response = client.post("/catalog/validate", json={
            "questions": [
                {"question_id": "x", "text": "X", "conditional_rule_id": "show-x"},
                {"question_id": "y", "text": "Y", "conditional_rule_id": "show-y"}
            ],
            "rules": [
                {"rule_id": "show-x", "expression": "y == 1"},
                {"rule_id": "show-y", "expression": "x == 1"}
            ]
        })
        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "CIRCULAR_DEPENDENCY"
        assert data["details"]["question_ids"] == ["x", "y"]

    def test_validate_catalog_missing_rule(self, client):
        """Test reference problems are reported together."""
        response = client.post("/catalog/validate", json={
            "questions": [{"question_id": "a", "text": "A", "conditional_rule_id": "missing"}],
            "rules": []
        })
        assert response.status_code == 422
        assert response.json()["details"]["problems"][0]["code"] == "MISSING_RULE"

    def test_get_step(self, client):
        """Test step definitions are returned as authored."""
        response = client.get("/wizard/steps/household-size")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "household-size"
        assert data["sequence"] == 1

    def test_get_unknown_step(self, client):
        """Test unknown steps return 404."""
        response = client.get("/wizard/steps/nope")
        assert response.status_code == 404

    def test_next_step(self, client):
        """Test branching on the household size answer."""
        single = client.post("/wizard/steps/household-size/next", json={
            "answers": {"household-size": {"householdSize": 1}}
        })
        family = client.post("/wizard/steps/household-size/next", json={
            "answers": {"household-size": {"householdSize": 4}}
        })
        assert single.json()["next_step"]["step_id"] == "household-income"
        assert family.json()["next_step"]["step_id"] == "household-members"

    def test_next_step_final(self, client):
        """Test the final step completes the branch."""
        response = client.post("/wizard/steps/household-income/next", json={"answers": {}})
        assert response.json() == {"current_step_id": "household-income", "next_step": None, "complete": True}

    def test_submit_changed_answer(self, client):
        """Test changing an answer invalidates downstream steps."""
        response = client.post("/wizard/steps/household-size/submit", json={
            "answer": {"householdSize": 1},
            "previous_answer": {"householdSize": 3},
            "answers": {"household-members": {"members": [{"name": "A"}]}}
        })
        assert response.status_code == 200
        data = response.json()
        assert data["invalidated_step_ids"] == ["household-members", "household-income"]
        assert data["next_step"]["step_id"] == "household-income"

    def test_submit_unchanged_answer(self, client):
        """Test resubmitting the same answer invalidates nothing."""
        response = client.post("/wizard/steps/household-size/submit", json={
            "answer": {"householdSize": 3},
            "previous_answer": {"householdSize": 3.0}
        })
        data = response.json()
        assert data["invalidated_step_ids"] == []
        assert data["next_step"]["step_id"] == "household-members"

    def test_downstream_steps(self, client):
        """Test downstream listing."""
        response = client.get("/wizard/steps/household-members/downstream")
        assert response.json() == {"step_id": "household-members", "downstream_step_ids": ["household-income"]}

    def test_cache_stats_and_invalidate(self, client, applicant):
        """Test cache statistics and invalidation endpoints."""
        client.post("/eligibility/evaluate", json=applicant)
        client.post("/eligibility/evaluate", json=applicant)

        stats = client.get("/cache/stats").json()
        assert stats["rules"]["hits"] == 1
        assert stats["fpl_years"] == [2026]

        response = client.post("/cache/invalidate", json={"state_code": "IL"})
        assert response.json() == {"rules_removed": 6, "fpl_removed": 0}

        response = client.post("/cache/invalidate", json={})
        assert response.json() == {"rules_removed": 0, "fpl_removed": 1}
