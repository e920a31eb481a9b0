"""
Eligibility service for the Eligibility Screening platform.
"""

from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import NotFoundError

from .cache.memory_cache import FPLCache, RuleCache
from .cache.models import CacheInvalidationRequest, CacheInvalidationResponse
from .conditions.models import (
    CatalogValidationRequest, CatalogValidationResponse, QuestionModel,
    VisibleQuestionsRequest, VisibleQuestionsResponse
)
from .conditions.validator import ConditionalRuleValidator
from .evaluation.service import EligibilityEvaluationService
from .fpl.models import ThresholdRequest, ThresholdResponse
from .persistence.repositories import (
    DEFAULT_DATA_DIR, FPL_FILE, PROGRAMS_FILE, QUESTIONS_FILE,
    InMemoryFplRepository, InMemoryQuestionCatalog, InMemoryRuleRepository
)
from .rules.models import ApplicantInput, EligibilityResponse, ProgramMatchResponse
from .wizard.invalidation import StepInvalidationService
from .wizard.models import (
    NextStepResponse, StepAnswersRequest, StepDefinition, StepSubmissionRequest,
    StepSubmissionResponse, StepSummary
)
from .wizard.navigation import StepNavigationEngine
from .wizard.registry import DEFAULT_STEPS_FILE, StepDefinitionRegistry

SERVICE_PORT = 8013


def _summary(step: Optional[StepDefinition]) -> Optional[StepSummary]:
    if step is None:
        return None
    return StepSummary(step_id=step.step_id, title=step.title, sequence=step.sequence)


class EligibilityService(BaseService):
    """Eligibility service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None,
                 evaluation: Optional[EligibilityEvaluationService] = None,
                 step_registry: Optional[StepDefinitionRegistry] = None):
        super().__init__("eligibility", SERVICE_PORT, config)

        data_dir = Path(self.config.reference_data_dir) if self.config.reference_data_dir else DEFAULT_DATA_DIR
        metrics = self.metrics if self.config.enable_metrics else None

        self.evaluation = evaluation or EligibilityEvaluationService(
            rule_repository=InMemoryRuleRepository.from_file(data_dir / PROGRAMS_FILE),
            fpl_repository=InMemoryFplRepository.from_file(data_dir / FPL_FILE),
            question_catalog=InMemoryQuestionCatalog.from_file(data_dir / QUESTIONS_FILE),
            rule_cache=RuleCache(ttl=timedelta(minutes=self.config.rule_cache_ttl_minutes), metrics=metrics),
            fpl_cache=FPLCache(metrics=metrics),
            config=self.config,
            metrics=metrics,
        )

        steps_file = data_dir / DEFAULT_STEPS_FILE.name
        self.step_registry = step_registry or StepDefinitionRegistry.from_file(
            steps_file if steps_file.exists() else DEFAULT_STEPS_FILE
        )
        self.navigation = StepNavigationEngine(self.step_registry)
        self.invalidation = StepInvalidationService(self.step_registry)
        self.catalog_validator = ConditionalRuleValidator()

        self._setup_eligibility_routes()

    def _setup_eligibility_routes(self):
        """Set up eligibility-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "eligibility",
                "message": "Eligibility Screening - Eligibility Service",
                "version": "1.0.0",
                "capabilities": ["rule_engine", "question_visibility", "wizard_navigation", "caching"]
            }

        @self.app.post("/eligibility/evaluate", response_model=EligibilityResponse)
        async def evaluate_eligibility(applicant: ApplicantInput,
                                       as_of: Optional[date] = Query(None, description="Evaluation date")):
            """Evaluate an applicant against every program of their state."""
            result = await self.evaluation.evaluate_eligibility(applicant, as_of)
            return EligibilityResponse.from_result(result)

        @self.app.post("/eligibility/programs/{program_id}/evaluate", response_model=ProgramMatchResponse)
        async def evaluate_program(program_id: str, applicant: ApplicantInput,
                                   as_of: Optional[date] = Query(None, description="Evaluation date")):
            """Evaluate an applicant against a single program."""
            match = await self.evaluation.evaluate_for_program(applicant, program_id, as_of)
            return ProgramMatchResponse.from_match(match)

        @self.app.post("/fpl/threshold", response_model=ThresholdResponse)
        async def fpl_threshold(request: ThresholdRequest):
            """Income threshold at a percentage of FPL."""
            return await self.evaluation.fpl_threshold(request)

        @self.app.post("/questions/visible", response_model=VisibleQuestionsResponse)
        async def visible_questions(request: VisibleQuestionsRequest):
            """Questions to show for the answers given so far."""
            visible, hidden = await self.evaluation.visible_questions(
                request.state_code, request.program_code, request.answers
            )
            return VisibleQuestionsResponse(
                questions=[QuestionModel.from_question(question) for question in visible],
                hidden_question_ids=hidden
            )

        @self.app.post("/catalog/validate", response_model=CatalogValidationResponse)
        async def validate_catalog(request: CatalogValidationRequest):
            """Validate a question set and its visibility rules."""
            order = self.catalog_validator.validate(
                [question.to_question() for question in request.questions],
                [rule.to_rule() for rule in request.rules]
            )
            return CatalogValidationResponse(valid=True, evaluation_order=order)

        @self.app.get("/wizard/steps/{step_id}")
        async def get_step(step_id: str):
            """Step definition as authored."""
            step = self._require_step(step_id)
            return step.model_dump(by_alias=True)

        @self.app.post("/wizard/steps/{step_id}/next", response_model=NextStepResponse)
        async def next_step(step_id: str, request: StepAnswersRequest):
            """Next step for the current answers; no step means the branch is complete."""
            current = self._require_step(step_id)
            target = self.navigation.next_step(current.step_id, request.answers)
            return NextStepResponse(
                current_step_id=current.step_id,
                next_step=_summary(target),
                complete=target is None
            )

        @self.app.post("/wizard/steps/{step_id}/submit", response_model=StepSubmissionResponse)
        async def submit_step(step_id: str, request: StepSubmissionRequest):
            """Save an answer: report the steps it invalidates and where to go next."""
            current = self._require_step(step_id)
            invalidated = self.invalidation.invalidation_for(
                current.step_id, request.previous_answer, request.answer
            )
            answers = {
                key: value for key, value in request.answers.items()
                if key not in invalidated
            }
            answers[current.step_id] = request.answer
            target = self.navigation.next_step(current.step_id, answers)
            return StepSubmissionResponse(
                step_id=current.step_id,
                invalidated_step_ids=invalidated,
                next_step=_summary(target),
                complete=target is None
            )

        @self.app.get("/wizard/steps/{step_id}/downstream")
        async def downstream_steps(step_id: str):
            """Steps after this one in sequence order."""
            current = self._require_step(step_id)
            return {
                "step_id": current.step_id,
                "downstream_step_ids": self.invalidation.downstream_of(current.step_id)
            }

        @self.app.get("/cache/stats")
        async def cache_stats():
            """Rule and FPL cache statistics."""
            return self.evaluation.cache_stats()

        @self.app.post("/cache/invalidate", response_model=CacheInvalidationResponse)
        async def invalidate_cache(request: CacheInvalidationRequest):
            """Invalidate cached rules and FPL tables."""
            removed = self.evaluation.invalidate_cache(
                state_code=request.state_code,
                program_id=request.program_id,
                fpl_years=request.fpl_years
            )
            return CacheInvalidationResponse(rules_removed=removed["rules"], fpl_removed=removed["fpl"])

    def _require_step(self, step_id: str) -> StepDefinition:
        step = self.step_registry.get(step_id)
        if step is None:
            raise NotFoundError(f"Step '{step_id}' not found", {"step_id": step_id})
        return step

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check reference data is loaded."""
        return {
            "step_definitions": "ok" if len(self.step_registry) else "empty",
            "fpl_cache": "ok",
            "rule_cache": "ok",
        }


def create_app():
    """Create eligibility service application."""
    service = EligibilityService()
    return service.app


if __name__ == "__main__":
    service = EligibilityService()
    service.run()
