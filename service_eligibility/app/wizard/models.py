"""
Wizard step definition models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from ..expressions.nodes import ExpressionNode
from ..expressions.parser import compile_expression


class StepField(BaseModel):
    """Input field collected on a step."""
    model_config = ConfigDict(populate_by_name=True)

    field_id: str = Field(..., alias="id")
    label: str = ""
    field_type: str = Field("text", alias="type")
    required: bool = False
    options: List[str] = Field(default_factory=list)


class NavigationRule(BaseModel):
    """Condition routing to a target step; conditions use either expression surface."""
    model_config = ConfigDict(populate_by_name=True)

    condition: Optional[Any] = None
    target_step_id: str = Field(..., alias="targetStepId")

    _node: Optional[ExpressionNode] = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        if self.condition is not None:
            self._node = compile_expression(self.condition)

    @property
    def node(self) -> Optional[ExpressionNode]:
        return self._node


class StepDefinition(BaseModel):
    """One wizard step.

    ``sequence`` orders steps for downstream invalidation and is required.
    Legacy definitions that carry it under ``displayMeta.sequence`` are
    accepted and promoted to the explicit field.
    """
    model_config = ConfigDict(populate_by_name=True)

    step_id: str = Field(..., alias="id", min_length=1)
    title: str = ""
    sequence: int = Field(..., ge=0)
    step_fields: List[StepField] = Field(default_factory=list, alias="fields")
    validation_rules: Dict[str, Any] = Field(default_factory=dict, alias="validation")
    visibility_rule: Optional[Any] = Field(None, alias="visibility")
    navigation_rules: List[NavigationRule] = Field(default_factory=list, alias="navigation")
    is_final: bool = Field(False, alias="isFinal")

    _visibility_node: Optional[ExpressionNode] = PrivateAttr(default=None)

    @model_validator(mode="before")
    @classmethod
    def _promote_display_sequence(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("sequence") is None:
            display_meta = data.get("displayMeta") or data.get("display_meta") or {}
            if isinstance(display_meta, dict) and display_meta.get("sequence") is not None:
                data = {**data, "sequence": display_meta["sequence"]}
        return data

    def model_post_init(self, __context: Any) -> None:
        if self.visibility_rule is not None:
            self._visibility_node = compile_expression(self.visibility_rule)

    @property
    def visibility_node(self) -> Optional[ExpressionNode]:
        return self._visibility_node


class StepAnswersRequest(BaseModel):
    """Answer snapshot keyed by step id."""
    answers: Dict[str, Any] = Field(default_factory=dict)


class StepSubmissionRequest(BaseModel):
    """Request model for submitting a step answer."""
    answer: Dict[str, Any]
    previous_answer: Optional[Dict[str, Any]] = None
    answers: Dict[str, Any] = Field(default_factory=dict, description="Other saved step answers")


class StepSummary(BaseModel):
    step_id: str
    title: str
    sequence: int


class NextStepResponse(BaseModel):
    current_step_id: str
    next_step: Optional[StepSummary] = None
    complete: bool


class StepSubmissionResponse(BaseModel):
    step_id: str
    invalidated_step_ids: List[str] = Field(default_factory=list)
    next_step: Optional[StepSummary] = None
    complete: bool
