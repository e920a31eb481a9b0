"""
Question catalog models.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..expressions.nodes import ExpressionNode
from ..expressions.parser import parse_expression


@dataclass(frozen=True)
class QuestionOption:
    """Selectable option for choice questions."""
    label: str
    value: str
    display_order: int = 0


@dataclass(frozen=True)
class ConditionalRule:
    """Visibility rule stored in the text surface."""
    rule_id: str
    expression: str
    description: Optional[str] = None

    @property
    def node(self) -> ExpressionNode:
        return parse_expression(self.expression)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConditionalRule":
        return cls(
            rule_id=data["rule_id"],
            expression=data["expression"],
            description=data.get("description"),
        )


@dataclass(frozen=True)
class Question:
    """Questionnaire question, optionally gated by a visibility rule."""
    question_id: str
    display_order: int
    text: str
    field_type: str
    required: bool = False
    conditional_rule_id: Optional[str] = None
    options: Tuple[QuestionOption, ...] = field(default_factory=tuple)
    state_code: Optional[str] = None
    program_code: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        options = tuple(
            QuestionOption(
                label=option["label"],
                value=str(option["value"]),
                display_order=int(option.get("display_order", index)),
            )
            for index, option in enumerate(data.get("options") or [])
        )
        state_code = data.get("state_code")
        return cls(
            question_id=data["question_id"],
            display_order=int(data["display_order"]),
            text=data["text"],
            field_type=data.get("field_type", "text"),
            required=bool(data.get("required", False)),
            conditional_rule_id=data.get("conditional_rule_id"),
            options=options,
            state_code=state_code.upper() if state_code else None,
            program_code=data.get("program_code"),
        )


class QuestionOptionModel(BaseModel):
    label: str
    value: str
    display_order: int = 0


class QuestionModel(BaseModel):
    """Request/response model for a question."""
    question_id: str = Field(..., min_length=1)
    display_order: int = 0
    text: str
    field_type: str = "text"
    required: bool = False
    conditional_rule_id: Optional[str] = None
    options: List[QuestionOptionModel] = Field(default_factory=list)

    def to_question(self) -> Question:
        return Question.from_dict(self.model_dump())

    @classmethod
    def from_question(cls, question: Question) -> "QuestionModel":
        return cls(
            question_id=question.question_id,
            display_order=question.display_order,
            text=question.text,
            field_type=question.field_type,
            required=question.required,
            conditional_rule_id=question.conditional_rule_id,
            options=[
                QuestionOptionModel(label=o.label, value=o.value, display_order=o.display_order)
                for o in question.options
            ],
        )


class ConditionalRuleModel(BaseModel):
    """Request model for a conditional rule."""
    rule_id: str = Field(..., min_length=1)
    expression: str
    description: Optional[str] = None

    def to_rule(self) -> ConditionalRule:
        return ConditionalRule(rule_id=self.rule_id, expression=self.expression, description=self.description)


class CatalogValidationRequest(BaseModel):
    """Request model for validating a question set."""
    questions: List[QuestionModel]
    rules: List[ConditionalRuleModel] = Field(default_factory=list)


class CatalogValidationResponse(BaseModel):
    valid: bool
    evaluation_order: List[str] = Field(default_factory=list)


class VisibleQuestionsRequest(BaseModel):
    """Request model for computing visible questions."""
    state_code: str = Field(..., min_length=2, max_length=2)
    program_code: str
    answers: Dict[str, Any] = Field(default_factory=dict)


class VisibleQuestionsResponse(BaseModel):
    questions: List[QuestionModel]
    hidden_question_ids: List[str] = Field(default_factory=list)
