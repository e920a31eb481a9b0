"""
Runtime question visibility.
"""

from typing import Any, Iterable, List, Mapping, Union

from shared.errors import ReferenceIntegrityError
from ..expressions.evaluator import evaluate_condition
from .models import ConditionalRule, Question

RuleLookup = Union[Mapping[str, ConditionalRule], Iterable[ConditionalRule]]


def _index_rules(rules: RuleLookup) -> Mapping[str, ConditionalRule]:
    if isinstance(rules, Mapping):
        return rules
    return {rule.rule_id: rule for rule in rules}


def is_question_visible(question: Question, answers: Mapping[str, Any], rules: RuleLookup) -> bool:
    """A question without a rule is always shown; otherwise its rule decides."""
    if not question.conditional_rule_id:
        return True

    rule = _index_rules(rules).get(question.conditional_rule_id)
    if rule is None:
        raise ReferenceIntegrityError([{
            "code": "MISSING_RULE",
            "question_id": question.question_id,
            "rule_id": question.conditional_rule_id,
            "message": f"Missing conditional rule '{question.conditional_rule_id}'.",
        }])

    return evaluate_condition(rule.node, answers)


def visible_questions(questions: Iterable[Question], answers: Mapping[str, Any],
                      rules: RuleLookup) -> List[Question]:
    """Visible questions in display order."""
    index = _index_rules(rules)
    ordered = sorted(questions, key=lambda q: (q.display_order, q.question_id))
    return [question for question in ordered if is_question_visible(question, answers, index)]
