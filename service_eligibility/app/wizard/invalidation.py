"""
Downstream step invalidation.
"""

from decimal import Decimal
from typing import Any, List, Optional

from shared.logging import get_logger
from .registry import StepDefinitionRegistry


def answers_equal(left: Any, right: Any) -> bool:
    """Structural, type-aware equality of two JSON-like answer payloads.

    Booleans never equal numbers, numbers compare by value regardless of
    int/float representation, and list order is significant.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right

    if isinstance(left, (int, float, Decimal)) and isinstance(right, (int, float, Decimal)):
        return left == right

    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(answers_equal(left[key], right[key]) for key in left)

    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(answers_equal(a, b) for a, b in zip(left, right))

    if type(left) is not type(right):
        return False
    return left == right


class StepInvalidationService:
    """Finds steps whose saved answers go stale when an upstream step changes."""

    def __init__(self, registry: StepDefinitionRegistry):
        self.registry = registry
        self.logger = get_logger("eligibility.step_invalidation")

    def downstream_of(self, step_id: str) -> List[str]:
        """Every other step with a strictly greater sequence, in sequence order."""
        current = self.registry.get(step_id)
        if current is None:
            return []

        return [
            step.step_id
            for step in self.registry.all()
            if step.step_id != current.step_id and step.sequence > current.sequence
        ]

    def invalidation_for(self, step_id: str, previous_answer: Optional[Any], new_answer: Any) -> List[str]:
        """Steps to invalidate after saving ``new_answer``; unchanged answers invalidate nothing."""
        if previous_answer is None:
            return []
        if answers_equal(previous_answer, new_answer):
            return []

        invalidated = self.downstream_of(step_id)
        if invalidated:
            self.logger.info("Downstream steps invalidated", step_id=step_id, invalidated=invalidated)
        return invalidated
