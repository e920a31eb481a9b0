"""
Step navigation engine.
"""

from typing import Any, Mapping, Optional

from shared.logging import get_logger
from ..expressions.evaluator import evaluate_condition
from .models import StepDefinition
from .registry import StepDefinitionRegistry


def is_step_visible(step: StepDefinition, answers: Mapping[str, Any]) -> bool:
    """A step without a visibility rule is always shown."""
    if step.visibility_node is None:
        return True
    return evaluate_condition(step.visibility_node, answers)


class StepNavigationEngine:
    """Chooses the next wizard step from the current step's ordered rules."""

    def __init__(self, registry: StepDefinitionRegistry):
        self.registry = registry
        self.logger = get_logger("eligibility.step_navigation")

    def next_step(self, current_step_id: str, answers: Mapping[str, Any]) -> Optional[StepDefinition]:
        """First rule whose condition is truthy and whose target is visible wins.

        None means the branch is complete.
        """
        current = self.registry.get(current_step_id)
        if current is None:
            self.logger.warning("Unknown current step", step_id=current_step_id)
            return None

        for index, rule in enumerate(current.navigation_rules):
            if not evaluate_condition(rule.node, answers):
                continue
            target = self.registry.get(rule.target_step_id)
            if not is_step_visible(target, answers):
                self.logger.debug("Navigation target hidden", step_id=current.step_id,
                                  target_step_id=target.step_id)
                continue
            self.logger.debug(
                "Navigation rule matched",
                step_id=current.step_id,
                rule_index=index,
                target_step_id=target.step_id
            )
            return target

        return None
