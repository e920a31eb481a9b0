"""
Loads and indexes wizard step definitions.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from shared.errors import ReferenceIntegrityError
from shared.logging import get_logger
from .models import StepDefinition

DEFAULT_STEPS_FILE = Path(__file__).resolve().parent.parent / "data" / "eligibility_steps.json"


class StepDefinitionRegistry:
    """Immutable, case-insensitive index of step definitions."""

    def __init__(self, steps: Iterable[StepDefinition]):
        self.logger = get_logger("eligibility.step_registry")
        self._steps: Dict[str, StepDefinition] = {}
        problems: List[Dict[str, Any]] = []

        for step in steps:
            key = step.step_id.lower()
            if key in self._steps:
                problems.append({
                    "code": "DUPLICATE_STEP",
                    "step_id": step.step_id,
                    "message": f"Step '{step.step_id}' is defined more than once.",
                })
                continue
            self._steps[key] = step

        for step in self._steps.values():
            for rule in step.navigation_rules:
                if rule.target_step_id.lower() not in self._steps:
                    problems.append({
                        "code": "UNKNOWN_TARGET_STEP",
                        "step_id": step.step_id,
                        "message": f"Step '{step.step_id}' navigates to unknown step '{rule.target_step_id}'.",
                    })

        if problems:
            raise ReferenceIntegrityError(problems, "Step definitions are inconsistent")

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "StepDefinitionRegistry":
        """Build a registry from a JSON document with a top-level ``steps`` list."""
        resolved = Path(path) if path else DEFAULT_STEPS_FILE
        with resolved.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        registry = cls(StepDefinition.model_validate(item) for item in payload.get("steps", []))
        registry.logger.info("Step definitions loaded", path=str(resolved), step_count=len(registry))
        return registry

    def __len__(self) -> int:
        return len(self._steps)

    def get(self, step_id: str) -> Optional[StepDefinition]:
        return self._steps.get(step_id.lower())

    def all(self) -> List[StepDefinition]:
        """All steps ordered by sequence, then id."""
        return sorted(self._steps.values(), key=lambda step: (step.sequence, step.step_id))
