"""
Asset test for non-MAGI programs.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from .models import EligibilityPathway

DEFAULT_ASSET_LIMITS_CENTS: Dict[str, int] = {
    "IL": 200000,
    "CA": 300000,
    "NY": 450000,
    "TX": 200000,
    "FL": 250000,
}

ASSET_TESTED_PATHWAYS = frozenset({
    EligibilityPathway.NON_MAGI_AGED,
    EligibilityPathway.NON_MAGI_DISABLED,
})


@dataclass(frozen=True)
class AssetTestResult:
    applies: bool
    passed: bool
    limit_cents: Optional[int] = None
    assets_cents: Optional[int] = None

    @property
    def undetermined(self) -> bool:
        return self.applies and self.assets_cents is None


class AssetEvaluator:
    """Applies state asset limits to aged and disabled pathways.

    MAGI, SSI-linked and pregnancy pathways have no asset test. When assets
    were not reported the test cannot fail, but it stays undetermined.
    """

    def __init__(self, limits: Optional[Mapping[str, int]] = None, default_limit_cents: int = 200000):
        self.limits = {state.upper(): cents for state, cents in (limits or DEFAULT_ASSET_LIMITS_CENTS).items()}
        self.default_limit_cents = default_limit_cents

    def limit_for(self, state_code: str) -> int:
        return self.limits.get(state_code.upper(), self.default_limit_cents)

    def evaluate(self, pathway: EligibilityPathway, state_code: str,
                 assets_cents: Optional[int]) -> AssetTestResult:
        if pathway not in ASSET_TESTED_PATHWAYS:
            return AssetTestResult(applies=False, passed=True)

        limit = self.limit_for(state_code)
        if assets_cents is None:
            return AssetTestResult(applies=True, passed=True, limit_cents=limit)

        return AssetTestResult(
            applies=True,
            passed=assets_cents <= limit,
            limit_cents=limit,
            assets_cents=assets_cents,
        )
