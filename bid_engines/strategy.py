"""
bid_engines.strategy -- Unbalancing strategy advisor.

Responsibility:
    Given a classified variance, propose a directional pricing adjustment
    (SHORT or LONG) and a human-readable rationale for the reviewer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Output is advisory only: it is never persisted and never applied to a
    line item automatically.  The reviewer decides through the unbalance
    workflow and may choose the other direction.

Invariants enforced:
    - Only actionable tiers (MAJOR and CRITICAL by default) yield a strategy.
    - OVER maps to SHORT; UNDER maps to LONG.
    - Rationale embeds the absolute variance percentage to one decimal place.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from bid_kernel.domain.unbalance import StrategyRecommendation, UnbalanceDirection
from bid_kernel.domain.variance import (
    VarianceDirection,
    VarianceResult,
    VarianceSignificance,
)
from bid_engines.tracer import traced_engine

DEFAULT_ACTIONABLE_TIERS: frozenset[VarianceSignificance] = frozenset({
    VarianceSignificance.MAJOR,
    VarianceSignificance.CRITICAL,
})

INSUFFICIENT_DATA = "insufficient data for recommendation"
WITHIN_RANGE = "variance within acceptable range"

_ONE_DECIMAL = Decimal("0.1")


def format_pct(abs_pct: Decimal) -> str:
    """Absolute percentage to one decimal place, e.g. ``40.0%``."""
    return f"{abs_pct.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)}%"


class UnbalancingStrategyAdvisor:
    """
    Pure advisor mapping a variance to an unbalancing strategy.

    Contract:
        No I/O, fully deterministic.
    Guarantees:
        - Returns a recommendation with ``strategy`` None for missing data,
          for non-actionable tiers, and for a zero-percent variance.
    """

    def __init__(
        self,
        actionable_tiers: frozenset[VarianceSignificance] | None = None,
    ):
        self.actionable_tiers = (
            DEFAULT_ACTIONABLE_TIERS if actionable_tiers is None
            else frozenset(actionable_tiers)
        )

    @traced_engine("strategy", "1.0", fingerprint_fields=("variance",))
    def recommend(self, *, variance: VarianceResult) -> StrategyRecommendation:
        if variance.variance_pct is None:
            return StrategyRecommendation(strategy=None, rationale=INSUFFICIENT_DATA)

        if variance.significance not in self.actionable_tiers:
            return StrategyRecommendation(strategy=None, rationale=WITHIN_RANGE)

        pct = format_pct(variance.abs_pct)
        if variance.direction == VarianceDirection.OVER:
            return StrategyRecommendation(
                strategy=UnbalanceDirection.SHORT,
                rationale=(
                    f"Governing quantity is {pct} more than the reference. "
                    "Consider lowering the unit price to reduce overrun exposure."
                ),
            )
        if variance.direction == VarianceDirection.UNDER:
            return StrategyRecommendation(
                strategy=UnbalanceDirection.LONG,
                rationale=(
                    f"Governing quantity is {pct} less than the reference. "
                    "Consider raising the unit price to front-load revenue."
                ),
            )
        return StrategyRecommendation(strategy=None, rationale=WITHIN_RANGE)
