"""
Tests for the unbalancing strategy advisor.
"""

from decimal import Decimal

import pytest

from bid_engines.strategy import (
    INSUFFICIENT_DATA,
    WITHIN_RANGE,
    UnbalancingStrategyAdvisor,
    format_pct,
)
from bid_kernel.domain.unbalance import UnbalanceDirection
from bid_kernel.domain.variance import (
    VarianceDirection,
    VarianceResult,
    VarianceSignificance,
)


def _variance(pct, direction, significance):
    return VarianceResult(
        governing_quantity=Decimal("100") + Decimal(pct),
        reference_quantity=Decimal("100"),
        variance_pct=Decimal(pct),
        direction=direction,
        significance=significance,
    )


class TestRecommend:

    def setup_method(self):
        self.advisor = UnbalancingStrategyAdvisor()

    def test_major_over_recommends_short(self):
        rec = self.advisor.recommend(
            variance=_variance("20", VarianceDirection.OVER, VarianceSignificance.MAJOR)
        )

        assert rec.strategy == UnbalanceDirection.SHORT
        assert rec.is_actionable
        assert "20.0%" in rec.rationale

    def test_critical_under_recommends_long(self):
        rec = self.advisor.recommend(
            variance=_variance("-42.25", VarianceDirection.UNDER, VarianceSignificance.CRITICAL)
        )

        assert rec.strategy == UnbalanceDirection.LONG
        assert "42.3%" in rec.rationale

    def test_moderate_over_has_no_strategy(self):
        rec = self.advisor.recommend(
            variance=_variance("10", VarianceDirection.OVER, VarianceSignificance.MODERATE)
        )

        assert rec.strategy is None
        assert rec.rationale == WITHIN_RANGE

    @pytest.mark.parametrize(
        "significance",
        [VarianceSignificance.MATCH, VarianceSignificance.MINOR],
    )
    def test_low_tiers_have_no_strategy(self, significance):
        rec = self.advisor.recommend(
            variance=_variance("1", VarianceDirection.OVER, significance)
        )

        assert rec.strategy is None

    def test_missing_reference_is_insufficient_data(self):
        rec = self.advisor.recommend(variance=VarianceResult.empty())

        assert rec.strategy is None
        assert rec.rationale == INSUFFICIENT_DATA

    def test_custom_actionable_tiers(self):
        advisor = UnbalancingStrategyAdvisor(actionable_tiers=frozenset({
            VarianceSignificance.MODERATE,
            VarianceSignificance.MAJOR,
            VarianceSignificance.CRITICAL,
        }))

        rec = advisor.recommend(
            variance=_variance("10", VarianceDirection.OVER, VarianceSignificance.MODERATE)
        )

        assert rec.strategy == UnbalanceDirection.SHORT


class TestFormatPct:

    def test_one_decimal_half_up(self):
        assert format_pct(Decimal("12.25")) == "12.3%"
        assert format_pct(Decimal("40")) == "40.0%"
