"""
Config -> Engine Bridges.

Functions that convert a ``GovernanceConfig`` into configured engine
instances.  These live in bid_config (the producer) because neither the
kernel nor the engines may import bid_config.

Usage:
    from bid_config.bridges import build_advisor, build_classifier

    config = get_active_config()
    classifier = build_classifier(config)
    advisor = build_advisor(config)
"""

from __future__ import annotations

from bid_config.schema import GovernanceConfig
from bid_engines.strategy import UnbalancingStrategyAdvisor
from bid_engines.variance import SignificanceThresholds, VarianceClassifier
from bid_kernel.domain.variance import VarianceSignificance


def build_thresholds(config: GovernanceConfig) -> SignificanceThresholds:
    variance = config.variance
    return SignificanceThresholds(
        minor=variance.minor_pct,
        moderate=variance.moderate_pct,
        major=variance.major_pct,
        critical=variance.critical_pct,
        inclusive_lower_bounds=variance.inclusive_lower_bounds,
    )


def build_classifier(config: GovernanceConfig) -> VarianceClassifier:
    return VarianceClassifier(build_thresholds(config))


def build_advisor(config: GovernanceConfig) -> UnbalancingStrategyAdvisor:
    tiers = frozenset(VarianceSignificance(t) for t in config.strategy.actionable_tiers)
    return UnbalancingStrategyAdvisor(actionable_tiers=tiers)
