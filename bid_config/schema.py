"""
GovernanceConfig schema.

Typed, frozen view of the YAML configuration that tunes quantity
governance.  The loader parses YAML into these types; bridges turn them
into engine instances.  Nothing here holds executable logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Variance classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VarianceConfig:
    """Significance breakpoints, in percent of the reference quantity."""

    minor_pct: Decimal = Decimal("2")
    moderate_pct: Decimal = Decimal("5")
    major_pct: Decimal = Decimal("15")
    critical_pct: Decimal = Decimal("30")
    inclusive_lower_bounds: bool = False

    @property
    def breakpoints(self) -> tuple[Decimal, Decimal, Decimal, Decimal]:
        return (self.minor_pct, self.moderate_pct, self.major_pct, self.critical_pct)


# ---------------------------------------------------------------------------
# Strategy advisor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StrategyConfig:
    """Significance tiers (by value) that warrant an unbalancing strategy."""

    actionable_tiers: tuple[str, ...] = ("major", "critical")


# ---------------------------------------------------------------------------
# Facade retry budget
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GovernanceRetryConfig:
    """How many times a facade operation is attempted on write conflicts."""

    max_conflict_retries: int = 3


@dataclass(frozen=True)
class GovernanceConfig:
    """Root configuration object returned by ``get_active_config``."""

    config_id: str
    version: int
    variance: VarianceConfig = field(default_factory=VarianceConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    retry: GovernanceRetryConfig = field(default_factory=GovernanceRetryConfig)
    checksum: str = ""
