"""
Module: bid_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines.  This
    is the canonical import surface for higher layers (bid_services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import bid_kernel/domain (and sibling engine modules).
    MUST NOT import bid_services or bid_config.

Invariants enforced:
    - Purity: engines NEVER read the clock.  Timestamps are the caller's job.
    - Decimal-only arithmetic: quantities and percentages use ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``bid_engines.tracer``), emitting BID_ENGINE_TRACE log records.

Usage:
    from bid_engines.variance import VarianceClassifier
    from bid_engines.strategy import UnbalancingStrategyAdvisor
    from bid_engines.priority import build_worklist
"""

from bid_engines.priority import (
    WORKLIST_TIERS,
    LineItemSummary,
    build_worklist,
    summarize,
    tier_counts,
)
from bid_engines.strategy import (
    DEFAULT_ACTIONABLE_TIERS,
    INSUFFICIENT_DATA,
    WITHIN_RANGE,
    UnbalancingStrategyAdvisor,
)
from bid_engines.tracer import compute_input_fingerprint, traced_engine
from bid_engines.variance import SignificanceThresholds, VarianceClassifier

__all__ = [
    "WORKLIST_TIERS",
    "LineItemSummary",
    "build_worklist",
    "summarize",
    "tier_counts",
    "DEFAULT_ACTIONABLE_TIERS",
    "INSUFFICIENT_DATA",
    "WITHIN_RANGE",
    "UnbalancingStrategyAdvisor",
    "compute_input_fingerprint",
    "traced_engine",
    "SignificanceThresholds",
    "VarianceClassifier",
]
