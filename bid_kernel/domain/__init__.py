"""
Pure domain layer.

This module contains pure data transfer objects and domain rules
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from bid_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from bid_kernel.domain.quantity import (
    IMMUTABLE_SOURCES,
    REFERENCE_PRECEDENCE,
    SOURCE_METADATA,
    LineItemInfo,
    QuantityRecordInfo,
    QuantitySource,
    SourceMetadata,
    addable_sources,
    parse_source,
)
from bid_kernel.domain.unbalance import (
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    MIN_JUSTIFICATION_LENGTH,
    UNBALANCE_TRANSITIONS,
    StrategyRecommendation,
    UnbalanceDirection,
    UnbalanceState,
    UnbalanceStatus,
    validate_marking,
)
from bid_kernel.domain.variance import (
    VarianceClassifierPort,
    VarianceDirection,
    VarianceResult,
    VarianceSignificance,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "IMMUTABLE_SOURCES",
    "REFERENCE_PRECEDENCE",
    "SOURCE_METADATA",
    "LineItemInfo",
    "QuantityRecordInfo",
    "QuantitySource",
    "SourceMetadata",
    "addable_sources",
    "parse_source",
    "MAX_CONFIDENCE",
    "MIN_CONFIDENCE",
    "MIN_JUSTIFICATION_LENGTH",
    "UNBALANCE_TRANSITIONS",
    "StrategyRecommendation",
    "UnbalanceDirection",
    "UnbalanceState",
    "UnbalanceStatus",
    "validate_marking",
    "VarianceClassifierPort",
    "VarianceDirection",
    "VarianceResult",
    "VarianceSignificance",
]
