"""
Variance domain types (``bid_kernel.domain.variance``).

Responsibility
--------------
Value objects describing how far the governing quantity sits from the
reference quantity, plus the classifier port the governance service calls
after every quantity mutation.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  The concrete
classifier lives in ``bid_engines.variance`` and is injected into kernel
services through ``VarianceClassifierPort``.

Invariants enforced
-------------------
* ``variance_pct is None`` exactly when the reference is absent or zero; in
  that case direction and significance are both ``MATCH``.
* ``direction`` agrees with the sign of ``variance_pct``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Protocol

from bid_kernel.domain.quantity import QuantityRecordInfo, QuantitySource


class VarianceDirection(str, Enum):
    """Sign of the governing-vs-reference difference."""

    OVER = "over"
    UNDER = "under"
    MATCH = "match"


class VarianceSignificance(str, Enum):
    """Magnitude tier of a variance, ordered from least to most severe."""

    MATCH = "match"
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SIGNIFICANCE_RANK[self]


_SIGNIFICANCE_RANK: dict[VarianceSignificance, int] = {
    VarianceSignificance.MATCH: 0,
    VarianceSignificance.MINOR: 1,
    VarianceSignificance.MODERATE: 2,
    VarianceSignificance.MAJOR: 3,
    VarianceSignificance.CRITICAL: 4,
}


@dataclass(frozen=True)
class VarianceResult:
    """Classified variance for one line item.

    ``variance_pct`` is signed: positive when the governing quantity
    exceeds the reference.
    """

    governing_quantity: Decimal | None
    reference_quantity: Decimal | None
    variance_pct: Decimal | None
    direction: VarianceDirection
    significance: VarianceSignificance
    governing_source: QuantitySource | None = None
    reference_source: QuantitySource | None = None

    @property
    def has_reference(self) -> bool:
        return self.variance_pct is not None

    @property
    def abs_pct(self) -> Decimal | None:
        if self.variance_pct is None:
            return None
        return abs(self.variance_pct)

    @classmethod
    def empty(cls) -> VarianceResult:
        """Result for a line item with no quantity records yet."""
        return cls(
            governing_quantity=None,
            reference_quantity=None,
            variance_pct=None,
            direction=VarianceDirection.MATCH,
            significance=VarianceSignificance.MATCH,
        )


class VarianceClassifierPort(Protocol):
    """What the governance service needs from a variance classifier."""

    def classify_records(
        self, records: Sequence[QuantityRecordInfo]
    ) -> VarianceResult: ...
