"""
bid_engines.variance -- Governing-vs-reference quantity variance classification.

Responsibility:
    Turn a governing quantity and a reference quantity into a signed
    percentage, a direction, and a significance tier.  Also selects the
    reference record out of a line item's quantity records.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import bid_kernel/domain.
    Injected into ``GovernanceService`` through ``VarianceClassifierPort``.

Invariants enforced:
    - Identical inputs produce identical outputs; no clock access.
    - variance_pct = (governing - reference) / reference * 100, quantized
      to 4 decimal places ROUND_HALF_UP.
    - Reference absent or zero: variance_pct is None and both direction
      and significance are MATCH.
    - The reference is PLAN_SUMMARY when present, else EBSX_IMPORT,
      regardless of which record governs.

Failure modes:
    - ValueError from ``SignificanceThresholds`` when breakpoints are
      negative or not strictly increasing.

Usage:
    from bid_engines.variance import VarianceClassifier

    classifier = VarianceClassifier()
    result = classifier.classify(
        governing_quantity=Decimal("140"),
        reference_quantity=Decimal("100"),
    )
    print(result.direction, result.significance)  # OVER CRITICAL
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext

from bid_kernel.domain.quantity import (
    REFERENCE_PRECEDENCE,
    QuantityRecordInfo,
    QuantitySource,
)
from bid_kernel.domain.variance import (
    VarianceDirection,
    VarianceResult,
    VarianceSignificance,
)
from bid_kernel.logging_config import get_logger
from bid_engines.tracer import traced_engine

logger = get_logger("engines.variance")

_PCT_QUANTUM = Decimal("0.0001")
_HUNDRED = Decimal("100")
_MIN_PCT_PRECISION = 28


def _pct_context(governing: Decimal, reference: Decimal) -> Context:
    """Enough digits for the integer part of the percentage plus four places."""
    span = max(governing.adjusted(), reference.adjusted()) - reference.adjusted()
    return Context(
        prec=max(_MIN_PCT_PRECISION, span + 12),
        rounding=ROUND_HALF_UP,
    )


@dataclass(frozen=True)
class SignificanceThresholds:
    """Breakpoints (in percent of the reference) between significance tiers.

    With ``inclusive_lower_bounds`` False a tier is entered only when the
    absolute percentage strictly exceeds its breakpoint, so exactly 15%
    is MODERATE.  With it True the breakpoint itself belongs to the higher
    tier.
    """

    minor: Decimal = Decimal("2")
    moderate: Decimal = Decimal("5")
    major: Decimal = Decimal("15")
    critical: Decimal = Decimal("30")
    inclusive_lower_bounds: bool = False

    def __post_init__(self) -> None:
        ordered = (self.minor, self.moderate, self.major, self.critical)
        if any(b < 0 for b in ordered):
            raise ValueError(f"Significance breakpoints must be non-negative: {ordered}")
        if any(lo >= hi for lo, hi in zip(ordered, ordered[1:])):
            raise ValueError(
                f"Significance breakpoints must be strictly increasing: {ordered}"
            )

    def tier_for(self, abs_pct: Decimal) -> VarianceSignificance:
        """Significance tier for a non-negative percentage."""
        tiers = (
            (self.critical, VarianceSignificance.CRITICAL),
            (self.major, VarianceSignificance.MAJOR),
            (self.moderate, VarianceSignificance.MODERATE),
            (self.minor, VarianceSignificance.MINOR),
        )
        for breakpoint, tier in tiers:
            if self._enters(abs_pct, breakpoint):
                return tier
        return VarianceSignificance.MATCH

    def _enters(self, abs_pct: Decimal, breakpoint: Decimal) -> bool:
        if self.inclusive_lower_bounds:
            return abs_pct >= breakpoint
        return abs_pct > breakpoint


class VarianceClassifier:
    """
    Pure classifier for quantity variances.

    Contract:
        No I/O, no database access, fully deterministic.
    Guarantees:
        - ``classify`` never raises for non-negative Decimal inputs.
        - ``classify_records`` reads only the records it is handed.
    """

    def __init__(self, thresholds: SignificanceThresholds | None = None):
        self.thresholds = thresholds or SignificanceThresholds()

    @traced_engine(
        "variance", "1.0",
        fingerprint_fields=("governing_quantity", "reference_quantity"),
    )
    def classify(
        self,
        *,
        governing_quantity: Decimal | None,
        reference_quantity: Decimal | None,
        governing_source: QuantitySource | None = None,
        reference_source: QuantitySource | None = None,
    ) -> VarianceResult:
        """
        Classify ``governing_quantity`` against ``reference_quantity``.

        Preconditions:
            Quantities are Decimal (never float) or None.

        Postconditions:
            variance_pct is None iff the reference is None or zero.
            direction is OVER / UNDER / MATCH by the sign of variance_pct.
        """
        if (
            governing_quantity is None
            or reference_quantity is None
            or reference_quantity == 0
        ):
            return VarianceResult(
                governing_quantity=governing_quantity,
                reference_quantity=reference_quantity,
                variance_pct=None,
                direction=VarianceDirection.MATCH,
                significance=VarianceSignificance.MATCH,
                governing_source=governing_source,
                reference_source=reference_source,
            )

        with localcontext(_pct_context(governing_quantity, reference_quantity)):
            pct = (
                (governing_quantity - reference_quantity) / reference_quantity * _HUNDRED
            ).quantize(_PCT_QUANTUM)

        if pct > 0:
            direction = VarianceDirection.OVER
        elif pct < 0:
            direction = VarianceDirection.UNDER
        else:
            direction = VarianceDirection.MATCH

        return VarianceResult(
            governing_quantity=governing_quantity,
            reference_quantity=reference_quantity,
            variance_pct=pct,
            direction=direction,
            significance=self.thresholds.tier_for(abs(pct)),
            governing_source=governing_source,
            reference_source=reference_source,
        )

    @staticmethod
    def select_reference(
        records: Sequence[QuantityRecordInfo],
    ) -> QuantityRecordInfo | None:
        """PLAN_SUMMARY when present, else EBSX_IMPORT, else None."""
        by_source = {r.source: r for r in records}
        for source in REFERENCE_PRECEDENCE:
            if source in by_source:
                return by_source[source]
        return None

    @traced_engine("variance", "1.0", fingerprint_fields=("records",))
    def classify_records(
        self,
        records: Sequence[QuantityRecordInfo],
    ) -> VarianceResult:
        """Pick the governing and reference records and classify them."""
        if not records:
            return VarianceResult.empty()

        governing = next((r for r in records if r.is_governing), None)
        reference = self.select_reference(records)
        if governing is None:
            logger.warning(
                "variance_without_governing_record",
                extra={"record_count": len(records)},
            )

        return self.classify(
            governing_quantity=governing.quantity if governing else None,
            reference_quantity=reference.quantity if reference else None,
            governing_source=governing.source if governing else None,
            reference_source=reference.source if reference else None,
        )
