"""
bid_engines.priority -- Priority worklist of line items needing review.

Responsibility:
    Flatten a line item and its quantity records into a ``LineItemSummary``
    and derive the ordered alert worklist: items whose variance is MAJOR or
    CRITICAL and that have not been unbalanced yet.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Read-only consumer of
    governance and variance state; owns no state of its own.

Invariants enforced:
    - Ordering is total and deterministic: CRITICAL before MAJOR, then
      absolute variance percentage descending, then item number.
    - Unbalanced items never appear on the worklist.
    - Ranks are 1-based and contiguous.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from bid_kernel.domain.quantity import LineItemInfo, QuantityRecordInfo, QuantitySource
from bid_kernel.domain.unbalance import StrategyRecommendation, UnbalanceState
from bid_kernel.domain.variance import VarianceResult, VarianceSignificance
from bid_engines.strategy import UnbalancingStrategyAdvisor
from bid_engines.tracer import traced_engine

WORKLIST_TIERS: frozenset[VarianceSignificance] = frozenset({
    VarianceSignificance.MAJOR,
    VarianceSignificance.CRITICAL,
})


@dataclass(frozen=True)
class LineItemSummary:
    """One row of the review worklist."""

    line_item_id: UUID
    project_id: UUID
    item_number: str
    description: str
    unit: str
    variance: VarianceResult
    unbalance: UnbalanceState
    ebsx_quantity: Decimal | None = None
    plan_quantity: Decimal | None = None
    takeoff_quantity: Decimal | None = None
    bid_amount: Decimal | None = None
    recommendation: StrategyRecommendation | None = None
    rank: int | None = None

    @property
    def significance(self) -> VarianceSignificance:
        return self.variance.significance

    @property
    def governing_source(self) -> QuantitySource | None:
        return self.variance.governing_source

    @property
    def is_unbalanced(self) -> bool:
        return self.unbalance.is_unbalanced

    @property
    def needs_review(self) -> bool:
        return self.significance in WORKLIST_TIERS and not self.is_unbalanced


def summarize(
    item: LineItemInfo,
    records: Sequence[QuantityRecordInfo],
    recommendation: StrategyRecommendation | None = None,
) -> LineItemSummary:
    """Build the summary row for ``item`` from its quantity records."""
    by_source = {r.source: r.quantity for r in records}
    return LineItemSummary(
        line_item_id=item.id,
        project_id=item.project_id,
        item_number=item.item_number,
        description=item.description,
        unit=item.unit,
        variance=item.variance,
        unbalance=item.unbalance,
        ebsx_quantity=by_source.get(QuantitySource.EBSX_IMPORT),
        plan_quantity=by_source.get(QuantitySource.PLAN_SUMMARY),
        takeoff_quantity=by_source.get(QuantitySource.CONTRACTOR_TAKEOFF),
        bid_amount=item.bid_amount,
        recommendation=recommendation,
    )


def _sort_key(summary: LineItemSummary) -> tuple[int, Decimal, str]:
    abs_pct = summary.variance.abs_pct or Decimal("0")
    return (-summary.significance.rank, -abs_pct, summary.item_number)


@traced_engine("priority", "1.0")
def build_worklist(
    summaries: Iterable[LineItemSummary],
    advisor: UnbalancingStrategyAdvisor | None = None,
) -> list[LineItemSummary]:
    """Filter, order and rank the items that need a pricing review.

    When ``advisor`` is given, rows without a recommendation get one.
    """
    pending = sorted((s for s in summaries if s.needs_review), key=_sort_key)

    worklist: list[LineItemSummary] = []
    for rank, summary in enumerate(pending, start=1):
        recommendation = summary.recommendation
        if recommendation is None and advisor is not None:
            recommendation = advisor.recommend(variance=summary.variance)
        worklist.append(replace(summary, recommendation=recommendation, rank=rank))
    return worklist


def tier_counts(
    summaries: Iterable[LineItemSummary],
) -> dict[VarianceSignificance, int]:
    """Count of worklist rows per tier, for alert banners."""
    counts = {tier: 0 for tier in (VarianceSignificance.CRITICAL, VarianceSignificance.MAJOR)}
    for summary in summaries:
        if summary.needs_review:
            counts[summary.significance] += 1
    return counts
