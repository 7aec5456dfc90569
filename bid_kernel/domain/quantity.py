"""
Quantity domain types (``bid_kernel.domain.quantity``).

Responsibility
--------------
Pure value objects for quantity governance: the closed set of quantity
sources, their display metadata, and immutable snapshots of line items and
quantity records handed across the service boundary.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``EBSX_IMPORT`` is the only immutable source.  ``is_editable_source`` and
  ``is_deletable_source`` are the single place that rule is encoded.
* At most one record per source per line item (enforced by the model's
  unique constraint; callers look records up by source).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from bid_kernel.exceptions import UnknownQuantitySourceError

if TYPE_CHECKING:
    from bid_kernel.domain.unbalance import UnbalanceState
    from bid_kernel.domain.variance import VarianceResult


class QuantitySource(str, Enum):
    """Where a quantity estimate came from."""

    EBSX_IMPORT = "ebsx_import"
    PLAN_SUMMARY = "plan_summary"
    CONTRACTOR_TAKEOFF = "contractor_takeoff"
    SPECIAL_PROVISION = "special_provision"
    ADDENDUM = "addendum"


IMMUTABLE_SOURCES: frozenset[QuantitySource] = frozenset({
    QuantitySource.EBSX_IMPORT,
})

# Reference precedence for variance: first present source wins.
REFERENCE_PRECEDENCE: tuple[QuantitySource, ...] = (
    QuantitySource.PLAN_SUMMARY,
    QuantitySource.EBSX_IMPORT,
)


def parse_source(source: QuantitySource | str) -> QuantitySource:
    """Accept an enum member or its value/name in any case."""
    if isinstance(source, QuantitySource):
        return source
    if isinstance(source, str):
        try:
            return QuantitySource(source.strip().lower())
        except ValueError:
            pass
    raise UnknownQuantitySourceError(source)


def is_editable_source(source: QuantitySource) -> bool:
    return source not in IMMUTABLE_SOURCES


def is_deletable_source(source: QuantitySource) -> bool:
    return source not in IMMUTABLE_SOURCES


@dataclass(frozen=True)
class SourceMetadata:
    """Display metadata for a quantity source.

    Display order is a presentation concern only; it never affects which
    record governs.
    """

    source: QuantitySource
    label: str
    description: str
    editable: bool
    display_order: int


SOURCE_METADATA: dict[QuantitySource, SourceMetadata] = {
    QuantitySource.EBSX_IMPORT: SourceMetadata(
        source=QuantitySource.EBSX_IMPORT,
        label="EBSX Import",
        description="Original bid quantity from the EBSX file",
        editable=False,
        display_order=0,
    ),
    QuantitySource.PLAN_SUMMARY: SourceMetadata(
        source=QuantitySource.PLAN_SUMMARY,
        label="Plan Summary",
        description="Quantity from the plan summary sheets",
        editable=True,
        display_order=1,
    ),
    QuantitySource.CONTRACTOR_TAKEOFF: SourceMetadata(
        source=QuantitySource.CONTRACTOR_TAKEOFF,
        label="Contractor Takeoff",
        description="Quantity measured by the estimating team",
        editable=True,
        display_order=2,
    ),
    QuantitySource.SPECIAL_PROVISION: SourceMetadata(
        source=QuantitySource.SPECIAL_PROVISION,
        label="Special Provision",
        description="Quantity stated in a special provision",
        editable=True,
        display_order=3,
    ),
    QuantitySource.ADDENDUM: SourceMetadata(
        source=QuantitySource.ADDENDUM,
        label="Addendum",
        description="Quantity revised by a bid addendum",
        editable=True,
        display_order=4,
    ),
}


def addable_sources(existing: set[QuantitySource] | frozenset[QuantitySource]) -> list[QuantitySource]:
    """Sources a reviewer may still add to a line item, in display order."""
    candidates = [
        meta for meta in SOURCE_METADATA.values()
        if meta.editable and meta.source not in existing
    ]
    return [meta.source for meta in sorted(candidates, key=lambda m: m.display_order)]


@dataclass(frozen=True)
class QuantityRecordInfo:
    """Immutable snapshot of a quantity record."""

    id: UUID
    line_item_id: UUID
    source: QuantitySource
    quantity: Decimal
    unit: str
    is_governing: bool
    entered_at: datetime
    source_reference: str | None = None
    notes: str | None = None
    confidence: int | None = None
    entered_by: str | None = None

    @property
    def is_editable(self) -> bool:
        return is_editable_source(self.source)

    @property
    def is_deletable(self) -> bool:
        """True when the record may be removed right now."""
        return is_deletable_source(self.source) and not self.is_governing


@dataclass(frozen=True)
class LineItemInfo:
    """Immutable snapshot of a bid line item with its cached derived state."""

    id: UUID
    project_id: UUID
    item_number: str
    description: str
    unit: str
    base_quantity: Decimal
    variance: VarianceResult
    unbalance: UnbalanceState
    version: int
    line_number: int | None = None
    unit_price: Decimal | None = None

    @property
    def bid_amount(self) -> Decimal | None:
        """Extended amount at the governing quantity, when priced."""
        if self.unit_price is None or self.variance.governing_quantity is None:
            return None
        return self.unit_price * self.variance.governing_quantity
