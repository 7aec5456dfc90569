"""
Module: bid_kernel.models.line_item
Responsibility: ORM persistence for bid line items, including the cached
    variance classification and the embedded unbalance decision.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - Optimistic locking: ``version`` is SQLAlchemy's version_id_col.  Every
      UPDATE carries ``WHERE version = :old``; a concurrent writer that lost
      the race gets StaleDataError and is retried by the governance facade.
    - Unbalance consistency: check constraints tie direction, justification
      and confidence to ``is_unbalanced`` and bound confidence to 50-100.
    - Cached variance columns are written only by GovernanceService after
      it has re-read every quantity record of the item.

Failure modes:
    - StaleDataError on version mismatch.
    - IntegrityError on check constraint violation.

Audit relevance:
    Every governed change to these rows is mirrored in the audit chain
    (baseline, quantity, governing, unbalance actions).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bid_kernel.db.base import Base, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from bid_kernel.domain.quantity import LineItemInfo
    from bid_kernel.domain.unbalance import UnbalanceState
    from bid_kernel.domain.variance import VarianceResult


class LineItemModel(Base):
    """Persistent bid line item.

    Contract:
        Created by the import path; quantity records hang off it by
        ``line_item_id``.  Variance and unbalance columns are mutated only
        through the kernel services.
    """

    __tablename__ = "line_items"

    __table_args__ = (
        Index("ix_line_items_project", "project_id", "item_number"),
        CheckConstraint("base_quantity >= 0", name="ck_line_items_base_quantity"),
        CheckConstraint(
            "unbalance_confidence IS NULL "
            "OR (unbalance_confidence >= 50 AND unbalance_confidence <= 100)",
            name="ck_line_items_unbalance_confidence",
        ),
        CheckConstraint(
            "(is_unbalanced AND unbalance_direction IS NOT NULL "
            "AND unbalance_justification IS NOT NULL) "
            "OR (NOT is_unbalanced AND unbalance_direction IS NULL "
            "AND unbalance_justification IS NULL)",
            name="ck_line_items_unbalance_consistent",
        ),
    )

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    line_number: Mapped[int | None] = mapped_column(nullable=True)
    item_number: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    base_quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Cached variance (rebuilt from records on every quantity mutation)
    governing_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True,
    )
    reference_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True,
    )
    variance_pct: Mapped[Decimal | None] = mapped_column(
        Numeric(48, 4), nullable=True,
    )
    variance_direction: Mapped[str] = mapped_column(
        String(20), nullable=False, default="match",
    )
    variance_significance: Mapped[str] = mapped_column(
        String(20), nullable=False, default="match",
    )
    governing_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    variance_computed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )

    # Embedded unbalance state
    is_unbalanced: Mapped[bool] = mapped_column(nullable=False, default=False)
    unbalance_direction: Mapped[str | None] = mapped_column(String(10), nullable=True)
    unbalance_justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    unbalance_confidence: Mapped[int | None] = mapped_column(nullable=True)
    unbalance_marked_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    unbalance_cleared_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    unbalance_marked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<LineItem {self.item_number} project={self.project_id} "
            f"significance={self.variance_significance} "
            f"unbalanced={self.is_unbalanced}>"
        )

    def variance_dto(self) -> VarianceResult:
        from bid_kernel.domain.quantity import QuantitySource
        from bid_kernel.domain.variance import (
            VarianceDirection,
            VarianceResult as VarianceResultDTO,
            VarianceSignificance,
        )

        return VarianceResultDTO(
            governing_quantity=self.governing_quantity,
            reference_quantity=self.reference_quantity,
            variance_pct=self.variance_pct,
            direction=VarianceDirection(self.variance_direction),
            significance=VarianceSignificance(self.variance_significance),
            governing_source=(
                QuantitySource(self.governing_source)
                if self.governing_source else None
            ),
            reference_source=(
                QuantitySource(self.reference_source)
                if self.reference_source else None
            ),
        )

    def apply_variance(self, result: VarianceResult, computed_at: datetime) -> None:
        """Overwrite the cached variance columns with a fresh result."""
        self.governing_quantity = result.governing_quantity
        self.reference_quantity = result.reference_quantity
        self.variance_pct = result.variance_pct
        self.variance_direction = result.direction.value
        self.variance_significance = result.significance.value
        self.governing_source = (
            result.governing_source.value if result.governing_source else None
        )
        self.reference_source = (
            result.reference_source.value if result.reference_source else None
        )
        self.variance_computed_at = computed_at

    def unbalance_dto(self) -> UnbalanceState:
        from bid_kernel.domain.unbalance import (
            UnbalanceDirection,
            UnbalanceState as UnbalanceStateDTO,
        )

        return UnbalanceStateDTO(
            is_unbalanced=self.is_unbalanced,
            direction=(
                UnbalanceDirection(self.unbalance_direction)
                if self.unbalance_direction else None
            ),
            justification=self.unbalance_justification,
            confidence=self.unbalance_confidence,
            marked_at=self.unbalance_marked_at,
            cleared_at=self.unbalance_cleared_at,
            marked_by=self.unbalance_marked_by,
        )

    def to_dto(self) -> LineItemInfo:
        """Convert ORM model to frozen domain DTO."""
        from bid_kernel.domain.quantity import LineItemInfo as LineItemDTO

        return LineItemDTO(
            id=self.id,
            project_id=self.project_id,
            item_number=self.item_number,
            description=self.description,
            unit=self.unit,
            base_quantity=self.base_quantity,
            variance=self.variance_dto(),
            unbalance=self.unbalance_dto(),
            version=self.version,
            line_number=self.line_number,
            unit_price=self.unit_price,
        )
