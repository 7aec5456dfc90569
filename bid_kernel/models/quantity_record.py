"""
Module: bid_kernel.models.quantity_record
Responsibility: ORM persistence for per-source quantity estimates.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - One record per source per line item: UNIQUE(line_item_id, source).
    - One governing record per line item: partial unique index on
      line_item_id WHERE is_governing.  Together with the flush ordering in
      GovernanceService.set_governing this rules out two governing rows.
    - Non-negative quantity and 0-100 confidence (check constraints).
    - EBSX import rows are frozen by ORM listeners (db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate source or a second governing record.
    - ImmutabilityViolationError on edits or deletes of EBSX import rows.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from bid_kernel.db.base import Base, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from bid_kernel.domain.quantity import QuantityRecordInfo


class QuantityRecordModel(Base):
    """Persistent quantity estimate from one source."""

    __tablename__ = "quantity_records"

    __table_args__ = (
        UniqueConstraint(
            "line_item_id", "source",
            name="uq_quantity_records_item_source",
        ),
        Index(
            "uq_quantity_records_one_governing",
            "line_item_id",
            unique=True,
            postgresql_where=text("is_governing"),
            sqlite_where=text("is_governing = 1"),
        ),
        CheckConstraint("quantity >= 0", name="ck_quantity_records_quantity"),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 100)",
            name="ck_quantity_records_confidence",
        ),
        CheckConstraint(
            "source IN ('ebsx_import', 'plan_summary', 'contractor_takeoff', "
            "'special_provision', 'addendum')",
            name="ck_quantity_records_valid_source",
        ),
    )

    line_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("line_items.id"),
        nullable=False,
    )
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    source_reference: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_governing: Mapped[bool] = mapped_column(nullable=False, default=False)
    confidence: Mapped[int | None] = mapped_column(nullable=True)
    entered_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entered_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<QuantityRecord {self.source}={self.quantity} {self.unit} "
            f"item={self.line_item_id} governing={self.is_governing}>"
        )

    def to_dto(self) -> QuantityRecordInfo:
        """Convert ORM model to frozen domain DTO."""
        from bid_kernel.domain.quantity import (
            QuantityRecordInfo as QuantityRecordDTO,
            QuantitySource,
        )

        return QuantityRecordDTO(
            id=self.id,
            line_item_id=self.line_item_id,
            source=QuantitySource(self.source),
            quantity=self.quantity,
            unit=self.unit,
            is_governing=self.is_governing,
            entered_at=self.entered_at,
            source_reference=self.source_reference,
            notes=self.notes,
            confidence=self.confidence,
            entered_by=self.entered_by,
        )
