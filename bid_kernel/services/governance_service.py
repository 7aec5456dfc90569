"""
bid_kernel.services.governance_service -- Quantity governance for line items.

Responsibility:
    Owns the lifecycle of quantity records on a line item: the implicit EBSX
    baseline, per-source create-or-update, governing promotion, deletion,
    and the cached variance classification that follows every change.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.  The variance
    classifier is injected (``VarianceClassifierPort``) so the kernel never
    imports the engines package.

Invariants enforced:
    - Exactly one governing record once any record exists.  Promotion clears
      the previous holder and flushes before setting the new one, so the
      one-governing partial unique index is never violated mid-flight.
    - EBSX_IMPORT is the default governing record, never editable and never
      deletable through this service.
    - One record per source: a second write for a source updates in place
      and keeps ``is_governing``.
    - All validation happens before the first mutation.
    - The cached variance is rebuilt from the records after every
      successful mutation, deletions included (the reference may change).

Failure modes:
    - LineItemNotFoundError, QuantityRecordNotFoundError.
    - UnknownQuantitySourceError, InvalidQuantityError,
      InvalidRecordConfidenceError, UnitMismatchError.
    - ImmutableSourceError / CannotDeleteImmutableSourceError.
    - CannotDeleteGoverningError.
    - GoverningInvariantError if stored rows already break the invariant.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from bid_kernel.db.types import normalize_unit, parse_quantity
from bid_kernel.domain.clock import Clock
from bid_kernel.domain.quantity import (
    LineItemInfo,
    QuantityRecordInfo,
    QuantitySource,
    is_deletable_source,
    is_editable_source,
    parse_source,
)
from bid_kernel.domain.variance import VarianceClassifierPort, VarianceResult
from bid_kernel.exceptions import (
    CannotDeleteGoverningError,
    CannotDeleteImmutableSourceError,
    GoverningInvariantError,
    ImmutableSourceError,
    InvalidRecordConfidenceError,
    QuantityRecordNotFoundError,
    UnitMismatchError,
)
from bid_kernel.logging_config import get_logger
from bid_kernel.models.line_item import LineItemModel
from bid_kernel.models.quantity_record import QuantityRecordModel
from bid_kernel.services.auditor_service import AuditorService
from bid_kernel.services.base import BaseService

logger = get_logger("services.governance")


@dataclass(frozen=True)
class QuantityWrite:
    """Outcome of an add-or-update call."""

    record: QuantityRecordInfo
    created: bool
    variance: VarianceResult
    governing_quantity_changed: bool


@dataclass(frozen=True)
class GoverningChange:
    """Outcome of a governing promotion."""

    variance: VarianceResult
    changed: bool
    previous_source: QuantitySource | None
    new_source: QuantitySource


class GovernanceService(BaseService):
    """Quantity governance for bid line items.

    Contract:
        Every public mutator locks the line item, validates, mutates,
        flushes and rebuilds the variance cache.  It never commits.
    """

    def __init__(
        self,
        session: Session,
        classifier: VarianceClassifierPort,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._classifier = classifier
        self._auditor = auditor

    # ------------------------------------------------------------------
    # Line item ingestion
    # ------------------------------------------------------------------

    def import_line_item(
        self,
        project_id: UUID,
        item_number: str,
        description: str,
        unit: str,
        base_quantity: Decimal | int | str,
        unit_price: Decimal | int | str | None = None,
        line_number: int | None = None,
        actor_id: str | None = None,
    ) -> LineItemInfo:
        """Create a line item together with its governing EBSX baseline."""
        quantity = parse_quantity(base_quantity)
        price = parse_quantity(unit_price) if unit_price is not None else None

        item = LineItemModel(
            id=uuid4(),
            project_id=project_id,
            line_number=line_number,
            item_number=item_number.strip(),
            description=description,
            unit=unit.strip(),
            base_quantity=quantity,
            unit_price=price,
            created_at=self._clock.now(),
            is_unbalanced=False,
        )
        self.session.add(item)
        self.session.flush()

        self._auditor.record_line_item_imported(
            line_item_id=item.id,
            project_id=project_id,
            item_number=item.item_number,
            unit=item.unit,
            base_quantity=quantity,
            actor_id=actor_id,
        )
        self._create_baseline(item, actor_id)

        logger.info(
            "line_item_imported",
            extra={
                "line_item_id": str(item.id),
                "project_id": str(project_id),
                "item_number": item.item_number,
                "base_quantity": str(quantity),
                "unit": item.unit,
            },
        )
        return item.to_dto()

    def ensure_baseline(
        self,
        line_item_id: UUID,
        actor_id: str | None = None,
    ) -> QuantityRecordInfo | None:
        """Create the governing EBSX record if the item has no records.

        Returns the new record, or None when records already exist.
        """
        item = self._load_line_item(line_item_id, for_update=True)
        if self._records(item.id):
            return None
        return self._create_baseline(item, actor_id).to_dto()

    # ------------------------------------------------------------------
    # Quantity records
    # ------------------------------------------------------------------

    def add_or_update_record(
        self,
        line_item_id: UUID,
        source: QuantitySource | str,
        quantity: Decimal | int | str,
        unit: str,
        source_reference: str | None = None,
        notes: str | None = None,
        confidence: int | None = None,
        entered_by: str | None = None,
    ) -> QuantityWrite:
        """Record a quantity observation from ``source``.

        Creates a non-governing record on first observation; updates the
        existing record in place (keeping ``is_governing``) afterwards.
        """
        parsed_source = parse_source(source)
        if not is_editable_source(parsed_source):
            raise ImmutableSourceError(str(line_item_id), parsed_source.value)
        parsed_quantity = parse_quantity(quantity)
        if confidence is not None and (
            isinstance(confidence, bool)
            or not isinstance(confidence, int)
            or not 0 <= confidence <= 100
        ):
            raise InvalidRecordConfidenceError(confidence)

        item = self._load_line_item(line_item_id, for_update=True)
        if normalize_unit(unit) != normalize_unit(item.unit):
            raise UnitMismatchError(str(item.id), item.unit, unit)

        if not self._records(item.id):
            self._create_baseline(item, entered_by)

        previous_governing = item.governing_quantity
        record = self._record_for_source(item.id, parsed_source)
        created = record is None
        previous_quantity = None if created else record.quantity

        if created:
            record = QuantityRecordModel(
                id=uuid4(),
                line_item_id=item.id,
                source=parsed_source.value,
                is_governing=False,
            )
            self.session.add(record)

        record.quantity = parsed_quantity
        record.unit = item.unit
        record.source_reference = source_reference
        record.notes = notes
        record.confidence = confidence
        record.entered_by = entered_by
        record.entered_at = self._clock.now()
        self.session.flush()

        self._auditor.record_quantity_written(
            line_item_id=item.id,
            record_id=record.id,
            source=parsed_source,
            quantity=parsed_quantity,
            previous_quantity=previous_quantity,
            actor_id=entered_by,
        )
        variance = self._refresh_variance(item, entered_by)

        logger.info(
            "quantity_recorded" if created else "quantity_updated",
            extra={
                "line_item_id": str(item.id),
                "record_id": str(record.id),
                "source": parsed_source.value,
                "quantity": str(parsed_quantity),
                "is_governing": record.is_governing,
            },
        )
        return QuantityWrite(
            record=record.to_dto(),
            created=created,
            variance=variance,
            governing_quantity_changed=(
                variance.governing_quantity != previous_governing
            ),
        )

    def set_governing(
        self,
        line_item_id: UUID,
        record_id: UUID,
        actor_id: str | None = None,
    ) -> GoverningChange:
        """Promote ``record_id`` to governing; demote the previous holder."""
        item = self._load_line_item(line_item_id, for_update=True)
        records = self._records(item.id)
        target = next((r for r in records if r.id == record_id), None)
        if target is None:
            raise QuantityRecordNotFoundError(str(line_item_id), str(record_id))

        holders = [r for r in records if r.is_governing]
        new_source = QuantitySource(target.source)
        previous_source = QuantitySource(holders[0].source) if holders else None

        if target.is_governing:
            logger.info(
                "governing_unchanged",
                extra={"line_item_id": str(item.id), "source": new_source.value},
            )
            return GoverningChange(
                variance=item.variance_dto(),
                changed=False,
                previous_source=previous_source,
                new_source=new_source,
            )

        for holder in holders:
            holder.is_governing = False
        self.session.flush()
        target.is_governing = True
        self.session.flush()

        self._auditor.record_governing_changed(
            line_item_id=item.id,
            previous_source=previous_source,
            new_source=new_source,
            record_id=target.id,
            actor_id=actor_id,
        )
        variance = self._refresh_variance(item, actor_id)

        logger.info(
            "governing_changed",
            extra={
                "line_item_id": str(item.id),
                "previous_source": previous_source.value if previous_source else None,
                "new_source": new_source.value,
                "governing_quantity": str(target.quantity),
            },
        )
        return GoverningChange(
            variance=variance,
            changed=True,
            previous_source=previous_source,
            new_source=new_source,
        )

    def delete_record(
        self,
        line_item_id: UUID,
        record_id: UUID,
        actor_id: str | None = None,
    ) -> VarianceResult:
        """Delete a non-governing, non-EBSX record."""
        item = self._load_line_item(line_item_id, for_update=True)
        record = next(
            (r for r in self._records(item.id) if r.id == record_id), None
        )
        if record is None:
            raise QuantityRecordNotFoundError(str(line_item_id), str(record_id))

        source = QuantitySource(record.source)
        if not is_deletable_source(source):
            raise CannotDeleteImmutableSourceError(str(item.id), source.value)
        if record.is_governing:
            raise CannotDeleteGoverningError(str(item.id), str(record.id), source.value)

        quantity = record.quantity
        self.session.delete(record)
        self.session.flush()

        self._auditor.record_quantity_deleted(
            line_item_id=item.id,
            record_id=record_id,
            source=source,
            quantity=quantity,
            actor_id=actor_id,
        )
        variance = self._refresh_variance(item, actor_id)

        logger.info(
            "quantity_deleted",
            extra={
                "line_item_id": str(item.id),
                "record_id": str(record_id),
                "source": source.value,
            },
        )
        return variance

    def list_records(self, line_item_id: UUID) -> list[QuantityRecordInfo]:
        item = self._load_line_item(line_item_id)
        return [r.to_dto() for r in self._records(item.id)]

    # ------------------------------------------------------------------
    # Variance
    # ------------------------------------------------------------------

    def recompute_variance(
        self,
        line_item_id: UUID,
        actor_id: str | None = None,
    ) -> VarianceResult:
        item = self._load_line_item(line_item_id, for_update=True)
        return self._refresh_variance(item, actor_id)

    def get_variance(self, line_item_id: UUID) -> VarianceResult:
        """Cached classification; always current because every write rebuilds it."""
        return self._load_line_item(line_item_id).variance_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _records(self, line_item_id: UUID) -> list[QuantityRecordModel]:
        return list(
            self.session.execute(
                select(QuantityRecordModel)
                .where(QuantityRecordModel.line_item_id == line_item_id)
                .order_by(QuantityRecordModel.entered_at, QuantityRecordModel.source)
            ).scalars().all()
        )

    def _record_for_source(
        self,
        line_item_id: UUID,
        source: QuantitySource,
    ) -> QuantityRecordModel | None:
        return self.session.execute(
            select(QuantityRecordModel).where(
                QuantityRecordModel.line_item_id == line_item_id,
                QuantityRecordModel.source == source.value,
            )
        ).scalar_one_or_none()

    def _create_baseline(
        self,
        item: LineItemModel,
        actor_id: str | None,
    ) -> QuantityRecordModel:
        record = QuantityRecordModel(
            id=uuid4(),
            line_item_id=item.id,
            source=QuantitySource.EBSX_IMPORT.value,
            quantity=item.base_quantity,
            unit=item.unit,
            is_governing=True,
            entered_by=actor_id,
            entered_at=self._clock.now(),
        )
        self.session.add(record)
        self.session.flush()

        self._auditor.record_baseline_created(
            line_item_id=item.id,
            record_id=record.id,
            quantity=item.base_quantity,
            actor_id=actor_id,
        )
        self._refresh_variance(item, actor_id)

        logger.info(
            "baseline_created",
            extra={
                "line_item_id": str(item.id),
                "record_id": str(record.id),
                "quantity": str(item.base_quantity),
            },
        )
        return record

    def _refresh_variance(
        self,
        item: LineItemModel,
        actor_id: str | None,
    ) -> VarianceResult:
        records = self._records(item.id)
        governing_count = sum(1 for r in records if r.is_governing)
        if records and governing_count != 1:
            logger.error(
                "governing_invariant_violated",
                extra={
                    "line_item_id": str(item.id),
                    "governing_count": governing_count,
                },
            )
            raise GoverningInvariantError(str(item.id), governing_count)

        previous = item.variance_dto()
        result = self._classifier.classify_records(
            records=[r.to_dto() for r in records]
        )

        item.apply_variance(result, self._clock.now())
        # Always bump the version so concurrent writers on the item conflict
        flag_modified(item, "variance_computed_at")
        self.session.flush()

        if result != previous:
            self._auditor.record_variance_recomputed(
                line_item_id=item.id,
                previous=previous,
                current=result,
                actor_id=actor_id,
            )
            logger.info(
                "variance_recomputed",
                extra={
                    "line_item_id": str(item.id),
                    "variance_pct": (
                        str(result.variance_pct)
                        if result.variance_pct is not None else None
                    ),
                    "direction": result.direction.value,
                    "significance": result.significance.value,
                },
            )
        return result
