"""
Module: bid_kernel.selectors.line_item_selector
Responsibility: Read-only access to line items and their quantity records,
    shaped for the priority worklist and review screens.
Architecture position: Kernel > Selectors.

Failure modes:
    - LineItemNotFoundError from ``get``.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select

from bid_kernel.domain.quantity import LineItemInfo, QuantityRecordInfo
from bid_kernel.exceptions import LineItemNotFoundError
from bid_kernel.models.line_item import LineItemModel
from bid_kernel.models.quantity_record import QuantityRecordModel
from bid_kernel.selectors.base import BaseSelector


class LineItemSelector(BaseSelector):
    """Queries over line items and quantity records."""

    def get(self, line_item_id: UUID) -> LineItemInfo:
        item = self.session.get(LineItemModel, line_item_id)
        if item is None:
            raise LineItemNotFoundError(str(line_item_id))
        return item.to_dto()

    def list_for_project(self, project_id: UUID) -> list[LineItemInfo]:
        items = self.session.execute(
            select(LineItemModel)
            .where(LineItemModel.project_id == project_id)
            .order_by(LineItemModel.item_number)
        ).scalars().all()
        return [item.to_dto() for item in items]

    def quantities_for_project(
        self, project_id: UUID
    ) -> dict[UUID, list[QuantityRecordInfo]]:
        """All quantity records of a project, grouped by line item."""
        records = self.session.execute(
            select(QuantityRecordModel)
            .join(LineItemModel, LineItemModel.id == QuantityRecordModel.line_item_id)
            .where(LineItemModel.project_id == project_id)
            .order_by(QuantityRecordModel.entered_at, QuantityRecordModel.source)
        ).scalars().all()

        grouped: dict[UUID, list[QuantityRecordInfo]] = defaultdict(list)
        for record in records:
            grouped[record.line_item_id].append(record.to_dto())
        return dict(grouped)
