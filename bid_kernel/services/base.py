"""
BaseService -- abstract base for line-item-scoped kernel services.

Responsibility:
    Provides the common constructor, the flush-only session contract and the
    locked line-item load shared by GovernanceService and UnbalanceService.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.
    - Serialization: every mutation starts by loading the line item with
      ``SELECT ... FOR UPDATE``.  Writers on the same item queue on that
      row lock (PostgreSQL); the version counter catches anything else.

Failure modes:
    - LineItemNotFoundError if the line item does not exist.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bid_kernel.domain.clock import Clock, SystemClock
from bid_kernel.exceptions import LineItemNotFoundError
from bid_kernel.models.line_item import LineItemModel


class BaseService(ABC):
    """
    Abstract base class for kernel services that mutate line items.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only listings; those belong in
          ``bid_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _load_line_item(
        self,
        line_item_id: UUID,
        *,
        for_update: bool = False,
    ) -> LineItemModel:
        stmt = select(LineItemModel).where(LineItemModel.id == line_item_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        item = self.session.execute(stmt).scalar_one_or_none()
        if item is None:
            raise LineItemNotFoundError(str(line_item_id))
        return item
