"""
bid_services.pricing -- Pricing recalculation port and operation results.

Responsibility:
    Defines the ``PricingRecalculator`` protocol the facade notifies after a
    committed change that can affect unit prices, and the result types that
    carry the notification outcome back to the caller next to the primary
    value.

Architecture position:
    Services -- outer boundary types.  The pricing algorithm itself lives
    outside this package; only its call shape is defined here.

Invariants enforced:
    - A recalculation failure never undoes committed state; it is reported
      as a FAILED ``RecalculationOutcome`` on an otherwise successful result.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Protocol, TypeVar
from uuid import UUID

T = TypeVar("T")


class PricingRecalculator(Protocol):
    """Recomputes unit prices for the given line items of a project."""

    def recalculate(self, project_id: UUID, line_item_ids: Sequence[UUID]) -> None: ...


class RecalculationStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RecalculationOutcome:
    """Whether, and how well, pricing was recalculated after an operation."""

    status: RecalculationStatus
    line_item_ids: tuple[UUID, ...] = ()
    error_code: str | None = None
    error_message: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == RecalculationStatus.FAILED

    @classmethod
    def not_required(cls) -> RecalculationOutcome:
        return cls(status=RecalculationStatus.NOT_REQUIRED)

    @classmethod
    def succeeded(cls, line_item_ids: Sequence[UUID]) -> RecalculationOutcome:
        return cls(
            status=RecalculationStatus.SUCCEEDED,
            line_item_ids=tuple(line_item_ids),
        )

    @classmethod
    def failure(
        cls,
        line_item_ids: Sequence[UUID],
        error_code: str,
        error_message: str,
    ) -> RecalculationOutcome:
        return cls(
            status=RecalculationStatus.FAILED,
            line_item_ids=tuple(line_item_ids),
            error_code=error_code,
            error_message=error_message,
        )


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Primary value of a facade operation plus the pricing outcome."""

    value: T
    recalculation: RecalculationOutcome = field(
        default_factory=RecalculationOutcome.not_required,
    )

    @property
    def recalculation_failed(self) -> bool:
        return self.recalculation.failed

