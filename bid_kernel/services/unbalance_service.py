"""
bid_kernel.services.unbalance_service -- Reviewer-driven unbalance workflow.

Responsibility:
    Records a reviewer's decision to price a line item SHORT or LONG and
    clears it again.  The advisor's recommendation is never applied
    automatically; the reviewer may choose either direction.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Transitions follow ``UNBALANCE_TRANSITIONS`` (NEUTRAL -> UNBALANCED,
      UNBALANCED -> UNBALANCED on re-mark, UNBALANCED -> NEUTRAL on clear).
    - Direction, justification and confidence are validated before the
      line item is even loaded.
    - Re-marking overwrites the previous decision; the audit chain keeps
      the history.

Failure modes:
    - InvalidUnbalanceDirectionError, InvalidJustificationError,
      InvalidConfidenceError on bad input.
    - NotUnbalancedError when clearing a neutral item.
    - LineItemNotFoundError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from bid_kernel.domain.clock import Clock
from bid_kernel.domain.unbalance import (
    UnbalanceDirection,
    UnbalanceState,
    UnbalanceStatus,
    check_transition,
    validate_marking,
)
from bid_kernel.exceptions import NotUnbalancedError
from bid_kernel.logging_config import get_logger
from bid_kernel.services.auditor_service import AuditorService
from bid_kernel.services.base import BaseService

logger = get_logger("services.unbalance")


class UnbalanceService(BaseService):
    """Mark and clear unbalance decisions on line items."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor

    def mark_unbalanced(
        self,
        line_item_id: UUID,
        direction: UnbalanceDirection | str,
        justification: str,
        confidence: int,
        actor_id: str | None = None,
    ) -> UnbalanceState:
        parsed_direction, text = validate_marking(direction, justification, confidence)

        item = self._load_line_item(line_item_id, for_update=True)
        current = item.unbalance_dto()
        check_transition(current.status, UnbalanceStatus.UNBALANCED)

        item.is_unbalanced = True
        item.unbalance_direction = parsed_direction.value
        item.unbalance_justification = text
        item.unbalance_confidence = confidence
        item.unbalance_marked_at = self._clock.now()
        item.unbalance_cleared_at = None
        item.unbalance_marked_by = actor_id
        self.session.flush()

        self._auditor.record_marked_unbalanced(
            line_item_id=item.id,
            direction=parsed_direction,
            justification=text,
            confidence=confidence,
            previous_direction=current.direction,
            actor_id=actor_id,
        )

        logger.info(
            "line_item_marked_unbalanced",
            extra={
                "line_item_id": str(item.id),
                "direction": parsed_direction.value,
                "confidence": confidence,
                "remarked": current.is_unbalanced,
                "significance": item.variance_significance,
            },
        )
        return item.unbalance_dto()

    def clear_unbalanced(
        self,
        line_item_id: UUID,
        actor_id: str | None = None,
    ) -> UnbalanceState:
        item = self._load_line_item(line_item_id, for_update=True)
        current = item.unbalance_dto()
        if not current.is_unbalanced:
            raise NotUnbalancedError(str(item.id))
        check_transition(current.status, UnbalanceStatus.NEUTRAL)

        item.is_unbalanced = False
        item.unbalance_direction = None
        item.unbalance_justification = None
        item.unbalance_confidence = None
        item.unbalance_cleared_at = self._clock.now()
        self.session.flush()

        self._auditor.record_unbalance_cleared(
            line_item_id=item.id,
            previous_direction=current.direction,
            actor_id=actor_id,
        )

        logger.info(
            "line_item_unbalance_cleared",
            extra={
                "line_item_id": str(item.id),
                "previous_direction": (
                    current.direction.value if current.direction else None
                ),
            },
        )
        return item.unbalance_dto()

    def get_state(self, line_item_id: UUID) -> UnbalanceState:
        return self._load_line_item(line_item_id).unbalance_dto()
