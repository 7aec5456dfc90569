"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Appends one hash-chained event per governed state change: imports,
    baselines, quantity writes and deletes, governing changes, variance
    refreshes, unbalance decisions, and pricing failures.  Validates the
    chain and answers per-entity trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by GovernanceService,
    UnbalanceService and the governance facade.

Invariants enforced:
    - ``seq`` comes from SequenceService, never from ``max(seq) + 1``.
    - ``hash = H(entity_type | entity_id | action | payload_hash | prev_hash)``
      and ``prev_hash`` is the hash of the event with the preceding seq.
    - Append-only: the AuditEvent ORM listeners reject updates and deletes.

Failure modes:
    - AuditChainBrokenError from ``validate_chain`` on the first event whose
      link, payload hash or own hash does not recompute.
    - IntegrityError on a concurrent insert race for the sequence counter.

Audit relevance:
    UnbalanceState keeps only the latest marking; the MARKED_UNBALANCED and
    UNBALANCE_CLEARED entries here keep every decision ever made.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bid_kernel.domain.clock import Clock, SystemClock
from bid_kernel.domain.quantity import QuantitySource
from bid_kernel.domain.unbalance import UnbalanceDirection
from bid_kernel.domain.variance import VarianceResult
from bid_kernel.exceptions import AuditChainBrokenError
from bid_kernel.logging_config import get_logger
from bid_kernel.models.audit_event import AuditAction, AuditEvent
from bid_kernel.services.sequence_service import SequenceService
from bid_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")

SYSTEM_ACTOR = "system"

LINE_ITEM_ENTITY = "LineItem"
PROJECT_ENTITY = "Project"


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: str
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """Every event recorded against one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def _variance_snapshot(result: VarianceResult) -> dict[str, Any]:
    return {
        "governing_quantity": result.governing_quantity,
        "reference_quantity": result.reference_quantity,
        "variance_pct": result.variance_pct,
        "direction": result.direction,
        "significance": result.significance,
        "governing_source": result.governing_source,
        "reference_source": result.reference_source,
    }


class AuditorService:
    """
    Writes and verifies the audit chain.

    Non-goals:
        - Does NOT commit; the caller owns the transaction.
        - Does NOT interpret events after writing them.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Chain append
    # ------------------------------------------------------------------

    def _chain_head(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _append(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: str | None,
        payload: dict[str, Any],
    ) -> AuditEvent:
        seq = self._sequences.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._chain_head()
        stored_payload = to_json_safe(payload)
        payload_hash = hash_payload(stored_payload)

        event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id or SYSTEM_ACTOR,
            occurred_at=self._clock.now(),
            payload=stored_payload,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=hash_audit_event(
                entity_type, str(entity_id), action.value, payload_hash, prev_hash,
            ),
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return event

    def _line_item_event(
        self,
        line_item_id: UUID,
        action: AuditAction,
        actor_id: str | None,
        **payload: Any,
    ) -> AuditEvent:
        return self._append(LINE_ITEM_ENTITY, line_item_id, action, actor_id, payload)

    # ------------------------------------------------------------------
    # Line item lifecycle
    # ------------------------------------------------------------------

    def record_line_item_imported(
        self,
        line_item_id: UUID,
        project_id: UUID,
        item_number: str,
        unit: str,
        base_quantity: Decimal,
        actor_id: str | None,
    ) -> AuditEvent:
        return self._line_item_event(
            line_item_id, AuditAction.LINE_ITEM_IMPORTED, actor_id,
            project_id=project_id,
            item_number=item_number,
            unit=unit,
            base_quantity=base_quantity,
        )

    def record_baseline_created(
        self,
        line_item_id: UUID,
        record_id: UUID,
        quantity: Decimal,
        actor_id: str | None,
    ) -> AuditEvent:
        """The implicit EBSX record, governing from birth."""
        return self._line_item_event(
            line_item_id, AuditAction.BASELINE_CREATED, actor_id,
            record_id=record_id,
            source=QuantitySource.EBSX_IMPORT,
            quantity=quantity,
        )

    # ------------------------------------------------------------------
    # Quantity governance
    # ------------------------------------------------------------------

    def record_quantity_written(
        self,
        line_item_id: UUID,
        record_id: UUID,
        source: QuantitySource,
        quantity: Decimal,
        previous_quantity: Decimal | None,
        actor_id: str | None,
    ) -> AuditEvent:
        """QUANTITY_RECORDED for a new source, QUANTITY_UPDATED otherwise."""
        if previous_quantity is None:
            action = AuditAction.QUANTITY_RECORDED
        else:
            action = AuditAction.QUANTITY_UPDATED
        return self._line_item_event(
            line_item_id, action, actor_id,
            record_id=record_id,
            source=source,
            quantity=quantity,
            previous_quantity=previous_quantity,
        )

    def record_quantity_deleted(
        self,
        line_item_id: UUID,
        record_id: UUID,
        source: QuantitySource,
        quantity: Decimal,
        actor_id: str | None,
    ) -> AuditEvent:
        return self._line_item_event(
            line_item_id, AuditAction.QUANTITY_DELETED, actor_id,
            record_id=record_id,
            source=source,
            quantity=quantity,
        )

    def record_governing_changed(
        self,
        line_item_id: UUID,
        previous_source: QuantitySource | None,
        new_source: QuantitySource,
        record_id: UUID,
        actor_id: str | None,
    ) -> AuditEvent:
        return self._line_item_event(
            line_item_id, AuditAction.GOVERNING_CHANGED, actor_id,
            record_id=record_id,
            previous_source=previous_source,
            new_source=new_source,
        )

    def record_variance_recomputed(
        self,
        line_item_id: UUID,
        previous: VarianceResult,
        current: VarianceResult,
        actor_id: str | None,
    ) -> AuditEvent:
        return self._line_item_event(
            line_item_id, AuditAction.VARIANCE_RECOMPUTED, actor_id,
            previous=_variance_snapshot(previous),
            current=_variance_snapshot(current),
        )

    # ------------------------------------------------------------------
    # Unbalance workflow
    # ------------------------------------------------------------------

    def record_marked_unbalanced(
        self,
        line_item_id: UUID,
        direction: UnbalanceDirection,
        justification: str,
        confidence: int,
        previous_direction: UnbalanceDirection | None,
        actor_id: str | None,
    ) -> AuditEvent:
        return self._line_item_event(
            line_item_id, AuditAction.MARKED_UNBALANCED, actor_id,
            direction=direction,
            justification=justification,
            confidence=confidence,
            previous_direction=previous_direction,
        )

    def record_unbalance_cleared(
        self,
        line_item_id: UUID,
        previous_direction: UnbalanceDirection | None,
        actor_id: str | None,
    ) -> AuditEvent:
        return self._line_item_event(
            line_item_id, AuditAction.UNBALANCE_CLEARED, actor_id,
            previous_direction=previous_direction,
        )

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def record_pricing_failure(
        self,
        project_id: UUID,
        line_item_ids: tuple[UUID, ...],
        error_code: str,
        message: str,
        actor_id: str | None,
    ) -> AuditEvent:
        """Recorded against the project: one notification covers many items."""
        return self._append(
            PROJECT_ENTITY,
            project_id,
            AuditAction.PRICING_RECALCULATION_FAILED,
            actor_id,
            {
                "line_item_ids": [str(i) for i in line_item_ids],
                "error_code": error_code,
                "message": message,
            },
        )

    # ------------------------------------------------------------------
    # Verification and queries
    # ------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """Walk every event in seq order; raise on the first broken link."""
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        expected_prev: str | None = None
        for event in events:
            if event.prev_hash != expected_prev:
                self._broken(event, "link_mismatch", expected_prev, event.prev_hash)

            stored_payload_hash = hash_payload(event.payload or {})
            if stored_payload_hash != event.payload_hash:
                self._broken(
                    event, "payload_mismatch", event.payload_hash, stored_payload_hash,
                )

            recomputed = hash_audit_event(
                event.entity_type,
                str(event.entity_id),
                event.action,
                event.payload_hash,
                event.prev_hash,
            )
            if recomputed != event.hash:
                self._broken(event, "hash_mismatch", recomputed, event.hash)

            expected_prev = event.hash

        logger.info("audit_chain_validated", extra={"event_count": len(events)})
        return True

    @staticmethod
    def _broken(
        event: AuditEvent,
        reason: str,
        expected: str | None,
        actual: str | None,
    ) -> None:
        logger.critical(
            "audit_chain_broken",
            extra={"audit_event_id": str(event.id), "seq": event.seq, "reason": reason},
        )
        raise AuditChainBrokenError(str(event.id), str(expected), str(actual))

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=AuditAction(event.action),
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    payload=event.payload or {},
                    hash=event.hash,
                )
                for event in events
            ),
        )
