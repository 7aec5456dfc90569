"""
bid_services.governance -- Operation-oriented facade over quantity governance.

Responsibility:
    The external interface of the engine.  Each public operation opens its
    own transaction, wires the kernel services to that session, runs, and
    commits.  After a commit that can change unit pricing it notifies the
    ``PricingRecalculator`` and reports the outcome next to the result.

Architecture position:
    Services -- stateful orchestration over engines + kernel + config.
    The only place where transactions are committed.

Invariants enforced:
    - One transaction per operation; a failed operation leaves no partial
      state behind (``session_scope`` rolls back).
    - Write conflicts (``StaleDataError`` from the line item version
      counter, ``IntegrityError`` from the uniqueness constraints) are
      retried with a fresh session up to ``max_conflict_retries`` attempts.
    - Pricing is notified only after commit.  A notification failure is
      logged, audited in its own transaction, and returned as a FAILED
      ``RecalculationOutcome``; it never undoes the committed change.
      A failed audit write is logged and the FAILED outcome still returned.

Failure modes:
    - Every kernel validation / governance / unbalance error propagates
      unchanged.
    - ConcurrencyConflictError once the retry budget is spent.

Usage:
    from bid_kernel.db.engine import get_session_factory
    from bid_services import BidGovernanceService

    service = BidGovernanceService(get_session_factory(), pricing=recalculator)
    result = service.add_or_update_quantity(item_id, "contractor_takeoff", "140", "CY")
    if result.recalculation_failed:
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from bid_config import GovernanceConfig, get_active_config
from bid_config.bridges import build_advisor, build_classifier
from bid_engines.priority import LineItemSummary, build_worklist, summarize, tier_counts
from bid_engines.strategy import UnbalancingStrategyAdvisor
from bid_engines.variance import VarianceClassifier
from bid_kernel.db.engine import session_scope
from bid_kernel.domain.clock import Clock, SystemClock
from bid_kernel.domain.quantity import LineItemInfo, QuantityRecordInfo, QuantitySource
from bid_kernel.domain.unbalance import (
    StrategyRecommendation,
    UnbalanceDirection,
    UnbalanceState,
)
from bid_kernel.domain.variance import VarianceResult, VarianceSignificance
from bid_kernel.exceptions import (
    BidKernelError,
    ConcurrencyConflictError,
    PricingRecalculationError,
)
from bid_kernel.logging_config import LogContext, get_logger
from bid_kernel.selectors.line_item_selector import LineItemSelector
from bid_kernel.services.auditor_service import (
    LINE_ITEM_ENTITY,
    SYSTEM_ACTOR,
    AuditorService,
    AuditTrace,
)
from bid_kernel.services.governance_service import GovernanceService
from bid_kernel.services.unbalance_service import UnbalanceService
from bid_services.pricing import (
    OperationResult,
    PricingRecalculator,
    RecalculationOutcome,
)

logger = get_logger("services.facade")

T = TypeVar("T")

_CONFLICT_ERRORS = (StaleDataError, IntegrityError)


@dataclass
class _KernelServices:
    """Kernel services wired to one session."""

    auditor: AuditorService
    governance: GovernanceService
    unbalance: UnbalanceService
    selector: LineItemSelector


@dataclass(frozen=True)
class _Committed:
    """What a write step hands back to the facade after commit."""

    value: object
    project_id: UUID
    affects_pricing: bool


class BidGovernanceService:
    """Quantity governance and unbalancing operations.

    Contract:
        Receives a session factory and optional config, pricing
        collaborator and clock.  Builds the classifier and advisor once
        from config; builds kernel services per transaction.

    Non-goals:
        - Bulk operations across line items; callers loop one item at a time.
        - The pricing algorithm.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: GovernanceConfig | None = None,
        pricing: PricingRecalculator | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or get_active_config()
        self._pricing = pricing
        self._clock = clock or SystemClock()
        self._classifier: VarianceClassifier = build_classifier(self._config)
        self._advisor: UnbalancingStrategyAdvisor = build_advisor(self._config)
        self._max_attempts = self._config.retry.max_conflict_retries

    @property
    def config(self) -> GovernanceConfig:
        return self._config

    # ------------------------------------------------------------------
    # Quantity governance
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
    ) -> OperationResult[LineItemInfo]:
        def step(services: _KernelServices) -> _Committed:
            item = services.governance.import_line_item(
                project_id=project_id,
                item_number=item_number,
                description=description,
                unit=unit,
                base_quantity=base_quantity,
                unit_price=unit_price,
                line_number=line_number,
                actor_id=actor_id,
            )
            return _Committed(item, item.project_id, affects_pricing=False)

        with LogContext.bind(project_id=str(project_id), actor_id=actor_id):
            committed = self._write("import_line_item", str(project_id), step)
        return OperationResult(committed.value)

    def add_or_update_quantity(
        self,
        line_item_id: UUID,
        source: QuantitySource | str,
        quantity: Decimal | int | str,
        unit: str,
        reference: str | None = None,
        notes: str | None = None,
        confidence: int | None = None,
        entered_by: str | None = None,
    ) -> OperationResult[QuantityRecordInfo]:
        def step(services: _KernelServices) -> _Committed:
            write = services.governance.add_or_update_record(
                line_item_id=line_item_id,
                source=source,
                quantity=quantity,
                unit=unit,
                source_reference=reference,
                notes=notes,
                confidence=confidence,
                entered_by=entered_by,
            )
            return _Committed(
                write.record,
                services.selector.get(line_item_id).project_id,
                affects_pricing=write.governing_quantity_changed,
            )

        return self._write_and_notify(
            "add_or_update_quantity", line_item_id, entered_by, step,
        )

    def set_governing_source(
        self,
        line_item_id: UUID,
        record_id: UUID,
        actor_id: str | None = None,
    ) -> OperationResult[VarianceResult]:
        def step(services: _KernelServices) -> _Committed:
            change = services.governance.set_governing(
                line_item_id, record_id, actor_id=actor_id,
            )
            return _Committed(
                change.variance,
                services.selector.get(line_item_id).project_id,
                affects_pricing=change.changed,
            )

        return self._write_and_notify(
            "set_governing_source", line_item_id, actor_id, step,
        )

    def delete_quantity(
        self,
        line_item_id: UUID,
        record_id: UUID,
        actor_id: str | None = None,
    ) -> OperationResult[None]:
        def step(services: _KernelServices) -> _Committed:
            services.governance.delete_record(line_item_id, record_id, actor_id=actor_id)
            return _Committed(
                None,
                services.selector.get(line_item_id).project_id,
                affects_pricing=False,
            )

        return self._write_and_notify("delete_quantity", line_item_id, actor_id, step)

    def get_variance(self, line_item_id: UUID) -> VarianceResult:
        return self._read(lambda s: s.governance.get_variance(line_item_id))

    def list_quantities(self, line_item_id: UUID) -> list[QuantityRecordInfo]:
        return self._read(lambda s: s.governance.list_records(line_item_id))

    def get_line_item(self, line_item_id: UUID) -> LineItemInfo:
        return self._read(lambda s: s.selector.get(line_item_id))

    # ------------------------------------------------------------------
    # Strategy and unbalancing
    # ------------------------------------------------------------------

    def recommend_strategy(self, line_item_id: UUID) -> StrategyRecommendation:
        """Advisory only; the reviewer decides through ``mark_unbalanced``."""
        variance = self.get_variance(line_item_id)
        return self._advisor.recommend(variance=variance)

    def mark_unbalanced(
        self,
        line_item_id: UUID,
        direction: UnbalanceDirection | str,
        justification: str,
        confidence: int,
        actor_id: str | None = None,
    ) -> OperationResult[UnbalanceState]:
        def step(services: _KernelServices) -> _Committed:
            state = services.unbalance.mark_unbalanced(
                line_item_id,
                direction=direction,
                justification=justification,
                confidence=confidence,
                actor_id=actor_id,
            )
            return _Committed(
                state,
                services.selector.get(line_item_id).project_id,
                affects_pricing=True,
            )

        return self._write_and_notify("mark_unbalanced", line_item_id, actor_id, step)

    def clear_unbalanced(
        self,
        line_item_id: UUID,
        actor_id: str | None = None,
    ) -> OperationResult[UnbalanceState]:
        def step(services: _KernelServices) -> _Committed:
            state = services.unbalance.clear_unbalanced(line_item_id, actor_id=actor_id)
            return _Committed(
                state,
                services.selector.get(line_item_id).project_id,
                affects_pricing=True,
            )

        return self._write_and_notify("clear_unbalanced", line_item_id, actor_id, step)

    # ------------------------------------------------------------------
    # Priority view and audit
    # ------------------------------------------------------------------

    def list_actionable_items(self, project_id: UUID) -> list[LineItemSummary]:
        """Ranked worklist of MAJOR/CRITICAL items not yet unbalanced."""
        summaries = self._read(lambda s: self._summaries(s, project_id))
        return build_worklist(summaries, advisor=self._advisor)

    def alert_counts(self, project_id: UUID) -> dict[VarianceSignificance, int]:
        return tier_counts(self._read(lambda s: self._summaries(s, project_id)))

    def get_audit_trace(self, line_item_id: UUID) -> AuditTrace:
        return self._read(lambda s: s.auditor.get_trace(LINE_ITEM_ENTITY, line_item_id))

    def validate_audit_chain(self) -> bool:
        return self._read(lambda s: s.auditor.validate_chain())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _services(self, session: Session) -> _KernelServices:
        auditor = AuditorService(session, self._clock)
        return _KernelServices(
            auditor=auditor,
            governance=GovernanceService(session, self._classifier, auditor, self._clock),
            unbalance=UnbalanceService(session, auditor, self._clock),
            selector=LineItemSelector(session),
        )

    @staticmethod
    def _summaries(services: _KernelServices, project_id: UUID) -> list[LineItemSummary]:
        items = services.selector.list_for_project(project_id)
        records = services.selector.quantities_for_project(project_id)
        return [summarize(item, records.get(item.id, [])) for item in items]

    def _read(self, fn: Callable[[_KernelServices], T]) -> T:
        with session_scope(self._session_factory) as session:
            return fn(self._services(session))

    def _write(
        self,
        operation: str,
        entity_id: str,
        step: Callable[[_KernelServices], _Committed],
    ) -> _Committed:
        """Run ``step`` in its own transaction, retrying on write conflicts."""
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                with session_scope(self._session_factory) as session:
                    return step(self._services(session))
            except _CONFLICT_ERRORS as exc:
                last_error = exc
                logger.warning(
                    "write_conflict_retry",
                    extra={
                        "operation": operation,
                        "entity_id": entity_id,
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "error_type": type(exc).__name__,
                    },
                )

        logger.error(
            "write_conflict_exhausted",
            extra={
                "operation": operation,
                "entity_id": entity_id,
                "attempts": self._max_attempts,
            },
        )
        raise ConcurrencyConflictError(
            LINE_ITEM_ENTITY, entity_id, self._max_attempts,
        ) from last_error

    def _write_and_notify(
        self,
        operation: str,
        line_item_id: UUID,
        actor_id: str | None,
        step: Callable[[_KernelServices], _Committed],
    ) -> OperationResult:
        with LogContext.bind(line_item_id=str(line_item_id), actor_id=actor_id):
            committed = self._write(operation, str(line_item_id), step)
            if not committed.affects_pricing:
                return OperationResult(committed.value)
            outcome = self._notify_pricing(
                committed.project_id, (line_item_id,), actor_id,
            )
        return OperationResult(committed.value, outcome)

    def _notify_pricing(
        self,
        project_id: UUID,
        line_item_ids: tuple[UUID, ...],
        actor_id: str | None,
    ) -> RecalculationOutcome:
        if self._pricing is None:
            return RecalculationOutcome.not_required()

        try:
            self._pricing.recalculate(project_id, line_item_ids)
        except Exception as exc:
            # Collaborator failures are reported, never raised: state is committed.
            if isinstance(exc, BidKernelError):
                code = exc.code
                message = str(exc)
            else:
                wrapped = PricingRecalculationError(str(project_id), str(exc))
                code = wrapped.code
                message = str(wrapped)

            logger.error(
                "pricing_recalculation_failed",
                extra={
                    "project_id": str(project_id),
                    "line_item_ids": [str(i) for i in line_item_ids],
                    "error_code": code,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            self._audit_pricing_failure(project_id, line_item_ids, code, message, actor_id)
            return RecalculationOutcome.failure(line_item_ids, code, message)

        logger.info(
            "pricing_recalculated",
            extra={
                "project_id": str(project_id),
                "line_item_ids": [str(i) for i in line_item_ids],
            },
        )
        return RecalculationOutcome.succeeded(line_item_ids)

    def _audit_pricing_failure(
        self,
        project_id: UUID,
        line_item_ids: tuple[UUID, ...],
        code: str,
        message: str,
        actor_id: str | None,
    ) -> None:
        """Best effort: the outcome is still reported if the audit write fails."""
        try:
            with session_scope(self._session_factory) as session:
                AuditorService(session, self._clock).record_pricing_failure(
                    project_id=project_id,
                    line_item_ids=line_item_ids,
                    error_code=code,
                    message=message,
                    actor_id=actor_id or SYSTEM_ACTOR,
                )
        except Exception:
            logger.error(
                "pricing_failure_audit_failed",
                extra={
                    "project_id": str(project_id),
                    "line_item_ids": [str(i) for i in line_item_ids],
                    "error_code": code,
                },
                exc_info=True,
            )
