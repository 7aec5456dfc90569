"""
Tests for BidGovernanceService (the operation facade).

Each facade call runs in its own committed transaction, so these tests use
the facade alone and never share the kernel-level ``session`` fixture.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.orm.exc import StaleDataError

from bid_kernel.db.engine import session_scope
from bid_kernel.domain.quantity import QuantitySource
from bid_kernel.domain.unbalance import UnbalanceDirection, UnbalanceStatus
from bid_kernel.domain.variance import VarianceDirection, VarianceSignificance
from bid_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidJustificationError,
    InvalidQuantityError,
    LineItemNotFoundError,
    UnitMismatchError,
)
from bid_kernel.models.audit_event import AuditAction
from bid_kernel.services.auditor_service import PROJECT_ENTITY, AuditorService
from bid_kernel.services.governance_service import GovernanceService
from bid_services import BidGovernanceService, RecalculationStatus

ESTIMATOR = "estimator-1"


def _import(facade, project_id, item_number="0203-01", base_quantity="100", unit="CY"):
    return facade.import_line_item(
        project_id=project_id,
        item_number=item_number,
        description=f"Item {item_number}",
        unit=unit,
        base_quantity=base_quantity,
        unit_price="12.50",
        actor_id=ESTIMATOR,
    ).value


def _take_off(facade, item, quantity):
    """Record a contractor takeoff and make it governing."""
    record = facade.add_or_update_quantity(
        item.id, QuantitySource.CONTRACTOR_TAKEOFF, quantity, item.unit,
        entered_by=ESTIMATOR,
    ).value
    facade.set_governing_source(item.id, record.id, actor_id=ESTIMATOR)
    return record


class TestReviewScenario:

    def test_overrun_flagged_recommended_and_resolved(self, facade, project_id):
        item = _import(facade, project_id)
        facade.add_or_update_quantity(item.id, "plan_summary", "100", "CY")
        _take_off(facade, item, "140")

        variance = facade.get_variance(item.id)
        assert variance.variance_pct == Decimal("40.0000")
        assert variance.direction == VarianceDirection.OVER
        assert variance.significance == VarianceSignificance.CRITICAL
        assert variance.governing_source == QuantitySource.CONTRACTOR_TAKEOFF

        advice = facade.recommend_strategy(item.id)
        assert advice.strategy == UnbalanceDirection.SHORT
        assert "40.0%" in advice.rationale

        worklist = facade.list_actionable_items(project_id)
        assert [s.line_item_id for s in worklist] == [item.id]
        assert worklist[0].recommendation == advice

        result = facade.mark_unbalanced(
            item.id, "SHORT", "takeoff confirmed by field survey", 90,
            actor_id="reviewer-7",
        )

        assert result.value.status == UnbalanceStatus.UNBALANCED
        assert facade.list_actionable_items(project_id) == []
        assert facade.get_line_item(item.id).unbalance.marked_by == "reviewer-7"
        assert facade.validate_audit_chain() is True

    def test_state_survives_across_operations(self, facade, project_id):
        item = _import(facade, project_id)
        facade.add_or_update_quantity(item.id, "plan_summary", "90", "cy")

        sources = [r.source for r in facade.list_quantities(item.id)]

        assert sources == [QuantitySource.EBSX_IMPORT, QuantitySource.PLAN_SUMMARY]


class TestPricingNotification:

    def test_import_does_not_notify(self, facade, pricing, project_id):
        _import(facade, project_id)

        assert pricing.calls == []

    def test_non_governing_add_does_not_notify(self, facade, pricing, project_id):
        item = _import(facade, project_id)

        result = facade.add_or_update_quantity(item.id, "plan_summary", "90", "CY")

        assert result.recalculation.status == RecalculationStatus.NOT_REQUIRED
        assert pricing.calls == []

    def test_governing_change_notifies(self, facade, pricing, project_id):
        item = _import(facade, project_id)
        record = facade.add_or_update_quantity(item.id, "contractor_takeoff", "140", "CY").value

        result = facade.set_governing_source(item.id, record.id)

        assert result.recalculation.status == RecalculationStatus.SUCCEEDED
        assert result.recalculation.line_item_ids == (item.id,)
        assert pricing.calls == [(project_id, (item.id,))]

    def test_reselecting_same_governing_does_not_notify(self, facade, pricing, project_id):
        item = _import(facade, project_id)
        ebsx = facade.list_quantities(item.id)[0]

        result = facade.set_governing_source(item.id, ebsx.id)

        assert result.recalculation.status == RecalculationStatus.NOT_REQUIRED
        assert pricing.calls == []

    def test_governing_quantity_edit_notifies(self, facade, pricing, project_id):
        item = _import(facade, project_id)
        _take_off(facade, item, "140")
        pricing.calls.clear()

        result = facade.add_or_update_quantity(item.id, "contractor_takeoff", "150", "CY")

        assert result.recalculation.status == RecalculationStatus.SUCCEEDED
        assert len(pricing.calls) == 1

    def test_delete_does_not_notify(self, facade, pricing, project_id):
        item = _import(facade, project_id)
        plan = facade.add_or_update_quantity(item.id, "plan_summary", "90", "CY").value

        result = facade.delete_quantity(item.id, plan.id)

        assert result.recalculation.status == RecalculationStatus.NOT_REQUIRED
        assert pricing.calls == []

    def test_mark_and_clear_notify(self, facade, pricing, project_id):
        item = _import(facade, project_id)

        facade.mark_unbalanced(item.id, "LONG", "bidder knows the site", 70)
        facade.clear_unbalanced(item.id)

        assert len(pricing.calls) == 2

    def test_no_collaborator_means_not_required(self, session_factory, config, clock, project_id):
        facade = BidGovernanceService(session_factory, config=config, clock=clock)
        item = _import(facade, project_id)

        result = facade.mark_unbalanced(item.id, "LONG", "bidder knows the site", 70)

        assert result.recalculation.status == RecalculationStatus.NOT_REQUIRED


class TestPricingFailure:

    def test_failure_is_reported_not_raised(self, failing_facade, failing_pricing, project_id):
        item = _import(failing_facade, project_id)

        result = failing_facade.mark_unbalanced(
            item.id, "SHORT", "takeoff confirmed by field survey", 90,
        )

        assert result.recalculation_failed
        assert result.recalculation.error_code == "PRICING_RECALCULATION_FAILED"
        assert "pricing service unavailable" in result.recalculation.error_message
        assert len(failing_pricing.calls) == 1

    def test_state_stays_committed(self, failing_facade, project_id):
        item = _import(failing_facade, project_id)

        failing_facade.mark_unbalanced(item.id, "SHORT", "takeoff confirmed", 90)

        assert failing_facade.get_line_item(item.id).unbalance.is_unbalanced

    def test_failure_is_audited_on_project(
        self, failing_facade, session_factory, clock, project_id,
    ):
        item = _import(failing_facade, project_id)
        failing_facade.mark_unbalanced(item.id, "SHORT", "takeoff confirmed", 90)

        with session_scope(session_factory) as session:
            trace = AuditorService(session, clock).get_trace(PROJECT_ENTITY, project_id)

        assert trace.actions == (AuditAction.PRICING_RECALCULATION_FAILED,)
        assert trace.entries[0].payload["line_item_ids"] == [str(item.id)]
        assert trace.entries[0].actor_id == "system"

    def test_failure_is_logged(self, failing_facade, captured_logs, project_id):
        item = _import(failing_facade, project_id)
        failing_facade.mark_unbalanced(item.id, "SHORT", "takeoff confirmed", 90)

        failures = [r for r in captured_logs() if r["message"] == "pricing_recalculation_failed"]

        assert len(failures) == 1
        assert failures[0]["level"] == "ERROR"
        assert failures[0]["line_item_id"] == str(item.id)

    def test_audit_write_failure_still_reported(
        self, failing_facade, captured_logs, monkeypatch, project_id,
    ):
        item = _import(failing_facade, project_id)

        def broken_audit(self, **kwargs):
            raise RuntimeError("audit store offline")

        monkeypatch.setattr(AuditorService, "record_pricing_failure", broken_audit)

        result = failing_facade.mark_unbalanced(item.id, "SHORT", "takeoff confirmed", 90)

        assert result.recalculation.status == RecalculationStatus.FAILED
        assert failing_facade.get_line_item(item.id).unbalance.is_unbalanced
        audit_failures = [
            r for r in captured_logs() if r["message"] == "pricing_failure_audit_failed"
        ]
        assert len(audit_failures) == 1
        assert audit_failures[0]["exc_message"] == "audit store offline"


class TestErrorsRollBack:

    def test_validation_error_propagates(self, facade, pricing, project_id):
        item = _import(facade, project_id)

        with pytest.raises(InvalidJustificationError):
            facade.mark_unbalanced(item.id, "SHORT", "too short", 90)

        assert facade.get_line_item(item.id).unbalance.status == UnbalanceStatus.NEUTRAL
        assert pricing.calls == []

    def test_huge_takeoff_is_classified(self, facade, project_id):
        item = _import(facade, project_id, base_quantity="1")
        _take_off(facade, item, "1E+25")

        variance = facade.get_variance(item.id)

        assert variance.direction == VarianceDirection.OVER
        assert variance.significance == VarianceSignificance.CRITICAL

    def test_oversized_quantity_rejected(self, facade, project_id):
        item = _import(facade, project_id)

        with pytest.raises(InvalidQuantityError):
            facade.add_or_update_quantity(item.id, "plan_summary", "1E+29", "CY")

        assert len(facade.list_quantities(item.id)) == 1

    def test_unit_mismatch_leaves_no_record(self, facade, project_id):
        item = _import(facade, project_id)

        with pytest.raises(UnitMismatchError):
            facade.add_or_update_quantity(item.id, "plan_summary", "90", "TON")

        assert len(facade.list_quantities(item.id)) == 1

    def test_unknown_item(self, facade):
        with pytest.raises(LineItemNotFoundError):
            facade.list_quantities(uuid4())


class TestConflictRetry:

    def test_transient_conflict_is_retried(self, facade, project_id, monkeypatch):
        item = _import(facade, project_id)
        original = GovernanceService.add_or_update_record
        attempts = []

        def flaky(self, *args, **kwargs):
            attempts.append(1)
            if len(attempts) == 1:
                raise StaleDataError("version mismatch")
            return original(self, *args, **kwargs)

        monkeypatch.setattr(GovernanceService, "add_or_update_record", flaky)

        result = facade.add_or_update_quantity(item.id, "plan_summary", "90", "CY")

        assert len(attempts) == 2
        assert result.value.quantity == Decimal("90")

    def test_exhausted_retries_raise(self, facade, config, project_id, monkeypatch):
        item = _import(facade, project_id)
        attempts = []

        def always_stale(self, *args, **kwargs):
            attempts.append(1)
            raise StaleDataError("version mismatch")

        monkeypatch.setattr(GovernanceService, "add_or_update_record", always_stale)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            facade.add_or_update_quantity(item.id, "plan_summary", "90", "CY")

        assert len(attempts) == config.retry.max_conflict_retries
        assert exc_info.value.attempts == config.retry.max_conflict_retries
        assert exc_info.value.entity_id == str(item.id)


class TestPriorityView:

    def test_ranks_and_alert_counts(self, facade, project_id):
        critical = _import(facade, project_id, "0203-01")
        major = _import(facade, project_id, "0301-04")
        bigger_major = _import(facade, project_id, "0401-02")
        quiet = _import(facade, project_id, "0501-01")
        _take_off(facade, critical, "140")
        _take_off(facade, major, "80")
        _take_off(facade, bigger_major, "125")
        _take_off(facade, quiet, "101")

        worklist = facade.list_actionable_items(project_id)

        assert [s.item_number for s in worklist] == ["0203-01", "0401-02", "0301-04"]
        assert [s.rank for s in worklist] == [1, 2, 3]
        assert facade.alert_counts(project_id) == {
            VarianceSignificance.CRITICAL: 1,
            VarianceSignificance.MAJOR: 2,
        }

    def test_other_projects_excluded(self, facade, project_id):
        other = _import(facade, uuid4())
        _take_off(facade, other, "200")

        assert facade.list_actionable_items(project_id) == []
