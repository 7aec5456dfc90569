"""
Pytest fixtures for the bid governance test suite.

Provides:
- A fresh in-memory SQLite database per test
- Kernel services wired to a shared session and a deterministic clock
- A facade wired to the session factory, with fake pricing collaborators
- Captured structured logs
"""

import json
import logging
from collections.abc import Generator, Sequence
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from bid_config import get_active_config
from bid_engines.strategy import UnbalancingStrategyAdvisor
from bid_engines.variance import VarianceClassifier
from bid_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from bid_kernel.domain.clock import DeterministicClock
from bid_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from bid_kernel.services.auditor_service import AuditorService
from bid_kernel.services.governance_service import GovernanceService
from bid_kernel.services.unbalance_service import UnbalanceService
from bid_services import BidGovernanceService

TEST_ACTOR_ID = "estimator-1"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture bid_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, governance):
            governance.import_line_item(...)
            logs = captured_logs()
            assert any(r["message"] == "line_item_imported" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("bid_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with all tables."""
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session for kernel-level tests.  Tests flush; the fixture rolls back."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


# =============================================================================
# Kernel fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def classifier() -> VarianceClassifier:
    return VarianceClassifier()


@pytest.fixture
def advisor() -> UnbalancingStrategyAdvisor:
    return UnbalancingStrategyAdvisor()


@pytest.fixture
def auditor(session, clock) -> AuditorService:
    return AuditorService(session, clock)


@pytest.fixture
def governance(session, classifier, auditor, clock) -> GovernanceService:
    return GovernanceService(session, classifier, auditor, clock)


@pytest.fixture
def unbalance(session, auditor, clock) -> UnbalanceService:
    return UnbalanceService(session, auditor, clock)


@pytest.fixture
def project_id() -> UUID:
    return uuid4()


@pytest.fixture
def line_item(governance, project_id):
    """A 100 CY excavation item with its EBSX baseline."""
    return governance.import_line_item(
        project_id=project_id,
        item_number="0203-01",
        description="Roadway excavation",
        unit="CY",
        base_quantity=Decimal("100"),
        unit_price=Decimal("12.50"),
        line_number=1,
        actor_id=TEST_ACTOR_ID,
    )


# =============================================================================
# Facade fixtures
# =============================================================================


class RecordingPricingRecalculator:
    """Pricing collaborator that records every call."""

    def __init__(self):
        self.calls: list[tuple[UUID, tuple[UUID, ...]]] = []

    def recalculate(self, project_id: UUID, line_item_ids: Sequence[UUID]) -> None:
        self.calls.append((project_id, tuple(line_item_ids)))


class FailingPricingRecalculator(RecordingPricingRecalculator):
    """Pricing collaborator that records the call and then fails."""

    def recalculate(self, project_id: UUID, line_item_ids: Sequence[UUID]) -> None:
        super().recalculate(project_id, line_item_ids)
        raise RuntimeError("pricing service unavailable")


@pytest.fixture
def pricing() -> RecordingPricingRecalculator:
    return RecordingPricingRecalculator()


@pytest.fixture
def failing_pricing() -> FailingPricingRecalculator:
    return FailingPricingRecalculator()


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def facade(session_factory, config, pricing, clock) -> BidGovernanceService:
    return BidGovernanceService(session_factory, config=config, pricing=pricing, clock=clock)


@pytest.fixture
def failing_facade(session_factory, config, failing_pricing, clock) -> BidGovernanceService:
    return BidGovernanceService(
        session_factory, config=config, pricing=failing_pricing, clock=clock,
    )
