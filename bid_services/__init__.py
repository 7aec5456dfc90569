"""
bid_services -- Package init and public API.

Responsibility:
    The operation-oriented external interface of quantity governance.
    This is the **only** layer that commits transactions and talks to the
    pricing collaborator.

Architecture position:
    Services -- stateful orchestration over engines + kernel + config.

    Dependency direction:
        bid_services/ -> bid_config/, bid_engines/, bid_kernel/  (allowed)
        bid_engines/  -> bid_services/                           (FORBIDDEN)
        bid_kernel/   -> bid_services/                           (FORBIDDEN)

Audit relevance:
    - This package is the canonical import surface for external consumers.
      Changes to __all__ must be reviewed for backwards-compatibility.
"""

from bid_services.governance import BidGovernanceService
from bid_services.pricing import (
    OperationResult,
    PricingRecalculator,
    RecalculationOutcome,
    RecalculationStatus,
)

__all__ = [
    "BidGovernanceService",
    "OperationResult",
    "PricingRecalculator",
    "RecalculationOutcome",
    "RecalculationStatus",
]
