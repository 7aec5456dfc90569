"""Services for the bid kernel (write side)."""

from bid_kernel.services.auditor_service import AuditorService, AuditTrace
from bid_kernel.services.governance_service import (
    GovernanceService,
    GoverningChange,
    QuantityWrite,
)
from bid_kernel.services.sequence_service import SequenceService
from bid_kernel.services.unbalance_service import UnbalanceService

__all__ = [
    "AuditorService",
    "AuditTrace",
    "GovernanceService",
    "GoverningChange",
    "QuantityWrite",
    "SequenceService",
    "UnbalanceService",
]
