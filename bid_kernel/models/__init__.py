"""ORM models for the bid kernel."""

from bid_kernel.models.audit_event import AuditAction, AuditEvent
from bid_kernel.models.line_item import LineItemModel
from bid_kernel.models.quantity_record import QuantityRecordModel
from bid_kernel.models.sequence import SequenceCounter

__all__ = [
    "AuditAction",
    "AuditEvent",
    "LineItemModel",
    "QuantityRecordModel",
    "SequenceCounter",
]
