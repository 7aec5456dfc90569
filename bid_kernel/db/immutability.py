"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Two kinds of rows must never be rewritten once they exist:

  - The EBSX import quantity of a line item.  It is the owner's bid quantity
    and the fallback reference for every variance.  GovernanceService already
    refuses to edit or delete it; these listeners catch any other code path
    that reaches the ORM (scripts, admin shells, future services).

  - Audit events.  The hash chain is only meaningful if rows are append-only.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _guard_*_update() ------> ImmutabilityViolationError
         |                                                 ^
         v                                                 |
    [before_delete event] --> _guard_*_delete() -----------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | What is frozen                              | Still mutable
----------------|---------------------------------------------|------------------------
QuantityRecord  | quantity, unit, source, line_item_id when   | is_governing, notes,
(EBSX import)   | source is ebsx_import; the row itself       | source_reference
AuditEvent      | everything, always                          | nothing

``is_governing`` stays mutable on the EBSX row because promoting another
source must be able to clear it, and promoting EBSX back must set it.

===============================================================================
USAGE
===============================================================================

init_engine_from_url() registers the listeners.  Registration is idempotent.

To temporarily disable (TESTS ONLY):

    from bid_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from bid_kernel.exceptions import ImmutabilityViolationError
from bid_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_EBSX_SOURCE = "ebsx_import"
_FROZEN_EBSX_FIELDS = ("quantity", "unit", "source", "line_item_id")

_QUANTITY_RECORD = "QuantityRecord"
_AUDIT_EVENT = "AuditEvent"


def _block(entity_type: str, target, operation: str, reason: str, **details) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            **details,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type, entity_id=str(target.id), reason=reason,
    )


def _was_ebsx(target) -> bool:
    """True if the row is, or was before this flush, an EBSX import record."""
    history = get_history(target, "source")
    seen = [*history.unchanged, *history.deleted, *history.added, target.source]
    return _EBSX_SOURCE in seen


def _guard_ebsx_update(mapper, connection, target):
    if not _was_ebsx(target):
        return
    changed = [f for f in _FROZEN_EBSX_FIELDS if get_history(target, f).has_changes()]
    if changed:
        _block(
            _QUANTITY_RECORD, target, "UPDATE",
            f"EBSX import quantities are immutable; attempted to change {', '.join(changed)}",
            fields=changed,
        )


def _guard_ebsx_delete(mapper, connection, target):
    if _was_ebsx(target):
        _block(_QUANTITY_RECORD, target, "DELETE", "EBSX import records cannot be deleted")


def _guard_audit_update(mapper, connection, target):
    _block(_AUDIT_EVENT, target, "UPDATE", "Audit events are append-only")


def _guard_audit_delete(mapper, connection, target):
    _block(_AUDIT_EVENT, target, "DELETE", "Audit events cannot be deleted")


def _listeners():
    from bid_kernel.models.audit_event import AuditEvent
    from bid_kernel.models.quantity_record import QuantityRecordModel

    return (
        (QuantityRecordModel, "before_update", _guard_ebsx_update),
        (QuantityRecordModel, "before_delete", _guard_ebsx_delete),
        (AuditEvent, "before_update", _guard_audit_update),
        (AuditEvent, "before_delete", _guard_audit_delete),
    )


def register_immutability_listeners() -> None:
    """Attach every guard.  Already-attached guards are skipped."""
    for target, event_name, guard in _listeners():
        if not event.contains(target, event_name, guard):
            event.listen(target, event_name, guard)


def unregister_immutability_listeners() -> None:
    """Detach every guard.  Tests only."""
    for target, event_name, guard in _listeners():
        if event.contains(target, event_name, guard):
            event.remove(target, event_name, guard)
