"""
Typed Exception Hierarchy for the Bid Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Estimators, import jobs and the pricing UI all react to governance errors.
They must be able to do so by TYPE and by CODE, never by parsing messages:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.add_or_update_quantity(item_id, QuantitySource.PLAN_SUMMARY,
                                       "120", "CY")
    except UnitMismatchError as e:
        api_response(code=e.code, expected=e.expected_unit,
                     provided=e.provided_unit)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BidKernelError (base)
    |
    +-- QuantityValidationError
    |   +-- InvalidQuantityError
    |   +-- UnitMismatchError
    |   +-- InvalidRecordConfidenceError
    |   +-- UnknownQuantitySourceError
    |
    +-- GovernanceError
    |   +-- LineItemNotFoundError
    |   +-- QuantityRecordNotFoundError
    |   +-- ImmutableSourceError
    |   |   +-- CannotDeleteImmutableSourceError
    |   +-- CannotDeleteGoverningError
    |   +-- GoverningInvariantError
    |
    +-- UnbalanceError
    |   +-- InvalidUnbalanceDirectionError
    |   +-- InvalidJustificationError
    |   +-- InvalidConfidenceError
    |   +-- NotUnbalancedError
    |   +-- InvalidUnbalanceTransitionError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- PricingError
        +-- PricingRecalculationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                           | When Raised
----------------|--------------------------------|--------------------------------------
Quantity        | INVALID_QUANTITY               | Negative, NaN or unparseable quantity
                | UNIT_MISMATCH                  | Record unit differs from line item
                | INVALID_RECORD_CONFIDENCE      | Record confidence outside 0-100
                | UNKNOWN_QUANTITY_SOURCE        | Source outside the closed set
----------------|--------------------------------|--------------------------------------
Governance      | LINE_ITEM_NOT_FOUND            | Line item ID doesn't exist
                | NOT_FOUND                      | Record missing or on another item
                | IMMUTABLE_SOURCE               | Write aimed at the EBSX import
                | CANNOT_DELETE_IMMUTABLE_SOURCE | Delete aimed at the EBSX import
                | CANNOT_DELETE_GOVERNING        | Delete aimed at the governing record
                | GOVERNING_INVARIANT_VIOLATED   | Zero or several governing records
----------------|--------------------------------|--------------------------------------
Unbalance       | INVALID_UNBALANCE_DIRECTION    | Direction not SHORT or LONG
                | INVALID_JUSTIFICATION          | Justification under 10 characters
                | INVALID_CONFIDENCE             | Confidence outside 50-100
                | NOT_UNBALANCED                 | Clear requested on a neutral item
                | INVALID_UNBALANCE_TRANSITION   | Transition absent from the table
----------------|--------------------------------|--------------------------------------
Concurrency     | CONCURRENCY_CONFLICT           | Retries exhausted on a contended item
----------------|--------------------------------|--------------------------------------
Immutability    | IMMUTABILITY_VIOLATION         | ORM write to a protected row
----------------|--------------------------------|--------------------------------------
Audit           | AUDIT_CHAIN_BROKEN             | Hash chain validation failed
----------------|--------------------------------|--------------------------------------
Pricing         | PRICING_RECALCULATION_FAILED   | Pricing collaborator raised

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ImmutableSourceError covers both edit and delete attempts on the EBSX
   import. Catch CannotDeleteImmutableSourceError to single out deletes.

2. ConcurrencyError is the only category a caller should retry; the
   governance facade already retries internally before raising it.

3. PricingRecalculationError is never raised out of the facade. It is
   captured into the operation result because the governance write has
   already committed when pricing runs.

===============================================================================
"""


class BidKernelError(Exception):
    """
    Base exception for all bid kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BID_KERNEL_ERROR"


# Quantity validation exceptions


class QuantityValidationError(BidKernelError):
    """Base exception for quantity record validation errors."""

    code: str = "QUANTITY_VALIDATION_ERROR"


class InvalidQuantityError(QuantityValidationError):
    """Quantity is negative, not finite, or cannot be parsed as a decimal."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object, reason: str):
        self.quantity = str(quantity)
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity!r}: {reason}")


class UnitMismatchError(QuantityValidationError):
    """Quantity record unit does not match the line item's unit."""

    code: str = "UNIT_MISMATCH"

    def __init__(self, line_item_id: str, expected_unit: str, provided_unit: str):
        self.line_item_id = line_item_id
        self.expected_unit = expected_unit
        self.provided_unit = provided_unit
        super().__init__(
            f"Unit mismatch on line item {line_item_id}: "
            f"expected {expected_unit!r}, got {provided_unit!r}"
        )


class InvalidRecordConfidenceError(QuantityValidationError):
    """Source confidence on a quantity record is outside 0-100."""

    code: str = "INVALID_RECORD_CONFIDENCE"

    def __init__(self, confidence: int):
        self.confidence = confidence
        super().__init__(
            f"Record confidence {confidence} is outside the range 0-100"
        )


class UnknownQuantitySourceError(QuantityValidationError):
    """Source is not one of the known quantity sources."""

    code: str = "UNKNOWN_QUANTITY_SOURCE"

    def __init__(self, source: object):
        self.source = str(source)
        super().__init__(f"Unknown quantity source {source!r}")


# Governance exceptions


class GovernanceError(BidKernelError):
    """Base exception for quantity governance errors."""

    code: str = "GOVERNANCE_ERROR"


class LineItemNotFoundError(GovernanceError):
    """Line item does not exist."""

    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, line_item_id: str):
        self.line_item_id = line_item_id
        super().__init__(f"Line item not found: {line_item_id}")


class QuantityRecordNotFoundError(GovernanceError):
    """Quantity record does not exist or belongs to another line item."""

    code: str = "NOT_FOUND"

    def __init__(self, line_item_id: str, record_id: str):
        self.line_item_id = line_item_id
        self.record_id = record_id
        super().__init__(
            f"Quantity record {record_id} not found on line item {line_item_id}"
        )


class ImmutableSourceError(GovernanceError):
    """The EBSX import record cannot be edited through the engine."""

    code: str = "IMMUTABLE_SOURCE"

    def __init__(self, line_item_id: str, source: str, operation: str = "edit"):
        self.line_item_id = line_item_id
        self.source = source
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {source} record on line item {line_item_id}: "
            "the bid import quantity is immutable"
        )


class CannotDeleteImmutableSourceError(ImmutableSourceError):
    """The EBSX import record cannot be deleted."""

    code: str = "CANNOT_DELETE_IMMUTABLE_SOURCE"

    def __init__(self, line_item_id: str, source: str):
        super().__init__(line_item_id, source, operation="delete")


class CannotDeleteGoverningError(GovernanceError):
    """The governing record cannot be deleted; promote another one first."""

    code: str = "CANNOT_DELETE_GOVERNING"

    def __init__(self, line_item_id: str, record_id: str, source: str):
        self.line_item_id = line_item_id
        self.record_id = record_id
        self.source = source
        super().__init__(
            f"Cannot delete governing {source} record {record_id} on line item "
            f"{line_item_id}: set another source as governing first"
        )


class GoverningInvariantError(GovernanceError):
    """A line item with records does not have exactly one governing record."""

    code: str = "GOVERNING_INVARIANT_VIOLATED"

    def __init__(self, line_item_id: str, governing_count: int):
        self.line_item_id = line_item_id
        self.governing_count = governing_count
        super().__init__(
            f"Line item {line_item_id} has {governing_count} governing "
            "records, expected exactly 1"
        )


# Unbalance workflow exceptions


class UnbalanceError(BidKernelError):
    """Base exception for unbalance workflow errors."""

    code: str = "UNBALANCE_ERROR"


class InvalidUnbalanceDirectionError(UnbalanceError):
    """Unbalance direction must be SHORT or LONG."""

    code: str = "INVALID_UNBALANCE_DIRECTION"

    def __init__(self, direction: object):
        self.direction = str(direction)
        super().__init__(
            f"Invalid unbalance direction {direction!r}: expected SHORT or LONG"
        )


class InvalidJustificationError(UnbalanceError):
    """Justification is missing or shorter than the minimum length."""

    code: str = "INVALID_JUSTIFICATION"

    def __init__(self, length: int, minimum: int):
        self.length = length
        self.minimum = minimum
        super().__init__(
            f"Justification must be at least {minimum} characters, got {length}"
        )


class InvalidConfidenceError(UnbalanceError):
    """Reviewer confidence is outside the accepted range."""

    code: str = "INVALID_CONFIDENCE"

    def __init__(self, confidence: int, minimum: int, maximum: int):
        self.confidence = confidence
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"Confidence {confidence} is outside the range {minimum}-{maximum}"
        )


class NotUnbalancedError(UnbalanceError):
    """Clear requested on a line item that is not unbalanced."""

    code: str = "NOT_UNBALANCED"

    def __init__(self, line_item_id: str):
        self.line_item_id = line_item_id
        super().__init__(f"Line item {line_item_id} is not marked unbalanced")


class InvalidUnbalanceTransitionError(UnbalanceError):
    """Transition is not present in the unbalance transition table."""

    code: str = "INVALID_UNBALANCE_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid unbalance transition from {from_status} to {to_status}"
        )


# Concurrency-related exceptions


class ConcurrencyError(BidKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Concurrent writers kept conflicting on the same line item."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrency conflict on {entity_type} {entity_id}: "
            f"gave up after {attempts} attempts"
        )


# Immutability-related exceptions


class ImmutabilityError(BidKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable row.

    EBSX import quantities and AuditEvent rows are protected at the ORM
    level, underneath the governance engine's own checks.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit-related exceptions


class AuditError(BidKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Pricing collaborator exceptions


class PricingError(BidKernelError):
    """Base exception for pricing collaborator errors."""

    code: str = "PRICING_ERROR"


class PricingRecalculationError(PricingError):
    """The pricing collaborator failed to recalculate unit prices."""

    code: str = "PRICING_RECALCULATION_FAILED"

    def __init__(self, project_id: str, reason: str):
        self.project_id = project_id
        self.reason = reason
        super().__init__(
            f"Pricing recalculation failed for project {project_id}: {reason}"
        )

