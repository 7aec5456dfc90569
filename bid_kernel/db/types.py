"""
Module: bid_kernel.db.types
Responsibility: Decimal and unit helpers shared by models and services.
    Centralizes parsing so every quantity is stored and compared the same way.
Architecture position: Kernel > DB.  May be imported by models/, services/,
    and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for quantities.  parse_quantity() goes through str() so a
      float argument keeps its shortest repr instead of its binary expansion.
    - Units compare case-insensitively with surrounding whitespace ignored.

Failure modes:
    - InvalidQuantityError for negative, NaN, infinite or unparseable input,
      and for values too large for a Numeric(38, 9) column.
"""

from decimal import Decimal, InvalidOperation

from bid_kernel.exceptions import InvalidQuantityError

# Numeric(38, 9) keeps 29 integer digits
MAX_QUANTITY = Decimal("1E29")


def parse_quantity(value: Decimal | int | float | str) -> Decimal:
    """
    Convert user or import input to a non-negative finite Decimal.

    Raises:
        InvalidQuantityError: If the value cannot be parsed, is not finite,
            is negative, or does not fit a Numeric(38, 9) column.
    """
    if isinstance(value, bool):
        raise InvalidQuantityError(value, "booleans are not quantities")
    try:
        quantity = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidQuantityError(value, "not a decimal number") from exc
    if not quantity.is_finite():
        raise InvalidQuantityError(value, "quantity must be finite")
    if quantity < 0:
        raise InvalidQuantityError(value, "quantity must be >= 0")
    if quantity >= MAX_QUANTITY:
        raise InvalidQuantityError(value, "quantity exceeds 29 integer digits")
    return quantity


def normalize_unit(unit: str) -> str:
    """Canonical form used when comparing units of measure."""
    return unit.strip().upper()
