"""
Unbalance domain types (``bid_kernel.domain.unbalance``).

Responsibility
--------------
The reviewer-driven unbalance workflow as pure data: directions, the
two-state lifecycle with its transition table, the embedded state snapshot,
the advisor's recommendation, and the validation rules a marking must pass.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``UNBALANCE_TRANSITIONS`` defines the only valid status transitions.
  Re-marking an unbalanced item is the UNBALANCED -> UNBALANCED edge.
* ``validate_marking`` checks every input before any state is touched:
  direction in {SHORT, LONG}, stripped justification of at least
  ``MIN_JUSTIFICATION_LENGTH`` characters, confidence within
  ``MIN_CONFIDENCE``..``MAX_CONFIDENCE`` inclusive.
* ``UnbalanceState`` is consistent: direction and justification are set
  exactly when ``is_unbalanced`` is true.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from bid_kernel.exceptions import (
    InvalidConfidenceError,
    InvalidJustificationError,
    InvalidUnbalanceDirectionError,
    InvalidUnbalanceTransitionError,
)

MIN_JUSTIFICATION_LENGTH = 10
MIN_CONFIDENCE = 50
MAX_CONFIDENCE = 100


class UnbalanceDirection(str, Enum):
    """Strategic pricing direction for an unbalanced line item.

    SHORT lowers the unit price to limit exposure on an expected overrun.
    LONG raises it so the item is paid early.
    """

    SHORT = "short"
    LONG = "long"


class UnbalanceStatus(str, Enum):
    NEUTRAL = "neutral"
    UNBALANCED = "unbalanced"


UNBALANCE_TRANSITIONS: dict[UnbalanceStatus, frozenset[UnbalanceStatus]] = {
    UnbalanceStatus.NEUTRAL: frozenset({UnbalanceStatus.UNBALANCED}),
    UnbalanceStatus.UNBALANCED: frozenset({
        UnbalanceStatus.UNBALANCED,
        UnbalanceStatus.NEUTRAL,
    }),
}


def check_transition(current: UnbalanceStatus, target: UnbalanceStatus) -> None:
    if target not in UNBALANCE_TRANSITIONS[current]:
        raise InvalidUnbalanceTransitionError(current.value, target.value)


def parse_direction(direction: UnbalanceDirection | str) -> UnbalanceDirection:
    """Accept an enum member or its name/value in any case."""
    if isinstance(direction, UnbalanceDirection):
        return direction
    if isinstance(direction, str):
        try:
            return UnbalanceDirection(direction.strip().lower())
        except ValueError:
            pass
    raise InvalidUnbalanceDirectionError(direction)


def validate_marking(
    direction: UnbalanceDirection | str,
    justification: str | None,
    confidence: int,
) -> tuple[UnbalanceDirection, str]:
    """Validate a marking request and return the normalized direction and text.

    Raises:
        InvalidUnbalanceDirectionError: direction is not SHORT or LONG.
        InvalidJustificationError: stripped justification is too short.
        InvalidConfidenceError: confidence is outside the accepted range.
    """
    parsed = parse_direction(direction)

    text = (justification or "").strip()
    if len(text) < MIN_JUSTIFICATION_LENGTH:
        raise InvalidJustificationError(len(text), MIN_JUSTIFICATION_LENGTH)

    if (
        isinstance(confidence, bool)
        or not isinstance(confidence, int)
        or not MIN_CONFIDENCE <= confidence <= MAX_CONFIDENCE
    ):
        raise InvalidConfidenceError(confidence, MIN_CONFIDENCE, MAX_CONFIDENCE)

    return parsed, text


@dataclass(frozen=True)
class UnbalanceState:
    """Unbalance decision embedded on a line item."""

    is_unbalanced: bool = False
    direction: UnbalanceDirection | None = None
    justification: str | None = None
    confidence: int | None = None
    marked_at: datetime | None = None
    cleared_at: datetime | None = None
    marked_by: str | None = None

    @property
    def status(self) -> UnbalanceStatus:
        if self.is_unbalanced:
            return UnbalanceStatus.UNBALANCED
        return UnbalanceStatus.NEUTRAL

    @property
    def is_consistent(self) -> bool:
        if self.is_unbalanced:
            return (
                self.direction is not None
                and self.justification is not None
                and self.confidence is not None
            )
        return (
            self.direction is None
            and self.justification is None
            and self.confidence is None
        )


@dataclass(frozen=True)
class StrategyRecommendation:
    """Advisory output of the unbalancing strategy advisor.

    ``strategy`` is None when no action is recommended.  Never persisted.
    """

    strategy: UnbalanceDirection | None
    rationale: str

    @property
    def is_actionable(self) -> bool:
        return self.strategy is not None
