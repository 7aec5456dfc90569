"""
SequenceService -- gap-tolerant, strictly increasing audit sequence numbers.

Responsibility:
    Hands out the ``seq`` of each audit event from a named counter row.
    The row is read ``FOR UPDATE`` so two writers on Postgres serialize on
    it instead of both reading the same maximum.

Architecture position:
    Kernel > Services -- infrastructure for AuditorService.

Invariants enforced:
    - Values only come from the counter row; ``max(seq) + 1`` is never used.
    - An allocation is visible only once the caller commits; a rollback
      gives the value back.

Failure modes:
    - IntegrityError when two first writers both insert the counter row.
      The governance facade retries the whole operation.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from bid_kernel.logging_config import get_logger
from bid_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Named counters.  Never commits."""

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def _counter(self, name: str, *, lock: bool) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def next_value(self, name: str) -> int:
        """Increment ``name`` and return the new value (first value is 1)."""
        counter = self._counter(name, lock=True)
        if counter is None:
            counter = SequenceCounter(name=name, current_value=0)
            self._session.add(counter)

        counter.current_value += 1
        self._session.flush()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        counter = self._counter(name, lock=False)
        return counter.current_value if counter else None
