"""
SequenceService -- gap-tolerant, never-reused counters for entry numbers.

Responsibility:
    Hands out the integer behind every journal entry number
    (``JE-000042``).  One row per named counter in ``sequence_counters``;
    the row is locked for the rest of the caller's transaction while it is
    incremented.

Architecture position:
    Kernel > Services.  Called by LedgerStore.append_draft; seeded by
    ``db.engine.create_tables``.

Invariants enforced:
    - A value is handed out at most once.  Concurrent appenders queue on the
      counter row (FOR UPDATE on PostgreSQL, BEGIN IMMEDIATE on SQLite).
    - The increment commits or rolls back with the caller's transaction, so
      a refused append consumes nothing.  A discarded draft keeps its
      number; the gap is expected.

Failure modes:
    - IntegrityError: two first-ever allocations raced to create the row
      and the loser could not find it afterwards.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """Last value handed out for one named sequence."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Allocates sequence values inside the caller's transaction.

    Non-goals:
        - Does NOT commit; LedgerAPI owns the transaction.
        - Does NOT format entry numbers (LedgerStore applies prefix and width).
    """

    JOURNAL_ENTRY = "journal_entry"

    KNOWN_SEQUENCES: tuple[str, ...] = (JOURNAL_ENTRY,)

    def __init__(self, session: Session):
        self._session = session

    def _counter(self, name: str, lock: bool = False) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _create_counter(self, name: str) -> SequenceCounter:
        """Insert a zeroed counter, or lock the one a concurrent caller inserted."""
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            counter = self._counter(name, lock=True)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return counter

    def next_value(self, name: str) -> int:
        """
        Increment and return the named counter; the first value is 1.

        The counter row stays locked until the caller's transaction ends.
        """
        counter = self._counter(name, lock=True) or self._create_counter(name)
        counter.current_value += 1
        self._session.flush()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        """Last value handed out, or None when the counter does not exist."""
        counter = self._counter(name)
        return counter.current_value if counter is not None else None

    def initialize_sequences(self) -> None:
        """Create a zeroed row for every known sequence that lacks one."""
        for name in self.KNOWN_SEQUENCES:
            if self._counter(name) is None:
                self._session.add(SequenceCounter(name=name, current_value=0))
        self._session.flush()
