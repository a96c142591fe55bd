"""
Module: ledger_kernel.models.fiscal_year
Responsibility: ORM persistence for fiscal years -- the accounting windows
    that gate posting and are closed into retained earnings at year end.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - name is unique; [start_date, end_date] is inclusive and does not
      intersect any other year (FiscalYearService).
    - Closing is one-directional: a closed year is never reopened and no
      column of a closed year changes (db/immutability.py).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE of a closed year.

Audit relevance:
    closed_by_id, closed_at and closing_entry_id record who closed the year
    and which journal entry moved its income and expense into retained
    earnings.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString

# Columns the open -> closed transition may set
CLOSE_TRANSITION_FIELDS = frozenset(
    {"is_closed", "closed_at", "closed_by_id", "closing_entry_id"}
)


class FiscalYear(TrackedBase):
    """
    Fiscal year window.

    Contract:
        A date belongs to at most one fiscal year.  Entries dated inside a
        closed year cannot be posted, voided or created.

    Guarantees:
        - start_date <= end_date.
        - closed_at/closed_by_id are set iff is_closed.
    """

    __tablename__ = "fiscal_years"

    __table_args__ = (
        UniqueConstraint("name", name="uq_fiscal_year_name"),
        Index("idx_fiscal_year_dates", "start_date", "end_date"),
        CheckConstraint("start_date <= end_date", name="ck_fiscal_year_range"),
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # Inclusive
    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    is_closed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # Set only when the close needed an entry
    closing_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"<FiscalYear {self.name} {self.start_date}..{self.end_date} {state}>"

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
