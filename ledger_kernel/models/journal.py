"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines -- the
    authoritative record from which every balance is derived.
Architecture position: Kernel > Models.  May import from db/ and
    models/account.py.

Invariants enforced:
    - seq and entry_number are unique; numbers are never reused.
    - Each line has exactly one nonzero side, both sides non-negative
      (LedgerStore validation plus ck_journal_line_one_side).
    - Debits == credits per entry (LedgerStore / PostingService).
    - After POSTED, content is immutable; only the POSTED -> VOID transition
      with its void_* columns is allowed (db/immutability.py).

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of a posted or void entry
      or any of its lines.
    - IntegrityError on duplicate seq/entry_number.

Audit relevance:
    JournalEntry and JournalLine rows are the only financial facts the ledger
    stores.  Corrections are new entries (reversals) or a void marker, never
    edits.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import ZERO, MoneyCents
from ledger_kernel.models.account import enum_column

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    Contract: DRAFT -> POSTED -> VOID.  No backward transitions.
    """

    DRAFT = "draft"
    POSTED = "posted"
    VOID = "void"


class EntrySource(str, Enum):
    """Which part of the back office produced the entry."""

    MANUAL = "manual"
    SALES = "sales"
    EXPENSE = "expense"
    PURCHASE = "purchase"
    REFUND = "refund"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"
    CLOSING = "closing"
    RECURRING = "recurring"


# Columns the POSTED -> VOID transition may set
VOID_TRANSITION_FIELDS = frozenset(
    {"status", "void_reason", "voided_by_id", "voided_at"}
)


class JournalEntry(TrackedBase):
    """
    Journal entry header -- the atomic unit of double-entry accounting.

    Contract:
        Header plus at least two lines whose debits equal credits.  Once
        status is POSTED, content never changes; VOID only marks it.

    Guarantees:
        - entry_number is "<prefix>-<zero padded seq>", allocated at append.
        - posted_by_id/posted_at are set iff the entry was posted.
        - void_reason is set iff status is VOID.

    Non-goals:
        - Balance is not enforced at the ORM level; is_balanced is a
          read-side convenience.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_journal_seq"),
        UniqueConstraint("entry_number", name="uq_journal_entry_number"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_source", "source"),
        Index("idx_journal_reversal_of", "reversal_of_id"),
    )

    # Monotonic sequence value behind entry_number
    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    entry_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )

    # Accounting date (drives fiscal year assignment)
    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    status: Mapped[JournalEntryStatus] = mapped_column(
        enum_column(JournalEntryStatus, length=10),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    source: Mapped[EntrySource] = mapped_column(
        enum_column(EntrySource),
        default=EntrySource.MANUAL,
        nullable=False,
    )

    # Collaborator back-reference (e.g. "sale", "<sale id>")
    source_type: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    source_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    # If this is a reversal, points to the original entry
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    voided_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    void_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    # Relationships
    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_seq",
        lazy="selectin",
    )

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} status={self.status.value}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        """Read-side convenience; enforcement lives in LedgerStore."""
        return self.total_debits == self.total_credits


class JournalLine(TrackedBase):
    """
    Individual debit or credit line within a journal entry.

    Contract:
        Exactly one of debit/credit is nonzero; both are non-negative.
        Immutable once the parent entry leaves DRAFT.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_seq", name="uq_journal_line_seq"),
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
        CheckConstraint("debit >= 0 AND credit >= 0", name="ck_journal_line_non_negative"),
        CheckConstraint(
            "(debit = 0 AND credit > 0) OR (debit > 0 AND credit = 0)",
            name="ck_journal_line_one_side",
        ),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    # Position within the entry
    line_seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    debit: Mapped[Decimal] = mapped_column(
        MoneyCents(),
        default=ZERO,
        nullable=False,
    )

    credit: Mapped[Decimal] = mapped_column(
        MoneyCents(),
        default=ZERO,
        nullable=False,
    )

    # Relationships
    entry: Mapped["JournalEntry"] = relationship(
        back_populates="lines",
    )

    account: Mapped["Account"] = relationship(
        back_populates="journal_lines",
    )

    def __repr__(self) -> str:
        return f"<JournalLine {self.account_id} Dr {self.debit} Cr {self.credit}>"
