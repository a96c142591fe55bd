"""
Module: ledger_kernel.models.recurring
Responsibility: ORM persistence for recurring journal entry templates (rent,
    subscriptions, depreciation) that generate a posted entry on a schedule.
Architecture position: Kernel > Models.  May import from db/ and
    models/account.py, models/journal.py.

Invariants enforced:
    - Template lines follow the journal line rules: one nonzero side,
      non-negative, debits == credits (RecurringService).
    - next_run_date only moves forward.

Audit relevance:
    Generated entries carry source=recurring and
    source_type/source_id pointing back at the template.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import ZERO, MoneyCents
from ledger_kernel.models.account import enum_column

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class RecurringTemplate(TrackedBase):
    """
    Schedule plus balanced line set for a repeating journal entry.

    Contract:
        A template is due on ``as_of`` when it is active, next_run_date <=
        as_of, as_of is not past end_date, and max_occurrences (if set) has
        not been reached.
    """

    __tablename__ = "recurring_templates"

    __table_args__ = (
        Index("idx_recurring_next_run", "is_active", "next_run_date"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    frequency: Mapped[RecurringFrequency] = mapped_column(
        enum_column(RecurringFrequency, length=10),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    end_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    next_run_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    last_run_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    occurrences: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    max_occurrences: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    lines: Mapped[list["RecurringTemplateLine"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="RecurringTemplateLine.line_seq",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<RecurringTemplate {self.name} {self.frequency.value} next={self.next_run_date}>"

    @property
    def total_amount(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    def is_due(self, as_of: date) -> bool:
        if not self.is_active:
            return False
        if self.end_date is not None and as_of > self.end_date:
            return False
        if self.max_occurrences is not None and self.occurrences >= self.max_occurrences:
            return False
        return as_of >= self.next_run_date


class RecurringTemplateLine(TrackedBase):
    __tablename__ = "recurring_template_lines"

    template_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("recurring_templates.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

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

    template: Mapped["RecurringTemplate"] = relationship(
        back_populates="lines",
    )

    account: Mapped["Account"] = relationship()
