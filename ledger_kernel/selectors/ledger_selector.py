"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only aggregation over journal lines: per-account
    debit/credit sums, ledger-wide totals, and the general-ledger view of one
    account with a running balance.  The ledger is a derived view over
    JournalLines -- there are no stored balances anywhere in the system.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.

Invariants enforced:
    - Only POSTED lines count unless the caller asks for other statuses.
    - All sums are integer minor units in SQL, returned as Decimal.

Failure modes:
    - Returns zero totals when no lines match.
    - AccountNotFoundError from account_activity() for an unknown account.

Audit relevance:
    total_debits_credits() is the read-side check of the double-entry
    invariant; the fiscal year close refuses to run when it fails.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.balance import normalize
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from ledger_kernel.selectors.base import BaseSelector

POSTED_ONLY = (JournalEntryStatus.POSTED,)


@dataclass(frozen=True)
class LineTotals:
    """Debit and credit totals of a set of lines."""

    debit_total: Decimal
    credit_total: Decimal
    line_count: int = 0

    @property
    def net_debit(self) -> Decimal:
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class LedgerLine:
    """A single posted line in an account's general-ledger view."""

    journal_entry_id: UUID
    journal_line_id: UUID
    entry_number: str
    entry_date: date
    reference: str | None
    description: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


@dataclass(frozen=True)
class AccountLedger:
    """General-ledger view of one account over a date range."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    date_from: date | None
    date_to: date | None
    opening_balance: Decimal
    lines: tuple[LedgerLine, ...]
    closing_balance: Decimal

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)


class LedgerSelector(BaseSelector[JournalLine]):
    """
    Selector for line aggregation queries.

    Guarantees:
        - No stored balances.  Every figure is computed at query time.
        - Date bounds are inclusive and apply to JournalEntry.entry_date.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    @staticmethod
    def _date_conditions(date_from: date | None, date_to: date | None) -> list:
        conditions = []
        if date_from is not None:
            conditions.append(JournalEntry.entry_date >= date_from)
        if date_to is not None:
            conditions.append(JournalEntry.entry_date <= date_to)
        return conditions

    def sum_lines_for_account(
        self,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
        statuses: Iterable[JournalEntryStatus] = POSTED_ONLY,
    ) -> LineTotals:
        """
        Debit and credit totals of one account's own lines.

        Postconditions: Both totals are >= 0; (0, 0) when nothing matches.
        """
        row = self.session.execute(
            select(
                func.sum(JournalLine.debit).label("debit_total"),
                func.sum(JournalLine.credit).label("credit_total"),
                func.count(JournalLine.id).label("line_count"),
            )
            .select_from(JournalLine)
            .join(JournalEntry)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.status.in_(list(statuses)),
                *self._date_conditions(date_from, date_to),
            )
        ).one()

        return LineTotals(
            debit_total=row.debit_total or ZERO,
            credit_total=row.credit_total or ZERO,
            line_count=row.line_count,
        )

    def sums_by_account(
        self,
        account_ids: Iterable[UUID] | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> dict[UUID, LineTotals]:
        """
        Posted debit/credit totals per account in one grouped query.

        Accounts without matching lines are absent from the result.
        """
        query = (
            select(
                JournalLine.account_id,
                func.sum(JournalLine.debit).label("debit_total"),
                func.sum(JournalLine.credit).label("credit_total"),
                func.count(JournalLine.id).label("line_count"),
            )
            .join(JournalEntry)
            .where(
                JournalEntry.status == JournalEntryStatus.POSTED,
                *self._date_conditions(date_from, date_to),
            )
            .group_by(JournalLine.account_id)
        )

        if account_ids is not None:
            ids = list(account_ids)
            if not ids:
                return {}
            query = query.where(JournalLine.account_id.in_(ids))

        return {
            row.account_id: LineTotals(
                debit_total=row.debit_total or ZERO,
                credit_total=row.credit_total or ZERO,
                line_count=row.line_count,
            )
            for row in self.session.execute(query).all()
        }

    def total_debits_credits(self, as_of_date: date | None = None) -> LineTotals:
        """
        Total posted debits and credits across all accounts.

        For a sound ledger debit_total == credit_total.
        """
        row = self.session.execute(
            select(
                func.sum(JournalLine.debit).label("debit_total"),
                func.sum(JournalLine.credit).label("credit_total"),
                func.count(JournalLine.id).label("line_count"),
            )
            .select_from(JournalLine)
            .join(JournalEntry)
            .where(
                JournalEntry.status == JournalEntryStatus.POSTED,
                *self._date_conditions(None, as_of_date),
            )
        ).one()

        return LineTotals(
            debit_total=row.debit_total or ZERO,
            credit_total=row.credit_total or ZERO,
            line_count=row.line_count,
        )

    def account_activity(
        self,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> AccountLedger:
        """
        General-ledger view of one account.

        The opening balance is the account's opening balance plus posted
        movement before date_from; each line carries the running balance in
        the account's normal direction.

        Raises:
            AccountNotFoundError: If the account doesn't exist.
        """
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))

        opening = account.opening_balance
        if date_from is not None:
            before = self.sum_lines_for_account(
                account_id, date_to=date_from - timedelta(days=1)
            )
            opening += normalize(account.account_type, before.debit_total, before.credit_total)

        rows = self.session.execute(
            select(JournalLine, JournalEntry)
            .join(JournalLine.entry)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.status == JournalEntryStatus.POSTED,
                *self._date_conditions(date_from, date_to),
            )
            .order_by(JournalEntry.entry_date, JournalEntry.seq, JournalLine.line_seq)
        ).all()

        running = opening
        lines = []
        for line, entry in rows:
            running += normalize(account.account_type, line.debit, line.credit)
            lines.append(
                LedgerLine(
                    journal_entry_id=entry.id,
                    journal_line_id=line.id,
                    entry_number=entry.entry_number,
                    entry_date=entry.entry_date,
                    reference=entry.reference,
                    description=line.description or entry.description,
                    debit=line.debit,
                    credit=line.credit,
                    running_balance=running,
                )
            )

        return AccountLedger(
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            account_type=account.account_type.value,
            date_from=date_from,
            date_to=date_to,
            opening_balance=opening,
            lines=tuple(lines),
            closing_balance=running,
        )
