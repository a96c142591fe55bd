"""
Module: ledger_kernel.selectors.balance_selector
Responsibility: The balance calculator -- account balances (own and subtree),
    period activity for the year-end close, the trial balance, and the
    ledger-wide posted totals.
Architecture position: Kernel > Selectors.  Built on LedgerSelector's grouped
    sums plus the pure functions in domain/balance.py and
    domain/account_tree.py.

Invariants enforced:
    - balance = opening_balance + normalized posted movement, recomputed
      from source lines on every call.
    - A subtree balance visits each account once: one grouping pass over
      the flat account list plus one grouped-sum query, so each line is
      counted exactly once.
    - Trial balance totals are the sums of the debit and credit columns;
      is_balanced compares them exactly.

Failure modes:
    - AccountNotFoundError for an unknown account id.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.account_tree import subtree_ids
from ledger_kernel.domain.balance import normalize, split_net
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector, LineTotals

_NO_LINES = LineTotals(debit_total=ZERO, credit_total=ZERO)


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single row in a trial balance report."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    opening_balance: Decimal
    debit_total: Decimal
    credit_total: Decimal
    balance: Decimal
    debit_balance: Decimal
    credit_balance: Decimal


@dataclass(frozen=True)
class TrialBalance:
    as_of: date | None
    rows: tuple[TrialBalanceRow, ...]
    total_debit: Decimal
    total_credit: Decimal

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit

    @property
    def difference(self) -> Decimal:
        return self.total_debit - self.total_credit


class BalanceSelector(BaseSelector[Account]):
    """
    Balance calculator.

    Contract:
        Every figure is derived from posted journal lines (plus the opening
        balances fixed at account creation) at query time.

    Non-goals:
        - Draft and void entries never affect a balance.
        - No caching: callers needing many balances use trial_balance().
    """

    def __init__(self, session: Session):
        super().__init__(session)
        self._ledger = LedgerSelector(session)

    def _all_accounts(self) -> list[AccountInfo]:
        accounts = self.session.execute(select(Account)).scalars().all()
        return [AccountInfo.from_model(a) for a in accounts]

    def _get_account(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def own_balance_of(self, account_id: UUID, as_of: date | None = None) -> Decimal:
        """Opening balance plus the account's own posted lines (no children)."""
        account = self._get_account(account_id)
        totals = self._ledger.sum_lines_for_account(account_id, date_to=as_of)
        return account.opening_balance + normalize(
            account.account_type, totals.debit_total, totals.credit_total
        )

    def balance_of(self, account_id: UUID, as_of: date | None = None) -> Decimal:
        """
        Balance of the account's whole subtree as of a date (inclusive).

        Each account's lines are normalized by its own type; children share
        their parent's type, so the sum is in the parent's normal direction.
        """
        self._get_account(account_id)
        accounts = self._all_accounts()
        ids = subtree_ids(accounts, account_id)
        sums = self._ledger.sums_by_account(ids, date_to=as_of)

        balance = ZERO
        for account in accounts:
            if account.id not in ids:
                continue
            totals = sums.get(account.id, _NO_LINES)
            balance += account.opening_balance + normalize(
                account.account_type, totals.debit_total, totals.credit_total
            )
        return balance

    def period_activity(
        self,
        account_ids: Iterable[UUID],
        start: date,
        end: date,
    ) -> dict[UUID, Decimal]:
        """
        Normalized posted movement per account inside [start, end].

        Opening balances are not activity and are excluded.  Every requested
        account appears in the result (zero when it had no lines).
        """
        ids = list(account_ids)
        if not ids:
            return {}
        accounts = self.session.execute(
            select(Account).where(Account.id.in_(ids))
        ).scalars().all()
        sums = self._ledger.sums_by_account(ids, date_from=start, date_to=end)

        return {
            account.id: normalize(
                account.account_type,
                sums.get(account.id, _NO_LINES).debit_total,
                sums.get(account.id, _NO_LINES).credit_total,
            )
            for account in accounts
        }

    def trial_balance(self, as_of: date | None = None) -> TrialBalance:
        """
        Trial balance as of a date (inclusive), ordered by account code.

        Postconditions: one row per account with posted activity or a
            nonzero opening balance; each row's net sits in exactly one of
            the debit/credit columns.
        """
        accounts = sorted(self._all_accounts(), key=lambda a: a.code)
        sums = self._ledger.sums_by_account(date_to=as_of)

        rows = []
        total_debit = ZERO
        total_credit = ZERO
        for account in accounts:
            totals = sums.get(account.id)
            if totals is None and account.opening_balance == ZERO:
                continue
            totals = totals or _NO_LINES
            balance = account.opening_balance + normalize(
                account.account_type, totals.debit_total, totals.credit_total
            )
            debit_balance, credit_balance = split_net(account.account_type, balance)
            rows.append(
                TrialBalanceRow(
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    account_type=account.account_type,
                    opening_balance=account.opening_balance,
                    debit_total=totals.debit_total,
                    credit_total=totals.credit_total,
                    balance=balance,
                    debit_balance=debit_balance,
                    credit_balance=credit_balance,
                )
            )
            total_debit += debit_balance
            total_credit += credit_balance

        return TrialBalance(
            as_of=as_of,
            rows=tuple(rows),
            total_debit=total_debit,
            total_credit=total_credit,
        )

    def posted_totals(self, as_of: date | None = None) -> LineTotals:
        """Debit and credit totals of all posted lines (ledger self-check)."""
        return self._ledger.total_debits_credits(as_of)
