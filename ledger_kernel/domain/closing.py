"""
Closing -- pure computation of a fiscal year's closing entry.

Responsibility:
    Given each temporary (income / expense) account's posted activity for
    the year, produce the lines that zero those accounts and move the net
    result into retained earnings.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Called by FiscalYearService.close_year(), which supplies the activity
    and appends / posts the resulting entry.

Invariants enforced:
    - Income accounts with a positive balance are debited, expense accounts
      with a positive balance are credited; negative balances flip side.
    - The retained earnings line carries |net income|: credit when
      net >= 0, debit otherwise, and is omitted when net is exactly zero.
    - The produced lines always balance.
    - Accounts with a zero balance produce no line.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import DraftLine


@dataclass(frozen=True)
class AccountActivity:
    """Normalized posted movement of one account inside a date range."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    balance: Decimal


@dataclass(frozen=True)
class ClosingPlan:
    lines: tuple[DraftLine, ...]
    total_revenue: Decimal
    total_expense: Decimal

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expense

    @property
    def needs_entry(self) -> bool:
        return len(self.lines) > 0


def _closing_line(activity: AccountActivity, debit_normal: bool) -> DraftLine:
    description = f"Closing entry - {activity.account_name}"
    amount = abs(activity.balance)
    # Zeroing a debit-normal account means crediting its positive balance.
    credit_side = (activity.balance > ZERO) == debit_normal
    if credit_side:
        return DraftLine.cr(activity.account_id, amount, description)
    return DraftLine.dr(activity.account_id, amount, description)


def build_closing_lines(
    activities: list[AccountActivity],
    retained_earnings_account_id: UUID,
    fiscal_year_name: str,
) -> ClosingPlan:
    """
    Build the closing lines for a fiscal year.

    Args:
        activities: Income and expense account activity, balances
            normalized (positive = normal side).  Other types are ignored.
        retained_earnings_account_id: Target of the net result.
        fiscal_year_name: Used in the retained earnings line description.

    Returns:
        ClosingPlan with ordered lines (income, then expense, then retained
        earnings) and the revenue / expense totals.
    """
    income = sorted(
        (a for a in activities if a.account_type == "income"),
        key=lambda a: a.account_code,
    )
    expense = sorted(
        (a for a in activities if a.account_type == "expense"),
        key=lambda a: a.account_code,
    )

    lines: list[DraftLine] = []
    total_revenue = ZERO
    total_expense = ZERO

    for activity in income:
        if activity.balance == ZERO:
            continue
        lines.append(_closing_line(activity, debit_normal=False))
        total_revenue += activity.balance

    for activity in expense:
        if activity.balance == ZERO:
            continue
        lines.append(_closing_line(activity, debit_normal=True))
        total_expense += activity.balance

    net_income = total_revenue - total_expense
    if net_income > ZERO:
        lines.append(
            DraftLine.cr(
                retained_earnings_account_id,
                net_income,
                f"Net income for {fiscal_year_name}",
            )
        )
    elif net_income < ZERO:
        lines.append(
            DraftLine.dr(
                retained_earnings_account_id,
                -net_income,
                f"Net loss for {fiscal_year_name}",
            )
        )

    return ClosingPlan(
        lines=tuple(lines),
        total_revenue=total_revenue,
        total_expense=total_expense,
    )
