"""Read-only query selectors for the ledger kernel."""

from ledger_kernel.selectors.balance_selector import (
    BalanceSelector,
    TrialBalance,
    TrialBalanceRow,
)
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.journal_selector import (
    JournalEntryDTO,
    JournalLineDTO,
    JournalSelector,
)
from ledger_kernel.selectors.ledger_selector import (
    AccountLedger,
    LedgerLine,
    LedgerSelector,
    LineTotals,
)

__all__ = [
    "BaseSelector",
    "BalanceSelector",
    "TrialBalance",
    "TrialBalanceRow",
    "JournalSelector",
    "JournalEntryDTO",
    "JournalLineDTO",
    "LedgerSelector",
    "LedgerLine",
    "AccountLedger",
    "LineTotals",
]
