"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import (
    ACCOUNT_SUBTYPES,
    Account,
    AccountType,
)
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.models.journal import (
    EntrySource,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from ledger_kernel.models.recurring import (
    RecurringFrequency,
    RecurringTemplate,
    RecurringTemplateLine,
)

__all__ = [
    "ACCOUNT_SUBTYPES",
    "Account",
    "AccountType",
    "FiscalYear",
    "EntrySource",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "RecurringFrequency",
    "RecurringTemplate",
    "RecurringTemplateLine",
]
