"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.chart_seeder import ChartSeeder, SeedResult
from ledger_kernel.services.fiscal_year_service import CloseResult, FiscalYearService
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.posting_service import PostingService
from ledger_kernel.services.recurring_service import RecurringService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountService",
    "ChartSeeder",
    "CloseResult",
    "FiscalYearService",
    "LedgerStore",
    "PostingService",
    "RecurringService",
    "SeedResult",
    "SequenceService",
]
