"""
ledger_services -- the transactional facade over ledger_kernel.

Callers outside the ledger (POS sales, refunds, purchasing, the back-office
screens, the CLI) use ``LedgerAPI`` only.  Kernel services stay internal.
"""

from ledger_services.ledger_api import (
    LedgerAPI,
    LedgerServices,
    RecurringFailure,
    RecurringRunReport,
)

__all__ = [
    "LedgerAPI",
    "LedgerServices",
    "RecurringFailure",
    "RecurringRunReport",
]
