"""
Ledger configuration schema.

Frozen dataclasses produced by ledger_config.loader from YAML:

  LedgerSettings  = runtime settings (database, numbering, paging, logging)
  ChartAccountDef = one account of a chart of accounts definition
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger."""

    database_url: str
    entry_number_prefix: str = "JE"
    entry_number_width: int = 6
    retained_earnings_account_code: str = "3100"
    default_page_size: int = 25
    max_page_size: int = 200
    log_level: str = "INFO"
    chart_of_accounts: Path | None = None

    def __post_init__(self) -> None:
        if not self.entry_number_prefix:
            raise ValueError("entry_number_prefix must not be empty")
        if self.entry_number_width < 1:
            raise ValueError("entry_number_width must be at least 1")
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be at least 1")
        if self.max_page_size < self.default_page_size:
            raise ValueError("max_page_size must be >= default_page_size")


@dataclass(frozen=True)
class ChartAccountDef:
    """One account in a chart of accounts YAML file."""

    code: str
    name: str
    account_type: str
    subtype: str
    parent_code: str | None = None
    name_local: str | None = None
    description: str | None = None
    is_system: bool = False
    opening_balance: Decimal = Decimal("0.00")
